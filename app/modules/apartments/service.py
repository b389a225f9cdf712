from supabase import Client
from app.modules.apartments.schemas import ApartmentResponse
from typing import Dict, List, Optional
import logging

logger = logging.getLogger(__name__)

APARTMENT_COLUMNS = "id, owner_id, partner_ids, roommate_capacity, title, city"


class ApartmentService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def get_apartment(self, apartment_id: str) -> Optional[ApartmentResponse]:
        """Get apartment by ID, None when missing"""
        result = self.supabase.table("apartments")\
            .select(APARTMENT_COLUMNS)\
            .eq("id", apartment_id)\
            .limit(1)\
            .execute()
        if not result.data:
            return None
        return ApartmentResponse(**result.data[0])

    def add_partners(self, apartment_id: str, user_ids: List[str]) -> List[str]:
        """
        Union user_ids into partner_ids. The owner is never added and a user
        already listed is not written again. Returns the ids actually added.
        """
        # Re-read right before writing so the union is taken over the latest list
        apartment = self.get_apartment(apartment_id)
        if apartment is None:
            return []

        current = list(dict.fromkeys(apartment.partner_ids))
        to_add = [
            uid for uid in dict.fromkeys(user_ids)
            if uid and uid != apartment.owner_id and uid not in current
        ]
        if not to_add:
            return []

        if apartment.roommate_capacity is not None and len(current) + len(to_add) + 1 > apartment.roommate_capacity:
            logger.warning(
                f"Apartment {apartment_id} exceeds roommate capacity {apartment.roommate_capacity} "
                f"after adding {to_add}"
            )

        self.supabase.table("apartments")\
            .update({"partner_ids": current + to_add})\
            .eq("id", apartment_id)\
            .execute()
        logger.info(f"Added partners {to_add} to apartment {apartment_id}")
        return to_add

    def add_partner(self, apartment_id: str, user_id: str) -> bool:
        return bool(self.add_partners(apartment_id, [user_id]))

    def list_apartments_for_user(self, user_id: str) -> List[ApartmentResponse]:
        """Apartments the user owns or is a partner in"""
        owned = self.supabase.table("apartments")\
            .select(APARTMENT_COLUMNS)\
            .eq("owner_id", user_id)\
            .execute()
        partnered = self.supabase.table("apartments")\
            .select(APARTMENT_COLUMNS)\
            .contains("partner_ids", [user_id])\
            .execute()
        by_id: Dict[str, ApartmentResponse] = {}
        for row in (owned.data or []) + (partnered.data or []):
            by_id[row["id"]] = ApartmentResponse(**row)
        return list(by_id.values())

    def sync_group_partners(self, user_ids: List[str], member_ids: List[str]) -> Dict[str, List[str]]:
        """
        Add every shared-profile member as a partner of each apartment owned or
        partnered by any of user_ids. Returns apartment_id -> ids added.
        """
        added: Dict[str, List[str]] = {}
        seen = set()
        for user_id in dict.fromkeys(user_ids):
            if not user_id:
                continue
            for apartment in self.list_apartments_for_user(user_id):
                if apartment.id in seen:
                    continue
                seen.add(apartment.id)
                new_ids = self.add_partners(apartment.id, member_ids)
                if new_ids:
                    added[apartment.id] = new_ids
        return added
