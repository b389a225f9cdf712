from supabase import Client
from app.core.errors import NotFoundError, TransientStoreError
from app.modules.users.models import DEFAULT_USER_LABEL, GROUP_LABEL_SEPARATOR
from app.modules.users.schemas import UserResponse, UserSummary
from typing import Dict, List
from fastapi import HTTPException
import logging

logger = logging.getLogger(__name__)


class UserService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def get_user_by_id(self, user_id: str) -> UserResponse:
        """Get user profile by ID"""
        try:
            result = self.supabase.table("users")\
                .select("id, full_name, avatar_url, phone, role")\
                .eq("id", user_id)\
                .limit(1)\
                .execute()

            if not result.data:
                raise NotFoundError("User not found")

            return UserResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise TransientStoreError(str(e))

    def get_users_by_ids(self, user_ids: List[str]) -> Dict[str, UserSummary]:
        """Get profiles for many users, keyed by id. Unknown ids are skipped."""
        ids = list({uid for uid in user_ids if uid})
        if not ids:
            return {}
        result = self.supabase.table("users")\
            .select("id, full_name, avatar_url, phone")\
            .in_("id", ids)\
            .execute()
        return {row["id"]: UserSummary(**row) for row in (result.data or [])}

    def get_display_label(self, user_id: str) -> str:
        """
        Human-friendly label for notification copy.

        An ACTIVE member of a shared profile is labelled with all active member
        names joined together; otherwise the user's own full_name is used.
        Never raises.
        """
        if not user_id:
            return DEFAULT_USER_LABEL
        try:
            membership = self.supabase.table("profile_group_members")\
                .select("group_id")\
                .eq("user_id", user_id)\
                .eq("status", "ACTIVE")\
                .limit(1)\
                .execute()
            member_ids = [user_id]
            if membership.data:
                members = self.supabase.table("profile_group_members")\
                    .select("user_id")\
                    .eq("group_id", membership.data[0]["group_id"])\
                    .eq("status", "ACTIVE")\
                    .execute()
                member_ids = [m["user_id"] for m in (members.data or []) if m.get("user_id")] or [user_id]

            users = self.get_users_by_ids(member_ids)
            # Keep the acting user's name first
            ordered = sorted(member_ids, key=lambda uid: uid != user_id)
            names = [users[uid].full_name for uid in ordered if uid in users and users[uid].full_name]
            return GROUP_LABEL_SEPARATOR.join(names) if names else DEFAULT_USER_LABEL
        except Exception as e:
            logger.warning(f"Could not compute display label for user {user_id}: {e}")
            return DEFAULT_USER_LABEL
