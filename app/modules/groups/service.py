from supabase import Client
from app.config import settings
from app.core.errors import NotFoundError, TransientStoreError
from app.modules.groups.models import (
    GROUP_ACTIVE, MEMBER_ACTIVE, MEMBER_LEFT, INVITE_PENDING
)
from app.modules.groups.schemas import GroupWithMembersResponse
from app.modules.users.service import UserService
from typing import Dict, List, Optional
from fastapi import HTTPException
from datetime import datetime, timedelta, timezone
import logging

logger = logging.getLogger(__name__)


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class GroupService:
    """
    Repository over profile_groups / profile_group_members / profile_group_invites.

    Store errors propagate unchanged so the caller decides whether a step is
    authoritative or best-effort. Membership writes are insert-if-absent or
    update-if-present only.
    """

    def __init__(self, supabase: Client):
        self.supabase = supabase

    # Groups

    def get_group(self, group_id: str) -> Optional[dict]:
        result = self.supabase.table("profile_groups")\
            .select("*")\
            .eq("id", group_id)\
            .limit(1)\
            .execute()
        return result.data[0] if result.data else None

    def create_group(self, created_by: str, status: str = GROUP_ACTIVE, name: Optional[str] = None) -> str:
        """Create a group row and return its id"""
        result = self.supabase.table("profile_groups").insert({
            "created_by": created_by,
            "name": name or settings.default_group_name,
            "status": status,
        }).execute()
        if not result.data:
            raise TransientStoreError("Failed to create group")
        return result.data[0]["id"]

    def activate_group(self, group_id: str) -> None:
        self.supabase.table("profile_groups")\
            .update({"status": GROUP_ACTIVE})\
            .eq("id", group_id)\
            .neq("status", GROUP_ACTIVE)\
            .execute()

    def delete_group_cascade(self, group_id: str) -> None:
        """Remove memberships, invites and the group row. Only for transient or merged-away groups."""
        self.supabase.table("profile_group_members")\
            .delete()\
            .eq("group_id", group_id)\
            .execute()
        self.supabase.table("profile_group_invites")\
            .delete()\
            .eq("group_id", group_id)\
            .execute()
        self.supabase.table("profile_groups")\
            .delete()\
            .eq("id", group_id)\
            .execute()

    # Memberships

    def get_active_group(self, user_id: str) -> Optional[str]:
        result = self.supabase.table("profile_group_members")\
            .select("group_id")\
            .eq("user_id", user_id)\
            .eq("status", MEMBER_ACTIVE)\
            .limit(1)\
            .execute()
        return result.data[0]["group_id"] if result.data else None

    def get_active_groups(self, user_id: str) -> List[str]:
        """Every group the user is ACTIVE in; more than one only after an interrupted merge"""
        result = self.supabase.table("profile_group_members")\
            .select("group_id")\
            .eq("user_id", user_id)\
            .eq("status", MEMBER_ACTIVE)\
            .execute()
        return _unique([row.get("group_id") for row in (result.data or [])])

    def get_active_members(self, group_id: str) -> List[str]:
        result = self.supabase.table("profile_group_members")\
            .select("user_id")\
            .eq("group_id", group_id)\
            .eq("status", MEMBER_ACTIVE)\
            .execute()
        return _unique([row.get("user_id") for row in (result.data or [])])

    def get_active_groups_for_users(self, user_ids: List[str]) -> Dict[str, str]:
        """Map user_id -> ACTIVE group_id for the users that have one"""
        ids = _unique(user_ids)
        if not ids:
            return {}
        result = self.supabase.table("profile_group_members")\
            .select("user_id, group_id")\
            .eq("status", MEMBER_ACTIVE)\
            .in_("user_id", ids)\
            .execute()
        return {row["user_id"]: row["group_id"] for row in (result.data or [])}

    def get_active_members_for_groups(self, group_ids: List[str]) -> Dict[str, List[str]]:
        """Map group_id -> ACTIVE member ids"""
        ids = _unique(group_ids)
        if not ids:
            return {}
        result = self.supabase.table("profile_group_members")\
            .select("group_id, user_id")\
            .eq("status", MEMBER_ACTIVE)\
            .in_("group_id", ids)\
            .execute()
        members: Dict[str, List[str]] = {gid: [] for gid in ids}
        for row in result.data or []:
            bucket = members.setdefault(row["group_id"], [])
            if row.get("user_id") and row["user_id"] not in bucket:
                bucket.append(row["user_id"])
        return members

    def insert_membership(self, group_id: str, user_id: str, status: str = MEMBER_ACTIVE) -> None:
        """Insert (group_id, user_id); an existing row is left untouched"""
        self.insert_memberships(group_id, [user_id], status)

    def insert_memberships(self, group_id: str, user_ids: List[str], status: str = MEMBER_ACTIVE) -> None:
        rows = [{"group_id": group_id, "user_id": uid, "status": status} for uid in _unique(user_ids)]
        if not rows:
            return
        self.supabase.table("profile_group_members")\
            .upsert(rows, on_conflict="group_id,user_id", ignore_duplicates=True)\
            .execute()

    def set_membership_status(self, group_id: str, user_id: str, status: str) -> None:
        self.supabase.table("profile_group_members")\
            .update({"status": status, "updated_at": utcnow_iso()})\
            .eq("group_id", group_id)\
            .eq("user_id", user_id)\
            .execute()

    def activate_membership(self, group_id: str, user_id: str) -> None:
        """Ensure (group_id, user_id) is ACTIVE: insert if absent, flip a LEFT row back"""
        self.insert_membership(group_id, user_id, MEMBER_ACTIVE)
        self.supabase.table("profile_group_members")\
            .update({"status": MEMBER_ACTIVE, "updated_at": utcnow_iso()})\
            .eq("group_id", group_id)\
            .eq("user_id", user_id)\
            .neq("status", MEMBER_ACTIVE)\
            .execute()

    def leave_active_memberships(self, group_ids: List[str]) -> None:
        ids = _unique(group_ids)
        if not ids:
            return
        self.supabase.table("profile_group_members")\
            .update({"status": MEMBER_LEFT, "updated_at": utcnow_iso()})\
            .in_("group_id", ids)\
            .eq("status", MEMBER_ACTIVE)\
            .execute()

    # Invites

    def get_invite(self, invite_id: str) -> Optional[dict]:
        result = self.supabase.table("profile_group_invites")\
            .select("*")\
            .eq("id", invite_id)\
            .limit(1)\
            .execute()
        return result.data[0] if result.data else None

    def find_pending_invite(self, group_id: str, invitee_id: str) -> Optional[dict]:
        result = self.supabase.table("profile_group_invites")\
            .select("id, status")\
            .eq("group_id", group_id)\
            .eq("invitee_id", invitee_id)\
            .eq("status", INVITE_PENDING)\
            .limit(1)\
            .execute()
        return result.data[0] if result.data else None

    def create_invite(self, group_id: str, inviter_id: str, invitee_id: str) -> dict:
        result = self.supabase.table("profile_group_invites").insert({
            "group_id": group_id,
            "inviter_id": inviter_id,
            "invitee_id": invitee_id,
            "status": INVITE_PENDING,
            "created_at": utcnow_iso(),
        }).execute()
        if not result.data:
            raise TransientStoreError("Failed to create invite")
        return result.data[0]

    def move_invites(self, from_group_id: str, to_group_id: str) -> None:
        self.supabase.table("profile_group_invites")\
            .update({"group_id": to_group_id})\
            .eq("group_id", from_group_id)\
            .execute()

    def move_invite(self, invite_id: str, to_group_id: str) -> None:
        self.supabase.table("profile_group_invites")\
            .update({"group_id": to_group_id})\
            .eq("id", invite_id)\
            .execute()

    def set_invite_status(self, invite_id: str, status: str) -> None:
        self.supabase.table("profile_group_invites")\
            .update({"status": status, "responded_at": utcnow_iso()})\
            .eq("id", invite_id)\
            .execute()

    # Shared profiles

    def list_user_groups(self, user_id: str) -> List[GroupWithMembersResponse]:
        """ACTIVE shared profiles of a user with their ACTIVE members"""
        try:
            memberships = self.supabase.table("profile_group_members")\
                .select("group_id")\
                .eq("user_id", user_id)\
                .eq("status", MEMBER_ACTIVE)\
                .execute()
            group_ids = _unique([m.get("group_id") for m in (memberships.data or [])])
            if not group_ids:
                return []

            groups_result = self.supabase.table("profile_groups")\
                .select("id, name, status")\
                .in_("id", group_ids)\
                .eq("status", GROUP_ACTIVE)\
                .execute()
            members_by_group = self.get_active_members_for_groups(group_ids)
            users = UserService(self.supabase).get_users_by_ids(
                [uid for ids in members_by_group.values() for uid in ids]
            )

            groups = []
            for group in groups_result.data or []:
                member_ids = members_by_group.get(group["id"], [])
                if not member_ids:
                    continue
                groups.append(GroupWithMembersResponse(
                    id=group["id"],
                    name=group.get("name") or settings.default_group_name,
                    status=group["status"],
                    members=[users[uid] for uid in member_ids if uid in users],
                ))
            return groups
        except HTTPException:
            raise
        except Exception as e:
            raise TransientStoreError(str(e))

    def leave_group(self, group_id: str, user_id: str) -> None:
        """Mark the user's ACTIVE membership in the group as LEFT"""
        try:
            if not self.get_group(group_id):
                raise NotFoundError("Shared profile not found")
            if user_id not in self.get_active_members(group_id):
                raise NotFoundError("You are not an active member of this shared profile")
            self.set_membership_status(group_id, user_id, MEMBER_LEFT)
            logger.info(f"User {user_id} left shared profile {group_id}")
        except HTTPException:
            raise
        except Exception as e:
            raise TransientStoreError(str(e))

    def find_transient_groups(self, min_age_minutes: Optional[int] = None) -> List[str]:
        """
        Groups that carry no shared-profile value: fewer than 2 ACTIVE members,
        no PENDING invite still relying on them, and older than min_age_minutes.
        """
        age = settings.transient_group_min_age_minutes if min_age_minutes is None else min_age_minutes
        cutoff = (datetime.now(timezone.utc) - timedelta(minutes=age)).isoformat()
        groups = self.supabase.table("profile_groups")\
            .select("id")\
            .lte("created_at", cutoff)\
            .execute()
        group_ids = _unique([g.get("id") for g in (groups.data or [])])
        if not group_ids:
            return []

        members_by_group = self.get_active_members_for_groups(group_ids)
        pending = self.supabase.table("profile_group_invites")\
            .select("group_id")\
            .eq("status", INVITE_PENDING)\
            .in_("group_id", group_ids)\
            .execute()
        with_pending = {row["group_id"] for row in (pending.data or [])}

        return [
            gid for gid in group_ids
            if len(members_by_group.get(gid, [])) < 2 and gid not in with_pending
        ]


def _unique(values: List[Optional[str]]) -> List[str]:
    seen: List[str] = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return seen
