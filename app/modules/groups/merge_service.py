"""
Merge orchestration for shared-profile groups.

Each operation is a sequence of independent store commands. The authoritative
transition (invite status, membership of the target group) runs first and its
failure is fatal; the side effects that follow are best-effort and only
logged. Every write is idempotent, so a retried call converges to the same
end state.
"""

from supabase import Client
from app.config import settings
from app.core.errors import (
    NotFoundError, ForbiddenError, ConflictError, CapacityExceededError,
    InvalidRequestError, TransientStoreError, is_unique_violation
)
from app.modules.apartments.service import ApartmentService
from app.modules.groups.models import (
    GROUP_PENDING, MEMBER_LEFT,
    INVITE_PENDING, INVITE_ACCEPTED, INVITE_DECLINED
)
from app.modules.groups.schemas import GroupInviteResponse, MergeResult
from app.modules.groups.service import GroupService
from app.modules.notifications import templates
from app.modules.notifications.service import NotificationService
from app.modules.users.service import UserService
from typing import List, Optional, Tuple
from fastapi import HTTPException
import logging

logger = logging.getLogger(__name__)


class MergeService:
    def __init__(self, supabase: Client):
        self.supabase = supabase
        self.groups = GroupService(supabase)
        self.users = UserService(supabase)
        self.notifications = NotificationService(supabase)
        self.apartments = ApartmentService(supabase)

    @property
    def max_members(self) -> int:
        return settings.max_group_members

    def send_invite(self, inviter_id: str, invitee_id: str) -> GroupInviteResponse:
        """Invite a user to merge into the inviter's shared profile"""
        if not invitee_id or inviter_id == invitee_id:
            raise InvalidRequestError("Cannot send a merge invite to yourself")
        self.users.get_user_by_id(invitee_id)
        try:
            inviter_group_id = self.groups.get_active_group(inviter_id)
            invitee_group_id = self.groups.get_active_group(invitee_id)
            if inviter_group_id and inviter_group_id == invitee_group_id:
                raise ConflictError("You already share a profile with this user")

            union = self._member_union([inviter_id, invitee_id], [inviter_group_id, invitee_group_id])
            if len(union) > self.max_members:
                raise CapacityExceededError(len(union), self.max_members)

            group_id = inviter_group_id
            if not group_id:
                # Solo scaffolding group; collapsed again on accept/decline
                group_id = self.groups.create_group(inviter_id, status=GROUP_PENDING)
                self.groups.activate_membership(group_id, inviter_id)
                logger.info(f"Created solo group {group_id} for inviter {inviter_id}")

            if self.groups.find_pending_invite(group_id, invitee_id):
                raise ConflictError("A pending merge invite already exists for this user")

            try:
                invite = self.groups.create_invite(group_id, inviter_id, invitee_id)
            except HTTPException:
                raise
            except Exception as e:
                if is_unique_violation(e):
                    raise ConflictError("A pending merge invite already exists for this user")
                raise
        except HTTPException:
            raise
        except Exception as e:
            raise TransientStoreError(str(e))

        logger.info(f"Merge invite {invite['id']} sent from {inviter_id} to {invitee_id} (group {group_id})")
        self._notify(
            sender_id=inviter_id,
            recipient_id=invitee_id,
            message=templates.merge_invited(self.users.get_display_label(inviter_id)),
            event_key=templates.event_key("profile_merge", invite["id"], "invited"),
        )
        return GroupInviteResponse(**invite)

    def accept_invite(self, invite_id: str, approver_id: str) -> MergeResult:
        """Accept a merge invite and reconcile both sides into one shared profile"""
        invite = self._load_invite(invite_id, approver_id)
        if invite["status"] == INVITE_DECLINED:
            raise ConflictError("Invite was already declined")
        if invite["status"] == INVITE_ACCEPTED:
            return self._resume_accepted(invite, approver_id)

        try:
            scenario, group_id, retired = self._reconcile(invite, approver_id, mark_accepted=True)
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Accepting invite {invite_id} failed: {e}")
            raise TransientStoreError(str(e))

        return self._complete(invite, approver_id, scenario, group_id, retired)

    def reject_invite(self, invite_id: str, approver_id: str) -> MergeResult:
        """Decline a merge invite and collapse the inviter's solo scaffolding group"""
        invite = self._load_invite(invite_id, approver_id)
        if invite["status"] == INVITE_ACCEPTED:
            raise ConflictError("Invite was already accepted")

        if invite["status"] != INVITE_DECLINED:
            try:
                self.groups.set_invite_status(invite_id, INVITE_DECLINED)
            except Exception as e:
                raise TransientStoreError(str(e))
            logger.info(f"Invite {invite_id} declined by {approver_id}")

        # A solo group nobody else is invited to goes away together with its invites
        inviter_id = invite["inviter_id"]
        try:
            inviter_group_id = self.groups.get_active_group(inviter_id)
            if inviter_group_id and self.groups.get_active_members(inviter_group_id) == [inviter_id]:
                if not self._has_other_pending_invites(inviter_group_id, invite_id):
                    self.groups.set_membership_status(inviter_group_id, inviter_id, MEMBER_LEFT)
                    self.groups.delete_group_cascade(inviter_group_id)
                    logger.info(f"Deleted solo group {inviter_group_id} of {inviter_id}")
        except Exception as e:
            logger.warning(f"Solo group cleanup after declining {invite_id} failed: {e}")

        return MergeResult(invite_id=invite_id, status=INVITE_DECLINED, scenario="none")

    def _reconcile(self, invite: dict, approver_id: str, mark_accepted: bool) -> Tuple[str, Optional[str], List[str]]:
        """
        Capacity guard, solo-group collapse and merge dispatch. Returns
        (scenario, target group id, groups to retire). Store errors propagate.
        """
        invite_id = invite["id"]
        inviter_id = invite["inviter_id"]
        invitee_id = invite["invitee_id"]

        approver_group_id = self.groups.get_active_group(approver_id)
        inviter_group_id = self.groups.get_active_group(inviter_id)

        solo_group_id = None
        if inviter_group_id and inviter_group_id != approver_group_id:
            if self.groups.get_active_members(inviter_group_id) == [inviter_id]:
                solo_group_id = inviter_group_id
                inviter_group_id = None

        # Members are read here, immediately before any mutation
        union = self._member_union(
            [inviter_id, invitee_id, approver_id],
            [approver_group_id, inviter_group_id],
        )
        if len(union) > self.max_members:
            logger.info(
                f"Invite {invite_id} rejected by capacity guard: {len(union)} > {self.max_members}"
            )
            raise CapacityExceededError(len(union), self.max_members)

        if solo_group_id:
            # Inviter stops counting as a member before joining the target group
            self.groups.set_membership_status(solo_group_id, inviter_id, MEMBER_LEFT)

        if mark_accepted:
            self.groups.set_invite_status(invite_id, INVITE_ACCEPTED)
        scenario, group_id = self._merge(
            approver_id, inviter_id, invitee_id,
            approver_group_id, inviter_group_id, union,
        )

        retired = [solo_group_id] if solo_group_id else []
        if scenario == "merged":
            retired += [approver_group_id, inviter_group_id]
        return scenario, group_id, retired

    def _resume_accepted(self, invite: dict, approver_id: str) -> MergeResult:
        """
        Accepting an ACCEPTED invite again. When inviter and invitee already
        share exactly one ACTIVE group this is a no-op. Otherwise an earlier
        attempt stopped after the invite was marked, and the merge is finished
        from the current memberships.
        """
        invite_id = invite["id"]
        try:
            inviter_groups = self.groups.get_active_groups(invite["inviter_id"])
            invitee_groups = self.groups.get_active_groups(invite["invitee_id"])
            shared = [gid for gid in inviter_groups if gid in invitee_groups]

            if not shared:
                scenario, group_id, retired = self._reconcile(invite, approver_id, mark_accepted=False)
            else:
                group_id = shared[0]
                self.groups.activate_group(group_id)
                leftovers = [gid for gid in dict.fromkeys(inviter_groups + invitee_groups) if gid != group_id]
                if not leftovers:
                    logger.info(f"Invite {invite_id} already accepted; nothing to do")
                    return MergeResult(
                        invite_id=invite_id,
                        status=INVITE_ACCEPTED,
                        scenario="none",
                        group_id=group_id,
                        member_ids=self._safe_members(group_id),
                    )
                scenario = "resumed"
                retired = self._release_duplicates(group_id, leftovers)
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Resuming accepted invite {invite_id} failed: {e}")
            raise TransientStoreError(str(e))

        logger.info(f"Resumed accepted invite {invite_id}: {scenario}")
        return self._complete(invite, approver_id, scenario, group_id, retired)

    def _release_duplicates(self, group_id: str, source_ids: List[str]) -> List[str]:
        """Set LEFT every source membership whose user is ACTIVE in group_id; returns emptied sources"""
        target_members = self.groups.get_active_members(group_id)
        emptied = []
        for source_id in source_ids:
            for user_id in self.groups.get_active_members(source_id):
                if user_id in target_members:
                    self.groups.set_membership_status(source_id, user_id, MEMBER_LEFT)
            if not self.groups.get_active_members(source_id):
                emptied.append(source_id)
        return emptied

    def _complete(
        self,
        invite: dict,
        approver_id: str,
        scenario: str,
        group_id: Optional[str],
        retired: List[str],
    ) -> MergeResult:
        """Best-effort tail of an accept: retire source groups, notify the inviter, sync partners"""
        invite_id = invite["id"]
        inviter_id = invite["inviter_id"]
        invitee_id = invite["invitee_id"]

        # A retry after a failed first attempt finds the invite's group already emptied
        origin_id = invite.get("group_id")
        if origin_id and origin_id != group_id and origin_id not in retired and not self._safe_members(origin_id):
            retired.append(origin_id)
        for source_id in retired:
            self._retire_group(source_id, group_id, invite_id)

        member_ids = self._safe_members(group_id)
        logger.info(f"Invite {invite_id} accepted: {scenario} -> group {group_id} ({len(member_ids)} members)")

        self._notify(
            sender_id=approver_id,
            recipient_id=inviter_id,
            message=templates.merge_approved(self.users.get_display_label(approver_id)),
            event_key=templates.event_key("profile_merge", invite_id, "approved"),
        )
        if settings.sync_apartment_partners_on_merge and member_ids:
            self._sync_apartments([inviter_id, invitee_id], member_ids)

        return MergeResult(
            invite_id=invite_id,
            status=INVITE_ACCEPTED,
            scenario=scenario,
            group_id=group_id,
            member_ids=member_ids,
        )

    def _load_invite(self, invite_id: str, approver_id: str) -> dict:
        try:
            invite = self.groups.get_invite(invite_id)
        except Exception as e:
            raise TransientStoreError(str(e))
        if not invite:
            raise NotFoundError("Invite not found")
        if invite.get("invitee_id") != approver_id:
            raise ForbiddenError("Only the invited user can respond to this invite")
        return invite

    def _merge(
        self,
        approver_id: str,
        inviter_id: str,
        invitee_id: str,
        approver_group_id: Optional[str],
        inviter_group_id: Optional[str],
        union: List[str],
    ) -> Tuple[str, Optional[str]]:
        """Dispatch on (approver group, inviter group). Returns (scenario, target group id)."""
        if not approver_group_id and not inviter_group_id:
            group_id = self.groups.create_group(approver_id)
            self.groups.insert_memberships(group_id, [inviter_id, invitee_id])
            return "created", group_id

        if approver_group_id and not inviter_group_id:
            self.groups.activate_membership(approver_group_id, inviter_id)
            self.groups.activate_group(approver_group_id)
            return "joined_approver_group", approver_group_id

        if inviter_group_id and not approver_group_id:
            self.groups.activate_membership(inviter_group_id, invitee_id)
            self.groups.activate_group(inviter_group_id)
            return "joined_inviter_group", inviter_group_id

        if approver_group_id == inviter_group_id:
            return "already_merged", approver_group_id

        group_id = self.groups.create_group(approver_id)
        self.groups.insert_memberships(group_id, union)
        self.groups.leave_active_memberships([approver_group_id, inviter_group_id])
        return "merged", group_id

    def _member_union(self, user_ids: List[str], group_ids: List[Optional[str]]) -> List[str]:
        union: List[str] = []
        for uid in user_ids:
            if uid and uid not in union:
                union.append(uid)
        for gid in dict.fromkeys(g for g in group_ids if g):
            for uid in self.groups.get_active_members(gid):
                if uid not in union:
                    union.append(uid)
        return union

    def _retire_group(self, group_id: str, target_group_id: Optional[str], invite_id: str) -> None:
        """
        Delete a group whose memberships are already LEFT. Its invites (including
        the one just accepted) are moved to the target group first so they
        survive the cascade. Every step is best-effort: LEFT memberships
        already make the group inert.
        """
        if target_group_id:
            try:
                self.groups.move_invites(group_id, target_group_id)
            except Exception as e:
                logger.warning(f"Could not move invites of group {group_id}: {e}")
                try:
                    self.groups.move_invite(invite_id, target_group_id)
                except Exception as e:
                    logger.warning(f"Could not move invite {invite_id} to group {target_group_id}: {e}")
        try:
            self.groups.delete_group_cascade(group_id)
            logger.info(f"Deleted retired group {group_id}")
        except Exception as e:
            logger.warning(f"Could not delete retired group {group_id}: {e}")

    def _has_other_pending_invites(self, group_id: str, invite_id: str) -> bool:
        result = self.supabase.table("profile_group_invites")\
            .select("id")\
            .eq("group_id", group_id)\
            .eq("status", INVITE_PENDING)\
            .neq("id", invite_id)\
            .limit(1)\
            .execute()
        return bool(result.data)

    def _safe_members(self, group_id: Optional[str]) -> List[str]:
        if not group_id:
            return []
        try:
            return self.groups.get_active_members(group_id)
        except Exception as e:
            logger.warning(f"Could not read members of group {group_id}: {e}")
            return []

    def _sync_apartments(self, user_ids: List[str], member_ids: List[str]) -> None:
        try:
            added = self.apartments.sync_group_partners(user_ids, member_ids)
            if added:
                logger.info(f"Synced shared-profile partners into apartments: {added}")
        except Exception as e:
            logger.warning(f"Apartment partner sync after merge failed: {e}")

    def _notify(self, sender_id: str, recipient_id: str, message: Tuple[str, str], event_key: str) -> None:
        title, description = message
        try:
            self.notifications.send_once(sender_id, recipient_id, title, description, event_key)
        except Exception as e:
            logger.warning(f"Notification {event_key} to {recipient_id} failed: {e}")
