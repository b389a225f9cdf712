"""
Approve/reject side effects for apartment requests and matches.

The status write is the authoritative step: if it fails nothing else runs and
the caller gets TransientStoreError. Every side effect after it is idempotent,
and a failure there is reported through ApprovalResult.partial instead of undoing
the status change. Calling approve again re-runs those steps safely.
"""

from supabase import Client
from app.config import settings
from app.core.errors import NotFoundError, ForbiddenError, ConflictError, TransientStoreError
from app.modules.apartments.schemas import ApartmentResponse
from app.modules.apartments.service import ApartmentService
from app.modules.groups.models import MEMBER_LEFT
from app.modules.groups.service import GroupService, utcnow_iso
from app.modules.notifications import templates
from app.modules.notifications.service import NotificationService
from app.modules.requests.models import REQUEST_TYPE_INVITE
from app.modules.requests.normalizer import apartment_kind, normalize_status
from app.modules.requests.schemas import ApprovalResult, RequestKind, SharedStatus
from app.modules.users.service import UserService
from typing import List, Optional, Tuple
from fastapi import HTTPException
import logging

logger = logging.getLogger(__name__)


class ApprovalService:
    def __init__(self, supabase: Client):
        self.supabase = supabase
        self.groups = GroupService(supabase)
        self.users = UserService(supabase)
        self.apartments = ApartmentService(supabase)
        self.notifications = NotificationService(supabase)

    # Apartment requests

    def approve_apartment_request(self, request_id: str, acting_user_id: str) -> ApprovalResult:
        request = self._load("apartments_request", request_id, "Request not found")
        if request.get("recipient_id") != acting_user_id:
            raise ForbiddenError("Only the recipient can approve this request")

        kind = apartment_kind(request.get("type"))
        self._ensure_transition(kind, request.get("status"), SharedStatus.APPROVED)

        apartment = self._load_apartment(request.get("apartment_id"))
        self._set_status("apartments_request", request_id, SharedStatus.APPROVED)
        logger.info(f"Apartment request {request_id} ({kind.value}) approved by {acting_user_id}")

        result = ApprovalResult(id=request_id, kind=kind, status=SharedStatus.APPROVED)
        sender_id = request["sender_id"]
        # JOIN_APT: the requester joins. INVITE_APT: the invited recipient joins.
        partner_id = sender_id if kind == RequestKind.APT else acting_user_id

        try:
            if self.apartments.add_partner(apartment.id, partner_id):
                result.partner_added = partner_id
        except Exception as e:
            self._mark_partial(result, "add_partner", e)

        if kind == RequestKind.APT_INVITE:
            try:
                result.related_request_ids = self._approve_group_invites(request, apartment, acting_user_id)
            except Exception as e:
                self._mark_partial(result, "group_invites", e)

        if kind == RequestKind.APT_INVITE:
            message = templates.apartment_invite_approved(
                self.users.get_display_label(acting_user_id), apartment.title, apartment.city
            )
            key = templates.event_key("apt_invite", request_id, "approved")
        else:
            message = templates.apartment_join_approved(apartment.title, apartment.city)
            key = templates.event_key("apt_join", request_id, "approved")
        self._notify(result, acting_user_id, sender_id, message, key)

        other_id = partner_id if partner_id != acting_user_id else sender_id
        try:
            result.group_id = self._cross_link(acting_user_id, other_id, sender_id)
        except Exception as e:
            self._mark_partial(result, "cross_link", e)

        return result

    def reject_apartment_request(self, request_id: str, acting_user_id: Optional[str] = None) -> ApprovalResult:
        request = self._load("apartments_request", request_id, "Request not found")
        if acting_user_id and request.get("recipient_id") != acting_user_id:
            raise ForbiddenError("Only the recipient can reject this request")

        kind = apartment_kind(request.get("type"))
        self._ensure_transition(kind, request.get("status"), SharedStatus.REJECTED)
        self._set_status("apartments_request", request_id, SharedStatus.REJECTED)
        logger.info(f"Apartment request {request_id} rejected")
        return ApprovalResult(id=request_id, kind=kind, status=SharedStatus.REJECTED)

    def cancel_apartment_request(self, request_id: str, acting_user_id: str) -> ApprovalResult:
        """Withdraw a pending request; only its sender may do so"""
        request = self._load("apartments_request", request_id, "Request not found")
        if request.get("sender_id") != acting_user_id:
            raise ForbiddenError("Only the sender can cancel this request")

        kind = apartment_kind(request.get("type"))
        self._ensure_transition(kind, request.get("status"), SharedStatus.CANCELLED)
        self._set_status("apartments_request", request_id, SharedStatus.CANCELLED)
        logger.info(f"Apartment request {request_id} cancelled by {acting_user_id}")
        return ApprovalResult(id=request_id, kind=kind, status=SharedStatus.CANCELLED)

    # Matches

    def approve_match(self, match_id: str, acting_user_id: str) -> ApprovalResult:
        match = self._load("matches", match_id, "Match not found")
        self._ensure_match_recipient(match, acting_user_id)
        self._ensure_transition(RequestKind.MATCH, match.get("status"), SharedStatus.APPROVED)
        self._set_status("matches", match_id, SharedStatus.APPROVED)
        logger.info(f"Match {match_id} approved by {acting_user_id}")

        result = ApprovalResult(id=match_id, kind=RequestKind.MATCH, status=SharedStatus.APPROVED)
        self._notify(
            result,
            acting_user_id,
            match["sender_id"],
            templates.match_approved(self.users.get_display_label(acting_user_id)),
            templates.event_key("match", match_id, "approved"),
        )
        return result

    def reject_match(self, match_id: str, acting_user_id: Optional[str] = None) -> ApprovalResult:
        match = self._load("matches", match_id, "Match not found")
        if acting_user_id:
            self._ensure_match_recipient(match, acting_user_id)
        self._ensure_transition(RequestKind.MATCH, match.get("status"), SharedStatus.REJECTED)
        self._set_status("matches", match_id, SharedStatus.REJECTED)
        logger.info(f"Match {match_id} rejected")

        result = ApprovalResult(id=match_id, kind=RequestKind.MATCH, status=SharedStatus.REJECTED)
        if acting_user_id:
            self._notify(
                result,
                acting_user_id,
                match["sender_id"],
                templates.match_rejected(self.users.get_display_label(acting_user_id)),
                templates.event_key("match", match_id, "rejected"),
            )
        return result

    # Apartment invites sent to a shared profile

    def _approve_group_invites(self, request: dict, apartment: ApartmentResponse, acting_user_id: str) -> List[str]:
        """
        An INVITE_APT sent to a shared profile exists once per member. When one
        member approves, the parallel PENDING rows from the same sender for the
        same apartment are approved too, every member becomes a partner and the
        inviter joins the shared profile. Returns the ids of the rows approved here.
        """
        group_id = self.groups.get_active_group(acting_user_id)
        if not group_id:
            return []
        member_ids = self.groups.get_active_members(group_id)
        sender_id = request["sender_id"]

        def parallel_invites():
            return self.supabase.table("apartments_request")\
                .select("id, recipient_id, status")\
                .eq("sender_id", sender_id)\
                .eq("apartment_id", apartment.id)\
                .eq("type", REQUEST_TYPE_INVITE)

        rows = {}
        for row in (parallel_invites().in_("recipient_id", member_ids).execute().data or []):
            rows[row["id"]] = row
        for row in (parallel_invites().contains("metadata", {"group_id": group_id}).execute().data or []):
            rows[row["id"]] = row
        rows.pop(request["id"], None)

        pending_ids = [
            row_id for row_id, row in rows.items()
            if normalize_status(RequestKind.APT_INVITE, row.get("status")) == SharedStatus.PENDING
        ]
        if pending_ids:
            self.supabase.table("apartments_request")\
                .update({"status": SharedStatus.APPROVED.value, "updated_at": utcnow_iso()})\
                .in_("id", pending_ids)\
                .execute()
            logger.info(f"Approved parallel invites {pending_ids} for shared profile {group_id}")

        recipients = list(dict.fromkeys(member_ids + [row.get("recipient_id") for row in rows.values()]))
        self.apartments.add_partners(apartment.id, [uid for uid in recipients if uid])

        if sender_id not in member_ids:
            if len(member_ids) + 1 > settings.max_group_members:
                logger.warning(f"Inviter {sender_id} not added to shared profile {group_id}: it is full")
            else:
                previous = self.groups.get_active_group(sender_id)
                if previous and previous != group_id:
                    self.groups.set_membership_status(previous, sender_id, MEMBER_LEFT)
                self.groups.activate_membership(group_id, sender_id)
                logger.info(f"Inviter {sender_id} joined shared profile {group_id}")
        return pending_ids

    # Shared-profile cross-link

    def _cross_link(self, approver_id: str, other_id: str, sender_id: str) -> Optional[str]:
        """
        Put approver and other party in one ACTIVE shared profile. Candidate
        targets in order: the sender's group, the approver's, the other
        party's. The first one that fits both users within the member cap wins;
        when neither user has a group a new one is created. Returns the target
        group id or None when no candidate fits.
        """
        if not other_id or other_id == approver_id:
            return None

        pair = [approver_id, other_id]
        active = self.groups.get_active_groups_for_users(pair)
        if active.get(approver_id) and active.get(approver_id) == active.get(other_id):
            return active[approver_id]

        candidates = list(dict.fromkeys(
            gid for gid in (active.get(sender_id), active.get(approver_id), active.get(other_id)) if gid
        ))
        target_id = None
        for group_id in candidates:
            members = set(self.groups.get_active_members(group_id)) | set(pair)
            if len(members) <= settings.max_group_members:
                target_id = group_id
                break

        if target_id is None:
            if candidates:
                logger.warning(
                    f"Skipping shared-profile link of {approver_id} and {other_id}: "
                    f"no group fits within {settings.max_group_members} members"
                )
                return None
            target_id = self.groups.create_group(approver_id)

        for user_id in pair:
            current = active.get(user_id)
            if current and current != target_id:
                self.groups.set_membership_status(current, user_id, MEMBER_LEFT)
            self.groups.activate_membership(target_id, user_id)
        self.groups.activate_group(target_id)
        logger.info(f"Linked {approver_id} and {other_id} in shared profile {target_id}")
        return target_id

    # Helpers

    def _load(self, table: str, row_id: str, not_found: str) -> dict:
        try:
            result = self.supabase.table(table)\
                .select("*")\
                .eq("id", row_id)\
                .limit(1)\
                .execute()
        except Exception as e:
            raise TransientStoreError(str(e))
        if not result.data:
            raise NotFoundError(not_found)
        return result.data[0]

    def _load_apartment(self, apartment_id: Optional[str]) -> ApartmentResponse:
        if not apartment_id:
            raise NotFoundError("Apartment not found")
        try:
            apartment = self.apartments.get_apartment(apartment_id)
        except Exception as e:
            raise TransientStoreError(str(e))
        if apartment is None:
            raise NotFoundError("Apartment not found")
        return apartment

    def _ensure_match_recipient(self, match: dict, acting_user_id: str) -> None:
        if match.get("receiver_id") == acting_user_id:
            return
        group_id = match.get("receiver_group_id")
        if group_id:
            try:
                if acting_user_id in self.groups.get_active_members(group_id):
                    return
            except Exception as e:
                raise TransientStoreError(str(e))
        raise ForbiddenError("Only the addressed party can respond to this match")

    @staticmethod
    def _ensure_transition(kind: RequestKind, raw_status: Optional[str], target: SharedStatus) -> None:
        """PENDING moves anywhere; repeating the current status is allowed as a retry"""
        current = normalize_status(kind, raw_status)
        if current not in (SharedStatus.PENDING, target):
            raise ConflictError(f"Request is already {current.value}")

    def _set_status(self, table: str, row_id: str, status: SharedStatus) -> None:
        try:
            self.supabase.table(table)\
                .update({"status": status.value, "updated_at": utcnow_iso()})\
                .eq("id", row_id)\
                .execute()
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Failed to set {table} {row_id} to {status.value}: {e}")
            raise TransientStoreError(str(e))

    def _notify(
        self,
        result: ApprovalResult,
        sender_id: str,
        recipient_id: str,
        message: Tuple[str, str],
        event_key: str,
    ) -> None:
        title, description = message
        try:
            self.notifications.send_once(sender_id, recipient_id, title, description, event_key)
        except Exception as e:
            self._mark_partial(result, "notify", e)

    @staticmethod
    def _mark_partial(result: ApprovalResult, step: str, error: Exception) -> None:
        logger.warning(f"{result.kind.value} {result.id}: step {step} failed: {error}")
        result.partial = True
        result.failed_steps.append(step)
