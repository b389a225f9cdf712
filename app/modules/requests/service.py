from supabase import Client
from app.core.errors import TransientStoreError
from app.modules.groups.models import MEMBER_ACTIVE
from app.modules.groups.service import GroupService
from app.modules.requests import normalizer
from app.modules.requests.schemas import InboxTab, RequestInbox, SharedStatus
from typing import Dict, List
from fastapi import HTTPException
import logging

logger = logging.getLogger(__name__)


class RequestService:
    """
    Read side of the unified request inbox.

    Fetches every request kind in both directions, normalizes them into one
    tagged list and enriches each item with the counterparty's shared profile.
    Failures of the primary fetches surface as TransientStoreError; enrichment
    failures only drop the extra fields.
    """

    def __init__(self, supabase: Client):
        self.supabase = supabase
        self.groups = GroupService(supabase)

    def fetch_inbox(self, user_id: str) -> RequestInbox:
        try:
            my_group_ids = self._my_group_ids(user_id)

            incoming = [normalizer.from_apartment_request(r) for r in self._rows("apartments_request", "recipient_id", user_id)]
            incoming += [normalizer.from_match(r) for r in self._rows("matches", "receiver_id", user_id)]
            if my_group_ids:
                group_matches = self.supabase.table("matches")\
                    .select("*")\
                    .in_("receiver_group_id", my_group_ids)\
                    .execute()
                incoming += [normalizer.from_match(r) for r in (group_matches.data or [])]
            incoming += [normalizer.from_group_invite(r) for r in self._rows("profile_group_invites", "invitee_id", user_id)]

            sent = [normalizer.from_apartment_request(r) for r in self._rows("apartments_request", "sender_id", user_id)]
            sent += [normalizer.from_match(r) for r in self._rows("matches", "sender_id", user_id)]
            sent += [normalizer.from_group_invite(r) for r in self._rows("profile_group_invites", "inviter_id", user_id)]
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Failed to fetch requests for user {user_id}: {e}")
            raise TransientStoreError(str(e))

        incoming = self._visible(incoming)
        sent = self._visible(sent)

        self._resolve_group_recipients(incoming + sent, user_id)
        self._enrich(incoming, counterparty="sender_id")
        self._enrich(sent, counterparty="recipient_id")

        logger.debug(f"Inbox for {user_id}: {len(incoming)} incoming, {len(sent)} sent")
        return RequestInbox(incoming=incoming, sent=sent)

    def list_requests(self, user_id: str, tab: InboxTab = InboxTab.INCOMING, kind: str = "ALL", status: str = "ALL") -> list:
        inbox = self.fetch_inbox(user_id)
        items = inbox.sent if InboxTab(tab) == InboxTab.SENT else inbox.incoming
        return normalizer.filter_requests(items, kind=kind, status=status)

    def _rows(self, table: str, column: str, user_id: str) -> List[dict]:
        result = self.supabase.table(table)\
            .select("*")\
            .eq(column, user_id)\
            .execute()
        return result.data or []

    def _my_group_ids(self, user_id: str) -> List[str]:
        result = self.supabase.table("profile_group_members")\
            .select("group_id")\
            .eq("user_id", user_id)\
            .eq("status", MEMBER_ACTIVE)\
            .execute()
        return list(dict.fromkeys(row["group_id"] for row in (result.data or []) if row.get("group_id")))

    @staticmethod
    def _visible(items: list) -> list:
        return normalizer.dedupe_and_sort(
            item for item in items if item.status != SharedStatus.NOT_RELEVANT
        )

    def _resolve_group_recipients(self, items: list, acting_user_id: str) -> None:
        """Fill a display recipient for matches addressed to a shared profile (never persisted)"""
        targeted = [
            item for item in items
            if item.kind == "MATCH" and not item.recipient_id and item.receiver_group_id
        ]
        if not targeted:
            return
        try:
            members = self.groups.get_active_members_for_groups([item.receiver_group_id for item in targeted])
        except Exception as e:
            logger.warning(f"Could not resolve group-targeted match recipients: {e}")
            return
        for item in targeted:
            item.recipient_id = normalizer.representative_member(
                members.get(item.receiver_group_id, []), acting_user_id
            )

    def _enrich(self, items: list, counterparty: str) -> None:
        user_ids = [getattr(item, counterparty) for item in items if getattr(item, counterparty)]
        if not user_ids:
            return
        try:
            groups_by_user: Dict[str, str] = self.groups.get_active_groups_for_users(user_ids)
            members_by_group = self.groups.get_active_members_for_groups(list(groups_by_user.values()))
        except Exception as e:
            logger.warning(f"Request enrichment failed: {e}")
            return
        for item in items:
            group_id = groups_by_user.get(getattr(item, counterparty))
            if not group_id:
                continue
            item.counterparty_group_id = group_id
            item.counterparty_group_members = members_by_group.get(group_id, [])
            if not item.display_group_id:
                item.display_group_id = group_id
