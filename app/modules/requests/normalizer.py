"""
Turns raw apartments_request / matches / profile_group_invites rows into
UnifiedRequest items.

The builders here are the only place these items are constructed, so the
status vocabulary of every source table is mapped to SharedStatus exactly once.
"""

from app.modules.requests.models import REQUEST_TYPE_INVITE
from app.modules.requests.schemas import (
    RequestKind, SharedStatus, ApartmentRequestItem, MatchItem, GroupInviteItem,
)
from typing import Dict, Iterable, List, Optional

_BASE_VOCABULARY: Dict[str, SharedStatus] = {
    "PENDING": SharedStatus.PENDING,
    "WAITING": SharedStatus.PENDING,
    "ממתין": SharedStatus.PENDING,
    "APPROVED": SharedStatus.APPROVED,
    "ACCEPTED": SharedStatus.APPROVED,
    "CONFIRMED": SharedStatus.APPROVED,
    "אושר": SharedStatus.APPROVED,
    "REJECTED": SharedStatus.REJECTED,
    "DECLINED": SharedStatus.REJECTED,
    "DENIED": SharedStatus.REJECTED,
    "נדחה": SharedStatus.REJECTED,
    "CANCELLED": SharedStatus.CANCELLED,
    "CANCELED": SharedStatus.CANCELLED,
    "בוטל": SharedStatus.CANCELLED,
    "NOT_RELEVANT": SharedStatus.NOT_RELEVANT,
    "IRRELEVANT": SharedStatus.NOT_RELEVANT,
    "EXPIRED": SharedStatus.NOT_RELEVANT,
    "לא רלוונטי": SharedStatus.NOT_RELEVANT,
}

STATUS_VOCABULARY: Dict[RequestKind, Dict[str, SharedStatus]] = {
    RequestKind.APT: _BASE_VOCABULARY,
    RequestKind.APT_INVITE: _BASE_VOCABULARY,
    RequestKind.MATCH: _BASE_VOCABULARY,
    RequestKind.GROUP: {**_BASE_VOCABULARY, "ACCEPT": SharedStatus.APPROVED},
}


def normalize_status(kind: RequestKind, raw: Optional[str]) -> SharedStatus:
    """Map a source status (any case, English or Hebrew) to SharedStatus; unknown -> PENDING"""
    if raw is None:
        return SharedStatus.PENDING
    key = str(raw).strip().upper()
    return STATUS_VOCABULARY[RequestKind(kind)].get(key, SharedStatus.PENDING)


def apartment_kind(request_type: Optional[str]) -> RequestKind:
    if (request_type or "").strip().upper() == REQUEST_TYPE_INVITE:
        return RequestKind.APT_INVITE
    return RequestKind.APT


def from_apartment_request(row: dict) -> ApartmentRequestItem:
    kind = apartment_kind(row.get("type"))
    return ApartmentRequestItem(
        kind=kind.value,
        id=row["id"],
        sender_id=row["sender_id"],
        recipient_id=row.get("recipient_id"),
        apartment_id=row.get("apartment_id"),
        type=row.get("type"),
        status=normalize_status(kind, row.get("status")),
        created_at=row.get("created_at"),
    )


def from_match(row: dict) -> MatchItem:
    return MatchItem(
        kind=RequestKind.MATCH.value,
        id=row["id"],
        sender_id=row["sender_id"],
        recipient_id=row.get("receiver_id"),
        receiver_group_id=row.get("receiver_group_id"),
        display_group_id=row.get("receiver_group_id"),
        status=normalize_status(RequestKind.MATCH, row.get("status")),
        created_at=row.get("created_at"),
    )


def from_group_invite(row: dict) -> GroupInviteItem:
    return GroupInviteItem(
        kind=RequestKind.GROUP.value,
        id=row["id"],
        sender_id=row["inviter_id"],
        recipient_id=row.get("invitee_id"),
        group_id=row.get("group_id"),
        display_group_id=row.get("group_id"),
        status=normalize_status(RequestKind.GROUP, row.get("status")),
        created_at=row.get("created_at"),
    )


def representative_member(members: List[str], acting_user_id: Optional[str]) -> Optional[str]:
    """Pick who a group-targeted match is shown as addressed to"""
    for uid in members:
        if uid != acting_user_id:
            return uid
    return members[0] if members else None


def dedupe_and_sort(items: Iterable) -> list:
    """Drop repeated (kind, id) pairs and order newest first; undated items go last"""
    unique = {}
    for item in items:
        unique.setdefault((item.kind, item.id), item)
    return sorted(
        unique.values(),
        key=lambda item: item.created_at.timestamp() if item.created_at else float("-inf"),
        reverse=True,
    )


def filter_requests(items: list, kind: str = "ALL", status: str = "ALL") -> list:
    kind = (kind or "ALL").upper()
    status = (status or "ALL").upper()
    return [
        item for item in items
        if (kind == "ALL" or item.kind == kind)
        and (status == "ALL" or item.status.value == status)
    ]
