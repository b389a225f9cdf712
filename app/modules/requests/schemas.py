from pydantic import BaseModel, Field
from typing import Annotated, Optional, List, Literal, Union
from datetime import datetime
from enum import Enum


class RequestKind(str, Enum):
    APT = "APT"
    APT_INVITE = "APT_INVITE"
    MATCH = "MATCH"
    GROUP = "GROUP"


class SharedStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"
    NOT_RELEVANT = "NOT_RELEVANT"


class InboxTab(str, Enum):
    INCOMING = "incoming"
    SENT = "sent"


KindFilter = Literal["APT", "APT_INVITE", "MATCH", "GROUP", "ALL"]
StatusFilter = Literal["ALL", "PENDING", "APPROVED", "REJECTED", "CANCELLED", "NOT_RELEVANT"]


class UnifiedRequestBase(BaseModel):
    id: str
    sender_id: str
    # For a group-targeted match this is a display-only representative member
    recipient_id: Optional[str] = None
    status: SharedStatus
    created_at: Optional[datetime] = None
    display_group_id: Optional[str] = None
    counterparty_group_id: Optional[str] = None
    counterparty_group_members: List[str] = []


class ApartmentRequestItem(UnifiedRequestBase):
    kind: Literal["APT", "APT_INVITE"]
    apartment_id: Optional[str] = None
    type: Optional[str] = None


class MatchItem(UnifiedRequestBase):
    kind: Literal["MATCH"]
    receiver_group_id: Optional[str] = None


class GroupInviteItem(UnifiedRequestBase):
    kind: Literal["GROUP"]
    group_id: Optional[str] = None


UnifiedRequest = Annotated[
    Union[ApartmentRequestItem, MatchItem, GroupInviteItem],
    Field(discriminator="kind"),
]


class RequestInbox(BaseModel):
    incoming: List[UnifiedRequest] = []
    sent: List[UnifiedRequest] = []


class ApprovalResult(BaseModel):
    id: str
    kind: RequestKind
    status: SharedStatus
    partner_added: Optional[str] = None
    group_id: Optional[str] = None
    # True when the status changed but a follow-up step failed (safe to retry)
    partial: bool = False
    failed_steps: List[str] = []
    # Parallel INVITE_APT rows approved along with this one for the same shared profile
    related_request_ids: List[str] = []
