from pydantic import BaseModel
from typing import Optional, List, Literal
from datetime import datetime

from app.modules.users.schemas import UserSummary


class GroupWithMembersResponse(BaseModel):
    id: str
    name: str
    status: str
    members: List[UserSummary]  # ACTIVE members only

    class Config:
        from_attributes = True


class GroupInviteCreate(BaseModel):
    invitee_id: str


class GroupInviteResponse(BaseModel):
    id: str
    group_id: str
    inviter_id: str
    invitee_id: str
    status: Literal["PENDING", "ACCEPTED", "DECLINED"]
    created_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class MergeResult(BaseModel):
    invite_id: str
    status: Literal["ACCEPTED", "DECLINED"]
    # none | joined_approver_group | joined_inviter_group | created | merged | already_merged | resumed
    scenario: str
    group_id: Optional[str] = None
    member_ids: List[str] = []
