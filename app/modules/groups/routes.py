from fastapi import APIRouter, Depends
from app.database.supabase_client import get_supabase
from app.modules.groups.schemas import (
    GroupInviteCreate, GroupInviteResponse, GroupWithMembersResponse, MergeResult
)
from app.modules.groups.merge_service import MergeService
from app.modules.groups.service import GroupService
from app.core.dependencies import get_current_user_id
from supabase import Client
from typing import List, Dict

router = APIRouter(prefix="/groups", tags=["groups"])


def get_group_service(supabase: Client = Depends(get_supabase)) -> GroupService:
    return GroupService(supabase)


def get_merge_service(supabase: Client = Depends(get_supabase)) -> MergeService:
    return MergeService(supabase)


@router.post("/invites", response_model=GroupInviteResponse, status_code=201)
async def send_invite(
    invite_data: GroupInviteCreate,
    current_user: Dict = Depends(get_current_user_id),
    service: MergeService = Depends(get_merge_service)
):
    """Invite another user to merge into a shared profile"""
    return service.send_invite(current_user["id"], invite_data.invitee_id)


@router.post("/invites/{invite_id}/accept", response_model=MergeResult)
async def accept_invite(
    invite_id: str,
    current_user: Dict = Depends(get_current_user_id),
    service: MergeService = Depends(get_merge_service)
):
    """Accept a merge invite (only the invitee)"""
    return service.accept_invite(invite_id, current_user["id"])


@router.post("/invites/{invite_id}/decline", response_model=MergeResult)
async def decline_invite(
    invite_id: str,
    current_user: Dict = Depends(get_current_user_id),
    service: MergeService = Depends(get_merge_service)
):
    return service.reject_invite(invite_id, current_user["id"])


@router.get("/me", response_model=List[GroupWithMembersResponse])
async def list_my_groups(
    current_user: Dict = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service)
):
    """Shared profiles the current user is an active member of"""
    return service.list_user_groups(current_user["id"])


@router.post("/{group_id}/leave", status_code=204)
async def leave_group(
    group_id: str,
    current_user: Dict = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service)
):
    """Leave a shared profile"""
    service.leave_group(group_id, current_user["id"])
    return None
