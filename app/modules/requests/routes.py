from fastapi import APIRouter, Depends
from app.database.supabase_client import get_supabase
from app.modules.requests.schemas import (
    ApprovalResult, InboxTab, KindFilter, StatusFilter, UnifiedRequest
)
from app.modules.requests.service import RequestService
from app.modules.requests.approval_service import ApprovalService
from app.core.dependencies import get_current_user_id
from supabase import Client
from typing import List, Dict

router = APIRouter(prefix="/requests", tags=["requests"])


def get_request_service(supabase: Client = Depends(get_supabase)) -> RequestService:
    return RequestService(supabase)


def get_approval_service(supabase: Client = Depends(get_supabase)) -> ApprovalService:
    return ApprovalService(supabase)


@router.get("", response_model=List[UnifiedRequest])
async def list_requests(
    tab: InboxTab = InboxTab.INCOMING,
    kind: KindFilter = "ALL",
    status: StatusFilter = "ALL",
    current_user: Dict = Depends(get_current_user_id),
    service: RequestService = Depends(get_request_service)
):
    """Unified inbox: apartment requests, matches and merge invites, newest first"""
    return service.list_requests(current_user["id"], tab=tab, kind=kind, status=status)


@router.post("/apartments/{request_id}/approve", response_model=ApprovalResult)
async def approve_apartment_request(
    request_id: str,
    current_user: Dict = Depends(get_current_user_id),
    service: ApprovalService = Depends(get_approval_service)
):
    """Approve a join request or an apartment invite (recipient only)"""
    return service.approve_apartment_request(request_id, current_user["id"])


@router.post("/apartments/{request_id}/reject", response_model=ApprovalResult)
async def reject_apartment_request(
    request_id: str,
    current_user: Dict = Depends(get_current_user_id),
    service: ApprovalService = Depends(get_approval_service)
):
    return service.reject_apartment_request(request_id, current_user["id"])


@router.post("/apartments/{request_id}/cancel", response_model=ApprovalResult)
async def cancel_apartment_request(
    request_id: str,
    current_user: Dict = Depends(get_current_user_id),
    service: ApprovalService = Depends(get_approval_service)
):
    """Withdraw a request you sent"""
    return service.cancel_apartment_request(request_id, current_user["id"])


@router.post("/matches/{match_id}/approve", response_model=ApprovalResult)
async def approve_match(
    match_id: str,
    current_user: Dict = Depends(get_current_user_id),
    service: ApprovalService = Depends(get_approval_service)
):
    return service.approve_match(match_id, current_user["id"])


@router.post("/matches/{match_id}/reject", response_model=ApprovalResult)
async def reject_match(
    match_id: str,
    current_user: Dict = Depends(get_current_user_id),
    service: ApprovalService = Depends(get_approval_service)
):
    return service.reject_match(match_id, current_user["id"])
