"""
Error taxonomy shared by the group and request services.

Every error is an HTTPException so routes can let it propagate unchanged.
NotFound/Forbidden/CapacityExceeded/Conflict/InvalidRequest are terminal user-facing
outcomes; TransientStoreError marks a failed store call on an authoritative step,
which is safe to retry because every write in the services is idempotent.
"""

from fastapi import HTTPException, status
from typing import Optional


class ServiceError(HTTPException):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "error"
    default_detail: str = "Request failed"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(status_code=self.status_code, detail=detail or self.default_detail)


class NotFoundError(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
    default_detail = "Not found"


class ForbiddenError(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"
    default_detail = "You are not the addressed party of this request"


class ConflictError(ServiceError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"
    default_detail = "Conflicting request"


class CapacityExceededError(ConflictError):
    code = "capacity_exceeded"
    default_detail = "Shared profile is full"

    def __init__(self, member_count: int, max_members: int):
        super().__init__(
            f"Merging would create a shared profile of {member_count} members (max {max_members})"
        )
        self.member_count = member_count
        self.max_members = max_members


class InvalidRequestError(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "invalid_request"
    default_detail = "Invalid request"


class TransientStoreError(ServiceError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "store_unavailable"
    default_detail = "Data store unavailable, please retry"


def is_unique_violation(exc: Exception) -> bool:
    """True for a PostgREST error raised by a unique constraint (Postgres 23505)."""
    return getattr(exc, "code", None) == "23505" or "duplicate key" in str(exc).lower()
