from pydantic import BaseModel
from typing import Optional


class UserSummary(BaseModel):
    id: str
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    phone: Optional[str] = None

    class Config:
        from_attributes = True


class UserResponse(UserSummary):
    role: Optional[str] = None
