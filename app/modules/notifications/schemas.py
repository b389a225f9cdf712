from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class NotificationCreate(BaseModel):
    sender_id: str
    recipient_id: str
    title: str
    description: str
    is_read: bool = False


class NotificationResponse(BaseModel):
    id: str
    sender_id: str
    recipient_id: str
    title: str
    description: str
    is_read: bool = False
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
