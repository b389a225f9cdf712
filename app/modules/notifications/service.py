from supabase import Client
from app.modules.notifications.models import METADATA_SEPARATOR, EVENT_KEY_PREFIX
from app.modules.notifications.schemas import NotificationCreate, NotificationResponse
from typing import Optional
import logging

logger = logging.getLogger(__name__)


def with_event_key(description: str, event_key: str) -> str:
    """Append EVENT_KEY:<key> to the description's metadata block (once)"""
    base = (description or "").rstrip()
    key = (event_key or "").strip()
    if not key or f"{EVENT_KEY_PREFIX}{key}" in base:
        return base
    if METADATA_SEPARATOR.strip() in base:
        return f"{base}\n{EVENT_KEY_PREFIX}{key}"
    return f"{base}{METADATA_SEPARATOR}{EVENT_KEY_PREFIX}{key}"


class NotificationService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def send(self, sender_id: str, recipient_id: str, title: str, description: str) -> Optional[NotificationResponse]:
        """Persist a notification for the recipient"""
        payload = NotificationCreate(
            sender_id=sender_id,
            recipient_id=recipient_id,
            title=title,
            description=description,
        )
        result = self.supabase.table("notifications").insert(payload.model_dump()).execute()
        if not result.data:
            return None
        return NotificationResponse(**result.data[0])

    def send_once(
        self,
        sender_id: str,
        recipient_id: str,
        title: str,
        description: str,
        event_key: str
    ) -> Optional[NotificationResponse]:
        """
        Insert a notification unless one with the same event key already exists
        for this sender/recipient pair. Returns None when skipped.

        A failed lookup still inserts: a duplicate notification is preferred
        over a lost one.
        """
        key = (event_key or "").strip()
        if not key or not sender_id or not recipient_id:
            return self.send(sender_id, recipient_id, title, description)

        try:
            existing = self.supabase.table("notifications")\
                .select("id")\
                .eq("recipient_id", recipient_id)\
                .eq("sender_id", sender_id)\
                .ilike("description", f"%{EVENT_KEY_PREFIX}{key}%")\
                .limit(1)\
                .execute()
            if existing.data:
                logger.debug(f"Notification {key} already sent to {recipient_id}")
                return None
        except Exception as e:
            logger.warning(f"Notification dedupe lookup failed for {key}: {e}")

        return self.send(sender_id, recipient_id, title, with_event_key(description, key))
