"""
Notification-related Pydantic schemas.
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class NotificationResponse(BaseModel):
    """Full notification response for API."""

    id: int
    user_uid: str
    type: str  # NotificationType enum value
    title: str
    body: str
    item_id: Optional[int] = None
    conversation_id: Optional[int] = None
    purchase_id: Optional[int] = None
    read_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class NotificationList(BaseModel):
    """Notification page with the unread total."""

    items: list[NotificationResponse]
    unread_count: int


class MarkReadResponse(BaseModel):
    updated: int
