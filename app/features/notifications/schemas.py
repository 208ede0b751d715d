# Notifications Feature - Schemas

from typing import Any, Dict, List, Optional
from datetime import datetime
from pydantic import BaseModel


class NotificationResponse(BaseModel):
    """Response schema for a notification."""
    id: str
    type: str
    title: str
    message: str
    data: Dict[str, Any] = {}
    is_read: bool = False
    read_at: Optional[datetime] = None
    created_at: datetime


class NotificationListResponse(BaseModel):
    """Response schema for list of notifications."""
    notifications: List[NotificationResponse]
    unread_count: int = 0


class UnreadCountResponse(BaseModel):
    unread_count: int


# ============== Push Subscription Schemas ==============

class PushSubscriptionKeys(BaseModel):
    """Push subscription keys."""
    p256dh: str
    auth: str


class PushSubscriptionRequest(BaseModel):
    """Request schema for push subscription."""
    endpoint: str
    keys: PushSubscriptionKeys


class PushUnsubscribeRequest(BaseModel):
    endpoint: str
