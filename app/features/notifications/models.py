# Notifications Feature - Models

from typing import Any, Dict, Optional
from datetime import datetime
from beanie import Document, Indexed
from pydantic import Field
from pymongo import ASCENDING, DESCENDING, IndexModel
from app.shared.models import TimestampMixin


class Notification(Document, TimestampMixin):
    """
    Notification document model.
    Created as a side effect of state-changing events. Immutable after
    insert except for the read flag.
    """

    # Owner
    user_id: Indexed(str)

    # Tag describing the triggering event, e.g. "new_message"
    type: str
    title: str
    message: str

    # Event-specific correlation data, e.g. {"conversation_id": "..."}
    data: Dict[str, Any] = Field(default_factory=dict)

    is_read: bool = False
    read_at: Optional[datetime] = None

    class Settings:
        name = "notifications"
        use_state_management = True
        indexes = [
            IndexModel([("user_id", ASCENDING), ("created_at", DESCENDING)], name="user_recent"),
        ]

    class Config:
        json_schema_extra = {
            "example": {
                "user_id": "665f1c2e9b1e8a0012345672",
                "type": "new_message",
                "title": "New Message",
                "message": "Sam: Hello, I'd like to talk about last week.",
                "data": {"conversation_id": "665f1c2e9b1e8a0012345680"},
                "is_read": False,
            }
        }


class PushSubscription(Document, TimestampMixin):
    """
    Push notification subscription document model.
    Stores Web Push API subscriptions; a user may have one per device.
    """

    user_id: Indexed(str)

    # Push subscription data
    endpoint: str
    p256dh: str  # Public key
    auth: str  # Auth secret

    # Status
    is_active: bool = True

    class Settings:
        name = "push_subscriptions"
        use_state_management = True
        indexes = [
            [("endpoint", 1)],
        ]
