# Messages Feature - Models

from enum import Enum
from typing import Optional
from datetime import datetime
from beanie import Document, Indexed
from pymongo import ASCENDING, IndexModel
from app.features.users.models import UserRole
from app.shared.models import TimestampMixin


class MessageKind(str, Enum):
    TEXT = "text"
    SYSTEM = "system"
    FILE = "file"


class Message(Document, TimestampMixin):
    """
    Message document model.
    Represents a single message in a conversation. Messages are append-only;
    only the read flag changes after insert.
    """

    # Reference to the conversation
    conversation_id: Indexed(str)

    # Sender information
    sender_id: str
    sender_role: Optional[UserRole] = None

    # Message content, trimmed and non-empty
    content: str
    kind: MessageKind = MessageKind.TEXT

    # Read status, set when the recipient fetches the conversation
    is_read: bool = False
    read_at: Optional[datetime] = None

    class Settings:
        name = "messages"
        use_state_management = True
        indexes = [
            # Fetching messages in a conversation, oldest first
            IndexModel(
                [("conversation_id", ASCENDING), ("created_at", ASCENDING), ("_id", ASCENDING)],
                name="conversation_timeline",
            ),
            # Unread counts
            IndexModel(
                [("conversation_id", ASCENDING), ("is_read", ASCENDING), ("sender_id", ASCENDING)],
                name="conversation_unread",
            ),
        ]

    class Config:
        json_schema_extra = {
            "example": {
                "conversation_id": "665f1c2e9b1e8a0012345680",
                "sender_id": "665f1c2e9b1e8a0012345671",
                "sender_role": "patient",
                "content": "Hello, I'd like to talk about last week.",
                "kind": "text",
                "is_read": False,
            }
        }
