# Messages Feature - Schemas

from typing import Optional, List, Literal
from datetime import datetime
from pydantic import BaseModel, Field
from app.features.messages.models import MessageKind
from app.features.users.models import UserRole


class MessageCreate(BaseModel):
    """Request schema for sending a message."""
    content: str = Field(..., max_length=5000)
    kind: Literal["text", "file"] = "text"


class MessageResponse(BaseModel):
    """Response schema for a message."""
    id: str
    conversation_id: str
    sender_id: str
    sender_name: Optional[str] = None
    sender_role: Optional[UserRole] = None
    content: str
    kind: MessageKind
    is_read: bool = False
    read_at: Optional[datetime] = None
    created_at: datetime


class MessageListResponse(BaseModel):
    """Response schema for list of messages."""
    messages: List[MessageResponse]
    total: int
    has_more: bool


class UnreadCountResponse(BaseModel):
    unread_count: int


# ============== Socket.IO Event Schemas ==============

class SocketMessageEvent(BaseModel):
    """Schema for new_message socket event."""
    message: MessageResponse
    conversation_id: str


class SocketReadEvent(BaseModel):
    """Schema for messages_read socket event."""
    conversation_id: str
    read_by: str
    count: int
    read_at: datetime
