# Conversations Feature - Schemas

from typing import Optional, List
from datetime import datetime
from pydantic import BaseModel, Field
from app.features.conversations.models import ConversationKind, ConversationStatus
from app.features.messages.models import MessageKind
from app.features.users.schemas import ParticipantInfo


class ConversationStartRequest(BaseModel):
    """Request schema for starting (or resuming) a conversation."""
    counterpart_id: str
    kind: ConversationKind = ConversationKind.REGULAR
    initial_message: Optional[str] = Field(None, max_length=5000)

    class Config:
        json_schema_extra = {
            "example": {
                "counterpart_id": "665f1c2e9b1e8a0012345672",
                "kind": "regular"
            }
        }


class ConversationStartResponse(BaseModel):
    conversation_id: str
    created: bool
    message: str


class CloseConversationRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class LastMessage(BaseModel):
    """Preview of the most recent message in a conversation."""
    content: str
    sender_id: str
    kind: MessageKind
    created_at: datetime


class ConversationSummary(BaseModel):
    """One entry of the conversation list."""
    id: str
    kind: ConversationKind
    status: ConversationStatus
    other_participant: ParticipantInfo
    last_message: Optional[LastMessage] = None
    unread_count: int = 0
    created_at: datetime
    updated_at: datetime


class ConversationListResponse(BaseModel):
    conversations: List[ConversationSummary]
    total: int


class ConversationResponse(BaseModel):
    """Response schema for a single conversation."""
    id: str
    kind: ConversationKind
    status: ConversationStatus
    participant_ids: List[str]
    closed_at: Optional[datetime] = None
    closed_by: Optional[str] = None
    closure_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ConversationPresenceResponse(BaseModel):
    """Which participants of a conversation are online."""
    conversation_id: str
    online_user_ids: List[str]
