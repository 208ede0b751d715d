# Conversations Feature - Models

from enum import Enum
from typing import Iterable, List, Optional
from datetime import datetime
from beanie import Document
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, IndexModel
from app.features.users.models import UserRole
from app.shared.models import TimestampMixin


class ConversationKind(str, Enum):
    REGULAR = "regular"
    ADMIN_SUPPORT = "admin-support"


class ConversationStatus(str, Enum):
    ACTIVE = "active"
    CLOSED = "closed"


class Participant(BaseModel):
    """One side of a conversation."""
    user_id: str
    role: UserRole


def make_participant_key(user_ids: Iterable[str]) -> str:
    """Canonical key for an unordered pair of user ids."""
    return "|".join(sorted(user_ids))


class Conversation(Document, TimestampMixin):
    """
    Conversation document model.
    A thread between exactly two users: a patient and a therapist
    (kind "regular"), or an admin and a patient or therapist
    (kind "admin-support").

    At most one active conversation exists per participant pair and kind,
    enforced by a partial unique index. Closed conversations are kept
    forever; talking again after a close starts a new conversation.
    """

    participants: List[Participant]

    # Both user ids, for membership queries
    participant_ids: List[str]

    # Unordered pair key, see make_participant_key
    participant_key: str

    kind: ConversationKind = ConversationKind.REGULAR
    status: ConversationStatus = ConversationStatus.ACTIVE

    # Closure details, only set once status is "closed"
    closed_at: Optional[datetime] = None
    closed_by: Optional[str] = None
    closure_reason: Optional[str] = None

    class Settings:
        name = "conversations"
        use_state_management = True
        indexes = [
            IndexModel(
                [("participant_key", ASCENDING), ("kind", ASCENDING)],
                name="uniq_active_pair_kind",
                unique=True,
                partialFilterExpression={"status": ConversationStatus.ACTIVE.value},
            ),
            IndexModel(
                [("participant_ids", ASCENDING), ("status", ASCENDING), ("updated_at", DESCENDING)],
                name="participant_activity",
            ),
        ]

    class Config:
        json_schema_extra = {
            "example": {
                "participants": [
                    {"user_id": "665f1c2e9b1e8a0012345671", "role": "patient"},
                    {"user_id": "665f1c2e9b1e8a0012345672", "role": "therapist"},
                ],
                "kind": "regular",
                "status": "active",
            }
        }

    @property
    def is_active(self) -> bool:
        return self.status == ConversationStatus.ACTIVE

    def has_participant(self, user_id: str) -> bool:
        return user_id in self.participant_ids

    def role_of(self, user_id: str) -> Optional[UserRole]:
        for participant in self.participants:
            if participant.user_id == user_id:
                return participant.role
        return None

    def other_participant_ids(self, user_id: str) -> List[str]:
        """Ids of everyone in the conversation except user_id."""
        return [uid for uid in self.participant_ids if uid != user_id]
