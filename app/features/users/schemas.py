# Users Feature - Schemas

from typing import Optional
from pydantic import BaseModel
from app.features.users.models import UserRole


class ParticipantInfo(BaseModel):
    """Public profile of a conversation participant."""
    id: str
    name: str
    role: Optional[UserRole] = None
    avatar_url: Optional[str] = None
    specialty: Optional[str] = None
    is_online: bool = False
