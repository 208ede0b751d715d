# Users Feature - Models

from enum import Enum
from typing import Optional
from beanie import Document, Indexed
from pydantic import EmailStr
from app.shared.models import TimestampMixin


class UserRole(str, Enum):
    PATIENT = "patient"
    THERAPIST = "therapist"
    ADMIN = "admin"


class User(Document, TimestampMixin):
    """
    User document model.
    Accounts are created and approved by the main CalmTunes application;
    this service only reads them to validate counterparts and to attribute
    senders.
    """

    email: Indexed(EmailStr, unique=True)
    name: str
    role: UserRole = UserRole.PATIENT

    # Account status
    is_active: bool = True

    # Therapists can only be contacted once an admin approved their application
    is_approved: bool = False

    # Profile
    avatar_url: Optional[str] = None
    specialty: Optional[str] = None

    # Notification preferences
    notifications_enabled: bool = True

    class Settings:
        name = "users"
        use_state_management = True

    class Config:
        json_schema_extra = {
            "example": {
                "email": "therapist@calmtunes.app",
                "name": "Dr. Maya Collins",
                "role": "therapist",
                "is_approved": True,
                "specialty": "Anxiety and depression",
            }
        }
