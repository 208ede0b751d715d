# Users Feature - Service

from typing import Dict, Iterable, Optional
from bson import ObjectId
from app.features.users.models import User, UserRole
from app.features.users.schemas import ParticipantInfo


class UserService:
    """Read access to the shared user store."""

    @staticmethod
    async def get_user(user_id: str) -> Optional[User]:
        """Get a user by id, or None for unknown or malformed ids."""
        if not user_id or not ObjectId.is_valid(user_id):
            return None
        return await User.get(ObjectId(user_id))

    @staticmethod
    async def get_users(user_ids: Iterable[str]) -> Dict[str, User]:
        """Get several users at once, keyed by id."""
        object_ids = [ObjectId(uid) for uid in set(user_ids) if uid and ObjectId.is_valid(uid)]
        if not object_ids:
            return {}

        users = await User.find({"_id": {"$in": object_ids}}).to_list()
        return {str(user.id): user for user in users}

    @staticmethod
    def is_contactable(user: Optional[User], role: UserRole) -> bool:
        """
        Check whether a user can be the counterpart of a conversation.

        Therapists must additionally be approved by an admin.
        """
        if not user or not user.is_active or user.role != role:
            return False
        if role == UserRole.THERAPIST and not user.is_approved:
            return False
        return True

    @staticmethod
    def participant_info(user_id: str, user: Optional[User]) -> ParticipantInfo:
        """Build the public profile shown next to a conversation or message."""
        if not user:
            return ParticipantInfo(id=user_id, name="Unknown user")

        if user.role == UserRole.THERAPIST:
            specialty = user.specialty or "General Practice"
        elif user.role == UserRole.ADMIN:
            specialty = "Admin Support"
        else:
            specialty = "Patient"

        return ParticipantInfo(
            id=user_id,
            name=user.name,
            role=user.role,
            avatar_url=user.avatar_url,
            specialty=specialty,
        )
