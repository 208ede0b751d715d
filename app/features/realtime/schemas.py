# Realtime Feature - Schemas

from pydantic import BaseModel


class PresenceResponse(BaseModel):
    """Whether a user has at least one authenticated connection."""
    user_id: str
    is_online: bool
    connections: int = 0
