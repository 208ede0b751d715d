# Realtime Feature - Router

from fastapi import APIRouter, Depends
from app.features.realtime.presence import presence
from app.features.realtime.schemas import PresenceResponse
from app.features.users.dependencies import get_current_user
from app.features.users.models import User


router = APIRouter(prefix="/presence", tags=["Presence"])


@router.get("/{user_id}", response_model=PresenceResponse)
async def get_presence(
    user_id: str,
    current_user: User = Depends(get_current_user)
):
    """Presence is advisory: it only reflects connections to this process."""
    return PresenceResponse(
        user_id=user_id,
        is_online=presence.is_online(user_id),
        connections=len(presence.connections_of(user_id)),
    )
