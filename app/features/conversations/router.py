# Conversations Feature - Router

from typing import Optional
from fastapi import APIRouter, Depends
from app.features.conversations.schemas import (
    CloseConversationRequest,
    ConversationListResponse,
    ConversationPresenceResponse,
    ConversationResponse,
    ConversationStartRequest,
    ConversationStartResponse,
)
from app.features.conversations.service import ConversationService
from app.features.realtime.presence import presence
from app.features.users.dependencies import get_current_user
from app.features.users.models import User


router = APIRouter(prefix="/conversations", tags=["Conversations"])


@router.post("", response_model=ConversationStartResponse)
async def start_conversation(
    request: ConversationStartRequest,
    current_user: User = Depends(get_current_user)
):
    """
    Start a conversation with another user.

    Returns the existing active conversation when there already is one for
    the same pair and kind.
    """
    conversation, created = await ConversationService.start_conversation(
        initiator_id=str(current_user.id),
        initiator_role=current_user.role,
        counterpart_id=request.counterpart_id,
        kind=request.kind,
        initial_message=request.initial_message
    )

    return ConversationStartResponse(
        conversation_id=str(conversation.id),
        created=created,
        message="Conversation created successfully" if created else "Conversation already exists",
    )


@router.get("", response_model=ConversationListResponse)
async def list_conversations(current_user: User = Depends(get_current_user)):
    """Get the current user's active conversations."""
    conversations = await ConversationService.list_conversations_for(
        user_id=str(current_user.id),
        role=current_user.role
    )

    return ConversationListResponse(conversations=conversations, total=len(conversations))


@router.post("/{conversation_id}/close", response_model=ConversationResponse)
async def close_conversation(
    conversation_id: str,
    request: Optional[CloseConversationRequest] = None,
    current_user: User = Depends(get_current_user)
):
    """
    Close a conversation.

    Participants and admins may close. Closed conversations stay readable
    but accept no new messages.
    """
    conversation = await ConversationService.close_conversation(
        conversation_id=conversation_id,
        closed_by_id=str(current_user.id),
        closed_by_role=current_user.role,
        reason=request.reason if request else None
    )

    return ConversationService.to_response(conversation)


@router.get("/{conversation_id}/presence", response_model=ConversationPresenceResponse)
async def get_conversation_presence(
    conversation_id: str,
    current_user: User = Depends(get_current_user)
):
    """Which participants of a conversation are currently online."""
    conversation = await ConversationService.get_conversation_for_participant(
        conversation_id=conversation_id,
        user_id=str(current_user.id)
    )

    return ConversationPresenceResponse(
        conversation_id=conversation_id,
        online_user_ids=presence.online_users(conversation.participant_ids),
    )
