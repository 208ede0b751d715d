# Messages Feature - Router

from fastapi import APIRouter, Depends, Query
from app.features.messages.models import MessageKind
from app.features.messages.schemas import (
    MessageCreate,
    MessageResponse,
    MessageListResponse,
    UnreadCountResponse,
)
from app.features.messages.service import MessageService
from app.features.conversations.service import ConversationService
from app.features.users.dependencies import get_current_user
from app.features.users.models import User


router = APIRouter(prefix="/conversations", tags=["Messages"])


@router.get("/{conversation_id}/messages", response_model=MessageListResponse)
async def get_conversation_messages(
    conversation_id: str,
    limit: int = Query(50, ge=1),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user)
):
    """
    Get messages in a conversation, oldest first.

    Marks the messages sent by the other participant as read.
    """
    messages, total, has_more = await MessageService.fetch_messages(
        conversation_id=conversation_id,
        requester_id=str(current_user.id),
        limit=limit,
        offset=offset
    )

    return MessageListResponse(messages=messages, total=total, has_more=has_more)


@router.post("/{conversation_id}/messages", response_model=MessageResponse)
async def send_message(
    conversation_id: str,
    request: MessageCreate,
    current_user: User = Depends(get_current_user)
):
    """Send a message in a conversation."""
    return await MessageService.send_message(
        conversation_id=conversation_id,
        sender_id=str(current_user.id),
        content=request.content,
        kind=MessageKind(request.kind)
    )


@router.get("/{conversation_id}/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(
    conversation_id: str,
    current_user: User = Depends(get_current_user)
):
    # Verify access
    await ConversationService.get_conversation_for_participant(
        conversation_id=conversation_id,
        user_id=str(current_user.id)
    )

    count = await MessageService.unread_count_for(conversation_id, str(current_user.id))

    return UnreadCountResponse(unread_count=count)
