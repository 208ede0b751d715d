# Messages Feature - Service

from typing import Optional, List, Tuple
from datetime import datetime
from bson import ObjectId
from app.config import settings
from app.core.logging import logger
from app.features.conversations.models import Conversation, ConversationKind, ConversationStatus
from app.features.messages.models import Message, MessageKind
from app.features.messages.schemas import MessageResponse, SocketMessageEvent, SocketReadEvent
from app.features.notifications.service import NotificationService
from app.features.realtime.broadcaster import broadcaster
from app.features.users.models import User, UserRole
from app.features.users.service import UserService
from app.shared.exceptions import (
    ConversationClosedException,
    EmptyContentException,
    NotAParticipantException,
    NotFoundException,
)


def make_preview(content: str) -> str:
    """Shorten message content for notification bodies."""
    limit = settings.MESSAGE_PREVIEW_LENGTH
    if len(content) > limit:
        return content[:limit] + "..."
    return content


class MessageService:
    """Append-only message log with read-state tracking."""

    @staticmethod
    async def get_conversation(conversation_id: str) -> Conversation:
        """
        Get conversation by ID.

        Raises:
            NotFoundException: If the id is malformed or unknown
        """
        if not ObjectId.is_valid(conversation_id):
            raise NotFoundException("Conversation not found")

        conversation = await Conversation.get(ObjectId(conversation_id))
        if not conversation:
            raise NotFoundException("Conversation not found")

        return conversation

    @staticmethod
    async def send_message(
        conversation_id: str,
        sender_id: str,
        content: str,
        kind: MessageKind = MessageKind.TEXT
    ) -> MessageResponse:
        """
        Send a message in a conversation.

        Args:
            conversation_id: Conversation ID
            sender_id: Sender's user ID, must be a participant
            content: Message content, trimmed before storing
            kind: "text" or "file"

        Returns:
            Created message response

        Raises:
            EmptyContentException: If content is blank
            NotFoundException: If the conversation does not exist
            NotAParticipantException: If the sender is not in the conversation
            ConversationClosedException: If the conversation is closed
        """
        text = (content or "").strip()
        if not text:
            raise EmptyContentException()

        conversation = await MessageService.get_conversation(conversation_id)

        if not conversation.has_participant(sender_id):
            raise NotAParticipantException()

        if not conversation.is_active:
            raise ConversationClosedException()

        # Bump activity only while the conversation is still active, so a
        # close that landed after the check above is caught here
        now = datetime.utcnow()
        result = await Conversation.get_pymongo_collection().update_one(
            {"_id": conversation.id, "status": ConversationStatus.ACTIVE.value},
            {"$set": {"updated_at": now}},
        )
        if result.matched_count == 0:
            raise ConversationClosedException()

        message = Message(
            conversation_id=conversation_id,
            sender_id=sender_id,
            sender_role=conversation.role_of(sender_id),
            content=text,
            kind=kind,
            created_at=now,
            updated_at=now,
        )
        await message.insert()

        logger.info(f"Message {message.id} stored in conversation {conversation_id} by {sender_id}")

        sender = await UserService.get_user(sender_id)
        response = MessageService.to_response(message, sender)

        await MessageService._notify_recipients(conversation, message, sender)

        await broadcaster.publish(
            conversation_id,
            "new_message",
            SocketMessageEvent(message=response, conversation_id=conversation_id).model_dump(mode="json"),
        )

        return response

    @staticmethod
    async def _notify_recipients(conversation: Conversation, message: Message, sender: Optional[User]):
        sender_name = sender.name if sender else "Someone"

        if conversation.kind == ConversationKind.ADMIN_SUPPORT:
            notification_type = "admin_message"
        else:
            notification_type = "new_message"

        if message.sender_role == UserRole.ADMIN:
            title = "New Message from Admin"
        else:
            title = "New Message"

        for recipient_id in conversation.other_participant_ids(message.sender_id):
            await NotificationService.notify(
                recipient_id,
                notification_type,
                title,
                f"{sender_name}: {make_preview(message.content)}",
                {
                    "conversation_id": message.conversation_id,
                    "message_id": str(message.id),
                    "sender_id": message.sender_id,
                },
            )

    @staticmethod
    async def append_system_message(
        conversation: Conversation,
        sender_id: str,
        content: str,
        kind: MessageKind = MessageKind.SYSTEM,
        sender_role: Optional[UserRole] = None
    ) -> Message:
        """
        Append a message on behalf of the service (welcome or closure notes).

        Skips the participant and status checks and sends no notification.
        """
        message = Message(
            conversation_id=str(conversation.id),
            sender_id=sender_id,
            sender_role=sender_role or conversation.role_of(sender_id),
            content=content.strip(),
            kind=kind,
        )
        await message.insert()

        sender = await UserService.get_user(sender_id)
        event = SocketMessageEvent(
            message=MessageService.to_response(message, sender),
            conversation_id=str(conversation.id),
        )
        await broadcaster.publish(str(conversation.id), "new_message", event.model_dump(mode="json"))

        return message

    @staticmethod
    async def fetch_messages(
        conversation_id: str,
        requester_id: str,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> Tuple[List[MessageResponse], int, bool]:
        """
        Get messages in a conversation, oldest first.

        Opening a conversation marks everything the other side sent as read.
        This counts "loaded" as "read", which can over-count when a client
        fetches without anyone looking at the screen.

        Args:
            conversation_id: Conversation ID
            requester_id: Requesting user, must be a participant
            limit: Page size, clamped to MESSAGE_PAGE_MAX
            offset: Number of messages to skip

        Returns:
            Tuple of (messages list, total count, has_more)
        """
        conversation = await MessageService.get_conversation(conversation_id)

        if not conversation.has_participant(requester_id):
            raise NotAParticipantException()

        limit = limit or settings.MESSAGE_PAGE_SIZE
        limit = max(1, min(limit, settings.MESSAGE_PAGE_MAX))
        offset = max(0, offset)

        # Anything sent after this instant stays unread, even if it lands before the update below
        now = datetime.utcnow()

        query = Message.find(Message.conversation_id == conversation_id)

        total = await query.count()

        messages = await query.sort(
            [("created_at", 1), ("_id", 1)]
        ).skip(offset).limit(limit).to_list()

        senders = await UserService.get_users(msg.sender_id for msg in messages)

        # Mark messages from the other side as read
        result = await Message.find(
            Message.conversation_id == conversation_id,
            Message.sender_id != requester_id,
            Message.is_read == False,
            Message.created_at <= now
        ).update_many({"$set": {"is_read": True, "read_at": now}})

        read_count = result.modified_count if result else 0

        response = []
        for msg in messages:
            item = MessageService.to_response(msg, senders.get(msg.sender_id))
            if msg.sender_id != requester_id and not msg.is_read and msg.created_at <= now:
                item.is_read = True
                item.read_at = now
            response.append(item)

        has_more = offset + len(messages) < total

        logger.info(f"Fetched {len(response)} messages for conversation {conversation_id} (total: {total}, newly read: {read_count})")

        if read_count > 0:
            await broadcaster.publish(
                conversation_id,
                "messages_read",
                SocketReadEvent(
                    conversation_id=conversation_id,
                    read_by=requester_id,
                    count=read_count,
                    read_at=now,
                ).model_dump(mode="json"),
            )

        return response, total, has_more

    @staticmethod
    async def unread_count_for(conversation_id: str, user_id: str) -> int:
        """Count messages the user has not read yet (those sent by others)."""
        return await Message.find(
            Message.conversation_id == conversation_id,
            Message.sender_id != user_id,
            Message.is_read == False
        ).count()

    @staticmethod
    async def latest_message(conversation_id: str) -> Optional[Message]:
        return await Message.find(
            Message.conversation_id == conversation_id
        ).sort([("created_at", -1), ("_id", -1)]).first_or_none()

    @staticmethod
    def to_response(message: Message, sender: Optional[User] = None) -> MessageResponse:
        return MessageResponse(
            id=str(message.id),
            conversation_id=message.conversation_id,
            sender_id=message.sender_id,
            sender_name=sender.name if sender else None,
            sender_role=message.sender_role,
            content=message.content,
            kind=message.kind,
            is_read=message.is_read,
            read_at=message.read_at,
            created_at=message.created_at,
        )
