# Conversations Feature - Service

from typing import Optional, List, Set, Tuple
from datetime import datetime
from pymongo.errors import DuplicateKeyError, PyMongoError
from app.core.logging import logger
from app.features.conversations.models import (
    Conversation,
    ConversationKind,
    ConversationStatus,
    Participant,
    make_participant_key,
)
from app.features.conversations.schemas import (
    ConversationResponse,
    ConversationSummary,
    LastMessage,
)
from app.features.messages.models import Message
from app.features.messages.service import MessageService
from app.features.notifications.service import NotificationService
from app.features.realtime.broadcaster import broadcaster
from app.features.realtime.presence import presence
from app.features.users.models import User, UserRole
from app.features.users.service import UserService
from app.shared.exceptions import (
    AlreadyClosedException,
    InvalidRoleException,
    NotAParticipantException,
    NotFoundException,
)


WELCOME_MESSAGES = {
    ConversationKind.REGULAR: "Hello! Thank you for reaching out. How can I help you today?",
    ConversationKind.ADMIN_SUPPORT: "Hello! You are connected with CalmTunes support. How can we help you today?",
}


def counterpart_roles(initiator_role: UserRole, kind: ConversationKind) -> Set[UserRole]:
    """
    Roles the other side may have when initiator_role starts a conversation of this kind.

    Raises:
        InvalidRoleException: If the initiator cannot start this kind of conversation
    """
    if kind == ConversationKind.REGULAR:
        if initiator_role == UserRole.PATIENT:
            return {UserRole.THERAPIST}
        if initiator_role == UserRole.THERAPIST:
            return {UserRole.PATIENT}
    elif kind == ConversationKind.ADMIN_SUPPORT:
        if initiator_role == UserRole.ADMIN:
            return {UserRole.PATIENT, UserRole.THERAPIST}
        if initiator_role in (UserRole.PATIENT, UserRole.THERAPIST):
            return {UserRole.ADMIN}

    raise InvalidRoleException(f"A {initiator_role.value} cannot start a {kind.value} conversation")


def is_client_side(role: UserRole, kind: ConversationKind) -> bool:
    """Whether this role is the side that asks for help in a conversation kind."""
    if kind == ConversationKind.REGULAR:
        return role == UserRole.PATIENT
    return role != UserRole.ADMIN


def closure_text(role: str, reason: Optional[str] = None) -> str:
    if reason:
        return f"This conversation has been closed by {role}. Reason: {reason}"
    return f"This conversation has been closed by {role}."


class ConversationService:
    """Lifecycle of conversations: create-or-get, close, and listing."""

    @staticmethod
    async def get_conversation_for_participant(conversation_id: str, user_id: str) -> Conversation:
        """
        Get a conversation the user takes part in.

        Raises:
            NotFoundException: If the conversation does not exist
            NotAParticipantException: If the user is not a participant
        """
        conversation = await MessageService.get_conversation(conversation_id)

        if not conversation.has_participant(user_id):
            raise NotAParticipantException()

        return conversation

    @staticmethod
    async def _find_active(participant_key: str, kind: ConversationKind) -> Optional[Conversation]:
        return await Conversation.find_one(
            Conversation.participant_key == participant_key,
            Conversation.kind == kind,
            Conversation.status == ConversationStatus.ACTIVE
        )

    @staticmethod
    async def _create_or_get(
        participants: List[Participant],
        kind: ConversationKind
    ) -> Tuple[Conversation, bool]:
        """
        Return the active conversation for these participants, creating it if needed.

        Two concurrent callers may both miss the lookup; the partial unique
        index lets only one insert through and the other re-reads the winner.
        """
        participant_ids = [p.user_id for p in participants]
        participant_key = make_participant_key(participant_ids)

        existing = await ConversationService._find_active(participant_key, kind)
        if existing:
            return existing, False

        conversation = Conversation(
            participants=participants,
            participant_ids=participant_ids,
            participant_key=participant_key,
            kind=kind,
        )

        try:
            await conversation.insert()
        except DuplicateKeyError:
            winner = await ConversationService._find_active(participant_key, kind)
            if not winner:
                raise
            logger.info(f"Conversation for {participant_key} ({kind.value}) was created concurrently, reusing {winner.id}")
            return winner, False

        logger.info(f"Created {kind.value} conversation {conversation.id} for {participant_key}")
        return conversation, True

    @staticmethod
    async def start_conversation(
        initiator_id: str,
        initiator_role: UserRole,
        counterpart_id: str,
        kind: ConversationKind = ConversationKind.REGULAR,
        initial_message: Optional[str] = None
    ) -> Tuple[Conversation, bool]:
        """
        Start a conversation, or return the active one for the same pair and kind.

        Args:
            initiator_id: User starting the conversation
            initiator_role: Role of the initiator
            counterpart_id: The other participant
            kind: "regular" or "admin-support"
            initial_message: Optional first message from the initiator

        Returns:
            Tuple of (conversation, created)

        Raises:
            InvalidRoleException: If the initiator's role does not fit the kind
            NotFoundException: If the counterpart is missing, inactive,
                has the wrong role, or is an unapproved therapist
        """
        if initiator_id == counterpart_id:
            raise InvalidRoleException("Cannot start a conversation with yourself")

        allowed_roles = counterpart_roles(initiator_role, kind)

        counterpart = await UserService.get_user(counterpart_id)
        if not counterpart or counterpart.role not in allowed_roles:
            raise NotFoundException("Counterpart not found")

        if kind == ConversationKind.REGULAR:
            contactable = UserService.is_contactable(counterpart, counterpart.role)
        else:
            contactable = counterpart.is_active
        if not contactable:
            raise NotFoundException("Counterpart not found")

        conversation, created = await ConversationService._create_or_get(
            [
                Participant(user_id=initiator_id, role=initiator_role),
                Participant(user_id=counterpart_id, role=counterpart.role),
            ],
            kind,
        )

        if not created:
            return conversation, False

        try:
            if is_client_side(initiator_role, kind):
                await MessageService.append_system_message(
                    conversation,
                    counterpart_id,
                    WELCOME_MESSAGES[kind],
                )

            if initial_message and initial_message.strip():
                await MessageService.send_message(str(conversation.id), initiator_id, initial_message)
        except PyMongoError as e:
            # A conversation is only kept once it is fully seeded
            logger.error(f"Failed to seed conversation {conversation.id}, discarding it: {e}")
            await Message.find(Message.conversation_id == str(conversation.id)).delete()
            await conversation.delete()
            raise

        initiator = await UserService.get_user(initiator_id)
        await ConversationService._notify_started(conversation, initiator_id, initiator, counterpart)

        return conversation, True

    @staticmethod
    async def _notify_started(
        conversation: Conversation,
        initiator_id: str,
        initiator: Optional[User],
        counterpart: User
    ):
        conversation_id = str(conversation.id)
        initiator_name = initiator.name if initiator else "Someone"

        if conversation.kind == ConversationKind.ADMIN_SUPPORT and not is_client_side(counterpart.role, conversation.kind):
            title = "New Support Request"
        else:
            title = "New Conversation"

        await NotificationService.notify(
            str(counterpart.id),
            "new_conversation",
            title,
            f"{initiator_name} started a conversation with you",
            {"conversation_id": conversation_id, "initiator_id": initiator_id},
        )

        await NotificationService.notify(
            initiator_id,
            "conversation_started",
            "Conversation Started",
            f"Your conversation with {counterpart.name} has started",
            {"conversation_id": conversation_id, "counterpart_id": str(counterpart.id)},
        )

    @staticmethod
    async def ensure_conversation(patient_id: str, therapist_id: str) -> Optional[str]:
        """
        Make sure a patient and therapist can talk, e.g. after an appointment is confirmed.

        No welcome message and no notifications. Store failures are logged
        and reported as None so the calling flow can carry on.
        """
        try:
            conversation, created = await ConversationService._create_or_get(
                [
                    Participant(user_id=patient_id, role=UserRole.PATIENT),
                    Participant(user_id=therapist_id, role=UserRole.THERAPIST),
                ],
                ConversationKind.REGULAR,
            )
        except PyMongoError as e:
            logger.error(f"Failed to ensure conversation between {patient_id} and {therapist_id}: {e}")
            return None

        return str(conversation.id)

    @staticmethod
    async def close_conversation(
        conversation_id: str,
        closed_by_id: str,
        closed_by_role: UserRole,
        reason: Optional[str] = None
    ) -> Conversation:
        """
        Close a conversation. Participants and admins may close.

        Raises:
            NotFoundException: If the conversation does not exist
            NotAParticipantException: If the caller is neither a participant nor an admin
            AlreadyClosedException: If the conversation is not active, including
                when a concurrent close won
        """
        conversation = await MessageService.get_conversation(conversation_id)

        if not conversation.has_participant(closed_by_id) and closed_by_role != UserRole.ADMIN:
            raise NotAParticipantException()

        if not conversation.is_active:
            raise AlreadyClosedException()

        reason = reason.strip() if reason and reason.strip() else None
        now = datetime.utcnow()

        result = await Conversation.get_pymongo_collection().update_one(
            {"_id": conversation.id, "status": ConversationStatus.ACTIVE.value},
            {"$set": {
                "status": ConversationStatus.CLOSED.value,
                "closed_at": now,
                "closed_by": closed_by_id,
                "closure_reason": reason,
                "updated_at": now,
            }},
        )
        if result.modified_count == 0:
            raise AlreadyClosedException()

        conversation.status = ConversationStatus.CLOSED
        conversation.closed_at = now
        conversation.closed_by = closed_by_id
        conversation.closure_reason = reason
        conversation.updated_at = now

        logger.info(f"Conversation {conversation_id} closed by {closed_by_role.value} {closed_by_id}")

        system_message = await MessageService.append_system_message(
            conversation,
            closed_by_id,
            closure_text(closed_by_role.value, reason),
            sender_role=closed_by_role,
        )

        for user_id in conversation.other_participant_ids(closed_by_id):
            await NotificationService.notify(
                user_id,
                "conversation_closed",
                "Conversation Closed",
                closure_text(closed_by_role.value, reason),
                {"conversation_id": conversation_id, "closed_by": closed_by_id},
            )

        await broadcaster.publish(
            conversation_id,
            "conversation_closed",
            {
                "conversation_id": conversation_id,
                "closed_by": closed_by_id,
                "closed_by_role": closed_by_role.value,
                "reason": reason,
                "closed_at": now.isoformat(),
                "message_id": str(system_message.id),
            },
        )

        return conversation

    @staticmethod
    async def list_conversations_for(user_id: str, role: UserRole) -> List[ConversationSummary]:
        """
        Get a user's active conversations, most recently active first.

        Admins only see admin-support conversations.
        """
        query = {
            "participant_ids": user_id,
            "status": ConversationStatus.ACTIVE.value,
        }
        if role == UserRole.ADMIN:
            query["kind"] = ConversationKind.ADMIN_SUPPORT.value

        conversations = await Conversation.find(query).sort(
            [("updated_at", -1), ("_id", 1)]
        ).to_list()

        other_ids = {}
        for conversation in conversations:
            others = conversation.other_participant_ids(user_id)
            other_ids[str(conversation.id)] = others[0] if others else user_id

        users = await UserService.get_users(other_ids.values())

        summaries = []
        for conversation in conversations:
            conversation_id = str(conversation.id)
            other_id = other_ids[conversation_id]

            other = UserService.participant_info(other_id, users.get(other_id))
            other.is_online = presence.is_online(other_id)

            latest = await MessageService.latest_message(conversation_id)
            last_message = None
            if latest:
                last_message = LastMessage(
                    content=latest.content,
                    sender_id=latest.sender_id,
                    kind=latest.kind,
                    created_at=latest.created_at,
                )

            summaries.append(ConversationSummary(
                id=conversation_id,
                kind=conversation.kind,
                status=conversation.status,
                other_participant=other,
                last_message=last_message,
                unread_count=await MessageService.unread_count_for(conversation_id, user_id),
                created_at=conversation.created_at,
                updated_at=conversation.updated_at,
            ))

        return summaries

    @staticmethod
    async def active_conversation_ids_for(user_id: str) -> List[str]:
        """Ids of the active conversations a user takes part in."""
        conversations = await Conversation.find({
            "participant_ids": user_id,
            "status": ConversationStatus.ACTIVE.value,
        }).to_list()
        return [str(c.id) for c in conversations]

    @staticmethod
    def to_response(conversation: Conversation) -> ConversationResponse:
        return ConversationResponse(
            id=str(conversation.id),
            kind=conversation.kind,
            status=conversation.status,
            participant_ids=conversation.participant_ids,
            closed_at=conversation.closed_at,
            closed_by=conversation.closed_by,
            closure_reason=conversation.closure_reason,
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
        )
