"""Conversation lifecycle tests against MongoDB."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from pymongo.errors import PyMongoError

from app.features.conversations.models import Conversation, ConversationKind, ConversationStatus
from app.features.conversations.service import (
    ConversationService,
    closure_text,
    counterpart_roles,
    is_client_side,
)
from app.features.messages.models import Message, MessageKind
from app.features.messages.service import MessageService
from app.features.notifications.models import Notification
from app.features.users.models import UserRole
from app.shared.exceptions import (
    AlreadyClosedException,
    ConversationClosedException,
    InvalidRoleException,
    NotAParticipantException,
    NotFoundException,
)


# ============== Role rules (no database) ==============

def test_counterpart_roles_per_kind():
    assert counterpart_roles(UserRole.PATIENT, ConversationKind.REGULAR) == {UserRole.THERAPIST}
    assert counterpart_roles(UserRole.THERAPIST, ConversationKind.REGULAR) == {UserRole.PATIENT}
    assert counterpart_roles(UserRole.ADMIN, ConversationKind.ADMIN_SUPPORT) == {UserRole.PATIENT, UserRole.THERAPIST}
    assert counterpart_roles(UserRole.THERAPIST, ConversationKind.ADMIN_SUPPORT) == {UserRole.ADMIN}


def test_admin_cannot_start_regular_conversation():
    with pytest.raises(InvalidRoleException):
        counterpart_roles(UserRole.ADMIN, ConversationKind.REGULAR)


def test_client_side():
    assert is_client_side(UserRole.PATIENT, ConversationKind.REGULAR)
    assert not is_client_side(UserRole.THERAPIST, ConversationKind.REGULAR)
    assert is_client_side(UserRole.THERAPIST, ConversationKind.ADMIN_SUPPORT)
    assert not is_client_side(UserRole.ADMIN, ConversationKind.ADMIN_SUPPORT)


def test_closure_text():
    assert closure_text("admin") == "This conversation has been closed by admin."
    assert closure_text("admin", "resolved") == "This conversation has been closed by admin. Reason: resolved"


# ============== Starting conversations ==============

async def notifications_of(user) -> list:
    return await Notification.find(Notification.user_id == str(user.id)).to_list()


@pytest.mark.mongo
@pytest.mark.asyncio
async def test_patient_starts_conversation_with_therapist(patient, therapist, sio, events):
    conversation, created = await ConversationService.start_conversation(
        str(patient.id), UserRole.PATIENT, str(therapist.id), ConversationKind.REGULAR
    )

    assert created is True
    assert conversation.status == ConversationStatus.ACTIVE
    assert await Conversation.find_all().count() == 1

    # One welcome message, authored by the therapist
    messages = await Message.find(Message.conversation_id == str(conversation.id)).to_list()
    assert len(messages) == 1
    assert messages[0].kind == MessageKind.SYSTEM
    assert messages[0].sender_id == str(therapist.id)
    assert messages[0].sender_role == UserRole.THERAPIST

    therapist_notifications = await notifications_of(therapist)
    assert [n.type for n in therapist_notifications] == ["new_conversation"]
    assert therapist_notifications[0].data["conversation_id"] == str(conversation.id)

    patient_notifications = await notifications_of(patient)
    assert [n.type for n in patient_notifications] == ["conversation_started"]

    # Both notifications were pushed to the users' rooms
    rooms = [kwargs["room"] for _, kwargs in events(sio, "notification")]
    assert f"user_{therapist.id}" in rooms
    assert f"user_{patient.id}" in rooms


@pytest.mark.mongo
@pytest.mark.asyncio
async def test_start_is_idempotent_for_active_conversation(patient, therapist):
    first, created = await ConversationService.start_conversation(
        str(patient.id), UserRole.PATIENT, str(therapist.id)
    )
    again, created_again = await ConversationService.start_conversation(
        str(therapist.id), UserRole.THERAPIST, str(patient.id)
    )

    assert created is True
    assert created_again is False
    assert again.id == first.id
    assert await Conversation.find_all().count() == 1

    # Seeding and notifications happen only once
    assert await Message.find_all().count() == 1
    assert await Notification.find_all().count() == 2


@pytest.mark.mongo
@pytest.mark.asyncio
async def test_therapist_initiator_gets_no_welcome_message(patient, therapist):
    conversation, created = await ConversationService.start_conversation(
        str(therapist.id), UserRole.THERAPIST, str(patient.id)
    )

    assert created is True
    assert await Message.find(Message.conversation_id == str(conversation.id)).count() == 0


@pytest.mark.mongo
@pytest.mark.asyncio
async def test_failed_welcome_message_discards_conversation(patient, therapist):
    with patch.object(Message, "insert", AsyncMock(side_effect=PyMongoError("write failed"))):
        with pytest.raises(PyMongoError):
            await ConversationService.start_conversation(
                str(patient.id), UserRole.PATIENT, str(therapist.id)
            )

    assert await Conversation.find_all().count() == 0

    # Starting again creates and seeds a fresh conversation
    conversation, created = await ConversationService.start_conversation(
        str(patient.id), UserRole.PATIENT, str(therapist.id)
    )

    assert created is True
    messages = await Message.find(Message.conversation_id == str(conversation.id)).to_list()
    assert [m.kind for m in messages] == [MessageKind.SYSTEM]


@pytest.mark.mongo
@pytest.mark.asyncio
async def test_concurrent_starts_create_one_conversation(patient, therapist):
    results = await asyncio.gather(
        ConversationService.start_conversation(str(patient.id), UserRole.PATIENT, str(therapist.id)),
        ConversationService.start_conversation(str(patient.id), UserRole.PATIENT, str(therapist.id)),
    )

    ids = {conversation.id for conversation, _ in results}
    assert len(ids) == 1
    assert sorted(created for _, created in results) == [False, True]
    assert await Conversation.find_all().count() == 1


@pytest.mark.mongo
@pytest.mark.asyncio
async def test_lost_insert_race_returns_winner(patient, therapist):
    winner, _ = await ConversationService.start_conversation(
        str(patient.id), UserRole.PATIENT, str(therapist.id)
    )

    # The lookup misses once, as if the winner committed in between
    lookup = AsyncMock(side_effect=[None, winner])
    with patch.object(ConversationService, "_find_active", lookup):
        conversation, created = await ConversationService.start_conversation(
            str(patient.id), UserRole.PATIENT, str(therapist.id)
        )

    assert created is False
    assert conversation.id == winner.id
    assert lookup.await_count == 2
    assert await Conversation.find_all().count() == 1


@pytest.mark.mongo
@pytest.mark.asyncio
async def test_counterpart_checks(patient, make_user):
    pending = await make_user(UserRole.THERAPIST, "Dr. Pending", is_approved=False)
    inactive = await make_user(UserRole.THERAPIST, "Dr. Gone", is_approved=True, is_active=False)
    other_patient = await make_user(UserRole.PATIENT, "Alex")

    for counterpart in (pending, inactive, other_patient):
        with pytest.raises(NotFoundException):
            await ConversationService.start_conversation(
                str(patient.id), UserRole.PATIENT, str(counterpart.id)
            )

    with pytest.raises(NotFoundException):
        await ConversationService.start_conversation(
            str(patient.id), UserRole.PATIENT, "665f1c2e9b1e8a00ffffffff"
        )

    assert await Conversation.find_all().count() == 0


@pytest.mark.mongo
@pytest.mark.asyncio
async def test_role_errors(patient, therapist, admin):
    with pytest.raises(InvalidRoleException):
        await ConversationService.start_conversation(
            str(admin.id), UserRole.ADMIN, str(patient.id), ConversationKind.REGULAR
        )

    with pytest.raises(InvalidRoleException):
        await ConversationService.start_conversation(
            str(patient.id), UserRole.PATIENT, str(patient.id)
        )


@pytest.mark.mongo
@pytest.mark.asyncio
async def test_admin_starts_support_conversation_with_message(patient, admin):
    conversation, created = await ConversationService.start_conversation(
        str(admin.id),
        UserRole.ADMIN,
        str(patient.id),
        ConversationKind.ADMIN_SUPPORT,
        initial_message="  Hi Sam, checking in about your account.  ",
    )

    assert created is True
    assert conversation.kind == ConversationKind.ADMIN_SUPPORT

    messages = await Message.find(Message.conversation_id == str(conversation.id)).to_list()
    assert [(m.kind, m.sender_id, m.content) for m in messages] == [
        (MessageKind.TEXT, str(admin.id), "Hi Sam, checking in about your account."),
    ]

    types = sorted(n.type for n in await notifications_of(patient))
    assert types == ["admin_message", "new_conversation"]

    admin_message = await Notification.find_one(Notification.type == "admin_message")
    assert admin_message.title == "New Message from Admin"


@pytest.mark.mongo
@pytest.mark.asyncio
async def test_support_and_regular_conversations_coexist(patient, therapist, admin):
    regular, _ = await ConversationService.start_conversation(
        str(patient.id), UserRole.PATIENT, str(therapist.id)
    )
    support, created = await ConversationService.start_conversation(
        str(patient.id), UserRole.PATIENT, str(admin.id), ConversationKind.ADMIN_SUPPORT
    )

    assert created is True
    assert support.id != regular.id

    # The patient asked for help, so the admin's welcome note opens the thread
    welcome = await Message.find_one(Message.conversation_id == str(support.id))
    assert welcome.sender_id == str(admin.id)
    assert welcome.kind == MessageKind.SYSTEM


@pytest.mark.mongo
@pytest.mark.asyncio
async def test_ensure_conversation(patient, therapist):
    first = await ConversationService.ensure_conversation(str(patient.id), str(therapist.id))
    second = await ConversationService.ensure_conversation(str(patient.id), str(therapist.id))

    assert first is not None
    assert first == second
    assert await Message.find_all().count() == 0
    assert await Notification.find_all().count() == 0


# ============== Closing ==============

@pytest.mark.mongo
@pytest.mark.asyncio
async def test_admin_closes_conversation_with_reason(patient, therapist, admin, sio, events):
    conversation_id = await ConversationService.ensure_conversation(str(patient.id), str(therapist.id))

    closed = await ConversationService.close_conversation(
        conversation_id, str(admin.id), UserRole.ADMIN, reason="resolved"
    )

    assert closed.status == ConversationStatus.CLOSED
    stored = await Conversation.get(closed.id)
    assert stored.status == ConversationStatus.CLOSED
    assert stored.closed_by == str(admin.id)
    assert stored.closure_reason == "resolved"

    system = await Message.find_one(Message.conversation_id == conversation_id)
    assert system.kind == MessageKind.SYSTEM
    assert "resolved" in system.content

    # Both participants are told; the admin is not a participant
    assert [n.type for n in await notifications_of(patient)] == ["conversation_closed"]
    assert [n.type for n in await notifications_of(therapist)] == ["conversation_closed"]

    data, kwargs = events(sio, "conversation_closed")[0]
    assert data["reason"] == "resolved"
    assert kwargs["room"] == f"conversation_{conversation_id}"

    for sender in (patient, therapist):
        with pytest.raises(ConversationClosedException):
            await MessageService.send_message(conversation_id, str(sender.id), "Are you there?")


@pytest.mark.mongo
@pytest.mark.asyncio
async def test_close_twice_and_by_outsider(patient, therapist, make_user):
    conversation_id = await ConversationService.ensure_conversation(str(patient.id), str(therapist.id))
    outsider = await make_user(UserRole.PATIENT, "Alex")

    with pytest.raises(NotAParticipantException):
        await ConversationService.close_conversation(conversation_id, str(outsider.id), UserRole.PATIENT)

    await ConversationService.close_conversation(conversation_id, str(patient.id), UserRole.PATIENT)

    with pytest.raises(AlreadyClosedException):
        await ConversationService.close_conversation(conversation_id, str(therapist.id), UserRole.THERAPIST)

    with pytest.raises(NotFoundException):
        await ConversationService.close_conversation("665f1c2e9b1e8a00ffffffff", str(patient.id), UserRole.PATIENT)


@pytest.mark.mongo
@pytest.mark.asyncio
async def test_concurrent_closes_have_one_winner(patient, therapist):
    conversation_id = await ConversationService.ensure_conversation(str(patient.id), str(therapist.id))

    results = await asyncio.gather(
        ConversationService.close_conversation(conversation_id, str(patient.id), UserRole.PATIENT),
        ConversationService.close_conversation(conversation_id, str(therapist.id), UserRole.THERAPIST),
        return_exceptions=True,
    )

    failures = [r for r in results if isinstance(r, Exception)]
    assert len(failures) == 1
    assert isinstance(failures[0], AlreadyClosedException)
    assert await Message.find(Message.kind == MessageKind.SYSTEM).count() == 1


@pytest.mark.mongo
@pytest.mark.asyncio
async def test_starting_again_after_close_opens_new_conversation(patient, therapist):
    first, _ = await ConversationService.start_conversation(str(patient.id), UserRole.PATIENT, str(therapist.id))
    await ConversationService.close_conversation(str(first.id), str(patient.id), UserRole.PATIENT)

    second, created = await ConversationService.start_conversation(str(patient.id), UserRole.PATIENT, str(therapist.id))

    assert created is True
    assert second.id != first.id
    assert await Conversation.find(Conversation.status == ConversationStatus.ACTIVE).count() == 1


# ============== Listing ==============

@pytest.mark.mongo
@pytest.mark.asyncio
async def test_list_conversations(patient, therapist, make_user):
    other_therapist = await make_user(UserRole.THERAPIST, "Dr. Lee", is_approved=True)

    older = await ConversationService.ensure_conversation(str(patient.id), str(therapist.id))
    newer = await ConversationService.ensure_conversation(str(patient.id), str(other_therapist.id))
    await MessageService.send_message(newer, str(other_therapist.id), "Welcome!")
    await MessageService.send_message(older, str(therapist.id), "How was your week?")

    summaries = await ConversationService.list_conversations_for(str(patient.id), UserRole.PATIENT)

    assert [s.id for s in summaries] == [older, newer]
    assert summaries[0].other_participant.name == "Dr. Maya Collins"
    assert summaries[0].other_participant.specialty == "Anxiety and depression"
    assert summaries[0].last_message.content == "How was your week?"
    assert summaries[0].unread_count == 1

    # Closed conversations drop out of the list
    await ConversationService.close_conversation(older, str(patient.id), UserRole.PATIENT)
    summaries = await ConversationService.list_conversations_for(str(patient.id), UserRole.PATIENT)
    assert [s.id for s in summaries] == [newer]


@pytest.mark.mongo
@pytest.mark.asyncio
async def test_admin_lists_only_support_conversations(patient, admin):
    support, _ = await ConversationService.start_conversation(
        str(admin.id), UserRole.ADMIN, str(patient.id), ConversationKind.ADMIN_SUPPORT
    )

    summaries = await ConversationService.list_conversations_for(str(admin.id), UserRole.ADMIN)

    assert [s.id for s in summaries] == [str(support.id)]
    assert summaries[0].other_participant.role == UserRole.PATIENT


@pytest.mark.mongo
@pytest.mark.asyncio
async def test_active_conversation_ids(patient, therapist, make_user):
    other_therapist = await make_user(UserRole.THERAPIST, "Dr. Lee", is_approved=True)
    first = await ConversationService.ensure_conversation(str(patient.id), str(therapist.id))
    second = await ConversationService.ensure_conversation(str(patient.id), str(other_therapist.id))
    await ConversationService.close_conversation(first, str(patient.id), UserRole.PATIENT)

    assert await ConversationService.active_conversation_ids_for(str(patient.id)) == [second]
    assert await ConversationService.active_conversation_ids_for(str(therapist.id)) == []
