# Realtime Feature - Broadcaster

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Set, Tuple
from app.core.logging import logger
from app.features.realtime.presence import PresenceTracker, presence
from app.shared.exceptions import CredentialsException, InvalidStateException


class ConnectionState(str, Enum):
    CONNECTED = "connected"
    AUTHENTICATED = "authenticated"
    JOINED = "joined"


@dataclass
class Connection:
    """State of one Socket.IO connection."""
    sid: str
    state: ConnectionState = ConnectionState.CONNECTED
    user_id: Optional[str] = None
    role: Optional[str] = None
    name: Optional[str] = None
    channels: Set[str] = field(default_factory=set)

    @property
    def is_authenticated(self) -> bool:
        return self.state != ConnectionState.CONNECTED


def conversation_room(conversation_id: str) -> str:
    return f"conversation_{conversation_id}"


def user_room(user_id: str) -> str:
    return f"user_{user_id}"


class RealtimeBroadcaster:
    """
    Best-effort delivery of events to connected clients.

    Keeps one channel (Socket.IO room) per conversation. Events published on
    a channel reach each joined connection in publish order; nothing is
    queued or replayed, so clients that were not joined catch up by
    fetching messages.
    """

    def __init__(self, presence_tracker: PresenceTracker):
        # Socket.IO server (set during app startup)
        self.sio = None
        self.presence = presence_tracker

        # {sid: Connection}
        self._connections: Dict[str, Connection] = {}

        # {conversation_id: set of sids}
        self._channels: Dict[str, Set[str]] = {}

        # {conversation_id: (lock serializing emits on that channel, publishers holding or waiting)}
        # An entry lives only while a publish is in flight on the channel
        self._locks: Dict[str, Tuple[asyncio.Lock, int]] = {}

    def attach(self, sio):
        """Set the Socket.IO server instance."""
        self.sio = sio

    def reset(self):
        """Forget every connection. Used on shutdown and in tests."""
        self._connections.clear()
        self._channels.clear()
        self._locks.clear()
        self.presence.reset()

    # ============== Connection lifecycle ==============

    def connect(self, sid: str) -> Connection:
        connection = Connection(sid=sid)
        self._connections[sid] = connection
        return connection

    def get(self, sid: str) -> Optional[Connection]:
        return self._connections.get(sid)

    async def authenticate(self, sid: str, user_id: str, role: str, name: Optional[str] = None) -> bool:
        """
        Bind an identity to a connection.

        Returns True if this made the user come online.
        """
        connection = self._connections.get(sid) or self.connect(sid)

        if connection.user_id and connection.user_id != user_id:
            raise InvalidStateException("Connection is already authenticated as another user")

        connection.user_id = user_id
        connection.role = role
        connection.name = name
        if connection.state == ConnectionState.CONNECTED:
            connection.state = ConnectionState.AUTHENTICATED

        if self.sio:
            await self.sio.enter_room(sid, user_room(user_id))

        return self.presence.add(user_id, sid)

    async def join(self, sid: str, conversation_id: str) -> Connection:
        connection = self._require_authenticated(sid)

        connection.channels.add(conversation_id)
        connection.state = ConnectionState.JOINED
        self._channels.setdefault(conversation_id, set()).add(sid)

        if self.sio:
            await self.sio.enter_room(sid, conversation_room(conversation_id))

        return connection

    async def leave(self, sid: str, conversation_id: str) -> bool:
        connection = self._require_authenticated(sid)
        if conversation_id not in connection.channels:
            return False

        connection.channels.discard(conversation_id)
        if not connection.channels:
            connection.state = ConnectionState.AUTHENTICATED
        self._drop_member(conversation_id, sid)

        if self.sio:
            await self.sio.leave_room(sid, conversation_room(conversation_id))

        return True

    def disconnect(self, sid: str) -> Tuple[Optional[Connection], bool]:
        """
        Forget a connection.

        Returns the removed connection and whether its user went offline.
        The Socket.IO server drops the sid from its rooms on its own.
        """
        connection = self._connections.pop(sid, None)
        if not connection:
            return None, False

        for conversation_id in connection.channels:
            self._drop_member(conversation_id, sid)

        went_offline = False
        if connection.user_id:
            went_offline = self.presence.remove(connection.user_id, sid)

        return connection, went_offline

    # ============== Delivery ==============

    async def publish(
        self,
        conversation_id: str,
        event: str,
        data: Dict[str, Any],
        skip_sid: Optional[str] = None
    ):
        """Deliver an event to every connection joined to a conversation."""
        if not self.sio:
            logger.debug(f"No Socket.IO server attached, dropping {event} for {conversation_id}")
            return

        lock = self._acquire_channel_lock(conversation_id)
        try:
            async with lock:
                try:
                    await self.sio.emit(
                        event,
                        data,
                        room=conversation_room(conversation_id),
                        skip_sid=skip_sid,
                    )
                except Exception as e:
                    logger.error(f"Failed to publish {event} to conversation {conversation_id}: {e}")
        finally:
            self._release_channel_lock(conversation_id)

    async def send_to_user(self, user_id: str, event: str, data: Dict[str, Any]):
        """Deliver an event to every connection of one user."""
        if not self.sio:
            return
        try:
            await self.sio.emit(event, data, room=user_room(user_id))
        except Exception as e:
            logger.error(f"Failed to send {event} to user {user_id}: {e}")

    async def emit_to(self, sid: str, event: str, data: Dict[str, Any]):
        """Reply to a single connection."""
        if not self.sio:
            return
        try:
            await self.sio.emit(event, data, room=sid)
        except Exception as e:
            logger.error(f"Failed to emit {event} to {sid}: {e}")

    async def broadcast_presence(self, user_id: str, online: bool, conversation_ids: Iterable[str]):
        """Tell the channels of a user's conversations that they came online or left."""
        event = "user_online" if online else "user_offline"
        for conversation_id in conversation_ids:
            await self.publish(conversation_id, event, {
                "user_id": user_id,
                "online": online,
                "conversation_id": conversation_id,
            })

    # ============== Introspection ==============

    def channel_members(self, conversation_id: str) -> Set[str]:
        return set(self._channels.get(conversation_id, ()))

    def _require_authenticated(self, sid: str) -> Connection:
        connection = self._connections.get(sid)
        if not connection or not connection.is_authenticated:
            raise CredentialsException("Not authenticated")
        return connection

    def _drop_member(self, conversation_id: str, sid: str):
        members = self._channels.get(conversation_id)
        if members is None:
            return
        members.discard(sid)
        if not members:
            del self._channels[conversation_id]

    def _acquire_channel_lock(self, conversation_id: str) -> asyncio.Lock:
        lock, users = self._locks.get(conversation_id) or (asyncio.Lock(), 0)
        self._locks[conversation_id] = (lock, users + 1)
        return lock

    def _release_channel_lock(self, conversation_id: str):
        entry = self._locks.get(conversation_id)
        if entry is None:
            return
        lock, users = entry
        if users <= 1:
            del self._locks[conversation_id]
        else:
            self._locks[conversation_id] = (lock, users - 1)


broadcaster = RealtimeBroadcaster(presence)
