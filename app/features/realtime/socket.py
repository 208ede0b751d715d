# Realtime Feature - Socket.IO Server

import socketio
from typing import Optional, Dict, Any
from pymongo.errors import PyMongoError
from app.config import settings
from app.core.security import decode_token
from app.core.logging import logger
from app.features.conversations.service import ConversationService
from app.features.realtime.broadcaster import broadcaster
from app.features.users.models import UserRole
from app.features.users.service import UserService
from app.shared.exceptions import (
    AppException,
    BadRequestException,
    CredentialsException,
    DependencyFailureException,
    InvalidStateException,
)


# Create Socket.IO server with ASGI support
sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins=settings.socket_cors_origins,
    logger=False,
    engineio_logger=False,
)


async def resolve_identity(auth_data: Optional[Dict]) -> Optional[Dict[str, Any]]:
    """
    Work out who a socket connection belongs to.

    A JWT in "token" is verified against the user store. Without a token,
    the declared {"user_id", "role"} is accepted as-is unless
    SOCKET_REQUIRE_TOKEN is set.

    Returns:
        {"user_id", "role", "name"} or None if the connection cannot be identified
    """
    if not isinstance(auth_data, dict):
        return None

    token = auth_data.get("token")
    if token:
        payload = decode_token(token)
        if not payload or not payload.get("sub"):
            logger.warning("Socket auth - invalid token")
            return None

        user = await UserService.get_user(payload["sub"])
        if not user or not user.is_active:
            logger.warning(f"Socket auth - user not found or inactive: {payload['sub']}")
            return None

        return {"user_id": str(user.id), "role": user.role.value, "name": user.name}

    if settings.SOCKET_REQUIRE_TOKEN:
        logger.warning("Socket auth - token required but not provided")
        return None

    user_id = auth_data.get("user_id")
    role = auth_data.get("role")
    if not user_id or role not in [r.value for r in UserRole]:
        return None

    return {"user_id": str(user_id), "role": role, "name": auth_data.get("name")}


def extract_conversation_id(data: Any) -> Optional[str]:
    """Accept both {"conversation_id": "..."} and a bare id."""
    if isinstance(data, str):
        return data or None
    if isinstance(data, dict) and data.get("conversation_id"):
        return str(data["conversation_id"])
    return None


async def emit_error(sid: str, error: AppException):
    await broadcaster.emit_to(sid, "error", {"code": error.code, "message": error.detail})


async def announce_presence(user_id: str, online: bool):
    """Tell the user's active conversations that they came online or went offline."""
    try:
        conversation_ids = await ConversationService.active_conversation_ids_for(user_id)
    except PyMongoError as e:
        logger.error(f"Could not load conversations for presence of {user_id}: {e}")
        return

    await broadcaster.broadcast_presence(user_id, online, conversation_ids)


async def bind_identity(sid: str, identity: Dict[str, Any]):
    came_online = await broadcaster.authenticate(
        sid,
        identity["user_id"],
        identity["role"],
        identity.get("name"),
    )

    logger.info(f"Socket {sid} authenticated as {identity['role']} {identity['user_id']}")

    await broadcaster.emit_to(sid, "authenticated", {
        "user_id": identity["user_id"],
        "role": identity["role"],
        "message": "Authenticated successfully",
    })

    if came_online:
        await announce_presence(identity["user_id"], True)


@sio.event
async def connect(sid, environ, auth=None):
    """Handle client connection. A token in the auth payload authenticates right away."""
    broadcaster.connect(sid)
    logger.info(f"Socket connected: {sid}")

    await broadcaster.emit_to(sid, "connected", {
        "sid": sid,
        "message": "Connected successfully",
    })

    if auth:
        try:
            identity = await resolve_identity(auth)
            if identity:
                await bind_identity(sid, identity)
            else:
                logger.warning(f"Socket {sid} sent unusable auth data on connect")
        except AppException as e:
            await emit_error(sid, e)
        except PyMongoError as e:
            logger.error(f"Socket {sid} could not be authenticated on connect: {e}")
            await emit_error(sid, DependencyFailureException())

    return True


@sio.event
async def authenticate(sid, data):
    """
    Authenticate an open connection.

    Args:
        data: {"token": "..."} or {"user_id": "...", "role": "..."}
    """
    try:
        identity = await resolve_identity(data)
        if not identity:
            logger.warning(f"Socket authentication failed: {sid}")
            await emit_error(sid, CredentialsException("Authentication failed"))
            return

        await bind_identity(sid, identity)
    except AppException as e:
        await emit_error(sid, e)
    except PyMongoError as e:
        logger.error(f"Socket {sid} could not be authenticated: {e}")
        await emit_error(sid, DependencyFailureException())


@sio.event
async def join_conversation(sid, data):
    """
    Join a conversation room.

    Args:
        data: {"conversation_id": "..."}
    """
    conversation_id = extract_conversation_id(data)
    if not conversation_id:
        await emit_error(sid, BadRequestException("conversation_id required"))
        return

    connection = broadcaster.get(sid)

    try:
        if not connection or not connection.is_authenticated:
            raise CredentialsException("Not authenticated")

        await ConversationService.get_conversation_for_participant(conversation_id, connection.user_id)
        await broadcaster.join(sid, conversation_id)
    except AppException as e:
        logger.warning(f"Socket {sid} could not join conversation {conversation_id}: {e.detail}")
        await emit_error(sid, e)
        return
    except PyMongoError as e:
        logger.error(f"Socket {sid} could not join conversation {conversation_id}: {e}")
        await emit_error(sid, DependencyFailureException())
        return

    logger.info(f"User {connection.user_id} joined conversation {conversation_id}")

    await broadcaster.emit_to(sid, "joined", {
        "conversation_id": conversation_id,
        "message": "Joined conversation",
    })

    # Notify others in the room
    await broadcaster.publish(conversation_id, "user_joined", {
        "conversation_id": conversation_id,
        "user_id": connection.user_id,
        "user_name": connection.name,
        "role": connection.role,
    }, skip_sid=sid)


@sio.event
async def leave_conversation(sid, data):
    """
    Leave a conversation room.

    Args:
        data: {"conversation_id": "..."}
    """
    conversation_id = extract_conversation_id(data)
    if not conversation_id:
        return

    try:
        left = await broadcaster.leave(sid, conversation_id)
    except AppException as e:
        await emit_error(sid, e)
        return

    if not left:
        return

    connection = broadcaster.get(sid)
    logger.info(f"User {connection.user_id} left conversation {conversation_id}")

    await broadcaster.publish(conversation_id, "user_left", {
        "conversation_id": conversation_id,
        "user_id": connection.user_id,
        "user_name": connection.name,
    }, skip_sid=sid)


@sio.event
async def typing(sid, data):
    """
    Handle typing indicator.

    Args:
        data: {"conversation_id": "...", "is_typing": true/false}
    """
    conversation_id = extract_conversation_id(data)
    if not conversation_id:
        return

    connection = broadcaster.get(sid)
    if not connection or conversation_id not in connection.channels:
        await emit_error(sid, InvalidStateException("Join the conversation first"))
        return

    is_typing = data.get("is_typing", True) if isinstance(data, dict) else True

    await broadcaster.publish(conversation_id, "user_typing", {
        "conversation_id": conversation_id,
        "user_id": connection.user_id,
        "user_name": connection.name,
        "is_typing": bool(is_typing),
    }, skip_sid=sid)


@sio.event
async def disconnect(sid, reason=None):
    """Handle client disconnection."""
    connection, went_offline = broadcaster.disconnect(sid)

    if not connection or not connection.user_id:
        logger.info(f"Socket disconnected: {sid}")
        return

    logger.info(f"Socket disconnected: {sid} ({connection.role}: {connection.user_id})")

    if went_offline:
        await announce_presence(connection.user_id, False)


# Create ASGI app for Socket.IO
socket_app = socketio.ASGIApp(sio)
