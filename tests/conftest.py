"""
Test configuration and fixtures.

Provides:
- A throwaway MongoDB database per test (tests needing it are skipped
  when TEST_MONGODB_URL is not reachable)
- Seeded users and JWT minting for authenticated requests
- HTTPX AsyncClient over the ASGI app
- A mocked Socket.IO server bound to the broadcaster
"""
import os
import uuid
from types import SimpleNamespace
from typing import Dict
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from beanie import init_beanie
from httpx import AsyncClient, ASGITransport
from pymongo import AsyncMongoClient
from pymongo.errors import PyMongoError

from app.core.security import create_access_token
from app.database import DOCUMENT_MODELS
from app.features.realtime.broadcaster import broadcaster
from app.features.users.dependencies import get_current_user
from app.features.users.models import User, UserRole
from app.main import app


TEST_MONGODB_URL = os.environ.get("TEST_MONGODB_URL", "mongodb://localhost:27017")


# =============================================================================
# Realtime Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def sio():
    """Mocked Socket.IO server. Every emit is recorded on sio.emit."""
    server = MagicMock()
    server.emit = AsyncMock()
    server.enter_room = AsyncMock()
    server.leave_room = AsyncMock()

    broadcaster.reset()
    broadcaster.attach(server)
    yield server
    broadcaster.reset()
    broadcaster.attach(None)


def emitted(server, event: str):
    """(data, kwargs) of every emit of one event, in emit order."""
    return [
        (call.args[1], call.kwargs)
        for call in server.emit.await_args_list
        if call.args and call.args[0] == event
    ]


@pytest.fixture
def events():
    return emitted


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest_asyncio.fixture
async def db():
    """
    Fresh database for one test, dropped afterwards.

    Skips the test when no MongoDB server answers.
    """
    client = AsyncMongoClient(TEST_MONGODB_URL, serverSelectionTimeoutMS=1000)
    try:
        await client.admin.command("ping")
    except PyMongoError:
        await client.close()
        pytest.skip(f"MongoDB not reachable at {TEST_MONGODB_URL}")

    name = f"calmtunes_test_{uuid.uuid4().hex[:12]}"
    database = client[name]
    await init_beanie(database=database, document_models=DOCUMENT_MODELS)

    yield database

    await client.drop_database(name)
    await client.close()


@pytest.fixture
def make_user(db):
    """Factory inserting a user with a unique email."""
    async def _make_user(role: UserRole, name: str, **fields) -> User:
        user = User(
            email=f"{uuid.uuid4().hex[:10]}@calmtunes.app",
            name=name,
            role=role,
            **fields,
        )
        await user.insert()
        return user

    return _make_user


@pytest_asyncio.fixture
async def patient(make_user) -> User:
    return await make_user(UserRole.PATIENT, "Sam Rivera")


@pytest_asyncio.fixture
async def therapist(make_user) -> User:
    return await make_user(
        UserRole.THERAPIST,
        "Dr. Maya Collins",
        is_approved=True,
        specialty="Anxiety and depression",
    )


@pytest_asyncio.fixture
async def admin(make_user) -> User:
    return await make_user(UserRole.ADMIN, "CalmTunes Admin")


# =============================================================================
# Auth / HTTP Fixtures
# =============================================================================

def auth_headers(user_id: str) -> Dict[str, str]:
    token = create_access_token({"sub": str(user_id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers_for():
    return auth_headers


@pytest_asyncio.fixture
async def client():
    """HTTP client over the ASGI app. Lifespan is not run."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def login_as():
    """Bypass token lookup and act as an in-memory user (no database)."""
    def _login_as(user_id: str = "665f1c2e9b1e8a0012345671", role: UserRole = UserRole.PATIENT, name: str = "Sam Rivera"):
        user = SimpleNamespace(id=user_id, role=role, name=name, is_active=True)
        app.dependency_overrides[get_current_user] = lambda: user
        return user

    return _login_as
