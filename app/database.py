"""MongoDB database connection manager."""

from pymongo import AsyncMongoClient
from beanie import init_beanie
from typing import Optional

from app.config import settings
from app.core.logging import logger
from app.features.conversations.models import Conversation
from app.features.messages.models import Message
from app.features.notifications.models import Notification, PushSubscription
from app.features.users.models import User


# Every document class registered with Beanie
DOCUMENT_MODELS = [
    User,
    Conversation,
    Message,
    Notification,
    PushSubscription,
]


class Database:
    """MongoDB database connection manager."""

    client: Optional[AsyncMongoClient] = None

    @classmethod
    async def connect_db(cls, url: Optional[str] = None, database_name: Optional[str] = None):
        """Connect to MongoDB and initialize Beanie."""
        database_name = database_name or settings.DATABASE_NAME
        cls.client = AsyncMongoClient(url or settings.MONGODB_URL, tz_aware=False)

        # Initialize Beanie with document models
        await init_beanie(
            database=cls.client[database_name],
            document_models=DOCUMENT_MODELS,
        )

        logger.info(f"Connected to MongoDB database: {database_name}")

    @classmethod
    async def close_db(cls):
        """Close MongoDB connection."""
        if cls.client:
            await cls.client.close()
            cls.client = None
            logger.info("Closed MongoDB connection")
