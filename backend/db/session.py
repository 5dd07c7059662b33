"""MongoDB connection management.

The developer store lives in a single MongoDB collection accessed through
motor. The client is created once at startup and closed on shutdown.
"""

from __future__ import annotations

from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorCollection,
    AsyncIOMotorDatabase,
)

from app.config import get_settings
from app.logging_config import get_logger

logger = get_logger(__name__)

_client: AsyncIOMotorClient | None = None


async def init_mongo() -> AsyncIOMotorClient:
    """Create the motor client and verify connectivity."""
    global _client
    settings = get_settings()

    _client = AsyncIOMotorClient(
        settings.mongo_url,
        serverSelectionTimeoutMS=settings.mongo_timeout_ms,
        tz_aware=True,
    )
    await _client.admin.command("ping")

    logger.info("mongo_client_initialized", database=settings.mongo_db)
    return _client


async def close_mongo() -> None:
    """Close the motor client."""
    global _client
    if _client:
        _client.close()
        _client = None
        logger.info("mongo_client_closed")


def get_mongo_client() -> AsyncIOMotorClient | None:
    return _client


def get_database() -> AsyncIOMotorDatabase:
    """Return the configured database handle."""
    if _client is None:
        raise RuntimeError("MongoDB not initialized. Call init_mongo() first.")
    return _client[get_settings().mongo_db]


def get_developer_collection() -> AsyncIOMotorCollection:
    return get_database()[get_settings().mongo_collection]
