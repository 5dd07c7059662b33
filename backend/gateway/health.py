"""Health monitoring.

Readiness checks for the two backing stores: Redis (cache + work queue)
and MongoDB (developer store).
"""

from __future__ import annotations

from typing import Any

import redis.asyncio as aioredis
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError
from redis.exceptions import RedisError

from app.logging_config import get_logger

logger = get_logger(__name__)


class HealthMonitor:
    """Monitors health of all application components."""

    def __init__(self, redis: aioredis.Redis, mongo: AsyncIOMotorClient | None) -> None:
        self.redis = redis
        self.mongo = mongo

    async def check_all(self) -> dict[str, Any]:
        """Run all health checks and return status."""
        redis_ok = await self._check_redis()
        mongo_ok = await self._check_mongo()

        all_healthy = redis_ok and mongo_ok

        return {
            "status": "healthy" if all_healthy else "degraded",
            "checks": {
                "redis": {"status": "ok" if redis_ok else "error"},
                "mongo": {"status": "ok" if mongo_ok else "error"},
            },
        }

    async def _check_redis(self) -> bool:
        """Check Redis connectivity."""
        try:
            await self.redis.ping()
            return True
        except (RedisError, OSError) as exc:
            logger.error("health_check_redis_failed", error=type(exc).__name__)
            return False

    async def _check_mongo(self) -> bool:
        """Check MongoDB connectivity."""
        if self.mongo is None:
            return False
        try:
            await self.mongo.admin.command("ping")
            return True
        except PyMongoError as exc:
            logger.error("health_check_mongo_failed", error=type(exc).__name__)
            return False
