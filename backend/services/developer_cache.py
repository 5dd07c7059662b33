"""Developer Cache.

Redis cache of enriched profiles, keyed ``developer:<username>``.
Entries are a typed envelope so the same schema is used to write and read.
The cache is best-effort: every Redis failure is logged and treated as a
miss, never raised to the caller.
"""

from __future__ import annotations

from datetime import UTC, datetime

import redis.asyncio as aioredis
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError
from redis.exceptions import RedisError

from app.config import get_settings
from app.logging_config import get_logger
from app.metrics import CACHE_ERRORS, CACHE_HITS, CACHE_MISSES
from db.models import DeveloperProfile, username_key

logger = get_logger(__name__)

# Expiration tiers (seconds): busier developers go stale sooner
CACHE_TTL_VERY_ACTIVE = 6 * 3600
CACHE_TTL_ACTIVE = 12 * 3600
CACHE_TTL_DEFAULT = 24 * 3600


def cache_ttl_for(commit_count: int) -> int:
    if commit_count > 1000:
        return CACHE_TTL_VERY_ACTIVE
    if commit_count > 500:
        return CACHE_TTL_ACTIVE
    return CACHE_TTL_DEFAULT


class CacheEnvelope(BaseModel):
    """What is stored under a developer key."""

    profile: DeveloperProfile
    cached_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class DeveloperCache:
    """Redis-backed profile cache."""

    PREFIX = "developer:"

    def __init__(self, redis: aioredis.Redis, enabled: bool | None = None) -> None:
        self.redis = redis
        self.enabled = get_settings().cache_enabled if enabled is None else enabled

    def _key(self, username: str) -> str:
        return f"{self.PREFIX}{username_key(username)}"

    async def get(self, username: str) -> CacheEnvelope | None:
        """Return the cached envelope, or None on miss or any failure."""
        if not self.enabled:
            return None
        try:
            raw = await self.redis.get(self._key(username))
        except RedisError as exc:
            CACHE_ERRORS.labels(operation="get").inc()
            logger.warning("developer_cache_read_failed", error=str(exc))
            return None

        if raw is None:
            CACHE_MISSES.inc()
            return None

        try:
            envelope = CacheEnvelope.model_validate_json(raw)
        except PydanticValidationError:
            CACHE_ERRORS.labels(operation="decode").inc()
            logger.warning("developer_cache_entry_invalid")
            return None

        CACHE_HITS.inc()
        return envelope

    async def set(self, profile: DeveloperProfile, now: datetime | None = None) -> bool:
        """Cache the profile with its activity-tier TTL. Returns False on failure."""
        if not self.enabled:
            return False
        envelope = CacheEnvelope(profile=profile, cached_at=now or datetime.now(UTC))
        ttl = cache_ttl_for(profile.commit_count)
        try:
            await self.redis.setex(
                self._key(profile.username), ttl, envelope.model_dump_json(by_alias=True)
            )
        except RedisError as exc:
            CACHE_ERRORS.labels(operation="set").inc()
            logger.warning("developer_cache_write_failed", error=str(exc))
            return False
        return True

    async def delete(self, username: str) -> None:
        if not self.enabled:
            return
        try:
            await self.redis.delete(self._key(username))
        except RedisError as exc:
            CACHE_ERRORS.labels(operation="delete").inc()
            logger.warning("developer_cache_delete_failed", error=str(exc))
