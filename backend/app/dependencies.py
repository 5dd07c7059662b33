"""Application-level dependencies.

Owns the Redis connection pool and builds the ServiceContainer: every
service is constructed once here and handed to routes, the Celery task
and the evaluation worker.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import redis.asyncio as aioredis
from fastapi import Request
from motor.motor_asyncio import AsyncIOMotorCollection

from app.config import Settings, get_settings
from app.logging_config import get_logger
from db.repository import DeveloperRepository
from services.ai_client import AIClient
from services.developer_cache import DeveloperCache
from services.enrichment import EnrichmentOrchestrator
from services.github_service import GitHubService
from services.nation_predictor import NationPredictor
from services.work_queue import RedisWorkQueue

logger = get_logger(__name__)

# Global Redis connection pool
_redis_pool: Optional[aioredis.Redis] = None


async def init_redis() -> aioredis.Redis:
    """Initialize Redis connection pool."""
    global _redis_pool
    settings = get_settings()
    _redis_pool = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=20,
    )
    # Test connection
    await _redis_pool.ping()
    return _redis_pool


async def close_redis() -> None:
    """Close Redis connection pool."""
    global _redis_pool
    if _redis_pool:
        await _redis_pool.aclose()
        _redis_pool = None


@dataclass
class ServiceContainer:
    """Handles to every long-lived service."""

    settings: Settings
    redis: aioredis.Redis
    repository: DeveloperRepository
    github: GitHubService
    predictor: NationPredictor
    cache: DeveloperCache
    queue: RedisWorkQueue
    orchestrator: EnrichmentOrchestrator
    ai_client: AIClient | None = None


def build_services(
    redis: aioredis.Redis,
    collection: AsyncIOMotorCollection,
    settings: Settings | None = None,
    require_ai: bool = False,
) -> ServiceContainer:
    """Wire the service graph.

    Raises ConfigurationError when the GitHub token is missing, or when
    ``require_ai`` is set and the AI key is missing. Without an AI key the
    nation predictor simply skips its AI stage.
    """
    settings = settings or get_settings()
    github = GitHubService(settings.require_github_token(), settings=settings)

    ai_client: AIClient | None = None
    if require_ai or settings.ai_api_key is not None:
        ai_client = AIClient(settings.require_ai_api_key(), settings=settings)
    else:
        logger.warning("ai_client_disabled", reason="TR_AI_API_KEY not set")

    repository = DeveloperRepository(collection)
    predictor = NationPredictor(ai_client)
    cache = DeveloperCache(redis, enabled=settings.cache_enabled)
    queue = RedisWorkQueue(
        redis,
        name=settings.queue_name,
        redelivery_delay=settings.queue_redelivery_delay,
        pop_timeout=settings.queue_pop_timeout,
    )
    orchestrator = EnrichmentOrchestrator(
        github=github,
        repository=repository,
        predictor=predictor,
        queue=queue,
        cache=cache,
    )
    return ServiceContainer(
        settings=settings,
        redis=redis,
        repository=repository,
        github=github,
        predictor=predictor,
        cache=cache,
        queue=queue,
        orchestrator=orchestrator,
        ai_client=ai_client,
    )


def get_services(request: Request) -> ServiceContainer:
    """FastAPI dependency returning the container built at startup."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise RuntimeError("Services not initialized. Application lifespan did not run.")
    return services
