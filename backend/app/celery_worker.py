"""Celery worker for background enrichment batches.

The HTTP API hands a list of usernames to enrich_developers, which runs
the BatchEnricher against GitHub, MongoDB and Redis.

Docker Compose command: celery -A app.celery_worker worker --loglevel=info --concurrency=2
"""

from __future__ import annotations

import asyncio

from celery import Celery

from app.config import get_settings
from app.exceptions import ConfigurationError
from app.logging_config import get_logger, setup_logging
from services.batch import BatchEnricher
from services.retry import RetryPolicy

settings = get_settings()
logger = get_logger(__name__)

# Celery app instance
celery_app = Celery(
    "talentrank",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=3600,  # 1 hour hard limit
    task_soft_time_limit=3300,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_default_queue="enrichment",
    task_routes={
        "app.celery_worker.enrich_developers": {"queue": "enrichment"},
    },
)


@celery_app.task(
    bind=True,
    name="app.celery_worker.enrich_developers",
    max_retries=2,
    default_retry_delay=30,
)
def enrich_developers(self, usernames: list[str], concurrency: int | None = None) -> list[dict]:
    """Enrich a batch of GitHub usernames.

    Args:
        usernames: Raw usernames; invalid entries come back as failures
        concurrency: Worker count, clamped to 1..6

    Returns:
        One result dict per username, in input order
    """
    setup_logging()
    loop = asyncio.new_event_loop()
    try:
        results = loop.run_until_complete(
            _run_batch(usernames, concurrency or settings.batch_concurrency)
        )
    except ConfigurationError:
        raise
    except Exception as exc:
        # Infrastructure failures only; per-username errors are in the results
        logger.error("enrich_batch_failed", error=str(exc), retries=self.request.retries)
        if self.request.retries < self.max_retries:
            raise self.retry(exc=exc)
        raise
    finally:
        loop.close()
    return results


async def _run_batch(usernames: list[str], concurrency: int) -> list[dict]:
    """Open connections, run the batch and release everything."""
    from app.dependencies import build_services, close_redis, init_redis
    from db.session import close_mongo, get_developer_collection, init_mongo

    redis = await init_redis()
    await init_mongo()
    try:
        services = build_services(redis, get_developer_collection(), settings=settings)
        enricher = BatchEnricher(
            services.orchestrator,
            policy=RetryPolicy.from_settings(settings),
            max_concurrency=settings.batch_max_concurrency,
        )
        results = await enricher.run(usernames, concurrency=concurrency)
        return [result.to_dict() for result in results]
    finally:
        await close_mongo()
        await close_redis()
