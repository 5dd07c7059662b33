"""Evaluation Worker.

Long-running consumer of the evaluation queue. For each task it loads the
stored profile, asks the AI client for an evaluation, and patches only the
profile's tech_evaluation. Failures (missing profile, AI errors) raise so
the queue redelivers the task.

Run standalone:  python -m workers.evaluator
"""

from __future__ import annotations

import asyncio
import signal
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import structlog

from app.config import get_settings
from app.dependencies import build_services, close_redis, init_redis
from app.exceptions import ProfileNotFoundError
from app.logging_config import get_logger, setup_logging
from app.metrics import EVALUATIONS_TOTAL
from db.models import DeveloperProfile, TechEvaluation
from db.repository import DeveloperRepository
from db.session import close_mongo, get_developer_collection, init_mongo
from services.ai_client import AIClient
from services.work_queue import EvaluationTask, RedisWorkQueue

logger = get_logger(__name__)


def build_facts(profile: DeveloperProfile, task: EvaluationTask) -> dict[str, Any]:
    """Facts bundle for the evaluation prompt."""
    return {
        "username": profile.username,
        "name": profile.name,
        "bio": task.description or profile.bio,
        "location": profile.location,
        "email": profile.email,
        "profile_url": task.profile_url or profile.profile_url,
        "blog_url": task.blog_url or profile.blog_url,
        "skills": profile.skills,
        "repositories": task.repositories or profile.repositories,
        "star_count": profile.star_count,
        "commit_count": profile.commit_count,
        "fork_count": profile.fork_count,
    }


class EvaluationWorker:
    """Single consumer of the evaluation queue."""

    def __init__(
        self,
        queue: RedisWorkQueue,
        repository: DeveloperRepository,
        ai_client: AIClient,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self.queue = queue
        self.repository = repository
        self.ai_client = ai_client
        self.clock = clock
        self._stop_event = asyncio.Event()
        self._consumer: asyncio.Task | None = None

    async def process(self, task: EvaluationTask) -> None:
        """Evaluate one developer. Raises to trigger redelivery."""
        with structlog.contextvars.bound_contextvars(username=task.username):
            profile = await self.repository.find_by_username(task.username)
            if profile is None:
                EVALUATIONS_TOTAL.labels(status="missing_profile").inc()
                raise ProfileNotFoundError(task.username)

            try:
                result = await self.ai_client.evaluate_developer(build_facts(profile, task))
            except Exception:
                EVALUATIONS_TOTAL.labels(status="ai_error").inc()
                raise

            now = self.clock()
            evaluation = TechEvaluation(
                blog_url=task.blog_url,
                personal_site_url=task.profile_url,
                biography=task.description,
                specialties=result.specialties,
                experience=result.experience,
                ai_evaluation=result.evaluation,
                last_evaluated=now,
            )
            updated = await self.repository.update_tech_evaluation(
                task.username, evaluation, now=now
            )
            if not updated:
                EVALUATIONS_TOTAL.labels(status="missing_profile").inc()
                raise ProfileNotFoundError(task.username)

            EVALUATIONS_TOTAL.labels(status="success").inc()
            logger.info(
                "evaluation_stored",
                specialties=len(evaluation.specialties),
                attempts=task.attempts,
            )

    async def start(self) -> None:
        """Consume until stop() is called. Blocks."""
        self._stop_event.clear()
        logger.info("evaluation_worker_started", queue=self.queue.name)
        self._consumer = asyncio.ensure_future(
            self.queue.subscribe(self.process, self._stop_event)
        )
        await self._consumer
        logger.info("evaluation_worker_stopped")

    async def stop(self) -> None:
        """Stop after the in-flight task (if any) finishes."""
        self._stop_event.set()
        consumer = self._consumer
        if consumer is not None and consumer is not asyncio.current_task():
            await asyncio.wait({consumer})


async def _run() -> None:
    settings = get_settings()
    redis = await init_redis()
    await init_mongo()
    try:
        services = build_services(
            redis, get_developer_collection(), settings=settings, require_ai=True
        )
        worker = EvaluationWorker(services.queue, services.repository, services.ai_client)

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda: asyncio.ensure_future(worker.stop()))

        await worker.start()
    finally:
        await close_mongo()
        await close_redis()


def main() -> None:
    setup_logging()
    asyncio.run(_run())


if __name__ == "__main__":
    main()
