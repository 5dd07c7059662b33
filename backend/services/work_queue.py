"""Evaluation Work Queue.

A Redis list used as a FIFO between the enrichment pipeline and the
evaluation worker. Producers LPUSH, consumers BRPOP, so the oldest task is
served first. Delivery is at-least-once: when the handler fails the task
is pushed back onto the queue after a delay and retried behind newer work.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

import redis.asyncio as aioredis
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError
from redis.exceptions import RedisError

from app.logging_config import get_logger
from app.metrics import QUEUE_PUBLISHED, QUEUE_REDELIVERED

logger = get_logger(__name__)

DEFAULT_QUEUE_NAME = "developer_evaluation"
POP_ERROR_BACKOFF = 1.0

TaskHandler = Callable[["EvaluationTask"], Awaitable[None]]


class EvaluationTask(BaseModel):
    """Request to run the AI evaluation for one stored developer."""

    username: str
    profile_url: str = ""
    blog_url: str = ""
    description: str = ""
    repositories: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    attempts: int = 0


class RedisWorkQueue:
    """Redis list FIFO with redeliver-on-failure."""

    def __init__(
        self,
        redis: aioredis.Redis,
        name: str = DEFAULT_QUEUE_NAME,
        redelivery_delay: float = 5.0,
        pop_timeout: int = 5,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.redis = redis
        self.name = name
        self.redelivery_delay = redelivery_delay
        self.pop_timeout = pop_timeout
        self._sleep = sleep

    async def publish(self, task: EvaluationTask) -> None:
        """Append a task. Raises RedisError if Redis is unreachable."""
        await self.redis.lpush(self.name, task.model_dump_json())
        QUEUE_PUBLISHED.inc()
        logger.debug("queue_task_published", queue=self.name, attempts=task.attempts)

    async def length(self) -> int:
        return await self.redis.llen(self.name)

    async def subscribe(self, handler: TaskHandler, stop_event: asyncio.Event) -> None:
        """Consume tasks one at a time until ``stop_event`` is set.

        BRPOP blocks for at most ``pop_timeout`` seconds so the stop event
        is observed while idle. A task being handled is never interrupted.
        """
        logger.info("queue_consumer_started", queue=self.name)
        while not stop_event.is_set():
            try:
                item = await self.redis.brpop([self.name], timeout=self.pop_timeout)
            except RedisError as exc:
                logger.error("queue_pop_failed", queue=self.name, error=str(exc))
                await self._sleep(POP_ERROR_BACKOFF)
                continue

            if item is None:
                continue

            _, raw = item
            try:
                task = EvaluationTask.model_validate_json(raw)
            except PydanticValidationError:
                logger.error("queue_task_undecodable", queue=self.name)
                continue

            try:
                await handler(task)
            except Exception as exc:
                logger.warning(
                    "queue_task_failed",
                    queue=self.name,
                    attempts=task.attempts,
                    error=str(exc),
                )
                await self._sleep(self.redelivery_delay)
                await self._redeliver(task)

        logger.info("queue_consumer_stopped", queue=self.name)

    async def _redeliver(self, task: EvaluationTask) -> None:
        retry = task.model_copy(update={"attempts": task.attempts + 1})
        try:
            await self.publish(retry)
        except RedisError as exc:
            logger.error("queue_task_redelivery_failed", queue=self.name, error=str(exc))
            return
        QUEUE_REDELIVERED.inc()
        logger.info("queue_task_redelivered", queue=self.name, attempts=retry.attempts)
