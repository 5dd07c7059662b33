"""Batch Enrichment Driver.

Enriches a list of usernames with a fixed pool of long-lived workers
pulling from an asyncio.Queue. Each username is retried according to the
RetryPolicy; one failure never stops the rest of the batch.
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from app.exceptions import TalentRankError, ValidationError
from app.logging_config import get_logger
from app.metrics import BATCH_IN_FLIGHT
from db.models import DeveloperProfile, username_key
from services.enrichment import EnrichmentOrchestrator
from services.retry import RetryPolicy, with_retry

logger = get_logger(__name__)

MIN_CONCURRENCY = 1
MAX_CONCURRENCY = 6
MAX_USERNAME_LENGTH = 39

_USERNAME_RE = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9-]*[A-Za-z0-9])?$")


def clean_username(raw: str) -> str:
    """Normalise a scraped username and validate it against GitHub's rules.

    Trailing decorations such as ``"octocat · Follow"`` are stripped. Raises
    ValidationError when the result is not a legal GitHub login.
    """
    username = raw.strip().split(" ")[0].split("·")[0].strip()

    if not _USERNAME_RE.match(username):
        raise ValidationError(
            "Invalid GitHub username format", details={"username": username}
        )
    if "--" in username:
        raise ValidationError(
            "Invalid GitHub username format (consecutive hyphens)",
            details={"username": username},
        )
    if len(username) > MAX_USERNAME_LENGTH:
        raise ValidationError(
            f"Username too long (max {MAX_USERNAME_LENGTH} characters)",
            details={"username": username},
        )
    return username


def clamp_concurrency(concurrency: int, ceiling: int = MAX_CONCURRENCY) -> int:
    return max(MIN_CONCURRENCY, min(ceiling, concurrency))


@dataclass
class BatchItemResult:
    username: str
    success: bool
    error: str | None = None
    profile: DeveloperProfile | None = None

    def to_dict(self) -> dict:
        result: dict = {"username": self.username, "success": self.success}
        if self.error:
            result["error"] = self.error
        if self.profile is not None:
            result["talent_rank"] = round(self.profile.talent_rank, 2)
            result["nation"] = self.profile.nation
        return result


class BatchEnricher:
    """Runs EnrichmentOrchestrator over many usernames with bounded concurrency."""

    def __init__(
        self,
        orchestrator: EnrichmentOrchestrator,
        policy: RetryPolicy | None = None,
        force: bool = False,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        max_concurrency: int = MAX_CONCURRENCY,
    ) -> None:
        self.orchestrator = orchestrator
        self.policy = policy or RetryPolicy()
        self.force = force
        self.max_concurrency = max_concurrency
        self._sleep = sleep

    async def run(self, usernames: list[str], concurrency: int = 5) -> list[BatchItemResult]:
        """Enrich every username; results come back in input order.

        A login repeated in the batch (case-insensitively) is enriched once
        and every occurrence reports that outcome.
        """
        concurrency = clamp_concurrency(concurrency, self.max_concurrency)
        results: list[BatchItemResult | None] = [None] * len(usernames)
        queue: asyncio.Queue[tuple[int, str] | None] = asyncio.Queue()
        first_seen: dict[str, int] = {}
        repeats: dict[int, int] = {}

        for index, raw in enumerate(usernames):
            if not raw or not raw.strip():
                results[index] = BatchItemResult(username=raw, success=False, error="empty username")
                continue
            try:
                username = clean_username(raw)
            except ValidationError as exc:
                results[index] = BatchItemResult(username=raw, success=False, error=exc.message)
                continue
            key = username_key(username)
            if key in first_seen:
                repeats[index] = first_seen[key]
                continue
            first_seen[key] = index
            queue.put_nowait((index, username))

        for _ in range(concurrency):
            queue.put_nowait(None)

        logger.info(
            "batch_started",
            size=len(usernames),
            unique=len(first_seen),
            concurrency=concurrency,
        )
        await asyncio.gather(*(self._worker(queue, results) for _ in range(concurrency)))

        for index, original in repeats.items():
            results[index] = results[original]

        done = [r for r in results if r is not None]
        logger.info(
            "batch_completed",
            succeeded=sum(1 for r in done if r.success),
            failed=sum(1 for r in done if not r.success),
        )
        return done

    async def _worker(
        self,
        queue: asyncio.Queue[tuple[int, str] | None],
        results: list[BatchItemResult | None],
    ) -> None:
        while True:
            item = await queue.get()
            if item is None:
                return
            index, username = item
            results[index] = await self._enrich_one(username)

    async def _enrich_one(self, username: str) -> BatchItemResult:
        BATCH_IN_FLIGHT.inc()
        try:
            result = await with_retry(
                lambda: self.orchestrator.enrich(username, force=self.force),
                self.policy,
                sleep=self._sleep,
                operation="enrich",
            )
        except TalentRankError as exc:
            logger.warning("batch_item_failed", username=username, error=exc.code)
            return BatchItemResult(username=username, success=False, error=exc.message)
        except Exception as exc:
            logger.exception("batch_item_crashed", username=username)
            return BatchItemResult(username=username, success=False, error=str(exc))
        finally:
            BATCH_IN_FLIGHT.dec()
        return BatchItemResult(username=username, success=True, profile=result.profile)
