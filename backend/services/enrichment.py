"""Developer Enrichment Orchestrator.

Runs the per-username pipeline:

    CHECK_FRESHNESS -> FETCHING -> AGGREGATING -> SCORING
        -> PERSISTING -> ENQUEUING -> DONE

Any stage may end in ERROR, in which case the error propagates to the
caller (which owns the retry policy). Cache and queue failures are
absorbed; GitHub and store failures are not.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

import structlog

from app.logging_config import get_logger
from app.metrics import ENRICHMENT_DURATION, ENRICHMENTS_TOTAL
from db.models import (
    DeveloperProfile,
    ValidationSnapshot,
    update_frequency_for,
    username_key,
)
from db.repository import DeveloperRepository
from services import scoring_engine
from services.developer_cache import DeveloperCache, cache_ttl_for
from services.github_service import GitHubService, RepositoryRecord, UserRecord
from services.nation_predictor import NationPredictor, PredictionResult
from services.work_queue import EvaluationTask, RedisWorkQueue

logger = get_logger(__name__)

# Data-quality thresholds for the validation snapshot
MIN_STARS = 5
MIN_CONTRIBUTIONS = 10
MAX_INACTIVE = timedelta(days=365)


class EnrichmentState(str, Enum):
    CHECK_FRESHNESS = "check_freshness"
    FETCHING = "fetching"
    AGGREGATING = "aggregating"
    SCORING = "scoring"
    PERSISTING = "persisting"
    ENQUEUING = "enqueuing"
    DONE = "done"
    ERROR = "error"


@dataclass
class EnrichmentResult:
    profile: DeveloperProfile
    state: EnrichmentState = EnrichmentState.DONE
    from_cache: bool = False
    from_store: bool = False


@dataclass
class Aggregates:
    """Repository-derived totals. Sums exclude forks."""

    skills: list[str] = field(default_factory=list)
    repositories: list[str] = field(default_factory=list)
    repository_urls: dict[str, str] = field(default_factory=dict)
    repo_stars: dict[str, int] = field(default_factory=dict)
    star_count: int = 0
    fork_count: int = 0
    commit_count: int = 0
    last_active: datetime | None = None


def aggregate(repos: list[RepositoryRecord]) -> Aggregates:
    skills: set[str] = set()
    names: set[str] = set()
    result = Aggregates()

    for repo in repos:
        if repo.language:
            skills.add(repo.language)
        skills.update(lang for lang in repo.languages if lang)
        if repo.name:
            names.add(repo.name)
            if repo.html_url:
                result.repository_urls[repo.name] = repo.html_url
        if repo.updated_at and (result.last_active is None or repo.updated_at > result.last_active):
            result.last_active = repo.updated_at

        if repo.fork:
            continue
        result.star_count += repo.stargazers_count
        result.fork_count += repo.forks_count
        result.commit_count += repo.size
        if repo.name:
            result.repo_stars[repo.name] = repo.stargazers_count

    result.skills = sorted(skills)
    result.repositories = sorted(names)
    return result


def build_validation(
    username: str, agg: Aggregates, confidence: float, now: datetime
) -> ValidationSnapshot:
    issues: list[str] = []
    if not username:
        issues.append("missing_username")
    if agg.last_active is None or now - agg.last_active > MAX_INACTIVE:
        issues.append("inactive")
    if agg.star_count < MIN_STARS:
        issues.append("low_stars")
    if agg.commit_count < MIN_CONTRIBUTIONS:
        issues.append("low_contributions")
    return ValidationSnapshot(
        is_valid=not issues,
        confidence=confidence,
        last_validated_at=now,
        issues=issues,
    )


def _utcnow() -> datetime:
    return datetime.now(UTC)


class EnrichmentOrchestrator:
    """Enriches one username at a time; safe to call concurrently."""

    def __init__(
        self,
        github: GitHubService,
        repository: DeveloperRepository,
        predictor: NationPredictor,
        queue: RedisWorkQueue | None = None,
        cache: DeveloperCache | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.github = github
        self.repository = repository
        self.predictor = predictor
        self.queue = queue
        self.cache = cache
        self.clock = clock

    async def enrich(self, username: str, force: bool = False) -> EnrichmentResult:
        """Return a fresh profile for ``username``, fetching and scoring if needed."""
        with structlog.contextvars.bound_contextvars(
            username=username, enrichment_state=EnrichmentState.CHECK_FRESHNESS.value
        ):
            try:
                with ENRICHMENT_DURATION.time():
                    result = await self._run(username, force)
            except Exception as exc:
                ENRICHMENTS_TOTAL.labels(outcome="error").inc()
                logger.warning(
                    "enrichment_failed",
                    state=EnrichmentState.ERROR.value,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                raise
            if result.from_cache:
                ENRICHMENTS_TOTAL.labels(outcome="cache_hit").inc()
            elif result.from_store:
                ENRICHMENTS_TOTAL.labels(outcome="fresh_in_store").inc()
            else:
                ENRICHMENTS_TOTAL.labels(outcome="enriched").inc()
            logger.info("enrichment_completed", state=result.state.value)
            return result

    # --- Pipeline ---

    async def _run(self, username: str, force: bool) -> EnrichmentResult:
        now = self.clock()

        self._transition(EnrichmentState.CHECK_FRESHNESS)
        existing: DeveloperProfile | None = None
        if not force:
            cached = await self._read_cache(username, now)
            if cached is not None:
                return EnrichmentResult(profile=cached, from_cache=True)

            existing = await self.repository.find_by_username(username)
            if existing is not None and now < existing.refresh_due_at:
                logger.info("enrichment_skipped_fresh")
                await self._write_cache(existing, now)
                return EnrichmentResult(profile=existing, from_store=True)
        else:
            existing = await self.repository.find_by_username(username)

        self._transition(EnrichmentState.FETCHING)
        user, repos = await self._fetch(username)

        self._transition(EnrichmentState.AGGREGATING)
        login = user.login or username
        agg = aggregate(repos)

        self._transition(EnrichmentState.SCORING)
        commit_counts = await self._count_commits(login, repos)
        contribution = scoring_engine.contribution_level(login, repos, commit_counts)
        importance = scoring_engine.project_importance(repos, now)
        metrics = scoring_engine.build_metrics(
            commit_count=agg.commit_count,
            star_count=agg.star_count,
            fork_count=agg.fork_count,
            repository_count=len(repos),
            followers=user.followers,
            skills=agg.skills,
            project_quality=importance,
            recognition=contribution,
        )
        talent_rank = scoring_engine.talent_rank(metrics)
        confidence = scoring_engine.generic_confidence(
            agg.commit_count, agg.star_count, user.followers, bool(user.location)
        )
        prediction = await self.predictor.predict(
            login, user, repos, facts=self._facts(login, user, agg)
        )

        self._transition(EnrichmentState.PERSISTING)
        if existing is None and username_key(login) != username_key(username):
            existing = await self.repository.find_by_username(login)
        profile = self._build_profile(
            login, user, agg, talent_rank, confidence, prediction, existing, now
        )
        profile = await self.repository.upsert(profile)
        logger.info(
            "enrichment_persisted",
            talent_rank=round(profile.talent_rank, 2),
            nation=profile.nation,
            nation_source=prediction.source,
        )

        self._transition(EnrichmentState.ENQUEUING)
        await self._enqueue(profile, user)
        await self._write_cache(profile, now)

        return EnrichmentResult(profile=profile)

    def _transition(self, state: EnrichmentState) -> None:
        structlog.contextvars.bind_contextvars(enrichment_state=state.value)
        logger.debug("enrichment_state_changed")

    async def _fetch(self, username: str) -> tuple[UserRecord, list[RepositoryRecord]]:
        """Fetch user and repositories concurrently; the first failure cancels the other."""
        user_task = asyncio.ensure_future(self.github.fetch_user(username))
        repos_task = asyncio.ensure_future(self.github.fetch_repositories(username))
        try:
            user, repos = await asyncio.gather(user_task, repos_task)
        except BaseException:
            for task in (user_task, repos_task):
                task.cancel()
            await asyncio.gather(user_task, repos_task, return_exceptions=True)
            raise
        return user, repos

    async def _count_commits(
        self, login: str, repos: list[RepositoryRecord]
    ) -> dict[str, int]:
        own = [repo for repo in repos if not repo.fork and repo.name]
        counts = await asyncio.gather(
            *(
                self.github.count_user_commits(login, repo.owner_login or login, repo.name)
                for repo in own
            )
        )
        return {repo.name: count for repo, count in zip(own, counts)}

    @staticmethod
    def _facts(login: str, user: UserRecord, agg: Aggregates) -> dict[str, Any]:
        return {
            "username": login,
            "name": user.name,
            "email": user.email,
            "location": user.location,
            "bio": user.bio,
            "company": user.company,
            "profile_url": user.html_url,
            "blog_url": user.blog,
            "skills": agg.skills,
            "repositories": agg.repositories,
            "star_count": agg.star_count,
            "commit_count": agg.commit_count,
            "fork_count": agg.fork_count,
        }

    def _build_profile(
        self,
        login: str,
        user: UserRecord,
        agg: Aggregates,
        talent_rank: float,
        confidence: float,
        prediction: PredictionResult,
        existing: DeveloperProfile | None,
        now: datetime,
    ) -> DeveloperProfile:
        identity: dict[str, Any] = {"created_at": now}
        if existing is not None:
            identity = {
                "id": existing.id,
                "created_at": existing.created_at,
                "tech_evaluation": existing.tech_evaluation,
            }

        return DeveloperProfile(
            username=login,
            name=user.name or login,
            email=user.email,
            location=user.location,
            bio=user.bio,
            company=user.company,
            avatar_url=user.avatar_url,
            profile_url=user.html_url,
            blog_url=user.blog,
            skills=agg.skills,
            repositories=agg.repositories,
            repository_urls=agg.repository_urls,
            repo_stars=agg.repo_stars,
            star_count=agg.star_count,
            fork_count=agg.fork_count,
            commit_count=agg.commit_count,
            followers=user.followers,
            talent_rank=talent_rank,
            confidence=confidence,
            nation=prediction.nation,
            nation_confidence=prediction.confidence if prediction.nation else 0.0,
            nation_factors=prediction.factors if prediction.nation else [],
            updated_at=now,
            last_updated=now,
            last_active=agg.last_active,
            update_frequency=update_frequency_for(agg.commit_count),
            data_validation=build_validation(login, agg, confidence, now),
            **identity,
        )

    # --- Best-effort side effects ---

    async def _read_cache(self, username: str, now: datetime) -> DeveloperProfile | None:
        if self.cache is None:
            return None
        envelope = await self.cache.get(username)
        if envelope is None:
            return None

        profile = envelope.profile
        ttl = timedelta(seconds=cache_ttl_for(profile.commit_count))
        if now < profile.refresh_due_at and now - envelope.cached_at < ttl:
            logger.info("enrichment_cache_hit")
            return profile
        return None

    async def _write_cache(self, profile: DeveloperProfile, now: datetime) -> None:
        if self.cache is not None:
            await self.cache.set(profile, now=now)

    async def _enqueue(self, profile: DeveloperProfile, user: UserRecord) -> None:
        if self.queue is None:
            return
        task = EvaluationTask(
            username=profile.username,
            profile_url=profile.profile_url,
            blog_url=user.blog,
            description=user.bio,
            repositories=profile.repositories,
            created_at=self.clock(),
        )
        try:
            await self.queue.publish(task)
        except Exception as exc:
            # Evaluation is best-effort; the profile is already stored
            logger.warning(
                "enrichment_enqueue_failed", error=str(exc), error_type=type(exc).__name__
            )
