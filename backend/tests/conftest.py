"""Shared test fixtures for the TalentRank backend."""

import asyncio
import copy
from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from types import SimpleNamespace
from typing import Any

import fakeredis.aioredis
import pytest
from httpx import ASGITransport, AsyncClient
from pydantic import SecretStr
from pymongo.errors import DuplicateKeyError

from app.config import Environment, Settings
from db.models import DeveloperProfile, TechEvaluation, username_key
from db.repository import SearchFilters


@pytest.fixture
def test_settings() -> Settings:
    """Provide test settings with safe defaults."""
    return Settings(
        environment=Environment.TESTING,
        debug=True,
        redis_url="redis://localhost:6379/15",
        mongo_url="mongodb://localhost:27017",
        mongo_db="talentrank_test",
        github_token=SecretStr("ghp_test_token_fake_value"),
        ai_api_key=SecretStr("sk-test-key-fake-value"),
        ai_api_base="https://ai.test/chat/completions",
        github_detail_concurrency=3,
        cors_origins=["http://localhost:3000"],
    )


@pytest.fixture
async def fake_redis() -> AsyncGenerator:
    """Provide a fake Redis instance for testing."""
    server = fakeredis.FakeServer()
    redis = fakeredis.aioredis.FakeRedis(server=server, decode_responses=True)
    yield redis
    await redis.aclose()


class FakeDeveloperRepository:
    """In-memory stand-in for DeveloperRepository, keyed by lower-cased login."""

    def __init__(self) -> None:
        self.profiles: dict[str, DeveloperProfile] = {}
        self.upserts: list[DeveloperProfile] = []

    async def ensure_indexes(self) -> None:
        return None

    async def find_by_username(self, username: str) -> DeveloperProfile | None:
        return self.profiles.get(username_key(username))

    async def find_by_id(self, developer_id: str) -> DeveloperProfile | None:
        for profile in self.profiles.values():
            if profile.id == developer_id:
                return profile
        return None

    async def upsert(self, profile: DeveloperProfile) -> DeveloperProfile:
        existing = self.profiles.get(username_key(profile.username))
        if existing is not None:
            profile = profile.model_copy(
                update={
                    "id": existing.id,
                    "created_at": existing.created_at,
                    "tech_evaluation": existing.tech_evaluation,
                }
            )
        self.profiles[username_key(profile.username)] = profile
        self.upserts.append(profile)
        return profile

    async def update_tech_evaluation(
        self, username: str, evaluation: TechEvaluation, now: datetime | None = None
    ) -> bool:
        key = username_key(username)
        profile = self.profiles.get(key)
        if profile is None:
            return False
        self.profiles[key] = profile.model_copy(
            update={"tech_evaluation": evaluation, "updated_at": now or datetime.now(UTC)}
        )
        return True

    async def delete_by_username(self, username: str) -> bool:
        return self.profiles.pop(username_key(username), None) is not None

    async def search(
        self,
        filters: SearchFilters,
        sort_by: str = "talent_rank",
        sort_asc: bool = False,
        page: int = 1,
        page_size: int = 10,
    ) -> list[DeveloperProfile]:
        profiles = sorted(
            self.profiles.values(),
            key=lambda p: getattr(p, sort_by),
            reverse=not sort_asc,
        )
        start = (page - 1) * page_size
        return profiles[start : start + page_size]

    async def count(self, filters: SearchFilters) -> int:
        return len(self.profiles)

    async def top(self, limit: int = 10) -> list[DeveloperProfile]:
        return sorted(self.profiles.values(), key=lambda p: p.talent_rank, reverse=True)[:limit]


@pytest.fixture
def fake_repository() -> FakeDeveloperRepository:
    return FakeDeveloperRepository()


class InMemoryDeveloperCollection:
    """Just enough of a motor collection to run DeveloperRepository writes.

    Enforces the unique ``username_key`` index: an upsert that finds nothing
    yields to the event loop before inserting, so two concurrent upserts of a
    new login race exactly like they do against MongoDB.
    """

    def __init__(self) -> None:
        self.documents: dict[str, dict[str, Any]] = {}

    def _match(self, filter_: dict[str, Any]) -> dict[str, Any] | None:
        for doc in self.documents.values():
            if all(doc.get(key) == value for key, value in filter_.items()):
                return doc
        return None

    async def find_one(self, filter_: dict[str, Any], *args: Any) -> dict[str, Any] | None:
        doc = self._match(filter_)
        return copy.deepcopy(doc) if doc is not None else None

    async def find_one_and_update(
        self, filter_: dict[str, Any], update: dict[str, Any], upsert: bool = False, **kwargs: Any
    ) -> dict[str, Any] | None:
        doc = self._match(filter_)
        if doc is None:
            if not upsert:
                return None
            await asyncio.sleep(0)
            doc = copy.deepcopy({**filter_, **update.get("$setOnInsert", {}), **update.get("$set", {})})
            if self._match({"username_key": doc["username_key"]}) is not None:
                raise DuplicateKeyError("E11000 duplicate key error: username_key_unique")
            self.documents[doc["_id"]] = doc
        else:
            doc.update(copy.deepcopy(update.get("$set", {})))
        return copy.deepcopy(doc)

    async def update_one(self, filter_: dict[str, Any], update: dict[str, Any]) -> SimpleNamespace:
        doc = self._match(filter_)
        if doc is None:
            return SimpleNamespace(matched_count=0)
        doc.update(copy.deepcopy(update.get("$set", {})))
        return SimpleNamespace(matched_count=1)

    async def delete_one(self, filter_: dict[str, Any]) -> SimpleNamespace:
        doc = self._match(filter_)
        if doc is None:
            return SimpleNamespace(deleted_count=0)
        del self.documents[doc["_id"]]
        return SimpleNamespace(deleted_count=1)


@pytest.fixture
def developer_collection() -> InMemoryDeveloperCollection:
    return InMemoryDeveloperCollection()


@pytest.fixture
async def app(fake_redis, fake_repository, test_settings):
    """Create a test application with an in-memory service container."""
    from unittest.mock import MagicMock

    from app.dependencies import get_services
    from app.main import create_app
    from services.developer_cache import DeveloperCache

    application = create_app()
    services = MagicMock()
    services.settings = test_settings
    services.redis = fake_redis
    services.repository = fake_repository
    services.cache = DeveloperCache(fake_redis, enabled=True)
    application.dependency_overrides[get_services] = lambda: services
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator:
    """Provide an async HTTP client for API testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
