"""Developer repository.

All reads and writes of DeveloperProfile documents go through this class.
Identity is the lower-cased login (``username_key``): a unique index backs
every upsert, and a concurrent insert race converges into an update of
whichever document won.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime, timedelta
from typing import Any

from motor.motor_asyncio import AsyncIOMotorCollection
from pydantic import BaseModel, Field
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from app.logging_config import get_logger
from db.models import DeveloperProfile, TechEvaluation, username_key

logger = get_logger(__name__)

# Minimum nation confidence for a nation filter to match
NATION_FILTER_MIN_CONFIDENCE = 60

SORTABLE_FIELDS = (
    "talent_rank",
    "star_count",
    "commit_count",
    "updated_at",
    "nation_confidence",
)

DOMAIN_SKILLS: dict[str, list[str]] = {
    "backend": [
        "Go", "Java", "Python", "Ruby", "PHP", "C++", "C#", "Node.js", "Rust",
        "Scala", "Kotlin", "Spring", "Django", "Laravel", "Express",
    ],
    "frontend": [
        "JavaScript", "TypeScript", "React", "Vue", "Angular", "HTML", "CSS",
        "Svelte", "Next.js", "Nuxt.js", "Webpack", "Sass", "Less", "TailwindCSS",
    ],
    "mobile": [
        "Swift", "Kotlin", "Java", "Objective-C", "Flutter", "React Native",
        "Android", "iOS", "Xamarin", "Dart",
    ],
    "ai": [
        "Python", "TensorFlow", "PyTorch", "Jupyter Notebook", "R",
        "Scikit-learn", "Pandas", "NumPy", "CUDA", "OpenCV",
    ],
    "devops": [
        "Docker", "Kubernetes", "Jenkins", "Ansible", "Terraform", "Shell",
        "AWS", "Azure", "GCP", "GitLab", "CircleCI", "Prometheus", "Grafana",
    ],
    "database": [
        "SQL", "MongoDB", "Redis", "PostgreSQL", "MySQL", "Oracle",
        "Cassandra", "Elasticsearch",
    ],
    "security": [
        "Python", "C", "Assembly", "Shell", "Ruby", "Go", "Metasploit",
        "Wireshark", "Burp Suite",
    ],
    "blockchain": [
        "Solidity", "Go", "JavaScript", "Rust", "C++", "Web3.js", "Ethereum",
        "Smart Contracts",
    ],
    "gamedev": [
        "C++", "C#", "Unity", "Unreal Engine", "JavaScript", "OpenGL",
        "DirectX", "Vulkan", "SDL", "SFML",
    ],
    "embedded": [
        "C", "C++", "Assembly", "Arduino", "Raspberry Pi", "RTOS", "ARM", "IoT",
    ],
    "systems": [
        "C", "C++", "Rust", "Go", "Assembly", "Linux", "Windows", "Kernel",
        "Drivers",
    ],
}


class SearchFilters(BaseModel):
    """Developer search criteria. Every field is optional and ANDed."""

    keyword: str | None = None
    name: str | None = None
    domain: str | None = None
    nations: list[str] = Field(default_factory=list)
    skills: list[str] = Field(default_factory=list)
    min_activity_days: int | None = None
    min_commits: int | None = None
    min_stars: int | None = None
    min_rank: float | None = None
    updated_after: datetime | None = None

    def to_query(self, now: datetime | None = None) -> dict[str, Any]:
        """Build the MongoDB filter document."""
        now = now or datetime.now(UTC)
        conditions: list[dict[str, Any]] = []

        if self.keyword:
            pattern = {"$regex": re.escape(self.keyword), "$options": "i"}
            conditions.append({
                "$or": [
                    {"username": pattern},
                    {"name": pattern},
                    {"email": pattern},
                    {"location": pattern},
                ]
            })

        if self.name:
            pattern = {"$regex": re.escape(self.name), "$options": "i"}
            conditions.append({"$or": [{"name": pattern}, {"username": pattern}]})

        if self.domain:
            domain_skills = DOMAIN_SKILLS.get(self.domain.lower())
            if domain_skills:
                conditions.append({"skills": {"$in": domain_skills}})

        nations = [n.strip().upper() for n in self.nations if n and n.strip()]
        if nations:
            conditions.append({
                "$or": [
                    {
                        "nation": nation,
                        "nation_confidence": {"$gte": NATION_FILTER_MIN_CONFIDENCE},
                    }
                    for nation in nations
                ]
            })

        if self.skills:
            conditions.append({"skills": {"$all": self.skills}})

        if self.min_activity_days is not None:
            since = now - timedelta(days=self.min_activity_days)
            conditions.append({"last_updated": {"$gte": since}})

        if self.min_commits is not None:
            conditions.append({"commit_count": {"$gte": self.min_commits}})

        if self.min_stars is not None:
            conditions.append({"star_count": {"$gte": self.min_stars}})

        if self.min_rank is not None:
            conditions.append({"talent_rank": {"$gte": self.min_rank}})

        if self.updated_after is not None:
            conditions.append({"updated_at": {"$gte": self.updated_after}})

        if not conditions:
            return {}
        return {"$and": conditions}


def _by_login(username: str) -> dict[str, str]:
    return {"username_key": username_key(username)}


class DeveloperRepository:
    """MongoDB-backed store of DeveloperProfile documents."""

    def __init__(self, collection: AsyncIOMotorCollection) -> None:
        self.collection = collection

    async def ensure_indexes(self) -> None:
        await self.collection.create_index(
            [("username_key", ASCENDING)],
            unique=True,
            name="username_key_unique",
        )
        await self.collection.create_index(
            [("talent_rank", DESCENDING)],
            name="talent_rank_desc",
        )
        await self.collection.create_index(
            [("nation", ASCENDING), ("nation_confidence", DESCENDING)],
            name="nation_confidence",
        )
        await self.collection.create_index([("skills", ASCENDING)], name="skills")

    async def find_by_username(self, username: str) -> DeveloperProfile | None:
        doc = await self.collection.find_one(_by_login(username))
        if doc is None:
            return None
        return DeveloperProfile.from_document(doc)

    async def find_by_id(self, developer_id: str) -> DeveloperProfile | None:
        doc = await self.collection.find_one({"_id": developer_id})
        if doc is None:
            return None
        return DeveloperProfile.from_document(doc)

    async def upsert(self, profile: DeveloperProfile) -> DeveloperProfile:
        """Insert or update the profile keyed by its lower-cased login.

        ``_id`` and ``created_at`` are only written on insert, so an update
        keeps the stored identity. ``tech_evaluation`` is likewise only set on
        insert; afterwards the evaluation worker owns it through
        update_tech_evaluation. If a concurrent writer inserted the same
        login first, the unique index rejects our insert and the write is
        repeated once, now as an update of the winner's document.
        """
        document = profile.to_document()
        on_insert = {
            "_id": document.pop("_id"),
            "created_at": document.pop("created_at"),
            "tech_evaluation": document.pop("tech_evaluation"),
        }
        update = {"$set": document, "$setOnInsert": on_insert}

        try:
            stored = await self._write(profile.username, update)
        except DuplicateKeyError:
            logger.info("developer_upsert_converged", username=profile.username)
            stored = await self._write(profile.username, update)
        return DeveloperProfile.from_document(stored)

    async def _write(self, username: str, update: dict[str, Any]) -> dict[str, Any]:
        return await self.collection.find_one_and_update(
            _by_login(username),
            update,
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )

    async def update_tech_evaluation(
        self,
        username: str,
        evaluation: TechEvaluation,
        now: datetime | None = None,
    ) -> bool:
        """Patch only tech_evaluation and updated_at. Returns False if absent."""
        result = await self.collection.update_one(
            _by_login(username),
            {
                "$set": {
                    "tech_evaluation": evaluation.model_dump(),
                    "updated_at": now or datetime.now(UTC),
                }
            },
        )
        return result.matched_count > 0

    async def delete_by_username(self, username: str) -> bool:
        result = await self.collection.delete_one(_by_login(username))
        return result.deleted_count > 0

    async def search(
        self,
        filters: SearchFilters,
        sort_by: str = "talent_rank",
        sort_asc: bool = False,
        page: int = 1,
        page_size: int = 10,
    ) -> list[DeveloperProfile]:
        if sort_by not in SORTABLE_FIELDS:
            sort_by = "talent_rank"
        direction = ASCENDING if sort_asc else DESCENDING
        page = max(page, 1)

        cursor = (
            self.collection.find(filters.to_query(), {"tech_evaluation": 0})
            .sort([(sort_by, direction), ("username", ASCENDING)])
            .skip((page - 1) * page_size)
            .limit(page_size)
        )
        return [DeveloperProfile.from_document(doc) async for doc in cursor]

    async def count(self, filters: SearchFilters) -> int:
        return await self.collection.count_documents(filters.to_query())

    async def top(self, limit: int = 10) -> list[DeveloperProfile]:
        cursor = (
            self.collection.find({}, {"tech_evaluation": 0})
            .sort([("talent_rank", DESCENDING), ("username", ASCENDING)])
            .limit(limit)
        )
        return [DeveloperProfile.from_document(doc) async for doc in cursor]
