"""Document models for the developer store.

A DeveloperProfile is the single persisted record per GitHub username.
Scores are clamped and the skill/repository sets normalised by validators
so every write path (enrichment, API, tests) produces the same shape.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Seconds between refreshes
UPDATE_FREQUENCY_ACTIVE = 24 * 3600
UPDATE_FREQUENCY_DEFAULT = 7 * 24 * 3600
ACTIVE_COMMIT_THRESHOLD = 1000


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _clamp_score(value: float) -> float:
    return max(0.0, min(100.0, float(value)))


def _normalise_set(values: list[str]) -> list[str]:
    return sorted({v.strip() for v in values if v and v.strip()})


def username_key(username: str) -> str:
    """Lookup key for a GitHub login; logins are case-insensitive."""
    return username.strip().lower()


def update_frequency_for(commit_count: int) -> int:
    """Refresh interval in seconds: daily for very active developers, else weekly."""
    if commit_count > ACTIVE_COMMIT_THRESHOLD:
        return UPDATE_FREQUENCY_ACTIVE
    return UPDATE_FREQUENCY_DEFAULT


class ValidationSnapshot(BaseModel):
    """Outcome of the last data-quality check."""

    is_valid: bool = True
    confidence: float = 0.0
    last_validated_at: datetime = Field(default_factory=_utcnow)
    issues: list[str] = Field(default_factory=list)

    @field_validator("confidence")
    @classmethod
    def clamp_confidence(cls, v: float) -> float:
        return _clamp_score(v)


class TechEvaluation(BaseModel):
    """AI commentary attached by the evaluation worker."""

    blog_url: str = ""
    personal_site_url: str = ""
    biography: str = ""
    specialties: list[str] = Field(default_factory=list)
    experience: dict[str, str] = Field(default_factory=dict)
    ai_evaluation: str = ""
    last_evaluated: datetime = Field(default_factory=_utcnow)


class DeveloperProfile(BaseModel):
    """Enriched developer record, one per username."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex, alias="_id")
    username: str
    name: str = ""
    email: str = ""
    location: str = ""
    bio: str = ""
    company: str = ""
    avatar_url: str = ""
    profile_url: str = ""
    blog_url: str = ""

    skills: list[str] = Field(default_factory=list)
    repositories: list[str] = Field(default_factory=list)
    repository_urls: dict[str, str] = Field(default_factory=dict)
    repo_stars: dict[str, int] = Field(default_factory=dict)

    star_count: int = 0
    fork_count: int = 0
    commit_count: int = 0
    followers: int = 0

    talent_rank: float = 0.0
    confidence: float = 0.0
    nation: str = ""
    nation_confidence: float = 0.0
    nation_factors: list[str] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    last_updated: datetime = Field(default_factory=_utcnow)
    last_active: datetime | None = None
    update_frequency: int = UPDATE_FREQUENCY_DEFAULT

    data_validation: ValidationSnapshot = Field(default_factory=ValidationSnapshot)
    tech_evaluation: TechEvaluation | None = None

    @field_validator("talent_rank", "confidence", "nation_confidence")
    @classmethod
    def clamp_scores(cls, v: float) -> float:
        return _clamp_score(v)

    @field_validator("skills", "repositories")
    @classmethod
    def normalise_sets(cls, v: list[str]) -> list[str]:
        return _normalise_set(v)

    @field_validator("nation")
    @classmethod
    def normalise_nation(cls, v: str) -> str:
        v = (v or "").strip().upper()
        if len(v) != 2 or not v.isalpha():
            return ""
        return v

    @model_validator(mode="after")
    def check_timestamps(self) -> DeveloperProfile:
        if not self.name:
            self.name = self.username
        if self.updated_at < self.created_at:
            self.updated_at = self.created_at
        return self

    @property
    def refresh_due_at(self) -> datetime:
        """Point in time after which the profile is due for re-enrichment."""
        return self.last_updated + timedelta(seconds=self.update_frequency)

    def to_document(self) -> dict[str, Any]:
        """Serialise for MongoDB, keeping the id under ``_id``."""
        document = self.model_dump(by_alias=True)
        document["username_key"] = username_key(self.username)
        return document

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> DeveloperProfile:
        return cls.model_validate(doc)
