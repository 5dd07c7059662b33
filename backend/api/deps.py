"""Shared API dependencies.

Query-string parsing and service lookups as injectable FastAPI
dependencies.
"""

from __future__ import annotations

from datetime import datetime

from fastapi import Depends, Query

from app.dependencies import ServiceContainer, get_services
from db.repository import DeveloperRepository, SearchFilters
from services.developer_cache import DeveloperCache


def get_repository(
    services: ServiceContainer = Depends(get_services),
) -> DeveloperRepository:
    return services.repository


def get_cache(services: ServiceContainer = Depends(get_services)) -> DeveloperCache:
    return services.cache


def _split_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def search_filters(
    keyword: str | None = Query(None, max_length=100),
    name: str | None = Query(None, max_length=100),
    domain: str | None = Query(None, max_length=30),
    nations: str | None = Query(None, description="Comma-separated country codes"),
    skills: str | None = Query(None, description="Comma-separated skills, all required"),
    min_commits: int | None = Query(None, ge=0),
    min_stars: int | None = Query(None, ge=0),
    min_rank: float | None = Query(None, ge=0, le=100),
    min_activity: int | None = Query(None, ge=1, description="Updated within N days"),
    updated_after: datetime | None = Query(None),
) -> SearchFilters:
    """Build SearchFilters from the query string."""
    return SearchFilters(
        keyword=keyword,
        name=name,
        domain=domain,
        nations=_split_csv(nations),
        skills=_split_csv(skills),
        min_commits=min_commits,
        min_stars=min_stars,
        min_rank=min_rank,
        min_activity_days=min_activity,
        updated_after=updated_after,
    )
