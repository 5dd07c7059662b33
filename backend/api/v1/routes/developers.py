"""Developer search endpoints.

GET    /api/v1/developers              - Filtered, sorted, paginated search
GET    /api/v1/developers/top          - Highest talent rank first
GET    /api/v1/developers/{username}   - Single profile
DELETE /api/v1/developers/{username}   - Remove profile and cached copy
"""

from __future__ import annotations

from typing import Any, Literal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from api.deps import get_cache, get_repository, search_filters
from app.exceptions import ProfileNotFoundError
from app.logging_config import get_logger
from db.models import DeveloperProfile
from db.repository import DeveloperRepository, SearchFilters
from services.developer_cache import DeveloperCache

logger = get_logger(__name__)
router = APIRouter()

SortField = Literal["talent_rank", "star_count", "commit_count", "updated_at", "nation_confidence"]


class DeveloperPage(BaseModel):
    """One page of search results."""

    items: list[dict[str, Any]]
    total: int
    page: int
    page_size: int


def _serialize(profile: DeveloperProfile) -> dict[str, Any]:
    return profile.model_dump(mode="json")


@router.get("", response_model=DeveloperPage)
async def search_developers(
    filters: SearchFilters = Depends(search_filters),
    sort_by: SortField = Query("talent_rank"),
    sort_asc: bool = Query(False),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    repository: DeveloperRepository = Depends(get_repository),
) -> DeveloperPage:
    """Search stored developers. Evaluations are omitted from list results."""
    profiles = await repository.search(
        filters, sort_by=sort_by, sort_asc=sort_asc, page=page, page_size=page_size
    )
    total = await repository.count(filters)
    return DeveloperPage(
        items=[_serialize(p) for p in profiles],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/top")
async def top_developers(
    limit: int = Query(10, ge=1, le=100),
    repository: DeveloperRepository = Depends(get_repository),
) -> list[dict[str, Any]]:
    profiles = await repository.top(limit)
    return [_serialize(p) for p in profiles]


@router.get("/{username}")
async def get_developer(
    username: str,
    repository: DeveloperRepository = Depends(get_repository),
) -> dict[str, Any]:
    profile = await repository.find_by_username(username)
    if profile is None:
        raise ProfileNotFoundError(username)
    return _serialize(profile)


@router.delete("/{username}", status_code=204)
async def delete_developer(
    username: str,
    repository: DeveloperRepository = Depends(get_repository),
    cache: DeveloperCache = Depends(get_cache),
) -> None:
    """Delete a stored profile and drop its cached copy."""
    deleted = await repository.delete_by_username(username)
    await cache.delete(username)
    if not deleted:
        raise ProfileNotFoundError(username)
    logger.info("developer_deleted", username=username)
