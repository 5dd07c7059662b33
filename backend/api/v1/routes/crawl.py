"""Enrichment trigger endpoint.

POST /api/v1/crawl - Queue a batch of usernames for enrichment
"""

from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel, Field

from app.logging_config import get_logger

logger = get_logger(__name__)
router = APIRouter()

MAX_BATCH_SIZE = 500


class CrawlRequest(BaseModel):
    """Batch enrichment request."""

    usernames: list[str] = Field(..., min_length=1, max_length=MAX_BATCH_SIZE)
    concurrency: int = Field(5, ge=1, le=6)


class CrawlResponse(BaseModel):
    task_id: str
    status: str = "queued"
    count: int


@router.post("/crawl", response_model=CrawlResponse, status_code=202)
async def crawl(request: CrawlRequest) -> CrawlResponse:
    """Hand the usernames to the Celery enrichment task."""
    from app.celery_worker import enrich_developers

    result = enrich_developers.delay(request.usernames, request.concurrency)
    logger.info(
        "crawl_queued",
        task_id=result.id,
        count=len(request.usernames),
        concurrency=request.concurrency,
    )
    return CrawlResponse(task_id=result.id, count=len(request.usernames))
