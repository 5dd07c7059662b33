"""API v1 router aggregation.

Combines all v1 route modules into a single router.
"""

from __future__ import annotations

from fastapi import APIRouter

from api.v1.routes.crawl import router as crawl_router
from api.v1.routes.developers import router as developers_router

api_v1_router = APIRouter()

api_v1_router.include_router(developers_router, prefix="/developers", tags=["Developers"])
api_v1_router.include_router(crawl_router, tags=["Enrichment"])
