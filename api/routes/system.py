"""
System Management API Endpoints

Provides REST endpoints for:
- GET /system/cache/stats - Hit/miss/size counters for both caches
- DELETE /system/cache    - Empty both caches and reset their counters
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from api.dependencies import AppServices, get_services
from shared.ttl_cache import CacheStats

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/system")


# =============================================================================
# Pydantic Models
# =============================================================================


class CacheStatsResponse(BaseModel):
    """Stats for every in-process cache."""
    context_cache: CacheStats
    weather_cache: CacheStats


class CacheActionResponse(BaseModel):
    success: bool
    message: str


# =============================================================================
# Endpoints
# =============================================================================


@router.get("/cache/stats", response_model=CacheStatsResponse)
async def get_cache_stats(
    services: Annotated[AppServices, Depends(get_services)],
) -> CacheStatsResponse:
    return CacheStatsResponse(**services.context_service.get_cache_stats())


@router.delete("/cache", response_model=CacheActionResponse)
async def clear_cache(
    services: Annotated[AppServices, Depends(get_services)],
) -> CacheActionResponse:
    services.context_service.clear_cache()
    logger.warning("All caches cleared via system endpoint")
    return CacheActionResponse(success=True, message="Context and weather caches cleared")
