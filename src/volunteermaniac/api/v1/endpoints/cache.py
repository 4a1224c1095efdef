"""Cache endpoints — Inspect, clear, invalidate and configure the result cache."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from volunteermaniac.api.deps import get_engine
from volunteermaniac.core.engine import SearchEngine
from volunteermaniac.models.cache import CacheStats
from volunteermaniac.models.query import CacheInvalidation

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cache")


class CacheConfigRequest(BaseModel):
    """New cache limits; omitted fields keep their current value."""

    default_ttl_seconds: float | None = Field(default=None, gt=0, description="TTL for future entries")
    max_size: int | None = Field(default=None, ge=1, description="Maximum number of entries")


class CacheClearResponse(BaseModel):
    cleared: bool = Field(description="Whether the cache was cleared")


class CacheInvalidateResponse(BaseModel):
    removed: int = Field(description="Number of entries removed")


@router.get(
    "/stats",
    response_model=CacheStats,
    summary="Cache Statistics",
    description="Entry count, hit/miss counters, hit rate, and estimated size of the result cache.",
)
async def cache_stats(engine: SearchEngine = Depends(get_engine)) -> CacheStats:
    return engine.cache_stats()


@router.delete(
    "",
    response_model=CacheClearResponse,
    summary="Clear Cache",
    description="Remove every cached result and reset the hit/miss counters.",
)
async def clear_cache(engine: SearchEngine = Depends(get_engine)) -> CacheClearResponse:
    engine.clear_cache()
    return CacheClearResponse(cleared=True)


@router.post(
    "/invalidate",
    response_model=CacheInvalidateResponse,
    summary="Invalidate Cache Entries",
    description=(
        "Remove every cached result matching **any** of the given criteria: "
        "a location within 0.1 km, an exact radius, an overlapping cause, or an exact type."
    ),
)
async def invalidate_cache(
    criteria: CacheInvalidation,
    engine: SearchEngine = Depends(get_engine),
) -> CacheInvalidateResponse:
    removed = engine.invalidate_cache(criteria)
    return CacheInvalidateResponse(removed=removed)


@router.put(
    "/config",
    response_model=CacheStats,
    summary="Configure Cache",
    description="Change the default TTL and/or the capacity. Shrinking the capacity evicts the oldest entries.",
)
async def configure_cache(
    config: CacheConfigRequest,
    engine: SearchEngine = Depends(get_engine),
) -> CacheStats:
    engine.configure_caching(default_ttl=config.default_ttl_seconds, max_cache_size=config.max_size)
    return engine.cache_stats()
