"""Search endpoints — Single-location, multi-location, and retry searches.

All three return structured results even when backends fail: individual
backend failures are listed in ``errors`` and ``service_statuses``. A 500
is only returned when the engine itself raises unexpectedly.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from volunteermaniac.api.deps import get_engine
from volunteermaniac.core.engine import SearchEngine
from volunteermaniac.models.query import MultiLocationSearchRequest, RetrySearchRequest, SearchRequest
from volunteermaniac.models.response import AggregatedResult, MultiLocationResult

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/search",
    response_model=AggregatedResult,
    summary="Aggregated Search",
    description=(
        "Search every available volunteer-opportunity backend around one point "
        "and return the merged result.\n\n"
        "Results are served from the cache when the same normalized query was "
        "answered recently (`from_cache: true`). `partial_results` is true when "
        "some backends answered and others failed."
    ),
    responses={
        422: {"description": "Validation error — invalid query (radius, limit, coordinates, etc.)"},
        500: {"description": "Internal server error — search processing failed"},
    },
)
async def search(
    request: SearchRequest,
    engine: SearchEngine = Depends(get_engine),
) -> AggregatedResult:
    """Execute an aggregated single-location search.

    Args:
        request: The query and search options.
        engine: The search engine instance (injected).

    Returns:
        The merged result across all selected backends.
    """
    try:
        return await engine.search(request.query, request.options)
    except Exception as e:
        logger.error("Search failed: %s", e, exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=f"Search processing failed: {e!s}",
        ) from e


@router.post(
    "/search/multi",
    response_model=MultiLocationResult,
    summary="Multi-Location Search",
    description=(
        "Search up to 10 already-geocoded locations in parallel. Each location "
        "is searched independently; a failure for one location never affects "
        "the others. Opportunities are merged and tagged with the location they "
        "were found for, and per-location groups and statistics are returned."
    ),
    responses={
        422: {"description": "Validation error — no targets, too many targets, bad radius, etc."},
        500: {"description": "Internal server error — search processing failed"},
    },
)
async def search_multi(
    request: MultiLocationSearchRequest,
    engine: SearchEngine = Depends(get_engine),
) -> MultiLocationResult:
    """Execute a multi-location search."""
    try:
        return await engine.search_multi_location(
            request.targets,
            request.radius_miles,
            request.filters,
            request.options,
        )
    except Exception as e:
        logger.error("Multi-location search failed: %s", e, exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=f"Multi-location search processing failed: {e!s}",
        ) from e


@router.post(
    "/search/retry",
    response_model=AggregatedResult,
    summary="Retry Failed Sources",
    description=(
        "Re-query only the backends that failed with a retryable error in a "
        "previous result. Opportunities from backends that already succeeded "
        "are kept without re-querying them. The previous result is returned "
        "unchanged when nothing is retryable."
    ),
    responses={
        422: {"description": "Validation error — invalid query or previous result"},
        500: {"description": "Internal server error — retry processing failed"},
    },
)
async def search_retry(
    request: RetrySearchRequest,
    engine: SearchEngine = Depends(get_engine),
) -> AggregatedResult:
    """Retry the failed, retryable backends of a previous search."""
    try:
        return await engine.retry_failed_sources(request.query, request.previous_result, request.options)
    except Exception as e:
        logger.error("Retry failed: %s", e, exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=f"Retry processing failed: {e!s}",
        ) from e
