"""Aggregated response models — What the engine returns to its callers.

1. ``AggregatedResult`` — merged outcome of one single-location search.
2. ``MultiLocationResult`` — the same, plus per-location groups and
   statistics for a multi-location search.
3. ``ErrorSummary`` — a condensed, user-facing view of a result's errors.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from volunteermaniac.models.location import GeocodedTarget
from volunteermaniac.models.opportunity import Opportunity
from volunteermaniac.models.result import APIError, ServiceStatus

# ═══════════════════════════════════════════════════════════════════════════════
# Single-location search
# ═══════════════════════════════════════════════════════════════════════════════


class AggregatedResult(BaseModel):
    """Merged results of one search across all selected backends.

    ``partial_results`` is true only when at least one backend succeeded and
    at least one failed. ``sources`` and ``errors`` hold one entry per
    backend; a cache hit reports no service statuses.
    """

    opportunities: list[Opportunity] = Field(default_factory=list, description="Merged opportunities")
    total_results: int = Field(default=0, description="Number of merged opportunities")
    sources: list[str] = Field(default_factory=list, description="Backends queried (or cached sources)")
    errors: list[APIError] | None = Field(default=None, description="One classified error per failed backend")
    response_time_ms: int = Field(default=0, description="Wall-clock time of the whole search in ms")
    partial_results: bool = Field(default=False, description="Some backends succeeded and some failed")
    service_statuses: list[ServiceStatus] = Field(default_factory=list, description="One status per backend")
    from_cache: bool = Field(default=False, description="Whether the result was served from the cache")


# ═══════════════════════════════════════════════════════════════════════════════
# Multi-location search
# ═══════════════════════════════════════════════════════════════════════════════


class LocationGroup(BaseModel):
    """Outcome of the search for one location of a multi-location search."""

    location: GeocodedTarget = Field(description="The searched location")
    opportunities: list[Opportunity] = Field(default_factory=list, description="Opportunities for this location")
    search_success: bool = Field(description="Whether the search for this location completed")
    error: str | None = Field(default=None, description="Failure message for this location")


class LocationCount(BaseModel):
    location: str
    count: int


class SearchStatistics(BaseModel):
    """Aggregate counters over all locations of a multi-location search."""

    total_locations: int = 0
    successful_locations: int = 0
    failed_locations: int = 0
    total_opportunities: int = 0
    average_opportunities_per_location: int = Field(
        default=0,
        description="Total opportunities divided by successful locations, rounded",
    )
    location_breakdown: list[LocationCount] = Field(default_factory=list)


class MultiLocationResult(AggregatedResult):
    """Aggregated result of a multi-location search."""

    location_groups: list[LocationGroup] = Field(default_factory=list, description="Per-location detail")
    search_statistics: SearchStatistics = Field(default_factory=SearchStatistics, description="Aggregate counters")


# ═══════════════════════════════════════════════════════════════════════════════
# Error summary
# ═══════════════════════════════════════════════════════════════════════════════


class ErrorSummary(BaseModel):
    """User-facing digest of the errors in an aggregated result."""

    has_errors: bool = False
    error_count: int = 0
    critical_errors: list[APIError] = Field(default_factory=list, description="Non-retryable or auth failures")
    minor_errors: list[APIError] = Field(default_factory=list, description="Retryable failures")
    user_message: str = ""
    suggestions: list[str] = Field(default_factory=list)
