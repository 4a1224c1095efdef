"""Query and search request models."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator

from volunteermaniac.models.location import Coordinates, GeocodedTarget
from volunteermaniac.models.response import AggregatedResult

SearchType = Literal["in-person", "virtual", "both"]


class SearchQuery(BaseModel):
    """A single-location search, as sent to every backend.

    Validation happens on construction so a malformed query is rejected
    before any network activity begins.
    """

    model_config = {"frozen": True}

    coordinates: Coordinates = Field(description="Center of the search")
    radius_miles: float = Field(gt=0, le=500, description="Search radius in miles")
    causes: list[str] | None = Field(default=None, description="Cause areas to include (None = all)")
    type: SearchType = Field(default="both", description="Opportunity type filter")
    limit: int = Field(default=50, ge=1, le=100, description="Maximum results per backend")
    keywords: str | None = Field(default=None, description="Optional free-text keywords")

    @field_validator("causes")
    @classmethod
    def _drop_empty_causes(cls, v: list[str] | None) -> list[str] | None:
        if v is None:
            return None
        cleaned = [c.strip() for c in v if c and c.strip()]
        return cleaned or None

    def cache_key(self) -> str:
        """Normalized key: coordinates rounded to 3 places, causes sorted, keywords case-folded.

        Queries that differ only in sub-0.0005° jitter, in the order of their
        causes or in keyword case and surrounding whitespace produce the same key.
        """
        lat, lng = self.coordinates.rounded(3)
        causes = ",".join(sorted(self.causes or []))
        return "|".join(
            [
                f"lat:{lat:.3f}",
                f"lng:{lng:.3f}",
                f"radius:{self.radius_miles:g}",
                f"type:{self.type}",
                f"causes:{causes}",
                f"limit:{self.limit}",
                f"keywords:{(self.keywords or '').strip().lower()}",
            ]
        )


class SearchOptions(BaseModel):
    """Options controlling one aggregated search."""

    timeout_seconds: float = Field(default=15.0, gt=0, description="Global deadline for the backend fan-out")
    use_healthy_services_only: bool = Field(
        default=True,
        description="Query only backends whose cached health probe passed",
    )
    max_concurrent_requests: int = Field(
        default=5,
        ge=1,
        description="Maximum number of backends queried; extra backends are skipped",
    )


class SearchFilters(BaseModel):
    """Filters shared by every location of a multi-location search."""

    causes: list[str] = Field(default_factory=list, description="Cause areas to include")
    type: SearchType = Field(default="both", description="Opportunity type filter")


class CacheInvalidation(BaseModel):
    """Criteria for bulk cache invalidation; an entry matching any criterion is removed."""

    location: Coordinates | None = Field(default=None, description="Remove entries within 0.1 km of this point")
    radius_miles: float | None = Field(default=None, description="Remove entries with exactly this radius")
    causes: list[str] | None = Field(default=None, description="Remove entries sharing any of these causes")
    type: SearchType | None = Field(default=None, description="Remove entries with exactly this type")


class PopularLocation(BaseModel):
    """A location used to pre-populate the cache."""

    coordinates: Coordinates
    radius_miles: float = Field(gt=0, le=500)


# ── API request bodies ──


class SearchRequest(BaseModel):
    """Incoming single-location search request."""

    query: SearchQuery = Field(description="The search to run")
    options: SearchOptions = Field(default_factory=SearchOptions, description="Search behavior options")


class MultiLocationSearchRequest(BaseModel):
    """Incoming multi-location search request."""

    targets: list[GeocodedTarget] = Field(
        description="Already geocoded locations",
        min_length=1,
        max_length=10,
    )
    radius_miles: float = Field(gt=0, le=500, description="Search radius applied to every location")
    filters: SearchFilters = Field(default_factory=SearchFilters, description="Shared filters")
    options: SearchOptions = Field(default_factory=SearchOptions, description="Search behavior options")


class RetrySearchRequest(BaseModel):
    """Re-run the failed, retryable backends of a previous search."""

    query: SearchQuery = Field(description="The query of the previous search")
    previous_result: AggregatedResult = Field(description="Result returned by the previous search")
    options: SearchOptions = Field(default_factory=SearchOptions, description="Search behavior options")
