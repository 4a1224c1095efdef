"""Result-cache models."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field

from volunteermaniac.models.opportunity import Opportunity
from volunteermaniac.models.query import SearchQuery


class CacheMetadata(BaseModel):
    """Bookkeeping stored next to cached opportunities."""

    total_results: int = 0
    sources: list[str] = Field(default_factory=list)
    response_time_ms: int = 0


class CacheEntry(BaseModel):
    """One cached search. Owned by ``ResultCache``."""

    key: str = Field(description="Normalized query key")
    opportunities: list[Opportunity] = Field(default_factory=list)
    created_at: float = Field(description="Creation time in monotonic clock seconds, used for expiry")
    stored_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="Wall-clock creation time, reported in stats",
    )
    ttl_seconds: float = Field(description="Lifetime of this entry")
    query: SearchQuery = Field(description="The query that produced the entry")
    metadata: CacheMetadata = Field(default_factory=CacheMetadata)

    def is_expired(self, now: float) -> bool:
        return now - self.created_at > self.ttl_seconds


class CacheStats(BaseModel):
    """Snapshot of cache usage."""

    total_entries: int = 0
    hit_count: int = 0
    miss_count: int = 0
    hit_rate: float = Field(default=0.0, description="Hits over lookups, rounded to 2 places")
    total_size_bytes: int = Field(default=0, description="Rough size estimate (1 KiB per opportunity)")
    oldest_entry: datetime | None = None
    newest_entry: datetime | None = None
