"""Result Cache — In-memory TTL cache for aggregated search results.

Entries are keyed by ``SearchQuery.cache_key()`` so coordinate jitter and
cause order do not cause spurious misses. The cache is bounded both in time
(per-entry TTL) and in size (oldest-by-creation eviction). It is
best-effort: internal failures are logged and reported as a miss, never
raised to the search that consulted it.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Awaitable, Callable, Iterable

from volunteermaniac.models.cache import CacheEntry, CacheMetadata, CacheStats
from volunteermaniac.models.location import Coordinates
from volunteermaniac.models.opportunity import Opportunity
from volunteermaniac.models.query import CacheInvalidation, PopularLocation, SearchQuery

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0
INVALIDATION_DISTANCE_KM = 0.1
ENTRY_SIZE_ESTIMATE_BYTES = 1024


def haversine_km(a: Coordinates, b: Coordinates) -> float:
    """Great-circle distance between two points in kilometres."""
    lat1, lat2 = math.radians(a.latitude), math.radians(b.latitude)
    d_lat = lat2 - lat1
    d_lon = math.radians(b.longitude - a.longitude)
    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(h), math.sqrt(1 - h))


class ResultCache:
    """TTL and capacity-bounded cache of search results.

    Attributes:
        default_ttl: Lifetime in seconds of entries stored without an explicit TTL.
        max_size: Maximum number of entries.
    """

    def __init__(
        self,
        default_ttl: float = 1800.0,
        max_size: int = 100,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.default_ttl = default_ttl
        self.max_size = max_size
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0
        self._lock = threading.Lock()

    # ── Lookup ───────────────────────────────────────────────────────────

    def get(self, query: SearchQuery) -> list[Opportunity] | None:
        """Cached opportunities for ``query``, or None on a miss.

        An entry found expired is removed and counted as a miss.
        """
        try:
            key = query.cache_key()
            with self._lock:
                entry = self._entries.get(key)
                if entry is None:
                    self._misses += 1
                    return None
                if entry.is_expired(self._clock()):
                    del self._entries[key]
                    self._misses += 1
                    return None
                self._hits += 1
                return list(entry.opportunities)
        except Exception:
            logger.debug("Cache get failed", exc_info=True)
            return None

    def has(self, query: SearchQuery) -> bool:
        """Whether a live entry exists for ``query``. Does not touch the counters."""
        entry = self.entry(query)
        return entry is not None

    def entry(self, query: SearchQuery) -> CacheEntry | None:
        """The live entry for ``query`` including metadata, without counting a hit."""
        try:
            key = query.cache_key()
            with self._lock:
                entry = self._entries.get(key)
                if entry is None:
                    return None
                if entry.is_expired(self._clock()):
                    del self._entries[key]
                    return None
                return entry
        except Exception:
            logger.debug("Cache entry lookup failed", exc_info=True)
            return None

    def keys(self) -> list[str]:
        """Keys currently stored, oldest first (expired entries included until purged)."""
        with self._lock:
            return list(self._entries.keys())

    # ── Store ────────────────────────────────────────────────────────────

    def set(
        self,
        query: SearchQuery,
        opportunities: list[Opportunity],
        metadata: CacheMetadata | None = None,
        ttl: float | None = None,
    ) -> None:
        """Store ``opportunities`` for ``query``.

        Expired entries are purged first; then the oldest entries are evicted
        until there is room for the new one.
        """
        try:
            key = query.cache_key()
            with self._lock:
                now = self._clock()
                self._purge_expired(now)
                # Replacing a key does not need room for a new slot
                self._entries.pop(key, None)
                while self._entries and len(self._entries) >= self.max_size:
                    self._evict_oldest()
                if self.max_size <= 0:
                    return
                self._entries[key] = CacheEntry(
                    key=key,
                    opportunities=list(opportunities),
                    created_at=now,
                    ttl_seconds=self.default_ttl if ttl is None else ttl,
                    query=query,
                    metadata=metadata or CacheMetadata(total_results=len(opportunities)),
                )
            logger.debug("Cached %d opportunities under %s", len(opportunities), key)
        except Exception:
            logger.debug("Cache set failed", exc_info=True)

    def _purge_expired(self, now: float) -> None:
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Purged %d expired cache entries", len(expired))

    def _evict_oldest(self) -> None:
        oldest = min(self._entries.values(), key=lambda e: e.created_at)
        del self._entries[oldest.key]
        logger.debug("Evicted oldest cache entry: %s", oldest.key)

    # ── Invalidation ─────────────────────────────────────────────────────

    def invalidate(self, criteria: CacheInvalidation) -> int:
        """Remove every entry matching any of ``criteria``. Returns the number removed."""
        with self._lock:
            doomed = [key for key, entry in self._entries.items() if self._matches(entry.query, criteria)]
            for key in doomed:
                del self._entries[key]
        logger.info("Invalidated %d cache entries", len(doomed))
        return len(doomed)

    @staticmethod
    def _matches(query: SearchQuery, criteria: CacheInvalidation) -> bool:
        if (
            criteria.location is not None
            and haversine_km(query.coordinates, criteria.location) < INVALIDATION_DISTANCE_KM
        ):
            return True
        if criteria.radius_miles is not None and query.radius_miles == criteria.radius_miles:
            return True
        if criteria.causes and query.causes and set(criteria.causes) & set(query.causes):
            return True
        return criteria.type is not None and query.type == criteria.type

    def clear(self) -> None:
        """Drop every entry and reset the hit/miss counters."""
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0
        logger.info("Result cache cleared")

    # ── Configuration ────────────────────────────────────────────────────

    def set_default_ttl(self, seconds: float) -> None:
        """Change the TTL applied to future entries."""
        self.default_ttl = seconds

    def set_max_size(self, size: int) -> None:
        """Change the capacity, evicting the oldest entries right away if needed."""
        with self._lock:
            self.max_size = size
            while len(self._entries) > size:
                self._evict_oldest()

    # ── Stats ────────────────────────────────────────────────────────────

    def stats(self) -> CacheStats:
        try:
            with self._lock:
                entries = list(self._entries.values())
                hits, misses = self._hits, self._misses
            lookups = hits + misses
            stored = [e.stored_at for e in entries]
            return CacheStats(
                total_entries=len(entries),
                hit_count=hits,
                miss_count=misses,
                hit_rate=round(hits / lookups, 2) if lookups else 0.0,
                total_size_bytes=sum(len(e.opportunities) for e in entries) * ENTRY_SIZE_ESTIMATE_BYTES,
                oldest_entry=min(stored) if stored else None,
                newest_entry=max(stored) if stored else None,
            )
        except Exception:
            logger.debug("Cache stats failed", exc_info=True)
            return CacheStats()

    # ── Warming ──────────────────────────────────────────────────────────

    async def warm(
        self,
        locations: Iterable[PopularLocation],
        search_fn: Callable[[SearchQuery], Awaitable[list[Opportunity]]],
    ) -> int:
        """Pre-populate the cache for ``locations`` not already cached.

        Each location is searched with ``search_fn``; failures are logged and
        skipped. Returns the number of entries written.
        """
        written = 0
        for location in locations:
            query = SearchQuery(
                coordinates=location.coordinates,
                radius_miles=location.radius_miles,
                type="both",
                limit=50,
            )
            if self.has(query):
                continue
            try:
                opportunities = await search_fn(query)
            except Exception:
                logger.warning("Cache warming failed for %s", query.cache_key(), exc_info=True)
                continue
            if opportunities:
                self.set(query, opportunities)
                written += 1
        logger.info("Cache warmed with %d entries", written)
        return written
