"""VolunteerManiac Engine — Core orchestrator for aggregated opportunity searches.

The engine manages the full lifecycle of one search:
  1. Cache check: a hit returns immediately without touching any backend
  2. Backend selection: healthy-only or all registered backends, capped
  3. Parallel dispatch: every selected backend is searched concurrently,
     raced against a global timeout
  4. Aggregation: one source entry and one service status per backend,
     one classified error per failed backend
  5. Cache write: non-empty results are stored under the normalized query

Multi-location searches repeat this flow once per geocoded target, fully in
parallel, and merge the outcomes with per-location statistics.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from volunteermaniac.backends.base.client import BackendClient
from volunteermaniac.backends.base.registry import ServiceRegistry
from volunteermaniac.cache.manager import ResultCache
from volunteermaniac.core.multi_location import compute_statistics, merge_opportunities, merge_results
from volunteermaniac.models.cache import CacheMetadata, CacheStats
from volunteermaniac.models.location import GeocodedTarget
from volunteermaniac.models.opportunity import Opportunity
from volunteermaniac.models.query import (
    CacheInvalidation,
    PopularLocation,
    SearchFilters,
    SearchOptions,
    SearchQuery,
)
from volunteermaniac.models.response import AggregatedResult, ErrorSummary, LocationGroup, MultiLocationResult
from volunteermaniac.models.result import APIError, BackendResult, ErrorKind, ServiceStatus

if TYPE_CHECKING:
    from volunteermaniac.config.settings import Settings

logger = logging.getLogger(__name__)

ENGINE_SOURCE = "SearchEngine"


class SearchFailedError(Exception):
    """Raised when a whole search fails (no backends available, global timeout)."""


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def aggregate_results(results: list[BackendResult], start: float) -> AggregatedResult:
    """Merge per-backend outcomes into one ``AggregatedResult``.

    Successful backends contribute their opportunities by concatenation;
    failed backends contribute one ``APIError`` each. Every backend gets one
    ``ServiceStatus`` regardless of outcome.
    """
    opportunities: list[Opportunity] = []
    sources: list[str] = []
    errors: list[APIError] = []
    statuses: list[ServiceStatus] = []
    succeeded = failed = 0

    for result in results:
        if result.source not in sources:
            sources.append(result.source)

        if result.success:
            succeeded += 1
            opportunities.extend(result.opportunities)
        else:
            failed += 1
            error = result.error or APIError.from_message(result.source, "Service search failed")
            if all(e.source != error.source for e in errors):
                errors.append(error)

        statuses.append(
            ServiceStatus(
                service_name=result.source,
                healthy=result.success,
                response_time_ms=result.response_time_ms,
                error=None if result.success else (result.error_message or "Service search failed"),
                consecutive_failures=0 if result.success else 1,
            )
        )

    return AggregatedResult(
        opportunities=opportunities,
        total_results=len(opportunities),
        sources=sources,
        errors=errors or None,
        response_time_ms=_elapsed_ms(start),
        partial_results=succeeded > 0 and failed > 0,
        service_statuses=statuses,
    )


class SearchEngine:
    """Aggregates volunteer opportunities from every registered backend.

    Pipeline:
      SearchQuery → [ResultCache] → hit: AggregatedResult (from_cache)
                  → miss: [ServiceRegistry] → healthy / all backends
                        → [BackendClient.search]* (concurrent, global timeout)
                        → aggregate → [ResultCache] → AggregatedResult

    Attributes:
        registry: Registered backend clients and their health.
        cache: Result cache consulted before and written after each search.
        settings: Application configuration; supplies default search options.
    """

    def __init__(
        self,
        registry: ServiceRegistry,
        cache: ResultCache,
        settings: Settings | None = None,
    ) -> None:
        self.registry = registry
        self.cache = cache
        self.settings = settings

    def default_options(self) -> SearchOptions:
        if self.settings is None:
            return SearchOptions()
        search = self.settings.search
        return SearchOptions(
            timeout_seconds=search.timeout_seconds,
            use_healthy_services_only=search.use_healthy_services_only,
            max_concurrent_requests=search.max_concurrent_requests,
        )

    @property
    def result_limit(self) -> int:
        return self.settings.search.default_result_limit if self.settings else 50

    async def shutdown(self) -> None:
        """Gracefully shut down all backends."""
        await self.registry.shutdown_all()
        logger.info("VolunteerManiac engine shut down")

    # ──────────────────────────────────────────────────────────────────────
    # Single-location search
    # ──────────────────────────────────────────────────────────────────────

    async def search(self, query: SearchQuery, options: SearchOptions | None = None) -> AggregatedResult:
        """Search every selected backend for ``query``.

        Never raises for backend trouble: individual failures are reported
        in ``errors`` and ``service_statuses``, and operation-wide failures
        yield an empty result carrying a single engine error.

        Args:
            query: A validated search query.
            options: Search behavior; the configured defaults when None.

        Returns:
            The merged result.
        """
        start = time.monotonic()
        try:
            return await self._execute_search(query, options or self.default_options())
        except SearchFailedError as e:
            logger.error("Search failed: %s", e)
            return AggregatedResult(
                errors=[APIError.from_message(ENGINE_SOURCE, str(e))],
                response_time_ms=_elapsed_ms(start),
            )

    async def _execute_search(
        self,
        query: SearchQuery,
        options: SearchOptions,
        *,
        use_cache: bool = True,
    ) -> AggregatedResult:
        """Run the single-location flow.

        Raises:
            SearchFailedError: If no backend is available or the global
                timeout fires before every backend has answered.
        """
        start = time.monotonic()

        # ── Cache check ──
        if use_cache:
            cached = self.cache.get(query)
            if cached is not None:
                logger.info("Cache hit: returning %d cached opportunities", len(cached))
                return AggregatedResult(
                    opportunities=cached,
                    total_results=len(cached),
                    sources=list(dict.fromkeys(opportunity.source for opportunity in cached)),
                    response_time_ms=_elapsed_ms(start),
                    from_cache=True,
                )

        # ── Backend selection ──
        if options.use_healthy_services_only:
            clients = await self.registry.get_healthy()
        else:
            clients = self.registry.clients
        if not clients:
            raise SearchFailedError("No available services for search")
        clients = clients[: options.max_concurrent_requests]

        logger.info(
            "Searching %d backends: lat=%s, lng=%s, radius=%s, timeout=%ss",
            len(clients),
            query.coordinates.latitude,
            query.coordinates.longitude,
            query.radius_miles,
            options.timeout_seconds,
        )

        # ── Parallel dispatch ──
        try:
            results = await asyncio.wait_for(self.registry.dispatch(clients, query), options.timeout_seconds)
        except TimeoutError as e:
            raise SearchFailedError(f"Search timeout after {options.timeout_seconds:g}s") from e

        # ── Aggregate ──
        result = aggregate_results(results, start)

        # ── Cache write ──
        if use_cache and result.opportunities:
            self.cache.set(
                query,
                result.opportunities,
                CacheMetadata(
                    total_results=result.total_results,
                    sources=result.sources,
                    response_time_ms=result.response_time_ms,
                ),
            )

        logger.info(
            "Search complete: %d results from %s, %d errors in %d ms",
            result.total_results,
            result.sources,
            len(result.errors or []),
            result.response_time_ms,
        )
        return result

    # ──────────────────────────────────────────────────────────────────────
    # Multi-location search
    # ──────────────────────────────────────────────────────────────────────

    async def search_multi_location(
        self,
        targets: list[GeocodedTarget],
        radius_miles: float,
        filters: SearchFilters | None = None,
        options: SearchOptions | None = None,
    ) -> MultiLocationResult:
        """Search every target independently and in parallel, then merge.

        A target without coordinates, or whose search fails, becomes a
        ``LocationGroup`` with ``search_success=False``; its siblings are
        unaffected.
        """
        start = time.monotonic()
        filters = filters or SearchFilters()
        options = options or self.default_options()

        outcomes = await asyncio.gather(
            *(self._search_target(target, radius_miles, filters, options) for target in targets),
            return_exceptions=True,
        )

        groups: list[LocationGroup] = []
        results: list[AggregatedResult] = []
        for target, outcome in zip(targets, outcomes, strict=True):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                logger.warning("Search failed for %s: %s", target.original_input, outcome)
                message = str(outcome) or type(outcome).__name__
                groups.append(LocationGroup(location=target, search_success=False, error=message))
                continue
            group, result = outcome
            groups.append(group)
            if result is not None:
                results.append(result)

        sources, errors, statuses = merge_results(results)
        failed = [group for group in groups if not group.search_success]
        if failed:
            errors.append(self._target_failure(failed))
        opportunities = merge_opportunities(groups)
        statistics = compute_statistics(groups)
        mixed = statistics.failed_locations > 0 and statistics.successful_locations > 0

        logger.info(
            "Multi-location search complete: %d/%d locations, %d opportunities in %d ms",
            statistics.successful_locations,
            statistics.total_locations,
            len(opportunities),
            _elapsed_ms(start),
        )

        return MultiLocationResult(
            opportunities=opportunities,
            total_results=len(opportunities),
            sources=sources,
            errors=errors or None,
            response_time_ms=_elapsed_ms(start),
            partial_results=mixed or any(result.partial_results for result in results),
            service_statuses=statuses,
            location_groups=groups,
            search_statistics=statistics,
        )

    async def _search_target(
        self,
        target: GeocodedTarget,
        radius_miles: float,
        filters: SearchFilters,
        options: SearchOptions,
    ) -> tuple[LocationGroup, AggregatedResult | None]:
        if target.coordinates is None:
            message = target.error or f"Could not geocode location: {target.original_input}"
            group = LocationGroup(location=target, search_success=False, error=message)
            return group, None

        query = SearchQuery(
            coordinates=target.coordinates,
            radius_miles=radius_miles,
            causes=filters.causes or None,
            type=filters.type,
            limit=self.result_limit,
        )
        result = await self._execute_search(query, options)
        group = LocationGroup(location=target, opportunities=result.opportunities, search_success=True)
        return group, result

    @staticmethod
    def _target_failure(failed: list[LocationGroup]) -> APIError:
        """One engine error naming every location whose search failed."""
        message = "; ".join(f"{group.location.original_input}: {group.error}" for group in failed)
        names = ", ".join(group.location.original_input for group in failed)
        return APIError.from_message(ENGINE_SOURCE, message).model_copy(
            update={"user_message": f"Search failed for {names}"}
        )

    # ──────────────────────────────────────────────────────────────────────
    # Retry
    # ──────────────────────────────────────────────────────────────────────

    async def retry_failed_sources(
        self,
        query: SearchQuery,
        previous: AggregatedResult,
        options: SearchOptions | None = None,
    ) -> AggregatedResult:
        """Re-query only the backends that failed with a retryable error.

        Opportunities from previously healthy backends are reused as they
        are. When nothing qualifies for a retry, ``previous`` is returned.
        """
        options = options or self.default_options()
        unhealthy = {status.service_name for status in previous.service_statuses if not status.healthy}
        retry_names = {error.source for error in previous.errors or [] if error.retryable} & unhealthy
        clients = [client for client in self.registry.clients if client.name in retry_names]
        if not clients:
            logger.info("No retryable failed backends to retry")
            return previous

        logger.info("Retrying %d failed backends: %s", len(clients), [client.name for client in clients])
        start = time.monotonic()
        try:
            retried = await asyncio.wait_for(self.registry.dispatch(clients, query), options.timeout_seconds)
        except TimeoutError:
            logger.warning("Retry timed out after %gs, keeping previous result", options.timeout_seconds)
            return previous

        kept = [
            BackendResult.ok(
                status.service_name,
                [opp for opp in previous.opportunities if opp.source == status.service_name],
                status.response_time_ms,
            )
            for status in previous.service_statuses
            if status.healthy
        ]
        return aggregate_results(kept + retried, start)

    # ──────────────────────────────────────────────────────────────────────
    # Errors and service status
    # ──────────────────────────────────────────────────────────────────────

    @staticmethod
    def error_summary(result: AggregatedResult) -> ErrorSummary:
        """Condense the errors of ``result`` into a user-facing summary."""
        errors = result.errors or []
        if not errors:
            return ErrorSummary()

        critical = [e for e in errors if not e.retryable or e.type == ErrorKind.AUTHENTICATION]
        minor = [e for e in errors if e.retryable and e.type != ErrorKind.AUTHENTICATION]

        if result.total_results > 0:
            if len(errors) == 1:
                message = f"Found {result.total_results} opportunities, but {errors[0].source} was unavailable"
            else:
                message = f"Found {result.total_results} opportunities, but {len(errors)} sources had issues"
            suggestions = ["Results shown are from available sources", "Try again later for complete results"]
        elif critical:
            message = "Unable to search volunteer opportunities due to service issues"
            suggestions = ["Try again in a few minutes", "Check your internet connection"]
        else:
            message = "All volunteer services are temporarily unavailable"
            suggestions = ["Services may be under maintenance", "Try again later"]

        return ErrorSummary(
            has_errors=True,
            error_count=len(errors),
            critical_errors=critical,
            minor_errors=minor,
            user_message=message,
            suggestions=suggestions,
        )

    async def test_connectivity(self) -> dict[str, bool]:
        """Fresh health probe of every registered backend, by name."""
        statuses = await self.detailed_service_status()
        return {status.service_name: status.healthy for status in statuses}

    async def detailed_service_status(self) -> list[ServiceStatus]:
        """Probe every registered backend now, bypassing the health cache."""

        async def _probe(client: BackendClient) -> ServiceStatus:
            start = time.monotonic()
            try:
                health = await client.health_check()
            except Exception as e:
                return ServiceStatus(
                    service_name=client.name,
                    healthy=False,
                    response_time_ms=_elapsed_ms(start),
                    error=str(e) or type(e).__name__,
                    consecutive_failures=1,
                )
            return ServiceStatus(
                service_name=client.name,
                healthy=health.healthy,
                response_time_ms=_elapsed_ms(start),
                error=health.error,
                consecutive_failures=0 if health.healthy else 1,
            )

        return list(await asyncio.gather(*(_probe(client) for client in self.registry.clients)))

    def search_stats(self) -> dict[str, object]:
        registry_stats = self.registry.stats()
        return {
            "available_services": registry_stats["total_services"],
            "registered_services": registry_stats["registered_services"],
            "cache": self.cache.stats().model_dump(),
        }

    # ──────────────────────────────────────────────────────────────────────
    # Cache management
    # ──────────────────────────────────────────────────────────────────────

    def configure_caching(self, default_ttl: float | None = None, max_cache_size: int | None = None) -> None:
        if default_ttl:
            self.cache.set_default_ttl(default_ttl)
        if max_cache_size:
            self.cache.set_max_size(max_cache_size)
        logger.info("Cache configured: ttl=%ss, max_size=%d", self.cache.default_ttl, self.cache.max_size)

    def cache_stats(self) -> CacheStats:
        return self.cache.stats()

    def clear_cache(self) -> None:
        self.cache.clear()

    def invalidate_cache(self, criteria: CacheInvalidation) -> int:
        return self.cache.invalidate(criteria)

    async def warm_cache(self, locations: list[PopularLocation]) -> int:
        """Pre-populate the cache for popular locations.

        Warm-up searches skip the cache lookup; ``ResultCache.warm`` stores
        whatever they find.
        """
        options = self.default_options()

        async def _search(query: SearchQuery) -> list[Opportunity]:
            result = await self._execute_search(query, options, use_cache=False)
            return result.opportunities

        return await self.cache.warm(locations, _search)
