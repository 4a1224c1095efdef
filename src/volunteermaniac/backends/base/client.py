"""Backend client contract — Abstract interface for all volunteer-opportunity APIs.

Every upstream must implement ``BackendClient`` to take part in aggregated
searches. A client is responsible for:
  1. Searching opportunities near a point (never raising: failures are
     encoded in the returned ``BackendResult``)
  2. Fetching a single opportunity by ID
  3. Reporting health status

``HTTPBackendClient`` provides the network side shared by HTTP/JSON
upstreams: an ``httpx.AsyncClient``, per-backend rate limiting, exponential
backoff retries, per-attempt timing logs, and error classification.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from volunteermaniac import __version__
from volunteermaniac.backends.base.errors import classify_exception, is_service_unavailable
from volunteermaniac.backends.base.exceptions import BackendRequestError, ConfigurationError
from volunteermaniac.backends.base.rate_limiter import RateLimiter
from volunteermaniac.backends.base.retry import RetryPolicy, is_retryable, retry_after_seconds
from volunteermaniac.models.opportunity import Opportunity
from volunteermaniac.models.query import SearchQuery
from volunteermaniac.models.result import BackendResult, ServiceHealth

logger = logging.getLogger(__name__)

_USER_AGENT = f"VolunteerManiac/{__version__}"


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class BackendClient(ABC):
    """Abstract base class for volunteer-opportunity backends.

    All clients must implement:
      - name: stable identifier used as the key in registries and results
      - search(): query the backend, returning a ``BackendResult``
      - get_details(): fetch one opportunity by ID
      - health_check(): report reachability
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique backend name (e.g., 'VolunteerHub')."""

    async def initialize(self) -> None:
        """Open connections. Called once before the first request."""

    async def shutdown(self) -> None:
        """Release connections. Called during application shutdown."""

    @abstractmethod
    async def search(self, query: SearchQuery) -> BackendResult:
        """Search opportunities matching ``query``.

        Must not raise: any failure is returned as
        ``BackendResult(success=False, error=...)``.
        """

    @abstractmethod
    async def get_details(self, opportunity_id: str) -> Opportunity:
        """Fetch a single opportunity.

        Raises:
            OpportunityNotFoundError: If the opportunity does not exist.
            BackendRequestError: If the request failed.
        """

    @abstractmethod
    async def health_check(self) -> ServiceHealth:
        """Probe the backend. Should report failures rather than raise."""


class HTTPBackendClient(BackendClient):
    """Base class for HTTP/JSON backends.

    Subclasses implement ``search_opportunities()`` (the vendor request plus
    mapping to ``Opportunity``) and ``get_details()``; this class turns those
    into a failure-safe ``search()`` and supplies ``request_json()`` with
    retries.

    Args:
        base_url: API base URL.
        api_key: Bearer token, if the API needs one.
        timeout: Per-request timeout in seconds.
        retry: Backoff policy for retryable failures.
        rate_limiter: Limiter consulted before every outbound request.
        health_path: Path probed by ``health_check()``.
        health_timeout: Timeout of the health probe in seconds.
        transport: Optional httpx transport (used by tests).
        sleep: Coroutine used for backoff waits; injectable for tests.
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str | None = None,
        timeout: float = 10.0,
        retry: RetryPolicy | None = None,
        rate_limiter: RateLimiter | None = None,
        health_path: str = "/health",
        health_timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if not base_url:
            raise ConfigurationError(f"{type(self).__name__} requires a base_url")
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self.retry = retry or RetryPolicy()
        self.rate_limiter = rate_limiter
        self._health_path = health_path
        self._health_timeout = health_timeout
        self._transport = transport
        self._sleep = sleep
        self._client: httpx.AsyncClient | None = None

    async def initialize(self) -> None:
        """Create the HTTP client."""
        if self._client is not None:
            return
        headers = {"Accept": "application/json", "User-Agent": _USER_AGENT}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=httpx.Timeout(self._timeout),
            transport=self._transport,
        )
        logger.info("Backend %s initialized (base_url=%s)", self.name, self._base_url)

    async def shutdown(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            await self.initialize()
        assert self._client is not None
        return self._client

    # ── Search ───────────────────────────────────────────────────────────

    @abstractmethod
    async def search_opportunities(self, query: SearchQuery) -> list[Opportunity]:
        """Run the vendor search and map the payload to ``Opportunity`` records.

        May raise; ``search()`` converts any exception into a failed result.
        """

    async def search(self, query: SearchQuery) -> BackendResult:
        start = time.monotonic()
        try:
            opportunities = await self.search_opportunities(query)
        except BackendRequestError as e:
            if is_service_unavailable(e.error):
                logger.warning("%s appears to be down: %s", self.name, e.error.message)
            else:
                logger.warning("Search failed on %s: %s", self.name, e.error.message)
            return BackendResult.failed(self.name, e.error, _elapsed_ms(start))
        except Exception as e:
            logger.warning("Search failed on %s: %s", self.name, e, exc_info=True)
            error = classify_exception(e, self.name, "search opportunities")
            return BackendResult.failed(self.name, error, _elapsed_ms(start))

        response_time_ms = _elapsed_ms(start)
        logger.info("%s returned %d opportunities in %d ms", self.name, len(opportunities), response_time_ms)
        return BackendResult.ok(self.name, opportunities, response_time_ms)

    # ── HTTP with retry ──────────────────────────────────────────────────

    async def request(self, method: str, path: str, operation: str, **kwargs: Any) -> httpx.Response:
        """Send a request, retrying retryable failures with exponential backoff.

        Raises:
            BackendRequestError: When the last attempt fails or the failure is
                not retryable. The error is already classified.
        """
        client = await self._http()
        last_exc: Exception | None = None

        for attempt in range(self.retry.max_attempts):
            if self.rate_limiter is not None:
                await self.rate_limiter.acquire(self.name)

            start = time.monotonic()
            try:
                response = await client.request(method, path, **kwargs)
                response.raise_for_status()
            except (httpx.HTTPStatusError, httpx.TransportError) as e:
                status = e.response.status_code if isinstance(e, httpx.HTTPStatusError) else None
                logger.warning(
                    "[%s] %s %s failed: status=%s duration=%dms error=%s",
                    self.name,
                    method,
                    path,
                    status,
                    _elapsed_ms(start),
                    e,
                )
                last_exc = e
                if attempt == self.retry.max_retries or not is_retryable(e):
                    break

                delay = self.retry.delay(attempt)
                if status == 429:
                    server_wait = retry_after_seconds(e.response)  # type: ignore[union-attr]
                    if server_wait is not None:
                        delay = max(delay, server_wait)
                logger.warning(
                    "[%s] %s failed (attempt %d/%d), retrying in %.1fs",
                    self.name,
                    operation,
                    attempt + 1,
                    self.retry.max_attempts,
                    delay,
                )
                await self._sleep(delay)
                continue

            logger.debug(
                "[%s] %s %s -> %d in %dms",
                self.name,
                method,
                path,
                response.status_code,
                _elapsed_ms(start),
            )
            return response

        assert last_exc is not None
        raise BackendRequestError(classify_exception(last_exc, self.name, operation)) from last_exc

    async def request_json(self, method: str, path: str, operation: str, **kwargs: Any) -> Any:
        """Like ``request()`` but decodes the JSON body.

        Raises:
            BackendRequestError: Also raised (as ``invalid_response``) when the
                body is not valid JSON.
        """
        response = await self.request(method, path, operation, **kwargs)
        try:
            return response.json()
        except json.JSONDecodeError as e:
            raise BackendRequestError(classify_exception(e, self.name, operation)) from e

    # ── Health ───────────────────────────────────────────────────────────

    async def health_check(self) -> ServiceHealth:
        """Probe ``health_path`` once, without retries."""
        start = time.monotonic()
        try:
            client = await self._http()
            response = await client.get(self._health_path, timeout=self._health_timeout)
            response.raise_for_status()
        except Exception as e:
            return ServiceHealth(source=self.name, healthy=False, error=str(e) or type(e).__name__)
        return ServiceHealth(source=self.name, healthy=True, response_time_ms=_elapsed_ms(start))
