"""Service Registry — Manages registered backend clients and their health.

The registry is the central place the engine asks for backends. It supports:
  - Registering and unregistering client instances by name
  - Cached health probes (one probe per backend per TTL)
  - "All" versus "healthy only" backend subsets
  - Concurrent dispatch of one query to many backends, where a client
    that raises becomes a failed ``BackendResult`` instead of breaking the
    batch
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Callable
from typing import Any

from volunteermaniac.backends.base.client import BackendClient
from volunteermaniac.backends.base.exceptions import BackendNotFoundError
from volunteermaniac.models.query import SearchQuery
from volunteermaniac.models.result import APIError, BackendResult, ServiceHealth

logger = logging.getLogger(__name__)


class ServiceRegistry:
    """Registry of backend client instances.

    Example:
        >>> registry = ServiceRegistry(health_cache_ttl=60.0)
        >>> registry.register(VolunteerHubClient(base_url="https://api.volunteerhub.com/v1"))
        >>> results = await registry.search_healthy(query)

    Args:
        health_cache_ttl: Seconds a health probe result stays valid.
        clock: Monotonic time source in seconds.
    """

    def __init__(self, health_cache_ttl: float = 60.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.health_cache_ttl = health_cache_ttl
        self._clock = clock
        self._clients: dict[str, BackendClient] = {}
        self._health_cache: dict[str, tuple[float, ServiceHealth]] = {}
        self._lock = threading.Lock()

    # ── Registration ─────────────────────────────────────────────────────

    def register(self, client: BackendClient) -> None:
        """Register a client under its ``name``."""
        name = client.name
        with self._lock:
            if name in self._clients:
                logger.warning("Overwriting existing backend registration: %s", name)
            self._clients[name] = client
            self._health_cache.pop(name, None)
        logger.info("Registered backend: %s", name)

    def unregister(self, name: str) -> None:
        """Remove a client and its cached health."""
        with self._lock:
            self._clients.pop(name, None)
            self._health_cache.pop(name, None)
        logger.info("Unregistered backend: %s", name)

    def get(self, name: str) -> BackendClient:
        """Get a registered client by name.

        Raises:
            BackendNotFoundError: If no client is registered under ``name``.
        """
        with self._lock:
            client = self._clients.get(name)
        if client is None:
            raise BackendNotFoundError(f"Backend '{name}' is not registered. Available backends: {self.names}")
        return client

    @property
    def clients(self) -> list[BackendClient]:
        """All registered clients, in registration order."""
        with self._lock:
            return list(self._clients.values())

    @property
    def names(self) -> list[str]:
        with self._lock:
            return list(self._clients.keys())

    # ── Health ───────────────────────────────────────────────────────────

    async def health(self, client: BackendClient) -> ServiceHealth:
        """Health of ``client``, probing only when the cached result is stale.

        Probe failures are reported as ``healthy=False``; this never raises.
        """
        name = client.name
        with self._lock:
            cached = self._health_cache.get(name)
        if cached is not None and self._clock() - cached[0] < self.health_cache_ttl:
            return cached[1]

        try:
            health = await client.health_check()
        except Exception as e:
            logger.warning("Health check failed for %s: %s", name, e)
            health = ServiceHealth(source=name, healthy=False, error=str(e) or "Health check failed")

        with self._lock:
            if name in self._clients:
                self._health_cache[name] = (self._clock(), health)
        return health

    async def health_all(self) -> list[ServiceHealth]:
        """Health of every registered client, probed concurrently."""
        return list(await asyncio.gather(*(self.health(client) for client in self.clients)))

    async def get_healthy(self) -> list[BackendClient]:
        """Registered clients whose health probe passed."""
        statuses = await self.health_all()
        healthy_names = {status.source for status in statuses if status.healthy}
        # Re-read the registry so a client unregistered during probing is not returned
        return [client for client in self.clients if client.name in healthy_names]

    def clear_health_cache(self) -> None:
        with self._lock:
            self._health_cache.clear()

    # ── Search dispatch ──────────────────────────────────────────────────

    async def dispatch(self, clients: list[BackendClient], query: SearchQuery) -> list[BackendResult]:
        """Search every client in ``clients`` concurrently.

        A client that raises yields ``BackendResult(success=False)`` under the
        name captured before dispatch.
        """
        names = [client.name for client in clients]
        outcomes = await asyncio.gather(*(client.search(query) for client in clients), return_exceptions=True)

        results: list[BackendResult] = []
        for name, outcome in zip(names, outcomes, strict=True):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                logger.warning("Search failed for %s: %s", name, outcome)
                message = str(outcome) or type(outcome).__name__
                results.append(BackendResult.failed(name, APIError.from_message(name, message)))
            else:
                results.append(outcome)
        return results

    async def search_all(self, query: SearchQuery) -> list[BackendResult]:
        """Search every registered client."""
        return await self.dispatch(self.clients, query)

    async def search_healthy(self, query: SearchQuery) -> list[BackendResult]:
        """Search only clients whose health probe passed."""
        return await self.dispatch(await self.get_healthy(), query)

    # ── Lifecycle / stats ────────────────────────────────────────────────

    async def shutdown_all(self) -> None:
        """Gracefully shut down all registered clients."""
        for client in self.clients:
            try:
                await client.shutdown()
                logger.info("Shut down backend: %s", client.name)
            except Exception:
                logger.warning("Error shutting down backend: %s", client.name, exc_info=True)

    def stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "total_services": len(self._clients),
                "registered_services": list(self._clients.keys()),
                "health_cache_size": len(self._health_cache),
            }
