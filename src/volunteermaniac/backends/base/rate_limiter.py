"""Rate limiting — Per-backend sliding-window admission control.

Each backend gets its own ordered list of request timestamps, checked
against two windows (last minute, last hour). A request is admitted only
when both windows are under their limits. Waiting callers sleep until the
oldest timestamp of the binding window ages out, then check again.

Limiters are in-memory and live as long as the process.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections import deque
from collections.abc import Awaitable, Callable

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

MINUTE = 60.0
HOUR = 3600.0


class RateLimitConfig(BaseModel):
    """Request budget for one backend."""

    requests_per_minute: int = Field(default=60, gt=0, description="Maximum requests in any 60 s window")
    requests_per_hour: int = Field(default=1000, gt=0, description="Maximum requests in any 3600 s window")


class RateLimitStatus(BaseModel):
    """Current usage of one backend's budget."""

    requests_last_minute: int
    requests_last_hour: int
    minute_limit: int
    hour_limit: int
    seconds_until_reset: float = Field(description="Wait before the next request would be admitted")


class RateLimiter:
    """Sliding-window limiter keyed by backend identifier.

    Args:
        config: Per-minute and per-hour budget.
        clock: Monotonic time source in seconds.
        sleep: Coroutine used to wait; injectable for tests.
    """

    def __init__(
        self,
        config: RateLimitConfig,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config
        self._clock = clock
        self._sleep = sleep
        self._requests: dict[str, deque[float]] = {}
        self._lock = threading.Lock()

    # ── Public API ───────────────────────────────────────────────────────

    def is_allowed(self, backend_id: str) -> bool:
        """Whether a request for ``backend_id`` would be admitted right now."""
        with self._lock:
            return self._delay_locked(backend_id, self._clock()) <= 0

    def record(self, backend_id: str) -> None:
        """Record a request made now."""
        with self._lock:
            now = self._clock()
            self._purge_locked(backend_id, now)
            self._requests[backend_id].append(now)

    def seconds_until_allowed(self, backend_id: str) -> float:
        """Time until the next request would be admitted (0 if allowed now)."""
        with self._lock:
            return max(self._delay_locked(backend_id, self._clock()), 0.0)

    async def wait_until_allowed(self, backend_id: str) -> None:
        """Suspend until a request for ``backend_id`` would be admitted."""
        while True:
            delay = self.seconds_until_allowed(backend_id)
            if delay <= 0:
                return
            logger.debug("Rate limit reached for %s, waiting %.2fs", backend_id, delay)
            await self._sleep(delay)

    async def acquire(self, backend_id: str) -> None:
        """Wait until admitted, then record the request.

        The final check and the record happen under the same lock, so two
        concurrent callers cannot both take the last free slot.
        """
        while True:
            with self._lock:
                now = self._clock()
                delay = self._delay_locked(backend_id, now)
                if delay <= 0:
                    self._requests[backend_id].append(now)
                    return
            logger.debug("Rate limit reached for %s, waiting %.2fs", backend_id, delay)
            await self._sleep(delay)

    def status(self, backend_id: str) -> RateLimitStatus:
        with self._lock:
            now = self._clock()
            minute, hour = self._counts_locked(backend_id, now)
            return RateLimitStatus(
                requests_last_minute=minute,
                requests_last_hour=hour,
                minute_limit=self.config.requests_per_minute,
                hour_limit=self.config.requests_per_hour,
                seconds_until_reset=max(self._delay_locked(backend_id, now), 0.0),
            )

    def reset(self, backend_id: str) -> None:
        with self._lock:
            self._requests.pop(backend_id, None)

    def reset_all(self) -> None:
        with self._lock:
            self._requests.clear()

    # ── Internals (caller holds the lock) ────────────────────────────────

    def _purge_locked(self, backend_id: str, now: float) -> deque[float]:
        requests = self._requests.setdefault(backend_id, deque())
        while requests and now - requests[0] >= HOUR:
            requests.popleft()
        return requests

    def _counts_locked(self, backend_id: str, now: float) -> tuple[int, int]:
        requests = self._purge_locked(backend_id, now)
        minute = sum(1 for ts in requests if now - ts < MINUTE)
        return minute, len(requests)

    def _delay_locked(self, backend_id: str, now: float) -> float:
        requests = self._purge_locked(backend_id, now)
        minute, hour = self._counts_locked(backend_id, now)

        delay = 0.0
        if minute >= self.config.requests_per_minute:
            oldest_in_minute = next(ts for ts in requests if now - ts < MINUTE)
            delay = max(delay, MINUTE - (now - oldest_in_minute))
        if hour >= self.config.requests_per_hour:
            delay = max(delay, HOUR - (now - requests[0]))
        return delay


class RateLimiterManager:
    """Creates one limiter per backend on first use and hands back the same one afterwards."""

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._clock = clock
        self._sleep = sleep
        self._limiters: dict[str, RateLimiter] = {}
        self._lock = threading.Lock()

    def get_limiter(self, backend_id: str, config: RateLimitConfig) -> RateLimiter:
        with self._lock:
            limiter = self._limiters.get(backend_id)
            if limiter is None:
                limiter = RateLimiter(config, clock=self._clock, sleep=self._sleep)
                self._limiters[backend_id] = limiter
                logger.debug(
                    "Created rate limiter for %s (%d/min, %d/h)",
                    backend_id,
                    config.requests_per_minute,
                    config.requests_per_hour,
                )
            return limiter

    def remove_limiter(self, backend_id: str) -> None:
        with self._lock:
            self._limiters.pop(backend_id, None)

    def all_statuses(self) -> dict[str, RateLimitStatus]:
        with self._lock:
            limiters = dict(self._limiters)
        return {backend_id: limiter.status(backend_id) for backend_id, limiter in limiters.items()}

    def reset_all(self) -> None:
        with self._lock:
            limiters = list(self._limiters.values())
        for limiter in limiters:
            limiter.reset_all()
