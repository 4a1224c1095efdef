"""Retry policy — Exponential backoff parameters and the retryability rule."""

from __future__ import annotations

import httpx
from pydantic import BaseModel, Field, model_validator

RETRYABLE_CLIENT_STATUSES = frozenset({408, 429})


class RetryPolicy(BaseModel):
    """Exponential backoff: ``delay(n) = min(base_delay * backoff_multiplier**n, max_delay)``."""

    max_retries: int = Field(default=3, ge=0, description="Retries after the initial attempt")
    base_delay: float = Field(default=1.0, gt=0, description="First backoff delay in seconds")
    max_delay: float = Field(default=10.0, gt=0, description="Upper bound of any backoff delay in seconds")
    backoff_multiplier: float = Field(default=2.0, gt=1, description="Growth factor between attempts")

    @model_validator(mode="after")
    def _check_bounds(self) -> RetryPolicy:
        if self.max_delay <= self.base_delay:
            raise ValueError("max_delay must be greater than base_delay")
        return self

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay(self, attempt: int) -> float:
        """Backoff before retry number ``attempt + 1`` (``attempt`` is zero-based)."""
        return min(self.base_delay * self.backoff_multiplier**attempt, self.max_delay)


def is_retryable(exc: Exception) -> bool:
    """Retry on no-response failures, HTTP 5xx, 408 and 429; nothing else."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status >= 500 or status in RETRYABLE_CLIENT_STATUSES
    return isinstance(exc, httpx.TransportError)


def retry_after_seconds(response: httpx.Response) -> float | None:
    """Parse a numeric ``Retry-After`` header; HTTP-date values are ignored."""
    value = response.headers.get("retry-after")
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None
