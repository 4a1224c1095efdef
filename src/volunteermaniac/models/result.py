"""Per-backend result models — What one backend returns for one query attempt.

``APIError`` is the single structured error type used everywhere a backend
failure is reported. Backends, the registry, and the engine all produce it
the same way, so callers never have to guess whether an error is a string
or an object.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field

from volunteermaniac.models.opportunity import Opportunity


class ErrorKind(str, Enum):
    """Failure categories for backend calls."""

    NETWORK = "network"
    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"
    SERVICE_UNAVAILABLE = "service_unavailable"
    SERVER_ERROR = "server_error"
    AUTHENTICATION = "authentication"
    INVALID_RESPONSE = "invalid_response"


class APIError(BaseModel):
    """A classified backend (or aggregation-level) failure."""

    source: str = Field(description="Backend name, or the engine for aggregation-level failures")
    type: ErrorKind = Field(description="Failure category")
    message: str = Field(description="Technical message")
    user_message: str = Field(default="", description="Message suitable for end users")
    retryable: bool = Field(default=False, description="Whether retrying may succeed")
    retry_after_seconds: float | None = Field(default=None, description="Server-requested wait before retrying")
    status_code: int | None = Field(default=None, description="HTTP status, if a response was received")
    suggestions: list[str] = Field(default_factory=list, description="Recovery suggestions for end users")

    @classmethod
    def from_message(cls, source: str, message: str) -> APIError:
        """Wrap a bare failure message as a generic, retryable ``server_error``."""
        return cls(
            source=source,
            type=ErrorKind.SERVER_ERROR,
            message=message,
            user_message=f"{source} encountered an error",
            retryable=True,
            suggestions=[
                "This service may be temporarily unavailable",
                "Other sources are still being searched",
                "Try again in a few minutes",
            ],
        )


class BackendResult(BaseModel):
    """Outcome of one backend search. Produced once per backend per attempt."""

    model_config = {"frozen": True}

    source: str = Field(description="Backend name")
    opportunities: list[Opportunity] = Field(default_factory=list, description="Normalized results")
    success: bool = Field(description="Whether the backend call succeeded")
    error: APIError | None = Field(default=None, description="Classified failure when success is false")
    response_time_ms: int | None = Field(default=None, description="Backend round-trip time in ms")

    @property
    def error_message(self) -> str | None:
        return self.error.message if self.error else None

    @classmethod
    def ok(cls, source: str, opportunities: list[Opportunity], response_time_ms: int | None = None) -> BackendResult:
        return cls(source=source, opportunities=opportunities, success=True, response_time_ms=response_time_ms)

    @classmethod
    def failed(cls, source: str, error: APIError, response_time_ms: int | None = None) -> BackendResult:
        return cls(source=source, success=False, error=error, response_time_ms=response_time_ms)


class ServiceStatus(BaseModel):
    """Status of one backend as observed during an aggregated search."""

    service_name: str = Field(description="Backend name")
    healthy: bool = Field(description="Whether the backend answered successfully")
    response_time_ms: int | None = Field(default=None, description="Backend round-trip time in ms")
    last_checked: datetime = Field(default_factory=lambda: datetime.now(UTC), description="Observation time")
    error: str | None = Field(default=None, description="Failure message, if any")
    consecutive_failures: int = Field(default=0, description="Failures observed in a row")


class ServiceHealth(BaseModel):
    """Result of a backend health probe."""

    source: str = Field(description="Backend name")
    healthy: bool = Field(description="Whether the probe passed")
    response_time_ms: int | None = Field(default=None, description="Probe latency in ms")
    error: str | None = Field(default=None, description="Probe failure message")
    last_checked: datetime = Field(default_factory=lambda: datetime.now(UTC), description="Probe time")
