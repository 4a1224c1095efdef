"""Backend-specific exceptions."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from volunteermaniac.models.result import APIError


class BackendError(Exception):
    """Base exception for backend errors."""


class BackendRequestError(BackendError):
    """Raised when a backend request fails after all retries.

    Carries the classified ``APIError`` so callers never need to inspect the
    underlying transport exception.
    """

    def __init__(self, error: APIError) -> None:
        super().__init__(error.message)
        self.error = error


class OpportunityNotFoundError(BackendError):
    """Raised when a requested opportunity does not exist."""


class ConfigurationError(BackendError):
    """Raised when backend configuration is invalid."""


class BackendNotFoundError(BackendError):
    """Raised when a requested backend is not registered."""
