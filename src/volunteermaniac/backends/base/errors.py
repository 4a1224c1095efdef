"""Error classification — Maps transport and HTTP failures onto ``APIError``.

| Kind                    | Retryable | Typical cause                     |
|-------------------------|-----------|-----------------------------------|
| ``network``             | yes       | no response reached the server    |
| ``timeout``             | yes       | client-side deadline exceeded     |
| ``rate_limit``          | yes       | HTTP 429 (honors ``Retry-After``) |
| ``service_unavailable`` | yes       | HTTP 502 / 503 / 504              |
| ``server_error``        | yes       | other HTTP 5xx                    |
| ``authentication``      | no        | HTTP 401 / 403                    |
| ``invalid_response``    | no        | HTTP 404 or unparsable payload    |

Any other status is reported as a non-retryable ``server_error``.
"""

from __future__ import annotations

import json

import httpx
from pydantic import ValidationError

from volunteermaniac.backends.base.retry import retry_after_seconds
from volunteermaniac.models.result import APIError, ErrorKind


def classify_exception(exc: BaseException, source: str, operation: str) -> APIError:
    """Build the ``APIError`` describing ``exc`` raised during ``operation`` on ``source``."""
    if isinstance(exc, httpx.TimeoutException):
        return APIError(
            source=source,
            type=ErrorKind.TIMEOUT,
            message=f"Request timeout during {operation}",
            user_message=f"{source} is taking too long to respond",
            retryable=True,
            suggestions=[
                "The service may be experiencing high traffic",
                "Try again with a smaller search radius",
                "Other sources are still being searched",
            ],
        )

    if isinstance(exc, httpx.TransportError):
        return APIError(
            source=source,
            type=ErrorKind.NETWORK,
            message=f"Network error during {operation}: {exc}",
            user_message=f"Unable to connect to {source}",
            retryable=True,
            suggestions=[
                "Check your internet connection",
                "Try again in a few moments",
                "The service may be temporarily unavailable",
            ],
        )

    if isinstance(exc, httpx.HTTPStatusError):
        return _classify_status(exc.response, source, operation)

    if isinstance(exc, json.JSONDecodeError | ValidationError | KeyError | TypeError):
        return APIError(
            source=source,
            type=ErrorKind.INVALID_RESPONSE,
            message=f"Unparsable response during {operation}: {exc}",
            user_message=f"{source} returned data we could not read",
            retryable=False,
            suggestions=["Other sources may have opportunities in your area"],
        )

    return APIError.from_message(source, f"{operation} failed: {exc}")


def _classify_status(response: httpx.Response, source: str, operation: str) -> APIError:
    status = response.status_code

    if status in (401, 403):
        return APIError(
            source=source,
            type=ErrorKind.AUTHENTICATION,
            message=f"Authentication failed for {operation}",
            user_message=f"Access denied by {source}",
            retryable=False,
            status_code=status,
            suggestions=[
                "This service may require authentication",
                "Try searching other sources",
                "Contact support if this persists",
            ],
        )

    if status == 429:
        retry_after = retry_after_seconds(response)
        user_message = f"{source} is temporarily limiting requests"
        if retry_after is not None:
            user_message += f". Please wait {retry_after:g} seconds before trying again"
        return APIError(
            source=source,
            type=ErrorKind.RATE_LIMIT,
            message=f"Rate limit exceeded for {operation}",
            user_message=user_message,
            retryable=True,
            retry_after_seconds=retry_after,
            status_code=status,
            suggestions=[
                "Wait a few minutes before searching again",
                "Try using fewer search filters",
                "Other sources may still be available",
            ],
        )

    if status in (502, 503, 504):
        return APIError(
            source=source,
            type=ErrorKind.SERVICE_UNAVAILABLE,
            message=f"Service unavailable during {operation}: {status}",
            user_message=f"{source} is temporarily unavailable",
            retryable=True,
            status_code=status,
            suggestions=[
                "The service may be under maintenance",
                "Try again in a few minutes",
                "Other volunteer sources are still being searched",
            ],
        )

    if status >= 500:
        return APIError(
            source=source,
            type=ErrorKind.SERVER_ERROR,
            message=f"Server error during {operation}: {status}",
            user_message=f"{source} encountered an internal error",
            retryable=True,
            status_code=status,
            suggestions=[
                "This is a temporary server issue",
                "Try again in a few minutes",
                "Other sources may have results available",
            ],
        )

    if status == 404:
        return APIError(
            source=source,
            type=ErrorKind.INVALID_RESPONSE,
            message=f"Resource not found during {operation}",
            user_message=f"{source} could not find matching opportunities",
            retryable=False,
            status_code=status,
            suggestions=[
                "Try broadening your search criteria",
                "Check if your location is spelled correctly",
                "Other sources may have opportunities in your area",
            ],
        )

    if status == 408:
        return APIError(
            source=source,
            type=ErrorKind.TIMEOUT,
            message=f"Request timeout during {operation}: {status}",
            user_message=f"{source} is taking too long to respond",
            retryable=True,
            status_code=status,
            suggestions=["Try again in a few moments", "Other sources are still being searched"],
        )

    return APIError(
        source=source,
        type=ErrorKind.SERVER_ERROR,
        message=f"HTTP {status} error during {operation}",
        user_message=f"{source} returned an unexpected response",
        retryable=False,
        status_code=status,
        suggestions=[
            "Check your search criteria",
            "Other volunteer sources are still available",
        ],
    )


def is_service_unavailable(error: APIError) -> bool:
    """Whether ``error`` means the whole service is down rather than this one request."""
    if error.type in (ErrorKind.SERVICE_UNAVAILABLE, ErrorKind.NETWORK):
        return True
    return error.type == ErrorKind.SERVER_ERROR and error.status_code is not None and error.status_code >= 500
