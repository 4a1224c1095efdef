"""Tests for error classification helpers."""

from __future__ import annotations

import json

import httpx
import pytest

from volunteermaniac.backends.base.errors import classify_exception, is_service_unavailable
from volunteermaniac.backends.base.retry import is_retryable, retry_after_seconds
from volunteermaniac.models.result import APIError, ErrorKind


def _status_error(status: int, headers: dict[str, str] | None = None) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://api.test/v1/opportunities/search")
    response = httpx.Response(status, headers=headers, request=request)
    return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)


class TestClassification:
    @pytest.mark.parametrize(
        ("status", "kind", "retryable"),
        [
            (401, ErrorKind.AUTHENTICATION, False),
            (403, ErrorKind.AUTHENTICATION, False),
            (404, ErrorKind.INVALID_RESPONSE, False),
            (408, ErrorKind.TIMEOUT, True),
            (429, ErrorKind.RATE_LIMIT, True),
            (500, ErrorKind.SERVER_ERROR, True),
            (502, ErrorKind.SERVICE_UNAVAILABLE, True),
            (503, ErrorKind.SERVICE_UNAVAILABLE, True),
            (504, ErrorKind.SERVICE_UNAVAILABLE, True),
            (418, ErrorKind.SERVER_ERROR, False),
        ],
    )
    def test_http_statuses(self, status: int, kind: ErrorKind, retryable: bool) -> None:
        error = classify_exception(_status_error(status), "VolunteerHub", "search")

        assert error.type == kind
        assert error.retryable is retryable
        assert error.status_code == status
        assert error.source == "VolunteerHub"
        assert error.user_message
        assert error.suggestions

    def test_rate_limit_carries_retry_after(self) -> None:
        error = classify_exception(_status_error(429, {"Retry-After": "30"}), "VolunteerHub", "search")

        assert error.retry_after_seconds == 30.0
        assert "30 seconds" in error.user_message

    def test_transport_errors(self) -> None:
        assert classify_exception(httpx.ConnectError("refused"), "X", "search").type == ErrorKind.NETWORK
        assert classify_exception(httpx.ConnectTimeout("slow"), "X", "search").type == ErrorKind.TIMEOUT

    def test_parse_errors(self) -> None:
        decode_error = json.JSONDecodeError("bad", "doc", 0)
        assert classify_exception(decode_error, "X", "search").type == ErrorKind.INVALID_RESPONSE
        assert classify_exception(KeyError("id"), "X", "search").type == ErrorKind.INVALID_RESPONSE

    def test_unknown_exception_is_generic_server_error(self) -> None:
        error = classify_exception(RuntimeError("boom"), "X", "search")

        assert error.type == ErrorKind.SERVER_ERROR
        assert error.retryable
        assert "boom" in error.message


class TestHelpers:
    def test_is_retryable(self) -> None:
        assert is_retryable(_status_error(500))
        assert is_retryable(_status_error(429))
        assert is_retryable(_status_error(408))
        assert not is_retryable(_status_error(400))
        assert not is_retryable(_status_error(404))
        assert is_retryable(httpx.ConnectError("refused"))
        assert not is_retryable(ValueError("nope"))

    @pytest.mark.parametrize(
        ("header", "expected"),
        [("5", 5.0), ("1.5", 1.5), ("Wed, 21 Oct 2015 07:28:00 GMT", None), ("-3", None)],
    )
    def test_retry_after_parsing(self, header: str, expected: float | None) -> None:
        response = httpx.Response(429, headers={"Retry-After": header})
        assert retry_after_seconds(response) == expected

    def test_is_service_unavailable(self) -> None:
        down = classify_exception(_status_error(503), "X", "search")
        auth = classify_exception(_status_error(401), "X", "search")

        assert is_service_unavailable(down)
        assert is_service_unavailable(classify_exception(httpx.ConnectError("refused"), "X", "search"))
        assert is_service_unavailable(classify_exception(_status_error(500), "X", "search"))
        assert not is_service_unavailable(auth)
        assert not is_service_unavailable(APIError.from_message("X", "no status"))
