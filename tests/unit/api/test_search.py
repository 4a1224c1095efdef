"""Tests for the single-location, multi-location and retry search endpoints."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from conftest import StubBackend, make_opportunity
from volunteermaniac.api.app import create_app
from volunteermaniac.backends.base.registry import ServiceRegistry
from volunteermaniac.cache.manager import ResultCache
from volunteermaniac.config.settings import Settings
from volunteermaniac.core.engine import SearchEngine
from volunteermaniac.models.result import APIError, ErrorKind

# ── Helpers ──────────────────────────────────────────────────────────────────

QUERY = {"coordinates": {"latitude": 47.6062, "longitude": -122.3321}, "radius_miles": 25}
ALL_BACKENDS = {"use_healthy_services_only": False}


def _unavailable(source: str) -> APIError:
    return APIError(
        source=source,
        type=ErrorKind.SERVICE_UNAVAILABLE,
        message="HTTP 503",
        retryable=True,
        status_code=503,
    )


@pytest.fixture
def backends() -> list[StubBackend]:
    return [
        StubBackend("VolunteerHub", [make_opportunity("VolunteerHub", "1"), make_opportunity("VolunteerHub", "2")]),
        StubBackend("Idealist", error=_unavailable("Idealist")),
    ]


@pytest.fixture
def engine(backends: list[StubBackend], settings: Settings) -> SearchEngine:
    registry = ServiceRegistry()
    for backend in backends:
        registry.register(backend)
    return SearchEngine(registry, ResultCache(), settings)


@pytest.fixture
def client(settings: Settings, engine: SearchEngine) -> TestClient:
    return TestClient(create_app(settings, engine=engine))


# ══════════════════════════════════════════════════════════════════════════════
# POST /v1/search
# ══════════════════════════════════════════════════════════════════════════════


class TestSearchEndpoint:
    def test_partial_result(self, client: TestClient) -> None:
        response = client.post("/v1/search", json={"query": QUERY, "options": ALL_BACKENDS})

        assert response.status_code == 200
        data = response.json()
        assert data["total_results"] == 2
        assert data["partial_results"] is True
        assert data["from_cache"] is False
        assert data["sources"] == ["VolunteerHub", "Idealist"]
        assert data["errors"][0]["source"] == "Idealist"
        assert data["errors"][0]["type"] == "service_unavailable"
        assert len(data["service_statuses"]) == 2

    def test_repeat_is_served_from_cache(self, client: TestClient, backends: list[StubBackend]) -> None:
        body = {"query": QUERY, "options": ALL_BACKENDS}
        client.post("/v1/search", json=body)

        data = client.post("/v1/search", json=body).json()

        assert data["from_cache"] is True
        assert backends[0].search_calls == 1

    def test_invalid_radius_is_rejected(self, client: TestClient) -> None:
        response = client.post("/v1/search", json={"query": {**QUERY, "radius_miles": 0}})

        assert response.status_code == 422

    def test_invalid_coordinates_are_rejected(self, client: TestClient) -> None:
        query = {**QUERY, "coordinates": {"latitude": 91, "longitude": 0}}

        assert client.post("/v1/search", json={"query": query}).status_code == 422

    def test_limit_above_100_is_rejected(self, client: TestClient) -> None:
        assert client.post("/v1/search", json={"query": {**QUERY, "limit": 101}}).status_code == 422

    def test_unexpected_engine_error_is_500(self, client: TestClient, engine: SearchEngine) -> None:
        with patch.object(engine, "search", AsyncMock(side_effect=RuntimeError("engine on fire"))):
            response = client.post("/v1/search", json={"query": QUERY})

        assert response.status_code == 500
        assert "engine on fire" in response.json()["detail"]


# ══════════════════════════════════════════════════════════════════════════════
# POST /v1/search/multi
# ══════════════════════════════════════════════════════════════════════════════


class TestMultiSearchEndpoint:
    def test_groups_and_statistics(self, client: TestClient) -> None:
        response = client.post(
            "/v1/search/multi",
            json={
                "targets": [
                    {
                        "original_input": "Seattle",
                        "coordinates": {"latitude": 47.6062, "longitude": -122.3321},
                        "display_location": "Seattle, WA",
                    },
                    {"original_input": "Atlantis", "error": "Location not found: Atlantis"},
                ],
                "radius_miles": 25,
                "options": ALL_BACKENDS,
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["search_statistics"]["total_locations"] == 2
        assert data["search_statistics"]["successful_locations"] == 1
        assert data["location_groups"][1]["search_success"] is False
        assert data["opportunities"][0]["search_context"]["original_input"] == "Seattle"
        assert data["partial_results"] is True

    def test_empty_targets_rejected(self, client: TestClient) -> None:
        response = client.post("/v1/search/multi", json={"targets": [], "radius_miles": 25})

        assert response.status_code == 422

    def test_more_than_ten_targets_rejected(self, client: TestClient) -> None:
        targets = [{"original_input": f"Place {i}"} for i in range(11)]

        response = client.post("/v1/search/multi", json={"targets": targets, "radius_miles": 25})

        assert response.status_code == 422


# ══════════════════════════════════════════════════════════════════════════════
# POST /v1/search/retry
# ══════════════════════════════════════════════════════════════════════════════


class TestRetryEndpoint:
    def test_retries_failed_backend(self, client: TestClient, backends: list[StubBackend]) -> None:
        previous = client.post("/v1/search", json={"query": QUERY, "options": ALL_BACKENDS}).json()
        backends[1].error = None
        backends[1].opportunities = [make_opportunity("Idealist", "i1")]

        response = client.post(
            "/v1/search/retry",
            json={"query": QUERY, "previous_result": previous, "options": ALL_BACKENDS},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["total_results"] == 3
        assert data["errors"] is None
        assert data["partial_results"] is False
        assert backends[0].search_calls == 1
        assert backends[1].search_calls == 2

    def test_nothing_retryable_echoes_previous(self, client: TestClient, backends: list[StubBackend]) -> None:
        previous: dict[str, Any] = {"total_results": 0, "opportunities": []}

        response = client.post("/v1/search/retry", json={"query": QUERY, "previous_result": previous})

        assert response.status_code == 200
        assert response.json()["total_results"] == 0
        assert all(backend.search_calls == 0 for backend in backends)
