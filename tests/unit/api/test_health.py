"""Tests for the health check endpoints."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from conftest import StubBackend
from volunteermaniac import __version__
from volunteermaniac.api.app import create_app
from volunteermaniac.backends.base.registry import ServiceRegistry
from volunteermaniac.cache.manager import ResultCache
from volunteermaniac.config.settings import Settings
from volunteermaniac.core.engine import SearchEngine


@pytest.fixture
def client(settings: Settings) -> TestClient:
    """Create a test client serving one healthy and one unhealthy backend."""
    registry = ServiceRegistry()
    registry.register(StubBackend("VolunteerHub"))
    registry.register(StubBackend("Idealist", healthy=False))
    app = create_app(settings, engine=SearchEngine(registry, ResultCache(), settings))
    return TestClient(app)


class TestHealthEndpoints:
    """Tests for health check endpoints."""

    def test_health_check(self, client: TestClient) -> None:
        response = client.get("/v1/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "volunteermaniac"
        assert data["version"] == __version__
        assert data["registered_backends"] == ["VolunteerHub", "Idealist"]

    def test_backend_health_check(self, client: TestClient) -> None:
        response = client.get("/v1/health/backends")
        assert response.status_code == 200
        backends = response.json()["backends"]
        assert backends["VolunteerHub"]["healthy"] is True
        assert backends["Idealist"]["healthy"] is False
        assert backends["Idealist"]["error"] == "down"

    def test_engine_missing_is_an_error(self, settings: Settings) -> None:
        client = TestClient(create_app(settings), raise_server_exceptions=False)

        assert client.get("/v1/health").status_code == 500
