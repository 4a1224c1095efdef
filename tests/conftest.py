"""Shared test fixtures and configuration."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

import pytest

from volunteermaniac.backends.base.client import BackendClient
from volunteermaniac.backends.base.exceptions import OpportunityNotFoundError
from volunteermaniac.config.settings import Settings
from volunteermaniac.models.location import Coordinates
from volunteermaniac.models.opportunity import Opportunity
from volunteermaniac.models.query import SearchQuery
from volunteermaniac.models.result import APIError, BackendResult, ServiceHealth


class FakeClock:
    """Manually advanced time source; ``sleep`` advances it instead of waiting."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class StubBackend(BackendClient):
    """In-memory backend returning canned results."""

    def __init__(
        self,
        name: str,
        opportunities: list[Opportunity] | None = None,
        *,
        error: APIError | None = None,
        raises: Exception | None = None,
        healthy: bool = True,
    ) -> None:
        self._name = name
        self.opportunities = opportunities or []
        self.error = error
        self.raises = raises
        self.healthy = healthy
        self.search_calls = 0
        self.health_calls = 0

    @property
    def name(self) -> str:
        return self._name

    async def search(self, query: SearchQuery) -> BackendResult:
        self.search_calls += 1
        if self.raises is not None:
            raise self.raises
        if self.error is not None:
            return BackendResult.failed(self._name, self.error, 5)
        return BackendResult.ok(self._name, self.opportunities, 5)

    async def get_details(self, opportunity_id: str) -> Opportunity:
        for opportunity in self.opportunities:
            if opportunity.id == opportunity_id:
                return opportunity
        raise OpportunityNotFoundError(opportunity_id)

    async def health_check(self) -> ServiceHealth:
        self.health_calls += 1
        return ServiceHealth(
            source=self._name,
            healthy=self.healthy,
            response_time_ms=1,
            error=None if self.healthy else "down",
        )


def make_opportunity(source: str = "VolunteerHub", id: str = "1", **overrides: object) -> Opportunity:
    fields: dict[str, object] = {
        "id": id,
        "source": source,
        "title": f"Opportunity {id}",
        "organization": "Food Bank",
        "city": "Seattle",
        "country": "USA",
        "cause": "hunger",
        "last_updated": datetime(2024, 1, 1, tzinfo=UTC),
    }
    fields.update(overrides)
    return Opportunity(**fields)  # type: ignore[arg-type]


@pytest.fixture
def settings() -> Settings:
    """Create a test Settings instance with defaults and no configured backends."""
    return Settings(
        _env_file=None,  # type: ignore[call-arg]
        debug=True,
        backends={},
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def seattle() -> Coordinates:
    return Coordinates(latitude=47.6062, longitude=-122.3321)


@pytest.fixture
def query(seattle: Coordinates) -> SearchQuery:
    return SearchQuery(coordinates=seattle, radius_miles=25, causes=["hunger", "education"])


@pytest.fixture
def opportunity_factory() -> Callable[..., Opportunity]:
    return make_opportunity


@pytest.fixture
def backend_factory() -> Callable[..., StubBackend]:
    return StubBackend
