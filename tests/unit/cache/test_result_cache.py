"""Tests for the in-memory result cache."""

from __future__ import annotations

import time
from datetime import UTC, datetime
from typing import Any

import pytest

from volunteermaniac.cache.manager import ResultCache, haversine_km
from volunteermaniac.models.location import Coordinates
from volunteermaniac.models.query import CacheInvalidation, PopularLocation, SearchQuery


@pytest.fixture
def cache(clock: Any) -> ResultCache:
    return ResultCache(default_ttl=1800.0, max_size=100, clock=clock)


def _query(lat: float = 47.6062, lng: float = -122.3321, **kwargs: Any) -> SearchQuery:
    kwargs.setdefault("radius_miles", 25)
    return SearchQuery(coordinates=Coordinates(latitude=lat, longitude=lng), **kwargs)


class TestKeys:
    def test_coordinate_jitter_shares_a_key(self) -> None:
        assert _query(47.60621).cache_key() == _query(47.60618).cache_key()

    def test_cause_order_shares_a_key(self) -> None:
        a = _query(causes=["hunger", "education"])
        b = _query(causes=["education", "hunger"])
        assert a.cache_key() == b.cache_key()

    def test_different_radius_differs(self) -> None:
        assert _query(radius_miles=10).cache_key() != _query(radius_miles=25).cache_key()

    def test_different_keywords_do_not_share_an_entry(self, cache: ResultCache, opportunity_factory: Any) -> None:
        food = _query(keywords="food bank")
        trees = _query(keywords="tree planting")
        cache.set(food, [opportunity_factory(id="food")])

        assert food.cache_key() != trees.cache_key()
        assert cache.get(trees) is None

    def test_keyword_case_and_padding_share_a_key(self) -> None:
        assert _query(keywords="  Food Bank ").cache_key() == _query(keywords="food bank").cache_key()

    def test_jittered_query_hits(self, cache: ResultCache, opportunity_factory: Any) -> None:
        cache.set(_query(47.60621), [opportunity_factory()])

        assert cache.get(_query(47.60618)) is not None


class TestExpiry:
    def test_entry_expires_after_ttl(self, cache: ResultCache, clock: Any, opportunity_factory: Any) -> None:
        query = _query()
        cache.set(query, [opportunity_factory()], ttl=0.1)

        clock.advance(0.05)
        assert cache.get(query) is not None

        clock.advance(0.1)
        assert cache.get(query) is None
        assert cache.keys() == []

    def test_default_ttl_applies(self, cache: ResultCache, clock: Any, opportunity_factory: Any) -> None:
        query = _query()
        cache.set_default_ttl(10)
        cache.set(query, [opportunity_factory()])

        clock.advance(11)
        assert not cache.has(query)

    def test_expired_entries_purged_on_set(self, cache: ResultCache, clock: Any, opportunity_factory: Any) -> None:
        cache.set(_query(radius_miles=1), [opportunity_factory()], ttl=1)
        clock.advance(2)
        cache.set(_query(radius_miles=2), [opportunity_factory()])

        assert len(cache.keys()) == 1


class TestCapacity:
    def test_oldest_entry_is_evicted(self, clock: Any, opportunity_factory: Any) -> None:
        cache = ResultCache(max_size=2, clock=clock)
        first, second, third = (_query(radius_miles=r) for r in (1, 2, 3))

        cache.set(first, [opportunity_factory()])
        clock.advance(1)
        cache.set(second, [opportunity_factory()])
        clock.advance(1)
        cache.set(third, [opportunity_factory()])

        assert not cache.has(first)
        assert cache.has(second)
        assert cache.has(third)

    def test_replacing_a_key_does_not_evict(self, clock: Any, opportunity_factory: Any) -> None:
        cache = ResultCache(max_size=2, clock=clock)
        first, second = _query(radius_miles=1), _query(radius_miles=2)
        cache.set(first, [opportunity_factory()])
        cache.set(second, [opportunity_factory()])

        cache.set(second, [opportunity_factory(id="2")])

        assert cache.has(first)
        assert [o.id for o in cache.get(second) or []] == ["2"]

    def test_shrinking_evicts_immediately(self, cache: ResultCache, clock: Any, opportunity_factory: Any) -> None:
        for radius in (1, 2, 3):
            cache.set(_query(radius_miles=radius), [opportunity_factory()])
            clock.advance(1)

        cache.set_max_size(1)

        assert cache.keys() == [_query(radius_miles=3).cache_key()]

    def test_zero_capacity_stores_nothing(self, clock: Any, opportunity_factory: Any) -> None:
        cache = ResultCache(max_size=0, clock=clock)
        cache.set(_query(), [opportunity_factory()])

        assert cache.keys() == []


class TestInvalidation:
    def _fill(self, cache: ResultCache, opportunity_factory: Any) -> None:
        cache.set(_query(causes=["hunger"]), [opportunity_factory()])
        cache.set(_query(40.7128, -74.0060, causes=["education"], type="virtual"), [opportunity_factory()])
        cache.set(_query(34.0522, -118.2437, radius_miles=10), [opportunity_factory()])

    def test_by_location(self, cache: ResultCache, opportunity_factory: Any) -> None:
        self._fill(cache, opportunity_factory)

        removed = cache.invalidate(CacheInvalidation(location=Coordinates(latitude=47.6065, longitude=-122.3321)))

        assert removed == 1
        assert len(cache.keys()) == 2

    def test_by_radius(self, cache: ResultCache, opportunity_factory: Any) -> None:
        self._fill(cache, opportunity_factory)

        assert cache.invalidate(CacheInvalidation(radius_miles=10)) == 1

    def test_by_overlapping_causes(self, cache: ResultCache, opportunity_factory: Any) -> None:
        self._fill(cache, opportunity_factory)

        assert cache.invalidate(CacheInvalidation(causes=["education", "arts"])) == 1

    def test_criteria_are_ored(self, cache: ResultCache, opportunity_factory: Any) -> None:
        self._fill(cache, opportunity_factory)

        assert cache.invalidate(CacheInvalidation(radius_miles=10, type="virtual")) == 2

    def test_empty_criteria_match_nothing(self, cache: ResultCache, opportunity_factory: Any) -> None:
        self._fill(cache, opportunity_factory)

        assert cache.invalidate(CacheInvalidation()) == 0

    def test_haversine(self) -> None:
        seattle = Coordinates(latitude=47.6062, longitude=-122.3321)
        portland = Coordinates(latitude=45.5152, longitude=-122.6784)

        assert haversine_km(seattle, seattle) == 0.0
        assert haversine_km(seattle, portland) == pytest.approx(233.5, abs=1.0)


class TestStats:
    def test_counts_hits_and_misses(self, cache: ResultCache, opportunity_factory: Any) -> None:
        query = _query()
        cache.get(query)
        cache.set(query, [opportunity_factory(id="1"), opportunity_factory(id="2")])
        cache.get(query)
        cache.get(query)

        stats = cache.stats()
        assert stats.total_entries == 1
        assert stats.hit_count == 2
        assert stats.miss_count == 1
        assert stats.hit_rate == 0.67
        assert stats.total_size_bytes == 2 * 1024
        assert stats.oldest_entry is not None
        assert stats.oldest_entry == stats.newest_entry

    def test_expiry_clock_is_separate_from_reported_times(self, cache: ResultCache, opportunity_factory: Any) -> None:
        before = datetime.now(UTC)
        cache.set(_query(), [opportunity_factory()])

        stats = cache.stats()

        # The fake expiry clock reads 1000 s; reported times stay wall-clock
        assert stats.oldest_entry is not None
        assert stats.oldest_entry >= before
        assert ResultCache()._clock is time.monotonic

    def test_has_does_not_count(self, cache: ResultCache) -> None:
        cache.has(_query())

        assert cache.stats().miss_count == 0

    def test_clear_resets_everything(self, cache: ResultCache, opportunity_factory: Any) -> None:
        query = _query()
        cache.set(query, [opportunity_factory()])
        cache.get(query)

        cache.clear()

        stats = cache.stats()
        assert stats.total_entries == 0
        assert stats.hit_count == 0
        assert stats.hit_rate == 0.0
        assert stats.oldest_entry is None


class TestWarm:
    @pytest.mark.asyncio
    async def test_warms_missing_locations_only(self, cache: ResultCache, opportunity_factory: Any) -> None:
        seattle = PopularLocation(coordinates=Coordinates(latitude=47.6062, longitude=-122.3321), radius_miles=25)
        boston = PopularLocation(coordinates=Coordinates(latitude=42.3601, longitude=-71.0589), radius_miles=25)
        cache.set(SearchQuery(coordinates=seattle.coordinates, radius_miles=25), [opportunity_factory()])
        searched: list[SearchQuery] = []

        async def search(query: SearchQuery) -> list[Any]:
            searched.append(query)
            return [opportunity_factory(id="b")]

        written = await cache.warm([seattle, boston], search)

        assert written == 1
        assert [q.coordinates for q in searched] == [boston.coordinates]
        assert searched[0].limit == 50
        assert searched[0].type == "both"

    @pytest.mark.asyncio
    async def test_failures_and_empty_results_are_skipped(self, cache: ResultCache) -> None:
        locations = [
            PopularLocation(coordinates=Coordinates(latitude=47.0, longitude=-122.0), radius_miles=5),
            PopularLocation(coordinates=Coordinates(latitude=48.0, longitude=-122.0), radius_miles=5),
        ]
        calls = 0

        async def search(query: SearchQuery) -> list[Any]:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("backend down")
            return []

        assert await cache.warm(locations, search) == 0
        assert cache.keys() == []
