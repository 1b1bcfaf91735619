"""Tests for the single-entry freshness cache."""

from tfl_arrivals.cache import CacheState, FreshnessCache
from tfl_arrivals.models import ArrivalPrediction, ArrivalSet


def _arrival_set(*lines):
    return ArrivalSet.from_predictions(
        ArrivalPrediction(line=line, destination="Archway", seconds_to_arrival=60 * i)
        for i, line in enumerate(lines)
    )


class TestFreshnessCache:
    def _make_cache(self, clock, window=30.0):
        return FreshnessCache(freshness_window=window, clock=clock)

    def test_cold_start_empty(self, clock):
        cache = self._make_cache(clock)
        entry = cache.read()
        assert entry.state == CacheState.empty
        assert entry.arrivals is None
        assert entry.fetched_at is None
        assert entry.age() is None

    def test_write_makes_fresh(self, clock):
        cache = self._make_cache(clock)
        data = _arrival_set("73")
        cache.write(data)
        entry = cache.read()
        assert entry.state == CacheState.fresh
        assert entry.arrivals is data
        assert entry.fetched_at is not None

    def test_fresh_just_inside_window(self, clock):
        cache = self._make_cache(clock, window=30)
        cache.write(_arrival_set("73"))
        clock.advance(29)
        assert cache.read().state == CacheState.fresh

    def test_stale_at_window_boundary(self, clock):
        cache = self._make_cache(clock, window=30)
        cache.write(_arrival_set("73"))
        clock.advance(30)
        # age == window counts as stale
        assert cache.read().state == CacheState.stale

    def test_stale_keeps_data(self, clock):
        cache = self._make_cache(clock, window=30)
        data = _arrival_set("73", "390")
        cache.write(data)
        clock.advance(3600)
        entry = cache.read()
        assert entry.state == CacheState.stale
        assert entry.arrivals is data

    def test_write_replaces_and_refreshes(self, clock):
        cache = self._make_cache(clock, window=30)
        cache.write(_arrival_set("old"))
        clock.advance(45)
        assert cache.read().state == CacheState.stale
        new = _arrival_set("new")
        cache.write(new)
        entry = cache.read()
        assert entry.state == CacheState.fresh
        assert entry.arrivals is new

    def test_snapshot_unaffected_by_later_write(self, clock):
        cache = self._make_cache(clock)
        first = _arrival_set("73")
        cache.write(first)
        snapshot = cache.read()
        cache.write(_arrival_set("390"))
        assert snapshot.arrivals is first
        assert snapshot.arrivals.arrivals[0].line == "73"

    def test_explicit_timestamp(self, clock):
        cache = self._make_cache(clock, window=30)
        cache.write(_arrival_set("73"), timestamp=clock() - 40)
        assert cache.read().state == CacheState.stale

    def test_entry_age(self, clock):
        cache = self._make_cache(clock)
        cache.write(_arrival_set("73"))
        clock.advance(42)
        assert cache.read().age(clock()) == 42.0
