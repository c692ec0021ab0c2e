"""Tests for radius filtering, ranking and the discovery engine."""

from datetime import timedelta

import pytest

from whispermap_backend.config import DiscoverySettings
from whispermap_backend.models.whisper import GeoPoint
from whispermap_backend.services.discovery import (
    DiscoveryEngine,
    filter_by_radius,
    rank_and_limit,
    sort_newest_first,
)
from whispermap_backend.utils.geo_utils import haversine_distance_meters

from conftest import NYC, T0, make_whisper

NEAR = GeoPoint(latitude=40.7135, longitude=-74.0065)
FAR = GeoPoint(latitude=40.7300, longitude=-74.0200)


@pytest.mark.unit
class TestFilterByRadius:
    def test_nearby_included_far_excluded(self):
        near, far = make_whisper(location=NEAR), make_whisper(location=FAR)
        assert filter_by_radius(NYC, [near, far], 1000) == [near]

    def test_boundary_is_inclusive(self):
        whisper = make_whisper(location=NEAR)
        distance = haversine_distance_meters(NYC, NEAR)
        assert filter_by_radius(NYC, [whisper], distance) == [whisper]
        assert filter_by_radius(NYC, [whisper], distance - 0.01) == []

    def test_unknown_location_yields_nothing(self):
        assert filter_by_radius(None, [make_whisper()], 5000) == []

    def test_whisper_radius_ignored_by_default(self):
        whisper = make_whisper(location=NEAR, whisper_radius_meters=10.0)
        assert filter_by_radius(NYC, [whisper], 1000) == [whisper]

    def test_whisper_radius_enforced_when_enabled(self):
        small = make_whisper(location=NEAR, whisper_radius_meters=10.0)
        large = make_whisper(location=NEAR, whisper_radius_meters=500.0)
        assert filter_by_radius(NYC, [small, large], 1000, enforce_whisper_radius=True) == [large]


@pytest.mark.unit
class TestRanking:
    def test_newest_first_with_id_tiebreak(self):
        a = make_whisper(created_at=T0)
        b = make_whisper(created_at=T0)
        old = make_whisper(created_at=T0 - timedelta(minutes=5))

        ranked = sort_newest_first([old, a, b])
        assert ranked[-1] is old
        assert [w.id for w in ranked[:2]] == sorted([a.id, b.id], reverse=True)

    def test_cap_keeps_newest(self):
        whispers = [make_whisper(created_at=T0 - timedelta(minutes=i)) for i in range(5)]
        limited = rank_and_limit(reversed(whispers), 3)
        assert [w.id for w in limited] == [w.id for w in whispers[:3]]

    def test_no_cap(self):
        whispers = [make_whisper() for _ in range(4)]
        assert len(rank_and_limit(whispers)) == 4


@pytest.mark.unit
class TestDiscoveryEngine:
    def test_default_radius(self, memory_store):
        engine = DiscoveryEngine(memory_store, DiscoverySettings())
        assert engine.effective_detection_radius(None) == 100.0

    def test_radius_clamped_to_tier(self, memory_store):
        engine = DiscoveryEngine(memory_store, DiscoverySettings())
        assert engine.effective_detection_radius(10_000) == 2000.0
        assert engine.effective_detection_radius(10_000, premium=True) == 5000.0
        assert engine.effective_detection_radius(1500) == 1500.0

    @pytest.mark.asyncio
    async def test_discover_filters_and_ranks(self, memory_store):
        near = make_whisper(location=NEAR, created_at=T0 - timedelta(hours=1))
        here = make_whisper(location=NYC, created_at=T0 - timedelta(minutes=1))
        far = make_whisper(location=FAR)
        for whisper in (near, here, far):
            await memory_store.insert(whisper)

        engine = DiscoveryEngine(memory_store, DiscoverySettings())
        results = await engine.discover(NYC, 1000)
        assert [w.id for w in results] == [here.id, near.id]

    @pytest.mark.asyncio
    async def test_discover_clamped_radius_excludes_far(self, memory_store):
        far = make_whisper(location=GeoPoint(latitude=40.7128, longitude=-73.9700))
        await memory_store.insert(far)
        assert 2000 < haversine_distance_meters(NYC, far.location) < 5000

        engine = DiscoveryEngine(memory_store, DiscoverySettings())
        assert await engine.discover(NYC, 10_000) == []
        assert [w.id for w in await engine.discover(NYC, 10_000, premium=True)] == [far.id]

    @pytest.mark.asyncio
    async def test_discover_without_location(self, memory_store):
        await memory_store.insert(make_whisper())
        engine = DiscoveryEngine(memory_store)
        assert await engine.discover(None, 1000) == []

    @pytest.mark.asyncio
    async def test_discover_max_count(self, memory_store):
        for i in range(5):
            await memory_store.insert(make_whisper(created_at=T0 - timedelta(minutes=i)))
        engine = DiscoveryEngine(memory_store, DiscoverySettings(max_results=2))
        assert len(await engine.discover(NYC, 100)) == 2
        assert len(await engine.discover(NYC, 100, max_count=4)) == 4
