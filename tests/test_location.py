"""Tests for live geolocation with cached fallback."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from whispermap_backend.client.cache import LocalWhisperCache
from whispermap_backend.client.location import LocationResolver
from whispermap_backend.exceptions import GeolocationError
from whispermap_backend.models.whisper import GeoPoint

from conftest import NYC

ELSEWHERE = GeoPoint(latitude=34.0522, longitude=-118.2437)


@pytest.fixture
def cache(tmp_path):
    return LocalWhisperCache(tmp_path / "cache.json")


@pytest.mark.unit
class TestLocationResolver:
    @pytest.mark.asyncio
    async def test_live_fix_is_saved(self, cache):
        resolver = LocationResolver(AsyncMock(return_value=NYC), cache)
        fix = await resolver.resolve()

        assert fix.point == NYC
        assert fix.from_cache is False
        assert cache.load_last_location() == NYC

    @pytest.mark.asyncio
    async def test_falls_back_to_last_known_location(self, cache):
        cache.save_last_location(ELSEWHERE)
        provider = AsyncMock(
            side_effect=GeolocationError("denied", GeolocationError.Reason.PERMISSION_DENIED)
        )
        fix = await LocationResolver(provider, cache).resolve()

        assert fix.point == ELSEWHERE
        assert fix.from_cache is True
        assert "last known location" in fix.notice

    @pytest.mark.asyncio
    async def test_timeout_without_cache_raises(self, cache):
        async def never_answers():
            await asyncio.sleep(10)

        resolver = LocationResolver(never_answers, cache, timeout_seconds=0.01)
        with pytest.raises(GeolocationError) as exc_info:
            await resolver.resolve()
        assert exc_info.value.reason == GeolocationError.Reason.TIMEOUT

    @pytest.mark.asyncio
    async def test_no_provider(self, cache):
        with pytest.raises(GeolocationError):
            await LocationResolver(None, cache).resolve()
