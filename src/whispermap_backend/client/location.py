"""
Position acquisition with a cached fallback.

A live fix is requested from an injected provider under a timeout. On failure
the last known location from the cache is used and the caller is told via a
notice; with no cached location the failure is raised.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from whispermap_backend.client.cache import LocalWhisperCache
from whispermap_backend.exceptions import GeolocationError
from whispermap_backend.models.whisper import GeoPoint

logger = logging.getLogger(__name__)

LocationProvider = Callable[[], Awaitable[GeoPoint]]


@dataclass(frozen=True)
class LocationFix:
    point: GeoPoint
    from_cache: bool = False
    notice: Optional[str] = None


class LocationResolver:
    def __init__(
        self,
        provider: Optional[LocationProvider],
        cache: LocalWhisperCache,
        timeout_seconds: float = 10.0,
    ):
        self._provider = provider
        self._cache = cache
        self.timeout_seconds = timeout_seconds

    async def _live_fix(self) -> GeoPoint:
        if self._provider is None:
            raise GeolocationError(
                "Geolocation is not supported", GeolocationError.Reason.POSITION_UNAVAILABLE
            )
        try:
            return await asyncio.wait_for(self._provider(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            raise GeolocationError(
                "Location request timed out", GeolocationError.Reason.TIMEOUT
            ) from e

    async def resolve(self) -> LocationFix:
        try:
            point = await self._live_fix()
        except GeolocationError as e:
            cached = self._cache.load_last_location()
            if cached is None:
                logger.warning(f"Location unavailable and nothing cached: {e}")
                raise
            logger.info(f"Using last known location after geolocation failure ({e.reason})")
            return LocationFix(
                point=cached,
                from_cache=True,
                notice=f"Using your last known location ({e})",
            )

        self._cache.save_last_location(point)
        return LocationFix(point=point)
