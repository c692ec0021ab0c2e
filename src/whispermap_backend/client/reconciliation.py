"""
Client-side reconciliation of server results with the local cache.

The layer fetches nearby whispers, merges them with whispers this client
created itself, and keeps the merged list as the display list. A fetch can be
in one of four states::

    IDLE -> FETCHING -> MERGING -> IDLE
                     \\-> FALLBACK_TO_CACHE -> IDLE

At most one fetch is in flight; overlapping triggers are coalesced. A
watchdog timeout forces the layer back to IDLE if a cycle never finishes.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Iterable, List, Optional, Set

from whispermap_backend.client.api_client import WhisperApiClient
from whispermap_backend.client.cache import LocalWhisperCache
from whispermap_backend.client.location import LocationResolver
from whispermap_backend.client.settings import ClientSettings
from whispermap_backend.exceptions import (
    GeolocationError,
    TransientFetchError,
    WhisperValidationError,
)
from whispermap_backend.models.whisper import GeoPoint, Whisper, WhisperCategory, utc_now
from whispermap_backend.services.discovery import filter_by_radius, rank_and_limit

logger = logging.getLogger(__name__)


class FetchState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    MERGING = "merging"
    FALLBACK_TO_CACHE = "fallback_to_cache"


@dataclass
class Notice:
    """A dismissible, user-visible message (degraded mode, location fallback)."""
    kind: str
    message: str
    created_at: datetime = field(default_factory=utc_now)


def merge_whispers(
    server: Iterable[Whisper],
    cached: Iterable[Whisper],
    *,
    now: datetime,
    persistent_ids: Optional[Set[str]] = None,
    has_location: bool = True,
    max_count: Optional[int] = None,
) -> List[Whisper]:
    """Union of the server set and the surviving cached entries.

    - the server copy wins when both sides hold the same id
    - a cached entry survives only while live, and only if it is persistent
      (created by this client) or the caller has no location at all
    - entries without an id or creation time are dropped
    - the result is newest first and capped at ``max_count``

    Merging a result with the same server set again yields the same list.
    """
    persistent_ids = persistent_ids or set()
    merged = {}

    for whisper in server:
        if whisper.id is None or whisper.created_at is None:
            logger.warning("Dropping server whisper without id or timestamp")
            continue
        if not whisper.is_live(now):
            continue
        merged.setdefault(whisper.id, whisper)

    for whisper in cached:
        if whisper.id is None or whisper.created_at is None:
            logger.warning("Dropping cached whisper without id or timestamp")
            continue
        if whisper.id in merged or not whisper.is_live(now):
            continue
        if has_location and whisper.id not in persistent_ids:
            continue
        merged[whisper.id] = whisper

    return rank_and_limit(merged.values(), max_count)


class ReconciliationLayer:
    def __init__(
        self,
        api: WhisperApiClient,
        cache: LocalWhisperCache,
        location_resolver: LocationResolver,
        settings: Optional[ClientSettings] = None,
        clock: Callable[[], datetime] = utc_now,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or ClientSettings.desktop()
        self._api = api
        self._cache = cache
        self._location = location_resolver
        self._clock = clock
        self._monotonic = monotonic

        self._state = FetchState.IDLE
        self._whispers: List[Whisper] = []
        self._notices: List[Notice] = []
        self._fetch_task: Optional[asyncio.Task] = None
        self._run_task: Optional[asyncio.Task] = None
        self._last_fetch_started: Optional[float] = None
        self._last_location: Optional[GeoPoint] = None
        self._playback_active = False
        self._closed = False

    @property
    def state(self) -> FetchState:
        return self._state

    @property
    def whispers(self) -> List[Whisper]:
        return list(self._whispers)

    @property
    def notices(self) -> List[Notice]:
        return list(self._notices)

    @property
    def closed(self) -> bool:
        return self._closed

    def dismiss_notice(self, notice: Notice) -> None:
        if notice in self._notices:
            self._notices.remove(notice)

    def clear_notices(self) -> None:
        self._notices.clear()

    def _notify(self, kind: str, message: str) -> None:
        logger.info(f"Notice ({kind}): {message}")
        self._notices.append(Notice(kind=kind, message=message, created_at=self._clock()))

    def set_playback_active(self, active: bool) -> None:
        """Automatic refreshes are suppressed while audio is playing."""
        self._playback_active = active

    def load_cached(self) -> List[Whisper]:
        """Seed the display list from the cache (first paint before any fetch)."""
        snapshot = self._cache.load_snapshot()
        self._whispers = merge_whispers(
            [],
            snapshot.whispers,
            now=self._clock(),
            has_location=False,
            max_count=self.settings.max_display_count,
        )
        return self.whispers

    # -- fetch cycle ---------------------------------------------------------

    def _too_soon(self) -> bool:
        if self._last_fetch_started is None:
            return False
        elapsed = self._monotonic() - self._last_fetch_started
        return elapsed < self.settings.min_fetch_interval_seconds

    async def refresh(self, force: bool = False) -> List[Whisper]:
        """Run one fetch cycle unless suppressed; returns the display list.

        ``force`` bypasses the minimum interval and playback suppression but
        never starts a second concurrent fetch.
        A rejected query raises :class:`WhisperValidationError` instead of
        falling back to the cache.
        """
        if self._closed:
            return self.whispers
        if self._fetch_task is not None:
            logger.debug("Fetch already in flight, coalescing refresh")
            return self.whispers
        if not force and self._playback_active:
            logger.debug("Playback active, skipping automatic refresh")
            return self.whispers
        if not force and self._too_soon():
            logger.debug("Refresh requested before minimum interval, skipping")
            return self.whispers

        self._last_fetch_started = self._monotonic()
        self._fetch_task = asyncio.ensure_future(
            asyncio.wait_for(self._fetch_cycle(), timeout=self.settings.safety_timeout_seconds)
        )
        try:
            return await self._fetch_task
        except asyncio.TimeoutError:
            logger.error("Fetch cycle exceeded safety timeout, forcing state back to idle")
            self._notify("degraded", "Refreshing nearby whispers is taking too long")
            return self.whispers
        except asyncio.CancelledError:
            if self._closed:
                return self.whispers
            raise
        finally:
            self._fetch_task = None
            self._state = FetchState.IDLE

    async def _fetch_cycle(self) -> List[Whisper]:
        self._state = FetchState.FETCHING
        settings = self.settings

        try:
            fix = await self._location.resolve()
            location = fix.point
            if fix.notice:
                self._notify("location", fix.notice)
        except GeolocationError as e:
            location = None
            self._notify("location", f"Location unavailable: {e}")
        self._last_location = location

        server: List[Whisper] = []
        if location is not None:
            try:
                server = await asyncio.wait_for(
                    self._api.fetch_nearby(location, settings.detection_radius_meters),
                    timeout=settings.fetch_timeout_seconds,
                )
            except WhisperValidationError:
                logger.error("Whisper service rejected the nearby query")
                raise
            except (TransientFetchError, asyncio.TimeoutError) as e:
                return self._fall_back_to_cache(self._cache.load_snapshot().whispers, self._clock(), e)
            # Same distance rule as the server, applied again to whatever came back
            server = filter_by_radius(location, server, settings.detection_radius_meters)

        if self._closed:
            return self.whispers

        self._state = FetchState.MERGING
        # Includes whispers submitted while the fetch was suspended
        snapshot = self._cache.load_snapshot()
        now = self._clock()
        merged = merge_whispers(
            server,
            snapshot.whispers,
            now=now,
            persistent_ids=snapshot.persistent_ids,
            has_location=location is not None,
            max_count=settings.max_display_count,
        )
        self._cache.save_snapshot(merged, snapshot.persistent_ids)
        self._whispers = merged
        logger.info(f"Reconciled {len(server)} server whispers into {len(merged)} displayed")
        return self.whispers

    def _fall_back_to_cache(self, cached: List[Whisper], now: datetime, error: Exception) -> List[Whisper]:
        self._state = FetchState.FALLBACK_TO_CACHE
        logger.warning(f"Fetch failed, serving cached whispers: {error!r}")
        self._notify("degraded", "Showing cached whispers; the server could not be reached")
        self._whispers = merge_whispers(
            [],
            cached,
            now=now,
            has_location=False,
            max_count=self.settings.max_display_count,
        )
        return self.whispers

    # -- submission ----------------------------------------------------------

    async def submit(
        self,
        audio: bytes,
        location: Optional[GeoPoint] = None,
        *,
        filename: str = "recording.webm",
        category: WhisperCategory = WhisperCategory.GENERAL,
        title: Optional[str] = None,
        description: Optional[str] = None,
        expiration_days: Optional[int] = None,
        is_anonymous: bool = False,
        radius_meters: Optional[float] = None,
    ) -> Whisper:
        """Upload a new whisper and mirror it into the cache as persistent.

        Validation errors surface immediately; a timeout or network failure
        raises :class:`TransientFetchError`.
        """
        if location is None:
            location = (await self._location.resolve()).point

        try:
            whisper = await asyncio.wait_for(
                self._api.submit_whisper(
                    audio,
                    location,
                    filename=filename,
                    category=category,
                    title=title,
                    description=description,
                    expiration_days=expiration_days,
                    is_anonymous=is_anonymous,
                    radius_meters=radius_meters,
                ),
                timeout=self.settings.submit_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise TransientFetchError("Whisper upload timed out") from e

        self._cache.add_own_whisper(whisper)
        self._whispers = rank_and_limit(
            [whisper, *(w for w in self._whispers if w.id != whisper.id)],
            self.settings.max_display_count,
        )
        return whisper

    # -- lifecycle -----------------------------------------------------------

    async def run(self, interval_seconds: Optional[float] = None) -> None:
        """Refresh every ``interval_seconds`` until :meth:`close`."""
        interval_seconds = interval_seconds or self.settings.refresh_interval_seconds
        while not self._closed:
            try:
                await self.refresh()
            except Exception as e:
                logger.error(f"Unexpected error during periodic refresh: {e}", exc_info=True)
            await asyncio.sleep(interval_seconds)

    def start(self, interval_seconds: Optional[float] = None) -> asyncio.Task:
        """Run :meth:`run` as a background task."""
        if self._run_task is None or self._run_task.done():
            self._run_task = asyncio.ensure_future(self.run(interval_seconds))
        return self._run_task

    async def close(self) -> None:
        """Stop background work; an in-flight fetch is cancelled and its result discarded."""
        self._closed = True
        for task in (self._fetch_task, self._run_task):
            if task is not None and not task.done():
                task.cancel()
        if self._run_task is not None:
            try:
                await self._run_task
            except asyncio.CancelledError:
                pass
        self._run_task = None
        self._state = FetchState.IDLE
