"""
Geospatial whisper discovery.

The store does a cheap bounding-box pre-filter; this module applies the exact
haversine radius test and ranks the survivors newest first.
"""

import logging
from typing import Iterable, List, Optional

from whispermap_backend.config import DiscoverySettings
from whispermap_backend.models.whisper import GeoPoint, Whisper
from whispermap_backend.stores.base import WhisperStoreBase
from whispermap_backend.utils.geo_utils import haversine_distance_meters

logger = logging.getLogger(__name__)


def filter_by_radius(
    user_location: Optional[GeoPoint],
    candidates: Iterable[Whisper],
    detection_radius_meters: float,
    enforce_whisper_radius: bool = False,
) -> List[Whisper]:
    """Keep candidates within ``detection_radius_meters`` (boundary included).

    With ``enforce_whisper_radius`` each whisper's own broadcast radius also
    caps its visibility: effective radius = min(detection, whisper radius).
    Returns an empty list when the user location is unknown.
    """
    if user_location is None:
        return []

    visible = []
    for whisper in candidates:
        if whisper.location is None:
            logger.warning(f"Skipping whisper {whisper.id} without a location")
            continue
        radius = detection_radius_meters
        if enforce_whisper_radius:
            radius = min(radius, whisper.whisper_radius_meters)
        if haversine_distance_meters(user_location, whisper.location) <= radius:
            visible.append(whisper)
    return visible


def sort_newest_first(whispers: Iterable[Whisper]) -> List[Whisper]:
    """Order by created_at descending; id breaks ties so the order is total."""
    by_id = sorted(whispers, key=lambda w: w.id or "", reverse=True)
    return sorted(by_id, key=lambda w: w.created_at, reverse=True)


def rank_and_limit(whispers: Iterable[Whisper], max_count: Optional[int] = None) -> List[Whisper]:
    """Newest first, truncated to ``max_count`` (the oldest tail is dropped)."""
    ranked = sort_newest_first(whispers)
    if max_count is not None and len(ranked) > max_count:
        ranked = ranked[:max(max_count, 0)]
    return ranked


class DiscoveryEngine:
    """Answers "which whispers can this user hear from here, right now"."""

    def __init__(self, store: WhisperStoreBase, settings: Optional[DiscoverySettings] = None):
        self.store = store
        self.settings = settings or DiscoverySettings()

    def effective_detection_radius(self, requested: Optional[float], premium: bool = False) -> float:
        """Apply the default and clamp to the caller's tier limit."""
        radius = requested if requested is not None else self.settings.default_detection_radius_meters
        limit = self.settings.detection_radius_limit(premium)
        if radius > limit:
            logger.info(f"Clamping detection radius {radius}m to {'premium' if premium else 'free'} limit {limit}m")
            radius = limit
        return max(radius, 0.0)

    async def discover(
        self,
        user_location: Optional[GeoPoint],
        detection_radius_meters: Optional[float] = None,
        *,
        premium: bool = False,
        max_age_hours: Optional[float] = None,
        max_count: Optional[int] = None,
    ) -> List[Whisper]:
        """Live whispers within range of ``user_location``, newest first.

        An unknown location yields no results; no default position is assumed.
        """
        if user_location is None:
            logger.info("Discovery skipped: user location unavailable")
            return []

        radius = self.effective_detection_radius(detection_radius_meters, premium)
        if max_age_hours is None:
            max_age_hours = self.settings.max_age_hours
        if max_count is None:
            max_count = self.settings.max_results

        candidates = await self.store.query_by_window(user_location, radius, max_age_hours)
        visible = filter_by_radius(
            user_location,
            candidates,
            radius,
            enforce_whisper_radius=self.settings.enforce_whisper_radius,
        )
        results = rank_and_limit(visible, max_count)

        logger.debug(
            f"Discovery at ({user_location.latitude:.5f}, {user_location.longitude:.5f}) r={radius}m: "
            f"{len(candidates)} candidates, {len(visible)} in range, {len(results)} returned"
        )
        return results
