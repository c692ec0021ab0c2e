"""
Great-circle geometry shared by the server and client.

Every visibility decision (store pre-filter excepted) goes through
``haversine_distance_meters`` so both sides agree at the radius boundary.
"""

import math
from dataclasses import dataclass
from typing import Tuple

from whispermap_backend.models.whisper import GeoPoint

EARTH_RADIUS_METERS = 6_371_000.0

# Length of one degree of latitude on the mean-radius sphere
METERS_PER_DEGREE = math.pi * EARTH_RADIUS_METERS / 180.0


def haversine_distance_meters(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance between two points on a sphere of radius R = 6,371,000 m."""
    phi1 = math.radians(a.latitude)
    phi2 = math.radians(b.latitude)
    delta_phi = math.radians(abs(b.latitude - a.latitude))
    delta_lambda = math.radians(abs(b.longitude - a.longitude))

    h = (
        math.sin(delta_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    )
    # Rounding can leave h just outside [0, 1] near antipodes
    h = min(1.0, max(0.0, h))
    return 2 * EARTH_RADIUS_METERS * math.atan2(math.sqrt(h), math.sqrt(1 - h))


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned lat/lng window.

    ``min_lng > max_lng`` means the window wraps across the antimeridian.
    """
    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float

    @property
    def wraps_antimeridian(self) -> bool:
        return self.min_lng > self.max_lng

    def longitude_ranges(self) -> Tuple[Tuple[float, float], ...]:
        if self.wraps_antimeridian:
            return ((self.min_lng, 180.0), (-180.0, self.max_lng))
        return ((self.min_lng, self.max_lng),)

    def contains(self, point: GeoPoint) -> bool:
        if not (self.min_lat <= point.latitude <= self.max_lat):
            return False
        return any(lo <= point.longitude <= hi for lo, hi in self.longitude_ranges())


def bounding_box(center: GeoPoint, radius_meters: float) -> BoundingBox:
    """
    Conservative window that contains every point within ``radius_meters``.

    The longitude span widens by 1/cos(latitude); when the circle reaches a
    pole the full longitude range is used.
    """
    if radius_meters < 0:
        raise ValueError(f"radius_meters must be non-negative, got {radius_meters}")

    # Slight over-estimate so the cheap pre-filter never drops a boundary point
    delta_lat = radius_meters / METERS_PER_DEGREE * 1.0001
    min_lat = center.latitude - delta_lat
    max_lat = center.latitude + delta_lat

    if min_lat <= -90.0 or max_lat >= 90.0:
        return BoundingBox(max(min_lat, -90.0), min(max_lat, 90.0), -180.0, 180.0)

    # Widest longitude span occurs at the latitude edge nearest the pole
    extreme_lat = max(abs(min_lat), abs(max_lat))
    delta_lng = delta_lat / math.cos(math.radians(extreme_lat))
    if delta_lng >= 180.0:
        return BoundingBox(min_lat, max_lat, -180.0, 180.0)

    min_lng = center.longitude - delta_lng
    max_lng = center.longitude + delta_lng
    if min_lng < -180.0:
        min_lng += 360.0
    if max_lng > 180.0:
        max_lng -= 360.0
    return BoundingBox(min_lat, max_lat, min_lng, max_lng)
