"""Tests for great-circle distance and the bounding-box pre-filter."""

import pytest

from whispermap_backend.models.whisper import GeoPoint
from whispermap_backend.utils.geo_utils import (
    EARTH_RADIUS_METERS,
    bounding_box,
    haversine_distance_meters,
)

NYC = GeoPoint(latitude=40.7128, longitude=-74.0060)


@pytest.mark.unit
class TestHaversine:
    def test_same_point_is_zero(self):
        assert haversine_distance_meters(NYC, NYC) == 0.0

    @pytest.mark.parametrize(
        "a,b",
        [
            (NYC, GeoPoint(latitude=51.5074, longitude=-0.1278)),
            (GeoPoint(latitude=2.5, longitude=0.0), GeoPoint(latitude=-2.5, longitude=180.0)),
            (GeoPoint(latitude=0.0, longitude=179.999), GeoPoint(latitude=0.0, longitude=-179.999)),
            (GeoPoint(latitude=-33.8688, longitude=151.2093), GeoPoint(latitude=33.8688, longitude=-28.7907)),
            (GeoPoint(latitude=89.9, longitude=45.0), GeoPoint(latitude=-89.9, longitude=-135.0)),
        ],
    )
    def test_symmetric_exactly(self, a, b):
        assert haversine_distance_meters(a, b) == haversine_distance_meters(b, a)

    @pytest.mark.parametrize(
        "a,b",
        [
            (GeoPoint(latitude=2.5, longitude=0.0), GeoPoint(latitude=-2.5, longitude=180.0)),
            (GeoPoint(latitude=45.0, longitude=90.0), GeoPoint(latitude=-45.0, longitude=-90.0)),
            (GeoPoint(latitude=90.0, longitude=0.0), GeoPoint(latitude=-90.0, longitude=0.0)),
        ],
    )
    def test_near_antipodal_is_half_circumference(self, a, b):
        distance = haversine_distance_meters(a, b)
        assert distance == pytest.approx(EARTH_RADIUS_METERS * 3.141592653589793, rel=1e-6)
        assert distance <= EARTH_RADIUS_METERS * 3.141592653589793 + 1e-6

    def test_nearby_whisper_about_85_meters(self):
        whisper = GeoPoint(latitude=40.7135, longitude=-74.0065)
        distance = haversine_distance_meters(NYC, whisper)
        assert 80 < distance < 95

    def test_far_whisper_beyond_one_kilometer(self):
        whisper = GeoPoint(latitude=40.7300, longitude=-74.0200)
        distance = haversine_distance_meters(NYC, whisper)
        assert 2000 < distance < 2500

    def test_one_degree_of_latitude(self):
        a = GeoPoint(latitude=0.0, longitude=0.0)
        b = GeoPoint(latitude=1.0, longitude=0.0)
        assert haversine_distance_meters(a, b) == pytest.approx(
            EARTH_RADIUS_METERS * 3.141592653589793 / 180, rel=1e-9
        )

    def test_antipodal_points(self):
        a = GeoPoint(latitude=0.0, longitude=0.0)
        b = GeoPoint(latitude=0.0, longitude=180.0)
        assert haversine_distance_meters(a, b) == pytest.approx(EARTH_RADIUS_METERS * 3.141592653589793)


@pytest.mark.unit
class TestBoundingBox:
    def test_contains_points_within_radius(self):
        center = GeoPoint(latitude=60.0, longitude=10.0)
        box = bounding_box(center, 5000)
        east = GeoPoint(latitude=60.0, longitude=10.0899)
        north = GeoPoint(latitude=60.0449, longitude=10.0)
        assert haversine_distance_meters(center, east) < 5000
        assert haversine_distance_meters(center, north) < 5000
        assert box.contains(east)
        assert box.contains(north)

    def test_excludes_far_points(self):
        box = bounding_box(NYC, 1000)
        assert not box.contains(GeoPoint(latitude=41.0, longitude=-74.0060))

    def test_wraps_across_antimeridian(self):
        center = GeoPoint(latitude=0.0, longitude=179.999)
        box = bounding_box(center, 1000)
        across = GeoPoint(latitude=0.0, longitude=-179.999)

        assert box.wraps_antimeridian
        assert len(box.longitude_ranges()) == 2
        assert haversine_distance_meters(center, across) < 1000
        assert box.contains(across)

    def test_reaching_pole_uses_full_longitude_range(self):
        box = bounding_box(GeoPoint(latitude=89.999, longitude=0.0), 1000)
        assert box.max_lat == 90.0
        assert (box.min_lng, box.max_lng) == (-180.0, 180.0)
        assert box.contains(GeoPoint(latitude=89.9995, longitude=-120.0))

    def test_negative_radius_rejected(self):
        with pytest.raises(ValueError):
            bounding_box(NYC, -1)
