"""Tests for great-circle distance."""

import math

import pytest

from core.models import Coordinate
from proximity.distance import EARTH_RADIUS_M, distance, haversine_m, metres_to_degrees

SEOUL = Coordinate(37.5665, 126.9780)
JEJU = Coordinate(33.4500, 126.5531)

PAIRS = [
    (SEOUL, JEJU),
    (Coordinate(0, 0), Coordinate(0.001, 0.001)),
    (Coordinate(51.507, -0.127), Coordinate(40.7128, -74.006)),
    (Coordinate(-33.86, 151.21), Coordinate(35.68, 139.69)),
    (Coordinate(89.9, 10), Coordinate(-89.9, -170)),
]


class TestDistance:
    @pytest.mark.parametrize("point", [SEOUL, Coordinate(90, 0), Coordinate(-90, 180), Coordinate(0, -180)])
    def test_same_point_is_zero(self, point):
        assert distance(point, point) == 0

    @pytest.mark.parametrize("a,b", PAIRS)
    def test_symmetric(self, a, b):
        assert abs(distance(a, b) - distance(b, a)) < 1e-6

    @pytest.mark.parametrize("a,b", PAIRS)
    def test_non_negative(self, a, b):
        assert distance(a, b) >= 0

    def test_seoul_to_jeju(self):
        # haversine with R = 6,371 km gives ~459.3 km for these two points
        assert abs(distance(SEOUL, JEJU) - 459_300) < 5_000

    def test_antipodes(self):
        assert abs(distance(Coordinate(0, 0), Coordinate(0, 180)) - math.pi * EARTH_RADIUS_M) < 1

    def test_across_antimeridian_is_short(self):
        # 0.0002 degrees of longitude at the equator, not most of the globe
        d = distance(Coordinate(0, 179.9999), Coordinate(0, -179.9999))
        assert abs(d - 22.24) < 0.05

    def test_pole_longitude_irrelevant(self):
        assert distance(Coordinate(90, 0), Coordinate(90, 135)) < 1e-3

    def test_monotonic_along_meridian(self):
        origin = Coordinate(37, 127)
        ds = [distance(origin, Coordinate(37 + k * 0.00001, 127)) for k in range(1, 20)]
        assert ds == sorted(ds)
        assert len(set(ds)) == len(ds)

    def test_small_offset_scale(self):
        # 0.00001 deg in both axes at 37N is ~1.42 m
        d = distance(Coordinate(37, 127), Coordinate(37.00001, 127.00001))
        assert 1.35 < d < 1.5

    def test_raw_haversine_matches(self):
        assert haversine_m(37, 127, 38, 127) == distance(Coordinate(37, 127), Coordinate(38, 127))


class TestMetresToDegrees:
    def test_one_degree(self):
        m = math.radians(1) * EARTH_RADIUS_M
        assert abs(metres_to_degrees(m) - 1.0) < 1e-12
