"""Tests for proxyperf.location."""

import math

import pytest

from proxyperf.location import EARTH_RADIUS_KM, distance, haversine_km
from proxyperf.models import GeoPoint


class TestHaversine:
    def test_identical_points_are_zero(self):
        point = GeoPoint(latitude=52.52, longitude=13.40)
        assert distance(point, point) == pytest.approx(0.0, abs=1e-9)

    def test_symmetric(self):
        a = GeoPoint(latitude=52.52, longitude=13.40)
        b = GeoPoint(latitude=-33.87, longitude=151.21)
        assert distance(a, b) == pytest.approx(distance(b, a))

    def test_berlin_to_hamburg(self):
        # About 255 km as the crow flies.
        assert haversine_km(52.52, 13.40, 53.55, 10.00) == pytest.approx(255, abs=5)

    def test_antipodal_points(self):
        result = haversine_km(0.0, 0.0, 0.0, 180.0)
        assert not math.isnan(result)
        assert result == pytest.approx(math.pi * EARTH_RADIUS_KM)

    def test_poles(self):
        assert haversine_km(90.0, 0.0, -90.0, 0.0) == pytest.approx(math.pi * EARTH_RADIUS_KM)
