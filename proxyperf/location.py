"""Great-circle distance between geographic points."""

from __future__ import annotations

import math

from proxyperf.models import GeoPoint

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance in km between two lat/lon points using the Haversine formula."""
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(dlon / 2) ** 2
    )
    # Rounding can push a just outside [0, 1] for antipodal points.
    a = min(max(a, 0.0), 1.0)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def distance(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance in km between two points."""
    return haversine_km(a.latitude, a.longitude, b.latitude, b.longitude)
