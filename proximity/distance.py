"""Great-circle distance between coordinates (haversine, spherical Earth)."""

import logging
import math

from core.models import Coordinate

logger = logging.getLogger("pothole_api.proximity.distance")

# Mean Earth radius in metres
EARTH_RADIUS_M = 6_371_000


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Distance in metres between two (lat, lng) points."""
    a = math.radians(lat2 - lat1)
    b = math.radians(lng2 - lng1)
    x = math.sin(a / 2) ** 2 + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(b / 2) ** 2
    x = min(1.0, max(0.0, x))  # rounding can push x just outside [0, 1] near antipodes
    c = 2 * math.atan2(math.sqrt(x), math.sqrt(1 - x))
    return EARTH_RADIUS_M * c


def distance(a: Coordinate, b: Coordinate) -> float:
    """
    Metres between two coordinates. Symmetric, zero for identical points, defined
    at the poles and across the antimeridian. Not sub-metre geodetic precision.
    """
    return haversine_m(a.latitude, a.longitude, b.latitude, b.longitude)


def metres_to_degrees(metres: float) -> float:
    """Central angle (degrees) subtended by an arc of `metres` along a great circle."""
    return math.degrees(metres / EARTH_RADIUS_M)
