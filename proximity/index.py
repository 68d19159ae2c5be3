"""
Proximity queries over persisted incidents.

ProximityIndex is the seam callers depend on; ScanProximityIndex answers every query
with a full scan (O(n) distance evaluations). A grid/geohash/R-tree index can replace
it without touching the resolver or the search service.
"""

import logging
import math
from abc import ABC, abstractmethod

from core.errors import storage_guard, validation_error
from core.models import Coordinate, Incident
from proximity.distance import distance

logger = logging.getLogger("pothole_api.proximity.index")


def newest_first(incidents: list[Incident]) -> list[Incident]:
    """created_at desc; equal timestamps fall back to id desc."""
    return sorted(incidents, key=lambda i: (i.created_at, i.id), reverse=True)


def check_box(min_lat: float, max_lat: float, min_lon: float, max_lon: float) -> None:
    # Coordinate() rejects out-of-range corners
    lo = Coordinate(min_lat, min_lon)
    hi = Coordinate(max_lat, max_lon)
    if lo.latitude > hi.latitude or lo.longitude > hi.longitude:
        raise validation_error(
            "bounding box min must not exceed max",
            min_lat=min_lat, max_lat=max_lat, min_lon=min_lon, max_lon=max_lon,
        )


def check_radius(radius_m: float) -> float:
    if isinstance(radius_m, bool) or not isinstance(radius_m, (int, float)):
        raise validation_error("radius must be a number", field="radius_m")
    r = float(radius_m)
    if not math.isfinite(r) or r < 0:
        raise validation_error("radius must be a finite, non-negative number of metres", field="radius_m", value=r)
    return r


class ProximityIndex(ABC):
    @abstractmethod
    def range_query(self, min_lat: float, max_lat: float, min_lon: float, max_lon: float) -> list[Incident]:
        """Incidents inside the (inclusive) box, newest first."""

    @abstractmethod
    def radius_query(self, center: Coordinate, radius_m: float) -> list[Incident]:
        """Incidents within radius_m of center, nearest first (ties by id asc)."""


class ScanProximityIndex(ProximityIndex):
    def __init__(self, incidents):
        self._incidents = incidents  # RecordTable of Incident

    def range_query(self, min_lat, max_lat, min_lon, max_lon):
        check_box(min_lat, max_lat, min_lon, max_lon)

        def inside(inc: Incident) -> bool:
            c = inc.coordinate
            return min_lat <= c.latitude <= max_lat and min_lon <= c.longitude <= max_lon

        with storage_guard():
            rows = self._incidents.scan(inside)
        return newest_first(rows)

    def radius_query(self, center, radius_m):
        r = check_radius(radius_m)
        with storage_guard():
            rows = self._incidents.scan()
        hits = []
        for inc in rows:
            d = distance(center, inc.coordinate)
            if d <= r:
                hits.append((d, inc.id, inc))
        hits.sort(key=lambda h: (h[0], h[1]))
        logger.debug("radius_query r=%.2fm scanned=%d hits=%d", r, len(rows), len(hits))
        return [inc for _, _, inc in hits]
