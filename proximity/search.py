"""
Read-path search: pick candidate incidents with a filter, gather report images onto each,
and, when a viewpoint is given, annotate distance and sort nearest first.

Without a viewpoint the filter's natural order is kept: newest first, except
RadiusFilter which is nearest-to-its-centre first.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

from core.config import DEFAULT_RECENT_LIMIT
from core.errors import storage_guard, validation_error
from core.models import Coordinate, Incident, RankedIncident
from proximity.distance import distance
from proximity.index import ProximityIndex, newest_first

logger = logging.getLogger("pothole_api.proximity.search")


@dataclass(frozen=True)
class AllIncidents:
    pass


@dataclass(frozen=True)
class KeywordFilter:
    text: str


@dataclass(frozen=True)
class BoundingBoxFilter:
    min_lat: float
    max_lat: float
    min_lon: float
    max_lon: float


@dataclass(frozen=True)
class RadiusFilter:
    center: Coordinate
    radius_m: float


@dataclass(frozen=True)
class WithImagesFilter:
    pass


@dataclass(frozen=True)
class RecentFilter:
    limit: int = DEFAULT_RECENT_LIMIT


SearchFilter = Union[AllIncidents, KeywordFilter, BoundingBoxFilter, RadiusFilter, WithImagesFilter, RecentFilter]


def _merge_images(*groups) -> tuple:
    """Concatenate image refs, keeping the first occurrence of each."""
    seen = set()
    out = []
    for group in groups:
        for ref in group:
            if ref not in seen:
                seen.add(ref)
                out.append(ref)
    return tuple(out)


class RankedSearchService:
    def __init__(self, incidents, reports, index: ProximityIndex):
        self._incidents = incidents
        self._reports = reports
        self.index = index

    def _report_images(self, incident_id: Optional[int] = None) -> dict[int, list[tuple]]:
        """incident_id -> image_refs of its reports, oldest report first."""
        pred = None if incident_id is None else (lambda r: r.incident_id == incident_id)
        with storage_guard():
            reports = self._reports.scan(pred)
        reports.sort(key=lambda r: (r.created_at, r.id))
        by_incident: dict[int, list[tuple]] = {}
        for r in reports:
            by_incident.setdefault(r.incident_id, []).append(r.image_refs)
        return by_incident

    def _candidates(self, flt: SearchFilter) -> list[Incident]:
        if isinstance(flt, (AllIncidents, WithImagesFilter)):
            with storage_guard():
                return newest_first(self._incidents.scan())
        if isinstance(flt, KeywordFilter):
            needle = (flt.text or "").strip().lower()
            if not needle:
                raise validation_error("keyword must not be blank", field="keyword")
            with storage_guard():
                return newest_first(self._incidents.scan(lambda i: needle in i.description.lower()))
        if isinstance(flt, BoundingBoxFilter):
            return self.index.range_query(flt.min_lat, flt.max_lat, flt.min_lon, flt.max_lon)
        if isinstance(flt, RadiusFilter):
            return self.index.radius_query(flt.center, flt.radius_m)
        if isinstance(flt, RecentFilter):
            if isinstance(flt.limit, bool) or not isinstance(flt.limit, int) or flt.limit < 1:
                raise validation_error("limit must be a positive integer", field="limit", value=flt.limit)
            with storage_guard():
                return newest_first(self._incidents.scan())[: flt.limit]
        raise TypeError(f"unknown search filter: {flt!r}")

    def search(self, flt: SearchFilter = AllIncidents(), viewpoint: Optional[Coordinate] = None) -> list[RankedIncident]:
        candidates = self._candidates(flt)
        images = self._report_images()
        ranked = []
        for inc in candidates:
            agg = _merge_images(inc.image_refs, *images.get(inc.id, []))
            if isinstance(flt, WithImagesFilter) and not agg:
                continue
            d = distance(viewpoint, inc.coordinate) if viewpoint is not None else None
            ranked.append(RankedIncident(incident=inc, distance_m=d, aggregated_images=agg))
        if viewpoint is not None:
            ranked.sort(key=lambda r: (r.distance_m, r.incident.id))
        logger.debug("search filter=%s viewpoint=%s results=%d", type(flt).__name__, viewpoint is not None, len(ranked))
        return ranked

    def rank(self, incident: Incident, viewpoint: Optional[Coordinate] = None) -> RankedIncident:
        """Single-incident view (detail page)."""
        images = self._report_images(incident.id)
        agg = _merge_images(incident.image_refs, *images.get(incident.id, []))
        d = distance(viewpoint, incident.coordinate) if viewpoint is not None else None
        return RankedIncident(incident=incident, distance_m=d, aggregated_images=agg)
