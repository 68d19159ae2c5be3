"""Proximity: haversine distance, radius/range queries, find-or-create dedup, ranked search."""

from proximity.distance import distance, haversine_m, EARTH_RADIUS_M
from proximity.index import ProximityIndex, ScanProximityIndex
from proximity.resolver import DeduplicationResolver, Resolution
from proximity.search import (
    RankedSearchService,
    AllIncidents,
    KeywordFilter,
    BoundingBoxFilter,
    RadiusFilter,
    WithImagesFilter,
    RecentFilter,
)

__all__ = [
    "distance",
    "haversine_m",
    "EARTH_RADIUS_M",
    "ProximityIndex",
    "ScanProximityIndex",
    "DeduplicationResolver",
    "Resolution",
    "RankedSearchService",
    "AllIncidents",
    "KeywordFilter",
    "BoundingBoxFilter",
    "RadiusFilter",
    "WithImagesFilter",
    "RecentFilter",
]
