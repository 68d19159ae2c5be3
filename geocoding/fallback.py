"""Offline geocoder: the address is always the coordinate string."""

from core.models import Coordinate


class CoordinateGeocoder:
    def resolve_address(self, point: Coordinate) -> str:
        return point.fallback_address()
