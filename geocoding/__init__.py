"""Reverse geocoders: Naver (when keys are set) and the coordinate-string fallback."""

from geocoding.naver import NaverGeocoder, format_address
from geocoding.fallback import CoordinateGeocoder

__all__ = ["NaverGeocoder", "CoordinateGeocoder", "format_address"]
