"""
Reverse geocoding via the Naver Maps API (coordinate -> road/lot address).

Never raises: on timeout, HTTP error, bad status or malformed payload the
coordinate fallback string is returned instead. The address is advisory only.
"""

import logging
from typing import Optional

import httpx

from core.config import DEFAULT_GEOCODE_TIMEOUT_S, NAVER_REVERSE_GEOCODE_URL
from core.models import Coordinate

logger = logging.getLogger("pothole_api.geocoding.naver")


def _name(d: Optional[dict], *path: str) -> str:
    cur = d
    for key in path:
        if not isinstance(cur, dict):
            return ""
        cur = cur.get(key)
    return cur.strip() if isinstance(cur, str) else ""


def format_address(result: dict) -> str:
    """'area1 area2 area3 addition0' from one Naver result, blanks skipped."""
    region = result.get("region") or {}
    land = result.get("land") or {}
    parts = [
        _name(region, "area1", "name"),
        _name(region, "area2", "name"),
        _name(region, "area3", "name"),
        _name(land, "addition0", "value"),
    ]
    return " ".join(p for p in parts if p)


class NaverGeocoder:
    def __init__(
        self,
        client_id: str,
        client_secret: str,
        url: str = NAVER_REVERSE_GEOCODE_URL,
        timeout_s: float = DEFAULT_GEOCODE_TIMEOUT_S,
        client: Optional[httpx.Client] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.url = url
        self.timeout_s = timeout_s
        self._client = client  # injected in tests; otherwise one client per call

    def _fetch(self, point: Coordinate) -> dict:
        headers = {
            "X-NCP-APIGW-API-KEY-ID": self.client_id,
            "X-NCP-APIGW-API-KEY": self.client_secret,
        }
        params = {
            "coords": f"{point.longitude},{point.latitude}",
            "output": "json",
            "orders": "roadaddr,addr",
        }
        if self._client is not None:
            response = self._client.get(self.url, params=params, headers=headers, timeout=self.timeout_s)
            response.raise_for_status()
            return response.json()
        with httpx.Client(timeout=self.timeout_s) as client:
            response = client.get(self.url, params=params, headers=headers)
            response.raise_for_status()
            return response.json()

    def resolve_address(self, point: Coordinate) -> str:
        fallback = point.fallback_address()
        try:
            data = self._fetch(point)
        except httpx.TimeoutException:
            logger.warning("naver geocode timeout for %s", fallback)
            return fallback
        except Exception as e:
            logger.warning("naver geocode failed for %s: %s", fallback, e)
            return fallback

        status = data.get("status") if isinstance(data, dict) else None
        results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(status, dict) or status.get("code") != 0 or not results:
            logger.warning("naver geocode bad response status=%r for %s", status, fallback)
            return fallback
        first = results[0] if isinstance(results, list) and isinstance(results[0], dict) else {}
        address = format_address(first)
        if not address:
            logger.warning("naver geocode empty address for %s", fallback)
            return fallback
        return address
