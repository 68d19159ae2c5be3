"""
Runtime settings read from the environment (optionally via .env).

- DEDUP_RADIUS_M: reports closer than this (metres) resolve to the same incident (default 1.0).
- DEDUP_LOCKING: "cell" (per-area locks, default) or "global" (one mutex for all creations).
- DEDUP_LOCK_TIMEOUT_S / DEDUP_LOCK_RETRIES: lock wait per attempt and retry count before CONFLICT.
- RECENT_LIMIT: default size of the "recent" listing (default 10).
- GEOCODE_TIMEOUT_S: reverse-geocoding request timeout.
- NAVER_CLIENT_ID / NAVER_CLIENT_SECRET / NAVER_GEOCODE_URL: enable Naver reverse geocoding.
- SEED_DATA_PATH: JSON file of incidents loaded at startup when the store is empty.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger("pothole_api.config")

DEFAULT_DEDUP_RADIUS_M = 1.0
DEFAULT_LOCK_TIMEOUT_S = 2.0
DEFAULT_LOCK_RETRIES = 3
DEFAULT_RECENT_LIMIT = 10
DEFAULT_GEOCODE_TIMEOUT_S = 3.0
NAVER_REVERSE_GEOCODE_URL = "https://naveropenapi.apigw.ntruss.com/map-reversegeocode/v2/gc"
LOCKING_MODES = ("cell", "global")


def _env_str(name: str) -> Optional[str]:
    v = os.environ.get(name)
    if v is None or v.strip() == "":
        return None
    return v.strip()


def _env_float(name: str, default: float, minimum: float = 0.0) -> float:
    v = _env_str(name)
    if v is None:
        return default
    try:
        return max(minimum, float(v))
    except ValueError:
        logger.warning("ignoring %s=%r (not a number)", name, v)
        return default


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    v = _env_str(name)
    if v is None:
        return default
    try:
        return max(minimum, int(v))
    except ValueError:
        logger.warning("ignoring %s=%r (not an integer)", name, v)
        return default


def _env_locking() -> str:
    v = (_env_str("DEDUP_LOCKING") or "cell").lower()
    if v not in LOCKING_MODES:
        logger.warning("ignoring DEDUP_LOCKING=%r (expected one of %s)", v, ", ".join(LOCKING_MODES))
        return "cell"
    return v


@dataclass(frozen=True)
class Settings:
    dedup_radius_m: float = DEFAULT_DEDUP_RADIUS_M
    locking: str = "cell"
    lock_timeout_s: float = DEFAULT_LOCK_TIMEOUT_S
    lock_retries: int = DEFAULT_LOCK_RETRIES
    recent_limit: int = DEFAULT_RECENT_LIMIT
    geocode_timeout_s: float = DEFAULT_GEOCODE_TIMEOUT_S
    naver_client_id: Optional[str] = None
    naver_client_secret: Optional[str] = None
    naver_geocode_url: str = NAVER_REVERSE_GEOCODE_URL
    seed_data_path: Optional[str] = None

    @property
    def naver_configured(self) -> bool:
        return bool(self.naver_client_id and self.naver_client_secret)


def load_settings() -> Settings:
    """Build Settings from the current environment; blank or invalid values fall back to defaults."""
    return Settings(
        dedup_radius_m=_env_float("DEDUP_RADIUS_M", DEFAULT_DEDUP_RADIUS_M, minimum=0.01),
        locking=_env_locking(),
        lock_timeout_s=_env_float("DEDUP_LOCK_TIMEOUT_S", DEFAULT_LOCK_TIMEOUT_S, minimum=0.01),
        lock_retries=_env_int("DEDUP_LOCK_RETRIES", DEFAULT_LOCK_RETRIES),
        recent_limit=_env_int("RECENT_LIMIT", DEFAULT_RECENT_LIMIT, minimum=1),
        geocode_timeout_s=_env_float("GEOCODE_TIMEOUT_S", DEFAULT_GEOCODE_TIMEOUT_S, minimum=0.1),
        naver_client_id=_env_str("NAVER_CLIENT_ID"),
        naver_client_secret=_env_str("NAVER_CLIENT_SECRET"),
        naver_geocode_url=_env_str("NAVER_GEOCODE_URL") or NAVER_REVERSE_GEOCODE_URL,
        seed_data_path=_env_str("SEED_DATA_PATH"),
    )
