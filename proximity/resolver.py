"""
Resolve an incoming report location to an incident: reuse the nearest existing incident
within the dedup radius, or create a new one at that point.

The radius check and the create both happen while holding the lock strategy's locks for
the point. Concurrent calls for points within the radius of each other share a lock, so
only one of them can observe "nothing nearby" and create; the others then find it.

Tunable via env (see core.config):
- DEDUP_RADIUS_M: match radius in metres (default 1.0).
- DEDUP_LOCKING: "cell" or "global".
- DEDUP_LOCK_TIMEOUT_S / DEDUP_LOCK_RETRIES: lock wait and retries before CONFLICT.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from core.config import (
    DEFAULT_DEDUP_RADIUS_M,
    DEFAULT_LOCK_RETRIES,
    DEFAULT_LOCK_TIMEOUT_S,
    Settings,
)
from core.errors import storage_guard
from core.models import Coordinate, Incident
from proximity.index import ProximityIndex
from proximity.locks import LockStrategy, make_lock_strategy

logger = logging.getLogger("pothole_api.proximity.resolver")

DEFAULT_DESCRIPTION = "Newly reported pothole"


@dataclass(frozen=True)
class Resolution:
    incident: Incident
    created: bool  # True if this call created the incident
    attached: Any = None  # result of the attach callback, if one was given


class DeduplicationResolver:
    def __init__(
        self,
        incidents,
        index: ProximityIndex,
        *,
        radius_m: float = DEFAULT_DEDUP_RADIUS_M,
        locks: Optional[LockStrategy] = None,
        lock_timeout_s: float = DEFAULT_LOCK_TIMEOUT_S,
        lock_retries: int = DEFAULT_LOCK_RETRIES,
    ):
        self._incidents = incidents  # RecordTable of Incident
        self.index = index
        self.radius_m = radius_m
        self.locks = locks if locks is not None else make_lock_strategy("cell", radius_m)
        self.lock_timeout_s = lock_timeout_s
        self.lock_retries = lock_retries

    @classmethod
    def from_settings(cls, incidents, index: ProximityIndex, settings: Settings) -> "DeduplicationResolver":
        return cls(
            incidents,
            index,
            radius_m=settings.dedup_radius_m,
            locks=make_lock_strategy(settings.locking, settings.dedup_radius_m),
            lock_timeout_s=settings.lock_timeout_s,
            lock_retries=settings.lock_retries,
        )

    def holding(self, point: Coordinate):
        """Context manager holding the locks that cover point (CONFLICT when they stay busy)."""
        return self.locks.hold(point, self.lock_timeout_s, self.lock_retries)

    def resolve(
        self,
        point: Coordinate,
        fallback_description: Optional[str] = None,
        address: Optional[str] = None,
        attach: Optional[Callable[[Incident], Any]] = None,
    ) -> Resolution:
        """
        Nearest incident within radius_m of point, or a new one created there with
        fallback_description (placeholder when blank) and the pre-resolved address.
        attach(incident) runs before the locks are released, so whatever it writes
        cannot race with a deletion of that incident.
        Raises EngineError(CONFLICT) if the area stays locked, EngineError(STORAGE) if the store fails.
        """
        description = (fallback_description or "").strip() or DEFAULT_DESCRIPTION

        with self.holding(point):
            nearby = self.index.radius_query(point, self.radius_m)
            if nearby:
                logger.debug("dedup match incident_id=%s candidates=%d", nearby[0].id, len(nearby))
                attached = attach(nearby[0]) if attach is not None else None
                return Resolution(nearby[0], created=False, attached=attached)

            def build(incident_id: int, now) -> Incident:
                return Incident(
                    id=incident_id,
                    coordinate=point,
                    description=description,
                    address=address,
                    created_at=now,
                    updated_at=now,
                )

            with storage_guard():
                incident = self._incidents.insert(build)
            logger.info("incident created incident_id=%s lat=%s lng=%s", incident.id, point.latitude, point.longitude)
            attached = attach(incident) if attach is not None else None
        return Resolution(incident, created=True, attached=attached)

    def find_or_create(self, point: Coordinate, fallback_description: Optional[str] = None) -> Incident:
        return self.resolve(point, fallback_description).incident
