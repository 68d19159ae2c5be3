"""Incident/report models. Records are frozen; updates build a new version."""

import math
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional

from core.errors import validation_error


def _iso(ts: Optional[datetime]) -> Optional[str]:
    if ts is None:
        return None
    return ts.strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _check_range(name: str, value, low: float, high: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise validation_error(f"{name} must be a number", field=name, value=repr(value))
    v = float(value)
    if not math.isfinite(v) or v < low or v > high:
        raise validation_error(f"{name} must be within [{low:g}, {high:g}]", field=name, value=v)
    return v


@dataclass(frozen=True)
class Coordinate:
    """WGS84 point. Out-of-range values are rejected, never clamped."""
    latitude: float
    longitude: float

    def __post_init__(self):
        object.__setattr__(self, "latitude", _check_range("latitude", self.latitude, -90.0, 90.0))
        object.__setattr__(self, "longitude", _check_range("longitude", self.longitude, -180.0, 180.0))

    def to_dict(self):
        return {"latitude": round(self.latitude, 6), "longitude": round(self.longitude, 6)}

    def fallback_address(self) -> str:
        return f"lat: {self.latitude}, lon: {self.longitude}"


@dataclass(frozen=True)
class Incident:
    id: int
    coordinate: Coordinate  # fixed at creation; a defect stays where it was first observed
    description: str
    image_refs: tuple = ()
    address: Optional[str] = None  # geocoding cache, advisory only
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def revised(
        self,
        now: datetime,
        *,
        description: Optional[str] = None,
        image_refs: Optional[tuple] = None,
        address: Optional[str] = None,
    ) -> "Incident":
        """New version with the given fields replaced; unset fields are kept."""
        return replace(
            self,
            description=description if description is not None else self.description,
            image_refs=tuple(image_refs) if image_refs is not None else self.image_refs,
            address=address if address is not None else self.address,
            updated_at=now,
        )

    def to_dict(self):
        d = {"id": self.id}
        d.update(self.coordinate.to_dict())
        d["description"] = self.description
        d["image_refs"] = list(self.image_refs)
        d["address"] = self.address
        d["created_at"] = _iso(self.created_at)
        d["updated_at"] = _iso(self.updated_at)
        return d


@dataclass(frozen=True)
class Report:
    id: int
    coordinate: Coordinate
    address: str
    incident_id: int  # owning incident; never re-parented
    image_refs: tuple = ()
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def revised(
        self,
        now: datetime,
        *,
        address: Optional[str] = None,
        image_refs: Optional[tuple] = None,
        description: Optional[str] = None,
    ) -> "Report":
        return replace(
            self,
            address=address if address is not None else self.address,
            image_refs=tuple(image_refs) if image_refs is not None else self.image_refs,
            description=description if description is not None else self.description,
            updated_at=now,
        )

    def to_dict(self):
        d = {"id": self.id, "incident_id": self.incident_id}
        d.update(self.coordinate.to_dict())
        d["address"] = self.address
        d["image_refs"] = list(self.image_refs)
        d["description"] = self.description
        d["created_at"] = _iso(self.created_at)
        d["updated_at"] = _iso(self.updated_at)
        return d


@dataclass(frozen=True)
class RankedIncident:
    """Read-path view: incident plus optional distance from a viewpoint and images gathered from its reports."""
    incident: Incident
    distance_m: Optional[float] = None
    aggregated_images: tuple = field(default_factory=tuple)

    def to_dict(self):
        d = self.incident.to_dict()
        d["images"] = list(self.aggregated_images)
        if self.distance_m is not None:
            d["distance_m"] = round(self.distance_m, 1)
        return d
