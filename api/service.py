"""
IncidentService: the query surface and report ingestion behind the HTTP layer.

Ingestion order: validate -> reverse geocode (no locks held) -> find-or-create the
incident (locked) -> back-fill a missing incident address -> persist the report.
"""

import json
import logging
from typing import Iterable, Optional

from core.config import Settings, load_settings
from core.errors import EngineError, not_found, storage_guard, validation_error
from core.models import Coordinate, Incident, RankedIncident, Report
from geocoding import CoordinateGeocoder, NaverGeocoder
from proximity.index import ProximityIndex, ScanProximityIndex, check_box, newest_first
from proximity.resolver import DeduplicationResolver
from proximity.search import (
    AllIncidents,
    BoundingBoxFilter,
    KeywordFilter,
    RadiusFilter,
    RankedSearchService,
    RecentFilter,
    WithImagesFilter,
)
from store.memory import MemoryStore

logger = logging.getLogger("pothole_api.service")

MAX_DESCRIPTION_LEN = 2000
MAX_IMAGES = 6
MAX_ADDRESS_LEN = 1000
REPORT_SEARCH_FIELDS = (None, "address", "description")


def get_geocoder(settings: Settings):
    """Use Naver if keys are set, else the coordinate string."""
    if settings.naver_configured:
        return NaverGeocoder(
            settings.naver_client_id,
            settings.naver_client_secret,
            url=settings.naver_geocode_url,
            timeout_s=settings.geocode_timeout_s,
        )
    return CoordinateGeocoder()


def _clean_description(description, required: bool = False) -> Optional[str]:
    if description is None:
        if required:
            raise validation_error("description is required", field="description")
        return None
    if not isinstance(description, str):
        raise validation_error("description must be a string", field="description")
    text = description.strip()
    if len(text) > MAX_DESCRIPTION_LEN:
        raise validation_error(f"description must be at most {MAX_DESCRIPTION_LEN} characters", field="description")
    if not text:
        if required:
            raise validation_error("description must not be blank", field="description")
        return None
    return text


def _clean_image_refs(image_refs: Optional[Iterable[str]]) -> tuple:
    if image_refs is None:
        return ()
    if isinstance(image_refs, str):
        raise validation_error("image_refs must be a list of strings", field="image_refs")
    refs = list(image_refs)
    if len(refs) > MAX_IMAGES:
        raise validation_error(f"at most {MAX_IMAGES} images per record", field="image_refs", count=len(refs))
    out = []
    for ref in refs:
        if not isinstance(ref, str) or not ref.strip():
            raise validation_error("image refs must be non-blank strings", field="image_refs")
        out.append(ref.strip())
    return tuple(out)


def _require_point(point) -> Coordinate:
    if not isinstance(point, Coordinate):
        raise validation_error("point must be a Coordinate", field="point")
    return point


class IncidentService:
    def __init__(
        self,
        store: Optional[MemoryStore] = None,
        settings: Optional[Settings] = None,
        geocoder=None,
        index: Optional[ProximityIndex] = None,
    ):
        self.settings = settings if settings is not None else load_settings()
        self.store = store if store is not None else MemoryStore()
        self.geocoder = geocoder if geocoder is not None else get_geocoder(self.settings)
        self.index = index if index is not None else ScanProximityIndex(self.store.incidents)
        self.resolver = DeduplicationResolver.from_settings(self.store.incidents, self.index, self.settings)
        self.search = RankedSearchService(self.store.incidents, self.store.reports, self.index)

    # ------------------------------------------------------------------
    # Incident read path
    # ------------------------------------------------------------------
    def list_all(self, viewpoint: Optional[Coordinate] = None) -> list[RankedIncident]:
        return self.search.search(AllIncidents(), viewpoint)

    def get_by_id(self, incident_id: int, viewpoint: Optional[Coordinate] = None) -> RankedIncident:
        with storage_guard():
            incident = self.store.incidents.get(incident_id)
        if incident is None:
            raise not_found("incident", incident_id)
        return self.search.rank(incident, viewpoint)

    def search_by_keyword(self, text: str, viewpoint: Optional[Coordinate] = None) -> list[RankedIncident]:
        return self.search.search(KeywordFilter(text), viewpoint)

    def search_by_radius(self, center: Coordinate, radius_m: float) -> list[RankedIncident]:
        """Nearest first; distances are measured from center."""
        _require_point(center)
        return self.search.search(RadiusFilter(center, radius_m), viewpoint=center)

    def search_by_bounding_box(
        self,
        min_lat: float,
        max_lat: float,
        min_lon: float,
        max_lon: float,
        viewpoint: Optional[Coordinate] = None,
    ) -> list[RankedIncident]:
        return self.search.search(BoundingBoxFilter(min_lat, max_lat, min_lon, max_lon), viewpoint)

    def recent_top_n(self, n: Optional[int] = None, viewpoint: Optional[Coordinate] = None) -> list[RankedIncident]:
        limit = self.settings.recent_limit if n is None else n
        return self.search.search(RecentFilter(limit), viewpoint)

    def with_images_only(self, viewpoint: Optional[Coordinate] = None) -> list[RankedIncident]:
        return self.search.search(WithImagesFilter(), viewpoint)

    def count_all(self) -> int:
        with storage_guard():
            return self.store.incidents.count()

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------
    def ingest_report(
        self,
        point: Coordinate,
        description: Optional[str] = None,
        image_refs: Iterable[str] = (),
    ) -> Report:
        """Attach a new report to the incident at (or within the dedup radius of) point."""
        _require_point(point)
        text = _clean_description(description)
        refs = _clean_image_refs(image_refs)

        address = self.geocoder.resolve_address(point)

        def attach(incident: Incident) -> Report:
            # runs under the resolver's locks
            def backfill(old: Incident, now) -> Incident:
                return old.revised(now, address=address) if old.address is None else old

            def build(report_id: int, now) -> Report:
                return Report(
                    id=report_id,
                    coordinate=point,
                    address=address,
                    incident_id=incident.id,
                    image_refs=refs,
                    description=text,
                    created_at=now,
                    updated_at=now,
                )

            with storage_guard():
                if incident.address is None:
                    self.store.incidents.update(incident.id, backfill)
                return self.store.reports.insert(build)

        resolution = self.resolver.resolve(point, text, address=address, attach=attach)
        report = resolution.attached
        logger.info(
            "report ingested report_id=%s incident_id=%s incident_new=%s images=%d",
            report.id, report.incident_id, resolution.created, len(refs),
        )
        return report

    def update_incident(
        self,
        incident_id: int,
        description: Optional[str] = None,
        image_refs: Optional[Iterable[str]] = None,
    ) -> Incident:
        """Change description/images. Location is fixed at creation."""
        text = _clean_description(description, required=True) if description is not None else None
        refs = _clean_image_refs(image_refs) if image_refs is not None else None

        with storage_guard():
            updated = self.store.incidents.update(
                incident_id, lambda old, now: old.revised(now, description=text, image_refs=refs)
            )
        if updated is None:
            raise not_found("incident", incident_id)
        logger.info("incident updated incident_id=%s", incident_id)
        return updated

    def delete_incident(self, incident_id: int) -> int:
        """
        Administrative removal of an incident and the reports it owns. Returns the number
        of reports removed. Holds the incident's area locks, so no report can attach to it
        while it goes away.
        """
        with storage_guard():
            incident = self.store.incidents.get(incident_id)
        if incident is None:
            raise not_found("incident", incident_id)

        with self.resolver.holding(incident.coordinate):
            with storage_guard():
                owned = self.store.reports.scan(lambda r: r.incident_id == incident_id)
                for r in owned:
                    self.store.reports.delete(r.id)
                removed = self.store.incidents.delete(incident_id)
        if not removed:
            raise not_found("incident", incident_id)
        logger.info("incident deleted incident_id=%s reports=%d", incident_id, len(owned))
        return len(owned)

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------
    def get_report(self, report_id: int) -> Report:
        with storage_guard():
            report = self.store.reports.get(report_id)
        if report is None:
            raise not_found("report", report_id)
        return report

    def list_reports(self) -> list[Report]:
        with storage_guard():
            return newest_first(self.store.reports.scan())

    def recent_reports(self, n: Optional[int] = None) -> list[Report]:
        limit = self.settings.recent_limit if n is None else n
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise validation_error("limit must be a positive integer", field="limit", value=limit)
        return self.list_reports()[:limit]

    def search_reports(self, keyword: str, field: Optional[str] = None) -> list[Report]:
        """Case-insensitive match on address, description, or (field=None) either."""
        needle = (keyword or "").strip().lower()
        if not needle:
            raise validation_error("keyword must not be blank", field="keyword")
        if field not in REPORT_SEARCH_FIELDS:
            raise validation_error("unknown report search field", field="field", value=field)

        def matches(r: Report) -> bool:
            in_address = field != "description" and needle in r.address.lower()
            in_description = field != "address" and needle in (r.description or "").lower()
            return in_address or in_description

        with storage_guard():
            return newest_first(self.store.reports.scan(matches))

    def search_reports_by_bounding_box(
        self, min_lat: float, max_lat: float, min_lon: float, max_lon: float
    ) -> list[Report]:
        """Reports inside the (inclusive) box, newest first."""
        check_box(min_lat, max_lat, min_lon, max_lon)

        def inside(r: Report) -> bool:
            c = r.coordinate
            return min_lat <= c.latitude <= max_lat and min_lon <= c.longitude <= max_lon

        with storage_guard():
            return newest_first(self.store.reports.scan(inside))

    def reports_for_incident(self, incident_id: int) -> list[Report]:
        with storage_guard():
            if self.store.incidents.get(incident_id) is None:
                raise not_found("incident", incident_id)
            return newest_first(self.store.reports.scan(lambda r: r.incident_id == incident_id))

    def update_report(
        self,
        report_id: int,
        address: Optional[str] = None,
        image_refs: Optional[Iterable[str]] = None,
        description: Optional[str] = None,
    ) -> Report:
        if address is not None and (not isinstance(address, str) or not address.strip()):
            raise validation_error("address must not be blank", field="address")
        if address is not None and len(address.strip()) > MAX_ADDRESS_LEN:
            raise validation_error(f"address must be at most {MAX_ADDRESS_LEN} characters", field="address")
        text = _clean_description(description)
        refs = _clean_image_refs(image_refs) if image_refs is not None else None
        new_address = address.strip() if address is not None else None

        with storage_guard():
            updated = self.store.reports.update(
                report_id,
                lambda old, now: old.revised(now, address=new_address, image_refs=refs, description=text),
            )
        if updated is None:
            raise not_found("report", report_id)
        return updated

    def delete_report(self, report_id: int) -> None:
        with storage_guard():
            removed = self.store.reports.delete(report_id)
        if not removed:
            raise not_found("report", report_id)
        logger.info("report deleted report_id=%s", report_id)

    def count_reports(self) -> int:
        with storage_guard():
            return self.store.reports.count()

    # ------------------------------------------------------------------
    # Seeding
    # ------------------------------------------------------------------
    def seed_incidents(self, path: str) -> int:
        """
        Load [{latitude, longitude, description, image_url?}, ...] into an empty store.
        Rows go through the dedup resolver, so a row within the radius of an earlier
        one is skipped. Returns the number of incidents created; 0 if the store
        already has data or the file is unusable.
        """
        if self.count_all() > 0:
            logger.info("seed skipped: store already has incidents")
            return 0
        try:
            with open(path, encoding="utf-8") as f:
                rows = json.load(f)
        except (OSError, ValueError) as e:
            logger.error("seed file %s unreadable: %s", path, e)
            return 0
        if not isinstance(rows, list):
            logger.error("seed file %s must contain a JSON list", path)
            return 0

        inserted = 0
        for i, row in enumerate(rows):
            try:
                point = Coordinate(row["latitude"], row["longitude"])
                text = _clean_description(row.get("description"), required=True)
                image_url = row.get("image_url")
                refs = _clean_image_refs([image_url] if image_url else [])
            except (KeyError, TypeError, AttributeError, EngineError) as e:
                logger.warning("seed row %d skipped: %r", i, e)
                continue

            resolution = self.resolver.resolve(point, text)
            if not resolution.created:
                logger.warning("seed row %d skipped: duplicate of incident %s", i, resolution.incident.id)
                continue
            if refs:
                with storage_guard():
                    self.store.incidents.update(
                        resolution.incident.id, lambda old, now, refs=refs: old.revised(now, image_refs=refs)
                    )
            inserted += 1
        logger.info("seeded %d incidents from %s", inserted, path)
        return inserted
