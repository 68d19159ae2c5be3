"""
FastAPI backend: ingest pothole reports, serve deduplicated incidents and search.
Reports within the dedup radius of an existing incident attach to it; otherwise a new incident is created.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from core.errors import EngineError, ErrorKind, validation_error
from core.models import Coordinate
from geocoding import NaverGeocoder
from api.service import IncidentService

load_dotenv(override=True)

# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("pothole_api")

# -----------------------------------------------------------------------------
# Service (in-memory store; replaced wholesale in tests)
# -----------------------------------------------------------------------------
service = IncidentService()


@asynccontextmanager
async def lifespan(app: FastAPI):
    path = service.settings.seed_data_path
    if path:
        service.seed_incidents(path)
    yield


app = FastAPI(title="Pothole Map API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

NO_CACHE_HEADERS = {"Cache-Control": "no-store, no-cache, must-revalidate", "Pragma": "no-cache"}

# Every ErrorKind must have a status here.
STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.STORAGE: 503,
}


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError):
    status = STATUS_BY_KIND[exc.kind]
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected (%s): %s", request.method, request.url.path, exc.kind.value, exc.message)
    return JSONResponse(status_code=status, content=exc.to_dict(), headers=NO_CACHE_HEADERS)


# -----------------------------------------------------------------------------
# Request models
# -----------------------------------------------------------------------------
class ReportRequest(BaseModel):
    latitude: float
    longitude: float
    image_urls: list[str] = []
    description: Optional[str] = None


class UpdateReportRequest(BaseModel):
    address: Optional[str] = None
    image_urls: Optional[list[str]] = None
    description: Optional[str] = None


class UpdateIncidentRequest(BaseModel):
    description: Optional[str] = None
    image_urls: Optional[list[str]] = None


def _viewpoint(latitude: Optional[float], longitude: Optional[float]) -> Optional[Coordinate]:
    """Both or neither; one alone is a client error."""
    if latitude is None and longitude is None:
        return None
    if latitude is None or longitude is None:
        raise validation_error("latitude and longitude must be given together")
    return Coordinate(latitude, longitude)


def _ok(content, status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=content, headers=NO_CACHE_HEADERS)


def _ranked(items) -> dict:
    return {"count": len(items), "incidents": [r.to_dict() for r in items]}


def _reports(reports) -> dict:
    return {"count": len(reports), "reports": [r.to_dict() for r in reports]}


# -----------------------------------------------------------------------------
# Incident routes (fixed paths before /incidents/{incident_id})
# -----------------------------------------------------------------------------
@app.get("/incidents")
def list_incidents(latitude: Optional[float] = None, longitude: Optional[float] = None):
    """All incidents; nearest first when latitude/longitude are given, else newest first."""
    return _ok(_ranked(service.list_all(_viewpoint(latitude, longitude))))


@app.get("/incidents/search")
def search_incidents(keyword: str, latitude: Optional[float] = None, longitude: Optional[float] = None):
    return _ok(_ranked(service.search_by_keyword(keyword, _viewpoint(latitude, longitude))))


@app.get("/incidents/search/location")
def search_incidents_by_location(latitude: float, longitude: float, distance: float):
    """Incidents within `distance` metres of the point, nearest first."""
    return _ok(_ranked(service.search_by_radius(Coordinate(latitude, longitude), distance)))


@app.get("/incidents/search/range")
def search_incidents_by_range(
    min_lat: float,
    max_lat: float,
    min_lon: float,
    max_lon: float,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
):
    return _ok(_ranked(service.search_by_bounding_box(min_lat, max_lat, min_lon, max_lon, _viewpoint(latitude, longitude))))


@app.get("/incidents/recent")
def recent_incidents(limit: Optional[int] = None, latitude: Optional[float] = None, longitude: Optional[float] = None):
    return _ok(_ranked(service.recent_top_n(limit, _viewpoint(latitude, longitude))))


@app.get("/incidents/with-images")
def incidents_with_images(latitude: Optional[float] = None, longitude: Optional[float] = None):
    return _ok(_ranked(service.with_images_only(_viewpoint(latitude, longitude))))


@app.get("/incidents/stats")
def incident_stats():
    return _ok({"total_count": service.count_all(), "report_count": service.count_reports()})


@app.get("/incidents/{incident_id}")
def get_incident(incident_id: int, latitude: Optional[float] = None, longitude: Optional[float] = None):
    return _ok(service.get_by_id(incident_id, _viewpoint(latitude, longitude)).to_dict())


@app.put("/incidents/{incident_id}")
def update_incident(incident_id: int, body: UpdateIncidentRequest):
    return _ok(service.update_incident(incident_id, body.description, body.image_urls).to_dict())


@app.delete("/incidents/{incident_id}")
def delete_incident(incident_id: int):
    """Administrative removal; the incident's reports go with it."""
    removed = service.delete_incident(incident_id)
    return _ok({"deleted": incident_id, "reports_deleted": removed})


@app.get("/incidents/{incident_id}/reports")
def incident_reports(incident_id: int):
    reports = service.reports_for_incident(incident_id)
    return _ok({"incident_id": incident_id, "reports": [r.to_dict() for r in reports]})


# -----------------------------------------------------------------------------
# Report routes
# -----------------------------------------------------------------------------
@app.post("/reports")
def create_report(body: ReportRequest):
    """Ingest a report; it joins the incident within the dedup radius or creates one."""
    point = Coordinate(body.latitude, body.longitude)
    report = service.ingest_report(point, body.description, body.image_urls)
    incident = service.get_by_id(report.incident_id)
    return _ok({"report": report.to_dict(), "incident": incident.to_dict()}, status_code=201)


@app.get("/reports")
def list_reports(keyword: Optional[str] = None, limit: Optional[int] = None):
    if keyword is not None:
        reports = service.search_reports(keyword)
    elif limit is not None:
        reports = service.recent_reports(limit)
    else:
        reports = service.list_reports()
    return _ok(_reports(reports))


@app.get("/reports/search/location")
def search_reports_by_location(min_lat: float, max_lat: float, min_lon: float, max_lon: float):
    return _ok(_reports(service.search_reports_by_bounding_box(min_lat, max_lat, min_lon, max_lon)))


@app.get("/reports/search/address")
def search_reports_by_address(keyword: str):
    return _ok(_reports(service.search_reports(keyword, field="address")))


@app.get("/reports/search/description")
def search_reports_by_description(keyword: str):
    return _ok(_reports(service.search_reports(keyword, field="description")))


@app.get("/reports/{report_id}")
def get_report(report_id: int):
    return _ok(service.get_report(report_id).to_dict())


@app.put("/reports/{report_id}")
def update_report(report_id: int, body: UpdateReportRequest):
    return _ok(service.update_report(report_id, body.address, body.image_urls, body.description).to_dict())


@app.delete("/reports/{report_id}")
def delete_report(report_id: int):
    service.delete_report(report_id)
    return _ok({"deleted": report_id})


@app.get("/health")
def health():
    return _ok({
        "status": "ok",
        "geocoder": "naver" if isinstance(service.geocoder, NaverGeocoder) else "coordinates",
        "locking": service.resolver.locks.name,
        "dedup_radius_m": service.resolver.radius_m,
    })
