"""Pytest fixtures for pothole map tests."""

import threading
from datetime import datetime, timedelta, timezone

import pytest

from core.config import Settings
from core.models import Coordinate, Incident
from geocoding import CoordinateGeocoder
from proximity.index import ScanProximityIndex
from proximity.resolver import DeduplicationResolver
from proximity.search import RankedSearchService
from store.memory import MemoryStore


class TickingClock:
    """Deterministic clock: each call returns a later time (thread-safe)."""

    def __init__(self, start=datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc), step=timedelta(seconds=1)):
        self.now = start
        self.step = step
        self._lock = threading.Lock()

    def __call__(self):
        with self._lock:
            t = self.now
            self.now += self.step
            return t


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def store(clock):
    """Fresh in-memory store with a ticking clock."""
    return MemoryStore(clock=clock)


@pytest.fixture
def index(store):
    return ScanProximityIndex(store.incidents)


@pytest.fixture
def resolver(store, index):
    """Resolver with the default 1 m radius and cell locks."""
    return DeduplicationResolver(store.incidents, index, radius_m=1.0)


@pytest.fixture
def search(store, index):
    return RankedSearchService(store.incidents, store.reports, index)


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def service(store, settings):
    from api.service import IncidentService
    return IncidentService(store=store, settings=settings, geocoder=CoordinateGeocoder())


@pytest.fixture
def app_client():
    """FastAPI TestClient over a fresh service."""
    from fastapi.testclient import TestClient
    import api.main as main_module
    from api.service import IncidentService
    main_module.service = IncidentService(settings=Settings(), geocoder=CoordinateGeocoder())
    return TestClient(main_module.app)


@pytest.fixture
def add_incident(store):
    """Insert an incident directly, bypassing dedup."""
    def add(lat, lng, description="pothole", image_refs=()):
        point = Coordinate(lat, lng)
        return store.incidents.insert(
            lambda i, now: Incident(
                id=i, coordinate=point, description=description,
                image_refs=tuple(image_refs), created_at=now, updated_at=now,
            )
        )
    return add
