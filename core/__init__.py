"""Core incident/report models, error kinds, and settings."""

from core.models import Coordinate, Incident, Report, RankedIncident
from core.errors import ErrorKind, EngineError
from core.config import Settings, load_settings

__all__ = [
    "Coordinate",
    "Incident",
    "Report",
    "RankedIncident",
    "ErrorKind",
    "EngineError",
    "Settings",
    "load_settings",
]
