"""Error kinds surfaced by the engine. One exception type, tagged by a closed enum."""

from contextlib import contextmanager
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    VALIDATION = "validation"  # bad coordinate / field; never retried
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"  # lock retries exhausted; caller may retry
    STORAGE = "storage"  # store unavailable; caller owns retry policy


class EngineError(Exception):
    """Raised for every failure the engine surfaces. Switch on `kind`."""

    def __init__(self, kind: ErrorKind, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.details = details or {}

    def to_dict(self):
        d = {"kind": self.kind.value, "detail": self.message}
        if self.details:
            d["details"] = self.details
        return d

    def __repr__(self):
        return f"EngineError({self.kind.value!r}, {self.message!r})"


def validation_error(message: str, **details) -> EngineError:
    return EngineError(ErrorKind.VALIDATION, message, details)


def not_found(what: str, record_id) -> EngineError:
    return EngineError(ErrorKind.NOT_FOUND, f"{what} {record_id} not found", {"id": record_id})


class StorageFailure(RuntimeError):
    """Base for failures raised by store implementations. Never leaves the engine as-is."""


@contextmanager
def storage_guard():
    """Map store failures to EngineError(STORAGE)."""
    try:
        yield
    except StorageFailure as e:
        raise EngineError(ErrorKind.STORAGE, f"storage unavailable: {e}") from e
