"""
In-memory record store (one table per record type).

Records are frozen dataclasses. Every write swaps a whole record under the table lock,
so readers only ever see a committed version. Scans return a snapshot list.
"""

import itertools
import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Optional

from core.errors import StorageFailure

logger = logging.getLogger("pothole_api.store")


class StoreUnavailable(StorageFailure):
    """Store is closed or otherwise unusable."""


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RecordTable:
    def __init__(self, name: str, clock: Callable[[], datetime] = utc_now):
        self.name = name
        self._clock = clock
        self._lock = threading.Lock()
        self._rows: dict = {}
        self._ids = itertools.count(1)
        self._closed = False

    def _check_open(self) -> None:
        if self._closed:
            raise StoreUnavailable(f"table {self.name} is closed")

    def insert(self, build: Callable[[int, datetime], object]):
        """Assign the next id, build the record with (id, now), store and return it."""
        with self._lock:
            self._check_open()
            record_id = next(self._ids)
            record = build(record_id, self._clock())
            self._rows[record_id] = record
        logger.debug("%s insert id=%s", self.name, record_id)
        return record

    def get(self, record_id):
        with self._lock:
            self._check_open()
            return self._rows.get(record_id)

    def scan(self, predicate: Optional[Callable[[object], bool]] = None) -> list:
        """Snapshot of all records (id order) matching predicate."""
        with self._lock:
            self._check_open()
            rows = list(self._rows.values())
        if predicate is None:
            return rows
        return [r for r in rows if predicate(r)]

    def update(self, record_id, change: Callable[[object, datetime], object]):
        """Replace a record with change(old, now). Returns the new record, or None if missing."""
        with self._lock:
            self._check_open()
            old = self._rows.get(record_id)
            if old is None:
                return None
            new = change(old, self._clock())
            self._rows[record_id] = new
            return new

    def delete(self, record_id) -> bool:
        with self._lock:
            self._check_open()
            return self._rows.pop(record_id, None) is not None

    def count(self) -> int:
        with self._lock:
            self._check_open()
            return len(self._rows)

    def close(self) -> None:
        with self._lock:
            self._closed = True


class MemoryStore:
    """Incident and report tables sharing one clock."""

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self.clock = clock
        self.incidents = RecordTable("incidents", clock)
        self.reports = RecordTable("reports", clock)

    def close(self) -> None:
        self.incidents.close()
        self.reports.close()
        logger.info("store closed")
