"""
Locks that serialize find-or-create decisions for nearby points.

- CellLocks: one lock per grid cell, created on first use and dropped when no caller
  holds or waits on it. A point holds the locks of every cell its dedup disc can touch,
  so two points within the radius always share a lock and far-apart points never do.
- GlobalLock: one mutex for every decision. Simplest correct option, one creation
  decision at a time.

Keys are taken in ascending order, so overlapping lock sets cannot deadlock.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager

from core.errors import EngineError, ErrorKind
from core.models import Coordinate
from proximity.cells import CellGrid

logger = logging.getLogger("pothole_api.proximity.locks")

BACKOFF_BASE_S = 0.05


class LockTable:
    """Locks keyed by any sortable key, reference-counted by holders and waiters."""

    def __init__(self):
        self._guard = threading.Lock()
        self._entries: dict = {}  # key -> [lock, refs]

    def checkout(self, keys: list) -> list[threading.Lock]:
        with self._guard:
            locks = []
            for key in keys:
                entry = self._entries.get(key)
                if entry is None:
                    entry = self._entries[key] = [threading.Lock(), 0]
                entry[1] += 1
                locks.append(entry[0])
            return locks

    def checkin(self, keys: list) -> None:
        with self._guard:
            for key in keys:
                entry = self._entries[key]
                entry[1] -= 1
                if entry[1] == 0:
                    del self._entries[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)


def _acquire_all(locks: list[threading.Lock], timeout_s: float) -> bool:
    """Take every lock within one shared deadline; on failure release what was taken."""
    deadline = time.monotonic() + timeout_s
    held = []
    for lock in locks:
        remaining = max(0.0, deadline - time.monotonic())
        if not lock.acquire(timeout=remaining):
            for h in reversed(held):
                h.release()
            return False
        held.append(lock)
    return True


class LockStrategy(ABC):
    name = "base"

    def __init__(self):
        self.table = LockTable()

    @abstractmethod
    def lock_keys(self, point: Coordinate) -> list:
        """Sorted keys whose locks must be held to decide for point."""

    @contextmanager
    def hold(self, point: Coordinate, timeout_s: float, retries: int):
        """
        Hold every lock covering point. Each attempt waits up to timeout_s; after
        `retries` failed retries (exponential backoff between them) raise CONFLICT.
        """
        keys = self.lock_keys(point)
        locks = self.table.checkout(keys)
        try:
            for attempt in range(retries + 1):
                if _acquire_all(locks, timeout_s):
                    break
                logger.warning("lock busy (%s, %d keys) attempt=%d/%d", self.name, len(keys), attempt + 1, retries + 1)
                if attempt < retries:
                    time.sleep(BACKOFF_BASE_S * (2 ** attempt))
            else:
                raise EngineError(
                    ErrorKind.CONFLICT,
                    "could not lock the area around this point; retry later",
                    {"latitude": point.latitude, "longitude": point.longitude, "attempts": retries + 1},
                )
            try:
                yield
            finally:
                for lock in reversed(locks):
                    lock.release()
        finally:
            self.table.checkin(keys)


class CellLocks(LockStrategy):
    name = "cell"

    def __init__(self, radius_m: float):
        super().__init__()
        self.radius_m = radius_m
        self.grid = CellGrid(radius_m)

    def lock_keys(self, point: Coordinate) -> list[tuple[int, int]]:
        return sorted(self.grid.disc_cells(point, self.radius_m))


class GlobalLock(LockStrategy):
    name = "global"

    def lock_keys(self, point: Coordinate) -> list[int]:
        return [0]


def make_lock_strategy(mode: str, radius_m: float) -> LockStrategy:
    if mode == "global":
        return GlobalLock()
    return CellLocks(radius_m)
