"""Tests for the lock grid: points within the radius must always share a cell."""

import math
import random

import pytest

from core.errors import EngineError, ErrorKind
from core.models import Coordinate
from proximity.cells import POLAR_CELL, CellGrid
from proximity.distance import distance
from proximity.locks import CellLocks, GlobalLock, LockStrategy, make_lock_strategy

RADIUS = 1.0
M_PER_DEG = 111_195.0


def _wrap(lng):
    return ((lng + 180.0) % 360.0) - 180.0


def _neighbours(center, radius_m, scale=0.99):
    """Points roughly radius_m * scale away in 12 bearings (kept only if truly within radius_m)."""
    out = []
    for k in range(12):
        bearing = math.radians(k * 30)
        dlat = radius_m * scale * math.cos(bearing) / M_PER_DEG
        coslat = max(math.cos(math.radians(center.latitude)), 1e-6)
        dlng = radius_m * scale * math.sin(bearing) / (M_PER_DEG * coslat)
        lat = min(90.0, max(-90.0, center.latitude + dlat))
        p = Coordinate(lat, _wrap(center.longitude + dlng))
        if distance(center, p) <= radius_m:
            out.append(p)
    return out


CENTERS = [
    Coordinate(37.0, 127.0),
    Coordinate(0.0, 0.0),
    Coordinate(-33.8688, 151.2093),
    Coordinate(60.0, -179.9999999),
    Coordinate(0.0, 180.0),
    Coordinate(-12.5, -180.0),
    Coordinate(84.99999, 45.0),
    Coordinate(-84.999995, -10.0),
    Coordinate(89.9999, 0.0),
    Coordinate(-90.0, 0.0),
]


class TestCellGrid:
    def test_rejects_non_positive_size(self):
        with pytest.raises(ValueError):
            CellGrid(0)

    def test_antimeridian_same_column(self):
        grid = CellGrid(RADIUS)
        assert grid.cell_of(Coordinate(10, 180)) == grid.cell_of(Coordinate(10, -180))

    def test_polar_band_single_cell(self):
        grid = CellGrid(RADIUS)
        assert grid.cell_of(Coordinate(85, 0)) == POLAR_CELL
        assert grid.cell_of(Coordinate(-89.5, 120)) == POLAR_CELL
        assert grid.cell_of(Coordinate(84.9, 0)) != POLAR_CELL

    @pytest.mark.parametrize("center", CENTERS)
    def test_own_cell_in_disc(self, center):
        grid = CellGrid(RADIUS)
        assert grid.cell_of(center) in grid.disc_cells(center, RADIUS)

    @pytest.mark.parametrize("center", CENTERS)
    def test_neighbours_share_a_cell(self, center):
        grid = CellGrid(RADIUS)
        mine = grid.disc_cells(center, RADIUS)
        for p in _neighbours(center, RADIUS):
            assert grid.cell_of(p) in mine
            assert mine & grid.disc_cells(p, RADIUS)

    def test_neighbours_across_antimeridian(self):
        grid = CellGrid(RADIUS)
        a = Coordinate(0, 179.999996)
        b = Coordinate(0, -179.999996)
        assert distance(a, b) < RADIUS
        assert grid.disc_cells(a, RADIUS) & grid.disc_cells(b, RADIUS)

    def test_neighbours_across_polar_boundary(self):
        grid = CellGrid(RADIUS)
        a = Coordinate(84.999996, 10)
        b = Coordinate(85.000001, 10)
        assert distance(a, b) < RADIUS
        assert grid.disc_cells(a, RADIUS) & grid.disc_cells(b, RADIUS)

    def test_far_points_do_not_share(self):
        grid = CellGrid(RADIUS)
        a = grid.disc_cells(Coordinate(37, 127), RADIUS)
        b = grid.disc_cells(Coordinate(37.001, 127), RADIUS)
        assert not a & b

    def test_disc_is_small(self):
        grid = CellGrid(RADIUS)
        assert len(grid.disc_cells(Coordinate(37, 127), RADIUS)) <= 16
        assert len(grid.disc_cells(Coordinate(84.9, 127), RADIUS)) <= 200


class TestLockStrategies:
    def test_cell_lock_keys_sorted_and_shared(self):
        locks = CellLocks(RADIUS)
        a = locks.lock_keys(Coordinate(37, 127))
        b = locks.lock_keys(Coordinate(37.000005, 127))
        assert a == sorted(a)
        assert set(a) & set(b)

    def test_far_points_never_share_a_lock(self):
        # random points across southern Korea; any pair more than 10 m apart must not contend
        rng = random.Random(7)
        locks = CellLocks(RADIUS)
        points = [Coordinate(rng.uniform(33, 38), rng.uniform(126, 129)) for _ in range(500)]
        keys = [set(locks.lock_keys(p)) for p in points]
        for i in range(len(points)):
            for j in range(i + 1, len(points)):
                if distance(points[i], points[j]) > 10:
                    assert not keys[i] & keys[j]

    def test_lock_table_empties_after_release(self):
        locks = CellLocks(RADIUS)
        with locks.hold(Coordinate(37, 127), 0.1, 0):
            assert len(locks.table) == len(locks.lock_keys(Coordinate(37, 127)))
        assert len(locks.table) == 0

    def test_lock_table_empties_after_conflict(self):
        locks = CellLocks(RADIUS)
        p = Coordinate(37, 127)
        with locks.hold(p, 0.1, 0):
            with pytest.raises(EngineError) as exc:
                with locks.hold(p, 0.01, 0):
                    pass
            assert exc.value.kind == ErrorKind.CONFLICT
        assert len(locks.table) == 0

    def test_global_lock_single_key(self):
        locks = GlobalLock()
        assert locks.lock_keys(Coordinate(37, 127)) == locks.lock_keys(Coordinate(-10, 40)) == [0]

    def test_strategy_is_abstract(self):
        with pytest.raises(TypeError):
            LockStrategy()

    def test_factory(self):
        assert make_lock_strategy("global", RADIUS).name == "global"
        assert make_lock_strategy("cell", RADIUS).name == "cell"
