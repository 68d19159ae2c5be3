"""Tests for ScanProximityIndex: radius and bounding-box queries."""

from datetime import timedelta

import pytest

from core.errors import EngineError, ErrorKind
from core.models import Coordinate
from proximity.distance import distance
from proximity.index import ScanProximityIndex


@pytest.fixture
def grid(add_incident):
    """5x5 incidents spaced 0.0001 deg (~11 m lat) around (37, 127)."""
    out = []
    for i in range(5):
        for j in range(5):
            out.append(add_incident(37 + i * 0.0001, 127 + j * 0.0001, description=f"p{i}{j}"))
    return out


class TestRadiusQuery:
    @pytest.mark.parametrize("radius", [0, 5, 12, 25, 60])
    def test_returns_exactly_points_within_radius(self, index, grid, radius):
        center = Coordinate(37.0002, 127.0002)
        hits = index.radius_query(center, radius)
        hit_ids = {inc.id for inc in hits}
        for inc in grid:
            inside = distance(center, inc.coordinate) <= radius
            assert (inc.id in hit_ids) == inside

    def test_nearest_first(self, index, grid):
        center = Coordinate(37.00013, 127.00007)
        hits = index.radius_query(center, 40)
        ds = [distance(center, inc.coordinate) for inc in hits]
        assert ds == sorted(ds)
        assert len(hits) > 3

    def test_boundary_inclusive(self, index, add_incident):
        inc = add_incident(37.0001, 127)
        center = Coordinate(37, 127)
        d = distance(center, inc.coordinate)
        assert [i.id for i in index.radius_query(center, d)] == [inc.id]

    def test_ties_broken_by_id(self, index, add_incident):
        b = add_incident(37, 127)
        a = add_incident(37, 127)
        hits = index.radius_query(Coordinate(37, 127), 1)
        assert [h.id for h in hits] == [b.id, a.id]

    def test_empty_store(self, index):
        assert index.radius_query(Coordinate(0, 0), 1000) == []

    @pytest.mark.parametrize("bad", [-1, float("nan"), float("inf"), "10", True])
    def test_invalid_radius(self, index, bad):
        with pytest.raises(EngineError) as exc:
            index.radius_query(Coordinate(0, 0), bad)
        assert exc.value.kind == ErrorKind.VALIDATION

    def test_closed_store_is_storage_error(self, store, index, add_incident):
        add_incident(37, 127)
        store.close()
        with pytest.raises(EngineError) as exc:
            index.radius_query(Coordinate(37, 127), 1)
        assert exc.value.kind == ErrorKind.STORAGE


class TestRangeQuery:
    def test_box_filter(self, index, grid):
        hits = index.range_query(37.00005, 37.00035, 127.00005, 127.00025)
        assert len(hits) == 6
        for inc in hits:
            assert 37.00005 <= inc.coordinate.latitude <= 37.00035
            assert 127.00005 <= inc.coordinate.longitude <= 127.00025

    def test_newest_first(self, index, grid):
        hits = index.range_query(37, 37.0005, 127, 127.0005)
        assert [h.id for h in hits] == sorted((g.id for g in grid), reverse=True)

    def test_equal_timestamps_fall_back_to_id_desc(self, clock, store, index, add_incident):
        clock.step = timedelta(0)
        ids = [add_incident(10, 10).id for _ in range(3)]
        hits = index.range_query(9, 11, 9, 11)
        assert [h.id for h in hits] == ids[::-1]

    def test_degenerate_box_is_inclusive(self, index, add_incident):
        inc = add_incident(37, 127)
        assert [h.id for h in index.range_query(37, 37, 127, 127)] == [inc.id]

    @pytest.mark.parametrize("box", [
        (38, 37, 127, 128),
        (37, 38, 128, 127),
        (-91, 0, 0, 1),
        (0, 1, 0, 181),
    ])
    def test_invalid_box(self, index, box):
        with pytest.raises(EngineError) as exc:
            index.range_query(*box)
        assert exc.value.kind == ErrorKind.VALIDATION


class TestIndexSeam:
    def test_scan_index_over_table(self, store):
        assert ScanProximityIndex(store.incidents).radius_query(Coordinate(0, 0), 1) == []
