"""
Lat/lng grid cells sized about the dedup radius.

The grid has `columns` equal-width columns around the globe (so column indices wrap
cleanly at the antimeridian) and rows of the same angular height. `disc_cells` returns
every cell a disc of `radius_m` around a point can touch: any coordinate within
`radius_m` of the centre lies in one of the returned cells. Two points within
`radius_m` of each other therefore always share a cell in their disc sets.

Near the poles columns get very narrow, so above POLAR_LATITUDE all points share
one POLAR_CELL instead.
"""

import math

from core.models import Coordinate
from proximity.distance import EARTH_RADIUS_M, metres_to_degrees

POLAR_LATITUDE = 85.0
POLAR_CELL = (-1, -1)  # real rows/columns are >= 0
_PAD_DEG = 1e-9  # absorbs float error at the disc edge


class CellGrid:
    def __init__(self, cell_size_m: float):
        if not cell_size_m > 0:
            raise ValueError("cell_size_m must be positive")
        self.cell_size_m = cell_size_m
        self.columns = max(1, math.ceil(360.0 / metres_to_degrees(cell_size_m)))
        self.step = 360.0 / self.columns

    def cell_of(self, point: Coordinate) -> tuple[int, int]:
        if abs(point.latitude) >= POLAR_LATITUDE:
            return POLAR_CELL
        row = math.floor((point.latitude + 90.0) / self.step)
        col = math.floor(((point.longitude + 180.0) % 360.0) / self.step) % self.columns  # 180 == -180
        return row, col

    def disc_cells(self, center: Coordinate, radius_m: float) -> set[tuple[int, int]]:
        """Cells that a disc of radius_m around center can intersect."""
        theta = radius_m / EARTH_RADIUS_M
        dlat = math.degrees(theta) + _PAD_DEG
        lat_lo = max(-90.0, center.latitude - dlat)
        lat_hi = min(90.0, center.latitude + dlat)

        cells: set[tuple[int, int]] = set()
        if max(abs(lat_lo), abs(lat_hi)) >= POLAR_LATITUDE:
            cells.add(POLAR_CELL)
        if abs(center.latitude) >= POLAR_LATITUDE:
            # Anything within radius of a polar centre reaches the polar band too.
            return cells

        # Clip to the non-polar band; polar neighbours are covered by POLAR_CELL.
        lat_lo = max(lat_lo, -POLAR_LATITUDE)
        lat_hi = min(lat_hi, POLAR_LATITUDE)
        cos_min = min(math.cos(math.radians(lat_lo)), math.cos(math.radians(lat_hi)))

        # |dlon| bound from the haversine: sin(dlon/2) <= sin(theta/2) / cos_min
        s = math.sin(theta / 2) / cos_min if cos_min > 0 else 2.0
        if s >= 1.0:
            cols = range(self.columns)
        else:
            dlon = math.degrees(2 * math.asin(s)) + _PAD_DEG
            first = math.floor((center.longitude - dlon + 180.0) / self.step)
            last = math.floor((center.longitude + dlon + 180.0) / self.step)
            if last - first + 1 >= self.columns:
                cols = range(self.columns)
            else:
                cols = [c % self.columns for c in range(first, last + 1)]

        row_lo = math.floor((lat_lo + 90.0) / self.step)
        row_hi = math.floor((lat_hi + 90.0) / self.step)
        for row in range(row_lo, row_hi + 1):
            for col in cols:
                cells.add((row, col))
        return cells
