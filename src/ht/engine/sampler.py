"""Bilinear sampling of a Grid at geographic points."""

from typing import Optional, Tuple

import numpy as np

from ht.engine.errors import UninitializedState
from ht.model.models import Bbox, Grid, bbox_span_x, bbox_span_y, bbox_wraps


def cell_size(grid: Optional[Grid], data_bbox: Optional[Bbox]) -> Tuple[float, float]:
    """Data units per grid cell along x and y."""
    if grid is None or data_bbox is None:
        raise UninitializedState("grid and data bbox must both be set before sampling")
    dx = bbox_span_x(data_bbox)
    dy = bbox_span_y(data_bbox)
    if dx == 0 or dy == 0:
        raise UninitializedState(f"data bbox {data_bbox} has zero span, cell size is undefined")
    return dx / grid.width, dy / grid.height


class GridSampler:
    """
    Bilinear interpolation over a Grid anchored to a data bbox.

    Sample (row r, column c) sits at lon = minX + c * cell_x and
    lat = maxY - r * cell_y. Points whose four neighbours are not all inside
    the grid have no data and come back as NaN.
    """

    def __init__(self, grid: Optional[Grid], data_bbox: Optional[Bbox]):
        self.cell_size = cell_size(grid, data_bbox)
        self.grid = grid
        self.data_bbox = tuple(float(v) for v in data_bbox)
        self.wraps = bbox_wraps(self.data_bbox)
        self._values = grid.values.astype(np.float64)

    def sample_many(self, lon, lat) -> np.ndarray:
        """
        Sample the grid at arrays of points.

        - lon/lat: arrays of the same shape, in the data CRS
        - Returns: float array of that shape, NaN where there is no data
        """
        lon = np.asarray(lon, dtype=np.float64)
        lat = np.asarray(lat, dtype=np.float64)
        min_x, min_y, max_x, max_y = self.data_bbox
        part_x, part_y = self.cell_size
        height, width = self._values.shape

        # Points east of the antimeridian live past 180 in a wrapping bbox
        if self.wraps:
            lon = np.where(lon <= max_x, lon + 360.0, lon)

        x_cell = (lon - min_x) / part_x
        y_cell = (lat - min_y) / part_y

        with np.errstate(invalid="ignore"):
            col_lo = np.floor(x_cell)
            col_hi = np.ceil(x_cell)
            row_lo = height - np.floor(y_cell)  # southern neighbour
            row_hi = height - np.ceil(y_cell)   # northern neighbour

            valid = (
                np.isfinite(x_cell) & np.isfinite(y_cell)
                & (col_lo >= 0) & (col_hi < width)
                & (row_hi >= 0) & (row_lo < height)
            )

        c1 = np.where(valid, col_lo, 0).astype(np.intp)
        c2 = np.where(valid, col_hi, 0).astype(np.intp)
        r1 = np.where(valid, row_lo, 0).astype(np.intp)
        r2 = np.where(valid, row_hi, 0).astype(np.intp)

        q11 = self._values[r1, c1]
        q21 = self._values[r1, c2]
        q12 = self._values[r2, c1]
        q22 = self._values[r2, c2]

        # Real corner coordinates
        x1 = min_x + c1 * part_x
        x2 = min_x + c2 * part_x
        y1 = max_y - r1 * part_y
        y2 = max_y - r2 * part_y

        dx = x2 - x1
        dy = y2 - y1
        tx = np.divide(lon - x1, dx, out=np.zeros_like(dx), where=dx != 0)
        ty = np.divide(lat - y1, dy, out=np.zeros_like(dy), where=dy != 0)

        # Exact hits on a grid line read the single sample on that axis
        low = np.where(dx == 0, q11, q11 + (q21 - q11) * tx)
        high = np.where(dx == 0, q12, q12 + (q22 - q12) * tx)
        out = np.where(dy == 0, low, low + (high - low) * ty)

        return np.where(valid, out, np.nan)

    def sample(self, lon: float, lat: float) -> float:
        """Sample one point; NaN when it falls outside the grid."""
        return float(self.sample_many([lon], [lat])[0])

    def __repr__(self) -> str:
        return f"GridSampler({self.grid.width}x{self.grid.height}, bbox={self.data_bbox})"
