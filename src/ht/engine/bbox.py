"""Containment test for render regions, including boxes that cross the antimeridian."""

import numpy as np

from ht.model.models import Bbox, bbox_wraps


class BboxTest:
    """
    Decide whether geographic points lie inside a render bbox.

    A bbox with maxX < minX is the union of [minX, 180] and [-180, maxX].
    Boundaries are inclusive.
    """

    def __init__(self, render_bbox: Bbox):
        self.bbox = tuple(float(v) for v in render_bbox)
        self.wraps = bbox_wraps(self.bbox)

    def mask(self, lon, lat) -> np.ndarray:
        """Vectorized containment for arrays of coordinates."""
        lon = np.asarray(lon, dtype=np.float64)
        lat = np.asarray(lat, dtype=np.float64)
        min_x, min_y, max_x, max_y = self.bbox

        in_lat = (lat >= min_y) & (lat <= max_y)
        if self.wraps:
            in_lon = (lon >= min_x) | ((lon >= -180) & (lon <= max_x))
        else:
            in_lon = (lon >= min_x) & (lon <= max_x)
        return in_lon & in_lat

    def contains(self, lon: float, lat: float) -> bool:
        return bool(self.mask(lon, lat))

    def __repr__(self) -> str:
        return f"BboxTest(bbox={self.bbox}, wraps={self.wraps})"
