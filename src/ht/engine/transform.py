"""Coordinate transform from the tile CRS into the grid's data CRS."""

import threading
from typing import Tuple

import numpy as np
from pyproj import CRS, Transformer


def _same_crs(a: str, b: str) -> bool:
    return a.strip().upper() == b.strip().upper()


def wrap_longitude(lon):
    """Map longitudes to [-180, 180)."""
    return (np.asarray(lon, dtype=np.float64) + 180.0) % 360.0 - 180.0


class CoordinateTransform:
    """
    Convert points from the tile projection into the data projection.

    Identity when both CRS match. Otherwise pyproj does the work; Transformer
    objects are not thread safe, so each thread builds its own on first use.
    Geographic outputs get their longitude wrapped to [-180, 180) so tiles of
    repeated world copies land on the data.
    """

    def __init__(self, src_crs: str = "EPSG:3857", dst_crs: str = "EPSG:4326"):
        self.src_crs = src_crs
        self.dst_crs = dst_crs
        self.identity = _same_crs(src_crs, dst_crs)
        self.geographic = False if self.identity else CRS.from_user_input(dst_crs).is_geographic
        self._local = threading.local()

    def _transformer(self) -> Transformer:
        transformer = getattr(self._local, "transformer", None)
        if transformer is None:
            transformer = Transformer.from_crs(self.src_crs, self.dst_crs, always_xy=True)
            self._local.transformer = transformer
        return transformer

    def to_data_crs(self, x, y) -> Tuple:
        """
        Transform x/y (scalars or arrays) from the tile CRS to the data CRS.

        Returns:
            (x, y) in the data CRS; floats for scalar input, arrays otherwise
        """
        if self.identity:
            return x, y

        tx, ty = self._transformer().transform(x, y)
        if self.geographic:
            tx = wrap_longitude(tx)
            if np.ndim(tx) == 0:
                return float(tx), float(ty)
        return tx, ty

    def __repr__(self) -> str:
        return f"CoordinateTransform({self.src_crs} -> {self.dst_crs})"
