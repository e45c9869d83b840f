"""Shared pytest fixtures for heattile tests."""

import io

import numpy as np
import pytest
from PIL import Image

from ht.config.settings import Settings
from ht.model.models import Grid, LayerConfig
from ht.model.tile import geographic_tile_grid

WORLD = (-180.0, -90.0, 180.0, 90.0)


@pytest.fixture(autouse=True)
def reset_settings():
    """Settings is a singleton; give every test a fresh one."""
    Settings.reset()
    yield
    Settings.reset()


@pytest.fixture
def stripe_grid() -> Grid:
    """3 x 3 grid with columns 0, 128, 255."""
    return Grid(samples=[0, 128, 255, 0, 128, 255, 0, 128, 255], width=3, height=3)


@pytest.fixture
def uniform_grid() -> Grid:
    """4 x 2 grid with every sample 100 (cells of 90 x 90 degrees over the world)."""
    return Grid(samples=np.full(8, 100, dtype=np.uint8), width=4, height=2)


@pytest.fixture
def lonlat_config() -> LayerConfig:
    """Geographic tiles over geographic data, so no reprojection is involved."""
    return LayerConfig(
        data_bbox=WORLD,
        projection="EPSG:4326",
        data_projection="EPSG:4326",
        color_schema=[(0, "#000000"), (200, "#ffffff")],
    )


@pytest.fixture
def lonlat_tile_grid():
    return geographic_tile_grid(max_zoom=4)


@pytest.fixture
def png_bytes():
    """Encode a (h, w) uint8 array into the red channel of an RGBA PNG."""
    def _encode(values: np.ndarray) -> bytes:
        h, w = values.shape
        rgba = np.zeros((h, w, 4), dtype=np.uint8)
        rgba[:, :, 0] = values
        rgba[:, :, 3] = 255
        buf = io.BytesIO()
        Image.fromarray(rgba).save(buf, "png")
        return buf.getvalue()
    return _encode
