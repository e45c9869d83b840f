"""
Tile rasterizer: turns one tile request into an RGBA buffer.

Optimizations: block centers, containment and sampling are computed as
numpy arrays for the whole tile at once; blocks are expanded to pixels with
np.repeat instead of per-pixel writes.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np
from PIL import Image
from loguru import logger

from ht.engine.bbox import BboxTest
from ht.engine.colorscale import ColorScale, round_half_up
from ht.engine.errors import MissingValueRange, UninitializedState
from ht.engine.sampler import GridSampler
from ht.engine.text import PillowTextRenderer, TextRenderer
from ht.engine.transform import CoordinateTransform
from ht.model.models import Grid, LayerConfig
from ht.model.tile import TileAddress, TileGrid


@dataclass(frozen=True)
class RenderState:
    """
    Immutable snapshot of everything a rasterization reads.

    A layer swaps whole RenderState objects, so a tile in flight sees either
    the old grid and schema or the new ones, never a mix.
    """
    config: LayerConfig
    grid: Optional[Grid]
    sampler: Optional[GridSampler]
    color_scale: ColorScale
    bbox_test: BboxTest
    transform: CoordinateTransform

    @classmethod
    def build(cls, config: LayerConfig, grid: Optional[Grid] = None) -> "RenderState":
        if config.schema_units == "value":
            color_scale = ColorScale.from_value_schema(config.color_schema, config.value_range)
        else:
            color_scale = ColorScale(config.color_schema)

        sampler = GridSampler(grid, config.data_bbox) if grid is not None else None

        return cls(
            config=config,
            grid=grid,
            sampler=sampler,
            color_scale=color_scale,
            bbox_test=BboxTest(config.render_bbox),
            transform=CoordinateTransform(config.projection, config.data_projection),
        )

    def require_sampler(self) -> GridSampler:
        if self.sampler is None:
            raise UninitializedState("no grid loaded: set data before sampling or rasterizing")
        return self.sampler

    def to_value(self, raw):
        """Rescale raw 0..255 samples into the configured value range."""
        if self.config.value_range is None:
            raise MissingValueRange("value_range must be configured to rescale raw samples")
        vmin, vmax = self.config.value_range
        return raw * (vmax - vmin) / 255 + vmin

    def round_value(self, value):
        """Round half up to value_round_digits."""
        return round_half_up(value, self.config.value_round_digits)

    def format_value(self, value: float) -> str:
        return f"{value:.{self.config.value_round_digits}f}"


class TileRasterizer:
    """Render tiles of one RenderState in heatmap or matrix mode."""

    def __init__(
        self,
        state: RenderState,
        tile_grid: TileGrid,
        text_renderer: Optional[TextRenderer] = None,
    ):
        self.state = state
        self.tile_grid = tile_grid
        # rasterize() never mutates the rasterizer, builder threads share one
        if text_renderer is None:
            config = state.config
            text_renderer = PillowTextRenderer(
                font_family=config.font_family,
                font_size=config.font_size,
                font_color=config.font_color,
            )
        self.text_renderer = text_renderer

    def _sample_blocks(self, tile: TileAddress, compression: int):
        """
        Sample the grid at the center of every compression x compression block.

        Returns:
            (values, i, j): raw samples (NaN = no data) and the pixel
            column/row of each block origin, all of shape (n_rows, n_cols)
        """
        config = self.state.config
        sampler = self.state.require_sampler()
        size = config.tile_size

        min_x, _, max_x, max_y = self.tile_grid.tile_extent(tile.z, tile.x, tile.y)
        step = (max_x - min_x) / size
        half = compression / 2

        offsets = np.arange(0, size, compression)
        ii, jj = np.meshgrid(offsets, offsets)  # (rows, cols) = (j, i)

        # Row j = 0 is the northern edge of the tile
        px = min_x + step * (ii + half)
        py = max_y - step * (jj + half)

        lon, lat = self.state.transform.to_data_crs(px, py)
        lon = np.asarray(lon, dtype=np.float64)
        lat = np.asarray(lat, dtype=np.float64)

        inside = self.state.bbox_test.mask(lon, lat)
        values = sampler.sample_many(lon, lat)
        values[~inside] = np.nan
        return values, ii, jj

    def _heatmap(self, tile: TileAddress, compression: int) -> np.ndarray:
        size = self.state.config.tile_size
        values, _, _ = self._sample_blocks(tile, compression)

        rounded = round_half_up(values)
        has_data = np.isfinite(rounded)

        blocks = np.zeros(values.shape + (4,), dtype=np.uint8)
        if has_data.any():
            blocks[has_data, :3] = self.state.color_scale.colors_for(rounded[has_data])
            blocks[has_data, 3] = 255

        # Expand blocks to pixels and clip partial blocks at the tile edge
        pixels = np.repeat(np.repeat(blocks, compression, axis=0), compression, axis=1)
        return np.ascontiguousarray(pixels[:size, :size])

    def _matrix(self, tile: TileAddress, compression: int) -> np.ndarray:
        size = self.state.config.tile_size
        values, ii, jj = self._sample_blocks(tile, compression)

        labels = self.state.round_value(self.state.to_value(values))

        image = Image.new("RGBA", (size, size), (0, 0, 0, 0))
        renderer = self.text_renderer
        half = compression / 2
        for value, i, j in zip(labels.ravel(), ii.ravel(), jj.ravel()):
            # 0 is a valid value, only NaN means no data
            if not np.isfinite(value):
                continue
            renderer.draw(image, self.state.format_value(float(value)), (float(i + half), float(j + half)))

        return np.array(image, dtype=np.uint8)

    def rasterize(self, tile: TileAddress, mode: Optional[str] = None) -> np.ndarray:
        """
        Render one tile.

        Args:
            tile: Tile address (z, x, y)
            mode: "heatmap" or "matrix"; defaults to the configured mode

        Returns:
            uint8 array (tile_size, tile_size, 4), row 0 = north
        """
        config = self.state.config
        mode = mode or config.mode
        if mode not in ("heatmap", "matrix"):
            raise ValueError(f"unknown render mode {mode!r}")
        if mode == "matrix" and config.value_range is None:
            raise MissingValueRange("matrix mode needs value_range to label raw samples")
        compression = config.compression_for(mode)

        logger.debug(f"Rasterizing tile {tile.z}/{tile.x}/{tile.y} ({mode}, compression {compression})")
        if mode == "matrix":
            return self._matrix(tile, compression)
        return self._heatmap(tile, compression)

    def rasterize_bytes(self, tile: TileAddress, mode: Optional[str] = None) -> bytes:
        """Flat RGBA buffer of tile_size * tile_size * 4 bytes."""
        return self.rasterize(tile, mode=mode).tobytes()
