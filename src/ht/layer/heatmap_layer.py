"""
Heatmap layer: the piece a host map framework talks to.

The layer owns the current RenderState and replaces it atomically on every
configuration or data change, then tells subscribers that previously
rendered tiles are stale. Rendering itself is delegated to TileRasterizer.
"""

import threading
from typing import Callable, List, Optional

import numpy as np
from loguru import logger

from ht.engine.rasterizer import RenderState, TileRasterizer
from ht.engine.text import TextRenderer
from ht.io.decode import ImageSource, decode_image
from ht.model.models import Bbox, Grid, LayerConfig
from ht.model.tile import TileAddress, TileGrid, web_mercator_tile_grid


class HeatmapLayer:
    """
    Scalar grid rendered as heatmap or matrix tiles.

    Args:
        config: Layer configuration
        grid: Optional initial grid, anchored to config.data_bbox
        tile_grid: Host tile grid; Web Mercator XYZ by default
        text_renderer: Label renderer for matrix mode; Pillow by default
        name: Layer name used in tile addresses
    """

    def __init__(
        self,
        config: Optional[LayerConfig] = None,
        grid: Optional[Grid] = None,
        tile_grid: Optional[TileGrid] = None,
        text_renderer: Optional[TextRenderer] = None,
        name: str = "heatmap",
    ):
        self.name = name
        config = config or LayerConfig()
        self.tile_grid = tile_grid or web_mercator_tile_grid(size=config.tile_size)
        self.text_renderer = text_renderer
        self._lock = threading.Lock()
        self._listeners: List[Callable[[], None]] = []
        self._state = RenderState.build(config, grid)

    @property
    def state(self) -> RenderState:
        return self._state

    @property
    def config(self) -> LayerConfig:
        return self._state.config

    @property
    def grid(self) -> Optional[Grid]:
        return self._state.grid

    # Invalidation hook ----------------------------------------------------------------------

    def subscribe(self, callback: Callable[[], None]) -> None:
        """Register a no-argument callback fired whenever rendered tiles go stale."""
        self._listeners.append(callback)

    def unsubscribe(self, callback: Callable[[], None]) -> None:
        self._listeners.remove(callback)

    def refresh(self) -> None:
        for callback in list(self._listeners):
            callback()

    # State changes --------------------------------------------------------------------------

    def _swap(self, config: LayerConfig, grid: Optional[Grid]) -> None:
        # Build outside the lock so configuration errors leave the old state in place
        state = RenderState.build(config, grid)
        with self._lock:
            self._state = state
        self.refresh()

    def set_data(self, grid: Grid, data_bbox: Optional[Bbox] = None, render_bbox: Optional[Bbox] = None) -> None:
        """
        Replace the grid and its data bbox together.

        The render bbox follows the new data bbox unless one is given.
        """
        config = self._state.config
        bbox = data_bbox if data_bbox is not None else config.data_bbox
        new_config = LayerConfig.model_validate(
            {**config.model_dump(), "data_bbox": bbox, "render_bbox": render_bbox}
        )
        logger.info(f"Layer '{self.name}': grid {grid.width} x {grid.height} over {new_config.data_bbox}")
        self._swap(new_config, grid)

    def load_image(
        self,
        source: ImageSource,
        data_bbox: Optional[Bbox] = None,
        render_bbox: Optional[Bbox] = None,
        channel: int = 0,
    ) -> None:
        """Decode an image into a grid and make it the layer data (see set_data for the bboxes)."""
        self.set_data(decode_image(source, channel=channel), data_bbox=data_bbox, render_bbox=render_bbox)

    def update(self, **changes) -> None:
        """
        Change configuration fields (anything on LayerConfig except data_bbox).

        Raises:
            ValueError: data_bbox was passed; it has to come with its grid via set_data()
        """
        if "data_bbox" in changes:
            raise ValueError("data_bbox must be replaced together with the grid, use set_data()")
        if not changes:
            return
        config = self._state.config
        new_config = LayerConfig.model_validate({**config.model_dump(), **changes})
        logger.debug(f"Layer '{self.name}': updated {sorted(changes)}")
        self._swap(new_config, self._state.grid)

    # Rendering and lookups --------------------------------------------------------------------

    def rasterizer(self) -> TileRasterizer:
        """Rasterizer bound to the current state snapshot."""
        return TileRasterizer(self._state, self.tile_grid, text_renderer=self.text_renderer)

    def rasterize(self, z: int, x: int, y: int, mode: Optional[str] = None) -> np.ndarray:
        tile = TileAddress(layer=self.name, z=z, x=x, y=y)
        return self.rasterizer().rasterize(tile, mode=mode)

    @staticmethod
    def _value_at(state: RenderState, lon: float, lat: float) -> Optional[float]:
        raw = state.require_sampler().sample(lon, lat)
        if not np.isfinite(raw):
            return None
        return float(state.round_value(state.to_value(raw)))

    def get_value_from_lonlat(self, lon: float, lat: float) -> Optional[float]:
        """Real-world value at a lon/lat point, rounded to value_round_digits; None for no data."""
        return self._value_at(self._state, lon, lat)

    def get_value_from_coord(self, x: float, y: float) -> Optional[float]:
        """Same as get_value_from_lonlat for a point given in the tile projection."""
        state = self._state
        lon, lat = state.transform.to_data_crs(x, y)
        return self._value_at(state, float(lon), float(lat))

    def format_value(self, value: Optional[float]) -> str:
        if value is None:
            return ""
        return self._state.format_value(value)
