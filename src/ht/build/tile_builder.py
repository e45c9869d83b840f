"""Tile builder: renders a HeatmapLayer over whole zoom levels and writes PNG tiles.
Optimizations: one state snapshot per build, rasterize + encode + save in a thread pool.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Iterable, List, Optional, Tuple

import numpy as np
from loguru import logger
from pydantic import BaseModel, Field

from ht.engine.rasterizer import TileRasterizer
from ht.layer.heatmap_layer import HeatmapLayer
from ht.model.tile import TileAddress
from ht.storage.storage import FilesystemStorage


class BuildReport(BaseModel):
    """Outcome of a batch build."""
    written: int = 0
    empty: int = 0
    failed: List[Tuple[int, int, int]] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return self.written + self.empty + len(self.failed)


class BatchTileBuilder:
    """Build every tile of the requested zoom levels for one layer."""

    def __init__(
        self,
        layer: HeatmapLayer,
        storage: FilesystemStorage,
        zoom_levels: Iterable[int],
        mode: Optional[str] = None,
        skip_empty: bool = True,
        max_workers: int = 4,
    ):
        """
        Args:
            layer: Layer to render; its current state is snapshotted when build() starts
            storage: Tile store receiving <layer>/<z>/<x>/<y>.png
            zoom_levels: Zoom levels to render
            mode: Render mode override ("heatmap" or "matrix")
            skip_empty: Do not write tiles without a single opaque pixel
            max_workers: Number of parallel workers
        """
        self.layer = layer
        self.storage = storage
        self.zoom_levels = sorted(set(zoom_levels))
        self.mode = mode
        self.skip_empty = skip_empty
        self.max_workers = max_workers

    def tiles(self) -> List[TileAddress]:
        """All tile addresses of the requested zoom levels."""
        addresses = []
        for z in self.zoom_levels:
            cols, rows = self.layer.tile_grid.tile_range(z)
            addresses.extend(
                TileAddress(layer=self.layer.name, z=z, x=x, y=y)
                for y in range(rows)
                for x in range(cols)
            )
        return addresses

    def _build_one(self, rasterizer: TileRasterizer, tile: TileAddress) -> bool:
        """Render and store one tile; returns False when it was empty and skipped."""
        tile_data = rasterizer.rasterize(tile, mode=self.mode)
        if self.skip_empty and not np.any(tile_data[:, :, 3]):
            return False
        self.storage.store_tile(tile, tile_data)
        return True

    def build(self) -> BuildReport:
        """Build all tiles with parallel workers; failed tiles are logged and reported."""
        # One snapshot for the whole build, later layer updates do not leak in
        rasterizer = self.layer.rasterizer()
        tiles = self.tiles()
        report = BuildReport()

        logger.info(
            f"Building {len(tiles)} tiles for layer '{self.layer.name}' "
            f"(zoom {self.zoom_levels}, workers {self.max_workers})"
        )

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {executor.submit(self._build_one, rasterizer, tile): tile for tile in tiles}

            completed = 0
            for future in as_completed(futures):
                tile = futures[future]
                completed += 1
                if completed % 100 == 0 or completed == len(tiles):
                    logger.debug(f"Progress: {completed}/{len(tiles)} tiles")
                try:
                    if future.result():
                        report.written += 1
                    else:
                        report.empty += 1
                except Exception as e:
                    logger.error(f"Error generating tile {tile.z}/{tile.x}/{tile.y}: {type(e).__name__}: {e}")
                    report.failed.append((tile.z, tile.x, tile.y))

        if report.failed:
            logger.warning(f"{len(report.failed)} tile(s) failed")
        logger.info(f"Batch tile generation complete: {report.written} written, {report.empty} empty")
        return report


def build_tiles_batch(
    layer: HeatmapLayer,
    storage: FilesystemStorage,
    zoom_levels: Iterable[int],
    mode: Optional[str] = None,
    skip_empty: bool = True,
    max_workers: int = 4,
) -> BuildReport:
    """
    Render and store all tiles of `zoom_levels` for a layer.

    Example:
        layer = HeatmapLayer(LayerConfig(value_range=(-60, 50)), name="temperature")
        layer.load_image("temperature.png")
        build_tiles_batch(layer, create_storage(container="tiles"), zoom_levels=range(0, 4))
    """
    builder = BatchTileBuilder(
        layer=layer,
        storage=storage,
        zoom_levels=zoom_levels,
        mode=mode,
        skip_empty=skip_empty,
        max_workers=max_workers,
    )
    return builder.build()
