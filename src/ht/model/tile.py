from typing import List, Tuple

from pydantic import BaseModel, Field

from ht.engine.errors import MissingTileGeometry

# Half the Web Mercator world width in meters
WEB_MERCATOR_HALF = 20037508.342789244


class TileAddress(BaseModel):
    """
    Canonical tile address -> blob name.

    Layout:
      {layer}/{z}/{x}/{y}.png

    Example:
      temperature/3/4/2.png
    """
    layer: str = Field(default="heatmap")
    z: int = Field(..., ge=0)
    x: int
    y: int
    ext: str = Field(default="png")

    def blob_name(self) -> str:
        """Generate blob path: {layer}/{z}/{x}/{y}.{ext}"""
        return f"{self.layer}/{self.z}/{self.x}/{self.y}.{self.ext}"


class TileGrid(BaseModel):
    """
    Host tile grid: one origin and one resolution (CRS units per pixel) per zoom.

    Tile (0, 0) sits at the origin and y grows southwards, as in XYZ grids.
    The resolutions are only meaningful for tiles of tile_size pixels.
    """
    origin: Tuple[float, float]
    resolutions: List[float]
    tile_size: int = Field(default=256, ge=1)

    def _check_zoom(self, z: int) -> None:
        if not 0 <= z < len(self.resolutions):
            raise MissingTileGeometry(
                f"zoom {z} outside tile grid (0..{len(self.resolutions) - 1})"
            )

    def origin_for(self, z: int) -> Tuple[float, float]:
        self._check_zoom(z)
        return self.origin

    def resolution_for(self, z: int) -> float:
        self._check_zoom(z)
        return self.resolutions[z]

    def tile_extent(self, z: int, x: int, y: int) -> Tuple[float, float, float, float]:
        """
        Extent (minX, minY, maxX, maxY) of a tile in the grid CRS.

        Args:
            z: Zoom level
            x: Tile column
            y: Tile row, counted downwards from the origin
        """
        ox, oy = self.origin_for(z)
        span = self.tile_size * self.resolution_for(z)
        return (
            ox + span * x,
            oy + span * (-y - 1),
            ox + span * (x + 1),
            oy + span * -y,
        )

    def tile_range(self, z: int) -> Tuple[int, int]:
        """Number of (columns, rows) needed to cover the grid's world extent at zoom z."""
        span = self.tile_size * self.resolution_for(z)
        ox, oy = self.origin
        cols = int(round(abs(2 * ox) / span))
        rows = int(round(abs(2 * oy) / span))
        return max(cols, 1), max(rows, 1)


def web_mercator_tile_grid(max_zoom: int = 22, size: int = 256) -> TileGrid:
    """Standard XYZ grid in EPSG:3857 (one tile at zoom 0)."""
    base = 2 * WEB_MERCATOR_HALF / size
    return TileGrid(
        origin=(-WEB_MERCATOR_HALF, WEB_MERCATOR_HALF),
        resolutions=[base / 2 ** z for z in range(max_zoom + 1)],
        tile_size=size,
    )


def geographic_tile_grid(max_zoom: int = 21, size: int = 256) -> TileGrid:
    """EPSG:4326 grid with two tiles side by side at zoom 0."""
    base = 180.0 / size
    return TileGrid(
        origin=(-180.0, 90.0),
        resolutions=[base / 2 ** z for z in range(max_zoom + 1)],
        tile_size=size,
    )

