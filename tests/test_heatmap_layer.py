"""Tests for HeatmapLayer state handling and value lookups."""

from unittest.mock import MagicMock

import numpy as np
import pytest

from ht.engine.errors import InvalidColorFormat, MissingValueRange, UninitializedState
from ht.layer.heatmap_layer import HeatmapLayer
from ht.model.models import Grid, LayerConfig
from ht.model.tile import TileAddress, web_mercator_tile_grid


@pytest.fixture
def layer(lonlat_config, stripe_grid, lonlat_tile_grid) -> HeatmapLayer:
    config = lonlat_config.model_copy(update={"value_range": (-60.0, 50.0), "value_round_digits": 2})
    return HeatmapLayer(config, grid=stripe_grid, tile_grid=lonlat_tile_grid, name="temperature")


def layer_tile(layer: HeatmapLayer) -> TileAddress:
    return TileAddress(layer=layer.name, z=0, x=0, y=0)


class TestValueLookup:
    """Test get_value_from_lonlat() and get_value_from_coord()."""

    def test_round_trip(self, layer: HeatmapLayer) -> None:
        assert layer.get_value_from_lonlat(-60, 30) == -4.78

    def test_no_data_is_none(self, layer: HeatmapLayer) -> None:
        assert layer.get_value_from_lonlat(150, 30) is None
        assert layer.format_value(None) == ""

    def test_format_value(self, layer: HeatmapLayer) -> None:
        assert layer.format_value(layer.get_value_from_lonlat(-180, 90)) == "-60.00"

    def test_identity_coord_lookup(self, layer: HeatmapLayer) -> None:
        assert layer.get_value_from_coord(-60, 30) == layer.get_value_from_lonlat(-60, 30)

    def test_mercator_coord_lookup(self, stripe_grid) -> None:
        layer = HeatmapLayer(LayerConfig(value_range=(0, 255), value_round_digits=1), grid=stripe_grid)
        # (0, 0) in EPSG:3857 is lon 0, lat 0 which interpolates between 128 and 255
        assert layer.get_value_from_coord(0.0, 0.0) == pytest.approx(191.5)

    def test_half_values_round_up(self, lonlat_config) -> None:
        config = lonlat_config.model_copy(update={"value_range": (0.0, 255.0)})
        layer = HeatmapLayer(config, grid=Grid(samples=np.full(8, 2.5), width=4, height=2))

        assert layer.get_value_from_lonlat(-90, 45) == 3.0

    def test_needs_value_range(self, lonlat_config, stripe_grid) -> None:
        layer = HeatmapLayer(lonlat_config, grid=stripe_grid)
        with pytest.raises(MissingValueRange):
            layer.get_value_from_lonlat(-60, 30)

    def test_needs_grid(self, lonlat_config) -> None:
        layer = HeatmapLayer(lonlat_config.model_copy(update={"value_range": (0.0, 1.0)}))
        with pytest.raises(UninitializedState):
            layer.get_value_from_lonlat(0, 0)


class TestStateChanges:
    """Test set_data(), update() and the invalidation hook."""

    def test_update_fires_refresh(self, layer: HeatmapLayer) -> None:
        callback = MagicMock()
        layer.subscribe(callback)

        layer.update(color_schema=[(0, "#ff0000"), (255, "#0000ff")])

        callback.assert_called_once_with()
        assert layer.state.color_scale.color_for(0) == (255, 0, 0)

    def test_unsubscribe(self, layer: HeatmapLayer) -> None:
        callback = MagicMock()
        layer.subscribe(callback)
        layer.unsubscribe(callback)

        layer.update(value_round_digits=1)

        callback.assert_not_called()

    def test_update_data_bbox_rejected(self, layer: HeatmapLayer) -> None:
        with pytest.raises(ValueError):
            layer.update(data_bbox=(0, 0, 10, 10))

    def test_empty_update_is_noop(self, layer: HeatmapLayer) -> None:
        callback = MagicMock()
        layer.subscribe(callback)
        state = layer.state

        layer.update()

        assert layer.state is state
        callback.assert_not_called()

    def test_invalid_update_keeps_old_state(self, layer: HeatmapLayer) -> None:
        callback = MagicMock()
        layer.subscribe(callback)
        state = layer.state

        with pytest.raises(InvalidColorFormat):
            layer.update(color_schema=[(0, "red")])

        assert layer.state is state
        callback.assert_not_called()

    def test_set_data_replaces_grid_and_bbox(self, layer: HeatmapLayer) -> None:
        callback = MagicMock()
        layer.subscribe(callback)
        grid = Grid(samples=np.full(4, 255), width=2, height=2)

        layer.set_data(grid, data_bbox=(0.0, 0.0, 10.0, 10.0))

        callback.assert_called_once_with()
        assert layer.grid is grid
        assert layer.config.data_bbox == (0.0, 0.0, 10.0, 10.0)
        assert layer.config.render_bbox == (0.0, 0.0, 10.0, 10.0)
        assert layer.get_value_from_lonlat(5, 10) == 50.0

    def test_set_data_with_render_bbox(self, layer: HeatmapLayer, stripe_grid) -> None:
        layer.set_data(stripe_grid, render_bbox=(-10.0, -10.0, 10.0, 10.0))

        assert layer.config.data_bbox == (-180.0, -90.0, 180.0, 90.0)
        assert layer.config.render_bbox == (-10.0, -10.0, 10.0, 10.0)

    def test_snapshot_survives_update(self, layer: HeatmapLayer) -> None:
        rasterizer = layer.rasterizer()
        before = rasterizer.rasterize_bytes(layer_tile(layer))

        layer.update(color_schema=[(0, "#ff0000"), (255, "#0000ff")])

        assert rasterizer.rasterize_bytes(layer_tile(layer)) == before
        assert layer.rasterizer().rasterize_bytes(layer_tile(layer)) != before

    def test_load_image(self, layer: HeatmapLayer, png_bytes) -> None:
        layer.load_image(png_bytes(np.array([[0, 255], [255, 0]], dtype=np.uint8)), data_bbox=(0, 0, 20, 20))

        assert layer.grid.width == 2
        assert layer.grid.values.tolist() == [[0, 255], [255, 0]]
        assert layer.get_value_from_lonlat(0, 20) == -60.0

    def test_load_image_keeps_render_bbox(self, layer: HeatmapLayer, png_bytes) -> None:
        layer.load_image(
            png_bytes(np.zeros((2, 2), dtype=np.uint8)),
            data_bbox=(0, 0, 20, 20),
            render_bbox=(5.0, 5.0, 10.0, 10.0),
        )

        assert layer.config.data_bbox == (0.0, 0.0, 20.0, 20.0)
        assert layer.config.render_bbox == (5.0, 5.0, 10.0, 10.0)


class TestRasterize:

    def test_rasterize_uses_layer_tile_grid(self, layer: HeatmapLayer) -> None:
        data = layer.rasterize(0, 1, 0)

        assert data.shape == (256, 256, 4)
        assert data[:, :, 3].any()

    def test_rasterize_matrix(self, layer: HeatmapLayer) -> None:
        renderer = MagicMock()
        layer.text_renderer = renderer

        layer.rasterize(0, 0, 0, mode="matrix")

        assert renderer.draw.called

    def test_default_tile_grid_follows_tile_size(self, uniform_grid) -> None:
        """A 512 px layer still covers the whole Web Mercator world at zoom 0."""
        layer = HeatmapLayer(LayerConfig(tile_size=512), grid=uniform_grid)

        data = layer.rasterize(0, 0, 0)

        assert layer.tile_grid.tile_size == 512
        assert layer.tile_grid.tile_extent(0, 0, 0) == pytest.approx(
            web_mercator_tile_grid().tile_extent(0, 0, 0)
        )
        assert data.shape == (512, 512, 4)
        # north of the equator, west of 90E holds data
        assert data[10, 10, 3] == 255
        assert data[250, 300, 3] == 255
        assert data[300, 10, 3] == 0
        assert data[10, 400, 3] == 0
