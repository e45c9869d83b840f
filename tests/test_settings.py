"""Tests for Settings and LayerConfig loading."""

from pathlib import Path

import pytest
import yaml

from ht.config.settings import Settings
from ht.model.models import LayerConfig


@pytest.fixture
def settings_file(tmp_path: Path) -> Path:
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.safe_dump({
        "tiler": {"zoom_levels": "0-3", "max_workers": 2},
        "layer": {"mode": "matrix", "value_range": [-60, 50], "compression": 32},
    }))
    return path


class TestSettings:
    """Test Settings merging and lookups."""

    def test_defaults(self, tmp_path: Path, monkeypatch) -> None:
        """Without a file the built-in defaults apply."""
        monkeypatch.chdir(tmp_path)
        settings = Settings(environ={})

        assert settings.path is None
        assert settings("tiler.max_workers") == 4
        assert settings("output.dir") == "tiles"
        assert settings("tiler.missing", default="x") == "x"

    def test_yaml_file(self, settings_file: Path) -> None:
        settings = Settings(settings_file, environ={})

        assert settings("tiler.zoom_levels") == "0-3"
        assert settings.get("tiler.max_workers") == 2
        # untouched defaults survive the merge
        assert settings("tiler.skip_empty") is True

    def test_env_overrides_file(self, settings_file: Path) -> None:
        settings = Settings(settings_file, environ={"HT_TILER__MAX_WORKERS": "8", "HT_TILER__SKIP_EMPTY": "false"})

        assert settings("tiler.max_workers") == 8
        assert settings("tiler.skip_empty") is False

    def test_settings_path_from_env(self, settings_file: Path) -> None:
        settings = Settings(environ={"HT_SETTINGS": str(settings_file)})
        assert settings.path == settings_file

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            Settings(tmp_path / "nope.yaml", environ={})

    def test_singleton(self, settings_file: Path) -> None:
        first = Settings(settings_file, environ={})
        assert Settings() is first

    def test_as_dict_is_a_copy(self, settings_file: Path) -> None:
        settings = Settings(settings_file, environ={})
        data = settings.as_dict()
        data["tiler"]["max_workers"] = 99

        assert settings("tiler.max_workers") == 2

    def test_layer_config(self, settings_file: Path) -> None:
        config = Settings(settings_file, environ={}).layer_config(compression=None, font_size=12)

        assert config.mode == "matrix"
        assert config.value_range == (-60.0, 50.0)
        assert config.compression == 32
        assert config.font_size == 12


class TestLayerConfig:
    """Test LayerConfig validation and defaults."""

    def test_defaults(self) -> None:
        config = LayerConfig()

        assert config.data_bbox == (-180.0, -90.0, 180.0, 90.0)
        assert config.render_bbox == config.data_bbox
        assert config.value_range is None
        assert config.compression_for("heatmap") == 4
        assert config.compression_for("matrix") == 64

    def test_explicit_compression_wins(self) -> None:
        assert LayerConfig(compression=8).compression_for("matrix") == 8

    def test_render_bbox_follows_data_bbox(self) -> None:
        config = LayerConfig(data_bbox=(0, 0, 10, 10))
        assert config.render_bbox == (0.0, 0.0, 10.0, 10.0)

    def test_inverted_latitudes_rejected(self) -> None:
        with pytest.raises(ValueError):
            LayerConfig(data_bbox=(0, 10, 10, 0))

    def test_degenerate_value_range_rejected(self) -> None:
        with pytest.raises(ValueError):
            LayerConfig(value_range=(5, 5))

    def test_unknown_field_rejected(self) -> None:
        with pytest.raises(ValueError):
            LayerConfig.from_dict({"colour_schema": []})

    def test_from_yaml_nested(self, settings_file: Path) -> None:
        config = LayerConfig.from_yaml(settings_file)
        assert config.mode == "matrix"

    def test_from_yaml_flat(self, tmp_path: Path) -> None:
        path = tmp_path / "layer.yaml"
        path.write_text("color_schema:\n  - [0, '#000']\n  - [255, 'rgb(255, 255, 255)']\nschema_units: raw\n")

        config = LayerConfig.from_yaml(path)

        assert len(config.color_schema) == 2
        assert config.color_schema[1][1] == "rgb(255, 255, 255)"
