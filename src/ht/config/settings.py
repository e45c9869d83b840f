"""
Application settings.

Settings are merged from, in order of increasing priority:

1. Built-in defaults (DEFAULTS below)
2. A YAML file: the path given to Settings(), else $HT_SETTINGS, else
   ./config/settings.yaml when it exists
3. Environment variables HT_<SECTION>__<KEY>, e.g. HT_TILER__MAX_WORKERS=8

Values are read with dotted keys: settings("tiler.max_workers", default=4).
"""

import copy
import os
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from loguru import logger

from ht.model.models import LayerConfig
from ht.utils.utils import singleton

ENV_PREFIX = "HT_"
DEFAULT_FILE = Path("config") / "settings.yaml"

DEFAULTS = {
    "tiler": {
        "zoom_levels": "0-2",
        "max_workers": 4,
        "skip_empty": True,
        "max_zoom": 22,
        "tile_grid": "web_mercator",
    },
    "output": {
        "dir": "tiles",
        "layer": "heatmap",
    },
    "layer": {},
}


def _merge(base: dict, override: dict) -> dict:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


def _env_overrides(environ) -> dict:
    overrides: dict = {}
    for name, raw in environ.items():
        if not name.startswith(ENV_PREFIX) or "__" not in name:
            continue
        keys = name[len(ENV_PREFIX):].lower().split("__")
        node = overrides
        for key in keys[:-1]:
            node = node.setdefault(key, {})
        # YAML parsing turns "8" into 8 and "false" into False
        node[keys[-1]] = yaml.safe_load(raw)
    return overrides


@singleton
class Settings:
    def __init__(self, path: Optional[Union[str, Path]] = None, environ=None):
        environ = os.environ if environ is None else environ
        self._data = copy.deepcopy(DEFAULTS)

        if path is None and (env_path := environ.get("HT_SETTINGS")):
            path = env_path
        if path is None and DEFAULT_FILE.exists():
            path = DEFAULT_FILE

        self.path = Path(path) if path is not None else None
        if self.path is not None:
            if not self.path.exists():
                logger.error(f"Settings file '{self.path}' does not exist.")
                raise FileNotFoundError(f"Settings file '{self.path}' does not exist.")
            with open(self.path, "r") as f:
                _merge(self._data, yaml.safe_load(f) or {})
            logger.debug(f"Loaded settings from {self.path}")

        _merge(self._data, _env_overrides(environ))

    def __call__(self, key: str, default: Any = None) -> Any:
        node: Any = self._data
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def get(self, key: str, default: Any = None) -> Any:
        return self(key, default=default)

    def as_dict(self) -> dict:
        return copy.deepcopy(self._data)

    def layer_config(self, **overrides) -> LayerConfig:
        """LayerConfig from the `layer:` section, with explicit overrides applied on top."""
        data = dict(self("layer", default={}) or {})
        data.update({k: v for k, v in overrides.items() if v is not None})
        return LayerConfig.from_dict(data)
