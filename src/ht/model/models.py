from pathlib import Path
from typing import List, Literal, Optional, Tuple, Union

import numpy as np
import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

Bbox = Tuple[float, float, float, float]
Color = Union[str, Tuple[int, int, int], List[int]]
ColorStop = Tuple[float, Color]

# Raw 0..255 grayscale ramp
DEFAULT_SCHEMA: List[ColorStop] = [(0, "#000000"), (255, "#ffffff")]


def bbox_wraps(bbox: Bbox) -> bool:
    """True when the bbox crosses the antimeridian (maxX < minX)."""
    return bbox[2] < bbox[0]


def bbox_span_x(bbox: Bbox) -> float:
    """Horizontal span of a bbox, measured eastwards through 180 when it wraps."""
    if bbox_wraps(bbox):
        return 180 - bbox[0] + (180 + bbox[2])
    return abs(bbox[2] - bbox[0])


def bbox_span_y(bbox: Bbox) -> float:
    return abs(bbox[3] - bbox[1])


def _check_bbox(bbox: Optional[Bbox]) -> Optional[Bbox]:
    if bbox is None:
        return None
    if bbox[1] > bbox[3]:
        raise ValueError(f"bbox {bbox} has minY > maxY")
    return tuple(float(v) for v in bbox)


class Grid(BaseModel):
    """
    Scalar samples over a rectangular extent, stored row-major.

    Row 0 is the northern edge of the data bbox. The samples are copied into
    a read-only array; a grid is replaced, never edited.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    samples: np.ndarray
    width: int = Field(..., ge=1)
    height: int = Field(..., ge=1)

    @field_validator("samples", mode="before")
    @classmethod
    def _as_readonly_array(cls, value):
        arr = np.array(value).reshape(-1)
        if not np.issubdtype(arr.dtype, np.number):
            raise ValueError(f"grid samples must be numeric, got {arr.dtype}")
        arr.flags.writeable = False
        return arr

    @model_validator(mode="after")
    def _check_size(self):
        if self.samples.size != self.width * self.height:
            raise ValueError(
                f"grid has {self.samples.size} samples, expected {self.width} x {self.height}"
            )
        return self

    @classmethod
    def from_array(cls, values: np.ndarray) -> "Grid":
        """Build a grid from a (height, width) array."""
        values = np.asarray(values)
        if values.ndim != 2:
            raise ValueError(f"expected a 2-D array, got shape {values.shape}")
        height, width = values.shape
        return cls(samples=values, width=width, height=height)

    @property
    def values(self) -> np.ndarray:
        """(height, width) view of the samples."""
        return self.samples.reshape(self.height, self.width)


class LayerConfig(BaseModel):
    """Everything a host configures on a heatmap layer, apart from the grid itself."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    data_bbox: Bbox = (-180.0, -90.0, 180.0, 90.0)
    render_bbox: Optional[Bbox] = None
    projection: str = "EPSG:3857"
    data_projection: str = "EPSG:4326"
    color_schema: List[ColorStop] = Field(default_factory=lambda: list(DEFAULT_SCHEMA))
    schema_units: Literal["raw", "value"] = "raw"
    mode: Literal["heatmap", "matrix"] = "heatmap"
    compression: Optional[int] = Field(default=None, ge=1)
    value_range: Optional[Tuple[float, float]] = None
    value_round_digits: int = Field(default=0, ge=0)
    font_family: str = "DejaVuSans.ttf"
    font_size: int = Field(default=19, ge=1)
    font_color: str = "#fff"
    tile_size: int = Field(default=256, ge=1)

    @field_validator("data_bbox", "render_bbox")
    @classmethod
    def _valid_bbox(cls, value):
        return _check_bbox(value)

    @field_validator("value_range")
    @classmethod
    def _valid_range(cls, value):
        if value is not None and value[0] == value[1]:
            raise ValueError("value_range bounds must differ")
        return value

    @model_validator(mode="before")
    @classmethod
    def _default_render_bbox(cls, data):
        if isinstance(data, dict) and data.get("render_bbox") is None:
            data = {**data, "render_bbox": data.get("data_bbox", cls.model_fields["data_bbox"].default)}
        return data

    def compression_for(self, mode: Optional[str] = None) -> int:
        """Explicit compression wins; otherwise 64 px blocks for labels, 4 px for colors."""
        if self.compression:
            return self.compression
        return 64 if (mode or self.mode) == "matrix" else 4

    @classmethod
    def from_dict(cls, data: dict) -> "LayerConfig":
        return cls.model_validate(data or {})

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "LayerConfig":
        """Load a layer config from a YAML file, either flat or under a `layer:` key."""
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
        if "layer" in data:
            data = data["layer"]
        return cls.from_dict(data)
