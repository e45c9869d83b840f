"""
Piecewise-linear color scale over ordered (breakpoint, color) stops.

Values below the first breakpoint take the first color, values at or above
the last take the last color, and values in between are blended channel by
channel between the bracketing stops (rounded half up).
"""

import re
from typing import List, Sequence, Tuple

import numpy as np

from ht.engine.errors import InvalidColorFormat, InvalidColorSchema, MissingValueRange
from ht.model.models import Color, ColorStop

RGB = Tuple[int, int, int]

HEX_RE = re.compile(r"^#([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")
RGB_RE = re.compile(r"^rgb\(\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d{1,3})\s*\)$")

# Air temperature palette in degrees Celsius; use with schema_units="value"
TEMPERATURE_SCHEMA: List[ColorStop] = [
    (-40, "#E3E3E3"),
    (-30, "#F3A5F3"),
    (-20, "#8E108E"),
    (-15, "#291E6A"),
    (-10, "#5650AB"),
    (-5, "#4178BE"),
    (0, "#4FB296"),
    (5, "#5BC94C"),
    (10, "#B7DA40"),
    (15, "#E1CE39"),
    (20, "#E09F41"),
    (25, "#DB6C54"),
    (30, "#B73466"),
    (40, "#6B1527"),
    (50, "#2B0001"),
]


def parse_color(color: Color) -> RGB:
    """
    Normalize a schema color to an (r, g, b) triple.

    Accepts "#rgb", "#rrggbb", "rgb(r, g, b)" or a sequence of three ints.
    rgb() channels are taken modulo 255.
    """
    if isinstance(color, str):
        color = color.strip()
        if (m := HEX_RE.match(color)):
            digits = m.group(1)
            if len(digits) == 3:
                digits = "".join(c * 2 for c in digits)
            return tuple(int(digits[i:i + 2], 16) for i in (0, 2, 4))
        if (m := RGB_RE.match(color)):
            return tuple(int(g) % 255 for g in m.groups())
        raise InvalidColorFormat(
            f"invalid schema color {color!r}, use #ffffff, #fff or rgb(255, 255, 255)"
        )

    if isinstance(color, Sequence) and len(color) == 3:
        try:
            channels = tuple(int(c) for c in color)
        except (TypeError, ValueError) as e:
            raise InvalidColorFormat(f"invalid schema color {color!r}") from e
        if all(0 <= c <= 255 for c in channels):
            return channels
    raise InvalidColorFormat(f"invalid schema color {color!r}")


def round_half_up(values, digits: int = 0):
    """Round to `digits` decimals, halves towards +inf (2.5 -> 3, -2.5 -> -2)."""
    scale = 10.0 ** digits
    return np.floor(np.asarray(values, dtype=np.float64) * scale + 0.5) / scale


class ColorScale:
    """Map scalar values to RGB through ordered breakpoints."""

    def __init__(self, schema: Sequence[ColorStop]):
        if not schema:
            raise InvalidColorSchema("color schema needs at least one breakpoint")

        breakpoints = np.array([float(value) for value, _ in schema], dtype=np.float64)
        if np.any(np.diff(breakpoints) <= 0):
            raise InvalidColorSchema(
                f"color schema breakpoints must be strictly increasing, got {breakpoints.tolist()}"
            )

        self.breakpoints = breakpoints
        self.colors = np.array([parse_color(color) for _, color in schema], dtype=np.float64)

    def __len__(self) -> int:
        return len(self.breakpoints)

    @property
    def stops(self) -> List[Tuple[float, RGB]]:
        return [
            (float(b), tuple(int(c) for c in color))
            for b, color in zip(self.breakpoints, self.colors)
        ]

    def colors_for(self, values) -> np.ndarray:
        """
        Vectorized color lookup.

        Args:
            values: Scalar or array of values

        Returns:
            uint8 array of shape values.shape + (3,)
        """
        values = np.asarray(values, dtype=np.float64)
        n = len(self.breakpoints)

        # idx = number of breakpoints <= value
        idx = np.searchsorted(self.breakpoints, values, side="right")
        low = np.clip(idx - 1, 0, n - 1)
        high = np.clip(idx, 0, n - 1)

        b_low = self.breakpoints[low]
        b_high = self.breakpoints[high]
        span = b_high - b_low
        t = np.divide(values - b_low, span, out=np.zeros_like(values), where=span != 0)
        t = t[..., np.newaxis]

        c_low = self.colors[low]
        c_high = self.colors[high]
        rgb = round_half_up(c_low + (c_high - c_low) * t)

        # Clamp below the first and at/above the last breakpoint
        rgb = np.where((idx == 0)[..., np.newaxis], self.colors[0], rgb)
        rgb = np.where((idx >= n)[..., np.newaxis], self.colors[-1], rgb)
        return np.clip(rgb, 0, 255).astype(np.uint8)

    def color_for(self, value: float) -> RGB:
        r, g, b = self.colors_for(value)
        return int(r), int(g), int(b)

    @classmethod
    def from_value_schema(cls, schema: Sequence[ColorStop], value_range) -> "ColorScale":
        """
        Build a scale over raw 0..255 samples from breakpoints given in real-world units.

        Each breakpoint v becomes (v - min) * 255 / (max - min).
        """
        if value_range is None:
            raise MissingValueRange("a value schema needs value_range to map breakpoints to raw samples")
        vmin, vmax = value_range
        return cls([((value - vmin) * 255 / (vmax - vmin), color) for value, color in schema])

    @classmethod
    def from_colormap(cls, name: str, n_stops: int = 16) -> "ColorScale":
        """Sample a named matplotlib colormap into evenly spaced stops over 0..255."""
        import matplotlib.pyplot as plt

        if n_stops < 2:
            raise InvalidColorSchema("a colormap schema needs at least two stops")
        cmap = plt.get_cmap(name)
        positions = np.linspace(0.0, 1.0, n_stops)
        rgba = (cmap(positions) * 255).round().astype(int)
        return cls([(float(p * 255), tuple(int(c) for c in rgba[i, :3])) for i, p in enumerate(positions)])

    def __repr__(self) -> str:
        return f"ColorScale(stops={len(self)})"
