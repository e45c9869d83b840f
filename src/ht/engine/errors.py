"""
Exceptions raised by the heattile engine.

Configuration problems surface synchronously when a layer is built or
updated. Sampling outside the grid is not an error: it yields NaN and the
pixel block stays transparent.
"""


class HeatTileError(Exception):
    """Base exception class for all heattile errors."""
    pass


class ConfigurationError(HeatTileError):
    """Raised when a layer configuration cannot be used as given."""
    pass


class InvalidColorFormat(ConfigurationError):
    """
    Raised when a schema color is neither a hex string (#rgb, #rrggbb)
    nor an rgb(r, g, b) string nor an RGB triple.
    """
    pass


class InvalidColorSchema(ConfigurationError):
    """Raised for an empty schema or breakpoints that are not strictly increasing."""
    pass


class MissingValueRange(ConfigurationError):
    """
    Raised when raw samples must be rescaled to real-world values but no
    value_range was configured.
    """
    pass


class UninitializedState(HeatTileError):
    """
    Raised when sampling or rasterization is requested before the grid and
    its data bbox are both set, or when the cell size cannot be computed.
    """
    pass


class MissingTileGeometry(HeatTileError):
    """
    Raised when the tile grid cannot resolve origin/resolution for a tile.

    Fatal for that tile only; batch builds log it and continue.
    """
    pass
