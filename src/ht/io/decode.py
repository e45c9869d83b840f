from io import BytesIO
from pathlib import Path
from typing import BinaryIO, Union

import numpy as np
from PIL import Image
from loguru import logger

from ht.model.models import Grid

ImageSource = Union[str, Path, bytes, BinaryIO]


def decode_image(source: ImageSource, channel: int = 0) -> Grid:
    """
    Decode a raster image into a Grid of uint8 samples.

    Args:
        source: Path, raw encoded bytes or a binary file object
        channel: RGBA channel to extract (0 = red)

    Returns:
        Grid with one sample per pixel, row 0 = top of the image
    """
    if not 0 <= channel <= 3:
        raise ValueError(f"channel must be in 0..3, got {channel}")
    if isinstance(source, bytes):
        source = BytesIO(source)

    with Image.open(source) as img:
        rgba = np.asarray(img.convert("RGBA"), dtype=np.uint8)

    height, width, _ = rgba.shape
    logger.debug(f"Decoded image {width} x {height}, channel {channel}")
    return Grid(samples=rgba[:, :, channel].reshape(-1), width=width, height=height)
