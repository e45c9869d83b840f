from functools import lru_cache
from typing import Protocol, Tuple

from PIL import Image, ImageColor, ImageDraw, ImageFont
from loguru import logger


class TextRenderer(Protocol):
    """Draws a label centered on a pixel position of an RGBA image."""

    def draw(self, image: Image.Image, text: str, position: Tuple[float, float]) -> None:
        ...


@lru_cache(maxsize=32)
def _load_font(family: str, size: int):
    try:
        return ImageFont.truetype(family, size)
    except OSError:
        logger.warning(f"Font '{family}' not available, using Pillow default font")
        return ImageFont.load_default(size=size)


class PillowTextRenderer:
    """Text rendering with Pillow's ImageDraw."""

    def __init__(self, font_family: str = "DejaVuSans.ttf", font_size: int = 19, font_color: str = "#fff"):
        self.font_family = font_family
        self.font_size = font_size
        self.fill = ImageColor.getrgb(font_color)
        if len(self.fill) == 3:
            self.fill = (*self.fill, 255)

    @property
    def font(self):
        return _load_font(self.font_family, self.font_size)

    def draw(self, image: Image.Image, text: str, position: Tuple[float, float]) -> None:
        ImageDraw.Draw(image).text(position, text, font=self.font, fill=self.fill, anchor="mm")
