"""
RGBA raster buffer shared by every segmentation strategy.

Pixels live in a `(height, width, 4)` uint8 array. Linear indices follow
row-major order: `index = y * width + x`.
"""

from __future__ import annotations

from io import BytesIO
import logging
from typing import Tuple

import numpy as np
from PIL import Image
import requests

from .errors import DecodeFailure, EncodeFailure

logger = logging.getLogger(__name__)

Pixel = Tuple[int, int, int, int]


class RasterBuffer:
    def __init__(self, pixels: np.ndarray):
        if pixels.ndim != 3 or pixels.shape[2] != 4:
            raise ValueError(f"Expected an (H, W, 4) array, got shape {pixels.shape}")
        self.pixels = np.ascontiguousarray(pixels, dtype=np.uint8)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    @property
    def alpha(self) -> np.ndarray:
        return self.pixels[..., 3]

    @classmethod
    def blank(cls, width: int, height: int, rgba: Pixel = (0, 0, 0, 255)) -> "RasterBuffer":
        pixels = np.empty((height, width, 4), dtype=np.uint8)
        pixels[...] = np.asarray(rgba, dtype=np.uint8)
        return cls(pixels)

    @classmethod
    def from_image(cls, image: Image.Image) -> "RasterBuffer":
        return cls(np.array(image.convert("RGBA"), dtype=np.uint8))

    @classmethod
    def from_bytes(cls, image_bytes: bytes) -> "RasterBuffer":
        """Decode JPEG/PNG/WebP (anything Pillow reads) into an RGBA buffer."""
        try:
            image = Image.open(BytesIO(image_bytes))
            image.load()
        except Exception as exc:  # noqa: BLE001
            raise DecodeFailure("Invalid image data") from exc
        return cls.from_image(image)

    @classmethod
    def from_url(cls, url: str, timeout_seconds: int = 30) -> "RasterBuffer":
        try:
            resp = requests.get(url, timeout=(5, timeout_seconds))
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise DecodeFailure(f"Could not download image from {url}") from exc
        return cls.from_bytes(resp.content)

    def _coords(self, index: int) -> Tuple[int, int]:
        if not 0 <= index < self.width * self.height:
            raise IndexError(f"Pixel index {index} outside {self.width}x{self.height} buffer")
        return divmod(index, self.width)

    def get_pixel(self, index: int) -> Pixel:
        y, x = self._coords(index)
        r, g, b, a = self.pixels[y, x]
        return int(r), int(g), int(b), int(a)

    def set_pixel(self, index: int, rgba: Pixel) -> None:
        y, x = self._coords(index)
        self.pixels[y, x] = np.asarray(rgba, dtype=np.uint8)

    def copy(self) -> "RasterBuffer":
        return RasterBuffer(self.pixels.copy())

    def to_image(self) -> Image.Image:
        return Image.fromarray(self.pixels)

    def to_png_bytes(self) -> bytes:
        """Encode losslessly, keeping the alpha channel."""
        try:
            buf = BytesIO()
            self.to_image().save(buf, format="PNG")
        except Exception as exc:  # noqa: BLE001
            logger.exception("PNG encode failed for %dx%d buffer", self.width, self.height)
            raise EncodeFailure("Failed to encode result image") from exc
        return buf.getvalue()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RasterBuffer):
            return NotImplemented
        return self.pixels.shape == other.pixels.shape and bool(np.array_equal(self.pixels, other.pixels))

    def __repr__(self) -> str:
        return f"RasterBuffer({self.width}x{self.height})"
