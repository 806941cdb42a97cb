"""Segmentation strategies that turn background pixels transparent.

Both strategies are pure: they read a RasterBuffer and return a new buffer of
the same size where only the alpha channel may differ.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
import logging
from typing import Optional

import cv2
import numpy as np

from . import config
from .raster import RasterBuffer

logger = logging.getLogger(__name__)

LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float64)


class Algorithm(str, Enum):
    CORNER = "corner"
    EDGE = "edge"


class Segmenter(ABC):
    algorithm: Algorithm

    @abstractmethod
    def segment(self, buffer: RasterBuffer) -> RasterBuffer:
        """Return a new buffer with background pixels made transparent."""


def _corner_mask(width: int, height: int, margin: float) -> np.ndarray:
    """True for pixels within `margin` of any corner, measured per axis from that corner."""
    xs = np.arange(width)
    ys = np.arange(height)
    near_left = xs < margin
    near_right = (width - 1 - xs) < margin
    near_top = ys < margin
    near_bottom = (height - 1 - ys) < margin
    near_x = near_left | near_right
    near_y = near_top | near_bottom
    # Corners are the intersection of an x band and a y band.
    return near_y[:, None] & near_x[None, :]


class CornerBrightnessSegmenter(Segmenter):
    """Fast path: bright pixels sitting in one of the four corners are background."""

    algorithm = Algorithm.CORNER

    def __init__(self, brightness_threshold: float = 200.0, margin_ratio: float = 0.1):
        self.brightness_threshold = brightness_threshold
        self.margin_ratio = margin_ratio

    def segment(self, buffer: RasterBuffer) -> RasterBuffer:
        pixels = buffer.pixels
        brightness = pixels[..., :3].astype(np.float64).mean(axis=2)
        bright = brightness > self.brightness_threshold

        margin = min(buffer.width, buffer.height) * self.margin_ratio
        background = bright & _corner_mask(buffer.width, buffer.height, margin)

        out = pixels.copy()
        out[..., 3] = np.where(background, 0, pixels[..., 3])
        logger.debug(
            "corner segment: %dx%d margin=%.2f background=%d",
            buffer.width,
            buffer.height,
            margin,
            int(background.sum()),
        )
        return RasterBuffer(out)


def luminance(buffer: RasterBuffer) -> np.ndarray:
    return buffer.pixels[..., :3].astype(np.float64) @ LUMA_WEIGHTS


def detect_edges(lum: np.ndarray, threshold: float = 30.0) -> np.ndarray:
    """
    Sobel gradient magnitude thresholded into a boolean edge map.

    Only interior pixels are evaluated; the 1-pixel frame is never an edge.
    """
    height, width = lum.shape
    edges = np.zeros((height, width), dtype=bool)
    if height < 3 or width < 3:
        return edges

    gx = cv2.Sobel(lum, cv2.CV_64F, 1, 0, ksize=3)
    gy = cv2.Sobel(lum, cv2.CV_64F, 0, 1, ksize=3)
    magnitude = np.sqrt(gx[1:-1, 1:-1] ** 2 + gy[1:-1, 1:-1] ** 2)
    edges[1:-1, 1:-1] = magnitude > threshold
    return edges


def create_mask(edges: np.ndarray) -> np.ndarray:
    """Keep-mask: opaque (255) at edges, transparent (0) everywhere else."""
    return np.where(edges, 255, 0).astype(np.uint8)


def apply_mask(buffer: RasterBuffer, mask: np.ndarray) -> RasterBuffer:
    out = buffer.pixels.copy()
    out[..., 3] = np.where(mask > 128, buffer.pixels[..., 3], 0)
    return RasterBuffer(out)


class EdgeMaskSegmenter(Segmenter):
    """
    Higher-fidelity path: only Sobel edge pixels stay opaque.

    Interior foreground that is not itself an edge is cleared as well; the
    mask is not flood-filled.
    """

    algorithm = Algorithm.EDGE

    def __init__(self, magnitude_threshold: float = 30.0):
        self.magnitude_threshold = magnitude_threshold

    def segment(self, buffer: RasterBuffer) -> RasterBuffer:
        edges = detect_edges(luminance(buffer), self.magnitude_threshold)
        logger.debug(
            "edge segment: %dx%d edges=%d threshold=%.1f",
            buffer.width,
            buffer.height,
            int(edges.sum()),
            self.magnitude_threshold,
        )
        return apply_mask(buffer, create_mask(edges))


def get_segmenter(algorithm: Algorithm, settings: Optional[config.Settings] = None) -> Segmenter:
    """Build the segmenter for `algorithm` using the configured thresholds."""
    settings = settings or config.get_settings()
    algorithm = Algorithm(algorithm)
    if algorithm is Algorithm.EDGE:
        return EdgeMaskSegmenter(magnitude_threshold=settings.edge_magnitude_threshold)
    return CornerBrightnessSegmenter(
        brightness_threshold=settings.brightness_threshold,
        margin_ratio=settings.corner_margin_ratio,
    )
