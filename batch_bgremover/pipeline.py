"""
High-level background-removal pipeline.

`remove_background` is the entry point used by the batch controller, which
the HTTP API and the local script both drive. It keeps orchestration simple:
buffer in -> segmentation -> RGBA PNG bytes out, with progress reports.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import cv2
import numpy as np

from . import config
from .errors import BackgroundRemovalError, ProcessingFailure
from .exporter import export
from .progress import ProgressCallback
from .raster import RasterBuffer
from .segmentation import Algorithm, get_segmenter

logger = logging.getLogger(__name__)


def _maybe_dump_debug(buffer: RasterBuffer, debug_dir: Path, tag: str) -> None:
    """Optionally write the alpha mask when DEBUG is enabled."""
    try:
        debug_dir.mkdir(parents=True, exist_ok=True)
        alpha_path = debug_dir / f"{tag}_alpha.png"
        cv2.imwrite(str(alpha_path), np.ascontiguousarray(buffer.alpha))
        logger.debug("pipeline: wrote debug alpha to %s", alpha_path)
    except Exception as exc:  # noqa: BLE001
        logger.warning("pipeline: failed to write debug outputs: %s", exc)


def segment(
    buffer: RasterBuffer,
    algorithm: Algorithm,
    on_progress: Optional[ProgressCallback] = None,
    settings: Optional[config.Settings] = None,
) -> RasterBuffer:
    """
    Run the selected segmenter, reporting 25 before and 75 after.

    Raises:
        ProcessingFailure: when the segmenter cannot produce a buffer.
    """
    settings = settings if settings is not None else config.get_settings()
    segmenter = get_segmenter(algorithm, settings=settings)

    if on_progress:
        on_progress(25)
    try:
        result = segmenter.segment(buffer)
    except BackgroundRemovalError:
        raise
    except Exception as exc:  # noqa: BLE001
        logger.exception("Segmentation failed with %s: %s", segmenter.algorithm.value, exc)
        raise ProcessingFailure("Failed to process image") from exc
    if result.size != buffer.size:
        raise ProcessingFailure("Segmentation changed the image dimensions")
    if on_progress:
        on_progress(75)

    if settings.debug:
        _maybe_dump_debug(result, Path(settings.debug_output_dir), segmenter.algorithm.value)
    return result


def remove_background(
    buffer: RasterBuffer,
    algorithm: Algorithm,
    on_progress: Optional[ProgressCallback] = None,
    settings: Optional[config.Settings] = None,
) -> bytes:
    """
    Segment `buffer` and encode the transparent result as PNG bytes.

    Raises:
        ProcessingFailure / EncodeFailure: when processing fails.
    """
    result = segment(buffer, algorithm, on_progress, settings=settings)
    png_bytes = export(result)
    if on_progress:
        on_progress(100)
    return png_bytes
