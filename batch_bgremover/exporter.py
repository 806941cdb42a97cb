"""Turn completed results into downloads."""

from __future__ import annotations

import logging
from pathlib import Path
import time
from typing import Callable, Iterable, List, Optional, Tuple

from . import config
from .raster import RasterBuffer

logger = logging.getLogger(__name__)

DOWNLOAD_PREFIX = "removed-bg-"

DownloadSink = Callable[[bytes, str], None]


def export(buffer: RasterBuffer) -> bytes:
    """Encode a result buffer as an alpha-preserving PNG blob."""
    return buffer.to_png_bytes()


def download_filename(original: str) -> str:
    return f"{DOWNLOAD_PREFIX}{Path(original).name}"


class DirectorySink:
    """Default download target: write each blob into a directory."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def __call__(self, blob: bytes, filename: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.directory / filename
        path.write_bytes(blob)
        logger.info("Wrote %s (%d bytes)", path, len(blob))


class ResultExporter:
    def __init__(self, sink: Optional[DownloadSink] = None, settings: Optional[config.Settings] = None):
        settings = settings if settings is not None else config.get_settings()
        self.sink = sink if sink is not None else DirectorySink(settings.download_dir)

    def export(self, buffer: RasterBuffer) -> bytes:
        return export(buffer)

    def trigger_download(self, blob: bytes, filename: str) -> None:
        self.sink(blob, filename)

    def export_all(self, items: Iterable[Tuple[bytes, str]], stagger_seconds: float = 0.0) -> List[str]:
        """
        Trigger one download per `(blob, original_filename)` pair, in order.

        Downloads after the first are spaced by `stagger_seconds`.
        """
        names: List[str] = []
        for index, (blob, original) in enumerate(items):
            if index and stagger_seconds > 0:
                time.sleep(stagger_seconds)
            name = download_filename(original)
            self.trigger_download(blob, name)
            names.append(name)
        return names
