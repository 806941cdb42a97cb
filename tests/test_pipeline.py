"""Tests for the segmentation pipeline."""

from __future__ import annotations

import pytest

from batch_bgremover.config import Settings, get_settings
from batch_bgremover.errors import ProcessingFailure
from batch_bgremover.pipeline import remove_background, segment
from batch_bgremover.raster import RasterBuffer
from batch_bgremover.segmentation import Algorithm, CornerBrightnessSegmenter


def test_remove_background_reports_progress_in_order() -> None:
    seen = []

    blob = remove_background(RasterBuffer.blank(10, 10, (255, 255, 255, 255)), Algorithm.CORNER, seen.append)

    assert seen == [25, 75, 100]
    assert RasterBuffer.from_bytes(blob).get_pixel(0)[3] == 0


def test_segmenter_errors_become_processing_failure(mocker) -> None:
    mocker.patch.object(CornerBrightnessSegmenter, "segment", side_effect=MemoryError("no buffer"))
    seen = []

    with pytest.raises(ProcessingFailure):
        segment(RasterBuffer.blank(4, 4), Algorithm.CORNER, seen.append)
    assert seen == [25]


def test_debug_mode_dumps_alpha(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("DEBUG", "true")
    monkeypatch.setenv("DEBUG_OUTPUT_DIR", str(tmp_path / "debug"))
    get_settings.cache_clear()

    segment(RasterBuffer.blank(8, 8), Algorithm.EDGE)

    assert (tmp_path / "debug" / "edge_alpha.png").exists()


def test_explicit_settings_override_cached_thresholds() -> None:
    grey = RasterBuffer.blank(20, 20, (250, 250, 250, 255))

    default = segment(grey, Algorithm.CORNER)
    strict = segment(grey, Algorithm.CORNER, settings=Settings(brightness_threshold=254.5))

    assert default.get_pixel(0)[3] == 0
    assert strict.get_pixel(0)[3] == 255


def test_explicit_settings_control_debug_output(tmp_path) -> None:
    settings = Settings(debug=True, debug_output_dir=tmp_path / "injected")

    remove_background(RasterBuffer.blank(8, 8), Algorithm.CORNER, settings=settings)

    assert (tmp_path / "injected" / "corner_alpha.png").exists()
