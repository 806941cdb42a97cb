"""Tests for result export and staggered downloads."""

from __future__ import annotations

from pathlib import Path

from batch_bgremover.exporter import DirectorySink, ResultExporter, download_filename
from batch_bgremover.raster import RasterBuffer


def test_download_filename_prefixes_original_name() -> None:
    assert download_filename("holiday.jpg") == "removed-bg-holiday.jpg"
    assert download_filename("nested/dir/cat.png") == "removed-bg-cat.png"


def test_export_encodes_png_with_alpha(mocker) -> None:
    exporter = ResultExporter(sink=mocker.Mock())
    buffer = RasterBuffer.blank(3, 3, (1, 2, 3, 0))

    blob = exporter.export(buffer)

    assert blob.startswith(b"\x89PNG")
    assert RasterBuffer.from_bytes(blob) == buffer


def test_export_all_staggers_between_downloads(mocker) -> None:
    sink = mocker.Mock()
    sleep = mocker.patch("batch_bgremover.exporter.time.sleep")
    exporter = ResultExporter(sink=sink)

    names = exporter.export_all([(b"a", "a.png"), (b"b", "b.png"), (b"c", "c.png")], stagger_seconds=0.2)

    assert names == ["removed-bg-a.png", "removed-bg-b.png", "removed-bg-c.png"]
    assert sink.call_args_list == [
        mocker.call(b"a", "removed-bg-a.png"),
        mocker.call(b"b", "removed-bg-b.png"),
        mocker.call(b"c", "removed-bg-c.png"),
    ]
    assert sleep.call_count == 2
    sleep.assert_called_with(0.2)


def test_directory_sink_writes_files(tmp_path: Path) -> None:
    sink = DirectorySink(tmp_path / "out")

    sink(b"payload", "removed-bg-x.png")

    assert (tmp_path / "out" / "removed-bg-x.png").read_bytes() == b"payload"


def test_default_sink_uses_configured_directory(tmp_path: Path) -> None:
    exporter = ResultExporter()

    exporter.trigger_download(b"png", "removed-bg-y.png")

    assert (tmp_path / "downloads" / "removed-bg-y.png").read_bytes() == b"png"
