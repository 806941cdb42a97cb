"""Shared fixtures: isolated settings and small in-memory images."""

from __future__ import annotations

from io import BytesIO
from typing import Callable, Tuple

import pytest
from PIL import Image

from batch_bgremover.config import get_settings


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.setenv("STORAGE_BACKEND", "memory")
    monkeypatch.setenv("DOWNLOAD_DIR", str(tmp_path / "downloads"))
    monkeypatch.setenv("DOWNLOAD_STAGGER_MS", "0")
    monkeypatch.setenv("DEBUG", "false")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def png_bytes() -> Callable[..., bytes]:
    def _make(size: Tuple[int, int] = (50, 50), color=(255, 255, 255, 255)) -> bytes:
        buf = BytesIO()
        Image.new("RGBA", size, color).save(buf, format="PNG")
        return buf.getvalue()

    return _make
