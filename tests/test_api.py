"""Tests for the FastAPI layer."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from batch_bgremover import api
from batch_bgremover.controller import BatchController
from batch_bgremover.exporter import ResultExporter
from batch_bgremover.raster import RasterBuffer
from batch_bgremover.storage import MemoryStorage


@pytest.fixture
def downloads(mocker):
    return mocker.Mock()


@pytest.fixture
def controller(monkeypatch, downloads):
    controller = BatchController(storage=MemoryStorage(), exporter=ResultExporter(sink=downloads))
    monkeypatch.setattr(api, "controller", controller)
    yield controller
    controller.shutdown(wait=False)


@pytest.fixture
def client(controller) -> TestClient:
    return TestClient(api.app)


def _upload(client: TestClient, *files):
    return client.post(
        "/jobs",
        files=[("files", (name, content, media_type)) for name, content, media_type in files],
    )


def test_health_returns_ok(client) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_upload_process_and_fetch_result(client, controller, png_bytes) -> None:
    response = _upload(client, ("white.png", png_bytes((20, 20)), "image/png"))
    assert response.status_code == 202
    (created,) = response.json()
    assert created["filename"] == "white.png"
    assert created["algorithm"] == "corner"

    controller.wait(timeout=10)
    job = client.get(f"/jobs/{created['id']}").json()
    assert job["status"] == "completed"
    assert job["progress"] == 100
    assert job["resultUrl"] == f"/jobs/{created['id']}/result"

    result = client.get(job["resultUrl"])
    assert result.status_code == 200
    assert result.headers["content-type"] == "image/png"
    assert 'filename="removed-bg-white.png"' in result.headers["content-disposition"]
    assert RasterBuffer.from_bytes(result.content).get_pixel(0)[3] == 0


def test_non_image_upload_rejected(client) -> None:
    response = _upload(client, ("notes.txt", b"hello", "text/plain"))

    assert response.status_code == 400


def test_list_jobs_reports_summary(client, controller, png_bytes) -> None:
    _upload(client, ("a.png", png_bytes(), "image/png"), ("b.png", b"broken", "image/png"))
    controller.wait(timeout=10)

    body = client.get("/jobs").json()

    assert body["total"] == 2
    assert body["completed"] == 1
    assert body["summary"] == "1 of 2 images processed"
    assert [job["filename"] for job in body["jobs"]] == ["a.png", "b.png"]
    assert body["jobs"][1]["status"] == "error"
    assert body["jobs"][1]["error"]


def test_retry_only_for_failed_jobs(client, controller, png_bytes) -> None:
    good, bad = _upload(client, ("a.png", png_bytes(), "image/png"), ("b.png", b"broken", "image/png")).json()
    controller.wait(timeout=10)

    assert client.post(f"/jobs/{good['id']}/retry").status_code == 409
    assert client.post("/jobs/missing/retry").status_code == 404

    response = client.post(f"/jobs/{bad['id']}/retry")
    assert response.status_code == 202
    controller.wait(timeout=10)
    retried = client.get(f"/jobs/{bad['id']}").json()
    assert retried["status"] == "error"
    assert retried["progress"] == 50


def test_result_not_ready_is_conflict(client, controller) -> None:
    (bad,) = _upload(client, ("b.png", b"broken", "image/png")).json()
    controller.wait(timeout=10)

    assert client.get(f"/jobs/{bad['id']}/result").status_code == 409
    assert client.get("/jobs/missing/result").status_code == 404


def test_remove_and_clear(client, controller, png_bytes) -> None:
    first, second = _upload(client, ("a.png", png_bytes(), "image/png"), ("b.png", png_bytes(), "image/png")).json()
    controller.wait(timeout=10)

    assert client.delete(f"/jobs/{first['id']}").status_code == 204
    assert client.delete("/jobs/missing").status_code == 204
    assert client.get(f"/jobs/{first['id']}").status_code == 404
    assert [job["id"] for job in client.get("/jobs").json()["jobs"]] == [second["id"]]

    assert client.delete("/jobs").status_code == 204
    assert client.get("/jobs").json()["total"] == 0


def test_select_algorithm_applies_to_new_jobs(client, controller, png_bytes) -> None:
    response = client.put("/algorithm", json={"algorithm": "edge"})
    assert response.status_code == 200
    assert response.json() == {"algorithm": "edge"}

    (created,) = _upload(client, ("a.png", png_bytes(), "image/png")).json()
    assert created["algorithm"] == "edge"
    assert client.put("/algorithm", json={"algorithm": "u2net"}).status_code == 422


def test_download_all_triggers_one_download_per_completed_job(client, controller, downloads, png_bytes) -> None:
    _upload(
        client,
        ("a.png", png_bytes(), "image/png"),
        ("bad.png", b"broken", "image/png"),
        ("c.png", png_bytes(), "image/png"),
    )
    controller.wait(timeout=10)

    response = client.post("/jobs/download-all")

    assert response.status_code == 200
    assert response.json() == {"downloads": ["removed-bg-a.png", "removed-bg-c.png"]}
    assert [c.args[1] for c in downloads.call_args_list] == ["removed-bg-a.png", "removed-bg-c.png"]
