"""Tests for the HTTP API."""

import base64
import io
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from conftest import encode_png, white_canvas
from imagesplit.api.routes import health, split
from imagesplit.config import settings
from imagesplit.main import app
from imagesplit.schemas.job import JobStatus
from imagesplit.services.job_service import JobService
from imagesplit.services.split_service import SplitService
from imagesplit.splitting import InlineExecutor, SplitOrchestrator


class FakeQueue:
    def __init__(self):
        self.enqueued = []

    def enqueue(self, func, *args, **kwargs):
        self.enqueued.append((func, args, kwargs))


@pytest.fixture
def job_service(fake_redis):
    return JobService(fake_redis)


@pytest.fixture
def queue():
    return FakeQueue()


@pytest.fixture
def client(monkeypatch, tmp_path, fake_redis, job_service, queue):
    split_service = SplitService(InlineExecutor())
    monkeypatch.setattr(settings, "uploads_dir", tmp_path)
    monkeypatch.setattr(split, "get_job_service", lambda: job_service)
    monkeypatch.setattr(split, "get_queue", lambda: queue)
    monkeypatch.setattr(split, "get_split_service", lambda: split_service)
    monkeypatch.setattr(health, "get_split_service", lambda: split_service)
    app.dependency_overrides[health.get_redis_client] = lambda: fake_redis
    yield TestClient(app)
    app.dependency_overrides.clear()


def png_upload(pixels, name="grid.png"):
    return {"file": (name, encode_png(pixels), "image/png")}


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "redis": "healthy", "executor": "inline"}


def test_sync_split_upload(client, two_squares):
    response = client.post("/split/sync", files=png_upload(two_squares), data={"output_count": "9"})

    assert response.status_code == 200
    body = response.json()
    assert body["method"] == "regions"
    assert (body["source_width"], body["source_height"]) == (800, 400)
    assert [(r["x"], r["y"], r["width"], r["height"]) for r in body["rects"]] == [
        (50, 50, 50, 50),
        (700, 50, 50, 50),
    ]
    assert body["output_count"] == 9


def test_sync_split_keeps_wider_ports(client, two_squares):
    response = client.post(
        "/split/sync",
        files=png_upload(two_squares),
        data={"output_count": "4", "current_output_count": "20"},
    )

    assert response.json()["output_count"] == 20


def test_sync_split_data_url(client):
    ref = "data:image/png;base64," + base64.b64encode(encode_png(white_canvas(300, 300))).decode()

    response = client.post("/split/sync", data={"source": ref, "output_count": "4"})

    assert response.status_code == 200
    assert [r["width"] for r in response.json()["rects"]] == [150, 150, 150, 150]


def test_sync_split_rejects_non_image(client):
    response = client.post(
        "/split/sync",
        files={"file": ("notes.png", b"just some text", "image/png")},
    )

    assert response.status_code == 400


def test_sync_split_reports_decode_errors(client):
    response = client.post("/split/sync", data={"source": "data:text/plain;base64,aGVsbG8="})

    assert response.status_code == 400
    assert "not an image" in response.json()["detail"]


def test_source_is_required(client, two_squares):
    assert client.post("/split/sync", data={"output_count": "4"}).status_code == 400

    response = client.post("/split/sync", files=png_upload(two_squares), data={"source": "uploads/a.png"})
    assert response.status_code == 400


def test_analyze(client, photo):
    response = client.post("/split/analyze", files=png_upload(photo))

    assert response.status_code == 200
    assert response.json()["will_detect_regions"] is False


def test_submit_upload(client, job_service, queue, two_squares, tmp_path):
    response = client.post(
        "/split",
        files=png_upload(two_squares),
        data={"output_count": "6", "webhook_url": "https://hook"},
    )

    assert response.status_code == 202
    job_id = response.json()["job_id"]
    job = job_service.get_job(job_id)

    assert job.requested_output_count == 6
    assert job.source_ref == f"uploads/split/{job_id}.png"
    assert Path(job.source_path) == tmp_path / "uploads" / "split" / f"{job_id}.png"
    assert Path(job.source_path).read_bytes() == encode_png(two_squares)

    func, args, kwargs = queue.enqueued[0]
    assert func is split.process_split_job
    assert args == (job_id,)
    assert kwargs["job_timeout"] == settings.job_timeout


def test_submit_reference(client, job_service, queue):
    response = client.post("/split", data={"source": "/api/assets/proxy?key=projects/p/a.png"})

    assert response.status_code == 202
    job = job_service.get_job(response.json()["job_id"])
    assert job.source_ref == "projects/p/a.png"
    assert job.source_path is None
    assert len(queue.enqueued) == 1


def test_job_status(client, job_service, two_squares):
    job = job_service.create_job(output_count=9)
    job_service.set_result(job.id, SplitOrchestrator().split(two_squares, 9))

    response = client.get(f"/split/{job.id}")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == JobStatus.COMPLETED.value
    assert len(body["rects"]) == 2
    assert body["output_count"] == 9


def test_unknown_job(client):
    assert client.get("/split/nope").status_code == 404
    assert client.get("/split/nope/crops/0").status_code == 404
    assert client.delete("/split/nope").status_code == 404


def test_crop(client, job_service, two_squares, tmp_path):
    path = tmp_path / "grid.png"
    path.write_bytes(encode_png(two_squares))
    job = job_service.create_job(source_path=str(path))
    job_service.set_result(job.id, SplitOrchestrator().split(two_squares, 9))

    response = client.get(f"/split/{job.id}/crops/1")

    assert response.status_code == 200
    assert response.headers["content-type"] == "image/png"
    crop = Image.open(io.BytesIO(response.content))
    assert crop.size == (50, 50)

    assert client.get(f"/split/{job.id}/crops/2").status_code == 404


def test_crop_before_completion(client, job_service):
    job = job_service.create_job()

    assert client.get(f"/split/{job.id}/crops/0").status_code == 409


def test_delete_job(client, job_service, tmp_path):
    path = tmp_path / "a.png"
    path.write_bytes(b"x")
    job = job_service.create_job(source_path=str(path))

    response = client.delete(f"/split/{job.id}")

    assert response.status_code == 204
    assert job_service.get_job(job.id) is None
    assert not path.exists()
