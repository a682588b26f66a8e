import os

import pytest
from fastapi.testclient import TestClient

import main
import routes.app
import routes.clip
import routes.health
import routes.video_info
from conftest import make_request
from services.clipper import ClipService
from services.errors import ProbeError
from services.job_store import Job, JobState, MemoryJobRepository
from services.storage import LocalStorage

CLIP_BODY = {
    "url": "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
    "startTime": "00:01:00",
    "endTime": "00:01:40",
    "userId": "user-1",
}


@pytest.fixture
def client(service, monkeypatch):
    for module in (routes.clip, routes.app, routes.health):
        monkeypatch.setattr(module, "clipper", service)
    # No context manager: the lifespan would start the retention thread
    return TestClient(main.app)


def ready_job(service, tmp_path, content=b"0123456789"):
    path = tmp_path / "output" / "done.mp4"
    path.write_bytes(content)
    service.job_store.create(Job(id="done", user_id="u", source_url=CLIP_BODY["url"]))
    service.job_store.complete("done", "/api/clip/done/file", local_path=str(path))
    return path


def test_create_clip_runs_in_background(client, service):
    response = client.post("/api/clip", json=CLIP_BODY)

    assert response.status_code == 202
    body = response.json()
    assert body["status"] == "processing"

    # TestClient runs background tasks before returning
    status = client.get(f"/api/clip/{body['id']}").json()
    assert status["status"] == "ready"
    assert status["url"] == f"/api/clip/{body['id']}/file"
    assert status["error"] is None


@pytest.mark.parametrize("overrides", [
    {"url": "not a url"},
    {"startTime": "1:2:3:4"},
    {"startTime": "00:02:00", "endTime": "00:01:00"},
    {"cropRatio": "panorama"},
    {"userId": ""},
    {"formatId": "137; rm -rf /"},
])
def test_invalid_clip_requests_are_rejected(client, service, overrides):
    response = client.post("/api/clip", json={**CLIP_BODY, **overrides})

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid request"
    assert service.job_store.list_jobs() == []


def test_missing_fields_are_rejected(client):
    response = client.post("/api/clip", json={"url": CLIP_BODY["url"]})
    assert response.status_code == 400


def test_queue_full_returns_429(tmp_path, monkeypatch):
    full = ClipService(job_store=MemoryJobRepository(), storage=LocalStorage(str(tmp_path / "out")),
                       temp_dir=str(tmp_path / "w"), max_concurrent=0, max_queued=0)
    monkeypatch.setattr(routes.clip, "clipper", full)

    response = TestClient(main.app).post("/api/clip", json=CLIP_BODY)

    assert response.status_code == 429
    assert full.job_store.list_jobs() == []


def test_unknown_job_is_404(client):
    assert client.get("/api/clip/nope").status_code == 404
    assert client.delete("/api/clip/nope/cleanup").status_code == 404
    assert client.get("/api/clip/nope/file").status_code == 404


def test_cleanup_contract(client, service, tmp_path):
    processing = service.submit(make_request())
    assert client.delete(f"/api/clip/{processing.id}/cleanup").status_code == 409

    path = ready_job(service, tmp_path)
    response = client.delete("/api/clip/done/cleanup")
    assert response.status_code == 200
    assert response.json() == {"success": True}
    assert not path.exists()

    assert client.delete("/api/clip/done/cleanup").status_code == 404
    assert client.get("/api/clip/done").status_code == 404


def test_download_file(client, service, tmp_path):
    ready_job(service, tmp_path)

    response = client.get("/api/clip/done/file")

    assert response.status_code == 200
    assert response.content == b"0123456789"
    assert response.headers["content-type"] == "video/mp4"
    assert response.headers["accept-ranges"] == "bytes"


@pytest.mark.parametrize("header, expected, content_range", [
    ("bytes=2-5", b"2345", "bytes 2-5/10"),
    ("bytes=7-", b"789", "bytes 7-9/10"),
    ("bytes=-3", b"789", "bytes 7-9/10"),
    ("bytes=8-100", b"89", "bytes 8-9/10"),
])
def test_download_file_range(client, service, tmp_path, header, expected, content_range):
    ready_job(service, tmp_path)

    response = client.get("/api/clip/done/file", headers={"Range": header})

    assert response.status_code == 206
    assert response.content == expected
    assert response.headers["content-range"] == content_range


def test_unsatisfiable_range(client, service, tmp_path):
    ready_job(service, tmp_path)

    response = client.get("/api/clip/done/file", headers={"Range": "bytes=50-60"})

    assert response.status_code == 416
    assert response.headers["content-range"] == "bytes */10"


def test_file_states(client, service, tmp_path):
    processing = service.submit(make_request())
    assert client.get(f"/api/clip/{processing.id}/file").status_code == 409

    path = ready_job(service, tmp_path)
    os.remove(path)
    assert client.get("/api/clip/done/file").status_code == 410

    service.job_store.create(Job(id="remote", user_id="u", source_url=CLIP_BODY["url"]))
    service.job_store.complete("remote", "https://cdn.example/clips/remote.mp4", storage_path="clips/remote.mp4")
    response = client.get("/api/clip/remote/file", follow_redirects=False)
    assert response.status_code == 307
    assert response.headers["location"] == "https://cdn.example/clips/remote.mp4"


def test_failed_job_status(client, service):
    service.job_store.create(Job(id="bad", user_id="u", source_url=CLIP_BODY["url"]))
    service.job_store.fail("bad", "Download failed: yt-dlp exited with code 1")

    body = client.get("/api/clip/bad").json()

    assert body["status"] == JobState.ERROR.value
    assert body["error"] == "Download failed: yt-dlp exited with code 1"
    assert body["url"] is None


class StubProbe:
    def __init__(self, error=None):
        self.error = error

    async def get_formats(self, url):
        if self.error:
            raise self.error
        return [{"format_id": "22", "label": "720p (mp4)"}]

    async def get_video_info(self, url):
        if self.error:
            raise self.error
        return {"title": "Clip me", "duration": "00:03:33"}


def test_formats_and_metadata(client, monkeypatch):
    monkeypatch.setattr(routes.video_info, "probe", StubProbe())

    formats = client.get("/api/formats", params={"url": CLIP_BODY["url"]})
    assert formats.status_code == 200
    assert formats.json() == {"formats": [{"format_id": "22", "label": "720p (mp4)"}]}

    metadata = client.get("/api/metadata", params={"url": CLIP_BODY["url"]})
    assert metadata.status_code == 200
    assert metadata.json()["title"] == "Clip me"
    assert metadata.json()["description"] is None


def test_lookup_errors(client, monkeypatch):
    monkeypatch.setattr(routes.video_info, "probe", StubProbe(ProbeError("Unable to access this video")))

    assert client.get("/api/formats").status_code == 400
    assert client.get("/api/metadata", params={"url": "ftp://example.com/x"}).status_code == 400
    assert client.get("/api/formats", params={"url": CLIP_BODY["url"]}).status_code == 502


def test_ping_health_and_stats(client, service, monkeypatch):
    assert client.get("/api/ping").json() == {"success": True}

    monkeypatch.setattr(service, "check_dependencies", lambda: {"ffmpeg": True, "yt_dlp": False})
    health = client.get("/health").json()
    assert health["status"] == "unhealthy"
    assert health["dependencies"] == {"ffmpeg": True, "yt_dlp": False}

    stats = client.get("/stats").json()
    assert stats["total_jobs"] == 0
    assert stats["job_store"]

    assert client.post("/cleanup").json()["removed_jobs"] == 0
