# tests/test_api.py
import os
import shutil
from dataclasses import replace
from types import SimpleNamespace

from app.features.story_generation import router as story_router
from app.features.story_generation import service
from app.lib import cloud_tasks, gcs_storage, jobs
from app.lib.paths import job_dir, jobs_root, request_path


def _body(png_uri, **overrides):
    body = {
        "userId": "user-api",
        "images": [png_uri()],
        "characters": [{"name": "Mia", "description": "a curious girl"}],
        "theme": "bedtime",
        "durationBucket": "short",
        "language": "french",
        "backgroundMusic": "none",
        "voiceId": "v1",
    }
    body.update(overrides)
    return body


def test_sync_generation(client, fakes, png_uri):
    r = client.post("/api/v1/stories/generate", json=_body(png_uri))
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["duration_seconds"] == 300
    assert data["language"] == "french"
    assert data["background_music_id"] is None
    assert data["audio_url"].startswith(fakes.storage.prefix)
    assert len(fakes.db.tables["images"]) == 1


def test_missing_fields_are_listed(client, png_uri):
    body = _body(png_uri)
    del body["theme"]
    del body["voiceId"]
    r = client.post("/api/v1/stories/generate", json=body)
    assert r.status_code == 422
    missing = {tuple(err["loc"])[-1] for err in r.json()["detail"]}
    assert {"theme", "voice"} <= missing


def test_blank_language_is_rejected(client, png_uri):
    r = client.post("/api/v1/stories/generate", json=_body(png_uri, language="  "))
    assert r.status_code == 422


def test_too_many_images_rejected(client, png_uri):
    r = client.post("/api/v1/stories/generate", json=_body(png_uri, images=[png_uri()] * 6))
    assert r.status_code == 422


def test_sync_persistence_failure_is_500(client, fakes, png_uri):
    fakes.db.fail.add("stories")
    r = client.post("/api/v1/stories/generate", json=_body(png_uri))
    assert r.status_code == 500
    assert "failed to save story" in r.json()["detail"]


def test_async_generation_and_status(client, fakes, png_uri):
    r = client.post("/api/v1/stories/generate/async", json=_body(png_uri, userId="user-async"))
    assert r.status_code == 202, r.text
    accepted = r.json()
    request_id = accepted["request_id"]
    assert accepted["status_url"] == f"/api/v1/stories/generate/status/{request_id}"

    # TestClient runs background tasks before returning
    status = client.get(accepted["status_url"]).json()
    assert status["state"] == "completed"
    assert status["progress"] == 1.0
    assert status["result"]["story_id"] == request_id
    assert client.app.state.single_flight.current("user-async") is None


def test_unknown_status_is_404(client):
    assert client.get("/api/v1/stories/generate/status/nope").status_code == 404
    assert client.post("/api/v1/stories/generate/stop/nope").status_code == 404


def test_new_request_supersedes_previous(client, fakes, png_uri, monkeypatch):
    from app.features.story_generation import router as story_router

    # keep both jobs pending so the first is still registered
    monkeypatch.setattr(story_router, "_run_and_release", lambda *args: None)

    first = client.post("/api/v1/stories/generate/async", json=_body(png_uri, userId="user-twice")).json()
    second = client.post("/api/v1/stories/generate/async", json=_body(png_uri, userId="user-twice")).json()
    assert second["superseded"] == first["request_id"]

    old = client.get(first["status_url"]).json()
    assert old["cancelled"] is True
    assert old["state"] == "failed" and old["error"] == "cancelled"
    assert client.get(second["status_url"]).json()["state"] == "pending"


def test_stop_then_worker_acks(client, fakes, png_uri, monkeypatch):
    from app.features.story_generation import router as story_router

    real_run = story_router.service.run_story_job
    monkeypatch.setattr(story_router.service, "run_story_job", lambda request_id, **kw: None)
    accepted = client.post("/api/v1/stories/generate/async", json=_body(png_uri, userId="user-stop")).json()
    monkeypatch.setattr(story_router.service, "run_story_job", real_run)

    r = client.post(accepted["stop_url"])
    assert r.status_code == 200
    assert r.json()["cancelled"] is True

    w = client.post(accepted["worker_url"], json={"request_id": accepted["request_id"]})
    assert w.status_code == 200
    assert w.json()["cancelled"] is True
    assert fakes.db.tables["stories"] == []


def test_worker_is_idempotent(client, fakes, png_uri, monkeypatch):
    from app.features.story_generation import router as story_router

    real_run = story_router.service.run_story_job
    monkeypatch.setattr(story_router.service, "run_story_job", lambda request_id, **kw: None)
    accepted = client.post("/api/v1/stories/generate/async", json=_body(png_uri, userId="user-worker")).json()
    monkeypatch.setattr(story_router.service, "run_story_job", real_run)

    first = client.post(accepted["worker_url"], json={"request_id": accepted["request_id"]})
    second = client.post(accepted["worker_url"], json={"request_id": accepted["request_id"]})
    assert first.json()["state"] == second.json()["state"] == jobs.COMPLETED
    assert len(fakes.db.tables["stories"]) == 1


def test_worker_unknown_job_is_acked(client):
    r = client.post("/api/v1/tasks/worker/story/unknown-job", json={})
    assert r.status_code == 200
    assert r.json()["ok"] is False


def test_worker_adopts_job_created_on_another_instance(client, fakes, make_request, monkeypatch):
    request_id, _ = service.create_story_job(make_request(user_id="user-adopt"))
    with open(request_path(job_dir(request_id))) as f:
        mirrored = f.read()
    shutil.rmtree(job_dir(request_id))

    downloads = []

    def _download(gs_uri, dest_path):
        downloads.append(gs_uri)
        with open(dest_path, "w") as f:
            f.write(mirrored)

    monkeypatch.setattr(gcs_storage, "download_gcs_object_to_file", _download)
    gs_uri = f"gs://test-bucket/jobs/{request_id}/request.json"
    r = client.post(f"/api/v1/tasks/worker/story/{request_id}", json={"request_gcs": gs_uri})

    assert r.status_code == 200
    assert r.json()["state"] == jobs.COMPLETED
    assert downloads == [gs_uri]
    assert [row["id"] for row in fakes.db.tables["stories"]] == [request_id]
    assert jobs.get_job(request_id)["user_id"] == "user-adopt"


def test_worker_acks_unusable_mirrored_request(client, fakes, monkeypatch):
    def _download(gs_uri, dest_path):
        with open(dest_path, "w") as f:
            f.write('{"user_id": "u"}')

    monkeypatch.setattr(gcs_storage, "download_gcs_object_to_file", _download)
    r = client.post("/api/v1/tasks/worker/story/broken-job", json={"request_gcs": "gs://test-bucket/x.json"})
    assert r.status_code == 200
    assert r.json()["ok"] is False
    assert fakes.db.tables["stories"] == []


def _use_cloud_tasks(monkeypatch):
    on = replace(service.config, use_cloud_tasks=True)
    monkeypatch.setattr(service, "config", on)
    monkeypatch.setattr(story_router, "config", on)
    monkeypatch.setattr(
        gcs_storage,
        "upload_json_to_gcs",
        lambda data, *, object_name, **kw: {"gs_uri": f"gs://test-bucket/{object_name}"},
    )


def test_enqueue_failure_keeps_previous_job(client, png_uri, monkeypatch):
    _use_cloud_tasks(monkeypatch)
    queued = []

    def _enqueue(request_id, *, request_gcs=None):
        queued.append(request_id)
        if len(queued) > 1:
            raise RuntimeError("queue unavailable")
        return SimpleNamespace(name=f"tasks/{request_id}")

    monkeypatch.setattr(cloud_tasks, "enqueue_story_job", _enqueue)

    first = client.post("/api/v1/stories/generate/async", json=_body(png_uri, userId="user-queue"))
    assert first.status_code == 202
    second = client.post("/api/v1/stories/generate/async", json=_body(png_uri, userId="user-queue"))
    assert second.status_code == 503

    failed = jobs.get_job(queued[1])
    assert failed["state"] == jobs.FAILED
    assert "enqueue failed" in failed["error"]

    old = client.get(first.json()["status_url"]).json()
    assert old["cancelled"] is False
    assert old["state"] == "pending"
    assert client.app.state.single_flight.current("user-queue").request_id == first.json()["request_id"]


def test_request_mirror_failure_fails_job(client, png_uri, monkeypatch):
    _use_cloud_tasks(monkeypatch)

    def _upload(data, *, object_name, **kw):
        raise RuntimeError("bucket unavailable")

    enqueued = []
    monkeypatch.setattr(gcs_storage, "upload_json_to_gcs", _upload)
    monkeypatch.setattr(cloud_tasks, "enqueue_story_job", lambda request_id, **kw: enqueued.append(request_id))

    r = client.post("/api/v1/stories/generate/async", json=_body(png_uri, userId="user-mirror"))
    assert r.status_code == 503
    assert enqueued == []
    assert client.app.state.single_flight.current("user-mirror") is None

    mine = [jobs.get_job(d) for d in os.listdir(jobs_root())]
    mine = [mf for mf in mine if mf and mf["user_id"] == "user-mirror"]
    assert [mf["state"] for mf in mine] == [jobs.FAILED]
    assert "request upload failed" in mine[0]["error"]


def test_sixth_request_in_a_minute_is_rate_limited(client, png_uri, monkeypatch):
    monkeypatch.setattr(story_router, "_run_and_release", lambda *args: None)
    for _ in range(5):
        assert client.post("/api/v1/stories/generate/async", json=_body(png_uri, userId="user-busy")).status_code == 202

    # both generation routes share one budget
    r = client.post("/api/v1/stories/generate", json=_body(png_uri, userId="user-busy"))
    assert r.status_code == 429
    detail = r.json()["detail"]
    assert detail["limit"] == 5
    assert detail["remaining"] == 0
    assert detail["reset"] > 0
    assert r.headers["X-RateLimit-Limit"] == "5"

    other = client.post("/api/v1/stories/generate/async", json=_body(png_uri, userId="user-calm"))
    assert other.status_code == 202


def test_rate_limiter_errors_let_requests_through(client, fakes, png_uri, monkeypatch):
    class _BrokenStrategy:
        def hit(self, *args, **kwargs):
            raise ConnectionError("limiter storage down")

    monkeypatch.setattr(client.app.state.rate_limiter, "strategy", _BrokenStrategy())
    r = client.post("/api/v1/stories/generate", json=_body(png_uri, userId="user-open"))
    assert r.status_code == 200, r.text
    assert len(fakes.db.tables["stories"]) == 1
