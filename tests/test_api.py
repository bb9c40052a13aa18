import pytest

from app.core.exceptions import ProviderPollError
from app.main import app
from app.services.engines import NanoBananaAdapter, NanoBananaProAdapter, SeedreamAdapter
from app.services.generation import GenerationService
from app.services.reference_images import ReferenceImageResolver
from app.services.task_tracker import TaskTracker
from app.services.upload_cache import UploadCache


async def _no_sleep(_seconds):
    return None


async def _fake_upload(local_path: str, style_id: str) -> str:
    return f"https://files.example.com{local_path}"


@pytest.fixture()
async def api(client, fake_kie, tmp_path):
    http_client = fake_kie.client()
    engines = {
        cls.engine_id: cls(http_client, "https://api.kie.test/api/v1", "test-key", 5, 0.0, sleep=_no_sleep)
        for cls in (NanoBananaAdapter, SeedreamAdapter, NanoBananaProAdapter)
    }
    service = GenerationService(engines, ReferenceImageResolver(UploadCache(_fake_upload)), tmp_path)
    app.state.generation_service = service
    app.state.task_tracker = TaskTracker(service.generate, interval_seconds=0.01)
    yield client
    await app.state.task_tracker.shutdown()
    await http_client.aclose()


@pytest.mark.anyio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
    assert resp.headers["x-request-id"]


@pytest.mark.anyio
async def test_generate_and_history(api, fake_kie):
    resp = await api.post(
        "/v1/generate",
        json={"prompt": "a cat", "style_id": "photorealistic", "engine": "seeddream", "scene_id": "s-1"},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["image_url"] == "https://cdn.example.com/out.png"
    assert body["history_id"]
    assert set(body) == {"image_url", "history_id"}

    history = (await api.get("/v1/history")).json()
    assert len(history) == 1
    assert history[0]["history_id"] == body["history_id"]
    assert history[0]["engine"] == "seeddream"
    assert history[0]["final_prompt"].startswith("[SCENE — a cat]")
    assert history[0]["scene_id"] == "s-1"


@pytest.mark.anyio
async def test_invalid_style_is_400(api):
    resp = await api.post(
        "/v1/generate",
        json={"prompt": "a cat", "style_id": "does-not-exist", "engine": "nanobanana"},
        headers={"x-request-id": "req-123"},
    )
    assert resp.status_code == 400
    assert resp.json() == {"detail": "Style 'does-not-exist' not found", "request_id": "req-123"}


@pytest.mark.anyio
async def test_invalid_engine_is_400(api):
    resp = await api.post(
        "/v1/generate",
        json={"prompt": "a cat", "style_id": "pixel_art", "engine": "nanobanana-pro"},
    )
    assert resp.status_code == 400
    assert "Supported engines: nanobanana, seeddream" in resp.json()["detail"]


@pytest.mark.anyio
async def test_provider_failure_is_502(api, fake_kie):
    fake_kie.states = ["fail"]
    resp = await api.post(
        "/v1/generate",
        json={"prompt": "a cat", "style_id": "photorealistic", "engine": "nanobanana"},
    )
    assert resp.status_code == 502
    assert resp.json()["detail"] == "content policy violation"
    assert (await api.get("/v1/history")).json() == []


@pytest.mark.anyio
async def test_malformed_provider_record_is_502(api, fake_kie):
    fake_kie.record_data = "oops"
    resp = await api.post(
        "/v1/generate",
        json={"prompt": "a cat", "style_id": "photorealistic", "engine": "nanobanana"},
        headers={"x-request-id": "req-502"},
    )
    assert resp.status_code == 502
    body = resp.json()
    assert set(body) == {"detail", "request_id"}
    assert "malformed data" in body["detail"]
    assert body["request_id"] == "req-502"


@pytest.mark.anyio
async def test_missing_api_key_is_500(api):
    for adapter in app.state.generation_service.engines.values():
        adapter.api_key = None
    resp = await api.post(
        "/v1/generate",
        json={"prompt": "a cat", "style_id": "photorealistic", "engine": "nanobanana"},
    )
    assert resp.status_code == 500
    assert "KIE_API_KEY" in resp.json()["detail"]


@pytest.mark.anyio
async def test_request_validation(api):
    resp = await api.post(
        "/v1/generate",
        json={
            "prompt": "",
            "style_id": "photorealistic",
            "engine": "nanobanana",
        },
    )
    assert resp.status_code == 422

    resp = await api.post(
        "/v1/generate",
        json={
            "prompt": "a cat",
            "style_id": "photorealistic",
            "engine": "nanobanana",
            "user_reference_images": [f"https://cdn.example.com/{i}.png" for i in range(4)],
        },
    )
    assert resp.status_code == 422


@pytest.mark.anyio
async def test_list_styles_hides_base_prompt(client):
    styles = (await client.get("/v1/styles")).json()
    by_id = {style["id"]: style for style in styles}

    assert "cyan_sketchline_vector" in by_id
    assert by_id["pixel_art"]["engines"] == ["nanobanana", "seeddream"]
    assert all("base_prompt" not in style for style in styles)


@pytest.mark.anyio
async def test_task_lifecycle(api):
    resp = await api.post(
        "/v1/tasks",
        json={
            "prompt": "a cat",
            "style_id": "photorealistic",
            "engine": "nanobanana",
            "scene_id": "scene-7",
            "scene_name": "Intro",
        },
    )
    assert resp.status_code == 202
    task = resp.json()
    assert task["task_id"].startswith("gen-")
    assert task["status"] == "generating"
    assert task["scene_name"] == "Intro"

    await app.state.task_tracker.wait(task["task_id"])

    settled = (await api.get(f"/v1/tasks/{task['task_id']}")).json()
    assert settled["status"] == "completed"
    assert settled["progress"] == 100.0
    assert settled["image_url"] == "https://cdn.example.com/out.png"

    status = (await api.get("/v1/tasks/status", params={"scene_id": "scene-7"})).json()
    assert status == {"scene_id": "scene-7", "is_generating": False, "active_task_count": 0}

    listed = (await api.get("/v1/tasks")).json()
    assert [t["task_id"] for t in listed] == [task["task_id"]]

    cleared = (await api.post("/v1/tasks/clear-completed")).json()
    assert cleared == {"cleared": 1}
    assert (await api.get(f"/v1/tasks/{task['task_id']}")).status_code == 404


@pytest.mark.anyio
async def test_failed_task_reports_error(api, fake_kie):
    fake_kie.states = ["fail"]
    task = (
        await api.post("/v1/tasks", json={"prompt": "a cat", "style_id": "photorealistic", "engine": "nanobanana"})
    ).json()

    with pytest.raises(ProviderPollError):
        await app.state.task_tracker.wait(task["task_id"])

    settled = (await api.get(f"/v1/tasks/{task['task_id']}")).json()
    assert settled["status"] == "failed"
    assert settled["progress"] == 0.0
    assert settled["error"] == "content policy violation"


@pytest.mark.anyio
async def test_task_rejects_invalid_style_up_front(api):
    resp = await api.post("/v1/tasks", json={"prompt": "a cat", "style_id": "nope", "engine": "nanobanana"})
    assert resp.status_code == 400
    assert (await api.get("/v1/tasks")).json() == []


@pytest.mark.anyio
async def test_delete_task(api):
    task = (
        await api.post("/v1/tasks", json={"prompt": "a cat", "style_id": "photorealistic", "engine": "nanobanana"})
    ).json()
    await app.state.task_tracker.wait(task["task_id"])

    assert (await api.delete(f"/v1/tasks/{task['task_id']}")).status_code == 204
    assert (await api.delete(f"/v1/tasks/{task['task_id']}")).status_code == 404


@pytest.mark.anyio
async def test_metrics_exposes_generation_counters(api):
    await api.post("/v1/generate", json={"prompt": "a cat", "style_id": "photorealistic", "engine": "nanobanana"})
    resp = await api.get("/metrics")
    assert resp.status_code == 200
    assert "storyboard_generations_total" in resp.text
    assert "storyboard_engine_calls_total" in resp.text
