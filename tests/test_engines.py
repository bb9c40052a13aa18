import json

import pytest

from app.core.exceptions import (
    ConfigurationError,
    ProviderPollError,
    ProviderSubmitError,
    ProviderTimeoutError,
)
from app.core.metrics import registry
from app.core.settings import Settings
from app.services.engines import (
    JobState,
    NanoBananaAdapter,
    NanoBananaProAdapter,
    SeedreamAdapter,
    build_engine_registry,
)


BASE_URL = "https://api.kie.test/api/v1"


class SleepRecorder:
    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def _adapter(cls, client, *, api_key="test-key", max_poll_attempts=5, sleep=None):
    return cls(
        client,
        BASE_URL,
        api_key,
        max_poll_attempts=max_poll_attempts,
        poll_interval_seconds=3.0,
        sleep=sleep or SleepRecorder(),
    )


@pytest.mark.anyio
async def test_poll_until_success(fake_kie):
    fake_kie.states = ["queued", "generating", "success"]
    sleep = SleepRecorder()
    async with fake_kie.client() as client:
        adapter = _adapter(NanoBananaAdapter, client, sleep=sleep)
        result = await adapter.generate("a cat", ["https://files.example.com/1.png"])

    assert result.image_url == "https://cdn.example.com/out.png"
    assert result.attempts == 3
    assert result.task_id == "task-1"
    assert sleep.calls == [3.0, 3.0, 3.0]

    payload = fake_kie.submitted[0]
    assert payload["model"] == "google/nano-banana-edit"
    assert payload["input"]["prompt"] == "a cat"
    assert payload["input"]["image_urls"] == ["https://files.example.com/1.png"]


@pytest.mark.anyio
async def test_fail_state_is_terminal(fake_kie):
    fake_kie.states = ["fail"]
    async with fake_kie.client() as client:
        adapter = _adapter(SeedreamAdapter, client)
        with pytest.raises(ProviderPollError) as exc_info:
            await adapter.generate("a cat", [])

    assert "content policy violation" in str(exc_info.value)
    assert exc_info.value.engine == "seeddream"
    assert fake_kie.polls == 1


@pytest.mark.anyio
async def test_budget_exhaustion_times_out(fake_kie):
    fake_kie.states = ["generating"]
    async with fake_kie.client() as client:
        adapter = _adapter(NanoBananaProAdapter, client, max_poll_attempts=4)
        with pytest.raises(ProviderTimeoutError) as exc_info:
            await adapter.generate("a cat", [])

    assert exc_info.value.attempts == 4
    assert fake_kie.polls == 4


@pytest.mark.anyio
async def test_submit_rejection(fake_kie):
    fake_kie.submit_status = 500
    async with fake_kie.client() as client:
        adapter = _adapter(NanoBananaAdapter, client)
        with pytest.raises(ProviderSubmitError):
            await adapter.generate("a cat", [])

    assert fake_kie.polls == 0


@pytest.mark.anyio
async def test_missing_result_url(fake_kie):
    fake_kie.image_url = ""
    async with fake_kie.client() as client:
        adapter = _adapter(NanoBananaAdapter, client)
        with pytest.raises(ProviderPollError, match="missing result URL"):
            await adapter.generate("a cat", [])


@pytest.mark.anyio
@pytest.mark.parametrize(
    "result_json",
    [
        json.dumps({"resultUrls": "https://cdn.example.com/out.png"}),
        json.dumps({"resultUrls": [None]}),
        json.dumps({"resultUrls": [{"url": "https://cdn.example.com/out.png"}]}),
        json.dumps({"resultUrls": ["   "]}),
        json.dumps(["https://cdn.example.com/out.png"]),
    ],
)
async def test_malformed_result_urls_are_rejected(fake_kie, result_json):
    fake_kie.result_json = result_json
    async with fake_kie.client() as client:
        adapter = _adapter(NanoBananaAdapter, client)
        with pytest.raises(ProviderPollError, match="missing result URL"):
            await adapter.generate("a cat", [])


@pytest.mark.anyio
@pytest.mark.parametrize("data", ["oops", ["task-1"], 42])
async def test_non_object_submit_data_is_submit_error(fake_kie, data):
    fake_kie.submit_data = data
    async with fake_kie.client() as client:
        adapter = _adapter(SeedreamAdapter, client)
        with pytest.raises(ProviderSubmitError, match="malformed data"):
            await adapter.generate("a cat", [])

    assert fake_kie.polls == 0


@pytest.mark.anyio
@pytest.mark.parametrize("data", ["oops", [{"state": "success"}], 42])
async def test_non_object_record_data_is_poll_error(fake_kie, data):
    fake_kie.record_data = data
    async with fake_kie.client() as client:
        adapter = _adapter(NanoBananaProAdapter, client)
        with pytest.raises(ProviderPollError, match="malformed data") as exc_info:
            await adapter.generate("a cat", [])

    assert exc_info.value.task_id == "task-1"
    assert fake_kie.polls == 1


def _engine_calls(engine: str, operation: str, status: str) -> float:
    labels = {"engine": engine, "operation": operation, "status": status}
    return registry.get_sample_value("storyboard_engine_calls_total", labels) or 0.0


@pytest.mark.anyio
async def test_rejected_responses_count_as_errors(fake_kie):
    fake_kie.submit_status = 500
    errors_before = _engine_calls("seeddream", "submit", "error")
    successes_before = _engine_calls("seeddream", "submit", "success")
    async with fake_kie.client() as client:
        with pytest.raises(ProviderSubmitError):
            await _adapter(SeedreamAdapter, client).generate("a cat", [])

    assert _engine_calls("seeddream", "submit", "error") == errors_before + 1
    assert _engine_calls("seeddream", "submit", "success") == successes_before


@pytest.mark.anyio
async def test_accepted_responses_count_as_successes(fake_kie):
    fake_kie.states = ["generating", "success"]
    polls_before = _engine_calls("nanobanana", "poll", "success")
    errors_before = _engine_calls("nanobanana", "poll", "error")
    async with fake_kie.client() as client:
        await _adapter(NanoBananaAdapter, client).generate("a cat", [])

    assert _engine_calls("nanobanana", "poll", "success") == polls_before + 2
    assert _engine_calls("nanobanana", "poll", "error") == errors_before


@pytest.mark.anyio
async def test_unknown_state_keeps_polling(fake_kie):
    fake_kie.states = ["warming_up", "success"]
    async with fake_kie.client() as client:
        adapter = _adapter(NanoBananaAdapter, client)
        result = await adapter.generate("a cat", [])

    assert result.attempts == 2


@pytest.mark.anyio
async def test_missing_api_key_is_configuration_error(fake_kie):
    async with fake_kie.client() as client:
        adapter = _adapter(NanoBananaAdapter, client, api_key=None)
        with pytest.raises(ConfigurationError):
            await adapter.generate("a cat", [])

    assert fake_kie.submitted == []


class TestPayloads:
    def test_text_only_model_without_images(self):
        payload = NanoBananaAdapter(None, BASE_URL, "k", 1).build_payload("a cat", [])
        assert payload["model"] == "google/nano-banana"
        assert "image_urls" not in payload["input"]

    def test_seedream_edit_payload(self):
        payload = SeedreamAdapter(None, BASE_URL, "k", 1).build_payload("a cat", ["u1"])
        assert payload["model"] == "bytedance/seedream-v4-edit"
        assert payload["input"]["image_urls"] == ["u1"]
        assert payload["input"]["max_images"] == 1

    def test_pro_uses_image_input_field(self):
        payload = NanoBananaProAdapter(None, BASE_URL, "k", 1).build_payload("a cat", [])
        assert payload["model"] == "nano-banana-pro"
        assert payload["input"]["image_input"] == []
        assert "image_urls" not in payload["input"]

    @pytest.mark.parametrize(
        "state, expected",
        [
            ("success", JobState.SUCCESS),
            ("fail", JobState.FAIL),
            ("queuing", JobState.IN_PROGRESS),
            ("waiting", JobState.IN_PROGRESS),
            ("something-new", JobState.IN_PROGRESS),
            (None, JobState.IN_PROGRESS),
            (["success"], JobState.IN_PROGRESS),
        ],
    )
    def test_classify_state(self, state, expected):
        assert NanoBananaAdapter(None, BASE_URL, "k", 1).classify_state(state) is expected


def test_registry_uses_per_engine_budgets():
    settings = Settings(KIE_API_KEY="k")
    registry = build_engine_registry(settings, client=None)

    assert set(registry) == {"nanobanana", "seeddream", "nanobanana-pro"}
    assert registry["nanobanana"].max_poll_attempts == 40
    assert registry["seeddream"].max_poll_attempts == 30
    assert registry["nanobanana-pro"].max_poll_attempts == 60
    assert registry["nanobanana-pro"].max_reference_images == 8
    assert registry["nanobanana"].poll_interval_seconds == 3.0
