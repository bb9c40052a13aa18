"""Remote image engines on the KIE job API.

Every engine follows the same two-step protocol: ``createTask`` returns a
task id, then ``recordInfo`` is polled at a fixed interval until the job
reaches a terminal state or the engine's attempt budget runs out. Engines
differ in model name, input payload shape, reference image cap and budget.
"""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from app.core.exceptions import (
    ConfigurationError,
    ProviderError,
    ProviderPollError,
    ProviderSubmitError,
    ProviderTimeoutError,
)
from app.core.metrics import record_poll_attempts, track_engine_call
from app.core.request_context import log_context

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[Any]]


class JobState(str, Enum):
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    FAIL = "fail"


@dataclass(frozen=True)
class EngineResult:
    engine: str
    task_id: str
    image_url: str
    attempts: int


class KieEngineAdapter:
    engine_id: str = ""
    model: str = ""
    text_only_model: str | None = None
    image_field: str = "image_urls"
    max_reference_images: int = 10

    IN_PROGRESS_STATES = frozenset({"waiting", "queuing", "queued", "generating", "processing"})
    FAILURE_STATES = frozenset({"fail"})
    SUCCESS_STATES = frozenset({"success"})

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        api_key: str | None,
        max_poll_attempts: int,
        poll_interval_seconds: float = 3.0,
        sleep: SleepFn = asyncio.sleep,
    ):
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.max_poll_attempts = max_poll_attempts
        self.poll_interval_seconds = poll_interval_seconds
        self._sleep = sleep

    def _headers(self) -> dict[str, str]:
        if not self.api_key:
            raise ConfigurationError("KIE_API_KEY is not set in the environment")
        return {"Authorization": f"Bearer {self.api_key}"}

    def extra_input(self) -> dict[str, Any]:
        return {}

    def build_payload(self, prompt: str, images: Sequence[str]) -> dict[str, Any]:
        model = self.model
        payload_input: dict[str, Any] = {"prompt": prompt}
        if images or not self.text_only_model:
            payload_input[self.image_field] = list(images)
        else:
            model = self.text_only_model
        payload_input.update(self.extra_input())
        return {"model": model, "input": payload_input}

    def classify_state(self, state: Any) -> JobState:
        if not isinstance(state, str):
            state = repr(state)
        if state in self.SUCCESS_STATES:
            return JobState.SUCCESS
        if state in self.FAILURE_STATES:
            return JobState.FAIL
        if state not in self.IN_PROGRESS_STATES:
            logger.warning("engine_unknown_state engine=%s state=%r treated_as=in_progress", self.engine_id, state)
        return JobState.IN_PROGRESS

    def _response_data(
        self,
        response: httpx.Response,
        error_cls: type[ProviderError],
        action: str,
        **context: Any,
    ) -> dict[str, Any]:
        body = _json_or_none(response)
        if response.status_code >= 400 or body is None or body.get("code") != 200:
            message = (body or {}).get("message") or (body or {}).get("msg") or ""
            raise error_cls(
                f"{self.engine_id} failed to {action}: {response.status_code} {message}".strip(),
                engine=self.engine_id,
                **context,
            )
        data = body.get("data")
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise error_cls(
                f"{self.engine_id} failed to {action}: malformed data ({type(data).__name__})",
                engine=self.engine_id,
                **context,
            )
        return data

    async def submit(self, prompt: str, images: Sequence[str]) -> str:
        headers = self._headers()
        payload = self.build_payload(prompt, images)
        with track_engine_call(self.engine_id, "submit"):
            try:
                response = await self.client.post(
                    f"{self.base_url}/jobs/createTask",
                    headers=headers,
                    json=payload,
                )
            except httpx.HTTPError as exc:
                raise ProviderSubmitError(
                    f"{self.engine_id} createTask request failed: {exc!r}",
                    engine=self.engine_id,
                ) from exc

            task_id = self._response_data(response, ProviderSubmitError, "create task").get("taskId")
            if not task_id or not isinstance(task_id, (str, int)):
                raise ProviderSubmitError(f"{self.engine_id} response missing taskId", engine=self.engine_id)

        logger.info(
            "engine_task_submitted engine=%s model=%s task_id=%s images=%s",
            self.engine_id,
            payload["model"],
            task_id,
            len(images),
        )
        return str(task_id)

    async def _fetch_record(self, task_id: str) -> dict[str, Any]:
        headers = self._headers()
        with track_engine_call(self.engine_id, "poll"):
            try:
                response = await self.client.get(
                    f"{self.base_url}/jobs/recordInfo",
                    headers=headers,
                    params={"taskId": task_id},
                )
            except httpx.HTTPError as exc:
                raise ProviderPollError(
                    f"{self.engine_id} recordInfo request failed: {exc!r}",
                    engine=self.engine_id,
                    task_id=task_id,
                ) from exc
            return self._response_data(response, ProviderPollError, "query task", task_id=task_id)

    def _extract_result_url(self, task_id: str, record: dict[str, Any]) -> str:
        raw = record.get("resultJson")
        if not raw:
            raise ProviderPollError(f"{self.engine_id} result missing resultJson", engine=self.engine_id, task_id=task_id)
        try:
            parsed = json.loads(raw) if isinstance(raw, str) else raw
        except json.JSONDecodeError as exc:
            raise ProviderPollError(
                f"{self.engine_id} resultJson is not valid JSON",
                engine=self.engine_id,
                task_id=task_id,
            ) from exc
        urls = parsed.get("resultUrls") if isinstance(parsed, dict) else None
        # resultUrls must be a list whose first entry is a non-empty string.
        if not isinstance(urls, list) or not urls or not isinstance(urls[0], str) or not urls[0].strip():
            raise ProviderPollError(f"{self.engine_id} result missing result URL", engine=self.engine_id, task_id=task_id)
        return urls[0].strip()

    async def poll(self, task_id: str) -> EngineResult:
        for attempt in range(1, self.max_poll_attempts + 1):
            await self._sleep(self.poll_interval_seconds)
            record = await self._fetch_record(task_id)
            state = record.get("state")
            outcome = self.classify_state(state)

            if outcome is JobState.IN_PROGRESS:
                logger.debug(
                    "engine_task_pending engine=%s task_id=%s state=%s attempt=%s/%s",
                    self.engine_id,
                    task_id,
                    state,
                    attempt,
                    self.max_poll_attempts,
                )
                continue

            if outcome is JobState.FAIL:
                record_poll_attempts(self.engine_id, "fail", attempt)
                message = record.get("failMsg") or f"{self.engine_id} task failed"
                logger.warning(
                    "engine_task_failed engine=%s task_id=%s attempt=%s error=%s",
                    self.engine_id,
                    task_id,
                    attempt,
                    message,
                )
                raise ProviderPollError(message, engine=self.engine_id, task_id=task_id)

            try:
                image_url = self._extract_result_url(task_id, record)
            except ProviderPollError:
                record_poll_attempts(self.engine_id, "fail", attempt)
                raise
            record_poll_attempts(self.engine_id, "success", attempt)
            logger.info("engine_task_succeeded engine=%s task_id=%s attempts=%s", self.engine_id, task_id, attempt)
            return EngineResult(engine=self.engine_id, task_id=task_id, image_url=image_url, attempts=attempt)

        record_poll_attempts(self.engine_id, "timeout", self.max_poll_attempts)
        logger.warning(
            "engine_task_timed_out engine=%s task_id=%s attempts=%s",
            self.engine_id,
            task_id,
            self.max_poll_attempts,
        )
        raise ProviderTimeoutError(
            f"{self.engine_id} task timed out",
            engine=self.engine_id,
            task_id=task_id,
            attempts=self.max_poll_attempts,
        )

    async def generate(self, prompt: str, images: Sequence[str]) -> EngineResult:
        with log_context(engine=self.engine_id):
            task_id = await self.submit(prompt, images)
            return await self.poll(task_id)


class NanoBananaAdapter(KieEngineAdapter):
    engine_id = "nanobanana"
    model = "google/nano-banana-edit"
    text_only_model = "google/nano-banana"
    max_reference_images = 10

    def extra_input(self) -> dict[str, Any]:
        return {"output_format": "png", "image_size": "16:9"}


class SeedreamAdapter(KieEngineAdapter):
    engine_id = "seeddream"
    model = "bytedance/seedream-v4-edit"
    text_only_model = "bytedance/seedream-v4-text-to-image"
    max_reference_images = 10

    def extra_input(self) -> dict[str, Any]:
        return {"image_size": "landscape_16_9", "image_resolution": "1K", "max_images": 1}


class NanoBananaProAdapter(KieEngineAdapter):
    engine_id = "nanobanana-pro"
    model = "nano-banana-pro"
    image_field = "image_input"
    max_reference_images = 8

    def extra_input(self) -> dict[str, Any]:
        return {"aspect_ratio": "16:9", "resolution": "1K", "output_format": "png"}


def _json_or_none(response: httpx.Response) -> dict[str, Any] | None:
    try:
        body = response.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def build_engine_registry(settings, client: httpx.AsyncClient) -> dict[str, KieEngineAdapter]:
    common = {
        "client": client,
        "base_url": settings.kie_base_url,
        "api_key": settings.kie_api_key,
        "poll_interval_seconds": settings.engine_poll_interval_seconds,
    }
    adapters: list[KieEngineAdapter] = [
        NanoBananaAdapter(max_poll_attempts=settings.nanobanana_max_poll_attempts, **common),
        SeedreamAdapter(max_poll_attempts=settings.seeddream_max_poll_attempts, **common),
        NanoBananaProAdapter(max_poll_attempts=settings.nanobanana_pro_max_poll_attempts, **common),
    ]
    return {adapter.engine_id: adapter for adapter in adapters}
