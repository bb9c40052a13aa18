import asyncio
import random

import pytest

from app.core.exceptions import ProviderTimeoutError
from app.services.generation import GenerateRequest, GenerateResult
from app.services.task_tracker import RandomIncrementEstimator, TaskTracker


class ScriptedRunner:
    """Generation runner that blocks until released, then succeeds or raises ``error``."""

    def __init__(self, error: Exception | None = None):
        self.error = error
        self.release = asyncio.Event()
        self.requests: list[GenerateRequest] = []

    async def __call__(self, request: GenerateRequest) -> GenerateResult:
        self.requests.append(request)
        await self.release.wait()
        if self.error is not None:
            raise self.error
        return GenerateResult(
            image_url=f"https://cdn.example.com/{request.scene_id or 'image'}.png",
            final_prompt=request.prompt,
        )


def _request(scene_id: str | None = None, prompt: str = "a cat") -> GenerateRequest:
    return GenerateRequest(prompt=prompt, style_id="photorealistic", engine="nanobanana", scene_id=scene_id)


async def _spin(times: int = 10) -> None:
    for _ in range(times):
        await asyncio.sleep(0)


def test_random_estimator_never_exceeds_ceiling():
    estimator = RandomIncrementEstimator(ceiling=90.0, rng=random.Random(3))
    progress = 0.0
    for _ in range(50):
        nxt = estimator.next_progress(progress)
        assert progress <= nxt <= 90.0
        progress = nxt
    assert progress == 90.0


@pytest.mark.anyio
async def test_start_returns_generating_task():
    runner = ScriptedRunner()
    tracker = TaskTracker(runner, interval_seconds=0)

    task = tracker.start(_request("scene-1"), scene_name="Opening")

    assert task.task_id.startswith("gen-")
    assert task.status == "generating"
    assert task.scene_name == "Opening"
    assert tracker.is_generating()
    assert tracker.is_generating("scene-1")
    assert not tracker.is_generating("scene-2")
    assert tracker.active_task_count() == 1

    runner.release.set()
    await tracker.wait(task.task_id)


@pytest.mark.anyio
async def test_progress_is_monotonic_and_capped_while_generating():
    runner = ScriptedRunner()
    tracker = TaskTracker(
        runner,
        estimator=RandomIncrementEstimator(ceiling=90.0, rng=random.Random(11)),
        interval_seconds=0,
    )
    task = tracker.start(_request())

    samples = []
    for _ in range(40):
        await asyncio.sleep(0)
        samples.append(tracker.get_task(task.task_id).progress)

    assert samples == sorted(samples)
    assert samples[-1] > 0
    assert max(samples) <= 90.0

    runner.release.set()
    await tracker.wait(task.task_id)


@pytest.mark.anyio
async def test_success_snaps_to_100():
    runner = ScriptedRunner()
    runner.release.set()
    tracker = TaskTracker(runner, interval_seconds=0)

    result = await tracker.run(_request("scene-9"))
    task = tracker.list_tasks()[0]

    assert result.image_url == "https://cdn.example.com/scene-9.png"
    assert task.status == "completed"
    assert task.progress == 100.0
    assert task.image_url == result.image_url
    assert task.completed_at is not None
    assert tracker.active_task_count() == 0


@pytest.mark.anyio
async def test_failure_snaps_to_zero_and_reraises():
    runner = ScriptedRunner(error=ProviderTimeoutError("nanobanana task timed out", engine="nanobanana"))
    runner.release.set()
    tracker = TaskTracker(runner, interval_seconds=0)

    with pytest.raises(ProviderTimeoutError):
        await tracker.run(_request())

    task = tracker.list_tasks()[0]
    assert task.status == "failed"
    assert task.progress == 0.0
    assert task.error == "nanobanana task timed out"
    assert not tracker.is_generating()


@pytest.mark.anyio
async def test_background_failure_is_recorded_without_waiting():
    runner = ScriptedRunner(error=RuntimeError("boom"))
    runner.release.set()
    tracker = TaskTracker(runner, interval_seconds=0)

    task = tracker.start(_request())
    await _spin()

    assert tracker.get_task(task.task_id).status == "failed"


@pytest.mark.anyio
async def test_list_newest_first_and_clear_completed():
    runner = ScriptedRunner()
    runner.release.set()
    tracker = TaskTracker(runner, interval_seconds=0)

    first = tracker.start(_request(prompt="first"))
    await tracker.wait(first.task_id)

    runner.release.clear()
    second = tracker.start(_request(prompt="second"))

    assert [t.prompt for t in tracker.list_tasks()] == ["second", "first"]

    assert tracker.clear_completed_tasks() == 1
    assert [t.task_id for t in tracker.list_tasks()] == [second.task_id]

    runner.release.set()
    await tracker.wait(second.task_id)
    assert tracker.clear_task(second.task_id) is True
    assert tracker.clear_task(second.task_id) is False
    assert tracker.list_tasks() == []


@pytest.mark.anyio
async def test_returned_tasks_are_snapshots():
    runner = ScriptedRunner()
    tracker = TaskTracker(runner, interval_seconds=0)
    task = tracker.start(_request())

    runner.release.set()
    await tracker.wait(task.task_id)

    assert task.status == "generating"
    assert tracker.get_task(task.task_id).status == "completed"


@pytest.mark.anyio
async def test_wait_for_unknown_task():
    tracker = TaskTracker(ScriptedRunner(), interval_seconds=0)
    with pytest.raises(KeyError):
        await tracker.wait("gen-missing")


@pytest.mark.anyio
async def test_shutdown_fails_in_flight_tasks():
    runner = ScriptedRunner()
    tracker = TaskTracker(runner, interval_seconds=0)
    task = tracker.start(_request())
    await _spin(2)

    await tracker.shutdown()

    settled = tracker.get_task(task.task_id)
    assert settled.status == "failed"
    assert settled.error == "cancelled"
