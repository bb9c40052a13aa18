import asyncio
import logging
import random
import threading
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Literal, Protocol

from app.core.request_context import log_context
from app.services.generation import GenerateRequest, GenerateResult

logger = logging.getLogger(__name__)

TaskStatus = Literal["pending", "generating", "completed", "failed"]
ACTIVE_STATUSES: frozenset[str] = frozenset({"pending", "generating"})

GenerationRunner = Callable[[GenerateRequest], Awaitable[GenerateResult]]
SleepFn = Callable[[float], Awaitable[Any]]


@dataclass
class GenerationTask:
    task_id: str
    prompt: str
    style_id: str
    engine: str
    status: TaskStatus
    started_at: datetime
    scene_id: str | None = None
    scene_name: str | None = None
    progress: float = 0.0
    image_url: str | None = None
    history_id: uuid.UUID | None = None
    error: str | None = None
    completed_at: datetime | None = None


class ProgressEstimator(Protocol):
    def next_progress(self, current: float) -> float: ...


class RandomIncrementEstimator:
    """Cosmetic progress: random steps that stall below the ceiling until settlement."""

    def __init__(
        self,
        min_step: float = 2.0,
        max_step: float = 10.0,
        ceiling: float = 90.0,
        rng: random.Random | None = None,
    ):
        self.min_step = min_step
        self.max_step = max_step
        self.ceiling = ceiling
        self._rng = rng or random.Random()

    def next_progress(self, current: float) -> float:
        return min(self.ceiling, current + self._rng.uniform(self.min_step, self.max_step))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_task_id() -> str:
    return f"gen-{uuid.uuid4().hex}"


class TaskTracker:
    """In-memory registry of concurrent generation runs.

    Each run owns one ``GenerationTask``; only the tracker mutates it.
    Callers get copies, so a task they hold never changes underneath them.
    """

    def __init__(
        self,
        runner: GenerationRunner,
        estimator: ProgressEstimator | None = None,
        interval_seconds: float = 0.5,
        sleep: SleepFn = asyncio.sleep,
    ):
        self._runner = runner
        self._estimator = estimator or RandomIncrementEstimator()
        self._interval_seconds = interval_seconds
        self._sleep = sleep
        self._tasks: dict[str, GenerationTask] = {}
        self._runs: dict[str, asyncio.Task] = {}
        self._lock = threading.Lock()

    def start(self, request: GenerateRequest, *, scene_name: str | None = None) -> GenerationTask:
        task = GenerationTask(
            task_id=new_task_id(),
            prompt=request.prompt,
            style_id=request.style_id,
            engine=request.engine,
            status="generating",
            started_at=_utcnow(),
            scene_id=request.scene_id,
            scene_name=scene_name,
        )
        with self._lock:
            self._tasks[task.task_id] = task
            snapshot = replace(task)

        run = asyncio.create_task(self._execute(task.task_id, request))
        run.add_done_callback(_consume_outcome)
        with self._lock:
            self._runs[task.task_id] = run
        logger.info(
            "generation_task_started task_id=%s engine=%s style_id=%s scene_id=%s",
            task.task_id,
            request.engine,
            request.style_id,
            request.scene_id,
        )
        return snapshot

    async def run(self, request: GenerateRequest, *, scene_name: str | None = None) -> GenerateResult:
        task = self.start(request, scene_name=scene_name)
        return await self.wait(task.task_id)

    async def wait(self, task_id: str) -> GenerateResult:
        with self._lock:
            run = self._runs.get(task_id)
        if run is None:
            raise KeyError(task_id)
        return await asyncio.shield(run)

    async def _execute(self, task_id: str, request: GenerateRequest) -> GenerateResult:
        progress = asyncio.create_task(self._simulate_progress(task_id))
        try:
            with log_context(task_id=task_id):
                result = await self._runner(request)
        except asyncio.CancelledError:
            self._settle(task_id, status="failed", error="cancelled")
            raise
        except Exception as exc:  # noqa: BLE001
            self._settle(task_id, status="failed", error=str(exc) or exc.__class__.__name__)
            raise
        else:
            self._settle(task_id, status="completed", result=result)
            return result
        finally:
            progress.cancel()

    async def _simulate_progress(self, task_id: str) -> None:
        while True:
            await self._sleep(self._interval_seconds)
            with self._lock:
                task = self._tasks.get(task_id)
                if task is None or task.status != "generating":
                    return
                proposed = self._estimator.next_progress(task.progress)
                if proposed > task.progress:
                    task.progress = min(proposed, 100.0)

    def _settle(
        self,
        task_id: str,
        *,
        status: TaskStatus,
        result: GenerateResult | None = None,
        error: str | None = None,
    ) -> None:
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                return
            task.status = status
            task.completed_at = _utcnow()
            if status == "completed" and result is not None:
                task.progress = 100.0
                task.image_url = result.image_url
                task.history_id = result.history_id
            else:
                task.progress = 0.0
                task.error = error
        if status == "completed":
            logger.info("generation_task_completed task_id=%s", task_id)
        else:
            logger.warning("generation_task_failed task_id=%s error=%s", task_id, error)

    def is_generating(self, scene_id: str | None = None) -> bool:
        with self._lock:
            return any(
                task.status in ACTIVE_STATUSES and (scene_id is None or task.scene_id == scene_id)
                for task in self._tasks.values()
            )

    def active_task_count(self) -> int:
        with self._lock:
            return sum(1 for task in self._tasks.values() if task.status in ACTIVE_STATUSES)

    def list_tasks(self) -> list[GenerationTask]:
        with self._lock:
            return [replace(task) for task in reversed(self._tasks.values())]

    def get_task(self, task_id: str) -> GenerationTask | None:
        with self._lock:
            task = self._tasks.get(task_id)
            return replace(task) if task is not None else None

    def clear_task(self, task_id: str) -> bool:
        with self._lock:
            self._runs.pop(task_id, None)
            return self._tasks.pop(task_id, None) is not None

    def clear_completed_tasks(self) -> int:
        with self._lock:
            settled = [task_id for task_id, task in self._tasks.items() if task.status not in ACTIVE_STATUSES]
            for task_id in settled:
                del self._tasks[task_id]
                self._runs.pop(task_id, None)
        return len(settled)

    async def shutdown(self) -> None:
        with self._lock:
            runs = list(self._runs.values())
        for run in runs:
            run.cancel()
        if runs:
            await asyncio.gather(*runs, return_exceptions=True)


def _consume_outcome(run: asyncio.Task) -> None:
    # Failures are recorded on the task; fire-and-forget runs must not warn.
    if not run.cancelled():
        run.exception()
