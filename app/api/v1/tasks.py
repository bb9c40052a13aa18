from fastapi import APIRouter, HTTPException, Query, Response

from app.api.deps import GenerationServiceDep, TaskTrackerDep
from app.api.v1.schemas import (
    ClearCompletedRead,
    GenerationTaskRead,
    TaskCreateRequest,
    TaskStatusRead,
)
from app.services.generation import GenerateRequest, GenerationService
from app.services.task_tracker import TaskTracker


router = APIRouter(tags=["tasks"])


@router.post("/tasks", response_model=GenerationTaskRead, status_code=202)
async def start_task(
    payload: TaskCreateRequest,
    service: GenerationService = GenerationServiceDep,
    tracker: TaskTracker = TaskTrackerDep,
):
    # Bad style/engine pairs are rejected here rather than as a failed task.
    await service.resolve_target(payload.style_id, payload.engine)
    request = GenerateRequest.model_validate(payload.model_dump(exclude={"scene_name"}))
    task = tracker.start(request, scene_name=payload.scene_name)
    return GenerationTaskRead.model_validate(task)


@router.get("/tasks", response_model=list[GenerationTaskRead])
def list_tasks(tracker: TaskTracker = TaskTrackerDep):
    return [GenerationTaskRead.model_validate(task) for task in tracker.list_tasks()]


@router.get("/tasks/status", response_model=TaskStatusRead)
def task_status(scene_id: str | None = Query(default=None), tracker: TaskTracker = TaskTrackerDep):
    return TaskStatusRead(
        scene_id=scene_id,
        is_generating=tracker.is_generating(scene_id),
        active_task_count=tracker.active_task_count(),
    )


@router.post("/tasks/clear-completed", response_model=ClearCompletedRead)
def clear_completed(tracker: TaskTracker = TaskTrackerDep):
    return ClearCompletedRead(cleared=tracker.clear_completed_tasks())


@router.get("/tasks/{task_id}", response_model=GenerationTaskRead)
def get_task(task_id: str, tracker: TaskTracker = TaskTrackerDep):
    task = tracker.get_task(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail="task not found")
    return GenerationTaskRead.model_validate(task)


@router.delete("/tasks/{task_id}", status_code=204)
def delete_task(task_id: str, tracker: TaskTracker = TaskTrackerDep):
    if not tracker.clear_task(task_id):
        raise HTTPException(status_code=404, detail="task not found")
    return Response(status_code=204)
