import uuid
from datetime import datetime

from pydantic import BaseModel

from app.services.generation import GenerateRequest


class GenerateResponse(BaseModel):
    image_url: str
    history_id: uuid.UUID | None = None


class GenerationHistoryRead(BaseModel):
    history_id: uuid.UUID
    prompt: str
    style_id: str
    style_label: str
    engine: str
    final_prompt: str
    user_reference_urls: list[str] = []
    all_reference_image_urls: list[str] = []
    generated_image_url: str
    scene_id: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class StyleRead(BaseModel):
    id: str
    label: str
    description: str = ""
    engines: list[str] = []
    default_colors: list[str] = []


class TaskCreateRequest(GenerateRequest):
    scene_name: str | None = None


class GenerationTaskRead(BaseModel):
    task_id: str
    prompt: str
    style_id: str
    engine: str
    status: str
    progress: float
    scene_id: str | None = None
    scene_name: str | None = None
    image_url: str | None = None
    history_id: uuid.UUID | None = None
    error: str | None = None
    started_at: datetime
    completed_at: datetime | None = None

    model_config = {"from_attributes": True}


class TaskStatusRead(BaseModel):
    scene_id: str | None = None
    is_generating: bool
    active_task_count: int


class ClearCompletedRead(BaseModel):
    cleared: int
