from collections.abc import Generator

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.services.generation import GenerationService
from app.services.task_tracker import TaskTracker


def db_session() -> Generator[Session, None, None]:
    yield from get_db()


def generation_service(request: Request) -> GenerationService:
    return request.app.state.generation_service


def task_tracker(request: Request) -> TaskTracker:
    return request.app.state.task_tracker


DbSessionDep = Depends(db_session)
GenerationServiceDep = Depends(generation_service)
TaskTrackerDep = Depends(task_tracker)
