from fastapi import APIRouter

from app.api.v1 import (
    generation,
    styles,
    tasks,
)


api_router = APIRouter(prefix="/v1")

api_router.include_router(generation.router)
api_router.include_router(styles.router)
api_router.include_router(tasks.router)
