from contextlib import asynccontextmanager
import logging
import time
import uuid

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from fastapi.responses import JSONResponse, PlainTextResponse

from app.api.v1.router import api_router
from app.core.exceptions import AppError, InputError, ProviderError
from app.core.logging import configure_logging
from app.core.settings import settings
from app.core.metrics import get_metrics_payload
from app.core.request_context import (
    reset_request_id,
    set_request_id,
)
from app.db.base import Base
from app.db.session import get_engine as get_db_engine, init_engine
from app.services.engines import build_engine_registry
from app.services.file_upload import REFERENCE_URL_PREFIX, KieFileUploader
from app.services.generation import GenerationService
from app.services.reference_images import ReferenceImageResolver
from app.services.task_tracker import RandomIncrementEstimator, TaskTracker
from app.services.upload_cache import UploadCache


logger = logging.getLogger("app")


def _is_polling_request(method: str, path: str) -> bool:
    if method != "GET":
        return False
    return path.startswith("/v1/tasks")


def build_services(app: FastAPI, http_client: httpx.AsyncClient) -> None:
    """Wire the generation stack onto ``app.state``."""
    engines = build_engine_registry(settings, http_client)
    uploader = KieFileUploader(
        http_client,
        upload_url=settings.kie_upload_url,
        api_key=settings.kie_api_key,
        reference_root=settings.reference_image_root,
    )
    upload_cache = UploadCache(uploader.upload_reference)
    resolver = ReferenceImageResolver(
        upload_cache,
        limits={engine_id: adapter.max_reference_images for engine_id, adapter in engines.items()},
    )
    generation_service = GenerationService(engines, resolver, settings.reference_image_root)
    app.state.upload_cache = upload_cache
    app.state.generation_service = generation_service
    app.state.task_tracker = TaskTracker(
        generation_service.generate,
        estimator=RandomIncrementEstimator(ceiling=settings.task_progress_ceiling),
        interval_seconds=settings.task_progress_interval_seconds,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level, settings.log_file)

    init_engine(settings.database_url)

    if settings.db_auto_create and settings.database_url.startswith("sqlite"):
        Base.metadata.create_all(bind=get_db_engine())

    if not settings.kie_api_key:
        logger.warning("kie_api_key_missing generation requests will fail until KIE_API_KEY is set")

    http_client = httpx.AsyncClient(timeout=settings.http_timeout_seconds)
    build_services(app, http_client)
    try:
        yield
    finally:
        await app.state.task_tracker.shutdown()
        await http_client.aclose()


app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.mount(
    REFERENCE_URL_PREFIX.rstrip("/"),
    StaticFiles(directory=settings.reference_image_root, check_dir=False),
    name="reference-images",
)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = request_id
    token = set_request_id(request_id)
    start = time.perf_counter()
    try:
        try:
            response = await call_next(request)
        except Exception:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.exception(
                "request_failed",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "duration_ms": duration_ms,
                },
            )
            raise

        duration_ms = (time.perf_counter() - start) * 1000
        request_logger = logger.debug if _is_polling_request(request.method, request.url.path) else logger.info
        request_logger(
            "request_complete",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "duration_ms": duration_ms,
            },
        )
        response.headers["x-request-id"] = request_id
        return response
    finally:
        reset_request_id(token)


def _error_response(request: Request, status_code: int, exc: AppError) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "request_id": request_id},
    )


@app.exception_handler(InputError)
async def input_error_handler(request: Request, exc: InputError):
    return _error_response(request, 400, exc)


@app.exception_handler(ProviderError)
async def provider_error_handler(request: Request, exc: ProviderError):
    return _error_response(request, 502, exc)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    logger.error("unhandled_app_error error=%s", exc)
    return _error_response(request, 500, exc)


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/metrics")
def metrics_endpoint():
    return PlainTextResponse(get_metrics_payload(), media_type="text/plain; version=0.0.4; charset=utf-8")


app.include_router(api_router)
