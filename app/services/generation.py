import asyncio
import logging
import uuid
from collections.abc import Callable, Mapping
from contextlib import AbstractContextManager
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import (
    HistoryPersistError,
    InvalidEngineError,
    InvalidStyleError,
    ProviderError,
)
from app.core.metrics import record_generation
from app.core.request_context import log_context
from app.db.session import session_scope
from app.services.engines import KieEngineAdapter
from app.services.file_upload import list_style_preset_paths
from app.services.history import HistoryService
from app.services.reference_images import ReferenceImageResolver
from app.services.styles import StoredTemplate, StyleService
from app.templates import compile_prompt
from app.templates.models import StyleDescriptor

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractContextManager[Session]]


class GenerateRequest(BaseModel):
    prompt: str = Field(min_length=1)
    style_id: str = Field(min_length=1)
    engine: str = Field(min_length=1)
    user_reference_images: list[str] = Field(default_factory=list, max_length=3)
    custom_template: dict[str, Any] | None = None
    template_reference_images: list[str] | None = None
    scene_id: str | None = None


class GenerateResult(BaseModel):
    image_url: str
    history_id: uuid.UUID | None = None
    final_prompt: str
    reference_images: list[str] = Field(default_factory=list)
    engine_task_id: str | None = None


class GenerationService:
    """Runs one generation request end to end.

    Stages run strictly in order: style and engine validation, prompt
    compilation, reference image resolution, engine submit and poll, history
    persistence. There is a single engine attempt per request; history
    failures are logged and never fail the response.
    """

    def __init__(
        self,
        engines: Mapping[str, KieEngineAdapter],
        resolver: ReferenceImageResolver,
        reference_root: str | Path,
        session_factory: SessionFactory = session_scope,
    ):
        self.engines = dict(engines)
        self.resolver = resolver
        self.reference_root = Path(reference_root)
        self.session_factory = session_factory

    def _load_style(self, style_id: str) -> tuple[StyleDescriptor | None, StoredTemplate | None]:
        with self.session_factory() as db:
            svc = StyleService(db)
            style = svc.get_style(style_id)
            if style is None:
                return None, None
            return style, svc.get_template(style_id)

    def _save_history(self, **fields) -> uuid.UUID:
        try:
            with self.session_factory() as db:
                return HistoryService(db).create_record(**fields).history_id
        except (SQLAlchemyError, RuntimeError) as exc:
            raise HistoryPersistError(f"Failed to save generation history: {exc}") from exc

    def validate_engine(self, style: StyleDescriptor, engine: str) -> KieEngineAdapter:
        adapter = self.engines.get(engine)
        if adapter is None or not style.supports(engine):
            supported = sorted(e for e in style.engines if e in self.engines)
            raise InvalidEngineError(engine, style.id, supported)
        return adapter

    async def resolve_target(
        self, style_id: str, engine: str
    ) -> tuple[StyleDescriptor, StoredTemplate | None, KieEngineAdapter]:
        """Look up the style and its template and check the engine, before any network I/O."""
        style, stored = await asyncio.to_thread(self._load_style, style_id)
        if style is None:
            raise InvalidStyleError(style_id)
        return style, stored, self.validate_engine(style, engine)

    async def generate(self, request: GenerateRequest) -> GenerateResult:
        with log_context(engine=request.engine, style_id=request.style_id):
            style, stored, adapter = await self.resolve_target(request.style_id, request.engine)

            template = request.custom_template
            if template is None and stored is not None:
                template = stored.template_data
            final_prompt = compile_prompt(
                request.prompt,
                style,
                template,
                has_user_reference=bool(request.user_reference_images),
            )

            template_refs = request.template_reference_images
            if template_refs is None:
                template_refs = stored.reference_images if stored is not None else []
            preset_paths = await asyncio.to_thread(list_style_preset_paths, self.reference_root, style.id)
            images = await self.resolver.resolve(
                request.user_reference_images,
                template_refs,
                preset_paths,
                request.engine,
                style.id,
            )

            logger.info(
                "generation_dispatched engine=%s style_id=%s images=%s prompt_chars=%s",
                request.engine,
                style.id,
                len(images),
                len(final_prompt),
            )
            try:
                result = await adapter.generate(final_prompt, images)
            except ProviderError as exc:
                record_generation(request.engine, "failed")
                logger.warning("generation_failed engine=%s error=%s", request.engine, exc)
                raise
            record_generation(request.engine, "succeeded")

            history_id: uuid.UUID | None = None
            try:
                history_id = await asyncio.to_thread(
                    self._save_history,
                    prompt=request.prompt,
                    style_id=style.id,
                    style_label=style.label,
                    engine=request.engine,
                    final_prompt=final_prompt,
                    user_reference_urls=list(request.user_reference_images),
                    all_reference_image_urls=images,
                    generated_image_url=result.image_url,
                    scene_id=request.scene_id,
                )
            except HistoryPersistError as exc:
                logger.error("generation_history_not_saved image_url=%s error=%s", result.image_url, exc)

            return GenerateResult(
                image_url=result.image_url,
                history_id=history_id,
                final_prompt=final_prompt,
                reference_images=images,
                engine_task_id=result.task_id,
            )
