from __future__ import annotations

import uuid

from sqlalchemy import JSON, Boolean, DateTime, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql.sqltypes import Uuid

from app.db.base import Base


class Style(Base):
    __tablename__ = "styles"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    label: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    engines: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    base_prompt: Mapped[str] = mapped_column(Text, nullable=False)
    default_colors: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    reference_image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_built_in: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[object] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[object] = mapped_column(DateTime(timezone=True), server_default=func.now())


class PromptTemplateRecord(Base):
    __tablename__ = "prompt_templates"

    style_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    template_data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    reference_images: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[object] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[object] = mapped_column(DateTime(timezone=True), server_default=func.now())


class GenerationHistory(Base):
    __tablename__ = "generation_history"

    history_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    style_id: Mapped[str] = mapped_column(String(64), nullable=False)
    style_label: Mapped[str] = mapped_column(String(255), nullable=False)
    engine: Mapped[str] = mapped_column(String(32), nullable=False)
    final_prompt: Mapped[str] = mapped_column(Text, nullable=False)
    user_reference_urls: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    all_reference_image_urls: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    generated_image_url: Mapped[str] = mapped_column(Text, nullable=False)
    scene_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[object] = mapped_column(DateTime(timezone=True), server_default=func.now())
