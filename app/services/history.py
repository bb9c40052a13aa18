import uuid

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import HistoryPersistError
from app.db.models import GenerationHistory


class HistoryService:
    def __init__(self, db: Session):
        self.db = db

    def create_record(
        self,
        *,
        prompt: str,
        style_id: str,
        style_label: str,
        engine: str,
        final_prompt: str,
        user_reference_urls: list[str],
        all_reference_image_urls: list[str],
        generated_image_url: str,
        scene_id: str | None = None,
    ) -> GenerationHistory:
        row = GenerationHistory(
            prompt=prompt,
            style_id=style_id,
            style_label=style_label,
            engine=engine,
            final_prompt=final_prompt,
            user_reference_urls=list(user_reference_urls),
            all_reference_image_urls=list(all_reference_image_urls),
            generated_image_url=generated_image_url,
            scene_id=scene_id,
        )
        try:
            self.db.add(row)
            self.db.commit()
            self.db.refresh(row)
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise HistoryPersistError(f"Failed to save generation history: {exc}") from exc
        return row

    def list_records(self, limit: int = 50) -> list[GenerationHistory]:
        stmt = select(GenerationHistory).order_by(GenerationHistory.created_at.desc()).limit(limit)
        return list(self.db.execute(stmt).scalars().all())

    def get_record(self, history_id: uuid.UUID) -> GenerationHistory | None:
        return self.db.get(GenerationHistory, history_id)
