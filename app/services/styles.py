from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.db.models import PromptTemplateRecord, Style
from app.templates.defaults import BUILT_IN_STYLES, DEFAULT_TEMPLATES, get_built_in_style
from app.templates.models import StyleDescriptor


@dataclass(frozen=True)
class StoredTemplate:
    style_id: str
    template_data: dict
    reference_images: list[str] = field(default_factory=list)


def _descriptor_from_row(row: Style) -> StyleDescriptor:
    return StyleDescriptor(
        id=row.id,
        label=row.label,
        description=row.description or "",
        base_prompt=row.base_prompt or "",
        default_colors=tuple(row.default_colors or ()),
        engines=frozenset(row.engines or ()),
    )


class StyleService:
    """Read access to styles and their stored templates.

    Database rows win; built-in styles and templates fill in when a row is
    missing so a fresh database still serves the built-in catalogue.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_style(self, style_id: str) -> StyleDescriptor | None:
        row = self.db.get(Style, style_id)
        if row is not None:
            return _descriptor_from_row(row)
        return get_built_in_style(style_id)

    def list_styles(self) -> list[StyleDescriptor]:
        rows = self.db.execute(select(Style).order_by(Style.label)).scalars().all()
        styles = {row.id: _descriptor_from_row(row) for row in rows}
        for built_in in BUILT_IN_STYLES:
            styles.setdefault(built_in.id, built_in)
        return sorted(styles.values(), key=lambda s: s.label)

    def get_template(self, style_id: str) -> StoredTemplate | None:
        row = self.db.get(PromptTemplateRecord, style_id)
        if row is not None:
            return StoredTemplate(
                style_id=row.style_id,
                template_data=dict(row.template_data or {}),
                reference_images=list(row.reference_images or []),
            )
        default = DEFAULT_TEMPLATES.get(style_id)
        if default is None:
            return None
        return StoredTemplate(
            style_id=style_id,
            template_data=dict(default["template_data"]),
            reference_images=list(default["reference_images"]),
        )

    def seed_built_ins(self) -> list[str]:
        """Insert missing built-in styles and default templates; return the seeded ids."""
        seeded: list[str] = []
        for style in BUILT_IN_STYLES:
            if self.db.get(Style, style.id) is None:
                self.db.add(
                    Style(
                        id=style.id,
                        label=style.label,
                        description=style.description,
                        engines=sorted(style.engines),
                        base_prompt=style.base_prompt,
                        default_colors=list(style.default_colors) or None,
                        is_built_in=True,
                    )
                )
                seeded.append(style.id)
        for style_id, config in DEFAULT_TEMPLATES.items():
            if self.db.get(PromptTemplateRecord, style_id) is None:
                self.db.add(
                    PromptTemplateRecord(
                        style_id=style_id,
                        template_data=config["template_data"],
                        reference_images=list(config["reference_images"]),
                    )
                )
        self.db.commit()
        return seeded
