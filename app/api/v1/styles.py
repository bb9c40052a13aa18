from fastapi import APIRouter

from app.api.deps import DbSessionDep
from app.api.v1.schemas import StyleRead
from app.services.styles import StyleService


router = APIRouter(tags=["styles"])


@router.get("/styles", response_model=list[StyleRead])
def list_styles(db=DbSessionDep):
    # Base prompts stay server-side.
    return [
        StyleRead(
            id=style.id,
            label=style.label,
            description=style.description,
            engines=sorted(style.engines),
            default_colors=list(style.default_colors),
        )
        for style in StyleService(db).list_styles()
    ]
