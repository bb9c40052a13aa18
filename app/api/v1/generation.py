from fastapi import APIRouter, Query

from app.api.deps import DbSessionDep, GenerationServiceDep
from app.api.v1.schemas import GenerateResponse, GenerationHistoryRead
from app.services.generation import GenerateRequest, GenerationService
from app.services.history import HistoryService


router = APIRouter(tags=["generation"])


@router.post("/generate", response_model=GenerateResponse)
async def generate_image(payload: GenerateRequest, service: GenerationService = GenerationServiceDep):
    result = await service.generate(payload)
    return GenerateResponse(image_url=result.image_url, history_id=result.history_id)


@router.get("/history", response_model=list[GenerationHistoryRead])
def list_history(limit: int = Query(default=50, ge=1, le=500), db=DbSessionDep):
    records = HistoryService(db).list_records(limit=limit)
    return [GenerationHistoryRead.model_validate(record) for record in records]
