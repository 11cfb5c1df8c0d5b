"""Monthly advice API endpoints."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from slowapi import Limiter

from app.config import settings
from app.dependencies import get_advice_service, get_current_user_id, get_user_or_ip
from app.schemas.advice import (
    YEAR_MONTH_PATTERN,
    AdviceHistoryItem,
    AdviceQuestionRequest,
    AdviceQuestionResponse,
    AdviceRecord,
    GenerateAdviceRequest,
)
from app.services.advice_service import AdviceService

router = APIRouter()

# Rate limiter for AI endpoints
limiter = Limiter(key_func=get_user_or_ip)


@router.get("", response_model=AdviceRecord)
async def get_cached_advice(
    month: Optional[str] = Query(None, pattern=YEAR_MONTH_PATTERN, description="YYYY-MM"),
    user_id: UUID = Depends(get_current_user_id),
    service: AdviceService = Depends(get_advice_service),
) -> AdviceRecord:
    """Get stored advice for a month without generating anything.

    Raises:
        HTTPException 404 if no advice was generated for the month yet
    """
    advice = await service.find_cached_advice(user_id, month)
    if advice is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Advice not found")
    return advice


@router.post("/generate", response_model=AdviceRecord, status_code=status.HTTP_201_CREATED)
@limiter.limit(f"{settings.ai_rate_limit_per_minute}/minute")
async def generate_advice(
    request: Request,
    generate_request: GenerateAdviceRequest,
    user_id: UUID = Depends(get_current_user_id),
    service: AdviceService = Depends(get_advice_service),
) -> AdviceRecord:
    """Return cached advice for the month, or generate it (always when ``force``)."""
    return await service.get_or_generate_advice(
        user_id, month=generate_request.month, force=generate_request.force
    )


@router.get("/history", response_model=list[AdviceHistoryItem])
async def get_advice_history(
    months: int = Query(6, ge=1, le=24, description="Number of months"),
    user_id: UUID = Depends(get_current_user_id),
    service: AdviceService = Depends(get_advice_service),
) -> list[AdviceHistoryItem]:
    """Scores of recent months, oldest first."""
    return await service.get_advice_history(user_id, months)


@router.post("/question", response_model=AdviceQuestionResponse)
@limiter.limit(f"{settings.ai_rate_limit_per_minute}/minute")
async def ask_question(
    request: Request,
    question_request: AdviceQuestionRequest,
    user_id: UUID = Depends(get_current_user_id),
    service: AdviceService = Depends(get_advice_service),
) -> AdviceQuestionResponse:
    """Answer a free-form financial question."""
    answer = await service.answer_freeform_question(question_request.question)
    return AdviceQuestionResponse(answer=answer)
