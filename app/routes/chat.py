"""Setup wizard chat endpoints."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, status
from slowapi import Limiter

from app.config import settings
from app.dependencies import (
    get_budget_model,
    get_current_user_id,
    get_gemini_client,
    get_user_or_ip,
    get_wizard_store,
)
from app.logging_config import get_logger
from app.schemas.chat import (
    ChatRequest,
    ChatResponse,
    SaveConfigRequest,
    SaveConfigResponse,
)
from app.services.advice_service import current_year_month
from app.services.chat_orchestrator import ConversationCompleteError, ConversationOrchestrator
from app.services.gemini_client import GeminiClient
from app.services.wizard_store import SqlWizardStore

logger = get_logger(__name__)
router = APIRouter()

# Rate limiter for AI endpoints
limiter = Limiter(key_func=get_user_or_ip)


@router.post("", response_model=ChatResponse)
@limiter.limit(f"{settings.ai_rate_limit_per_minute}/minute")
async def send_chat_turn(
    request: Request,
    chat_request: ChatRequest,
    user_id: UUID = Depends(get_current_user_id),
    client: GeminiClient = Depends(get_gemini_client),
    budget_model: Optional[str] = Depends(get_budget_model),
) -> ChatResponse:
    """
    Process one setup wizard turn.

    The caller sends the visible transcript so far, the new message and the
    ``session`` returned by the previous turn. The conversation never fails
    because of the AI service: it switches to a rule-based wizard instead.
    """
    orchestrator = ConversationOrchestrator(
        client,
        setup_context=chat_request.setup_context,
        snapshot=chat_request.session,
        budget_model=budget_model,
    )

    try:
        result = await orchestrator.send_turn(chat_request.messages, chat_request.message)
    except ConversationCompleteError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    logger.info(
        "Chat turn processed",
        user_id=str(user_id),
        mode=result.mode.value,
        is_complete=result.is_complete,
    )

    return ChatResponse(
        content=result.assistant_text,
        is_complete=result.is_complete,
        config=result.config,
        session=orchestrator.snapshot(),
    )


@router.post("/save", response_model=SaveConfigResponse, status_code=status.HTTP_201_CREATED)
async def save_wizard_config(
    save_request: SaveConfigRequest,
    user_id: UUID = Depends(get_current_user_id),
    store: SqlWizardStore = Depends(get_wizard_store),
) -> SaveConfigResponse:
    """Persist a completed wizard config: income, goals and this month's budgets."""
    year_month = save_request.year_month or current_year_month()
    result = await store.save_config(user_id, save_request.config, year_month)
    return SaveConfigResponse(
        year_month=result.year_month,
        goals_created=result.goals_created,
        budgets_written=result.budgets_written,
    )
