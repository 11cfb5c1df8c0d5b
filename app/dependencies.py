"""Shared FastAPI dependencies: caller identity and service wiring."""

from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request, status
from slowapi.util import get_remote_address

from app.config import settings
from app.database import AsyncSessionLocal
from app.services.advice_service import AdviceService
from app.services.advice_store import SqlAdviceStore
from app.services.gemini_client import GeminiClient
from app.services.wizard_store import SqlWizardStore


async def get_current_user_id(
    x_user_id: str = Header(..., alias="X-User-Id"),
) -> UUID:
    """
    User ID set by the upstream auth layer.

    Raises HTTPException 401 if the header is not a valid UUID.
    """
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user id",
        )


def get_user_or_ip(request: Request) -> str:
    """Rate-limit key: the caller's user id when present, otherwise the IP address."""
    user_id = request.headers.get("X-User-Id")
    if user_id:
        return f"user:{user_id}"
    return get_remote_address(request)


def get_gemini_client(request: Request) -> GeminiClient:
    """The application-wide client created in the lifespan handler."""
    return request.app.state.gemini_client


def get_budget_model() -> str | None:
    """Model for the budget breakdown call; None means the client default."""
    return settings.gemini_budget_model


def get_advice_store() -> SqlAdviceStore:
    return SqlAdviceStore(AsyncSessionLocal)


def get_wizard_store() -> SqlWizardStore:
    return SqlWizardStore(AsyncSessionLocal)


def get_advice_service(
    client: GeminiClient = Depends(get_gemini_client),
    store: SqlAdviceStore = Depends(get_advice_store),
) -> AdviceService:
    """Advice service bound to the shared client and the SQL store."""
    return AdviceService(client=client, store=store)
