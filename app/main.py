"""LifeBalance API: setup wizard chat and monthly advice over Gemini."""

import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.config import settings
from app.database import close_db, init_db
from app.dependencies import get_user_or_ip
from app.logging_config import bind_contextvars, clear_contextvars, configure_logging, get_logger
from app.services.advice_service import AdvicePersistenceError, ProfileNotFoundError
from app.services.gemini_client import GeminiClient

configure_logging()
logger = get_logger(__name__)

limiter = Limiter(key_func=get_user_or_ip)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Own the shared Gemini client and the database engine for the process lifetime."""
    logger.info(
        "LifeBalance API starting",
        version=settings.app_version,
        model=settings.gemini_model,
        budget_model=settings.gemini_budget_model or settings.gemini_model,
    )

    app.state.gemini_client = GeminiClient.from_settings(settings)
    if not settings.gemini_api_key:
        logger.warning("GEMINI_API_KEY not configured, chat turns will use the rule-based wizard")

    try:
        await init_db()
        yield
    finally:
        await app.state.gemini_client.aclose()
        await close_db()
        logger.info("LifeBalance API stopped")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Setup wizard and monthly advice backed by Gemini",
    debug=settings.debug,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url=None,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

if settings.enable_metrics:
    app.mount("/metrics", make_asgi_app())

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "X-User-Id", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)


@app.middleware("http")
async def bind_request_context(request: Request, call_next) -> Response:
    """Tag every log line of a request with its id and caller."""
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    clear_contextvars()
    bind_contextvars(
        request_id=request_id,
        user_id=request.headers.get("X-User-Id"),
        route=f"{request.method} {request.url.path}",
    )

    started = time.perf_counter()
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id

    logger.info(
        "Request handled",
        status_code=response.status_code,
        duration_ms=round((time.perf_counter() - started) * 1000, 1),
    )
    return response


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Liveness check; also reports whether chat can reach the model at all."""
    return {
        "status": "healthy",
        "chat_mode": "ai" if settings.gemini_api_key else "fallback",
    }


@app.exception_handler(ProfileNotFoundError)
async def profile_not_found_handler(request: Request, exc: ProfileNotFoundError) -> JSONResponse:
    """Advice requested before the user finished setup."""
    return JSONResponse(status_code=404, content={"detail": "Profile not found"})


@app.exception_handler(AdvicePersistenceError)
async def advice_not_saved_handler(request: Request, exc: AdvicePersistenceError) -> JSONResponse:
    logger.error("Advice was generated but not stored", error=str(exc))
    return JSONResponse(status_code=503, content={"detail": "Advice could not be saved, try again"})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled exception", error=str(exc), exc_info=True)
    detail = str(exc) if settings.debug else "An unexpected error occurred"
    return JSONResponse(status_code=500, content={"detail": detail})


from app.routes import advice, chat  # noqa: E402

app.include_router(chat.router, prefix="/api/chat", tags=["chat"])
app.include_router(advice.router, prefix="/api/advice", tags=["advice"])
