"""Async engine and session factory for the PostgreSQL stores."""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.config import settings
from app.logging_config import get_logger
from app.models.base import Base

logger = get_logger(__name__)


def async_url(database_url: str) -> str:
    """Point a plain ``postgresql://`` URL at the asyncpg driver."""
    if database_url.startswith("postgresql://"):
        return "postgresql+asyncpg://" + database_url[len("postgresql://"):]
    return database_url


async_engine = create_async_engine(
    async_url(settings.database_url),
    pool_size=settings.database_pool_size,
    max_overflow=settings.database_max_overflow,
    pool_pre_ping=True,
    echo=settings.debug,
)

# Stores open one session per call; rows are read after commit.
AsyncSessionLocal = async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


async def init_db() -> None:
    """Create missing tables; migrations stay the source of truth in production."""
    import app.models  # noqa: F401  registers tables on Base.metadata

    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured", tables=sorted(Base.metadata.tables))


async def close_db() -> None:
    await async_engine.dispose()
    logger.info("Database engine disposed")
