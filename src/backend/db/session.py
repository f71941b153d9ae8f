"""
Async database engine and session management.

The engine is created lazily on first use and disposed on shutdown. Every
cast and every tally read opens its own session from the factory, so
connection lifetimes are scoped to a single unit of work.
"""

from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from core.config import settings
from db.base import Base

logger = structlog.get_logger(__name__)

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def create_engine_for_url(url: str) -> AsyncEngine:
    """Create an async engine, applying pool settings only where they apply."""
    if url.startswith("sqlite"):
        return create_async_engine(url)
    return create_async_engine(
        url,
        pool_pre_ping=True,
        pool_size=settings.POSTGRES_POOL_SIZE,
        max_overflow=settings.POSTGRES_MAX_OVERFLOW,
        pool_recycle=600,
    )


def get_engine() -> AsyncEngine:
    """Get (or lazily create) the process-wide engine."""
    global _engine
    if _engine is None:
        _engine = create_engine_for_url(settings.SQLALCHEMY_DATABASE_URI)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the session factory bound to the process-wide engine."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _session_factory


async def create_tables(engine: AsyncEngine) -> None:
    """Create all tables known to the metadata (idempotent)."""
    import models  # noqa: F401  - registers every mapped table

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_db() -> None:
    """Initialize the engine and optionally create missing tables."""
    engine = get_engine()
    if settings.DB_CREATE_TABLES:
        await create_tables(engine)
        logger.info("database_tables_ensured")


async def close_db() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        logger.info("database_engine_disposed")
    _engine = None
    _session_factory = None
