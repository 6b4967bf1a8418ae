"""
Database session management.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from typing import TYPE_CHECKING, Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from core.config import settings

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)

# Global engine instance
_engine: AsyncEngine | None = None
_session_maker: async_sessionmaker[AsyncSession] | None = None


def _engine_options(url: str) -> dict[str, Any]:
    options: dict[str, Any] = {"echo": settings.DATABASE_ECHO}
    if url.startswith("sqlite"):
        return options
    options.update(
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        pool_timeout=settings.DATABASE_POOL_TIMEOUT,
        pool_pre_ping=True,  # Verify connections before using
    )
    return options


def get_engine(url: str | None = None) -> AsyncEngine:
    """
    Return the shared async engine, creating it on first use.

    Args:
        url: Optional database URL overriding ``DATABASE_URL``
    """
    global _engine
    if _engine is None:
        database_url = url or settings.DATABASE_URL
        if not database_url:
            raise ValueError("DATABASE_URL not configured")

        _engine = create_async_engine(database_url, **_engine_options(database_url))
        logger.info("Database engine created")
    return _engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    global _session_maker
    if _session_maker is None:
        engine = get_engine()
        _session_maker = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        logger.info("Session maker created")
    return _session_maker


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency yielding a session.

    Yields:
        AsyncSession instance
    """
    session_maker = get_session_maker()
    async with session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db() -> None:
    """Create all tables."""
    from database.base import Base
    import database.models  # noqa: F401

    engine = get_engine()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created")


async def close_db() -> None:
    """Dispose of the engine and session maker."""
    global _engine, _session_maker

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_maker = None
        logger.info("Database connections closed")


async def reset_engine(url: str) -> AsyncEngine:
    """Replace the shared engine, used by tests and one-off scripts."""
    await close_db()
    return get_engine(url)
