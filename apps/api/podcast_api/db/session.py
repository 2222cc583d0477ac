# apps/api/podcast_api/db/session.py
"""
Database session management for the Podcast Platform API.
Async SQLAlchemy engine, session factory, and FastAPI dependency.
PostgreSQL (asyncpg) in production, SQLite (aiosqlite) for development and tests.
"""

import logging
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from podcast_api.core.config import settings

logger = logging.getLogger(__name__)


def build_engine(url: str | None = None) -> AsyncEngine:
    """Create an async engine; pool tuning only applies to server databases."""
    url = url or settings.DATABASE_URL
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=False, future=True)

    return create_async_engine(
        url,
        echo=settings.ENVIRONMENT == "development",  # SQL logging only in dev
        future=True,
        pool_pre_ping=True,           # Detect & replace broken/stale connections
        pool_size=10,
        max_overflow=5,
        pool_timeout=30,
        pool_recycle=600,
    )


# ────────────────────────────────────────────────
# Global Async Engine (created once per process)
# ────────────────────────────────────────────────
engine: AsyncEngine = build_engine()


# ────────────────────────────────────────────────
# Async Session Factory (per-request sessions)
# ────────────────────────────────────────────────
async_session_factory = async_sessionmaker(
    engine,
    expire_on_commit=False,       # Prevent expired objects after commit
    class_=AsyncSession,
)


# ────────────────────────────────────────────────
# FastAPI Dependency: per-request async session
# ────────────────────────────────────────────────
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency: yields a new async session per request.
    Automatically commits on success, rolls back on error, closes always.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# ────────────────────────────────────────────────
# Startup: verify connection, optionally create tables (called from lifespan)
# ────────────────────────────────────────────────
async def init_db(db_engine: AsyncEngine | None = None) -> None:
    """
    Run on app startup: verifies the connection and, when DB_AUTO_CREATE is set,
    creates any missing tables. Raises RuntimeError if the database is unreachable.
    """
    from podcast_api.db.models import Base

    db_engine = db_engine or engine
    try:
        async with db_engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
            if settings.DB_AUTO_CREATE:
                await conn.run_sync(Base.metadata.create_all)
        logger.info(f"Database connection verified ({db_engine.dialect.name})")
    except Exception as e:
        logger.critical("Database connection failed on startup", exc_info=True)
        raise RuntimeError("Database unavailable") from e


async def dispose_db(db_engine: AsyncEngine | None = None) -> None:
    try:
        await (db_engine or engine).dispose()
        logger.info("Database engine disposed on shutdown")
    except Exception as dispose_exc:
        logger.warning("Error during DB shutdown", exc_info=dispose_exc)
