"""
Ariya Backend — Database Session Management
=============================================

What:  Async SQLAlchemy engine, the session factory and the per-request
       session dependency used by the auth, profile and moderation routes.
How:   One engine per process. PostgreSQL (asyncpg) in deployments gets a
       sized pool; SQLite (aiosqlite) in tests keeps SQLAlchemy's defaults.

Pool settings for server databases come from Settings:
    db_pool_size / db_max_overflow / db_pool_pre_ping, recycle after 1 hour.
"""

import logging
from typing import Any, AsyncGenerator, Dict

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.config import settings

logger = logging.getLogger(__name__)


def _engine_options() -> Dict[str, Any]:
    options: Dict[str, Any] = {"echo": settings.log_level == "DEBUG"}
    if not settings.is_sqlite:
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=settings.db_pool_pre_ping,
            pool_recycle=3600,
        )
    return options


engine = create_async_engine(settings.database_url, **_engine_options())

# expire_on_commit=False: routes serialize users and reports after commit
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Declarative base shared by users, tokens and moderation reports."""


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    One session per request.

    Commits once the route (and every dependency that shares the session)
    has finished; any exception rolls the transaction back and propagates
    to the error handlers in app.main.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def check_database() -> bool:
    """Round-trips `SELECT 1`; False when the database cannot be reached."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        logger.warning("Database ping failed: %s", str(e))
        return False
    return True


async def dispose_engine() -> None:
    await engine.dispose()
    logger.info("Database connections closed")
