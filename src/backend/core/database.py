"""
Database engine and session lifecycle.

The engine and session factory are process-wide: created on import, reused by
every request through `get_session`, and disposed once by `close_db()` on
application shutdown.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.exc import PendingRollbackError
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlmodel import SQLModel

from .config import settings

logger = logging.getLogger(__name__)


def _engine_kwargs() -> dict:
    """Pool options; SQLite (used for local runs and tests) takes none."""
    if settings.database.is_sqlite:
        return {}
    return {
        "pool_pre_ping": True,
        "pool_size": settings.database.pool_size,
        "max_overflow": settings.database.max_overflow,
        "pool_timeout": settings.database.pool_timeout,
        "pool_recycle": settings.database.pool_recycle,
        "connect_args": {
            "server_settings": {"application_name": settings.api.app_name},
            "command_timeout": 60,
        },
    }


engine = create_async_engine(
    settings.database.url,
    echo=settings.database.echo,
    future=True,
    **_engine_kwargs(),
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,  # Prevent additional queries after commit
    autoflush=False,
    autocommit=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting async database sessions.
    Commits a still-open transaction on success, rolls back on error.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            if session.in_transaction():
                try:
                    await session.commit()
                except PendingRollbackError:
                    await session.rollback()
                    raise
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def session_scope() -> AsyncGenerator[AsyncSession, None]:
    """
    Standalone session for work outside a request (startup seeding).

    Example:
        async with session_scope() as db:
            await setup_database_default_data(db)
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """
    Create all tables that do not exist yet.
    Should be called on application startup.
    """
    # Table classes register on SQLModel.metadata when imported
    import db.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.info("Database schema ensured")


async def close_db() -> None:
    """
    Close database connections.
    Should be called on application shutdown.
    """
    await engine.dispose()
