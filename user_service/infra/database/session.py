"""Process-wide async engine and session factory.

Nothing connects at import time. The engine is built from
``PostgresSettings`` on first use and disposed by ``close_database``,
which the service lifespan and every CLI command call on the way out.
"""

from __future__ import annotations

import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from user_service.core.settings import get_app_settings, get_db_settings

logger = logging.getLogger(__name__)


class _Handles:
    engine: AsyncEngine | None = None
    session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    if _Handles.engine is None:
        settings = get_db_settings()
        options = settings.engine_kwargs()
        options["echo"] = options["echo"] or get_app_settings().debug
        _Handles.engine = create_async_engine(settings.get_sqlalchemy_url(), **options)
    return _Handles.engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Sessions that keep loaded attributes after commit and flush only when asked."""
    if _Handles.session_factory is None:
        _Handles.session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _Handles.session_factory


async def init_database() -> None:
    """Run ``SELECT 1`` so startup fails fast on an unreachable database.

    Raises:
        sqlalchemy.exc.SQLAlchemyError: The check failed.
    """
    settings = get_db_settings()
    where = {"host": settings.host, "database": settings.name} if settings.is_postgres else {}
    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Database unreachable", extra={**where, "error": str(e)})
        raise
    logger.info("Database connection verified", extra=where)


async def create_tables() -> None:
    """``metadata.create_all`` for local databases; deployed schemas come from Alembic."""
    from user_service.core.models import Base

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created", extra={"tables": sorted(Base.metadata.tables)})


async def close_database() -> None:
    """Dispose the engine, if one was created."""
    engine = _Handles.engine
    if engine is None:
        return
    _Handles.engine = None
    _Handles.session_factory = None
    await engine.dispose()
    logger.info("Database engine disposed")


__all__ = [
    "close_database",
    "create_tables",
    "get_engine",
    "get_session_factory",
    "init_database",
]
