"""Alembic environment for the user service schema.

Runs in two ways: ``user-service db upgrade`` (no ini file, the service has
already configured logging) and the plain ``alembic`` command with
``alembic.ini``. Both read the database URL from ``PostgresSettings``.
SQLite databases are migrated in batch mode so ALTERs work.
"""

from __future__ import annotations

import asyncio
import logging
from logging.config import fileConfig
from typing import TYPE_CHECKING, Any

from sqlalchemy import pool
from sqlalchemy.ext.asyncio import async_engine_from_config

from alembic import context
from user_service.core.models import Base
from user_service.core.settings import get_db_settings

if TYPE_CHECKING:
    from alembic.operations.ops import MigrationScript
    from alembic.runtime.migration import MigrationContext
    from sqlalchemy.engine import Connection

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

logger = logging.getLogger("alembic.env")

db_settings = get_db_settings()
if db_settings.is_configured:
    # configparser interpolation: escape percent-encoded characters
    config.set_main_option("sqlalchemy.url", db_settings.get_sqlalchemy_url().replace("%", "%%"))

_SYSTEM_SCHEMAS = frozenset({"pg_catalog", "information_schema"})


def include_object(obj: Any, name: str | None, type_: str, reflected: bool, compare_to: Any) -> bool:
    del reflected, compare_to
    if type_ == "table" and name == "alembic_version":
        return False
    return getattr(obj, "schema", None) not in _SYSTEM_SCHEMAS


def skip_empty_revision(context_: MigrationContext, revision: Any, directives: list[MigrationScript]) -> None:
    """Drop an autogenerated revision that contains no operations."""
    del context_, revision
    if not getattr(config.cmd_opts, "autogenerate", False) or not directives:
        return
    upgrade_ops = directives[0].upgrade_ops
    if upgrade_ops is not None and upgrade_ops.is_empty():
        directives.clear()
        logger.info("No schema changes detected; no revision written")


def _configure(**options: Any) -> None:
    context.configure(
        target_metadata=Base.metadata,
        compare_type=True,
        include_object=include_object,
        **options,
    )
    with context.begin_transaction():
        context.run_migrations()


def _run_sync(connection: Connection) -> None:
    _configure(
        connection=connection,
        render_as_batch=connection.dialect.name == "sqlite",
        process_revision_directives=skip_empty_revision,
    )


async def _run_online() -> None:
    engine = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_run_sync)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    _configure(
        url=config.get_main_option("sqlalchemy.url"),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
else:
    asyncio.run(_run_online())
