"""Database management commands."""

from __future__ import annotations

from pathlib import Path
import sys

import click
from sqlalchemy.exc import SQLAlchemyError

from user_service.cli.utils import coro, error, info, success
from user_service.core.settings import get_db_settings

# Repository root: user_service/cli/commands/db.py -> ../../..
PROJECT_ROOT = Path(__file__).resolve().parents[3]


@click.group(name="db")
def db() -> None:
    """Database management commands."""


@db.command(name="check")
@coro
async def check() -> None:
    """Verify database connectivity."""
    from user_service.infra.database.session import init_database

    db_settings = get_db_settings()
    info(f"Connecting to: {db_settings.host}:{db_settings.port}/{db_settings.name}")

    try:
        await init_database()
    except SQLAlchemyError as e:
        error(f"Failed to connect to database: {e}")
        sys.exit(1)

    success("Database connected successfully!")


@db.command(name="create-tables")
@coro
async def create_tables_cmd() -> None:
    """Create all tables from model metadata.

    Intended for development and tests; deployments run ``db upgrade``.

    Example:
        user-service db create-tables
    """
    from user_service.infra.database.session import create_tables

    info("Creating database tables...")
    try:
        await create_tables()
    except SQLAlchemyError as e:
        error(f"Failed to create tables: {e}")
        sys.exit(1)

    success("Database tables created successfully")


@db.command()
@click.option(
    "--revision",
    default="head",
    help="Target revision (default: head)",
)
@click.option(
    "--sql/--no-sql",
    default=False,
    help="Output SQL without executing",
)
def upgrade(revision: str, sql: bool) -> None:
    """Apply Alembic migrations."""
    from alembic import command
    from alembic.config import Config
    from alembic.util.exc import CommandError

    info(f"Upgrading database to: {revision}")

    config = Config()
    config.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))

    try:
        command.upgrade(config, revision, sql=sql)
    except (CommandError, SQLAlchemyError) as e:
        error(f"Failed to upgrade database: {e}")
        sys.exit(1)

    if not sql:
        success("Database upgraded successfully!")
