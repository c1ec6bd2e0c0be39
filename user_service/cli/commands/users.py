"""User management commands.

This module provides CLI commands for managing users through the
transactional service, so every change stages its domain event:
- Register users
- Change roles
- Activate/deactivate users
- Show a user
"""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING

import click

from user_service.cli.utils import coro, emit_json, error, header, key_value, success
from user_service.core.exceptions import AppException
from user_service.features.users.models import Role

if TYPE_CHECKING:
    from user_service.features.users.schemas import UserRead

ROLE_CHOICE = click.Choice([r.value for r in Role], case_sensitive=False)


def _print_user(user: UserRead) -> None:
    key_value("ID", user.id)
    key_value("Email", user.email)
    key_value("Name", user.name)
    key_value("Role", user.role.value)
    key_value("Department", user.department_id)
    key_value("Active", "yes" if user.active else "no")


@click.group(name="users")
def users() -> None:
    """User management commands."""


@users.command(name="create")
@click.option("--email", required=True, help="User email address")
@click.option("--name", required=True, help="Display name")
@click.option("--role", type=ROLE_CHOICE, default=Role.EMPLOYEE.value, show_default=True)
@click.option("--department", "department_id", default=None, help="Department code")
@click.option("--actor", "actor_id", default=None, help="Id of the acting administrator")
@coro
async def create_user(
    email: str,
    name: str,
    role: str,
    department_id: str | None,
    actor_id: str | None,
) -> None:
    """Register a user."""
    from pydantic import ValidationError

    from user_service.features.users.schemas import UserCreate
    from user_service.features.users.service import UserService
    from user_service.infra.database.session import get_session_factory

    try:
        data = UserCreate(email=email, name=name, role=role.upper(), department_id=department_id)
    except ValidationError as e:
        error(f"Invalid user data: {e}")
        sys.exit(1)

    try:
        user = await UserService(get_session_factory()).register_user(data, actor_id=actor_id)
    except AppException as e:
        error(e.detail)
        sys.exit(1)

    success(f"User {user.email} created with id {user.id}")


@users.command(name="set-role")
@click.argument("user_id")
@click.argument("role", type=ROLE_CHOICE)
@click.option("--actor", "actor_id", required=True, help="Id of the acting administrator")
@coro
async def set_role(user_id: str, role: str, actor_id: str) -> None:
    """Change a user's role (keeps the instructor profile in sync)."""
    from user_service.features.users.service import UserService
    from user_service.infra.database.session import get_session_factory

    try:
        user = await UserService(get_session_factory()).apply_role_transition(
            user_id, role.upper(), actor_id
        )
    except AppException as e:
        error(e.detail)
        sys.exit(1)

    success(f"User {user.id} now has role {user.role.value}")


@users.command(name="activate")
@click.argument("user_id")
@click.option("--actor", "actor_id", required=True, help="Id of the acting administrator")
@coro
async def activate(user_id: str, actor_id: str) -> None:
    """Activate a user account."""
    await _set_active(user_id, True, actor_id)


@users.command(name="deactivate")
@click.argument("user_id")
@click.option("--actor", "actor_id", required=True, help="Id of the acting administrator")
@coro
async def deactivate(user_id: str, actor_id: str) -> None:
    """Deactivate a user account."""
    await _set_active(user_id, False, actor_id)


async def _set_active(user_id: str, active: bool, actor_id: str) -> None:
    from user_service.features.users.service import UserService
    from user_service.infra.database.session import get_session_factory

    try:
        user = await UserService(get_session_factory()).set_user_active(user_id, active, actor_id)
    except AppException as e:
        error(e.detail)
        sys.exit(1)

    success(f"User {user.id} {'activated' if active else 'deactivated'}")


@users.command(name="show")
@click.argument("user_id")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format",
)
@coro
async def show(user_id: str, output_format: str) -> None:
    """Show a user."""
    from user_service.features.users.service import UserService
    from user_service.infra.database.session import get_session_factory

    try:
        user = await UserService(get_session_factory()).get_user(user_id)
    except AppException as e:
        error(e.detail)
        sys.exit(1)

    if output_format == "json":
        emit_json(user.model_dump(mode="json"))
        return

    header("User")
    _print_user(user)
