"""``user-service`` command line."""

from __future__ import annotations

import click

from user_service import __version__
from user_service.cli.commands import db, outbox, users
from user_service.infra.logging.config import setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="user-service")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Override LOG_LEVEL for this invocation",
)
@click.pass_context
def cli(ctx: click.Context, log_level: str | None) -> None:
    """User administration and domain-event delivery.

    \b
    Command Groups:
      db       Schema migrations and connectivity
      outbox   Outbox publisher and maintenance
      users    User and department administration

    \b
    Quick Start:
      user-service db upgrade
      user-service users create --email ada@example.com --name "Ada Lovelace"
      user-service users set-role <id> INSTRUCTOR --actor <admin-id>
      user-service outbox run --metrics-port 9108
    """
    ctx.ensure_object(dict)
    if log_level:
        setup_logging(force=True, log_level=log_level.upper())


cli.add_command(db.db)
cli.add_command(outbox.outbox)
cli.add_command(users.users)


def main() -> None:
    setup_logging()
    cli(obj={})


if __name__ == "__main__":
    main()
