"""Database settings.

PostgreSQL is the production target. ``DATABASE_URL`` may also name any
other async SQLAlchemy URL (``sqlite+aiosqlite:///./dev.db``), which is
used as-is, without pooling options, for local runs and tests.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import quote_plus, unquote, urlsplit

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _components_from_dsn(dsn: str) -> dict[str, Any]:
    parts = urlsplit(dsn)
    found: dict[str, Any] = {}
    if "+" in parts.scheme:
        found["driver"] = parts.scheme.partition("+")[2]
    if parts.hostname:
        found["host"] = parts.hostname
    if parts.port:
        found["port"] = parts.port
    if parts.username:
        found["user"] = unquote(parts.username)
    if parts.password:
        found["password"] = SecretStr(unquote(parts.password))
    if parts.path not in ("", "/"):
        found["name"] = parts.path[1:]
    return found


class PostgresSettings(BaseSettings):
    """Connection and pool settings.

    Environment variables use DB_ prefix, except ``DATABASE_URL``.
    Example: DATABASE_URL=postgresql+psycopg://svc:pw@db:5432/users
    or DB_HOST=db, DB_USER=svc, DB_PASSWORD=pw, DB_NAME=users
    """

    enabled: bool = Field(default=True)
    dsn: str | None = Field(default=None, alias="DATABASE_URL")

    host: str = Field(default="localhost", min_length=1, max_length=255)
    port: int = Field(default=5432, ge=1, le=65535)
    user: str = Field(default="postgres", min_length=1, max_length=100)
    password: SecretStr = Field(default=SecretStr("postgres"))
    name: str = Field(default="user_service", min_length=1, max_length=100)
    driver: str = Field(default="psycopg", description="Async driver in the URL scheme")
    application_name: str = Field(
        default="user-service",
        max_length=100,
        description="Shown in pg_stat_activity",
    )

    pool_size: int = Field(default=10, ge=1, le=100)
    max_overflow: int = Field(default=10, ge=0, le=100)
    pool_timeout: float = Field(default=30.0, ge=0.1, le=300.0)
    pool_recycle: int = Field(default=1800, ge=0, le=86400, description="Seconds")
    pool_pre_ping: bool = Field(default=True)
    echo: bool = Field(default=False)

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        populate_by_name=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    @model_validator(mode="after")
    def _apply_dsn(self) -> PostgresSettings:
        if self.passthrough_url is None and self.dsn:
            # frozen model: bypass __setattr__
            for field_name, value in _components_from_dsn(self.dsn).items():
                object.__setattr__(self, field_name, value)
        return self

    @property
    def passthrough_url(self) -> str | None:
        """A non-PostgreSQL ``DATABASE_URL``, used verbatim."""
        if self.dsn and not self.dsn.startswith("postgresql"):
            return self.dsn
        return None

    @property
    def url(self) -> str:
        """PostgreSQL URL rebuilt from the component fields."""
        password = quote_plus(self.password.get_secret_value())
        return (
            f"postgresql+{self.driver}://{quote_plus(self.user)}:{password}@{self.host}:{self.port}/{self.name}"
            f"?application_name={quote_plus(self.application_name)}"
        )

    @property
    def is_configured(self) -> bool:
        return self.enabled

    @property
    def is_postgres(self) -> bool:
        return self.passthrough_url is None

    def get_sqlalchemy_url(self) -> str:
        """URL handed to ``create_async_engine`` and to Alembic."""
        return self.passthrough_url or self.url

    def engine_kwargs(self) -> dict[str, Any]:
        """``create_async_engine`` options; pool sizing applies to PostgreSQL only."""
        kwargs: dict[str, Any] = {"echo": self.echo}
        if self.is_postgres:
            kwargs.update(
                pool_size=self.pool_size,
                max_overflow=self.max_overflow,
                pool_timeout=self.pool_timeout,
                pool_recycle=self.pool_recycle,
                pool_pre_ping=self.pool_pre_ping,
            )
        return kwargs
