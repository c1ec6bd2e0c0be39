"""Service identity settings."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

Environment = Literal["development", "staging", "production", "test"]


class AppSettings(BaseSettings):
    """Who is running and where.

    Environment variables use APP_ prefix.
    Example: APP_SERVICE_NAME=user-service, APP_ENVIRONMENT=production

    ``service_name`` is stamped on every event envelope as ``producer`` and
    on every JSON log record as ``service``, so consumers can tell which
    deployment emitted a message.
    """

    service_name: str = Field(
        default="user-service",
        max_length=100,
        pattern=r"^[a-z0-9]+(-[a-z0-9]+)*$",
        description="Kebab-case producer name",
    )
    environment: Environment = Field(default="development")
    debug: bool = Field(default=False, description="Echo SQL statements")

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"
