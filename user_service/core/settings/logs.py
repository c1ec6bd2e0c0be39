"""Logging settings."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

# Client libraries that log every connection and channel event at INFO
LIBRARY_LOGGERS = ("aio_pika", "aiormq", "faststream", "sqlalchemy.engine", "alembic")


class LoggingSettings(BaseSettings):
    """Structured logging configuration.

    Environment variables use LOG_ prefix.
    Example: LOG_LEVEL=DEBUG, LOG_JSON=false, LOG_LIBRARY_LEVEL=INFO

    The ``service`` field on JSON records comes from ``APP_SERVICE_NAME``.
    """

    level: LogLevel = Field(default="INFO", description="Root logger level")
    json_logs: bool = Field(
        default=True,
        alias="json",
        description="JSON Lines output; plain text when false",
    )
    library_level: LogLevel = Field(
        default="WARNING",
        description="Level for broker and database client loggers",
    )

    # Console
    console_enabled: bool = Field(default=True, description="Log to stderr")
    console_level: LogLevel | None = Field(default=None, description="Defaults to level")

    # Rotating file
    file_enabled: bool = Field(default=False)
    file_path: Path = Field(default=Path("logs/user-service.log.jsonl"))
    file_level: LogLevel | None = Field(default=None, description="Defaults to level")
    file_max_bytes: int = Field(default=10 * 1024 * 1024, ge=1024, le=1024**3)
    file_backup_count: int = Field(default=5, ge=0, le=100)

    # Record content
    include_context: bool = Field(
        default=True,
        description="Copy bound context (correlation_id, outbox_event_id) onto records",
    )
    include_process_info: bool = Field(
        default=False,
        description="Add process id/name, useful with several outbox workers per host",
    )
    capture_warnings: bool = Field(default=True, description="Route `warnings` through logging")

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        env_ignore_empty=True,
    )

    @field_validator("level", "library_level", "console_level", "file_level", mode="before")
    @classmethod
    def normalize_level(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v

    def to_logging_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for ``configure_logging``."""
        return {
            "log_level": self.level,
            "json_logs": self.json_logs,
            "library_level": self.library_level,
            "console_enabled": self.console_enabled,
            "console_level": self.console_level or self.level,
            "file_path": self.file_path if self.file_enabled else None,
            "file_level": self.file_level or self.level,
            "file_max_bytes": self.file_max_bytes,
            "file_backup_count": self.file_backup_count,
            "include_context": self.include_context,
            "include_process_info": self.include_process_info,
            "capture_warnings": self.capture_warnings,
        }
