"""RabbitMQ settings for the outbox publish gateway."""

from __future__ import annotations

from typing import Any, Literal
from urllib.parse import quote, unquote, urlsplit

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ExchangeType = Literal["topic", "direct"]


def _components_from_uri(uri: str) -> dict[str, Any]:
    """Split an AMQP URI into the component fields it sets."""
    parts = urlsplit(uri)
    found: dict[str, Any] = {"ssl_enabled": parts.scheme == "amqps"}
    if parts.hostname:
        found["host"] = parts.hostname
    if parts.port:
        found["port"] = parts.port
    if parts.username:
        found["username"] = unquote(parts.username)
    if parts.password:
        found["password"] = SecretStr(unquote(parts.password))
    if parts.path not in ("", "/"):
        found["vhost"] = unquote(parts.path[1:])
    return found


class RabbitSettings(BaseSettings):
    """Broker connection, timeouts and the events exchange.

    Environment variables use RABBIT_ prefix, except ``AMQP_URI`` which,
    when set, overrides the connection components.
    Example: RABBIT_HOST=mq, RABBIT_PUBLISH_TIMEOUT=2.5
    """

    enabled: bool = Field(default=True, description="Publish to RabbitMQ")
    amqp_uri: str | None = Field(default=None, alias="AMQP_URI")

    host: str = Field(default="localhost", min_length=1, max_length=255)
    port: int = Field(default=5672, ge=1, le=65535)
    username: str = Field(default="guest", min_length=1, max_length=100)
    password: SecretStr = Field(default=SecretStr("guest"))
    vhost: str = Field(default="/", description="Leading slash optional")
    ssl_enabled: bool = Field(default=False, description="Connect with amqps://")

    connection_timeout: float = Field(default=10.0, ge=0.1, le=300.0, description="Seconds to connect")
    publish_timeout: float = Field(
        default=5.0,
        gt=0,
        le=120.0,
        description="Seconds before a publish counts as failed; a stalled broker must not stall a tick",
    )
    graceful_timeout: float = Field(default=15.0, ge=0.1, le=300.0, description="Seconds to drain on close")

    exchange_name: str = Field(
        default="users.events",
        min_length=1,
        max_length=100,
        pattern=r"^[a-zA-Z0-9_.-]+$",
    )
    exchange_type: ExchangeType = Field(default="topic", description="Routing keys are event topics")

    model_config = SettingsConfigDict(
        env_prefix="RABBIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        populate_by_name=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    @model_validator(mode="after")
    def _apply_uri(self) -> RabbitSettings:
        if self.amqp_uri:
            # frozen model: bypass __setattr__
            for name, value in _components_from_uri(self.amqp_uri).items():
                object.__setattr__(self, name, value)
        return self

    @property
    def url(self) -> str:
        """AMQP URI rebuilt from the component fields."""
        credentials = quote(self.username, safe="")
        secret = self.password.get_secret_value()
        if secret:
            credentials = f"{credentials}:{quote(secret, safe='')}"
        vhost = self.vhost.strip("/")
        scheme = "amqps" if self.ssl_enabled else "amqp"
        return f"{scheme}://{credentials}@{self.host}:{self.port}/{quote(vhost, safe='')}"

    @property
    def is_configured(self) -> bool:
        return self.enabled and bool(self.host)

    def get_url(self) -> str:
        """Return ``url`` for an enabled broker.

        Raises:
            ValueError: If RabbitMQ is disabled.
        """
        if not self.enabled:
            raise ValueError("RabbitMQ is not enabled")
        return self.url
