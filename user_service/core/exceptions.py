"""Exception hierarchy for the service.

Each category class fixes a status code and title in RFC 7807 terms, so an
HTTP layer placed in front of the transactors can map errors without
reading messages. Concrete errors choose a ``type`` slug and build their
``detail`` from their arguments.
"""

from __future__ import annotations

from typing import Any, ClassVar


class AppException(Exception):
    """Base for every error this package raises deliberately.

    Attributes:
        detail: Human-readable message (what the CLI prints).
        type: Stable slug identifying the error, e.g. "user-not-found".
        extra: Structured context, safe to pass to ``logger.*(extra=...)``.

    Example:
        raise ConflictException("Email already registered", extra={"email": email})
    """

    status_code: ClassVar[int] = 500
    title: ClassVar[str] = "Error"
    default_type: ClassVar[str] = "about:blank"

    def __init__(
        self,
        detail: str,
        *,
        type: str | None = None,  # noqa: A002
        extra: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(detail)
        self.detail = detail
        self.type = type or self.default_type
        self.extra = dict(extra or {})

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(detail={self.detail!r}, type={self.type!r})"


class NotFoundException(AppException):
    status_code = 404
    title = "Not Found"
    default_type = "not-found"


class ValidationException(AppException):
    status_code = 422
    title = "Validation Error"
    default_type = "validation-error"


class ConflictException(AppException):
    """A write collided with existing state (duplicate key)."""

    status_code = 409
    title = "Conflict"
    default_type = "conflict"


class ServiceUnavailableException(AppException):
    """A dependency (database, broker) could not be reached."""

    status_code = 503
    title = "Service Unavailable"
    default_type = "service-unavailable"


class InternalServerException(AppException):
    status_code = 500
    title = "Internal Server Error"
    default_type = "internal-error"


class OutboxError(InternalServerException):
    """The outbox was used incorrectly, e.g. staging outside a transaction."""

    default_type = "outbox-error"


class BrokerConnectionError(ServiceUnavailableException):
    """The broker could not be reached within ``RABBIT_CONNECTION_TIMEOUT``."""

    default_type = "broker-unavailable"


__all__ = [
    "AppException",
    "BrokerConnectionError",
    "ConflictException",
    "InternalServerException",
    "NotFoundException",
    "OutboxError",
    "ServiceUnavailableException",
    "ValidationException",
]
