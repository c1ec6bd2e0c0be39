"""Errors raised by the repository layer.

They carry the model name and lookup key so services can translate them
into domain errors without parsing messages.
"""

from __future__ import annotations

from typing import Any


class RepositoryError(Exception):
    """A repository operation could not be carried out."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.details = dict(details or {})
        if self.details:
            rendered = ", ".join(f"{k}={v!r}" for k, v in self.details.items())
            message = f"{message} ({rendered})"
        super().__init__(message)


class NotFoundError(RepositoryError):
    """No row matched a primary-key lookup.

    Attributes:
        model_name: Mapped class that was queried
        identifier: Column/value pairs that were looked up
    """

    def __init__(self, model_name: str, identifier: dict[str, Any]) -> None:
        self.model_name = model_name
        self.identifier = identifier
        super().__init__(f"{model_name} not found", details=identifier)


__all__ = ["NotFoundError", "RepositoryError"]
