"""Process wiring: lifespan of the long-lived service resources."""

from __future__ import annotations

from .lifespan import ServiceState, lifespan

__all__ = ["ServiceState", "lifespan"]
