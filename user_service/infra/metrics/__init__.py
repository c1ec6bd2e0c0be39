"""Metrics infrastructure for Prometheus monitoring."""

from __future__ import annotations

from user_service.infra.metrics.prometheus import REGISTRY

__all__ = ["REGISTRY"]
