"""User administration service with transactional outbox event delivery."""

from __future__ import annotations

__version__ = "0.1.0"
