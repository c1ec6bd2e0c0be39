"""Domain event primitives: envelope and topic names."""

from __future__ import annotations

from .envelope import ENVELOPE_VERSION, EventEnvelope, build_envelope
from .topics import EventTopic

__all__ = [
    "ENVELOPE_VERSION",
    "EventEnvelope",
    "EventTopic",
    "build_envelope",
]
