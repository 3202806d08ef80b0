"""Shared helpers."""

from .slug import sanitize_segment
from .telemetry import emit_event

__all__ = ["emit_event", "sanitize_segment"]
