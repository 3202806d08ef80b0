"""Utilities for turning human labels into stable path segments."""

from __future__ import annotations

import re
from typing import Pattern

_SEGMENT_PATTERN: Pattern[str] = re.compile(r"[\s/]+")


def sanitize_segment(value: str | None, *, fallback: str = "") -> str:
    """Collapse whitespace and slash runs in ``value`` into single underscores.

    Returns ``fallback`` when ``value`` is empty.  Case and every other
    character are preserved so labels stay recognisable in repository paths.
    """
    if not value:
        return fallback
    slug = _SEGMENT_PATTERN.sub("_", value)
    return slug or fallback
