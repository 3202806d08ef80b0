"""Canonical text form for generated and remote-sourced script content."""

from __future__ import annotations

import re

_LINE_BREAKS = re.compile(r"\r\n?")
_TRAILING_NEWLINES = re.compile(r"\n+\Z")

TERMINATOR = "\n"


def normalize_content(text: str | None) -> str:
    """Return ``text`` with LF line endings, no trailing spaces and one final newline.

    Empty or whitespace-only input normalizes to a single ``"\\n"``.  The
    function is idempotent, so content read back from the repository compares
    equal to freshly projected content.
    """
    if not text:
        return TERMINATOR
    unified = _LINE_BREAKS.sub(TERMINATOR, text)
    stripped = TERMINATOR.join(line.rstrip() for line in unified.split(TERMINATOR))
    return _TRAILING_NEWLINES.sub("", stripped) + TERMINATOR
