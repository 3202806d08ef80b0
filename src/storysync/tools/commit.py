"""Helpers for composing and guarding repository commits."""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

from ..schema import DiffEntry, DiffStatus

HEADER_LIMIT = 50
BODY_LINE_LIMIT = 72

_HEADER_PATTERN = re.compile(r"^(?P<type>[A-Za-z]+)?(?:\((?P<scope>[^()]*)\))?(?P<bang>!)?(?::\s*(?P<summary>.*))?$")


@dataclass(slots=True)
class CommitValidation:
    """Outcome of :func:`validate_commit_message`."""

    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def deepest_shared_scope(paths: Sequence[str]) -> Optional[str]:
    """Return the last segment of the longest common directory prefix of ``paths``.

    ``["stories/S/scripts/widgets/A/x.js", "stories/S/scripts/global/B/y.js"]``
    yields ``"scripts"``.  ``None`` is returned when nothing is shared.
    """
    if not paths:
        return None
    split = [path.split("/") for path in paths]
    shortest = min(len(parts) for parts in split)
    shared = 0
    for position in range(shortest):
        segment = split[0][position]
        if all(parts[position] == segment for parts in split):
            shared += 1
        else:
            break
    if shared == 0:
        return None
    return split[0][shared - 1]


def validate_commit_message(message: str) -> CommitValidation:
    """Check ``message`` against conventional-commit conventions.

    A missing type or summary is an error; style issues are warnings.
    """
    result = CommitValidation()
    lines = (message or "").strip().splitlines()
    if not lines:
        result.errors.append("Commit message is empty")
        return result

    header = lines[0].strip()
    match = _HEADER_PATTERN.match(header)
    commit_type = match.group("type") if match else None
    summary = (match.group("summary") or "").strip() if match else ""
    if not commit_type:
        result.errors.append("Commit type is required (e.g., feat, fix)")
    if not summary:
        result.errors.append("Commit summary is required")
    else:
        if len(header) > HEADER_LIMIT:
            result.warnings.append(f"Header is {len(header)} chars (recommended: under {HEADER_LIMIT})")
        if summary.endswith("."):
            result.warnings.append("Summary should not end with a period")
        if summary[0].isupper():
            result.warnings.append("Summary should usually start with lowercase")

    for number, line in enumerate(lines[1:], start=2):
        if len(line) > BODY_LINE_LIMIT:
            result.warnings.append(f"Line {number} exceeds {BODY_LINE_LIMIT} characters")
    return result


def commit_fingerprint(message: str, entries: Iterable[DiffEntry]) -> str:
    """Return a SHA-256 hash identifying a commit of ``entries`` with ``message``."""
    parts: List[str] = [message]
    for entry in sorted(entries, key=lambda item: item.path):
        parts.append(entry.path)
        parts.append(entry.status.value)
        if entry.status is not DiffStatus.DELETED and entry.new_content:
            parts.append(entry.new_content)
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()


__all__ = [
    "BODY_LINE_LIMIT",
    "CommitValidation",
    "HEADER_LIMIT",
    "commit_fingerprint",
    "deepest_shared_scope",
    "validate_commit_message",
]
