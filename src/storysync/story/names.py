"""Normalized label → identity index used for every reverse lookup."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from ..errors import IdentityAmbiguous, IdentityNotFound
from ..utils.slug import sanitize_segment
from .entities import ApplicationEntity

LOGGER = logging.getLogger(__name__)

NameIndex = Dict[str, List[str]]


def normalize_label(label: str) -> str:
    """Collapse whitespace and slash runs in ``label`` into single underscores."""
    return sanitize_segment(label)


def build_name_index(names: Mapping[str, Any]) -> NameIndex:
    """Group the raw identities of ``names`` by their normalized label."""
    index: NameIndex = {}
    for identity, label in names.items():
        if not isinstance(label, str) or not label:
            continue
        bucket = index.setdefault(normalize_label(label), [])
        if identity not in bucket:
            bucket.append(identity)
    return index


def build_index(application: Optional[ApplicationEntity]) -> NameIndex:
    """Build a fresh index from the names map of ``application``."""
    if application is None:
        return {}
    index = build_name_index(application.names())
    LOGGER.debug("Built name index with %d label(s)", len(index))
    return index


def resolve_single(index: NameIndex, label: str) -> str:
    """Return the only identity carrying ``label``.

    Raises:
        IdentityNotFound: No identity carries the label.
        IdentityAmbiguous: More than one identity carries the label.
    """
    key = normalize_label(label)
    candidates = index.get(key) or []
    if not candidates:
        raise IdentityNotFound(f"No identity is named '{label}'", label=label)
    if len(candidates) > 1:
        raise IdentityAmbiguous(
            f"Label '{label}' matches {len(candidates)} identities",
            label=label,
            candidates=tuple(candidates),
        )
    return candidates[0]


def lookup_label(names: Mapping[str, Any], *identities: Optional[str]) -> Optional[str]:
    """Return the first non-empty label found for ``identities`` in order."""
    for identity in identities:
        if not identity:
            continue
        label = names.get(identity)
        if isinstance(label, str) and label:
            return label
    return None


__all__ = [
    "NameIndex",
    "build_index",
    "build_name_index",
    "lookup_label",
    "normalize_label",
    "resolve_single",
]
