"""Decode the resource envelope returned by the document store.

The store wraps the story document as a JSON string inside
``resource.cdata.content``.  Three failure modes are reported separately so
callers can react to each one: an expired session (the store answered with an
HTML login page), an undecodable payload, and an envelope missing its
required wrapper fields.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Mapping, Optional

from ..errors import DocumentDecodeError, MalformedEnvelope, SessionExpired
from ..schema import ParsedStory
from .extract import extract_story

LOGGER = logging.getLogger(__name__)

DEFAULT_STORY_NAME = "Untitled Story"
_SESSION_MARKERS = (
    "sitzung beendet",
    "session terminated",
    "session timeout",
    "login",
)


def _looks_like_login_page(raw: str) -> bool:
    lowered = raw.strip().lower()
    if lowered.startswith("<html") or lowered.startswith("<!doctype html"):
        return True
    return any(marker in lowered for marker in _SESSION_MARKERS)


def _decode_payload(raw: str | bytes) -> Any:
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    try:
        return json.loads(text)
    except ValueError as error:
        if _looks_like_login_page(text):
            raise SessionExpired("The document store returned a login page; the session has expired.") from error
        raise DocumentDecodeError(
            f"Document payload is not valid JSON: {error}",
            details={"prefix": text[:120]},
        ) from error


def _resource(data: Any) -> Mapping[str, Any]:
    if not data:
        raise MalformedEnvelope("Document store returned an empty response.")
    if not isinstance(data, Mapping):
        raise MalformedEnvelope(f"Expected a JSON object, got {type(data).__name__}.")
    resource = data.get("resource", data)
    if not isinstance(resource, Mapping):
        raise MalformedEnvelope(
            "Invalid story structure: 'resource' is not an object.",
            details={"keys": sorted(data.keys())},
        )
    if not isinstance(resource.get("cdata"), Mapping):
        raise MalformedEnvelope(
            "Invalid story structure: 'cdata' property is missing on the resource object.",
            details={"keys": sorted(resource.keys())},
        )
    return resource


def _decode_inner(raw: Any) -> Any:
    if not isinstance(raw, str):
        return raw
    try:
        return json.loads(raw)
    except ValueError:
        return None


def _is_story(value: Any, *markers: str) -> bool:
    return isinstance(value, Mapping) and any(value.get(marker) for marker in markers)


def extract_document_content(cdata: Mapping[str, Any]) -> Any:
    """Return the story document stored in ``cdata``.

    Lookup order: ``contentOptimized`` (only when it decodes to a story),
    ``content``, then ``cdata`` itself when it already carries ``version`` and
    ``entities`` or a bare ``entities`` list.  Either field may hold a JSON
    string or an already decoded object.  An empty ``content`` string yields
    an empty document.

    Raises:
        MalformedEnvelope: No location holds the story.
    """
    optimized = _decode_inner(cdata.get("contentOptimized"))
    if _is_story(optimized, "version", "entities"):
        return optimized

    raw = cdata.get("content")
    if raw == "":
        return {}
    decoded = _decode_inner(raw)
    if _is_story(decoded, "version", "entities", "scriptObjects"):
        return decoded

    if (cdata.get("version") and cdata.get("entities")) or isinstance(cdata.get("entities"), list):
        LOGGER.debug("Envelope cdata carries the story document directly")
        return dict(cdata)

    if raw is not None:
        if decoded is None:
            LOGGER.warning("Failed to decode the inner story content; keeping the raw string")
            return raw
        return decoded
    raise MalformedEnvelope(
        "Invalid story structure: 'cdata.content' is missing.",
        details={"keys": sorted(cdata.keys())},
    )


def _update_counter(resource: Mapping[str, Any]) -> int:
    for candidate in (resource.get("updateCounter"), resource["cdata"].get("updateCounter")):
        if isinstance(candidate, int) and not isinstance(candidate, bool):
            return candidate
    return 1


def parse_story_response(raw: str | bytes) -> ParsedStory:
    """Parse a raw document-store response into a :class:`ParsedStory`.

    Raises:
        SessionExpired: The payload is an HTML/login page.
        DocumentDecodeError: The payload is not JSON.
        MalformedEnvelope: Required wrapper fields are missing.
    """
    resource = _resource(_decode_payload(raw))
    content = extract_document_content(resource["cdata"])
    details = extract_story(content)
    story_id = resource.get("resourceId") or resource.get("id")
    if not story_id:
        story_id = "unknown-id" if details.pages else "empty-story"
    return ParsedStory(
        id=str(story_id),
        name=str(resource.get("name") or DEFAULT_STORY_NAME),
        description=str(resource.get("description") or ""),
        content=content,
        update_counter=_update_counter(resource),
        pages=details.pages,
        global_vars=details.global_vars,
        script_objects=details.script_objects,
        events=details.events,
    )


def build_story_envelope(
    story_id: str,
    document: Any,
    *,
    name: str,
    description: str = "",
    update_counter: int = 1,
    extra: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    """Wrap ``document`` the way the document store returns it."""
    resource: Dict[str, Any] = dict(extra or {})
    resource.update(
        {
            "resourceId": story_id,
            "name": name,
            "description": description,
            "updateCounter": update_counter,
            "cdata": {"content": json.dumps(document, ensure_ascii=False)},
        }
    )
    return {"resource": resource}


__all__ = [
    "DEFAULT_STORY_NAME",
    "build_story_envelope",
    "extract_document_content",
    "parse_story_response",
]
