"""Document store collaborators holding the authoritative story documents."""

from __future__ import annotations

import copy
import json
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from ..errors import MalformedEnvelope, StorySyncError, VersionConflict
from ..schema import ParsedStory
from ..story.envelope import DEFAULT_STORY_NAME, build_story_envelope, parse_story_response

LOGGER = logging.getLogger(__name__)

ENVELOPE_SUFFIX = ".json"


@dataclass(slots=True)
class StoredDocument:
    """Story fetched from a document store together with its update counter."""

    story: ParsedStory
    document: Any
    update_counter: int


def validate_story_content(document: Any) -> None:
    """Reject anything that is not a story document (``version`` + ``entities`` list).

    Raises:
        MalformedEnvelope: ``document`` is a wrapper or lacks the required keys.
    """
    if not isinstance(document, dict):
        raise MalformedEnvelope(
            f"Story content must be an object, got {type(document).__name__}.",
        )
    if not document.get("version"):
        raise MalformedEnvelope(
            "Invalid story content: missing 'version'.",
            details={"keys": sorted(document.keys())},
        )
    if not isinstance(document.get("entities"), list):
        raise MalformedEnvelope(
            "Invalid story content: 'entities' must be a list.",
            details={"keys": sorted(document.keys())},
        )


def _validate_story_id(story_id: str) -> str:
    """Enforce identifier rules so ids map onto a single file name."""
    value = (story_id or "").strip()
    if not value:
        raise StorySyncError("Story id must not be empty.")
    if value in {".", ".."} or any(separator in value for separator in ("/", "\\")):
        raise StorySyncError(f"Story id may not contain path separators: {story_id!r}")
    return value


class DocumentStore(ABC):
    """Interface to the service holding the authoritative story documents."""

    @abstractmethod
    def fetch_document(self, story_id: str) -> StoredDocument:
        """Return the current document of ``story_id``."""

    @abstractmethod
    def submit_document(self, story_id: str, document: Any, update_counter: int) -> int:
        """Replace the document of ``story_id`` and return the new update counter.

        Raises:
            VersionConflict: ``update_counter`` is not the store's current one.
        """


class InMemoryDocumentStore(DocumentStore):
    """Keep story envelopes in local process memory."""

    def __init__(self) -> None:
        self._envelopes: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def add(
        self,
        story_id: str,
        document: Any,
        *,
        name: str = DEFAULT_STORY_NAME,
        description: str = "",
        update_counter: int = 1,
    ) -> None:
        with self._lock:
            self._envelopes[story_id] = build_story_envelope(
                story_id,
                document,
                name=name,
                description=description,
                update_counter=update_counter,
            )

    def envelope(self, story_id: str) -> Dict[str, Any]:
        return copy.deepcopy(self._envelopes[story_id])

    def fetch_document(self, story_id: str) -> StoredDocument:
        with self._lock:
            envelope = self._envelopes.get(story_id)
            if envelope is None:
                raise StorySyncError(f"Unknown story {story_id!r}.", details={"story_id": story_id})
            story = parse_story_response(json.dumps(envelope))
        return StoredDocument(story=story, document=copy.deepcopy(story.content), update_counter=story.update_counter)

    def submit_document(self, story_id: str, document: Any, update_counter: int) -> int:
        validate_story_content(document)
        with self._lock:
            envelope = self._envelopes.get(story_id)
            if envelope is None:
                raise StorySyncError(f"Unknown story {story_id!r}.", details={"story_id": story_id})
            resource = envelope["resource"]
            current = resource.get("updateCounter", 1)
            if update_counter != current:
                raise VersionConflict(
                    f"Story {story_id} is at version {current}, not {update_counter}.",
                    details={"story_id": story_id, "expected": update_counter, "actual": current},
                )
            extra = {key: value for key, value in resource.items() if key != "cdata"}
            self._envelopes[story_id] = build_story_envelope(
                story_id,
                copy.deepcopy(document),
                name=resource.get("name", DEFAULT_STORY_NAME),
                description=resource.get("description", ""),
                update_counter=current + 1,
                extra=extra,
            )
            return current + 1


class FileDocumentStore(DocumentStore):
    """Persist story envelopes as ``<story_id>.json`` files under ``storage_dir``."""

    def __init__(self, storage_dir: Path | str) -> None:
        self.storage_dir = Path(storage_dir)
        self._lock = threading.Lock()

    def _path(self, story_id: str) -> Path:
        return self.storage_dir / f"{_validate_story_id(story_id)}{ENVELOPE_SUFFIX}"

    def _read(self, story_id: str) -> str:
        path = self._path(story_id)
        if not path.exists():
            raise StorySyncError(f"Unknown story {story_id!r} (no {path}).", details={"story_id": story_id})
        return path.read_text(encoding="utf-8")

    def fetch_document(self, story_id: str) -> StoredDocument:
        story = parse_story_response(self._read(story_id))
        LOGGER.debug("Loaded story %s at version %d", story_id, story.update_counter)
        return StoredDocument(story=story, document=copy.deepcopy(story.content), update_counter=story.update_counter)

    def submit_document(self, story_id: str, document: Any, update_counter: int) -> int:
        validate_story_content(document)
        with self._lock:
            raw = json.loads(self._read(story_id))
            resource: Dict[str, Any] = dict(raw.get("resource", raw))
            current = parse_story_response(json.dumps(raw)).update_counter
            if update_counter != current:
                raise VersionConflict(
                    f"Story {story_id} is at version {current}, not {update_counter}.",
                    details={"story_id": story_id, "expected": update_counter, "actual": current},
                )
            extra = {key: value for key, value in resource.items() if key != "cdata"}
            envelope = build_story_envelope(
                story_id,
                document,
                name=str(resource.get("name") or DEFAULT_STORY_NAME),
                description=str(resource.get("description") or ""),
                update_counter=current + 1,
                extra=extra,
            )
            path = self._path(story_id)
            tmp = path.with_suffix(path.suffix + ".tmp")
            tmp.write_text(json.dumps(envelope, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
            tmp.replace(path)
        LOGGER.info("Stored story %s at version %d", story_id, current + 1)
        return current + 1

    def create(
        self,
        story_id: str,
        document: Any,
        *,
        name: str = DEFAULT_STORY_NAME,
        description: str = "",
        update_counter: int = 1,
    ) -> Path:
        """Write a fresh envelope file for ``story_id`` and return its path."""
        path = self._path(story_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        envelope = build_story_envelope(
            story_id,
            document,
            name=name,
            description=description,
            update_counter=update_counter,
        )
        path.write_text(json.dumps(envelope, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
        return path


__all__ = [
    "DocumentStore",
    "FileDocumentStore",
    "InMemoryDocumentStore",
    "StoredDocument",
    "validate_story_content",
]
