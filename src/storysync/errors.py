"""Exception taxonomy shared by the projection and reconciliation engine."""

from __future__ import annotations

from typing import Any, Mapping


class StorySyncError(RuntimeError):
    """Base class for every error raised by storysync."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = dict(details or {})


class ExtractionDegraded(StorySyncError):
    """A document section had an unexpected shape and was skipped.

    Raised inside the extractor and caught at the section boundary; callers of
    :func:`storysync.story.extract.extract_story` never see it.
    """


class SessionExpired(StorySyncError):
    """The document store answered with an HTML or login page."""


class DocumentDecodeError(StorySyncError):
    """The document payload is not valid JSON."""


class MalformedEnvelope(StorySyncError):
    """The resource wrapper around the document is missing required fields."""


class PathUnsupported(StorySyncError):
    """A path does not map onto a writable location in the document."""


class ResolutionError(StorySyncError):
    """A folder label could not be resolved to exactly one identity."""

    def __init__(
        self,
        message: str,
        *,
        label: str,
        candidates: tuple[str, ...] = (),
        details: Mapping[str, Any] | None = None,
    ) -> None:
        merged = {"label": label, "candidates": list(candidates)}
        merged.update(details or {})
        super().__init__(message, details=merged)
        self.label = label
        self.candidates = candidates


class IdentityNotFound(ResolutionError):
    """No identity carries the requested label."""


class IdentityAmbiguous(ResolutionError):
    """More than one identity carries the requested label."""


class VersionConflict(StorySyncError):
    """The document store rejected a submission with a stale update counter."""


class RemoteConflict(StorySyncError):
    """The repository ref moved while a changeset was being applied."""


class RepositoryError(StorySyncError):
    """The repository collaborator failed to answer a request."""


class RevertError(StorySyncError):
    """A diff entry cannot be reversed into the document."""


class DuplicateCommit(StorySyncError):
    """The same changeset was already pushed by this session."""


__all__ = [
    "DocumentDecodeError",
    "DuplicateCommit",
    "ExtractionDegraded",
    "IdentityAmbiguous",
    "IdentityNotFound",
    "MalformedEnvelope",
    "PathUnsupported",
    "RemoteConflict",
    "RepositoryError",
    "ResolutionError",
    "RevertError",
    "SessionExpired",
    "StorySyncError",
    "VersionConflict",
]
