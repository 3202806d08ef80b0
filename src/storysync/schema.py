"""Typed records exchanged between the extractor, projector, differ and patcher."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class RecordModel(BaseModel):
    """Base Pydantic model with strict field handling."""

    model_config = ConfigDict(extra="forbid", frozen=False)


class DiffStatus(str, Enum):
    """Classification of a single path difference."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"


class PatchKind(str, Enum):
    """Kinds of document locations addressable through a tree path."""

    WIDGET_EVENT = "widget_event"
    GLOBAL_FUNCTION = "global_function"
    GLOBAL_VARS = "global_vars"


class Page(RecordModel):
    """Story page listed in the metadata file."""

    id: str
    title: str


class ScriptVariable(RecordModel):
    """Global script variable declared on the application."""

    id: str
    name: str
    description: str = ""
    type: str = "unknown"


class ScriptFunction(RecordModel):
    """Single function implementation of a script object."""

    name: str
    body: str = ""
    arguments: List[Any] = Field(default_factory=list)


class ScriptObject(RecordModel):
    """Reusable function container."""

    id: str
    name: str
    functions: List[ScriptFunction] = Field(default_factory=list)


class WidgetEvent(RecordModel):
    """Event handler code attached to a widget."""

    widget_id: str
    widget_name: str
    event_name: str
    body: str = ""


class ExtractedStory(RecordModel):
    """Script entities recovered from a document."""

    pages: List[Page] = Field(default_factory=list)
    global_vars: List[ScriptVariable] = Field(default_factory=list)
    script_objects: List[ScriptObject] = Field(default_factory=list)
    events: List[WidgetEvent] = Field(default_factory=list)


class ParsedStory(ExtractedStory):
    """Extracted entities together with the resource envelope they came from."""

    id: str
    name: str = "Untitled Story"
    description: str = ""
    content: Any = None
    update_counter: int = 1


class VirtualFile(RecordModel):
    """Generated file in the projected tree; ``content`` is always normalized."""

    path: str
    content: str


class RemoteFile(RecordModel):
    """File fetched from the remote repository."""

    path: str
    content: str
    revision: str


class RemoteEntry(RecordModel):
    """Listing entry reported by the repository before content is fetched."""

    path: str
    identity: str


class DiffEntry(RecordModel):
    """One path's classified difference between a local and a remote tree."""

    path: str
    status: DiffStatus
    old_content: Optional[str] = None
    new_content: Optional[str] = None
    revision: Optional[str] = None


class PatchTarget(RecordModel):
    """Location inside a document addressed by a tree path.

    Targets carry folder and leaf names only; identities are resolved later
    against the document being patched.
    """

    kind: PatchKind
    story: str
    folder: Optional[str] = None
    name: Optional[str] = None


class ChangeOperation(RecordModel):
    """Repository write: ``content`` of ``None`` deletes ``path``."""

    path: str
    content: Optional[str] = None

    @property
    def is_delete(self) -> bool:
        return self.content is None


VirtualTree = Dict[str, VirtualFile]
RemoteTree = Dict[str, RemoteFile]


__all__ = [
    "ChangeOperation",
    "DiffEntry",
    "DiffStatus",
    "ExtractedStory",
    "Page",
    "ParsedStory",
    "PatchKind",
    "PatchTarget",
    "RecordModel",
    "RemoteEntry",
    "RemoteFile",
    "RemoteTree",
    "ScriptFunction",
    "ScriptObject",
    "ScriptVariable",
    "VirtualFile",
    "VirtualTree",
    "WidgetEvent",
]
