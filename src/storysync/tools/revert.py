"""Reverse projection: write tree paths back into a story document.

A tree path names a folder (widget or script object label) and a leaf (event
or function name).  Every call resolves the application entity and the name
index against the document it is given, then touches exactly one leaf.
Resolution failures are never recovered: an unknown or ambiguous folder
aborts the operation before anything is written.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, MutableMapping, Optional, Sequence, Tuple

from ..errors import IdentityAmbiguous, IdentityNotFound, PathUnsupported, RevertError
from ..schema import DiffEntry, DiffStatus, PatchKind, PatchTarget
from ..story.entities import (
    ApplicationEntity,
    identity_aliases,
    iter_entities,
    locate_application,
    script_object_sources,
)
from ..story.extract import resolve_widget, script_object_identity, script_object_label
from ..story.names import NameIndex, build_index, lookup_label, normalize_label, resolve_single
from ..story.normalize import normalize_content
from ..story.project import GLOBAL_VARS_FILE, SCRIPT_SUFFIX, STORIES_ROOT
from ..utils.telemetry import emit_event

LOGGER = logging.getLogger(__name__)

_SCRIPT_AREAS = {
    "widgets": PatchKind.WIDGET_EVENT,
    "global": PatchKind.GLOBAL_FUNCTION,
}


def parse_target(path: str) -> Optional[PatchTarget]:
    """Map a tree path onto a :class:`PatchTarget`.

    ``stories/<S>/globalVars.js`` yields a ``global_vars`` target and
    ``stories/<S>/scripts/{widgets|global}/<folder>/<name>.js`` a widget event
    or global function.  Every other path yields ``None``.
    """
    segments = path.split("/")
    if len(segments) == 3:
        root, story, filename = segments
        if root == STORIES_ROOT and story and filename == GLOBAL_VARS_FILE:
            return PatchTarget(kind=PatchKind.GLOBAL_VARS, story=story)
        return None
    if len(segments) != 6:
        return None
    root, story, scripts, area, folder, filename = segments
    kind = _SCRIPT_AREAS.get(area)
    if root != STORIES_ROOT or scripts != "scripts" or kind is None:
        return None
    if not story or not folder or not filename.endswith(SCRIPT_SUFFIX):
        return None
    name = filename[: -len(SCRIPT_SUFFIX)]
    if not name:
        return None
    return PatchTarget(kind=kind, story=story, folder=folder, name=name)


def _require_target(path: str) -> PatchTarget:
    target = parse_target(path)
    if target is None:
        raise PathUnsupported(f"{path} is not a supported script path.", details={"path": path})
    if target.kind is PatchKind.GLOBAL_VARS:
        raise PathUnsupported(
            "Global variables cannot be written back into the document.",
            details={"path": path, "kind": target.kind.value},
        )
    return target


def _resolve_context(document: Any, target: PatchTarget) -> Tuple[ApplicationEntity, NameIndex]:
    application = locate_application(document)
    if application is None:
        raise IdentityNotFound("The document has no application entity.", label=target.folder or "")
    return application, build_index(application)


def _resolve_identity(
    index: NameIndex,
    folder: str,
    fallbacks: Iterable[Tuple[Optional[str], str]],
    owns: Optional[Callable[[str], bool]] = None,
) -> str:
    """Resolve ``folder`` to the identity of the container projected under it.

    ``fallbacks`` pairs the label each container is projected under with the
    container identity, which covers containers the names map does not
    label.  Index candidates rejected by ``owns`` are skipped.  Distinct
    containers matching through either route are ambiguous; when none
    matches, the plain index lookup decides.
    """
    wanted = normalize_label(folder)
    candidates = [identity for identity in index.get(wanted) or [] if owns is None or owns(identity)]
    candidates.extend(identity for label, identity in fallbacks if label and normalize_label(label) == wanted)
    matches: List[str] = []
    for identity in candidates:
        if not any(identity_aliases(identity) & identity_aliases(seen) for seen in matches):
            matches.append(identity)
    if len(matches) > 1:
        raise IdentityAmbiguous(
            f"Folder '{folder}' matches {len(matches)} containers",
            label=folder,
            candidates=tuple(matches),
        )
    if matches:
        LOGGER.debug("Folder %s resolved to %s", folder, matches[0])
        return matches[0]
    return resolve_single(index, folder)


def _match_key(keys: Iterable[str], identity: str) -> Optional[str]:
    candidates = list(keys)
    if identity in candidates:
        return identity
    wanted = identity_aliases(identity)
    for key in candidates:
        if identity_aliases(key) & wanted:
            return key
    return None


def _set_named(container: Any, name: str, content: str) -> None:
    """Assign ``content`` to the leaf called ``name`` inside ``container``.

    Handles ``name -> code`` mappings, mappings of ``{name, body}`` records
    and lists of ``{name, body}`` records; appends a leaf when none matches.
    """
    if isinstance(container, list):
        for record in container:
            if isinstance(record, dict) and record.get("name") == name:
                record["body"] = content
                return
        container.append({"name": name, "body": content})
        return
    if not isinstance(container, MutableMapping):
        raise PathUnsupported(f"Cannot write '{name}' into a {type(container).__name__}.")
    for key, value in container.items():
        if isinstance(value, dict) and (value.get("name") or key) == name:
            value["body"] = content
            return
    if name not in container and any(isinstance(value, dict) for value in container.values()):
        container[name] = {"name": name, "body": content}
    else:
        container[name] = content


def _delete_named(container: Any, name: str) -> bool:
    """Remove the leaf called ``name``; return whether anything was removed."""
    if isinstance(container, list):
        kept = [record for record in container if not (isinstance(record, dict) and record.get("name") == name)]
        removed = len(kept) != len(container)
        container[:] = kept
        return removed
    if not isinstance(container, MutableMapping):
        return False
    doomed = [
        key
        for key, value in container.items()
        if key == name or (isinstance(value, dict) and value.get("name") == name)
    ]
    for key in doomed:
        del container[key]
    return bool(doomed)


# --------------------------------------------------------------------------- events
def _centralized_events(application: ApplicationEntity) -> Optional[Dict[str, Any]]:
    events = application.events()
    return events if isinstance(events, dict) and events else None


def _legacy_event_sources(document: Any) -> List[Tuple[str, Dict[str, Any]]]:
    sources: List[Tuple[str, Dict[str, Any]]] = []
    for identity, entity in iter_entities(document):
        if not identity:
            continue
        for source in (entity, entity.get("data")):
            if isinstance(source, dict) and isinstance(source.get("events"), (list, dict)):
                sources.append((identity, source))
    return sources


def _event_identity(
    document: Any,
    application: ApplicationEntity,
    index: NameIndex,
    target: PatchTarget,
) -> Tuple[str, Optional[Dict[str, Any]], List[Tuple[str, Dict[str, Any]]]]:
    centralized = _centralized_events(application)
    legacy = [] if centralized is not None else _legacy_event_sources(document)
    names = application.names()
    fallbacks: List[Tuple[Optional[str], str]] = []
    if centralized is not None:
        fallbacks.extend((resolve_widget(str(key), names)[1], key) for key in centralized)
        return _resolve_identity(index, target.folder or "", fallbacks), centralized, legacy

    def owns_events(identity: str) -> bool:
        return _legacy_owner(legacy, identity) is not None

    fallbacks.extend((lookup_label(names, identity) or identity, identity) for identity, _ in legacy)
    identity = _resolve_identity(index, target.folder or "", fallbacks, owns_events)
    return identity, centralized, legacy


def _legacy_owner(legacy: List[Tuple[str, Dict[str, Any]]], identity: str) -> Optional[Dict[str, Any]]:
    wanted = identity_aliases(identity)
    for owner_identity, source in legacy:
        if owner_identity in wanted:
            return source
    return None


def _write_event(document: Any, application: ApplicationEntity, index: NameIndex, target: PatchTarget, content: str) -> None:
    identity, centralized, legacy = _event_identity(document, application, index, target)
    owner = _legacy_owner(legacy, identity)
    if owner is not None:
        _set_named(owner["events"], target.name or "", content)
        return

    holder = application.events_owner()
    events = holder.get("events")
    if events is None:
        events = holder["events"] = {}
    elif not isinstance(events, dict):
        raise PathUnsupported(f"The events field is a {type(events).__name__}; expected a mapping.")
    key = _match_key(events, identity) or identity
    handlers = events.get(key)
    if handlers is None:
        handlers = events[key] = {}
    elif not isinstance(handlers, dict):
        raise PathUnsupported(f"Handlers for '{key}' are a {type(handlers).__name__}; expected a mapping.")
    current = handlers.get(target.name)
    if isinstance(current, dict) and "body" in current:
        current["body"] = content
    else:
        handlers[target.name] = content


def _remove_event(document: Any, application: ApplicationEntity, index: NameIndex, target: PatchTarget) -> bool:
    identity, centralized, legacy = _event_identity(document, application, index, target)
    owner = _legacy_owner(legacy, identity)
    if owner is not None:
        return _delete_named(owner["events"], target.name or "")
    if centralized is None:
        return False
    key = _match_key(centralized, identity)
    if key is None:
        return False
    handlers = centralized[key]
    if not isinstance(handlers, dict) or target.name not in handlers:
        return False
    del handlers[target.name]
    if not handlers:
        del centralized[key]
    return True


# ------------------------------------------------------------------ script objects
def _script_object_aliases(raw: Dict[str, Any]) -> frozenset[str]:
    aliases = set(identity_aliases(raw.get("instanceId")))
    for candidate in (script_object_identity(raw), raw.get("id")):
        if isinstance(candidate, str) and candidate:
            aliases.add(candidate)
    return frozenset(aliases)


def _locate_script_object(
    document: Any,
    application: ApplicationEntity,
    index: NameIndex,
    target: PatchTarget,
) -> Dict[str, Any]:
    sources = script_object_sources(document, application)
    names = application.names()
    fallbacks: List[Tuple[Optional[str], str]] = []
    for raw in sources:
        identity = script_object_identity(raw)
        if identity is not None:
            fallbacks.append((script_object_label(raw, names), identity))

    def owner(identity: str) -> Optional[Dict[str, Any]]:
        wanted = identity_aliases(identity)
        for raw in sources:
            if _script_object_aliases(raw) & wanted:
                return raw
        return None

    folder = target.folder or ""
    identity = _resolve_identity(index, folder, fallbacks, lambda candidate: owner(candidate) is not None)
    raw = owner(identity)
    if raw is not None:
        return raw
    raise IdentityNotFound(
        f"No script object has identity '{identity}'.",
        label=folder,
        candidates=(identity,),
    )


def _function_container(raw: Dict[str, Any], *, create: bool) -> Any:
    payload = raw.get("payload")
    functions = raw.get("functions")
    if isinstance(payload, dict) and payload.get("functionImplementations") is not None:
        return payload["functionImplementations"]
    if functions is not None:
        return functions
    if not create:
        return None
    if payload is None:
        payload = raw["payload"] = {}
    elif not isinstance(payload, dict):
        raise PathUnsupported(f"Script object payload is a {type(payload).__name__}; expected a mapping.")
    return payload.setdefault("functionImplementations", {})


def _write_function(document: Any, application: ApplicationEntity, index: NameIndex, target: PatchTarget, content: str) -> None:
    raw = _locate_script_object(document, application, index, target)
    _set_named(_function_container(raw, create=True), target.name or "", content)


def _remove_function(document: Any, application: ApplicationEntity, index: NameIndex, target: PatchTarget) -> bool:
    raw = _locate_script_object(document, application, index, target)
    container = _function_container(raw, create=False)
    return container is not None and _delete_named(container, target.name or "")


def patch_document(document: Any, path: str, text: str) -> Any:
    """Write ``text`` (normalized) into the leaf addressed by ``path``.

    ``document`` is mutated in place and returned.  Sibling leaves and every
    other field stay untouched; only missing intermediate containers are
    created.

    Raises:
        PathUnsupported: ``path`` is not a writable script path.
        IdentityNotFound: The folder does not resolve to any identity.
        IdentityAmbiguous: The folder resolves to several identities.
    """
    target = _require_target(path)
    application, index = _resolve_context(document, target)
    content = normalize_content(text)
    if target.kind is PatchKind.WIDGET_EVENT:
        _write_event(document, application, index, target, content)
    else:
        _write_function(document, application, index, target, content)
    LOGGER.debug("Patched %s (%d bytes)", path, len(content))
    emit_event("document.patch", path=path, kind=target.kind.value, bytes=len(content))
    return document


def remove_from_document(document: Any, path: str) -> Any:
    """Delete the leaf addressed by ``path`` from ``document`` in place.

    A per-widget event map left empty is removed as well.  Removing a leaf
    that does not exist is a no-op.
    """
    target = _require_target(path)
    application, index = _resolve_context(document, target)
    if target.kind is PatchKind.WIDGET_EVENT:
        removed = _remove_event(document, application, index, target)
    else:
        removed = _remove_function(document, application, index, target)
    if not removed:
        LOGGER.debug("Nothing to remove at %s", path)
    emit_event("document.remove", path=path, kind=target.kind.value, removed=removed)
    return document


def can_revert(entry: DiffEntry) -> bool:
    """Return whether ``entry`` can be reversed into the document."""
    target = parse_target(entry.path)
    if target is None or target.kind is PatchKind.GLOBAL_VARS:
        return False
    if entry.status is DiffStatus.ADDED:
        return True
    return entry.old_content is not None


def revert_document(document: Any, entries: Sequence[DiffEntry]) -> Any:
    """Make ``document`` match the remote side of ``entries``, in order.

    ``added`` paths are removed and ``modified``/``deleted`` paths are
    restored from ``old_content``.  Each step sees the effects of the previous
    ones; the first failure propagates and leaves the rest unapplied.
    """
    for entry in entries:
        if entry.status is DiffStatus.ADDED:
            remove_from_document(document, entry.path)
            continue
        if entry.old_content is None:
            raise RevertError(
                f"Cannot restore {entry.path}: the remote content is missing.",
                details={"path": entry.path, "status": entry.status.value},
            )
        patch_document(document, entry.path, entry.old_content)
    return document


__all__ = [
    "can_revert",
    "parse_target",
    "patch_document",
    "remove_from_document",
    "revert_document",
]
