"""Recover pages, global variables, script objects and events from a document.

Extraction never fails on an unfamiliar document shape.  Each section is
decoded independently and degrades to an empty result (with a warning) when
its part of the document cannot be understood.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, List, Mapping, Optional, Tuple, TypeVar

from ..errors import ExtractionDegraded
from ..schema import ExtractedStory, Page, ScriptFunction, ScriptObject, ScriptVariable, WidgetEvent
from .entities import (
    ApplicationEntity,
    StoryEntity,
    classify_entities,
    composite_key,
    composite_tail,
    composite_value,
    iter_entities,
    locate_application,
    script_object_sources,
)
from .names import lookup_label

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

SCRIPT_OBJECT_KIND = "scriptObject"
SCRIPT_VARIABLE_KIND = "scriptVariable"


def _section(name: str, decoder: Callable[[], List[T]]) -> List[T]:
    """Run ``decoder`` and degrade to an empty list when the shape is unexpected."""
    try:
        return decoder()
    except ExtractionDegraded as error:
        LOGGER.warning("Skipping %s: %s", name, error)
    except (AttributeError, KeyError, TypeError, ValueError) as error:
        LOGGER.warning("Skipping %s after unexpected shape: %s", name, error, exc_info=True)
    return []


def _collection_items(value: Any, what: str) -> List[Any]:
    if isinstance(value, list):
        return list(value)
    if isinstance(value, Mapping):
        return list(value.values())
    raise ExtractionDegraded(f"{what} is a {type(value).__name__}, expected a list or mapping")


def _text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, Mapping) and isinstance(value.get("body"), str):
        return value["body"]
    return ""


def extract_story(document: Any) -> ExtractedStory:
    """Extract the script entities of ``document``."""
    if not isinstance(document, Mapping):
        LOGGER.warning("Document is a %s; nothing to extract", type(document).__name__)
        return ExtractedStory()

    application = locate_application(document)
    names: Mapping[str, Any] = application.names() if application is not None else {}
    LOGGER.debug("Extracting with %d name(s); application=%s", len(names), application is not None)

    return ExtractedStory(
        pages=_section("pages", lambda: _extract_pages(document)),
        global_vars=_section("global variables", lambda: _extract_global_vars(application, names)),
        script_objects=_section(
            "script objects",
            lambda: _extract_script_objects(script_object_sources(document, application), names),
        ),
        events=_section("events", lambda: _extract_events(document, application, names)),
    )


def _extract_pages(document: Mapping[str, Any]) -> List[Page]:
    pages: List[Page] = []
    for variant in classify_entities(document):
        if not isinstance(variant, StoryEntity):
            continue
        for page in variant.pages:
            if not isinstance(page, Mapping):
                continue
            page_id, title = page.get("id"), page.get("title")
            if page_id and title:
                pages.append(Page(id=str(page_id), title=str(title)))
    return pages


def _extract_global_vars(application: Optional[ApplicationEntity], names: Mapping[str, Any]) -> List[ScriptVariable]:
    if application is None:
        return []
    raw = application.global_vars()
    if not raw:
        return []
    if isinstance(raw, Mapping):
        records: Iterable[Tuple[Optional[str], Any]] = raw.items()
    elif isinstance(raw, list):
        records = ((None, item) for item in raw)
    else:
        raise ExtractionDegraded(f"globalVars is a {type(raw).__name__}")

    variables: List[ScriptVariable] = []
    for key, record in records:
        if not isinstance(record, Mapping):
            continue
        identity = record.get("id") or key
        if not identity:
            LOGGER.debug("Skipping global variable without identity")
            continue
        identity = str(identity)
        name = (
            lookup_label(names, identity, composite_key(SCRIPT_VARIABLE_KIND, identity))
            or record.get("name")
            or identity
        )
        variables.append(
            ScriptVariable(
                id=identity,
                name=str(name),
                description=str(record.get("description") or ""),
                type=str(record.get("type") or "unknown"),
            )
        )
    return variables


def _record_name(record: Any, fallback: Any = None) -> Optional[str]:
    if isinstance(record, Mapping) and record.get("name"):
        return str(record["name"])
    return str(fallback) if fallback else None


def _function_records(value: Any) -> List[ScriptFunction]:
    """Decode ``name -> body`` mappings as well as lists of ``{name, body}`` records."""
    if isinstance(value, Mapping):
        items = [(_record_name(record, key), record) for key, record in value.items()]
    else:
        items = [(_record_name(record), record) for record in _collection_items(value, "functions")]

    functions: List[ScriptFunction] = []
    for name, record in items:
        if not name:
            continue
        arguments = record.get("arguments") if isinstance(record, Mapping) else None
        functions.append(
            ScriptFunction(
                name=name,
                body=_text(record),
                arguments=list(arguments) if isinstance(arguments, list) else [],
            )
        )
    return functions


def script_object_identity(raw: Mapping[str, Any]) -> Optional[str]:
    """Return the identity a script object is addressed by.

    Modern objects use ``instanceId``, decoding a composite
    ``[{"scriptObject": "<id>"}]`` when possible; legacy objects use ``id``.
    """
    instance_id = raw.get("instanceId")
    if isinstance(instance_id, str) and instance_id:
        return composite_value(instance_id, SCRIPT_OBJECT_KIND) or instance_id
    identity = raw.get("id")
    return str(identity) if identity else None


def script_object_label(raw: Mapping[str, Any], names: Mapping[str, Any]) -> Optional[str]:
    """Return the display label of a script object, falling back to its identity."""
    identity = script_object_identity(raw)
    if _is_modern(raw):
        return lookup_label(names, raw.get("instanceId"), identity) or identity
    return lookup_label(names, identity) or raw.get("name") or identity


def _is_modern(raw: Mapping[str, Any]) -> bool:
    payload = raw.get("payload")
    return isinstance(payload, Mapping) and bool(payload.get("functionImplementations"))


def _extract_script_objects(objects: List[Any], names: Mapping[str, Any]) -> List[ScriptObject]:
    script_objects: List[ScriptObject] = []
    for raw in objects:
        if not isinstance(raw, Mapping):
            continue
        identity = script_object_identity(raw)
        if identity is None:
            LOGGER.debug("Skipping script object without identity")
            continue
        if _is_modern(raw):
            functions = _function_records(raw["payload"]["functionImplementations"])
        elif raw.get("functions"):
            functions = _function_records(raw["functions"])
        else:
            LOGGER.debug("Script object %s has no functions", identity)
            continue
        script_objects.append(
            ScriptObject(id=identity, name=str(script_object_label(raw, names)), functions=functions)
        )
    return script_objects


def resolve_widget(key: str, names: Mapping[str, Any]) -> Tuple[str, str]:
    """Return ``(widget_id, widget_name)`` for a centralized events key."""
    label = lookup_label(names, key)
    if label:
        return key, label
    tail = composite_tail(key)
    if tail:
        return tail, lookup_label(names, tail) or tail
    return key, key


def _extract_events(
    document: Mapping[str, Any],
    application: Optional[ApplicationEntity],
    names: Mapping[str, Any],
) -> List[WidgetEvent]:
    centralized = application.events() if application is not None else None
    if isinstance(centralized, Mapping) and centralized:
        return _centralized_events(centralized, names)
    LOGGER.debug("No centralized events map; scanning entities")
    return _scanned_events(document, names)


def _centralized_events(events: Mapping[str, Any], names: Mapping[str, Any]) -> List[WidgetEvent]:
    collected: List[WidgetEvent] = []
    for key, handlers in events.items():
        if not isinstance(handlers, Mapping):
            LOGGER.debug("Skipping events for %s: handlers are a %s", key, type(handlers).__name__)
            continue
        widget_id, widget_name = resolve_widget(str(key), names)
        for event_name, code in handlers.items():
            collected.append(
                WidgetEvent(widget_id=widget_id, widget_name=widget_name, event_name=str(event_name), body=_text(code))
            )
    return collected


def local_event_records(events: Any) -> List[Tuple[str, str]]:
    """Decode a legacy per-entity ``events`` field into ``(name, body)`` pairs."""
    if isinstance(events, Mapping):
        pairs = []
        for key, value in events.items():
            if isinstance(value, Mapping):
                pairs.append((str(value.get("name") or key), _text(value)))
            else:
                pairs.append((str(key), _text(value)))
        return pairs
    return [
        (str(record.get("name") or ""), _text(record))
        for record in _collection_items(events, "events")
        if isinstance(record, Mapping)
    ]


def _scanned_events(document: Mapping[str, Any], names: Mapping[str, Any]) -> List[WidgetEvent]:
    collected: List[WidgetEvent] = []
    for identity, entity in iter_entities(document):
        if not identity:
            continue
        widget_name = lookup_label(names, identity) or identity
        data = entity.get("data")
        for source in (entity, data):
            if not isinstance(source, Mapping) or source.get("events") is None:
                continue
            for event_name, body in local_event_records(source["events"]):
                collected.append(
                    WidgetEvent(widget_id=identity, widget_name=widget_name, event_name=event_name, body=body)
                )
    return collected


__all__ = [
    "extract_story",
    "local_event_records",
    "resolve_widget",
    "script_object_identity",
    "script_object_label",
]
