"""Tagged entity variants and the ordered cascade that locates the application.

Story documents carry an ``entities`` collection whose shape varies between
document versions: it may be a list of entity dicts or a mapping keyed by
identity.  The helpers below hide that difference and classify every entity
into one of a closed set of variants.

The application entity is found with :data:`APP_RULES`.  Rules are tried in
order; the first rule that matches any entity wins, and entity order only
breaks ties inside a single rule.  The order is part of the contract and is
covered by tests.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Tuple, Union

LOGGER = logging.getLogger(__name__)

APPLICATION_ID = "app"
APPLICATION_TYPE = "Application"
APPLICATION_SUFFIX = ":application"
STORY_TYPE = "story"
SCRIPT_OBJECT_TYPE = "scriptObject"
SCRIPT_OBJECT_PREFIX = "ScriptObject_"

# Keys of a keyed ``entities`` collection that hold nested collections, not entities.
_COLLECTION_KEYS = frozenset({"scriptObjects"})


class AppRule(str, Enum):
    """Heuristics that identify the application entity."""

    DIRECT_FIELDS = "direct_fields"
    IDENTITY = "identity"
    DATA_FIELDS = "data_fields"
    ID_SUFFIX = "id_suffix"
    SCRIPT_OBJECTS = "script_objects"


APP_RULES: Tuple[AppRule, ...] = (
    AppRule.DIRECT_FIELDS,
    AppRule.IDENTITY,
    AppRule.DATA_FIELDS,
    AppRule.ID_SUFFIX,
    AppRule.SCRIPT_OBJECTS,
)


@dataclass(slots=True)
class ApplicationEntity:
    """Entity carrying names, events, global variables and script objects.

    ``entity`` is the matched dict.  ``model`` is its nested ``app`` object
    when one exists and ``entity`` otherwise.  Names, events and global
    variables prefer ``model``; script objects prefer ``entity``.  Both are
    live references into the document.
    """

    entity: Dict[str, Any]
    model: Dict[str, Any]
    rule: AppRule
    identity: Optional[str] = None

    @property
    def nested(self) -> bool:
        return self.model is not self.entity

    def _layers(self, *, outer_first: bool = False) -> Tuple[Dict[str, Any], ...]:
        if not self.nested:
            return (self.entity,)
        return (self.entity, self.model) if outer_first else (self.model, self.entity)

    def names(self) -> Mapping[str, Any]:
        for layer in self._layers():
            value = layer.get("names")
            if isinstance(value, Mapping) and value:
                return value
        return {}

    def events(self) -> Any:
        for layer in self._layers():
            value = layer.get("events")
            if value is not None:
                return value
        return None

    def events_owner(self) -> Dict[str, Any]:
        """Return the dict that holds (or should hold) the centralized events map."""
        for layer in self._layers():
            if isinstance(layer.get("events"), Mapping):
                return layer
        return self.model

    def global_vars(self) -> Any:
        for layer in self._layers():
            value = layer.get("globalVars")
            if value:
                return value
        return None

    def script_objects(self) -> Any:
        for layer in self._layers(outer_first=True):
            value = layer.get("scriptObjects")
            if value:
                return value
        return None


@dataclass(slots=True)
class StoryEntity:
    """Entity describing the story pages."""

    entity: Dict[str, Any]
    identity: Optional[str]
    pages: List[Any] = field(default_factory=list)


@dataclass(slots=True)
class GenericEntity:
    """Entity with no recognised role."""

    entity: Dict[str, Any]
    identity: Optional[str]


EntityVariant = Union[ApplicationEntity, StoryEntity, GenericEntity]


def iter_entities(document: Any) -> Iterator[Tuple[Optional[str], Dict[str, Any]]]:
    """Yield ``(identity, entity)`` for every entity exactly once.

    Works for both list and keyed ``entities`` collections.  In the keyed form
    the key stands in for an entity without its own ``id``.
    """
    if not isinstance(document, Mapping):
        return
    entities = document.get("entities")
    if isinstance(entities, list):
        for entity in entities:
            if isinstance(entity, dict):
                yield entity_identity(entity), entity
    elif isinstance(entities, Mapping):
        for key, entity in entities.items():
            if key in _COLLECTION_KEYS or not isinstance(entity, dict):
                continue
            yield entity_identity(entity, fallback=str(key)), entity
    elif entities is not None:
        LOGGER.warning("Ignoring entities collection of type %s", type(entities).__name__)


def entity_identity(entity: Mapping[str, Any], *, fallback: Optional[str] = None) -> Optional[str]:
    value = entity.get("id")
    if isinstance(value, str) and value:
        return value
    return fallback


def _exposes_app_fields(candidate: Any) -> bool:
    return isinstance(candidate, Mapping) and (
        candidate.get("globalVars") is not None or candidate.get("names") is not None
    )


def _match_direct_fields(identity: Optional[str], entity: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    return entity if _exposes_app_fields(entity) else None


def _match_identity(identity: Optional[str], entity: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    if identity == APPLICATION_ID or entity.get("type") == APPLICATION_TYPE:
        return entity
    return None


def _match_data_fields(identity: Optional[str], entity: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    data = entity.get("data")
    if isinstance(data, dict) and _exposes_app_fields(data):
        return data
    return None


def _match_id_suffix(identity: Optional[str], entity: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    if identity and identity.endswith(APPLICATION_SUFFIX):
        return entity
    return None


def _match_script_objects(identity: Optional[str], entity: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    return entity if entity.get("scriptObjects") is not None else None


_RULE_MATCHERS: Dict[AppRule, Callable[[Optional[str], Dict[str, Any]], Optional[Dict[str, Any]]]] = {
    AppRule.DIRECT_FIELDS: _match_direct_fields,
    AppRule.IDENTITY: _match_identity,
    AppRule.DATA_FIELDS: _match_data_fields,
    AppRule.ID_SUFFIX: _match_id_suffix,
    AppRule.SCRIPT_OBJECTS: _match_script_objects,
}


def locate_application(document: Any) -> Optional[ApplicationEntity]:
    """Return the application entity of ``document`` or ``None``.

    Always evaluated against the document passed in; callers must not cache
    the result across reads because the document may be replaced.
    """
    entries = list(iter_entities(document))
    for rule in APP_RULES:
        matcher = _RULE_MATCHERS[rule]
        for identity, entity in entries:
            matched = matcher(identity, entity)
            if matched is None:
                continue
            nested = matched.get("app")
            model = nested if isinstance(nested, dict) else matched
            LOGGER.debug("Application entity %s matched by %s (nested=%s)", identity, rule.value, model is not matched)
            return ApplicationEntity(entity=matched, model=model, rule=rule, identity=identity)
    LOGGER.debug("No application entity found")
    return None


def classify_entities(document: Any) -> List[EntityVariant]:
    """Classify every entity of ``document`` into a tagged variant."""
    application = locate_application(document)
    variants: List[EntityVariant] = []
    for identity, entity in iter_entities(document):
        if application is not None and (entity is application.entity or entity.get("data") is application.entity):
            variants.append(application)
            continue
        data = entity.get("data")
        if entity.get("type") == STORY_TYPE and isinstance(data, Mapping) and isinstance(data.get("pages"), list):
            variants.append(StoryEntity(entity=entity, identity=identity, pages=data["pages"]))
            continue
        variants.append(GenericEntity(entity=entity, identity=identity))
    return variants


def _is_script_object(identity: Optional[str], candidate: Any) -> bool:
    if not isinstance(candidate, Mapping):
        return False
    if candidate.get("type") == SCRIPT_OBJECT_TYPE:
        return True
    return bool(identity) and identity.startswith(SCRIPT_OBJECT_PREFIX)


def script_object_sources(document: Any, application: Optional[ApplicationEntity]) -> List[Dict[str, Any]]:
    """Return the live script-object dicts of ``document``.

    Objects held by the application win; standalone script-object entities
    are used only when the application holds none.
    """
    if application is not None:
        held = application.script_objects()
        if isinstance(held, list):
            return [item for item in held if isinstance(item, dict)]
        if isinstance(held, Mapping):
            return [item for item in held.values() if isinstance(item, dict)]

    standalone: List[Dict[str, Any]] = []
    entities = document.get("entities") if isinstance(document, Mapping) else None
    if isinstance(entities, Mapping):
        collection = entities.get("scriptObjects")
        if isinstance(collection, Mapping):
            collection = list(collection.values())
        if isinstance(collection, list):
            standalone.extend(item for item in collection if isinstance(item, dict))
    for identity, entity in iter_entities(document):
        if _is_script_object(identity, entity):
            standalone.append(entity)
            continue
        data = entity.get("data")
        if isinstance(data, dict) and _is_script_object(entity_identity(data), data):
            standalone.append(data)
    return standalone


def decode_composite(key: Any) -> List[Tuple[str, str]]:
    """Decode a composite key such as ``[{"appPage":"P1"},{"widget":"W1"}]``.

    Returns ``(type, id)`` pairs in order, or an empty list when ``key`` is
    not a JSON array of single-entry objects.
    """
    if not isinstance(key, str) or not key.startswith("["):
        return []
    try:
        parts = json.loads(key)
    except ValueError:
        return []
    if not isinstance(parts, list):
        return []
    pairs: List[Tuple[str, str]] = []
    for part in parts:
        if not isinstance(part, Mapping) or not part:
            return []
        kind, value = next(iter(part.items()))
        if not isinstance(value, str):
            return []
        pairs.append((str(kind), value))
    return pairs


def composite_tail(key: Any) -> Optional[str]:
    """Return the identity of the last pair of a composite key."""
    pairs = decode_composite(key)
    return pairs[-1][1] if pairs else None


def composite_value(key: Any, kind: str) -> Optional[str]:
    """Return the identity stored under ``kind`` inside a composite key."""
    for pair_kind, value in decode_composite(key):
        if pair_kind == kind:
            return value
    return None


def composite_key(kind: str, identity: str) -> str:
    """Encode ``identity`` as a single-pair composite key."""
    return json.dumps([{kind: identity}], separators=(",", ":"))


def identity_aliases(key: Any) -> frozenset[str]:
    """Return ``key`` together with the identity its composite form resolves to."""
    if not isinstance(key, str):
        return frozenset()
    tail = composite_tail(key)
    return frozenset({key, tail}) if tail else frozenset({key})


__all__ = [
    "APP_RULES",
    "AppRule",
    "ApplicationEntity",
    "EntityVariant",
    "GenericEntity",
    "StoryEntity",
    "classify_entities",
    "composite_key",
    "composite_tail",
    "composite_value",
    "decode_composite",
    "entity_identity",
    "identity_aliases",
    "iter_entities",
    "locate_application",
    "script_object_sources",
]
