"""Document-side engine: extraction, naming, normalization and projection."""

from .entities import (
    APP_RULES,
    AppRule,
    ApplicationEntity,
    GenericEntity,
    StoryEntity,
    classify_entities,
    iter_entities,
    locate_application,
)
from .envelope import build_story_envelope, parse_story_response
from .extract import extract_story
from .names import NameIndex, build_index, build_name_index, normalize_label, resolve_single
from .normalize import normalize_content
from .project import project_story, story_root

__all__ = [
    "APP_RULES",
    "AppRule",
    "ApplicationEntity",
    "GenericEntity",
    "NameIndex",
    "StoryEntity",
    "build_index",
    "build_name_index",
    "build_story_envelope",
    "classify_entities",
    "extract_story",
    "iter_entities",
    "locate_application",
    "normalize_content",
    "normalize_label",
    "parse_story_response",
    "project_story",
    "resolve_single",
    "story_root",
]
