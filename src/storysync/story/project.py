"""Forward projection of extracted story entities into a virtual file tree."""

from __future__ import annotations

import logging
from typing import List, Optional

from ..schema import ExtractedStory, ParsedStory, VirtualFile, VirtualTree
from ..utils.slug import sanitize_segment
from .normalize import normalize_content

LOGGER = logging.getLogger(__name__)

STORIES_ROOT = "stories"
README_FILE = "README.md"
GLOBAL_VARS_FILE = "globalVars.js"
SCRIPT_SUFFIX = ".js"
UNTITLED_STORY = "Untitled Story"
UNKNOWN_WIDGET = "UnknownWidget"
UNKNOWN_EVENT = "unknownEvent"
DEFAULT_OBJECT = "Global"


def story_root(name: Optional[str]) -> str:
    """Return the ``stories/<Story>`` prefix for a story name."""
    return f"{STORIES_ROOT}/{sanitize_segment(name, fallback='story')}"


def function_path(root: str, object_name: str, function_name: str) -> str:
    return f"{root}/scripts/global/{sanitize_segment(object_name, fallback=DEFAULT_OBJECT)}/{function_name}{SCRIPT_SUFFIX}"


def event_path(root: str, widget_name: str, event_name: str) -> str:
    widget = sanitize_segment(widget_name, fallback=UNKNOWN_WIDGET)
    return f"{root}/scripts/widgets/{widget}/{event_name or UNKNOWN_EVENT}{SCRIPT_SUFFIX}"


def _leaf_name(kind: str, folder: str, name: str) -> str:
    if "/" in name:
        LOGGER.warning("%s %s/%s contains a slash; its projected path cannot be reverted", kind, folder, name)
    return name


def render_readme(story: ExtractedStory, name: Optional[str], description: Optional[str]) -> str:
    lines: List[str] = [f"# {name or UNTITLED_STORY}", ""]
    if description:
        lines.extend([description, ""])
    lines.extend(["## Pages", ""])
    if story.pages:
        lines.extend(f"- **{page.title}** (`{page.id}`)" for page in story.pages)
    else:
        lines.append("_No pages found._")
    return "\n".join(lines) + "\n"


def render_global_vars(story: ExtractedStory, name: Optional[str]) -> str:
    lines: List[str] = [f"// Global Variables for {name or 'Story'}", ""]
    for variable in story.global_vars:
        lines.append("/**")
        if variable.description:
            lines.append(f" * {variable.description}")
        lines.append(f" * @type {{{variable.type}}}")
        lines.append(" */")
        lines.append(f"var {variable.name};")
        lines.append("")
    return "\n".join(lines)


def project_story(
    story: ExtractedStory,
    *,
    name: Optional[str] = None,
    description: Optional[str] = None,
) -> VirtualTree:
    """Project ``story`` into a path-ordered virtual tree.

    ``name`` and ``description`` default to the envelope values when ``story``
    is a :class:`ParsedStory`.
    """
    if isinstance(story, ParsedStory):
        name = story.name if name is None else name
        description = story.description if description is None else description

    root = story_root(name)
    tree: VirtualTree = {}

    def emit(path: str, content: str) -> None:
        if path in tree:
            LOGGER.debug("Duplicate projected path %s; keeping the later entry", path)
        tree[path] = VirtualFile(path=path, content=normalize_content(content))

    emit(f"{root}/{README_FILE}", render_readme(story, name, description))

    if story.global_vars:
        emit(f"{root}/{GLOBAL_VARS_FILE}", render_global_vars(story, name))

    for script_object in story.script_objects:
        for function in script_object.functions:
            if not function.body:
                continue
            folder = script_object.name or script_object.id
            emit(function_path(root, folder, _leaf_name("Function", folder, function.name)), function.body)

    for event in story.events:
        if not event.body:
            continue
        widget = event.widget_name or event.widget_id
        emit(event_path(root, widget, _leaf_name("Event", widget, event.event_name)), event.body)

    LOGGER.debug("Projected %d file(s) under %s", len(tree), root)
    return {path: tree[path] for path in sorted(tree)}


__all__ = [
    "GLOBAL_VARS_FILE",
    "README_FILE",
    "STORIES_ROOT",
    "UNKNOWN_EVENT",
    "UNKNOWN_WIDGET",
    "event_path",
    "function_path",
    "project_story",
    "render_global_vars",
    "render_readme",
    "story_root",
]
