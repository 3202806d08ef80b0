from __future__ import annotations

import copy
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

SCRIPT_OBJECT_KEY = '[{"scriptObject":"so1"}]'
STORY_DIR = "stories/Sales_Story"

_MODERN_DOCUMENT: Dict[str, Any] = {
    "version": 3,
    "entities": [
        {
            "id": "story",
            "type": "story",
            "data": {"pages": [{"id": "p1", "title": "Overview"}, {"id": "p2", "title": "Details"}]},
        },
        {
            "id": "app",
            "type": "Application",
            "app": {
                "names": {
                    "w1": "Submit_Btn",
                    "w2": "Reset Btn",
                    SCRIPT_OBJECT_KEY: "Utils",
                    "gv1": "counter",
                },
                "events": {
                    "w1": {"onClick": "doThing();"},
                    "w2": {"onClick": "reset();\r\n", "onHover": ""},
                },
                "globalVars": {
                    "gv1": {"id": "gv1", "description": "Click counter", "type": "integer"},
                },
            },
            "scriptObjects": [
                {
                    "instanceId": SCRIPT_OBJECT_KEY,
                    "payload": {
                        "functionImplementations": {
                            "calc": {"name": "calc", "body": "return 1;", "arguments": []},
                            "helper": {"name": "helper", "body": "return 2;  ", "arguments": ["a"]},
                        }
                    },
                }
            ],
        },
        {"id": "theme", "type": "theme", "data": {"colors": ["#fff"]}},
    ],
}

_LEGACY_DOCUMENT: Dict[str, Any] = {
    "version": 1,
    "entities": [
        {
            "id": "app",
            "names": {"w1": "Submit_Btn"},
            "scriptObjects": [
                {"id": "so1", "name": "Utils", "functions": [{"name": "calc", "body": "return 2;"}]},
            ],
        },
        {"id": "w1", "events": [{"name": "onClick", "body": "legacy();"}]},
    ],
}


def modern_document() -> Dict[str, Any]:
    """Return a fresh document with a nested application model."""

    return copy.deepcopy(_MODERN_DOCUMENT)


def legacy_document() -> Dict[str, Any]:
    """Return a fresh document using direct fields and per-entity events."""

    return copy.deepcopy(_LEGACY_DOCUMENT)


@dataclass(slots=True)
class StoryFixture:
    """Story identity and document used by reconciliation tests."""

    story_id: str
    name: str
    document: Dict[str, Any]


@pytest.fixture()
def story() -> StoryFixture:
    return StoryFixture(story_id="s1", name="Sales Story", document=modern_document())


@pytest.fixture()
def modern_doc() -> Dict[str, Any]:
    return modern_document()


@pytest.fixture()
def legacy_doc() -> Dict[str, Any]:
    return legacy_document()
