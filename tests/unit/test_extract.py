from __future__ import annotations

import logging

from storysync.story.entities import composite_key
from storysync.story.extract import extract_story, resolve_widget, script_object_identity


def test_modern_document_extraction(modern_doc) -> None:
    story = extract_story(modern_doc)

    assert [(page.id, page.title) for page in story.pages] == [("p1", "Overview"), ("p2", "Details")]

    (variable,) = story.global_vars
    assert (variable.id, variable.name, variable.type) == ("gv1", "counter", "integer")
    assert variable.description == "Click counter"

    (script_object,) = story.script_objects
    assert script_object.id == "so1"
    assert script_object.name == "Utils"
    assert [function.name for function in script_object.functions] == ["calc", "helper"]
    assert script_object.functions[1].arguments == ["a"]

    events = {(event.widget_name, event.event_name): event.body for event in story.events}
    assert events[("Submit_Btn", "onClick")] == "doThing();"
    assert events[("Reset Btn", "onClick")] == "reset();\r\n"


def test_legacy_document_extraction(legacy_doc) -> None:
    story = extract_story(legacy_doc)

    assert story.pages == []
    (script_object,) = story.script_objects
    assert (script_object.id, script_object.name) == ("so1", "Utils")
    assert script_object.functions[0].body == "return 2;"
    (event,) = story.events
    assert (event.widget_id, event.widget_name, event.event_name, event.body) == (
        "w1",
        "Submit_Btn",
        "onClick",
        "legacy();",
    )


def test_unexpected_section_shape_degrades_to_empty(modern_doc, caplog) -> None:
    modern_doc["entities"][1]["app"]["globalVars"] = "corrupt"

    with caplog.at_level(logging.WARNING, logger="storysync.story.extract"):
        story = extract_story(modern_doc)

    assert story.global_vars == []
    assert story.events and story.script_objects
    assert any("global variables" in record.getMessage() for record in caplog.records)


def test_non_mapping_document_yields_empty_story() -> None:
    story = extract_story(["not", "a", "document"])

    assert story.pages == story.events == story.script_objects == story.global_vars == []


def test_composite_event_keys_resolve_to_widget_labels() -> None:
    key = '[{"appPage":"P1"},{"widget":"w9"}]'

    assert resolve_widget(key, {"w9": "Chart"}) == ("w9", "Chart")
    assert resolve_widget(key, {key: "Direct"}) == (key, "Direct")
    assert resolve_widget("w7", {}) == ("w7", "w7")


def test_script_object_identity_prefers_instance_id() -> None:
    assert script_object_identity({"instanceId": composite_key("scriptObject", "so9"), "id": "x"}) == "so9"
    assert script_object_identity({"instanceId": "raw"}) == "raw"
    assert script_object_identity({"id": "legacy"}) == "legacy"
    assert script_object_identity({}) is None
