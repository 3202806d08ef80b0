from __future__ import annotations

import copy
import logging

import pytest

from storysync.errors import DuplicateCommit, IdentityAmbiguous, PathUnsupported, RemoteConflict, StorySyncError
from storysync.reconcile import StorySync
from storysync.schema import ChangeOperation, DiffStatus
from storysync.tools.documents import InMemoryDocumentStore
from storysync.tools.remote import InMemoryRepository

REF = "refs/heads/main"
SUBMIT = "stories/Sales_Story/scripts/widgets/Submit_Btn/onClick.js"
README = "stories/Sales_Story/README.md"


def _sync(story, repository=None):
    documents = InMemoryDocumentStore()
    documents.add(story.story_id, story.document, name=story.name)
    return StorySync(documents, repository or InMemoryRepository(), workers=2), documents


def test_first_diff_reports_every_file_as_added(story) -> None:
    sync, _ = _sync(story)

    report = sync.compute_diff(story.story_id)

    assert report.diffs
    assert {entry.status for entry in report.diffs} == {DiffStatus.ADDED}
    assert [entry.path for entry in report.diffs] == sorted(report.local)
    assert report.suggested_scope == "Sales_Story"
    assert report.head is None


def test_push_then_diff_is_clean(story, caplog) -> None:
    repository = InMemoryRepository({"docs/unrelated.md": "keep\n"})
    sync, _ = _sync(story, repository)
    report = sync.compute_diff(story.story_id)

    with caplog.at_level(logging.INFO, logger="storysync.telemetry"):
        revision = sync.push(report, "feat(scripts): mirror story")

    assert repository.head(REF) == revision
    assert repository.files(REF)["docs/unrelated.md"] == "keep\n"
    assert sync.compute_diff(story.story_id).clean
    assert any('"event":"story.push"' in record.getMessage() for record in caplog.records)


def test_push_selected_paths_only(story) -> None:
    repository = InMemoryRepository()
    sync, _ = _sync(story, repository)
    report = sync.compute_diff(story.story_id)

    sync.push(report, "feat(widgets): add submit handler", [SUBMIT])

    assert list(repository.files(REF)) == [SUBMIT]
    remaining = sync.compute_diff(story.story_id)
    assert SUBMIT not in {entry.path for entry in remaining.diffs}


def test_duplicate_push_is_rejected(story) -> None:
    repository = InMemoryRepository()
    sync, _ = _sync(story, repository)
    report = sync.compute_diff(story.story_id)
    sync.push(report, "feat: mirror")

    with pytest.raises(DuplicateCommit):
        sync.push(report, "feat: mirror")

    assert repository.messages == ["feat: mirror"]


def test_push_rejects_invalid_message_and_empty_selection(story) -> None:
    sync, _ = _sync(story)
    report = sync.compute_diff(story.story_id)

    with pytest.raises(StorySyncError) as excinfo:
        sync.push(report, "no type here")
    assert excinfo.value.details["errors"]

    with pytest.raises(StorySyncError):
        sync.push(report, "feat: nothing", ["stories/none.js"])


def test_push_detects_moved_ref(story) -> None:
    repository = InMemoryRepository({"seed.md": "x\n"})
    sync, _ = _sync(story, repository)
    report = sync.compute_diff(story.story_id)
    repository.apply_changeset(REF, [ChangeOperation(path="other.md", content="y\n")], "concurrent")

    with pytest.raises(RemoteConflict):
        sync.push(report, "feat: too late")


def test_remote_deletions_are_pushed_as_deletes(story) -> None:
    repository = InMemoryRepository()
    sync, documents = _sync(story, repository)
    sync.push(sync.compute_diff(story.story_id), "feat: mirror")

    stored = documents.fetch_document(story.story_id)
    stored.document["entities"][1]["app"]["events"].pop("w1")
    documents.submit_document(story.story_id, stored.document, stored.update_counter)

    report = sync.compute_diff(story.story_id)
    assert [(entry.path, entry.status) for entry in report.diffs] == [(SUBMIT, DiffStatus.DELETED)]

    sync.push(report, "fix(widgets): drop submit handler")
    assert SUBMIT not in repository.files(REF)


def test_revert_restores_repository_content(story) -> None:
    repository = InMemoryRepository()
    sync, documents = _sync(story, repository)
    sync.push(sync.compute_diff(story.story_id), "feat: mirror")

    stored = documents.fetch_document(story.story_id)
    events = stored.document["entities"][1]["app"]["events"]
    events["w1"]["onClick"] = "broken();"
    events["w1"]["onExtra"] = "extra();"
    documents.submit_document(story.story_id, stored.document, stored.update_counter)

    report = sync.compute_diff(story.story_id)
    assert {entry.status for entry in report.diffs} == {DiffStatus.ADDED, DiffStatus.MODIFIED}

    version = sync.revert(report)

    assert version == 3
    assert sync.compute_diff(story.story_id).clean
    restored = documents.fetch_document(story.story_id).document["entities"][1]["app"]["events"]["w1"]
    assert restored == {"onClick": "doThing();\n"}


def test_failed_revert_submits_nothing(story) -> None:
    repository = InMemoryRepository()
    sync, documents = _sync(story, repository)
    sync.push(sync.compute_diff(story.story_id), "feat: mirror")

    stored = documents.fetch_document(story.story_id)
    document = stored.document
    document["entities"][1]["app"]["events"]["w1"]["onClick"] = "changed();"
    documents.submit_document(story.story_id, document, stored.update_counter)
    report = sync.compute_diff(story.story_id)

    stored = documents.fetch_document(story.story_id)
    stored.document["entities"][1]["app"]["names"]["w9"] = "Submit_Btn"
    documents.submit_document(story.story_id, stored.document, stored.update_counter)
    before = copy.deepcopy(documents.envelope(story.story_id))

    with pytest.raises(IdentityAmbiguous):
        sync.revert(report)

    assert documents.envelope(story.story_id) == before


def _retitle_page_and_change_submit(documents, story) -> None:
    stored = documents.fetch_document(story.story_id)
    stored.document["entities"][0]["data"]["pages"][0]["title"] = "Summary"
    stored.document["entities"][1]["app"]["events"]["w1"]["onClick"] = "changed();"
    documents.submit_document(story.story_id, stored.document, stored.update_counter)


def test_revert_without_selection_skips_non_script_paths(story, caplog) -> None:
    repository = InMemoryRepository()
    sync, documents = _sync(story, repository)
    sync.push(sync.compute_diff(story.story_id), "feat: mirror")
    _retitle_page_and_change_submit(documents, story)

    report = sync.compute_diff(story.story_id)
    assert [entry.path for entry in report.diffs] == [README, SUBMIT]

    with caplog.at_level(logging.INFO, logger="storysync.reconcile"):
        version = sync.revert(report)

    assert version == 3
    document = documents.fetch_document(story.story_id).document
    assert document["entities"][1]["app"]["events"]["w1"] == {"onClick": "doThing();\n"}
    assert document["entities"][0]["data"]["pages"][0]["title"] == "Summary"
    assert [entry.path for entry in sync.compute_diff(story.story_id).diffs] == [README]
    assert any(README in record.getMessage() for record in caplog.records)


def test_selecting_a_non_script_path_is_rejected_up_front(story) -> None:
    repository = InMemoryRepository()
    sync, documents = _sync(story, repository)
    sync.push(sync.compute_diff(story.story_id), "feat: mirror")
    _retitle_page_and_change_submit(documents, story)
    report = sync.compute_diff(story.story_id)
    before = copy.deepcopy(documents.envelope(story.story_id))

    with pytest.raises(PathUnsupported) as excinfo:
        sync.revert(report, [README, SUBMIT])

    assert excinfo.value.details["paths"] == [README]
    assert documents.envelope(story.story_id) == before
