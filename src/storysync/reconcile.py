"""Reconciliation loop between the document store and the repository.

:class:`StorySync` wires the pure engine (extract, project, diff, revert) to
the two collaborators.  It projects the current document, fetches the
matching remote files with the bounded worker pool, and then either commits
the selected differences to the repository or reverses them into the
document store.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from .errors import DuplicateCommit, PathUnsupported, StorySyncError
from .schema import ChangeOperation, DiffEntry, DiffStatus, ParsedStory, RemoteTree, VirtualTree
from .story.project import project_story, story_root
from .tools.commit import commit_fingerprint, deepest_shared_scope, validate_commit_message
from .tools.diff import diff_trees
from .tools.documents import DocumentStore, validate_story_content
from .tools.remote import DEFAULT_REF, DEFAULT_WORKERS, RemoteRepository, fetch_remote_tree, select_remote_entries
from .tools.revert import can_revert, revert_document
from .utils.telemetry import emit_event

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class DiffReport:
    """Differences between one story's projection and the repository."""

    story: ParsedStory
    diffs: List[DiffEntry] = field(default_factory=list)
    local: VirtualTree = field(default_factory=dict)
    remote: RemoteTree = field(default_factory=dict)
    head: Optional[str] = None
    suggested_scope: Optional[str] = None

    @property
    def clean(self) -> bool:
        return not self.diffs

    def select(self, paths: Optional[Iterable[str]] = None) -> List[DiffEntry]:
        """Return the entries for ``paths`` (all entries when ``paths`` is ``None``)."""
        if paths is None:
            return list(self.diffs)
        wanted = set(paths)
        return [entry for entry in self.diffs if entry.path in wanted]

    def revertable(self) -> List[DiffEntry]:
        """Return the entries that can be reversed into the document."""
        return [entry for entry in self.diffs if can_revert(entry)]


class StorySync:
    """Drive diff, push and revert for stories held by a :class:`DocumentStore`."""

    def __init__(
        self,
        documents: DocumentStore,
        repository: RemoteRepository,
        *,
        ref: str = DEFAULT_REF,
        workers: int = DEFAULT_WORKERS,
    ) -> None:
        self.documents = documents
        self.repository = repository
        self.ref = ref
        self.workers = workers
        self._commit_lock = threading.Lock()
        self._last_fingerprint: Optional[str] = None

    # ------------------------------------------------------------ trees
    def local_tree(self, story_id: str) -> Tuple[ParsedStory, VirtualTree]:
        stored = self.documents.fetch_document(story_id)
        return stored.story, project_story(stored.story)

    def remote_tree(self, story: ParsedStory, local: VirtualTree) -> RemoteTree:
        listing = self.repository.list_remote_paths(self.ref)
        entries = select_remote_entries(listing, local.keys(), story_root(story.name))
        LOGGER.debug("Fetching %d of %d remote path(s) for %s", len(entries), len(listing), story.id)
        return fetch_remote_tree(self.repository, entries, workers=self.workers)

    def compute_diff(self, story_id: str) -> DiffReport:
        """Project ``story_id`` and compare it with the repository at ``ref``."""
        story, local = self.local_tree(story_id)
        head = self.repository.head(self.ref)
        remote = self.remote_tree(story, local)
        diffs = diff_trees(local, remote)
        LOGGER.info("Story %s: %d difference(s) against %s", story_id, len(diffs), self.ref)
        return DiffReport(
            story=story,
            diffs=diffs,
            local=local,
            remote=remote,
            head=head,
            suggested_scope=deepest_shared_scope([entry.path for entry in diffs]),
        )

    # ------------------------------------------------------------ push
    def push(self, report: DiffReport, message: str, selected: Optional[Iterable[str]] = None) -> str:
        """Commit the selected differences to the repository and return the new revision.

        Raises:
            StorySyncError: The message is invalid, nothing is selected, or
                another push is in flight.
            DuplicateCommit: The same changeset was already pushed.
            RemoteConflict: The ref moved since ``report`` was computed.
        """
        validation = validate_commit_message(message)
        if not validation.is_valid:
            raise StorySyncError(
                "; ".join(validation.errors),
                details={"errors": validation.errors, "warnings": validation.warnings},
            )
        entries = report.select(selected)
        if not entries:
            raise StorySyncError("No files selected to commit.")

        fingerprint = commit_fingerprint(message, entries)
        if not self._commit_lock.acquire(blocking=False):
            raise StorySyncError("A commit is already in progress.")
        try:
            if fingerprint == self._last_fingerprint:
                raise DuplicateCommit(
                    "This commit has already been processed (duplicate submission prevented).",
                    details={"fingerprint": fingerprint},
                )
            operations = [
                ChangeOperation(
                    path=entry.path,
                    content=None if entry.status is DiffStatus.DELETED else entry.new_content,
                )
                for entry in entries
            ]
            revision = self.repository.apply_changeset(
                self.ref,
                operations,
                message,
                expected_head=report.head,
            )
            self._last_fingerprint = fingerprint
        finally:
            self._commit_lock.release()

        LOGGER.info("Pushed %d file(s) for %s as %s", len(entries), report.story.id, revision)
        emit_event(
            "story.push",
            story=report.story.id,
            ref=self.ref,
            revision=revision,
            paths=[entry.path for entry in entries],
        )
        return revision

    # ------------------------------------------------------------ revert
    def revert(self, report: DiffReport, selected: Optional[Iterable[str]] = None) -> int:
        """Reverse the selected differences into the document store.

        Without a selection every revertable entry is used and the rest (the
        README, global variables) is skipped.  An explicit selection naming a
        path that cannot be reverted is rejected before anything is fetched.
        The document is fetched again so the patch loop runs against the
        store's current state; any failure aborts before submission.  Returns
        the store's new update counter.
        """
        if selected is None:
            entries = report.revertable()
            kept = {entry.path for entry in entries}
            skipped = [entry.path for entry in report.diffs if entry.path not in kept]
            if skipped:
                LOGGER.info("Skipping %d path(s) that cannot be reverted: %s", len(skipped), ", ".join(skipped))
        else:
            entries = report.select(selected)
            unsupported = [entry.path for entry in entries if not can_revert(entry)]
            if unsupported:
                raise PathUnsupported(
                    f"Cannot revert {', '.join(unsupported)}.",
                    details={"paths": unsupported},
                )
        if not entries:
            raise StorySyncError("No files selected to revert.")

        stored = self.documents.fetch_document(report.story.id)
        validate_story_content(stored.document)
        LOGGER.debug(
            "Reverting %d path(s) into %s at version %d",
            len(entries),
            report.story.id,
            stored.update_counter,
        )
        document = revert_document(stored.document, entries)
        counter = self.documents.submit_document(report.story.id, document, stored.update_counter)

        LOGGER.info("Reverted %d file(s) into %s (version %d)", len(entries), report.story.id, counter)
        emit_event(
            "story.revert",
            story=report.story.id,
            version=counter,
            paths=[entry.path for entry in entries],
        )
        return counter


__all__ = ["DiffReport", "StorySync"]
