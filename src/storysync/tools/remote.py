"""Repository collaborator interface and the bounded remote fetch pool."""

from __future__ import annotations

import hashlib
import logging
import queue
import threading
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from ..errors import RemoteConflict, RepositoryError
from ..schema import ChangeOperation, RemoteEntry, RemoteFile, RemoteTree

LOGGER = logging.getLogger(__name__)

DEFAULT_WORKERS = 5
DEFAULT_REF = "refs/heads/main"


class RemoteRepository(ABC):
    """Interface describing the remote file tree the story is mirrored into."""

    @abstractmethod
    def list_remote_paths(self, ref: str) -> List[RemoteEntry]:
        """Return every file path reachable from ``ref`` with its content identity.

        An unknown ref (for example an empty repository) yields an empty list.
        """

    @abstractmethod
    def fetch_content(self, identity: str) -> str:
        """Return the text stored under ``identity``."""

    def head(self, ref: str) -> Optional[str]:
        """Return the revision ``ref`` points at, or ``None`` when unknown."""
        return None

    @abstractmethod
    def apply_changeset(
        self,
        ref: str,
        operations: Sequence[ChangeOperation],
        message: str,
        *,
        expected_head: Optional[str] = None,
    ) -> str:
        """Atomically move ``ref`` to a new revision containing ``operations``.

        Raises:
            RemoteConflict: ``ref`` no longer points at ``expected_head`` or
                moved while the changeset was being written.
        """


def _blob_identity(content: str) -> str:
    data = content.encode("utf-8")
    return hashlib.sha1(b"blob %d\0" % len(data) + data).hexdigest()


class InMemoryRepository(RemoteRepository):
    """Keep repository snapshots in local process memory."""

    def __init__(self, files: Optional[Mapping[str, str]] = None, *, ref: str = DEFAULT_REF) -> None:
        self._blobs: Dict[str, str] = {}
        self._trees: Dict[str, Dict[str, str]] = {}
        self._heads: Dict[str, str] = {}
        self._lock = threading.Lock()
        self.failing: set[str] = set()
        self.messages: List[str] = []
        if files:
            self.apply_changeset(
                ref,
                [ChangeOperation(path=path, content=content) for path, content in files.items()],
                "Initial snapshot",
            )

    def head(self, ref: str) -> Optional[str]:
        return self._heads.get(ref)

    def files(self, ref: str) -> Dict[str, str]:
        """Return ``{path: content}`` for ``ref``."""
        tree = self._trees.get(self._heads.get(ref, ""), {})
        return {path: self._blobs[identity] for path, identity in sorted(tree.items())}

    def list_remote_paths(self, ref: str) -> List[RemoteEntry]:
        tree = self._trees.get(self._heads.get(ref, ""), {})
        return [RemoteEntry(path=path, identity=identity) for path, identity in sorted(tree.items())]

    def fetch_content(self, identity: str) -> str:
        if identity in self.failing:
            raise RepositoryError(f"Blob {identity} is unavailable.")
        try:
            return self._blobs[identity]
        except KeyError as exc:
            raise RepositoryError(f"Unknown blob {identity}.") from exc

    def apply_changeset(
        self,
        ref: str,
        operations: Sequence[ChangeOperation],
        message: str,
        *,
        expected_head: Optional[str] = None,
    ) -> str:
        with self._lock:
            head = self._heads.get(ref)
            if expected_head is not None and head != expected_head:
                raise RemoteConflict(
                    f"{ref} moved from {expected_head} to {head}.",
                    details={"ref": ref, "expected": expected_head, "actual": head},
                )
            tree = dict(self._trees.get(head or "", {}))
            for operation in operations:
                if operation.is_delete:
                    tree.pop(operation.path, None)
                    continue
                identity = _blob_identity(operation.content or "")
                self._blobs[identity] = operation.content or ""
                tree[operation.path] = identity
            digest = hashlib.sha1()
            digest.update((head or "").encode("utf-8"))
            digest.update(message.encode("utf-8"))
            for path, identity in sorted(tree.items()):
                digest.update(f"{path}\0{identity}\n".encode("utf-8"))
            commit = digest.hexdigest()
            self._trees[commit] = tree
            self._heads[ref] = commit
            self.messages.append(message)
            return commit


def select_remote_entries(
    listing: Iterable[RemoteEntry],
    local_paths: Iterable[str],
    story_dir: str,
) -> List[RemoteEntry]:
    """Keep remote entries that exist locally or live under ``story_dir``."""
    wanted = set(local_paths)
    prefix = story_dir.rstrip("/") + "/"
    return [entry for entry in listing if entry.path in wanted or entry.path.startswith(prefix)]


def fetch_remote_tree(
    repository: RemoteRepository,
    entries: Sequence[RemoteEntry],
    *,
    workers: int = DEFAULT_WORKERS,
) -> RemoteTree:
    """Fetch the content of ``entries`` with a fixed pool of worker threads.

    Workers drain a shared queue one blocking fetch at a time.  A failed fetch
    is logged and the path left out of the result; there is no retry.  The
    returned tree is ordered by path.
    """
    work: "queue.Queue[RemoteEntry]" = queue.Queue()
    for entry in entries:
        work.put(entry)

    results: Dict[str, RemoteFile] = {}
    lock = threading.Lock()

    def _drain() -> None:
        while True:
            try:
                entry = work.get_nowait()
            except queue.Empty:
                return
            try:
                content = repository.fetch_content(entry.identity)
            except Exception as error:  # noqa: BLE001 - a missing file is reported as absent
                LOGGER.warning("Failed to fetch %s (%s): %s", entry.path, entry.identity, error)
                continue
            finally:
                work.task_done()
            with lock:
                results[entry.path] = RemoteFile(path=entry.path, content=content, revision=entry.identity)

    pool_size = max(1, min(workers, len(entries)))
    threads = [
        threading.Thread(target=_drain, name=f"storysync-fetch-{number}", daemon=True)
        for number in range(pool_size)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    LOGGER.debug("Fetched %d of %d remote file(s)", len(results), len(entries))
    return {path: results[path] for path in sorted(results)}


__all__ = [
    "DEFAULT_REF",
    "DEFAULT_WORKERS",
    "InMemoryRepository",
    "RemoteRepository",
    "fetch_remote_tree",
    "select_remote_entries",
]
