"""Deterministic comparison of a projected tree against a remote snapshot."""

from __future__ import annotations

from typing import Any, Iterable, List, Mapping

from ..schema import DiffEntry, DiffStatus, RemoteFile, RemoteTree, VirtualFile, VirtualTree


def diff_trees(local: Mapping[str, VirtualFile], remote: Mapping[str, RemoteFile]) -> List[DiffEntry]:
    """Classify every path of ``local`` and ``remote`` that differs.

    Paths with equal content produce no entry, so diffing a tree against
    itself is empty.  The result is sorted by path regardless of the input
    ordering.
    """
    entries: List[DiffEntry] = []
    for path in sorted(set(local) | set(remote)):
        local_file = local.get(path)
        remote_file = remote.get(path)
        if remote_file is None:
            entries.append(DiffEntry(path=path, status=DiffStatus.ADDED, new_content=local_file.content))
        elif local_file is None:
            entries.append(
                DiffEntry(
                    path=path,
                    status=DiffStatus.DELETED,
                    old_content=remote_file.content,
                    revision=remote_file.revision,
                )
            )
        elif local_file.content != remote_file.content:
            entries.append(
                DiffEntry(
                    path=path,
                    status=DiffStatus.MODIFIED,
                    old_content=remote_file.content,
                    new_content=local_file.content,
                    revision=remote_file.revision,
                )
            )
    return entries


def virtual_tree(files: Mapping[str, str] | Iterable[Mapping[str, Any]]) -> VirtualTree:
    """Build a :data:`VirtualTree` from ``{path: content}`` or ``[{path, content}]``."""
    records = (
        ({"path": path, "content": content} for path, content in files.items())
        if isinstance(files, Mapping)
        else files
    )
    tree: VirtualTree = {}
    for record in records:
        item = VirtualFile.model_validate(dict(record))
        tree[item.path] = item
    return tree


def remote_tree(files: Iterable[Mapping[str, Any]]) -> RemoteTree:
    """Build a :data:`RemoteTree` from ``[{path, content, revision}]`` records."""
    tree: RemoteTree = {}
    for record in files:
        item = RemoteFile.model_validate(dict(record))
        tree[item.path] = item
    return tree


__all__ = ["diff_trees", "remote_tree", "virtual_tree"]
