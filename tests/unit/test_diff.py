from __future__ import annotations

from storysync.schema import DiffStatus
from storysync.tools.diff import diff_trees, remote_tree, virtual_tree


def test_modified_and_deleted_example() -> None:
    local = virtual_tree({"a.js": "x"})
    remote = remote_tree(
        [
            {"path": "b.js", "content": "z", "revision": "r2"},
            {"path": "a.js", "content": "y", "revision": "r1"},
        ]
    )

    entries = diff_trees(local, remote)

    assert [entry.model_dump(exclude_none=True) for entry in entries] == [
        {"path": "a.js", "status": DiffStatus.MODIFIED, "old_content": "y", "new_content": "x", "revision": "r1"},
        {"path": "b.js", "status": DiffStatus.DELETED, "old_content": "z", "revision": "r2"},
    ]


def test_added_paths_and_equal_content() -> None:
    local = virtual_tree([{"path": "same.js", "content": "1\n"}, {"path": "new.js", "content": "2\n"}])
    remote = remote_tree([{"path": "same.js", "content": "1\n", "revision": "r"}])

    (entry,) = diff_trees(local, remote)

    assert entry.path == "new.js"
    assert entry.status is DiffStatus.ADDED
    assert entry.old_content is None and entry.revision is None


def test_tree_diffed_against_itself_is_empty() -> None:
    files = {"c.js": "c", "a.js": "a", "b/readme.md": "b"}
    local = virtual_tree(files)
    remote = remote_tree({"path": path, "content": content, "revision": "r"} for path, content in files.items())

    assert diff_trees(local, remote) == []


def test_output_order_ignores_insertion_order() -> None:
    forward = virtual_tree({"a.js": "1", "m.js": "2", "z.js": "3"})
    backward = virtual_tree({"z.js": "3", "m.js": "2", "a.js": "1"})
    empty = remote_tree([])

    assert [entry.path for entry in diff_trees(backward, empty)] == ["a.js", "m.js", "z.js"]
    assert diff_trees(forward, empty) == diff_trees(backward, empty)
