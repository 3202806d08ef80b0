from __future__ import annotations

from pathlib import Path

import pytest

from storysync.errors import RemoteConflict
from storysync.schema import ChangeOperation
from storysync.tools.remote import fetch_remote_tree
from storysync.tools.vcs import GitError, GitRepository

REF = "refs/heads/main"


def _repository(tmp_path: Path) -> GitRepository:
    return GitRepository.initialise(tmp_path / "repo", author_name="Story Bot", author_email="bot@example.com")


def test_initialise_points_head_at_main(tmp_path: Path) -> None:
    repo = _repository(tmp_path)

    assert repo.head_ref() == REF
    assert repo.head(REF)
    assert repo.list_remote_paths(REF) == []
    assert repo.list_remote_paths("refs/heads/missing") == []


def test_apply_changeset_writes_commit_without_touching_worktree(tmp_path: Path) -> None:
    repo = _repository(tmp_path)
    before = repo.head(REF)

    revision = repo.apply_changeset(
        REF,
        [
            ChangeOperation(path="stories/S/README.md", content="# S\n"),
            ChangeOperation(path="stories/S/scripts/widgets/Btn/onClick.js", content="go();\n"),
        ],
        "feat(scripts): add story",
        expected_head=before,
    )

    assert repo.head(REF) == revision
    assert repo.files(REF) == {
        "stories/S/README.md": "# S\n",
        "stories/S/scripts/widgets/Btn/onClick.js": "go();\n",
    }
    assert not (repo.root / "stories").exists()

    log = repo.git("log", "-1", "--format=%an <%ae>|%s|%P", REF).stdout.strip()
    assert log == f"Story Bot <bot@example.com>|feat(scripts): add story|{before}"


def test_apply_changeset_deletes_and_updates(tmp_path: Path) -> None:
    repo = _repository(tmp_path)
    repo.apply_changeset(
        REF,
        [ChangeOperation(path="a.js", content="a\n"), ChangeOperation(path="b.js", content="b\n")],
        "chore: seed",
    )

    repo.apply_changeset(
        REF,
        [ChangeOperation(path="a.js"), ChangeOperation(path="b.js", content="bee\n")],
        "chore: rework",
    )

    assert repo.files(REF) == {"b.js": "bee\n"}


def test_stale_expected_head_is_a_conflict(tmp_path: Path) -> None:
    repo = _repository(tmp_path)
    stale = repo.head(REF)
    repo.apply_changeset(REF, [ChangeOperation(path="a.js", content="a\n")], "chore: first")

    with pytest.raises(RemoteConflict):
        repo.apply_changeset(REF, [ChangeOperation(path="b.js", content="b\n")], "chore: late", expected_head=stale)

    assert "b.js" not in repo.files(REF)


def test_new_ref_starts_from_empty_tree(tmp_path: Path) -> None:
    repo = _repository(tmp_path)

    revision = repo.apply_changeset("refs/heads/mirror", [ChangeOperation(path="x.js", content="x\n")], "chore: x")

    assert repo.resolve("refs/heads/mirror") == revision
    assert repo.git("rev-list", "--count", revision).stdout.strip() == "1"


def test_worker_pool_reads_git_blobs(tmp_path: Path) -> None:
    repo = _repository(tmp_path)
    files = {f"stories/S/f{index}.js": f"{index}\n" for index in range(8)}
    repo.apply_changeset(REF, [ChangeOperation(path=path, content=body) for path, body in files.items()], "chore: seed")

    tree = fetch_remote_tree(repo, repo.list_remote_paths(REF), workers=3)

    assert {path: item.content for path, item in tree.items()} == files


def test_non_repository_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(GitError):
        GitRepository(tmp_path)
