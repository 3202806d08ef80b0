"""Git-backed repository collaborator.

The helpers below mirror a story tree into a local git repository using only
plumbing commands, so the working tree is never touched: blobs are listed with
``ls-tree``, read with ``cat-file``, and changesets are written through a
throw-away index followed by a compare-and-swap ``update-ref``.
"""

from __future__ import annotations

import os
import subprocess
import tempfile
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence

from ..errors import RemoteConflict, RepositoryError
from ..schema import ChangeOperation, RemoteEntry
from .remote import DEFAULT_REF, RemoteRepository

_ZERO_OID = "0" * 40
DEFAULT_AUTHOR_NAME = "storysync"
DEFAULT_AUTHOR_EMAIL = "storysync@example.com"


class GitError(RepositoryError):
    """Raised when a git command fails or the repository cannot be used."""


class GitRepository(RemoteRepository):
    """Lightweight wrapper around ``git`` plumbing commands."""

    def __init__(
        self,
        root: Path | str,
        *,
        author_name: str = DEFAULT_AUTHOR_NAME,
        author_email: str = DEFAULT_AUTHOR_EMAIL,
    ) -> None:
        self.root = Path(root).resolve()
        bare = (self.root / "HEAD").is_file() and (self.root / "objects").is_dir()
        if not bare and not (self.root / ".git").exists():
            raise GitError(f"Not a git repository: {self.root}")
        self.author_name = author_name
        self.author_email = author_email

    @classmethod
    def discover(cls, start: Path | str | None = None, **kwargs: str) -> "GitRepository":
        """Locate the nearest git repository starting from ``start``."""

        path = Path(start or Path.cwd()).resolve()
        for candidate in (path, *path.parents):
            if (candidate / ".git").exists():
                return cls(candidate, **kwargs)
        raise GitError(f"Unable to locate a git repository from {path}")

    @classmethod
    def initialise(cls, root: Path | str, **kwargs: str) -> "GitRepository":
        """Initialise a new git repository at ``root`` with an initial commit."""

        path = Path(root).resolve()
        path.mkdir(parents=True, exist_ok=True)
        repo = cls.__new__(cls)
        repo.root = path
        repo.author_name = kwargs.get("author_name", DEFAULT_AUTHOR_NAME)
        repo.author_email = kwargs.get("author_email", DEFAULT_AUTHOR_EMAIL)
        repo.git("init")
        repo.git("symbolic-ref", "HEAD", kwargs.get("ref", DEFAULT_REF))

        def _ensure_config(key: str, value: str) -> None:
            current = repo.git("config", "--get", key, check=False)
            if current.returncode != 0 or not current.stdout.strip():
                repo.git("config", key, value)

        _ensure_config("user.email", repo.author_email)
        _ensure_config("user.name", repo.author_name)
        repo.git("commit", "--allow-empty", "-m", "Initial commit")
        return repo

    # ------------------------------------------------------------------ git IO
    def _run_git(
        self,
        args: Sequence[str],
        *,
        check: bool = True,
        input_text: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> subprocess.CompletedProcess[str]:
        command = ["git", *args]
        process_env = None
        if env:
            process_env = os.environ.copy()
            process_env.update(env)
        process = subprocess.run(
            command,
            cwd=self.root,
            capture_output=True,
            text=False,
            check=False,
            input=input_text.encode("utf-8") if input_text is not None else None,
            env=process_env,
        )
        stdout = process.stdout.decode("utf-8", errors="replace") if process.stdout else ""
        stderr = process.stderr.decode("utf-8", errors="replace") if process.stderr else ""
        result = subprocess.CompletedProcess(process.args, process.returncode, stdout, stderr)
        if check and result.returncode != 0:
            message = result.stderr.strip() or result.stdout.strip() or "unknown git error"
            raise GitError(f"git {' '.join(args)} failed: {message}")
        return result

    def git(self, *args: str, check: bool = True) -> subprocess.CompletedProcess[str]:
        """Execute ``git`` with ``args`` relative to the repository root."""

        return self._run_git(list(args), check=check)

    # -------------------------------------------------------------- refs
    def head_ref(self) -> str:
        """Return the full ref ``HEAD`` points at (e.g. ``refs/heads/main``)."""

        return self._run_git(["symbolic-ref", "HEAD"]).stdout.strip()

    def resolve(self, ref: str) -> str | None:
        """Return the commit ``ref`` points at, or ``None`` when it does not exist."""

        result = self._run_git(["rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}"], check=False)
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    # ------------------------------------------------------- repository API
    def head(self, ref: str) -> str | None:
        return self.resolve(ref)

    def list_remote_paths(self, ref: str) -> List[RemoteEntry]:
        head = self.resolve(ref)
        if head is None:
            return []
        result = self._run_git(["ls-tree", "-r", "-z", "--full-tree", head])
        entries: List[RemoteEntry] = []
        for record in result.stdout.split("\0"):
            if not record:
                continue
            meta, _, path = record.partition("\t")
            parts = meta.split()
            if len(parts) != 3 or parts[1] != "blob":
                continue
            entries.append(RemoteEntry(path=path, identity=parts[2]))
        return entries

    def fetch_content(self, identity: str) -> str:
        return self._run_git(["cat-file", "blob", identity]).stdout

    def files(self, ref: str) -> Dict[str, str]:
        """Return ``{path: content}`` for every blob reachable from ``ref``."""

        return {entry.path: self.fetch_content(entry.identity) for entry in self.list_remote_paths(ref)}

    def apply_changeset(
        self,
        ref: str,
        operations: Sequence[ChangeOperation],
        message: str,
        *,
        expected_head: Optional[str] = None,
    ) -> str:
        head = self.resolve(ref)
        if expected_head is not None and head != expected_head:
            raise RemoteConflict(
                f"{ref} moved from {expected_head} to {head}.",
                details={"ref": ref, "expected": expected_head, "actual": head},
            )

        with tempfile.TemporaryDirectory(prefix="storysync-index-") as scratch:
            index_env = {"GIT_INDEX_FILE": os.path.join(scratch, "index")}
            if head:
                self._run_git(["read-tree", head], env=index_env)
            else:
                self._run_git(["read-tree", "--empty"], env=index_env)

            for operation in operations:
                if operation.is_delete:
                    self._run_git(["update-index", "--force-remove", "--", operation.path], env=index_env)
                    continue
                blob = self._run_git(
                    ["hash-object", "-w", "--stdin"],
                    input_text=operation.content,
                ).stdout.strip()
                self._run_git(
                    ["update-index", "--add", "--cacheinfo", f"100644,{blob},{operation.path}"],
                    env=index_env,
                )
            tree = self._run_git(["write-tree"], env=index_env).stdout.strip()

        commit_args = ["commit-tree", tree, "-m", message]
        if head:
            commit_args.extend(["-p", head])
        identity_env = {
            "GIT_AUTHOR_NAME": self.author_name,
            "GIT_AUTHOR_EMAIL": self.author_email,
            "GIT_COMMITTER_NAME": self.author_name,
            "GIT_COMMITTER_EMAIL": self.author_email,
        }
        commit = self._run_git(commit_args, env=identity_env).stdout.strip()

        update = self._run_git(["update-ref", ref, commit, head or _ZERO_OID], check=False)
        if update.returncode != 0:
            message_text = update.stderr.strip() or update.stdout.strip() or "unknown git error"
            raise RemoteConflict(
                f"{ref} moved while the changeset was written: {message_text}",
                details={"ref": ref, "expected": head},
            )
        return commit


__all__ = ["GitError", "GitRepository"]
