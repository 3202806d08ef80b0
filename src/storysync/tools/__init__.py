"""Collaborators and engines operating on projected trees."""

from .commit import CommitValidation, commit_fingerprint, deepest_shared_scope, validate_commit_message
from .diff import diff_trees, remote_tree, virtual_tree
from .documents import DocumentStore, FileDocumentStore, InMemoryDocumentStore, StoredDocument
from .remote import DEFAULT_REF, InMemoryRepository, RemoteRepository, fetch_remote_tree, select_remote_entries
from .revert import can_revert, parse_target, patch_document, remove_from_document, revert_document
from .vcs import GitError, GitRepository

__all__ = [
    "CommitValidation",
    "DEFAULT_REF",
    "DocumentStore",
    "FileDocumentStore",
    "GitError",
    "GitRepository",
    "InMemoryDocumentStore",
    "InMemoryRepository",
    "RemoteRepository",
    "StoredDocument",
    "can_revert",
    "commit_fingerprint",
    "deepest_shared_scope",
    "diff_trees",
    "fetch_remote_tree",
    "parse_target",
    "patch_document",
    "remote_tree",
    "remove_from_document",
    "revert_document",
    "select_remote_entries",
    "validate_commit_message",
    "virtual_tree",
]
