"""CLI commands for mirroring story scripts into a git repository."""

from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
import yaml

from .errors import StorySyncError
from .reconcile import DiffReport, StorySync
from .schema import DiffStatus
from .tools.commit import validate_commit_message
from .tools.documents import FileDocumentStore
from .tools.remote import DEFAULT_REF, DEFAULT_WORKERS
from .tools.vcs import DEFAULT_AUTHOR_EMAIL, DEFAULT_AUTHOR_NAME, GitError, GitRepository

APP_HELP = "Mirror story scripts into a git repository and back."
DEFAULT_CONFIG_NAME = "storysync.yaml"

DEFAULT_CONFIG_TEMPLATE: Dict[str, Any] = {
    "project": {
        "name": "",
        "repo_root": ".",
    },
    "repository": {
        "path": ".",
        "ref": DEFAULT_REF,
        "workers": DEFAULT_WORKERS,
    },
    "documents": {
        "path": "documents",
    },
    "commit": {
        "author_name": DEFAULT_AUTHOR_NAME,
        "author_email": DEFAULT_AUTHOR_EMAIL,
    },
    "logging": {
        "level": "WARNING",
    },
}

_STATUS_MARKERS = {
    DiffStatus.ADDED: "A",
    DiffStatus.MODIFIED: "M",
    DiffStatus.DELETED: "D",
}

app = typer.Typer(help=APP_HELP)


def _copy_config_template() -> Dict[str, Any]:
    """Return a deep copy of the default configuration template."""
    return copy.deepcopy(DEFAULT_CONFIG_TEMPLATE)


def _write_config(config_path: Path, config_data: Dict[str, Any]) -> None:
    """Persist configuration data to disk with stable formatting."""
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(config_data, handle, sort_keys=False)


def load_config(config_path: Path) -> Dict[str, Any]:
    """Load YAML configuration from disk and return it as a dictionary."""
    if not config_path.exists():
        raise typer.BadParameter(f"Config file not found: {config_path}")

    try:
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        typer.echo(f"Failed to parse config: {error}")
        raise typer.Exit(code=1) from error

    if not isinstance(data, dict):
        typer.echo("Configuration must be a mapping at the top level.")
        raise typer.Exit(code=1)

    return data


def _section(config: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = config.get(name)
    return value if isinstance(value, dict) else {}


def _resolve_repo_root(config: Dict[str, Any], config_path: Path) -> Path:
    """Resolve the project root from configuration."""
    repo_root_path = Path(_section(config, "project").get("repo_root") or ".")
    if not repo_root_path.is_absolute():
        repo_root_path = (config_path.parent / repo_root_path).resolve()
    return repo_root_path


def _resolve_path(config: Dict[str, Any], config_path: Path, section: str, default: str) -> Path:
    candidate = Path(str(_section(config, section).get("path") or default))
    if not candidate.is_absolute():
        candidate = (_resolve_repo_root(config, config_path) / candidate).resolve()
    return candidate


def _configure_logging(config: Dict[str, Any], verbose: bool) -> None:
    level_name = "DEBUG" if verbose else str(_section(config, "logging").get("level") or "WARNING").upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _open_repository(config: Dict[str, Any], config_path: Path) -> GitRepository:
    commit_cfg = _section(config, "commit")
    try:
        return GitRepository(
            _resolve_path(config, config_path, "repository", "."),
            author_name=str(commit_cfg.get("author_name") or DEFAULT_AUTHOR_NAME),
            author_email=str(commit_cfg.get("author_email") or DEFAULT_AUTHOR_EMAIL),
        )
    except GitError as error:
        typer.echo(f"Repository unavailable: {error}")
        raise typer.Exit(code=1) from error


def _build_sync(config_path: Path, verbose: bool) -> StorySync:
    config_data = load_config(config_path)
    _configure_logging(config_data, verbose)
    repository_cfg = _section(config_data, "repository")
    try:
        workers = int(repository_cfg.get("workers") or DEFAULT_WORKERS)
    except (TypeError, ValueError):
        workers = DEFAULT_WORKERS
    return StorySync(
        FileDocumentStore(_resolve_path(config_data, config_path, "documents", "documents")),
        _open_repository(config_data, config_path),
        ref=str(repository_cfg.get("ref") or DEFAULT_REF),
        workers=max(1, workers),
    )


def _compute_report(sync: StorySync, story_id: str) -> DiffReport:
    try:
        return sync.compute_diff(story_id)
    except StorySyncError as error:
        typer.echo(f"Failed to load story {story_id}: {error}")
        raise typer.Exit(code=1) from error


def _render_report(report: DiffReport) -> None:
    if report.clean:
        typer.echo(f"{report.story.name}: no differences.")
        return
    for entry in report.diffs:
        typer.echo(f"{_STATUS_MARKERS[entry.status]} {entry.path}")
    if report.suggested_scope:
        typer.echo(f"Suggested scope: {report.suggested_scope}")


_CONFIG_OPTION = typer.Option(
    DEFAULT_CONFIG_NAME,
    "--config",
    "-c",
    help="Path to the storysync configuration file.",
)
_VERBOSE_OPTION = typer.Option(False, "--verbose", "-v", help="Enable debug logging.")


@app.command()
def init(
    config: str = _CONFIG_OPTION,
    force: bool = typer.Option(False, "--force", help="Overwrite an existing configuration file."),
    git_init: bool = typer.Option(
        True,
        "--git/--no-git",
        help="Initialise the configured repository when it does not exist yet.",
    ),
) -> None:
    """Write the default configuration and prepare the repository."""
    config_path = Path(config)
    if config_path.exists() and not force:
        typer.echo(f"Config already exists: {config_path} (use --force to overwrite)")
        raise typer.Exit(code=1)

    config_data = _copy_config_template()
    config_data["project"]["name"] = config_path.resolve().parent.name
    _write_config(config_path, config_data)
    typer.echo(f"Wrote {config_path}")

    documents_dir = _resolve_path(config_data, config_path, "documents", "documents")
    documents_dir.mkdir(parents=True, exist_ok=True)

    repository_dir = _resolve_path(config_data, config_path, "repository", ".")
    if git_init and not (repository_dir / ".git").exists():
        try:
            GitRepository.initialise(
                repository_dir,
                author_name=config_data["commit"]["author_name"],
                author_email=config_data["commit"]["author_email"],
            )
        except GitError as error:
            typer.echo(f"Failed to initialise git repository: {error}")
            raise typer.Exit(code=1) from error
        typer.echo(f"Initialised git repository at {repository_dir}")


@app.command()
def project(
    story_id: str = typer.Argument(..., help="Identifier of the story to project."),
    out: Optional[Path] = typer.Option(None, "--out", "-o", help="Write the projected files below this directory."),
    config: str = _CONFIG_OPTION,
    verbose: bool = _VERBOSE_OPTION,
) -> None:
    """Print (or write) the virtual file tree of a story."""
    sync = _build_sync(Path(config), verbose)
    try:
        _, tree = sync.local_tree(story_id)
    except StorySyncError as error:
        typer.echo(f"Failed to load story {story_id}: {error}")
        raise typer.Exit(code=1) from error

    for path, item in tree.items():
        if out is None:
            typer.echo(path)
            continue
        target = out / path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(item.content, encoding="utf-8")
    if out is not None:
        typer.echo(f"Wrote {len(tree)} file(s) to {out}")


@app.command()
def diff(
    story_id: str = typer.Argument(..., help="Identifier of the story to compare."),
    config: str = _CONFIG_OPTION,
    verbose: bool = _VERBOSE_OPTION,
) -> None:
    """List the differences between a story and the repository."""
    sync = _build_sync(Path(config), verbose)
    _render_report(_compute_report(sync, story_id))


@app.command()
def push(
    story_id: str = typer.Argument(..., help="Identifier of the story to commit."),
    message: str = typer.Option(..., "--message", "-m", help="Conventional commit message."),
    path: List[str] = typer.Option(None, "--path", "-p", help="Only commit this path (repeatable)."),
    config: str = _CONFIG_OPTION,
    verbose: bool = _VERBOSE_OPTION,
) -> None:
    """Commit a story's differences to the repository."""
    validation = validate_commit_message(message)
    for warning in validation.warnings:
        typer.echo(f"Warning: {warning}")
    if not validation.is_valid:
        for error in validation.errors:
            typer.echo(f"Error: {error}")
        raise typer.Exit(code=1)

    sync = _build_sync(Path(config), verbose)
    report = _compute_report(sync, story_id)
    if report.clean:
        typer.echo("Nothing to push.")
        return
    try:
        revision = sync.push(report, message, path or None)
    except StorySyncError as error:
        typer.echo(f"Push failed: {error}")
        raise typer.Exit(code=1) from error
    typer.echo(f"Pushed {len(report.select(path or None))} file(s) as {revision[:7]}")


@app.command()
def revert(
    story_id: str = typer.Argument(..., help="Identifier of the story to restore."),
    path: List[str] = typer.Option(None, "--path", "-p", help="Only revert this path (repeatable)."),
    config: str = _CONFIG_OPTION,
    verbose: bool = _VERBOSE_OPTION,
) -> None:
    """Restore a story's scripts from the repository."""
    sync = _build_sync(Path(config), verbose)
    report = _compute_report(sync, story_id)
    entries = report.select(path) if path else report.revertable()
    if not entries:
        typer.echo("Nothing to revert.")
        return
    if not path:
        kept = {entry.path for entry in entries}
        for entry in report.diffs:
            if entry.path not in kept:
                typer.echo(f"Skipping {entry.path} (cannot be reverted)")
    try:
        version = sync.revert(report, path or None)
    except StorySyncError as error:
        typer.echo(f"Revert failed: {error}")
        raise typer.Exit(code=1) from error
    typer.echo(f"Reverted {len(entries)} file(s); story is at version {version}")


if __name__ == "__main__":
    app()
