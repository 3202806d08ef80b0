from __future__ import annotations

from pathlib import Path

import yaml
from typer.testing import CliRunner

from storysync.cli import DEFAULT_CONFIG_TEMPLATE, app
from storysync.tools.documents import FileDocumentStore
from storysync.tools.vcs import GitRepository

SUBMIT = "stories/Sales_Story/scripts/widgets/Submit_Btn/onClick.js"
README = "stories/Sales_Story/README.md"


def _init(runner: CliRunner, tmp_path: Path) -> Path:
    config_path = tmp_path / "storysync.yaml"
    result = runner.invoke(app, ["init", "--config", str(config_path)])
    assert result.exit_code == 0, result.output
    return config_path


def test_init_writes_config_and_repository(tmp_path: Path) -> None:
    runner = CliRunner()
    config_path = _init(runner, tmp_path)

    data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    assert data["repository"] == DEFAULT_CONFIG_TEMPLATE["repository"]
    assert data["project"]["name"] == tmp_path.name
    assert (tmp_path / "documents").is_dir()
    assert GitRepository(tmp_path).head_ref() == "refs/heads/main"

    again = runner.invoke(app, ["init", "--config", str(config_path)])
    assert again.exit_code == 1
    assert "already exists" in again.output


def test_diff_push_and_revert_cycle(tmp_path: Path, story) -> None:
    runner = CliRunner()
    config_path = _init(runner, tmp_path)
    store = FileDocumentStore(tmp_path / "documents")
    store.create(story.story_id, story.document, name=story.name)
    config = ["--config", str(config_path)]

    diff = runner.invoke(app, ["diff", story.story_id, *config])
    assert diff.exit_code == 0, diff.output
    assert f"A {SUBMIT}" in diff.output
    assert "Suggested scope: Sales_Story" in diff.output

    push = runner.invoke(app, ["push", story.story_id, "-m", "feat(scripts): mirror story", *config])
    assert push.exit_code == 0, push.output
    assert "Pushed 6 file(s)" in push.output
    assert SUBMIT in GitRepository(tmp_path).files("refs/heads/main")

    clean = runner.invoke(app, ["diff", story.story_id, *config])
    assert "no differences" in clean.output

    stored = store.fetch_document(story.story_id)
    stored.document["entities"][1]["app"]["events"]["w1"]["onClick"] = "changed();"
    store.submit_document(story.story_id, stored.document, stored.update_counter)

    modified = runner.invoke(app, ["diff", story.story_id, *config])
    assert f"M {SUBMIT}" in modified.output

    revert = runner.invoke(app, ["revert", story.story_id, "--path", SUBMIT, *config])
    assert revert.exit_code == 0, revert.output
    assert "version 3" in revert.output
    assert store.fetch_document(story.story_id).document["entities"][1]["app"]["events"]["w1"] == {
        "onClick": "doThing();\n"
    }


def test_push_rejects_invalid_message(tmp_path: Path, story) -> None:
    runner = CliRunner()
    config_path = _init(runner, tmp_path)
    FileDocumentStore(tmp_path / "documents").create(story.story_id, story.document, name=story.name)

    result = runner.invoke(app, ["push", story.story_id, "-m", "Updated stuff.", "--config", str(config_path)])

    assert result.exit_code == 1
    assert "Error: Commit type is required" in result.output


def test_project_writes_tree(tmp_path: Path, story) -> None:
    runner = CliRunner()
    config_path = _init(runner, tmp_path)
    FileDocumentStore(tmp_path / "documents").create(story.story_id, story.document, name=story.name)
    out = tmp_path / "out"

    listing = runner.invoke(app, ["project", story.story_id, "--config", str(config_path)])
    written = runner.invoke(app, ["project", story.story_id, "--out", str(out), "--config", str(config_path)])

    assert SUBMIT in listing.output.splitlines()
    assert written.exit_code == 0, written.output
    assert (out / SUBMIT).read_text(encoding="utf-8") == "doThing();\n"


def test_unknown_story_fails_cleanly(tmp_path: Path) -> None:
    runner = CliRunner()
    config_path = _init(runner, tmp_path)

    result = runner.invoke(app, ["diff", "missing", "--config", str(config_path)])

    assert result.exit_code == 1
    assert "Failed to load story missing" in result.output


def test_missing_config_is_reported(tmp_path: Path) -> None:
    result = CliRunner().invoke(app, ["diff", "s1", "--config", str(tmp_path / "nope.yaml")])

    assert result.exit_code != 0


def test_revert_without_paths_skips_readme(tmp_path: Path, story) -> None:
    runner = CliRunner()
    config_path = _init(runner, tmp_path)
    store = FileDocumentStore(tmp_path / "documents")
    store.create(story.story_id, story.document, name=story.name)
    config = ["--config", str(config_path)]
    push = runner.invoke(app, ["push", story.story_id, "-m", "feat: mirror", *config])
    assert push.exit_code == 0, push.output

    stored = store.fetch_document(story.story_id)
    stored.document["entities"][0]["data"]["pages"][0]["title"] = "Summary"
    stored.document["entities"][1]["app"]["events"]["w1"]["onClick"] = "changed();"
    store.submit_document(story.story_id, stored.document, stored.update_counter)

    result = runner.invoke(app, ["revert", story.story_id, *config])

    assert result.exit_code == 0, result.output
    assert f"Skipping {README} (cannot be reverted)" in result.output
    assert "Reverted 1 file(s)" in result.output
    document = store.fetch_document(story.story_id).document
    assert document["entities"][1]["app"]["events"]["w1"] == {"onClick": "doThing();\n"}
    assert document["entities"][0]["data"]["pages"][0]["title"] == "Summary"
