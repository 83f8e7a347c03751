"""Integration tests using synthetic git repositories."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from patingin.cli import app
from patingin.git import DiffScope, GitError, build_git_command, get_diff, get_repo_root
from patingin.registry import build_registry
from patingin.review_engine import ReviewEngine
from tests.helpers_git import commit_all, init_repo, stage, write_file

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))


def _baseline(tmp_path: Path) -> Path:
    repo = init_repo(tmp_path)
    write_file(repo, "src/app.py", "def main():\n    try:\n        run()\n    except ValueError:\n        pass\n")
    commit_all(repo, "baseline")
    return repo


def test_diff_scope_commands() -> None:
    assert build_git_command(DiffScope.unstaged()) == "git diff"
    assert build_git_command(DiffScope.staged()) == "git diff --cached"
    assert build_git_command(DiffScope.since("HEAD~3")) == "git diff HEAD~3"
    assert DiffScope.since("main").describe() == "changes since main"


def test_review_real_unstaged_diff(tmp_path: Path) -> None:
    repo = _baseline(tmp_path)
    write_file(repo, "src/app.py", "def main():\n    try:\n        run()\n    except:\n        pass\n")

    diff_text = get_diff(repo, DiffScope.unstaged())
    result = ReviewEngine(build_registry()).review_diff_text(diff_text)

    assert [(item.file_path, item.line_number, item.rule.id) for item in result.violations] == [
        ("src/app.py", 4, "bare_except")
    ]


def test_staged_scope_sees_only_index(tmp_path: Path) -> None:
    repo = _baseline(tmp_path)
    write_file(repo, "web/index.js", 'console.log("staged");\n')
    stage(repo, "web/index.js")
    write_file(repo, "src/app.py", "def main():\n    data = open(path)\n")

    staged = ReviewEngine(build_registry()).review_diff_text(get_diff(repo, DiffScope.staged()))
    assert {item.file_path for item in staged.violations} == {"web/index.js"}

    unstaged = ReviewEngine(build_registry()).review_diff_text(get_diff(repo, DiffScope.unstaged()))
    assert {item.rule.id for item in unstaged.violations} == {"missing_context_managers"}


def test_cli_review_defaults_to_changes_since_head(tmp_path: Path) -> None:
    repo = _baseline(tmp_path)
    write_file(repo, "src/app.py", "def main():\n    try:\n        run()\n    except:\n        pass\n")

    result = runner.invoke(app, ["review", "--repo", str(repo), "--format", "json"])
    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert [item["rule_id"] for item in payload["violations"]] == ["bare_except"]

    human = runner.invoke(app, ["review", "--repo", str(repo)])
    assert "changes since last commit" in human.stdout


def test_get_repo_root(tmp_path: Path) -> None:
    repo = _baseline(tmp_path)
    (repo / "src").mkdir(exist_ok=True)
    root = get_repo_root(repo / "src")
    assert root is not None
    assert root.resolve() == repo.resolve()


def test_get_diff_outside_repo_raises(tmp_path: Path) -> None:
    outside = tmp_path / "plain"
    outside.mkdir()
    with pytest.raises(GitError):
        get_diff(outside, DiffScope.since("HEAD"))


def test_get_diff_tolerates_non_utf8_content(tmp_path: Path) -> None:
    repo = init_repo(tmp_path)
    write_file(repo, "a.py", "name = 'x'\n")
    commit_all(repo, "baseline")
    (repo / "a.py").write_bytes(b"name = '\xe9t\xe9'\n")

    diff_text = get_diff(repo, DiffScope.unstaged())
    assert "\ufffd" in diff_text

    result = ReviewEngine(build_registry()).review_diff_text(diff_text)
    assert result.violations == []

    cli = runner.invoke(app, ["review", "--repo", str(repo), "--uncommitted", "--format", "json"])
    assert cli.exit_code == 0, cli.output
    assert json.loads(cli.stdout)["violations"] == []
