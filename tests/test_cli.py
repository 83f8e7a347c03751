"""CLI tests for review, rules and config commands."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from patingin import __version__
from patingin.cli import app

runner = CliRunner()

FIXTURE_DIR = Path(__file__).parent / "fixtures" / "diffs"


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    return home


@pytest.fixture()
def repo(tmp_path: Path) -> Path:
    path = tmp_path / "my_app"
    path.mkdir()
    return path


def _review_json(repo: Path, fixture: str, *extra: str) -> dict:
    result = runner.invoke(
        app,
        [
            "review",
            "--repo",
            str(repo),
            "--diff-file",
            str(FIXTURE_DIR / fixture),
            "--format",
            "json",
            *extra,
        ],
    )
    assert result.exit_code == 0, result.output
    return json.loads(result.stdout)


def test_root_help_lists_commands() -> None:
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for command in ("review", "rules", "rules-add", "rules-remove", "config", "config-init"):
        assert command in result.stdout


def test_version_flag() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert result.stdout.strip() == __version__


def test_review_diff_file_json(repo: Path) -> None:
    payload = _review_json(repo, "elixir_atom.diff")
    assert [item["rule_id"] for item in payload["violations"]] == ["dynamic_atom_creation"]
    violation = payload["violations"][0]
    assert violation["file_path"] == "lib/user.ex"
    assert violation["line_number"] == 2
    assert violation["severity"] == "critical"
    assert payload["summary"]["total_violations"] == 1


def test_review_diff_file_human(repo: Path) -> None:
    result = runner.invoke(
        app,
        ["review", "--repo", str(repo), "--diff-file", str(FIXTURE_DIR / "elixir_atom.diff")],
    )
    assert result.exit_code == 0
    assert "lib/user.ex" in result.stdout
    assert "dynamic_atom_creation" in result.stdout
    assert "Found 1 violations in 1 files" in result.stdout


def test_review_suggest_prints_fixes(repo: Path) -> None:
    result = runner.invoke(
        app,
        [
            "review",
            "--repo",
            str(repo),
            "--diff-file",
            str(FIXTURE_DIR / "elixir_atom.diff"),
            "--suggest",
        ],
    )
    assert result.exit_code == 0
    assert "Suggested fixes:" in result.stdout
    assert "lib/user.ex:2" in result.stdout


def test_review_fail_on_violations(repo: Path) -> None:
    result = runner.invoke(
        app,
        [
            "review",
            "--repo",
            str(repo),
            "--diff-file",
            str(FIXTURE_DIR / "elixir_atom.diff"),
            "--fail-on-violations",
        ],
    )
    assert result.exit_code == 1


def test_review_severity_threshold(repo: Path) -> None:
    payload = _review_json(repo, "multi_file.diff", "--severity", "major")
    assert [item["rule_id"] for item in payload["violations"]] == ["console_log_production"]
    assert payload["summary"]["total_violations"] == 2


def test_review_language_filter(repo: Path) -> None:
    payload = _review_json(repo, "multi_file.diff", "--language", "python")
    assert [item["file_path"] for item in payload["violations"]] == ["src/app.py"]


def test_review_exclude_glob(repo: Path) -> None:
    payload = _review_json(repo, "multi_file.diff", "--exclude", "web/*")
    assert [item["rule_id"] for item in payload["violations"]] == ["bare_except"]


def test_review_uses_repo_config(repo: Path) -> None:
    (repo / ".patingin.toml").write_text(
        'format = "json"\ninclude = ["web/*"]\n', encoding="utf-8"
    )
    result = runner.invoke(
        app,
        ["review", "--repo", str(repo), "--diff-file", str(FIXTURE_DIR / "multi_file.diff")],
    )
    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert [item["rule_id"] for item in payload["violations"]] == ["console_log_production"]


def test_review_stdin(repo: Path) -> None:
    diff_text = (FIXTURE_DIR / "elixir_atom.diff").read_text(encoding="utf-8")
    result = runner.invoke(
        app,
        ["review", "--repo", str(repo), "--stdin", "--format", "json"],
        input=diff_text,
    )
    assert result.exit_code == 0
    assert json.loads(result.stdout)["summary"]["critical_count"] == 1


@pytest.mark.parametrize(
    "args",
    [
        ["--stdin", "--diff-file", "x.diff"],
        ["--format", "xml", "--stdin"],
        ["--severity", "blocker", "--stdin"],
        ["--language", "cobol", "--stdin"],
    ],
)
def test_review_rejects_bad_options(repo: Path, args: list[str]) -> None:
    result = runner.invoke(app, ["review", "--repo", str(repo), *args], input="")
    assert result.exit_code == 2


def test_rules_list_json_by_language(repo: Path) -> None:
    result = runner.invoke(
        app, ["rules", "--repo", str(repo), "--language", "zig", "--format", "json"]
    )
    assert result.exit_code == 0
    rules = json.loads(result.stdout)["rules"]
    assert len(rules) == 4
    assert {rule["language"] for rule in rules} == {"zig"}


def test_rules_search_and_detail(repo: Path) -> None:
    search = runner.invoke(app, ["rules", "--repo", str(repo), "--search", "atom"])
    assert search.exit_code == 0
    assert "dynamic_atom_creation" in search.stdout

    detail = runner.invoke(
        app, ["rules", "--repo", str(repo), "--detail", "dynamic_atom_creation"]
    )
    assert detail.exit_code == 0
    assert "String.to_existing_atom" in detail.stdout

    missing = runner.invoke(app, ["rules", "--repo", str(repo), "--detail", "nope"])
    assert missing.exit_code == 2


def test_custom_rule_lifecycle(repo: Path, isolated_home: Path, tmp_path: Path) -> None:
    added = runner.invoke(
        app,
        [
            "rules-add",
            "No IO.inspect",
            "--language",
            "elixir",
            "--pattern",
            r"IO\.inspect",
            "--repo",
            str(repo),
        ],
    )
    assert added.exit_code == 0, added.output
    assert "custom rule no_ioinspect" in added.stdout
    assert (isolated_home / ".config" / "patingin" / "rules.yml").exists()

    diff_file = tmp_path / "inspect.diff"
    diff_file.write_text(
        "\n".join(
            [
                "diff --git a/lib/a.ex b/lib/a.ex",
                "@@ -1,1 +1,2 @@",
                " x = 1",
                "+IO.inspect(x)",
            ]
        ),
        encoding="utf-8",
    )
    review = runner.invoke(
        app,
        ["review", "--repo", str(repo), "--diff-file", str(diff_file), "--format", "json"],
    )
    assert review.exit_code == 0
    payload = json.loads(review.stdout)
    assert [item["rule_id"] for item in payload["violations"]] == ["custom_no_ioinspect"]

    listed = runner.invoke(app, ["rules", "--repo", str(repo), "--search", "custom_"])
    assert "custom_no_ioinspect" in listed.stdout

    removed = runner.invoke(app, ["rules-remove", "no_ioinspect", "--repo", str(repo)])
    assert removed.exit_code == 0
    again = runner.invoke(app, ["rules-remove", "no_ioinspect", "--repo", str(repo)])
    assert again.exit_code == 1


def test_rules_add_default_pattern_is_last_word(repo: Path, isolated_home: Path) -> None:
    result = runner.invoke(
        app,
        ["rules-add", "Avoid unwrap", "--language", "rust", "--project", "svc", "--repo", str(repo)],
    )
    assert result.exit_code == 0
    stored = (isolated_home / ".config" / "patingin" / "rules.yml").read_text(encoding="utf-8")
    assert "pattern: unwrap" in stored
    assert "svc:" in stored


def test_config_json_reports_resolved_values(repo: Path, isolated_home: Path) -> None:
    result = runner.invoke(app, ["config", "--repo", str(repo), "--format", "json"])
    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["format"] == "human"
    assert payload["project"] == "my_app"
    assert payload["custom_rules_path"] == str(isolated_home / ".config" / "patingin" / "rules.yml")


def test_invalid_config_is_bad_parameter(repo: Path) -> None:
    (repo / ".patingin.toml").write_text('format = "xml"\n', encoding="utf-8")
    result = runner.invoke(app, ["config", "--repo", str(repo)])
    assert result.exit_code == 2


def test_config_init_writes_and_refuses_overwrite(tmp_path: Path) -> None:
    out = tmp_path / ".patingin.toml"
    first = runner.invoke(app, ["config-init", "--out", str(out)])
    assert first.exit_code == 0
    assert out.read_text(encoding="utf-8").startswith('format = "human"')

    second = runner.invoke(app, ["config-init", "--out", str(out)])
    assert second.exit_code == 2

    forced = runner.invoke(app, ["config-init", "--out", str(out), "--force"])
    assert forced.exit_code == 0


def test_review_suggestions_follow_auto_fix_setting(repo: Path) -> None:
    (repo / ".patingin.toml").write_text("auto_fix = true\n", encoding="utf-8")
    diff_args = ["review", "--repo", str(repo), "--diff-file", str(FIXTURE_DIR / "elixir_atom.diff")]

    by_default = runner.invoke(app, diff_args)
    assert by_default.exit_code == 0, by_default.output
    assert "Suggested fixes:" in by_default.stdout

    disabled = runner.invoke(app, [*diff_args, "--no-suggest"])
    assert disabled.exit_code == 0, disabled.output
    assert "Suggested fixes:" not in disabled.stdout


def test_review_without_suggest_omits_fixes(repo: Path) -> None:
    result = runner.invoke(
        app,
        ["review", "--repo", str(repo), "--diff-file", str(FIXTURE_DIR / "elixir_atom.diff")],
    )
    assert result.exit_code == 0
    assert "Suggested fixes:" not in result.stdout


def test_review_diff_file_with_invalid_utf8(repo: Path, tmp_path: Path) -> None:
    diff_file = tmp_path / "latin1.diff"
    diff_file.write_bytes(
        b"diff --git a/lib/user.ex b/lib/user.ex\n"
        b"@@ -1,1 +1,2 @@\n"
        b" defmodule User do\n"
        b"+  @name \"\xe9t\xe9\"; String.to_atom(n)\n"
    )
    payload = _review_json(repo, str(diff_file))
    assert [item["rule_id"] for item in payload["violations"]] == ["dynamic_atom_creation"]
    assert payload["violations"][0]["line_number"] == 2


def test_config_init_template_reviews_every_path(tmp_path: Path) -> None:
    repo = tmp_path / "phoenix_app"
    repo.mkdir()
    init = runner.invoke(app, ["config-init", "--out", str(repo / ".patingin.toml")])
    assert init.exit_code == 0, init.output

    diff_file = tmp_path / "app_dir.diff"
    diff_file.write_text(
        "diff --git a/app/user.ex b/app/user.ex\n"
        "@@ -1,1 +1,2 @@\n"
        " defmodule User do\n"
        "+  def f(n), do: String.to_atom(n)\n",
        encoding="utf-8",
    )
    payload = _review_json(repo, str(diff_file))
    assert [item["file_path"] for item in payload["violations"]] == ["app/user.ex"]
