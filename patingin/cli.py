"""Command line interface for patingin."""

from __future__ import annotations

import fnmatch
import json
import logging
import sys
from pathlib import Path
from typing import Annotated

import typer

from patingin import __version__
from patingin.config import AppConfig, default_config_template, load_app_config
from patingin.custom_rules import (
    CustomRule,
    CustomRulesError,
    CustomRulesManager,
    slugify_rule_id,
)
from patingin.diff_parser import FileDiff, GitDiff, parse_git_diff
from patingin.git import DiffScope, GitError, get_diff, get_repo_root
from patingin.output import (
    render_fix_suggestions,
    render_human,
    render_json,
    render_rule_detail,
    serialize_rule,
)
from patingin.pattern import AntiPattern, Language, Severity
from patingin.registry import PatternRegistry, build_registry
from patingin.review_engine import (
    ReviewEngine,
    detect_language_from_path,
    filter_violations_by_severity,
)

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="patingin",
    no_args_is_help=True,
    help="Review the lines a git diff adds for language-specific anti-patterns.",
)

OUTPUT_FORMATS = {"human", "json"}
LANGUAGE_NAMES = {language.value for language in Language}
SEVERITY_NAMES = {severity.value for severity in Severity}
DEFAULT_SCOPE = DiffScope.since("HEAD")

RepoOption = Annotated[Path, typer.Option("--repo", help="Repository root or any path inside it.")]
ConfigOption = Annotated[
    Path | None, typer.Option("--config", help="Read settings from this TOML file.")
]
ProjectOption = Annotated[
    str | None, typer.Option("--project", help="Project whose custom rules apply.")
]
FormatOption = Annotated[str, typer.Option("--format", help="human or json.")]


def _print_version(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit()


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option("--version", help="Print the version and exit.", callback=_print_version),
    ] = False,
    verbose: Annotated[bool, typer.Option("--verbose", help="Log debug details.")] = False,
) -> None:
    """Set up logging for every command."""
    del version
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@app.command("review")
def review_command(
    repo: RepoOption = Path("."),
    staged: Annotated[bool, typer.Option(help="Review staged changes.")] = False,
    uncommitted: Annotated[bool, typer.Option(help="Review unstaged changes.")] = False,
    since: Annotated[
        str | None, typer.Option(help="Review changes since a commit, branch or tag.")
    ] = None,
    diff_file: Annotated[
        Path | None, typer.Option(help="Review a saved unified diff instead of git.")
    ] = None,
    stdin: Annotated[bool, typer.Option(help="Review a unified diff piped on stdin.")] = False,
    severity: Annotated[
        str | None, typer.Option(help="Severity threshold: critical, major or warning.")
    ] = None,
    language: Annotated[str | None, typer.Option(help="Only review files of this language.")] = None,
    include: Annotated[
        list[str] | None, typer.Option(help="Only review paths matching this glob.")
    ] = None,
    exclude: Annotated[list[str] | None, typer.Option(help="Skip paths matching this glob.")] = None,
    format: Annotated[
        str | None, typer.Option("--format", help="human or json.", show_default="human")
    ] = None,
    suggest: Annotated[
        bool | None,
        typer.Option(
            "--suggest/--no-suggest",
            help="Print suggested fixes. Defaults to the auto_fix config setting.",
            show_default=False,
        ),
    ] = None,
    project: ProjectOption = None,
    fail_on_violations: Annotated[
        bool, typer.Option(help="Exit with status 1 when violations are reported.")
    ] = False,
    config_file: ConfigOption = None,
) -> None:
    """Review the added lines of a diff for anti-pattern violations."""
    app_config = _config_or_bad_parameter(repo, config_file)
    output_format = _pick_choice(format or app_config.format, OUTPUT_FORMATS, "--format")
    if diff_file is not None and stdin:
        raise typer.BadParameter("--diff-file and --stdin are mutually exclusive.")

    scope = _scope_from_flags(staged=staged, uncommitted=uncommitted, since=since)
    diff_text, scope_label = _read_diff(repo, scope, diff_file=diff_file, stdin=stdin)

    languages = (
        [_language_option(language)] if language is not None else list(app_config.languages)
    )
    show_fixes = app_config.auto_fix if suggest is None else suggest
    threshold = (
        Severity(_pick_choice(severity, SEVERITY_NAMES, "--severity"))
        if severity is not None
        else app_config.severity
    )

    parsed = parse_git_diff(diff_text)
    selected = GitDiff(
        files=[
            file_diff
            for file_diff in parsed.files
            if _path_selected(
                file_diff.path,
                include=app_config.include if include is None else include,
                exclude=app_config.exclude if exclude is None else exclude,
                languages=languages,
            )
        ]
    )

    registry = _project_registry(repo, project, app_config)
    result = ReviewEngine(registry).review_git_diff(selected)
    reported = result.violations
    if threshold is not None:
        reported = filter_violations_by_severity(reported, threshold)

    if output_format == "json":
        typer.echo(render_json(result, reported))
    else:
        typer.echo(render_human(reported, scope_label=scope_label, suggest=show_fixes))
        if show_fixes:
            typer.echo("")
            typer.echo(render_fix_suggestions(reported))

    if reported and fail_on_violations:
        raise typer.Exit(code=1)


@app.command("rules")
def rules_command(
    language: Annotated[str | None, typer.Option(help="Only list this language.")] = None,
    search: Annotated[
        str | None, typer.Option(help="Search rule ids, names and descriptions.")
    ] = None,
    detail: Annotated[str | None, typer.Option(help="Show one rule in detail.")] = None,
    repo: RepoOption = Path("."),
    project: ProjectOption = None,
    format: FormatOption = "human",
    config_file: ConfigOption = None,
) -> None:
    """List, search or inspect anti-pattern rules."""
    output_format = _pick_choice(format, OUTPUT_FORMATS, "--format")
    registry = _project_registry(repo, project, _config_or_bad_parameter(repo, config_file))

    if detail is not None:
        rule = registry.get_pattern(detail)
        if rule is None:
            raise typer.BadParameter(f"Unknown rule id: {detail}", param_hint="--detail")
        typer.echo(
            json.dumps(serialize_rule(rule), sort_keys=True)
            if output_format == "json"
            else render_rule_detail(rule)
        )
        return

    if search is not None:
        rules = registry.search_patterns(search)
    elif language is not None:
        rules = registry.get_patterns_for_language(_language_option(language))
    else:
        rules = registry.all_patterns()
    rules.sort(key=lambda rule: (rule.language.value, rule.severity.rank, rule.id))

    if output_format == "json":
        typer.echo(json.dumps({"rules": [serialize_rule(rule) for rule in rules]}, sort_keys=True))
    else:
        typer.echo(_format_rule_list(rules))


@app.command("rules-add")
def rules_add_command(
    description: Annotated[str, typer.Argument(help="What the rule flags.")],
    language: Annotated[str, typer.Option(help="Language the rule applies to.")],
    pattern: Annotated[
        str | None,
        typer.Option(help="Regex to match; defaults to the last word of the description."),
    ] = None,
    severity: Annotated[str, typer.Option(help="critical, major or warning.")] = "warning",
    fix: Annotated[
        str, typer.Option(help="Fix guidance shown with violations.")
    ] = "Review and fix according to team guidelines",
    rule_id: Annotated[str | None, typer.Option("--id", help="Rule id to store.")] = None,
    repo: RepoOption = Path("."),
    project: ProjectOption = None,
    config_file: ConfigOption = None,
) -> None:
    """Add a custom rule to the current project."""
    app_config = _config_or_bad_parameter(repo, config_file)
    target_language = _language_option(language)
    words = description.split()
    if not words:
        raise typer.BadParameter("Rule description must not be empty.")

    rule = CustomRule(
        id=rule_id or slugify_rule_id(description),
        description=description,
        pattern=words[-1] if pattern is None else pattern,
        severity=_pick_choice(severity, SEVERITY_NAMES, "--severity"),
        fix=fix,
    )
    project_name = _project_name(repo, project, app_config)
    store = CustomRulesManager(app_config.custom_rules_path)
    try:
        store.add_project_rule(project_name, str(_project_root(repo)), target_language, rule)
    except CustomRulesError as exc:
        raise typer.BadParameter(str(exc)) from exc
    typer.echo(f"Added custom rule {rule.id} to project {project_name}")
    typer.echo(f"Saved to: {store.config_path}")


@app.command("rules-remove")
def rules_remove_command(
    rule_id: Annotated[str, typer.Argument(help="Stored id of the custom rule.")],
    repo: RepoOption = Path("."),
    project: ProjectOption = None,
    config_file: ConfigOption = None,
) -> None:
    """Remove a custom rule from the current project."""
    app_config = _config_or_bad_parameter(repo, config_file)
    project_name = _project_name(repo, project, app_config)
    try:
        removed = CustomRulesManager(app_config.custom_rules_path).remove_project_rule(
            project_name, rule_id
        )
    except CustomRulesError as exc:
        raise typer.BadParameter(str(exc)) from exc
    if not removed:
        typer.echo(f"Rule '{rule_id}' not found in project '{project_name}'")
        raise typer.Exit(code=1)
    typer.echo(f"Removed custom rule {rule_id} from project {project_name}")


@app.command("config")
def config_command(
    repo: RepoOption = Path("."),
    format: FormatOption = "human",
    config_file: ConfigOption = None,
) -> None:
    """Show the configuration a review in this repository would use."""
    output_format = _pick_choice(format, OUTPUT_FORMATS, "--format")
    app_config = _config_or_bad_parameter(repo, config_file)
    effective = {
        **app_config.to_dict(),
        "project": _project_name(repo, None, app_config),
        "custom_rules_path": str(CustomRulesManager(app_config.custom_rules_path).config_path),
    }

    if output_format == "json":
        typer.echo(json.dumps(effective, sort_keys=True))
        return

    typer.echo(f"Configuration ({effective['source'] or 'built-in defaults'}):")
    for key in sorted(effective):
        if key != "source":
            typer.echo(f"  {key} = {effective[key]}")


@app.command("config-init")
def config_init_command(
    out: Annotated[Path, typer.Option(help="Where to write the starter config.")] = Path(
        ".patingin.toml"
    ),
    force: Annotated[bool, typer.Option("--force", help="Replace an existing file.")] = False,
) -> None:
    """Write a starter .patingin.toml."""
    target = out.resolve()
    if target.exists() and not force:
        raise typer.BadParameter(f"{target} already exists; pass --force to replace it.")
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(default_config_template(), encoding="utf-8")
    typer.echo(f"Wrote {target}")


def main() -> None:
    app()


def _scope_from_flags(*, staged: bool, uncommitted: bool, since: str | None) -> DiffScope:
    if staged:
        return DiffScope.staged()
    if uncommitted:
        return DiffScope.unstaged()
    return DEFAULT_SCOPE if since is None else DiffScope.since(since)


def _read_diff(
    repo: Path, scope: DiffScope, *, diff_file: Path | None, stdin: bool
) -> tuple[str, str]:
    """Return the diff text to review and a label describing where it came from."""
    if diff_file is not None:
        return diff_file.read_text(encoding="utf-8", errors="replace"), f"diff file {diff_file}"
    if stdin:
        return sys.stdin.read(), "stdin"

    try:
        text = get_diff(repo, scope)
    except GitError as exc:
        raise typer.BadParameter(str(exc)) from exc
    label = "changes since last commit" if scope == DEFAULT_SCOPE else scope.describe()
    return text, label


def _path_selected(
    path: str,
    *,
    include: list[str],
    exclude: list[str],
    languages: list[Language],
) -> bool:
    if include and not any(fnmatch.fnmatch(path, glob) for glob in include):
        return False
    if any(fnmatch.fnmatch(path, glob) for glob in exclude):
        return False
    return not languages or detect_language_from_path(path) in languages


def _project_registry(repo: Path, project: str | None, app_config: AppConfig) -> PatternRegistry:
    project_name = _project_name(repo, project, app_config)
    custom_rules: list[AntiPattern] = []
    try:
        custom_rules = CustomRulesManager(app_config.custom_rules_path).get_project_rules(
            project_name
        )
    except CustomRulesError as exc:
        logger.warning("Ignoring custom rules for %s: %s", project_name, exc)
    return build_registry(custom_rules=custom_rules)


def _project_name(repo: Path, project: str | None, app_config: AppConfig) -> str:
    return project or app_config.project or _project_root(repo).name or "unknown"


def _project_root(repo: Path) -> Path:
    return get_repo_root(repo) or repo.resolve()


def _language_option(value: str) -> Language:
    return Language(_pick_choice(value, LANGUAGE_NAMES, "--language"))


def _format_rule_list(rules: list[AntiPattern]) -> str:
    if not rules:
        return "No rules found."
    lines = [f"{len(rules)} rules:"]
    heading: Language | None = None
    for rule in rules:
        if rule.language != heading:
            heading = rule.language
            lines.extend(["", f"{heading.value}:"])
        disabled = "" if rule.enabled else " [disabled]"
        lines.append(f"- {rule.id} [{rule.severity.value}]{disabled} - {rule.name}")
    return "\n".join(lines)


def _config_or_bad_parameter(repo: Path, config_file: Path | None) -> AppConfig:
    try:
        return load_app_config(repo, config_path=config_file)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--config") from exc


def _pick_choice(value: str, allowed: set[str], option: str) -> str:
    normalized = value.lower()
    if normalized in allowed:
        return normalized
    raise typer.BadParameter(
        f"{option} must be one of: {', '.join(sorted(allowed))}", param_hint=option
    )
