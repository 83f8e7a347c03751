"""Output rendering."""

from __future__ import annotations

import json
from typing import Any

import click

from patingin.pattern import AntiPattern, Severity
from patingin.review_engine import (
    ReviewResult,
    ReviewSummary,
    ReviewViolation,
    create_review_summary,
)

_SEVERITY_STYLES = {
    Severity.CRITICAL: ("CRITICAL", "red"),
    Severity.MAJOR: ("MAJOR", "yellow"),
    Severity.WARNING: ("WARNING", "blue"),
}


def render_human(
    violations: list[ReviewViolation],
    *,
    scope_label: str,
    suggest: bool = False,
) -> str:
    """Render violations grouped by file with a severity summary."""
    lines: list[str] = [click.style(f"Code review: {scope_label}", bold=True)]
    if not violations:
        lines.append(click.style("No anti-pattern violations found.", fg="green"))
        return "\n".join(lines)

    by_file = _group_by_file(violations)
    lines.append(f"Found {len(violations)} violations in {len(by_file)} files")
    lines.append("")

    for path, file_violations in by_file.items():
        lines.append(click.style(path, bold=True))
        for violation in file_violations:
            label, color = _SEVERITY_STYLES[violation.severity]
            lines.append(
                f"  {click.style(label, fg=color, bold=True)} {violation.rule.name} "
                f"({click.style(violation.rule.id, dim=True)})"
            )
            lines.append(
                f"    Line {click.style(str(violation.line_number), fg='cyan')}: "
                f"{click.style(violation.content, dim=True)}"
            )
            lines.append(f"    Fix: {violation.fix_suggestion}")
            if violation.auto_fixable and suggest:
                lines.append("    Auto-fixable")
            lines.append("")

    summary = create_review_summary(violations)
    lines.append(click.style(f"Summary: {summary.total_violations} violations", bold=True))
    if summary.critical_count:
        lines.append(f"   Critical: {summary.critical_count}")
    if summary.major_count:
        lines.append(f"   Major: {summary.major_count}")
    if summary.warning_count:
        lines.append(f"   Warning: {summary.warning_count}")
    if summary.auto_fixable_count:
        lines.append(f"   Auto-fixable: {summary.auto_fixable_count}")
        if not suggest:
            lines.append("")
            lines.append(f"Use {click.style('--suggest', fg='cyan')} to see suggested fixes")
    return "\n".join(lines)


def render_fix_suggestions(violations: list[ReviewViolation]) -> str:
    """Render the fix suggestions of auto-fixable violations."""
    fixable = [violation for violation in violations if violation.auto_fixable]
    if not fixable:
        return "No auto-fixable violations found"

    lines = [click.style("Suggested fixes:", bold=True), ""]
    for violation in fixable:
        lines.append(f"{violation.file_path}:{violation.line_number}")
        lines.append(f"   Issue: {violation.rule.name}")
        lines.append(f"   Current: {click.style(violation.content, fg='red')}")
        lines.append(f"   Suggestion: {click.style(violation.fix_suggestion, fg='green')}")
        lines.append("")
    return "\n".join(lines)


def render_json(result: ReviewResult, violations: list[ReviewViolation] | None = None) -> str:
    """Render stable JSON output for CI and automation."""
    return json.dumps(build_json_payload(result, violations), indent=2, sort_keys=True)


def build_json_payload(
    result: ReviewResult,
    violations: list[ReviewViolation] | None = None,
) -> dict[str, Any]:
    """Build the JSON payload; ``violations`` overrides the listed (filtered) set."""
    listed = result.violations if violations is None else violations
    return {
        "violations": [_serialize_violation(item) for item in listed],
        "summary": _serialize_summary(result.summary),
    }


def serialize_rule(rule: AntiPattern) -> dict[str, Any]:
    return {
        "id": rule.id,
        "name": rule.name,
        "language": rule.language.value,
        "severity": rule.severity.value,
        "description": rule.description,
        "detection_method": rule.detection_type,
        "fix_suggestion": rule.fix_suggestion,
        "source_url": rule.source_url,
        "claude_code_fixable": rule.claude_code_fixable,
        "tags": list(rule.tags),
        "enabled": rule.enabled,
    }


def render_rule_detail(rule: AntiPattern) -> str:
    label, color = _SEVERITY_STYLES[rule.severity]
    lines = [
        click.style(f"{rule.name} ({rule.id})", bold=True),
        f"Language: {rule.language.value}",
        f"Severity: {click.style(label, fg=color)}",
        f"Detection: {rule.detection_type}",
        f"Description: {rule.description}",
        f"Fix: {rule.fix_suggestion}",
    ]
    if rule.source_url:
        lines.append(f"Source: {rule.source_url}")
    if rule.tags:
        lines.append(f"Tags: {', '.join(rule.tags)}")
    for example in rule.examples:
        lines.append("")
        lines.append(f"  Bad:  {click.style(example.bad, fg='red')}")
        lines.append(f"  Good: {click.style(example.good, fg='green')}")
        lines.append(f"  Why:  {example.explanation}")
    return "\n".join(lines)


def _serialize_violation(violation: ReviewViolation) -> dict[str, Any]:
    return {
        "file_path": violation.file_path,
        "line_number": violation.line_number,
        "rule_id": violation.rule.id,
        "rule_name": violation.rule.name,
        "severity": violation.severity.value,
        "language": violation.language.value,
        "description": violation.rule.description,
        "fix_suggestion": violation.fix_suggestion,
        "auto_fixable": violation.auto_fixable,
    }


def _serialize_summary(summary: ReviewSummary) -> dict[str, Any]:
    return {
        "total_violations": summary.total_violations,
        "critical_count": summary.critical_count,
        "major_count": summary.major_count,
        "warning_count": summary.warning_count,
        "files_affected": len(summary.files_affected),
        "auto_fixable_count": summary.auto_fixable_count,
    }


def _group_by_file(violations: list[ReviewViolation]) -> dict[str, list[ReviewViolation]]:
    grouped: dict[str, list[ReviewViolation]] = {}
    for violation in violations:
        grouped.setdefault(violation.file_path, []).append(violation)
    return grouped
