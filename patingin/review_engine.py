"""Detection engine: match changed lines against registry rules."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum

from patingin.diff_parser import ChangedLine, GitDiff, parse_git_diff
from patingin.pattern import (
    AntiPattern,
    AstMethod,
    CustomMethod,
    Language,
    LineCountMethod,
    RatioMethod,
    RegexMethod,
    Severity,
    file_extension,
)
from patingin.registry import PatternRegistry

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.85
FALLBACK_LANGUAGE = Language.JAVASCRIPT

LANGUAGE_BY_EXTENSION: dict[str, Language] = {
    "ex": Language.ELIXIR,
    "exs": Language.ELIXIR,
    "js": Language.JAVASCRIPT,
    "jsx": Language.JAVASCRIPT,
    "mjs": Language.JAVASCRIPT,
    "cjs": Language.JAVASCRIPT,
    "ts": Language.TYPESCRIPT,
    "tsx": Language.TYPESCRIPT,
    "py": Language.PYTHON,
    "pyw": Language.PYTHON,
    "pyi": Language.PYTHON,
    "rs": Language.RUST,
    "zig": Language.ZIG,
    "sql": Language.SQL,
    "psql": Language.SQL,
    "mysql": Language.SQL,
}


class MatchOutcome(str, Enum):
    """Result of evaluating one rule against one line."""

    MATCH = "match"
    NO_MATCH = "no_match"
    UNSUPPORTED = "unsupported"


@dataclass(slots=True)
class ReviewViolation:
    """A rule match on a specific changed line."""

    rule: AntiPattern
    file_path: str
    line_number: int
    content: str
    severity: Severity
    language: Language
    fix_suggestion: str
    auto_fixable: bool
    context_before: list[str] = field(default_factory=list)
    context_after: list[str] = field(default_factory=list)
    confidence: float = DEFAULT_CONFIDENCE


@dataclass(slots=True)
class ReviewSummary:
    """Aggregate counts over a list of violations."""

    total_violations: int = 0
    critical_count: int = 0
    major_count: int = 0
    warning_count: int = 0
    files_affected: list[str] = field(default_factory=list)
    auto_fixable_count: int = 0


@dataclass(slots=True)
class ReviewResult:
    """Violations for a whole diff, flat and grouped by file."""

    violations: list[ReviewViolation]
    files_with_violations: dict[str, list[ReviewViolation]]
    summary: ReviewSummary


def detect_language_from_path(file_path: str) -> Language | None:
    """Return the language implied by the file extension, if known."""
    return LANGUAGE_BY_EXTENSION.get(file_extension(file_path).lower())


class ReviewEngine:
    """Evaluates registry rules against the added lines of a diff.

    The engine keeps no state between calls; it only reads the registry.
    """

    def __init__(self, registry: PatternRegistry) -> None:
        self.registry = registry

    def review_diff_text(self, diff_text: str) -> ReviewResult:
        """Parse and review unified diff text."""
        return self.review_git_diff(parse_git_diff(diff_text))

    def review_git_diff(self, git_diff: GitDiff) -> ReviewResult:
        all_violations: list[ReviewViolation] = []
        files_with_violations: dict[str, list[ReviewViolation]] = {}

        for file_diff in git_diff.files:
            violations = self.review_changed_lines(file_diff.path, file_diff.added_lines)
            if not violations:
                continue
            files_with_violations.setdefault(file_diff.path, []).extend(violations)
            all_violations.extend(violations)

        return ReviewResult(
            violations=all_violations,
            files_with_violations=files_with_violations,
            summary=create_review_summary(all_violations),
        )

    def review_changed_lines(
        self, file_path: str, changed_lines: list[ChangedLine]
    ) -> list[ReviewViolation]:
        patterns = self.registry.get_patterns_for_file(file_path)
        if not patterns:
            return []

        language = detect_language_from_path(file_path) or FALLBACK_LANGUAGE
        violations: list[ReviewViolation] = []
        for changed_line in changed_lines:
            for pattern in patterns:
                violation = self.check_line_against_pattern(
                    file_path, changed_line, pattern, language
                )
                if violation is not None:
                    violations.append(violation)
        return violations

    def check_line_against_pattern(
        self,
        file_path: str,
        changed_line: ChangedLine,
        pattern: AntiPattern,
        language: Language,
    ) -> ReviewViolation | None:
        if not pattern.enabled:
            return None
        if self.evaluate_detection_method(pattern, changed_line.content) is not MatchOutcome.MATCH:
            return None

        return ReviewViolation(
            rule=pattern,
            file_path=file_path,
            line_number=changed_line.line_number,
            content=changed_line.content,
            severity=pattern.severity,
            language=language,
            fix_suggestion=pattern.fix_suggestion,
            auto_fixable=pattern.claude_code_fixable,
            context_before=list(changed_line.context_before),
            context_after=list(changed_line.context_after),
            confidence=DEFAULT_CONFIDENCE,
        )

    def evaluate_detection_method(self, pattern: AntiPattern, content: str) -> MatchOutcome:
        """Evaluate a rule's detection method against a single line."""
        method = pattern.detection_method
        if isinstance(method, RegexMethod):
            compiled = self.registry.get_compiled_pattern(pattern.id)
            if compiled is None:
                compiled = _compile_or_none(method.pattern)
            if compiled is None:
                return MatchOutcome.NO_MATCH
            return _outcome(compiled.search(content) is not None)

        if isinstance(method, RatioMethod):
            compiled = _compile_or_none(method.pattern)
            if compiled is None:
                return MatchOutcome.NO_MATCH
            hits = sum(1 for _ in compiled.finditer(content))
            ratio = hits / len(content) if content else 0.0
            return _outcome(ratio >= method.threshold)

        if isinstance(method, (LineCountMethod, CustomMethod, AstMethod)):
            return MatchOutcome.UNSUPPORTED

        raise TypeError(f"Unknown detection method: {method!r}")


def filter_violations_by_severity(
    violations: list[ReviewViolation], min_severity: Severity
) -> list[ReviewViolation]:
    """Keep violations whose severity rank is at or above ``min_severity``'s.

    Ranks follow declaration order (critical=0, major=1, warning=2), so a
    ``major`` threshold keeps major and warning and drops critical.
    """
    return [
        violation
        for violation in violations
        if violation.severity.rank >= min_severity.rank
    ]


def create_review_summary(violations: list[ReviewViolation]) -> ReviewSummary:
    return ReviewSummary(
        total_violations=len(violations),
        critical_count=_count_severity(violations, Severity.CRITICAL),
        major_count=_count_severity(violations, Severity.MAJOR),
        warning_count=_count_severity(violations, Severity.WARNING),
        files_affected=sorted({violation.file_path for violation in violations}),
        auto_fixable_count=sum(1 for violation in violations if violation.auto_fixable),
    )


def _count_severity(violations: list[ReviewViolation], severity: Severity) -> int:
    return sum(1 for violation in violations if violation.severity is severity)


def _compile_or_none(pattern: str) -> re.Pattern[str] | None:
    try:
        return re.compile(pattern)
    except re.error:
        logger.debug("Ignoring uncompilable pattern %r", pattern)
        return None


def _outcome(matched: bool) -> MatchOutcome:
    return MatchOutcome.MATCH if matched else MatchOutcome.NO_MATCH
