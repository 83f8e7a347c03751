"""Anti-pattern rule registry and rule-set loading."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from importlib import resources
from typing import TYPE_CHECKING, Any

import yaml

from patingin.pattern import (
    AntiPattern,
    CodeExample,
    CustomMethod,
    DetectionMethod,
    Language,
    LineCountMethod,
    RatioMethod,
    RegexMethod,
    Severity,
    file_extension,
)

if TYPE_CHECKING:
    from patingin.custom_rules import CustomRulesManager

logger = logging.getLogger(__name__)

BUILTIN_RULES_PACKAGE = "patingin"
BUILTIN_RULES_DIR = ("rules", "builtin")
DEFAULT_RATIO_THRESHOLD = 0.3
DEFAULT_LINE_COUNT_THRESHOLD = 10

_REQUIRED_FIELDS = (
    "id",
    "name",
    "language",
    "severity",
    "description",
    "detection_method",
    "fix_suggestion",
)


class RuleLoadError(ValueError):
    """Raised when a rule-set document cannot be read as a list of rules."""


class PatternRegistry:
    """Rules indexed by id and language, with precompiled regex matchers.

    Build the registry (load, then compile) before sharing it; lookups do not
    mutate it, so one built registry can serve any number of reviews.
    """

    def __init__(self) -> None:
        self._patterns: dict[str, AntiPattern] = {}
        self._by_language: dict[Language, list[str]] = {}
        self.compiled_patterns: dict[str, re.Pattern[str]] = {}

    def __len__(self) -> int:
        return len(self._patterns)

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._patterns

    def add_pattern(self, pattern: AntiPattern) -> None:
        """Insert or replace a rule by id.

        The language index is append-only, so re-adding an id lists it twice.
        """
        self._patterns[pattern.id] = pattern
        self._by_language.setdefault(pattern.language, []).append(pattern.id)

    def add_patterns(self, patterns: Iterable[AntiPattern]) -> None:
        for pattern in patterns:
            self.add_pattern(pattern)

    def language_index(self, language: Language) -> list[str]:
        """Return the raw id list recorded for ``language``."""
        return list(self._by_language.get(language, []))

    def load_built_in_patterns(self) -> None:
        """Load every shipped rule set and compile regex matchers."""
        self.load_all_embedded_rules()
        self.compile_all_patterns()

    def load_all_embedded_rules(self) -> int:
        return sum(self.load_embedded_rules(language) for language in Language)

    def load_embedded_rules(self, language: Language) -> int:
        """Load the shipped rule set for one language."""
        return self.load_rules_from_yaml(builtin_rules_text(language), language)

    def load_custom_rules(self, project_name: str, manager: CustomRulesManager) -> int:
        """Merge a project's custom rules from the custom rule store."""
        patterns = manager.get_project_rules(project_name)
        self.add_patterns(patterns)
        logger.debug("Loaded %d custom rules for project %s", len(patterns), project_name)
        return len(patterns)

    def load_rules_from_yaml(self, yaml_text: str, expected_language: Language) -> int:
        """Parse a YAML rule-set document and upsert its rules.

        Entries with an unknown language, severity or detection type are
        skipped, as are entries missing required fields. Returns the number of
        rules added.
        """
        try:
            loaded = yaml.safe_load(yaml_text)
        except yaml.YAMLError as exc:
            raise RuleLoadError(f"Invalid YAML in {expected_language} rule set: {exc}") from exc
        if loaded is None:
            return 0
        if not isinstance(loaded, list):
            raise RuleLoadError(f"{expected_language} rule set must be a list of rules")

        added = 0
        for index, entry in enumerate(loaded):
            pattern = _pattern_from_mapping(entry, index=index, source=str(expected_language))
            if pattern is None:
                continue
            if pattern.language != expected_language:
                logger.debug(
                    "Rule %s declares language %s inside the %s rule set",
                    pattern.id,
                    pattern.language,
                    expected_language,
                )
            self.add_pattern(pattern)
            added += 1
        return added

    def compile_all_patterns(self) -> None:
        """Compile every regex rule; rules that fail to compile are left out."""
        for pattern in self._patterns.values():
            method = pattern.detection_method
            if not isinstance(method, RegexMethod):
                continue
            try:
                self.compiled_patterns[pattern.id] = re.compile(method.pattern)
            except re.error as exc:
                logger.warning("Failed to compile regex for pattern %s: %s", pattern.id, exc)

    def get_compiled_pattern(self, rule_id: str) -> re.Pattern[str] | None:
        return self.compiled_patterns.get(rule_id)

    def get_pattern(self, rule_id: str) -> AntiPattern | None:
        return self._patterns.get(rule_id)

    def all_patterns(self) -> list[AntiPattern]:
        return list(self._patterns.values())

    def get_patterns_for_language(self, language: Language) -> list[AntiPattern]:
        return [
            self._patterns[rule_id]
            for rule_id in self._by_language.get(language, [])
            if rule_id in self._patterns
        ]

    def get_patterns_for_file(self, file_path: str) -> list[AntiPattern]:
        """Return enabled rules of any language whose extensions cover the file."""
        extension = file_extension(file_path)
        return [
            pattern
            for pattern in self._patterns.values()
            if pattern.enabled and pattern.matches_file_extension(extension)
        ]

    def search_patterns(self, query: str) -> list[AntiPattern]:
        """Case-insensitive substring search over id, name and description."""
        needle = query.lower()
        return [
            pattern
            for pattern in self._patterns.values()
            if needle in pattern.name.lower()
            or needle in pattern.description.lower()
            or needle in pattern.id.lower()
        ]


def build_registry(
    *,
    custom_rules: Iterable[AntiPattern] | None = None,
) -> PatternRegistry:
    """Build a registry with built-in rules plus any custom rules, compiled once."""
    registry = PatternRegistry()
    registry.load_all_embedded_rules()
    if custom_rules is not None:
        registry.add_patterns(custom_rules)
    registry.compile_all_patterns()
    logger.debug(
        "Registry built with %d rules (%d compiled)",
        len(registry),
        len(registry.compiled_patterns),
    )
    return registry


def builtin_rules_text(language: Language) -> str:
    """Return the shipped YAML rule set for ``language``."""
    resource = resources.files(BUILTIN_RULES_PACKAGE).joinpath(
        *BUILTIN_RULES_DIR, f"{language.value}.yml"
    )
    return resource.read_text(encoding="utf-8")


def _pattern_from_mapping(entry: Any, *, index: int, source: str) -> AntiPattern | None:
    if not isinstance(entry, dict):
        logger.warning("Skipping %s rule #%d: expected a mapping", source, index)
        return None
    missing = [name for name in _REQUIRED_FIELDS if name not in entry]
    if missing:
        logger.warning(
            "Skipping %s rule #%d: missing %s", source, index, ", ".join(missing)
        )
        return None

    language = Language.parse(str(entry["language"]))
    if language is None:
        return None
    severity = Severity.parse(str(entry["severity"]))
    if severity is None:
        return None
    detection_method = _detection_method_from_mapping(entry["detection_method"])
    if detection_method is None:
        return None

    return AntiPattern(
        id=str(entry["id"]),
        name=str(entry["name"]),
        language=language,
        severity=severity,
        description=str(entry["description"]),
        detection_method=detection_method,
        fix_suggestion=str(entry["fix_suggestion"]),
        source_url=_optional_str(entry.get("source_url")),
        claude_code_fixable=bool(entry.get("claude_code_fixable", False)),
        examples=tuple(_examples_from_list(entry.get("examples"))),
        tags=tuple(str(tag) for tag in entry.get("tags") or []),
        enabled=bool(entry.get("enabled", True)),
    )


def _detection_method_from_mapping(value: Any) -> DetectionMethod | None:
    if not isinstance(value, dict):
        return None
    method_type = value.get("type")
    pattern = str(value.get("pattern", ""))
    threshold = value.get("threshold")

    if method_type == "regex":
        return RegexMethod(pattern=pattern)
    if method_type == "ratio":
        return RatioMethod(
            pattern=pattern,
            threshold=_as_number(threshold, DEFAULT_RATIO_THRESHOLD),
        )
    if method_type == "line_count":
        return LineCountMethod(
            pattern=pattern,
            threshold=int(_as_number(threshold, DEFAULT_LINE_COUNT_THRESHOLD)),
        )
    if method_type == "custom":
        return CustomMethod(pattern=pattern)
    return None


def _examples_from_list(value: Any) -> list[CodeExample]:
    if not isinstance(value, list):
        return []
    examples: list[CodeExample] = []
    for item in value:
        if not isinstance(item, dict):
            continue
        examples.append(
            CodeExample(
                bad=str(item.get("bad", "")),
                good=str(item.get("good", "")),
                explanation=str(item.get("explanation", "")),
            )
        )
    return examples


def _as_number(raw: Any, default: float) -> float:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return default
    return float(raw)


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)
