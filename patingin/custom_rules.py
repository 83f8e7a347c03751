"""Project-scoped custom rules persisted as YAML."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from patingin.pattern import AntiPattern, Language, RegexMethod, Severity

logger = logging.getLogger(__name__)

CUSTOM_RULE_PREFIX = "custom_"
CUSTOM_RULE_SOURCE = "Custom project rule"


def default_rules_path() -> Path:
    return Path.home() / ".config" / "patingin" / "rules.yml"


class CustomRulesError(ValueError):
    """Raised when the custom rules file cannot be read."""


@dataclass(slots=True)
class CustomRule:
    """A user-defined regex rule as stored on disk."""

    id: str
    description: str
    pattern: str
    severity: str = "warning"
    fix: str = "Review and fix according to team guidelines"
    enabled: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "pattern": self.pattern,
            "severity": self.severity,
            "fix": self.fix,
            "enabled": self.enabled,
        }


@dataclass(slots=True)
class ProjectRules:
    """Custom rules of one project, grouped by language name."""

    path: str
    git_root: bool = True
    rules: dict[str, list[CustomRule]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "git_root": self.git_root,
            "rules": {
                language: [rule.to_dict() for rule in rules]
                for language, rules in self.rules.items()
            },
        }


@dataclass(slots=True)
class CustomRulesConfig:
    """Contents of the custom rules file."""

    projects: dict[str, ProjectRules] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"projects": {name: item.to_dict() for name, item in self.projects.items()}}


class CustomRulesManager:
    """Reads and writes the custom rules file."""

    def __init__(self, config_path: Path | None = None) -> None:
        self.config_path = config_path if config_path is not None else default_rules_path()

    def load_config(self) -> CustomRulesConfig:
        if not self.config_path.exists():
            return CustomRulesConfig()
        try:
            loaded = yaml.safe_load(self.config_path.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            raise CustomRulesError(f"Invalid YAML in {self.config_path}: {exc}") from exc
        if loaded is None:
            return CustomRulesConfig()
        return _config_from_mapping(loaded, source=self.config_path)

    def save_config(self, config: CustomRulesConfig) -> None:
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        self.config_path.write_text(
            yaml.safe_dump(config.to_dict(), sort_keys=True),
            encoding="utf-8",
        )

    def add_project_rule(
        self,
        project_name: str,
        project_path: str,
        language: Language,
        rule: CustomRule,
    ) -> None:
        config = self.load_config()
        project = config.projects.setdefault(project_name, ProjectRules(path=project_path))
        project.rules.setdefault(language.value, []).append(rule)
        self.save_config(config)
        logger.info("Added custom rule %s to project %s", rule.id, project_name)

    def remove_project_rule(self, project_name: str, rule_id: str) -> bool:
        """Remove a rule by its stored id; return whether anything was removed."""
        config = self.load_config()
        project = config.projects.get(project_name)
        if project is None:
            return False

        found = False
        for language, rules in project.rules.items():
            kept = [rule for rule in rules if rule.id != rule_id]
            if len(kept) != len(rules):
                found = True
                project.rules[language] = kept

        if found:
            self.save_config(config)
        return found

    def list_project_rules(self, project_name: str) -> dict[str, list[CustomRule]]:
        project = self.load_config().projects.get(project_name)
        if project is None:
            return {}
        return {language: list(rules) for language, rules in project.rules.items()}

    def get_project_rules(self, project_name: str) -> list[AntiPattern]:
        """Return the project's enabled rules as registry patterns."""
        patterns: list[AntiPattern] = []
        for language_name, rules in self.list_project_rules(project_name).items():
            language = Language.parse(language_name)
            if language is None:
                logger.warning(
                    "Skipping custom rules for unknown language %r in project %s",
                    language_name,
                    project_name,
                )
                continue
            for rule in rules:
                if rule.enabled:
                    patterns.append(to_anti_pattern(rule, language))
        return patterns


def to_anti_pattern(rule: CustomRule, language: Language) -> AntiPattern:
    return AntiPattern(
        id=f"{CUSTOM_RULE_PREFIX}{rule.id}",
        name=rule.description,
        language=language,
        severity=Severity.parse(rule.severity) or Severity.WARNING,
        description=rule.description,
        detection_method=RegexMethod(pattern=rule.pattern),
        fix_suggestion=rule.fix,
        source_url=CUSTOM_RULE_SOURCE,
        claude_code_fixable=False,
        tags=("custom",),
        enabled=True,
    )


def slugify_rule_id(description: str) -> str:
    """Derive a rule id from a free-text description."""
    lowered = description.lower().replace(" ", "_")
    return re.sub(r"[^0-9a-z_]", "", lowered)


def _config_from_mapping(loaded: Any, *, source: Path) -> CustomRulesConfig:
    if not isinstance(loaded, dict):
        raise CustomRulesError(f"{source} must contain a mapping")
    projects_raw = loaded.get("projects") or {}
    if not isinstance(projects_raw, dict):
        raise CustomRulesError(f"{source}: projects must be a mapping")

    projects: dict[str, ProjectRules] = {}
    for name, raw_project in projects_raw.items():
        if not isinstance(raw_project, dict):
            raise CustomRulesError(f"{source}: project {name!r} must be a mapping")
        rules_raw = raw_project.get("rules") or {}
        if not isinstance(rules_raw, dict):
            raise CustomRulesError(f"{source}: rules of project {name!r} must be a mapping")
        projects[str(name)] = ProjectRules(
            path=str(raw_project.get("path", "")),
            git_root=bool(raw_project.get("git_root", True)),
            rules={
                str(language): [
                    _rule_from_mapping(item, source=source) for item in (items or [])
                ]
                for language, items in rules_raw.items()
            },
        )
    return CustomRulesConfig(projects=projects)


def _rule_from_mapping(item: Any, *, source: Path) -> CustomRule:
    if not isinstance(item, dict):
        raise CustomRulesError(f"{source}: each custom rule must be a mapping")
    missing = [name for name in ("id", "description", "pattern") if name not in item]
    if missing:
        raise CustomRulesError(f"{source}: custom rule missing {', '.join(missing)}")
    return CustomRule(
        id=str(item["id"]),
        description=str(item["description"]),
        pattern=str(item["pattern"]),
        severity=str(item.get("severity", "warning")),
        fix=str(item.get("fix", "")),
        enabled=bool(item.get("enabled", True)),
    )
