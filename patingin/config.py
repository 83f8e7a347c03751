"""Repository configuration for patingin reviews."""

from __future__ import annotations

import tomllib
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, TypeVar

from patingin.pattern import Language, Severity

CONFIG_FILENAMES = (".patingin.toml", "patingin.toml")
PYPROJECT_FILENAME = "pyproject.toml"
TOOL_SECTION = "patingin"
OUTPUT_FORMATS = frozenset({"human", "json"})

_EnumT = TypeVar("_EnumT", bound=Enum)


@dataclass(slots=True)
class AppConfig:
    """Review defaults read from a repository; CLI flags override them."""

    format: str = "human"
    severity: Severity | None = None
    languages: list[Language] = field(default_factory=list)
    include: list[str] = field(default_factory=list)
    exclude: list[str] = field(default_factory=list)
    project: str | None = None
    custom_rules_path: Path | None = None
    auto_fix: bool = False
    source: str | None = None

    def to_dict(self) -> dict[str, Any]:
        rules_path = self.custom_rules_path
        return {
            "format": self.format,
            "severity": None if self.severity is None else self.severity.value,
            "languages": [language.value for language in self.languages],
            "include": [*self.include],
            "exclude": [*self.exclude],
            "project": self.project,
            "custom_rules_path": None if rules_path is None else str(rules_path),
            "auto_fix": self.auto_fix,
            "source": self.source,
        }


def load_app_config(repo: Path, config_path: Path | None = None) -> AppConfig:
    """Resolve the config for ``repo``.

    An explicit ``config_path`` wins. Otherwise the first of
    ``.patingin.toml``, ``patingin.toml`` and a ``[tool.patingin]`` table in
    ``pyproject.toml`` is used; with none of them the defaults apply.
    """
    root = repo.resolve()
    if config_path is not None:
        explicit = config_path if config_path.is_absolute() else root / config_path
        if not explicit.exists():
            raise ValueError(f"Config file does not exist: {explicit}")
        return _build(_read_section(explicit), source=explicit, base_dir=explicit.parent)

    for candidate in _config_candidates(root):
        section = _read_section(candidate)
        if candidate.name == PYPROJECT_FILENAME and not section:
            continue
        return _build(section, source=candidate, base_dir=root)
    return AppConfig()


def default_config_template() -> str:
    """Return a commented starter ``.patingin.toml``."""
    return """format = "human"

# Minimum severity rank to report: critical | major | warning.
# severity = "warning"

# Only review files of these languages.
# languages = ["elixir", "python"]

# Only review paths matching these globs; all paths when unset.
# include = ["lib/**", "src/**"]
exclude = ["deps/**", "node_modules/**"]

# Project name used to look up custom rules; defaults to the repo directory name.
# project = "my_app"
# custom_rules_path = "~/.config/patingin/rules.yml"

# Print suggested fixes in review output unless --no-suggest is given.
auto_fix = false
"""


def _config_candidates(root: Path) -> Iterator[Path]:
    for name in (*CONFIG_FILENAMES, PYPROJECT_FILENAME):
        path = root / name
        if path.is_file():
            yield path


def _read_section(path: Path) -> dict[str, Any]:
    """Return the patingin settings of a TOML file.

    ``pyproject.toml`` only contributes its ``[tool.patingin]`` table; other
    files may hold the settings at top level or under that table.
    """
    try:
        document = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Invalid TOML in {path}: {exc}") from exc

    tool_table = document.get("tool")
    section = tool_table.get(TOOL_SECTION) if isinstance(tool_table, dict) else None
    if isinstance(section, dict):
        return section
    if path.name == PYPROJECT_FILENAME:
        return {}
    return document


def _build(section: dict[str, Any], *, source: Path, base_dir: Path) -> AppConfig:
    output_format = str(section.get("format", "human")).lower()
    if output_format not in OUTPUT_FORMATS:
        raise ValueError(f"format must be one of: {', '.join(sorted(OUTPUT_FORMATS))}")

    severity = section.get("severity")
    project = section.get("project")
    if project is not None and not isinstance(project, str):
        raise ValueError("project must be a string")

    return AppConfig(
        format=output_format,
        severity=None if severity is None else _enum_value(Severity, severity, "severity"),
        languages=[
            _enum_value(Language, item, "languages")
            for item in _string_list(section, "languages")
        ],
        include=_string_list(section, "include"),
        exclude=_string_list(section, "exclude"),
        project=project,
        custom_rules_path=_rules_path(section.get("custom_rules_path"), base_dir),
        auto_fix=_flag(section, "auto_fix"),
        source=str(source),
    )


def _rules_path(raw: Any, base_dir: Path) -> Path | None:
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise ValueError("custom_rules_path must be a string")
    path = Path(raw).expanduser()
    return path if path.is_absolute() else base_dir / path


def _string_list(section: dict[str, Any], key: str) -> list[str]:
    raw = section.get(key, [])
    if not isinstance(raw, list) or not all(isinstance(item, str) for item in raw):
        raise ValueError(f"{key} must be a list of strings")
    return list(raw)


def _enum_value(enum_type: type[_EnumT], raw: Any, key: str) -> _EnumT:
    try:
        return enum_type(str(raw).lower())
    except ValueError:
        choices = ", ".join(sorted(member.value for member in enum_type))
        raise ValueError(f"{key} must be one of: {choices}") from None


def _flag(section: dict[str, Any], key: str) -> bool:
    raw = section.get(key, False)
    if not isinstance(raw, bool):
        raise ValueError(f"{key} must be a boolean")
    return raw
