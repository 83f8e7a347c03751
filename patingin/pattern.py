"""Anti-pattern rule model."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import PurePosixPath


class Language(str, Enum):
    """Languages with built-in rule sets."""

    ELIXIR = "elixir"
    JAVASCRIPT = "javascript"
    TYPESCRIPT = "typescript"
    PYTHON = "python"
    RUST = "rust"
    ZIG = "zig"
    SQL = "sql"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, raw: str) -> Language | None:
        """Return the language for a lowercase name, or None if unknown."""
        try:
            return cls(raw)
        except ValueError:
            return None


class Severity(str, Enum):
    """Rule severity, declared in ordinal order."""

    CRITICAL = "critical"
    MAJOR = "major"
    WARNING = "warning"

    def __str__(self) -> str:
        return self.value

    @property
    def rank(self) -> int:
        """Declaration ordinal: critical=0, major=1, warning=2."""
        return _SEVERITY_RANKS[self]

    @classmethod
    def parse(cls, raw: str) -> Severity | None:
        """Return the severity for a lowercase name, or None if unknown."""
        try:
            return cls(raw)
        except ValueError:
            return None


_SEVERITY_RANKS = {Severity.CRITICAL: 0, Severity.MAJOR: 1, Severity.WARNING: 2}

# Extensions a rule of each language applies to.
RULE_EXTENSIONS: dict[Language, frozenset[str]] = {
    Language.ELIXIR: frozenset({"ex", "exs"}),
    Language.JAVASCRIPT: frozenset({"js", "jsx", "mjs"}),
    Language.TYPESCRIPT: frozenset({"ts", "tsx"}),
    Language.PYTHON: frozenset({"py"}),
    Language.RUST: frozenset({"rs"}),
    Language.ZIG: frozenset({"zig"}),
    Language.SQL: frozenset({"sql"}),
}


@dataclass(frozen=True, slots=True)
class RegexMethod:
    """Match when the pattern is found anywhere in the line."""

    pattern: str


@dataclass(frozen=True, slots=True)
class RatioMethod:
    """Match when pattern hits per character reach the threshold."""

    pattern: str
    threshold: float = 0.3


@dataclass(frozen=True, slots=True)
class LineCountMethod:
    """Multi-line size check; not evaluated against single lines."""

    pattern: str
    threshold: int = 10


@dataclass(frozen=True, slots=True)
class CustomMethod:
    """Free-form detection description; not evaluated against single lines."""

    pattern: str


@dataclass(frozen=True, slots=True)
class AstMethod:
    """Reserved for syntax-tree detection."""

    pattern: str


DetectionMethod = RegexMethod | RatioMethod | LineCountMethod | CustomMethod | AstMethod

DETECTION_METHOD_TYPES: dict[type, str] = {
    RegexMethod: "regex",
    RatioMethod: "ratio",
    LineCountMethod: "line_count",
    CustomMethod: "custom",
    AstMethod: "ast",
}


@dataclass(frozen=True, slots=True)
class CodeExample:
    """Before/after illustration of a rule."""

    bad: str
    good: str
    explanation: str


@dataclass(frozen=True, slots=True)
class AntiPattern:
    """A language-scoped anti-pattern rule."""

    id: str
    name: str
    language: Language
    severity: Severity
    description: str
    detection_method: DetectionMethod
    fix_suggestion: str
    source_url: str | None = None
    claude_code_fixable: bool = False
    examples: tuple[CodeExample, ...] = ()
    tags: tuple[str, ...] = ()
    enabled: bool = True

    @property
    def detection_type(self) -> str:
        return DETECTION_METHOD_TYPES[type(self.detection_method)]

    def matches_file_extension(self, extension: str) -> bool:
        return extension in RULE_EXTENSIONS[self.language]


def file_extension(path: str) -> str:
    """Return the extension of ``path`` without the dot, or an empty string."""
    suffix = PurePosixPath(path).suffix
    return suffix[1:] if suffix else ""
