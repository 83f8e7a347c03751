"""Git subprocess helpers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from subprocess import CalledProcessError, run

logger = logging.getLogger(__name__)


class GitError(RuntimeError):
    """Raised when git command execution fails."""


@dataclass(frozen=True, slots=True)
class DiffScope:
    """Which changes to diff: unstaged, staged, or since a reference."""

    kind: str
    reference: str | None = None

    @classmethod
    def unstaged(cls) -> DiffScope:
        return cls(kind="unstaged")

    @classmethod
    def staged(cls) -> DiffScope:
        return cls(kind="staged")

    @classmethod
    def since(cls, reference: str) -> DiffScope:
        return cls(kind="since", reference=reference)

    def git_args(self) -> list[str]:
        if self.kind == "unstaged":
            return ["diff"]
        if self.kind == "staged":
            return ["diff", "--cached"]
        if self.kind == "since" and self.reference:
            return ["diff", self.reference]
        raise ValueError(f"Invalid diff scope: {self}")

    def describe(self) -> str:
        if self.kind == "unstaged":
            return "unstaged changes"
        if self.kind == "staged":
            return "staged changes"
        return f"changes since {self.reference}"


def build_git_command(scope: DiffScope) -> str:
    """Return the git command line a scope runs, for display."""
    return " ".join(["git", *scope.git_args()])


def get_diff(repo: Path, scope: DiffScope) -> str:
    """Return unified diff text for the given scope."""
    args = scope.git_args()
    return _run_git(repo, [args[0], "--no-color", *args[1:]])


def get_repo_root(repo: Path) -> Path | None:
    """Return the repository toplevel containing ``repo``, if any."""
    try:
        output = _run_git(repo, ["rev-parse", "--show-toplevel"]).strip()
    except GitError:
        return None
    return Path(output) if output else None


def _run_git(repo: Path, args: list[str]) -> str:
    logger.debug("Running git %s in %s", " ".join(args), repo)
    try:
        completed = run(
            ["git", *args],
            cwd=repo,
            check=True,
            capture_output=True,
            encoding="utf-8",
            errors="replace",
        )
    except CalledProcessError as exc:
        stderr = (exc.stderr or "").strip()
        raise GitError(stderr or f"git {' '.join(args)} failed") from exc
    except FileNotFoundError as exc:
        raise GitError(f"unable to run git: {exc}") from exc

    return completed.stdout
