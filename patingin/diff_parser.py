"""Unified diff parser primitives."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from enum import Enum

FILE_HEADER_PREFIX = "diff --git"
HUNK_HEADER_PREFIX = "@@"
CONTEXT_WINDOW = 3


class ChangeType(str, Enum):
    """Kind of change a line represents."""

    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"


@dataclass(slots=True)
class ChangedLine:
    """A single added or removed line with its surrounding context."""

    line_number: int
    content: str
    change_type: ChangeType
    context_before: list[str] = field(default_factory=list)
    context_after: list[str] = field(default_factory=list)


@dataclass(slots=True)
class FileDiff:
    """Changed lines for one file of a diff."""

    path: str
    added_lines: list[ChangedLine] = field(default_factory=list)
    removed_lines: list[ChangedLine] = field(default_factory=list)


@dataclass(slots=True)
class GitDiff:
    """A parsed diff; file paths are not required to be unique."""

    files: list[FileDiff] = field(default_factory=list)

    @property
    def added_line_count(self) -> int:
        return sum(len(file_diff.added_lines) for file_diff in self.files)


def parse_git_diff(diff_text: str) -> GitDiff:
    """Parse unified diff text into per-file changed lines.

    Never raises: lines that cannot be interpreted are skipped. Added lines are
    numbered on the new side of the diff; removed lines carry the new-side
    cursor position at which they were removed.
    """
    files: list[FileDiff] = []
    current_file: FileDiff | None = None
    line_number = 0
    context: deque[str] = deque(maxlen=CONTEXT_WINDOW)

    for raw_line in diff_text.split("\n"):
        raw_line = raw_line.removesuffix("\r")
        if raw_line.startswith(FILE_HEADER_PREFIX):
            if current_file is not None:
                files.append(current_file)
            path = _extract_file_path(raw_line)
            current_file = FileDiff(path=path) if path is not None else None
            continue

        if raw_line.startswith(HUNK_HEADER_PREFIX):
            line_number = _parse_hunk_start(raw_line)
            context.clear()
            continue

        if raw_line.startswith("+") and not raw_line.startswith("+++"):
            if current_file is not None:
                current_file.added_lines.append(
                    ChangedLine(
                        line_number=line_number,
                        content=raw_line[1:],
                        change_type=ChangeType.ADDED,
                        context_before=list(context),
                    )
                )
            line_number += 1
        elif raw_line.startswith("-") and not raw_line.startswith("---"):
            if current_file is not None:
                current_file.removed_lines.append(
                    ChangedLine(
                        line_number=line_number,
                        content=raw_line[1:],
                        change_type=ChangeType.REMOVED,
                        context_before=list(context),
                    )
                )
        elif raw_line.startswith(" "):
            context.append(raw_line[1:])
            line_number += 1

    if current_file is not None:
        files.append(current_file)
    return GitDiff(files=files)


def _extract_file_path(header: str) -> str | None:
    parts = header.split()
    if len(parts) < 4:
        return None
    old_path = parts[2]
    if not old_path.startswith("a/"):
        return None
    return old_path[2:]


def _parse_hunk_start(header: str) -> int:
    """Return the new-side start line of a hunk header, or 0 if unparsable.

    The start runs from ``" +"`` to the first comma after it, or to the first
    space when there is no comma. A comma in trailing section text therefore
    makes the header unparsable.
    """
    plus_index = header.find(" +")
    if plus_index < 0:
        return 0
    remainder = header[plus_index + 2 :]
    end = remainder.find(",")
    if end < 0:
        end = remainder.find(" ")
    if end < 0:
        return 0
    digits = remainder[:end]
    if not (digits.isascii() and digits.isdigit()):
        return 0
    return int(digits)
