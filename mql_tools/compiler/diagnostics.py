"""Diagnostic model and the stores compile results are published into."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path, PureWindowsPath
from typing import TYPE_CHECKING, Any

from mql_tools.settings import WINDOWS_DRIVE_RE

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

# Documentation target for MQL<code> diagnostic codes
ERROR_DOCS_URL = "https://www.mql5.com/en/docs/runtime/errors"


class Severity(StrEnum):
    """Diagnostic severity."""

    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class Diagnostic:
    """A compiler problem at a source position.

    Positions are 0-based; the compiler's 1-based values are converted when
    the log is parsed.

    Attributes:
        file_path: File the problem is reported against.
        line: 0-based line.
        column: 0-based column.
        severity: ERROR or WARNING.
        message: Message without the code or the severity prefix.
        code: Numeric compiler code as text, if present.
    """

    file_path: str
    line: int
    column: int
    severity: Severity
    message: str
    code: str | None = None

    @property
    def is_error(self) -> bool:
        return self.severity == Severity.ERROR

    def to_presentation(self) -> dict[str, Any]:
        """Editor-facing form: single-character range, ``MQL<code>`` with a docs link."""
        data: dict[str, Any] = {
            "range": {
                "start": {"line": self.line, "character": self.column},
                "end": {"line": self.line, "character": self.column + 1},
            },
            "message": self.message,
            "severity": self.severity.value,
        }
        if self.code:
            data["code"] = {"value": f"MQL{self.code}", "target": ERROR_DOCS_URL}
        return data


@dataclass(frozen=True)
class LinkEntry:
    """Navigation target for a name or message shown in the output.

    Attributes:
        link: ``file://`` URI, with a ``#line,col`` fragment for diagnostics.
        number: Compiler code for diagnostics, ``None`` otherwise.
    """

    link: str
    number: str | None = None


def file_uri(path: str) -> str:
    """``file://`` URI for a Windows drive path or a host-native absolute path."""
    if WINDOWS_DRIVE_RE.match(path):
        return PureWindowsPath(path).as_uri()
    return Path(path).as_uri()


class DiagnosticStore:
    """Diagnostics keyed by file, replaced per file on publish.

    Example:
        store = DiagnosticStore()
        store.replace("C:\\x\\Bot.mq5", diagnostics)
        store.snapshot()  # {"C:\\x\\Bot.mq5": [...]}
    """

    def __init__(self) -> None:
        self._by_file: dict[str, list[Diagnostic]] = {}

    def __len__(self) -> int:
        return sum(len(items) for items in self._by_file.values())

    def clear(self) -> None:
        self._by_file.clear()

    def replace(self, file_path: str, diagnostics: Iterable[Diagnostic]) -> None:
        """Replace all diagnostics of one file."""
        items = list(diagnostics)
        if items:
            self._by_file[file_path] = items
        else:
            self._by_file.pop(file_path, None)

    def get(self, file_path: str) -> list[Diagnostic]:
        return list(self._by_file.get(file_path, ()))

    def snapshot(self) -> dict[str, list[Diagnostic]]:
        return {path: list(items) for path, items in self._by_file.items()}

    def has_errors(self) -> bool:
        return any(d.is_error for items in self._by_file.values() for d in items)


class LinkIndex:
    """Latest name-to-link mapping produced by a parse.

    Each publish replaces the whole mapping.
    """

    def __init__(self) -> None:
        self._entries: dict[str, LinkEntry] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def replace(self, entries: Mapping[str, LinkEntry]) -> None:
        self._entries = dict(entries)

    def get(self, key: str) -> LinkEntry | None:
        return self._entries.get(key)

    def snapshot(self) -> dict[str, LinkEntry]:
        return dict(self._entries)


def group_by_file(diagnostics: Iterable[Diagnostic]) -> dict[str, list[Diagnostic]]:
    """Group diagnostics by file, preserving order within each file."""
    grouped: dict[str, list[Diagnostic]] = {}
    for diagnostic in diagnostics:
        grouped.setdefault(diagnostic.file_path, []).append(diagnostic)
    return grouped


__all__ = [
    "ERROR_DOCS_URL",
    "Diagnostic",
    "DiagnosticStore",
    "LinkEntry",
    "LinkIndex",
    "Severity",
    "file_uri",
    "group_by_file",
]
