"""Compiler log parser.

Turns MetaEditor's free-text log into display text, structured diagnostics,
an error flag and a link index. Every line is classified by the first
matching rule of an ordered rule table.

Example log (check mode):

    C:\\MT5\\MQL5\\Experts\\Bot.mq5 : information: checking 'Bot.mq5'
    C:\\MT5\\MQL5\\Experts\\Bot.mq5(12,5) : error 256: 'Ordersend' - undeclared identifier
    Result: 1 errors, 0 warnings
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from mql_tools.compiler.diagnostics import Diagnostic, LinkEntry, Severity, file_uri

if TYPE_CHECKING:
    from collections.abc import Callable

BOM = "\ufeff"

INFORMATION_MARKER = ": information:"

# Compiler noise code: implicit conversion from 'number' to 'string'
SUPPRESSED_CODES = frozenset({"181"})

COMPILING_RE = re.compile(r": information: (?:compiling|checking)\s+(?P<name>'.+')", re.IGNORECASE)
INCLUDE_RE = re.compile(r": information: including\s+(?P<name>'.+')", re.IGNORECASE)
INFO_RE = re.compile(r": information: (?P<message>.+)$", re.IGNORECASE)
LEADING_PATH_RE = re.compile(r"^(?P<path>[A-Za-z]:\\.+?) : ")
RESULT_RE = re.compile(r"(?:^Result:|: information: result)", re.IGNORECASE)
RESULT_SUMMARY_RE = re.compile(r"\d+\s*errors?.*$", re.IGNORECASE)
ERROR_COUNT_RE = re.compile(r"(\d+)\s*errors?", re.IGNORECASE)
WARNING_COUNT_RE = re.compile(r"(\d+)\s*warnings?", re.IGNORECASE)
PATH_DIAGNOSTIC_RE = re.compile(
    r"^(?P<path>[A-Za-z]:\\.+?)?\((?P<line>\d+),(?P<column>\d+)\)\s*:\s*(?P<body>.+)$"
)
DIAGNOSTIC_BODY_RE = re.compile(
    r"^(?P<severity>error|warning)\s*(?P<code>\d+)?\s*:\s*(?P<message>.*)$",
    re.IGNORECASE,
)
SILENT_INFO = ("information: generating code", "information: code generated")


class LineKind(StrEnum):
    """Line categories in rule order."""

    COMPILING_HEADER = "compiling_header"
    INCLUDE_NOTICE = "include_notice"
    INFO_NOTICE = "info_notice"
    RESULT_SUMMARY = "result_summary"
    PATH_DIAGNOSTIC = "path_diagnostic"
    PLAIN = "plain"


@dataclass
class ParseResult:
    """Everything extracted from one log.

    Attributes:
        display_text: Human-readable text for the output channel.
        diagnostics: Diagnostics in log order.
        has_error: True if any error diagnostic or nonzero error count was seen.
        link_index: Fresh name-to-link mapping for this log.
    """

    display_text: str = ""
    diagnostics: list[Diagnostic] = field(default_factory=list)
    has_error: bool = False
    link_index: dict[str, LinkEntry] = field(default_factory=dict)


@dataclass
class _ParseState:
    check_only: bool
    lines: list[str] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)
    links: dict[str, LinkEntry] = field(default_factory=dict)
    has_error: bool = False

    def to_result(self) -> ParseResult:
        text = "".join(f"{line}\n" for line in self.lines)
        return ParseResult(
            display_text=text,
            diagnostics=self.diagnostics,
            has_error=self.has_error,
            link_index=self.links,
        )


@dataclass(frozen=True)
class LineRule:
    """One classification rule: first rule whose predicate matches handles the line."""

    kind: LineKind
    predicate: Callable[[str], bool]
    handler: Callable[[_ParseState, str], None]


def is_result_line(line: str) -> bool:
    return RESULT_RE.search(line) is not None


def is_info_line(line: str) -> bool:
    return INFORMATION_MARKER in line.lower() and not is_result_line(line)


def is_suppressed(code: str | None, message: str) -> bool:
    """Implicit number-to-string conversion warnings are dropped."""
    if code in SUPPRESSED_CODES:
        return True
    lowered = message.lower()
    return "implicit conversion" in lowered and "number" in lowered and "string" in lowered


def _leading_path(line: str) -> str | None:
    match = LEADING_PATH_RE.match(line)
    return match.group("path") if match else None


def _handle_named(pattern: re.Pattern[str]) -> Callable[[_ParseState, str], None]:
    def handler(state: _ParseState, line: str) -> None:
        match = pattern.search(line)
        path = _leading_path(line)
        if not match or not path:
            return
        name = match.group("name")
        state.links[name] = LinkEntry(link=file_uri(path))
        state.lines.append(name)

    return handler


def _handle_info(state: _ParseState, line: str) -> None:
    lowered = line.lower()
    if any(marker in lowered for marker in SILENT_INFO):
        return
    match = INFO_RE.search(line)
    if not match:
        return
    message = match.group("message").strip()
    path = _leading_path(line)
    if path:
        state.links[message] = LinkEntry(link=file_uri(path))
    state.lines.append(message)


def _handle_result(state: _ParseState, line: str) -> None:
    errors_match = ERROR_COUNT_RE.search(line)
    warnings_match = WARNING_COUNT_RE.search(line)
    errors = int(errors_match.group(1)) if errors_match else 0
    warnings = int(warnings_match.group(1)) if warnings_match else 0

    if errors:
        tag = "Error"
        state.has_error = True
    elif warnings:
        tag = "Warning"
    else:
        tag = "Done"

    if state.check_only:
        state.lines.append(f"[{tag}] {line}")
    else:
        summary = RESULT_SUMMARY_RE.search(line)
        state.lines.append(f"[{tag}] Result: {summary.group(0) if summary else line}")


def _handle_diagnostic(state: _ParseState, line: str) -> None:
    match = PATH_DIAGNOSTIC_RE.match(line)
    if match is None:
        state.lines.append(line)
        return

    body = match.group("body").strip()
    body_match = DIAGNOSTIC_BODY_RE.match(body)
    if body_match:
        severity = Severity.ERROR if body_match.group("severity").lower() == "error" else Severity.WARNING
        code = body_match.group("code")
        message = body_match.group("message").strip()
    else:
        severity = Severity.ERROR if "error" in body.lower() else Severity.WARNING
        code = None
        message = body

    if is_suppressed(code, message):
        return

    line_no, column_no = match.group("line"), match.group("column")
    position = f"({line_no},{column_no})"
    display = f"{message} {position}"
    state.lines.append(display)

    path = match.group("path")
    if not path:
        return

    path = path.strip()
    state.diagnostics.append(
        Diagnostic(
            file_path=path,
            line=int(line_no) - 1,
            column=int(column_no) - 1,
            severity=severity,
            message=message,
            code=code,
        )
    )
    state.links[display] = LinkEntry(link=f"{file_uri(path)}#{line_no},{column_no}", number=code)
    if severity == Severity.ERROR:
        state.has_error = True


def _handle_plain(state: _ParseState, line: str) -> None:
    state.lines.append(line)


RULES: tuple[LineRule, ...] = (
    LineRule(LineKind.COMPILING_HEADER, lambda line: COMPILING_RE.search(line) is not None, _handle_named(COMPILING_RE)),
    LineRule(LineKind.INCLUDE_NOTICE, lambda line: INCLUDE_RE.search(line) is not None, _handle_named(INCLUDE_RE)),
    LineRule(LineKind.INFO_NOTICE, is_info_line, _handle_info),
    LineRule(LineKind.RESULT_SUMMARY, is_result_line, _handle_result),
    LineRule(LineKind.PATH_DIAGNOSTIC, lambda line: PATH_DIAGNOSTIC_RE.match(line) is not None, _handle_diagnostic),
    LineRule(LineKind.PLAIN, lambda line: True, _handle_plain),
)


def classify_line(line: str) -> LineKind:
    """Kind of the first rule matching ``line``."""
    return next(rule.kind for rule in RULES if rule.predicate(line))


def parse_log(raw_text: str, check_only: bool = False) -> ParseResult:
    """Parse a compiler log.

    Args:
        raw_text: Decoded log content (BOMs are stripped here).
        check_only: Check mode shows result lines verbatim; compile mode
            shows a ``Result: <summary>`` form.

    Returns:
        ParseResult with a link index private to this call.
    """
    state = _ParseState(check_only=check_only)
    if not raw_text:
        return state.to_result()

    for raw_line in raw_text.replace(BOM, "").splitlines():
        line = raw_line.strip()
        if not line:
            continue
        for rule in RULES:
            if rule.predicate(line):
                rule.handler(state, line)
                break

    return state.to_result()


__all__ = [
    "RULES",
    "SUPPRESSED_CODES",
    "LineKind",
    "LineRule",
    "ParseResult",
    "classify_line",
    "is_suppressed",
    "parse_log",
]
