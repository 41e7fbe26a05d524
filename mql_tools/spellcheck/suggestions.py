"""Spelling corrections for unresolved-identifier diagnostics."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from mql_tools.spellcheck.matcher import builtin_checker

if TYPE_CHECKING:
    from mql_tools.compiler.diagnostics import Diagnostic
    from mql_tools.spellcheck.matcher import Match, SpellChecker

UNDECLARED_IDENTIFIER_CODE = "256"

# Tokens shorter than this are rarely misspelled function names
MIN_TOKEN_LENGTH = 4

QUOTED_IDENTIFIER_RE = re.compile(r"'(\w+)'")

UNRESOLVED_MARKERS = ("undeclared", "not declared")


@dataclass(frozen=True)
class Suggestion:
    """A proposed replacement for the identifier at a diagnostic.

    Attributes:
        title: Quick-fix title.
        replacement: Name to substitute.
        line: 0-based line of the identifier.
        start_column: 0-based column where the identifier starts.
        end_column: 0-based column after the identifier.
        preferred: Distance-1 suggestions are preferred.
    """

    title: str
    replacement: str
    line: int
    start_column: int
    end_column: int
    preferred: bool = False


def is_unresolved_identifier(diagnostic: Diagnostic) -> bool:
    """Whether a diagnostic reports an unknown identifier."""
    if diagnostic.code == UNDECLARED_IDENTIFIER_CODE:
        return True
    message = diagnostic.message.lower()
    if any(marker in message for marker in UNRESOLVED_MARKERS):
        return True
    return "unknown" in message and "identifier" in message


def extract_identifier(message: str) -> str | None:
    """First single-quoted identifier in a diagnostic message."""
    match = QUOTED_IDENTIFIER_RE.search(message)
    return match.group(1) if match else None


def suggest_corrections(diagnostic: Diagnostic, checker: SpellChecker | None = None) -> list[Match]:
    """Dictionary names close to the identifier a diagnostic complains about.

    Args:
        diagnostic: Compiler diagnostic.
        checker: Spell checker (defaults to the built-in function dictionary).

    Returns:
        Matches ordered by distance, empty when the diagnostic is not about an
        unresolved identifier or the identifier is too short.
    """
    if not is_unresolved_identifier(diagnostic):
        return []
    token = extract_identifier(diagnostic.message)
    if token is None or len(token) < MIN_TOKEN_LENGTH:
        return []
    checker = checker or builtin_checker
    return checker.find_closest_matches(token)


def build_suggestions(diagnostic: Diagnostic, checker: SpellChecker | None = None) -> list[Suggestion]:
    """Quick-fix style suggestions replacing the identifier at the diagnostic position."""
    token = extract_identifier(diagnostic.message)
    if token is None:
        return []
    return [
        Suggestion(
            title=f"MQL: Did you mean '{match.name}'?",
            replacement=match.name,
            line=diagnostic.line,
            start_column=diagnostic.column,
            end_column=diagnostic.column + len(token),
            preferred=match.is_high_confidence,
        )
        for match in suggest_corrections(diagnostic, checker)
    ]


__all__ = [
    "Suggestion",
    "build_suggestions",
    "extract_identifier",
    "is_unresolved_identifier",
    "suggest_corrections",
]
