"""Spelling suggestions for unknown identifiers."""

from mql_tools.spellcheck.matcher import (
    DictionaryIndex,
    Match,
    SpellChecker,
    bounded_levenshtein,
    builtin_checker,
    find_closest_matches,
    load_builtin_functions,
)
from mql_tools.spellcheck.suggestions import (
    Suggestion,
    build_suggestions,
    extract_identifier,
    is_unresolved_identifier,
    suggest_corrections,
)

__all__ = [
    "DictionaryIndex",
    "Match",
    "SpellChecker",
    "Suggestion",
    "bounded_levenshtein",
    "build_suggestions",
    "builtin_checker",
    "extract_identifier",
    "find_closest_matches",
    "is_unresolved_identifier",
    "load_builtin_functions",
    "suggest_corrections",
]
