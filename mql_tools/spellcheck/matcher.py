"""Fuzzy matching of identifiers against built-in function names.

Uses a case-insensitive Levenshtein distance bounded by ``max_distance``
over a dictionary bucketed by uppercased first letter.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import yaml

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

logger = logging.getLogger(__name__)

BUILTIN_FUNCTIONS_PATH = Path(__file__).parent / "builtin_functions.yaml"

# Shorter names and tokens produce too many spurious matches
MIN_NAME_LENGTH = 3
# Tokens at least this long also try adjacent first letters
MIN_SECONDARY_LENGTH = 4

DEFAULT_MAX_DISTANCE = 2
DEFAULT_MAX_RESULTS = 3


@dataclass(frozen=True, slots=True)
class Match:
    """Candidate correction.

    Attributes:
        name: Dictionary name.
        distance: Case-insensitive edit distance to the token.
    """

    name: str
    distance: int

    @property
    def is_high_confidence(self) -> bool:
        return self.distance == 1


@dataclass(frozen=True)
class DictionaryIndex:
    """Immutable lookup structure over the dictionary.

    Attributes:
        buckets_by_first_letter: Names keyed by uppercased first character.
        full_set: All names, for exact-membership checks.
    """

    buckets_by_first_letter: dict[str, tuple[str, ...]]
    full_set: frozenset[str]

    @classmethod
    def build(cls, names: Iterable[str]) -> DictionaryIndex:
        buckets: dict[str, list[str]] = {}
        seen: set[str] = set()
        for name in names:
            if len(name) < MIN_NAME_LENGTH or name in seen:
                continue
            seen.add(name)
            buckets.setdefault(name[0].upper(), []).append(name)
        return cls(
            buckets_by_first_letter={key: tuple(values) for key, values in buckets.items()},
            full_set=frozenset(seen),
        )

    def bucket(self, letter: str) -> tuple[str, ...]:
        return self.buckets_by_first_letter.get(letter, ())


def bounded_levenshtein(a: str, b: str, max_distance: int) -> int | None:
    """Edit distance between ``a`` and ``b`` if it is at most ``max_distance``.

    Uses a single DP row sized to the shorter string and stops as soon as
    every value in the current row exceeds the bound.

    Returns:
        The distance, or ``None`` when it exceeds ``max_distance``.
    """
    if abs(len(a) - len(b)) > max_distance:
        return None
    if not a or not b:
        distance = len(a) or len(b)
        return distance if distance <= max_distance else None

    shorter, longer = (a, b) if len(a) < len(b) else (b, a)
    row = list(range(len(shorter) + 1))

    for i, long_char in enumerate(longer, start=1):
        prev_diagonal = row[0]
        row[0] = i
        row_min = i
        for j, short_char in enumerate(shorter, start=1):
            cost = 0 if long_char == short_char else 1
            current = min(
                row[j] + 1,  # deletion
                row[j - 1] + 1,  # insertion
                prev_diagonal + cost,  # substitution
            )
            prev_diagonal = row[j]
            row[j] = current
            row_min = min(row_min, current)
        if row_min > max_distance:
            return None

    return row[-1] if row[-1] <= max_distance else None


def load_builtin_functions(path: Path = BUILTIN_FUNCTIONS_PATH) -> list[str]:
    """Read built-in function names from the bundled YAML file."""
    with path.open(encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    names = data.get("functions", [])
    if not isinstance(names, list):
        msg = f"Expected a list under 'functions' in {path}"
        raise ValueError(msg)
    return [str(name) for name in names]


def _adjacent_letters(letter: str) -> list[str]:
    code = ord(letter)
    return [chr(c) for c in (code - 1, code + 1) if ord("A") <= c <= ord("Z")]


class SpellChecker:
    """Suggests dictionary names close to an unknown identifier.

    The index is built on first use and kept until ``invalidate``.

    Example:
        checker = SpellChecker()
        checker.find_closest_matches("Ordrsend")
        # [Match(name="OrderSend", distance=1)]
    """

    def __init__(self, names: Iterable[str] | Callable[[], Iterable[str]] | None = None) -> None:
        """Initialize SpellChecker.

        Args:
            names: Dictionary names, or a callable producing them. Defaults to
                the bundled built-in function list.
        """
        if names is None:
            self._source: Callable[[], Iterable[str]] = load_builtin_functions
        elif callable(names):
            self._source = names
        else:
            frozen = tuple(names)
            self._source = lambda: frozen
        self._index: DictionaryIndex | None = None

    @property
    def index(self) -> DictionaryIndex:
        if self._index is None:
            self._index = DictionaryIndex.build(self._source())
            logger.debug("Built spellcheck index with %d names", len(self._index.full_set))
        return self._index

    def invalidate(self) -> None:
        """Drop the index; it is rebuilt on next use."""
        self._index = None

    def __contains__(self, name: object) -> bool:
        return name in self.index.full_set

    def find_closest_matches(
        self,
        token: str,
        max_distance: int = DEFAULT_MAX_DISTANCE,
        max_results: int = DEFAULT_MAX_RESULTS,
    ) -> list[Match]:
        """Closest dictionary names to ``token``.

        Args:
            token: Unknown identifier.
            max_distance: Largest edit distance accepted.
            max_results: Maximum number of matches returned.

        Returns:
            Matches ordered by distance, then name. Empty for short tokens and
            for tokens that are already dictionary names.
        """
        if len(token) < MIN_NAME_LENGTH:
            return []
        index = self.index
        if token in index.full_set:
            return []

        lowered = token.lower()
        first = token[0].upper()
        candidates = self._scan(index.bucket(first), lowered, max_distance)

        if not candidates and len(token) >= MIN_SECONDARY_LENGTH:
            for letter in _adjacent_letters(first):
                candidates.extend(self._scan(index.bucket(letter), lowered, max_distance))

        candidates.sort(key=lambda m: (m.distance, m.name.lower(), m.name))
        return candidates[:max_results]

    @staticmethod
    def _scan(names: Iterable[str], lowered: str, max_distance: int) -> list[Match]:
        matches = []
        for name in names:
            if abs(len(name) - len(lowered)) > max_distance:
                continue
            distance = bounded_levenshtein(lowered, name.lower(), max_distance)
            if distance is not None:
                matches.append(Match(name=name, distance=distance))
        return matches


# Shared checker over the bundled dictionary; the index is built on first lookup
builtin_checker = SpellChecker()


def find_closest_matches(
    token: str,
    max_distance: int = DEFAULT_MAX_DISTANCE,
    max_results: int = DEFAULT_MAX_RESULTS,
) -> list[Match]:
    """``SpellChecker.find_closest_matches`` on the shared built-in dictionary."""
    return builtin_checker.find_closest_matches(token, max_distance, max_results)


__all__ = [
    "BUILTIN_FUNCTIONS_PATH",
    "DictionaryIndex",
    "Match",
    "SpellChecker",
    "bounded_levenshtein",
    "builtin_checker",
    "find_closest_matches",
    "load_builtin_functions",
]
