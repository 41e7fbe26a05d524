"""Language flavor accepted by the external compiler."""

from __future__ import annotations

from enum import StrEnum

# Source file suffixes that always imply a flavor
FLAVOR_BY_SUFFIX = {
    ".mq4": "mql4",
    ".mq5": "mql5",
}

HEADER_SUFFIX = ".mqh"
SOURCE_SUFFIXES = frozenset({".mq4", ".mq5", HEADER_SUFFIX})


class Flavor(StrEnum):
    """The two mutually incompatible dialects."""

    MQL4 = "mql4"
    MQL5 = "mql5"

    @property
    def label(self) -> str:
        """Upper-case display label (``MQL4``/``MQL5``)."""
        return self.value.upper()

    @classmethod
    def from_suffix(cls, suffix: str) -> Flavor | None:
        """Flavor implied by a source suffix, ``None`` for headers and unknown suffixes."""
        value = FLAVOR_BY_SUFFIX.get(suffix.lower())
        return cls(value) if value else None


__all__ = ["FLAVOR_BY_SUFFIX", "HEADER_SUFFIX", "SOURCE_SUFFIXES", "Flavor"]
