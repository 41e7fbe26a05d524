"""Tail session: byte offset bookkeeping and delta reads for one log file."""

from __future__ import annotations

import codecs
import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from mql_tools.settings import TailMode

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

BOM = "\ufeff"

# Live logs are written with FileWriteString in ANSI/UTF-8, the terminal journal in UTF-16-LE
ENCODING_BY_MODE = {
    TailMode.LIVE: "utf-8",
    TailMode.STANDARD: "utf-16-le",
}


class ChangeKind(StrEnum):
    """What a size check found."""

    MISSING = "missing"
    UNCHANGED = "unchanged"
    GROWN = "grown"
    TRUNCATED = "truncated"


@dataclass(frozen=True)
class TailChange:
    """Result of checking the file once.

    Attributes:
        kind: Kind of change.
        text: Newly decoded text (GROWN only).
        size: File size observed.
    """

    kind: ChangeKind
    text: str = ""
    size: int = 0


@dataclass
class TailSession:
    """Reading state of a followed file.

    ``last_offset`` never exceeds the file size observed at the last check
    and drops to 0 when the file shrinks or the target file changes.

    Attributes:
        file_path: File being followed.
        mode: LIVE or STANDARD.
        last_offset: Bytes already consumed.
    """

    file_path: Path
    mode: TailMode
    last_offset: int = 0
    _decoder: codecs.IncrementalDecoder = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._decoder = self._new_decoder()

    @property
    def encoding(self) -> str:
        return ENCODING_BY_MODE[self.mode]

    @classmethod
    def at_end(cls, file_path: Path, mode: TailMode) -> TailSession:
        """Session starting at the current end of file, so history is not replayed."""
        session = cls(file_path=file_path, mode=mode)
        try:
            session.last_offset = file_path.stat().st_size
        except FileNotFoundError:
            session.last_offset = 0
        return session

    def reset(self) -> None:
        """Forget the offset and any partially decoded bytes."""
        self.last_offset = 0
        self._decoder = self._new_decoder()

    def switch_file(self, file_path: Path) -> None:
        """Follow a different file from its beginning."""
        self.file_path = file_path
        self.reset()

    def check(self) -> TailChange:
        """Compare the file size with the offset and read any new bytes."""
        try:
            size = self.file_path.stat().st_size
        except FileNotFoundError:
            return TailChange(kind=ChangeKind.MISSING)

        if size > self.last_offset:
            return TailChange(kind=ChangeKind.GROWN, text=self._read_delta(size), size=size)
        if size < self.last_offset:
            logger.debug("%s shrank from %d to %d bytes", self.file_path, self.last_offset, size)
            self.reset()
            return TailChange(kind=ChangeKind.TRUNCATED, size=size)
        return TailChange(kind=ChangeKind.UNCHANGED, size=size)

    def _read_delta(self, size: int) -> str:
        length = size - self.last_offset
        with self.file_path.open("rb") as f:
            f.seek(self.last_offset)
            data = f.read(length)
        # Advance by what was read; the file may have been truncated in between
        self.last_offset += len(data)
        return self._decoder.decode(data).replace(BOM, "")

    def _new_decoder(self) -> codecs.IncrementalDecoder:
        return codecs.getincrementaldecoder(self.encoding)(errors="replace")


__all__ = ["ENCODING_BY_MODE", "ChangeKind", "TailChange", "TailSession"]
