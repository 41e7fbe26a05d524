"""Append-only text output surface.

Stands in for the editor's output panel: the compiler writes its display
text here and the log tailer streams runtime log content into it.
"""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import TextIO


class OutputChannel:
    """Text sink that mirrors everything written into an in-memory buffer.

    Example:
        channel = OutputChannel("MQL Compiler")
        channel.append_line("[12:00:01] Compiling 'Expert.mq5' [0.8s]")
        channel.warning("Stderr: ...")

    Attributes:
        name: Display name of the channel.
    """

    def __init__(self, name: str, stream: TextIO | None = None) -> None:
        """Initialize OutputChannel.

        Args:
            name: Display name of the channel.
            stream: Stream to echo output to. ``None`` keeps output in memory only.
        """
        self.name = name
        self._stream = stream
        self._chunks: list[str] = []

    @classmethod
    def to_stdout(cls, name: str) -> OutputChannel:
        """Create a channel echoing to standard output."""
        return cls(name, stream=sys.stdout)

    @property
    def text(self) -> str:
        """Everything written since the last clear."""
        return "".join(self._chunks)

    @property
    def lines(self) -> list[str]:
        """Written text split into lines."""
        return self.text.splitlines()

    def append(self, text: str) -> None:
        """Append raw text without a trailing newline."""
        if not text:
            return
        self._chunks.append(text)
        if self._stream is not None:
            self._stream.write(text)
            self._stream.flush()

    def append_line(self, text: str) -> None:
        """Append text followed by a newline."""
        self.append(text + "\n")

    def warning(self, message: str) -> None:
        self.append_line(f"[Warning] {message}")

    def error(self, message: str) -> None:
        self.append_line(f"[Error] {message}")

    def clear(self) -> None:
        """Drop buffered text. Echoed output is not affected."""
        self._chunks.clear()


__all__ = ["OutputChannel"]
