"""Reverse ``#include`` graph over a workspace.

Headers are not compiled on their own: a request for ``Lib.mqh`` compiles
every ``.mq4``/``.mq5`` main file that includes it, directly or through
other headers.
"""

from __future__ import annotations

import logging
import os
import re
from collections import deque
from pathlib import Path
from typing import TYPE_CHECKING

from mql_tools.flavor import HEADER_SUFFIX, SOURCE_SUFFIXES

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)

INCLUDE_RE = re.compile(r'^#include\s+["<]([^">]+)[">]')
BLOCK_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)

MAIN_SUFFIXES = frozenset({".mq4", ".mq5"})
SKIPPED_DIRS = frozenset({".git", "node_modules"})
DEFAULT_MAX_FILES = 5000


def parse_includes(text: str) -> list[str]:
    """``#include`` targets in source order, ignoring commented-out lines."""
    includes = []
    for line in BLOCK_COMMENT_RE.sub("", text).splitlines():
        stripped = line.strip()
        if stripped.startswith("//"):
            continue
        match = INCLUDE_RE.match(stripped)
        if match:
            includes.append(match.group(1))
    return includes


def index_key(path: Path | str) -> str:
    """Case-insensitive normalized key for a file path."""
    return os.path.normpath(str(path)).lower()


def resolve_include_path(
    include: str,
    current_dir: Path,
    workspace_root: Path,
    include_dir: Path | str | None = None,
) -> list[Path]:
    """Existing files an include may refer to.

    Candidates, in order: relative to the including file, under
    ``<workspace>/Include`` and under the configured include directory.
    """
    relative = include.replace("\\", "/")
    candidates = [current_dir / relative, workspace_root / "Include" / relative]
    if include_dir:
        candidates.append(Path(include_dir) / relative)

    found: list[Path] = []
    for candidate in candidates:
        if candidate.is_file() and candidate not in found:
            found.append(candidate)
    return found


def iter_sources(root: Path, max_files: int = DEFAULT_MAX_FILES) -> Iterator[Path]:
    """MQL sources under ``root``, at most ``max_files`` of them."""
    count = 0
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in SKIPPED_DIRS)
        for name in sorted(filenames):
            if Path(name).suffix.lower() not in SOURCE_SUFFIXES:
                continue
            yield Path(dirpath) / name
            count += 1
            if count >= max_files:
                logger.warning("Include index truncated at %d files under %s", max_files, root)
                return


class IncludeIndex:
    """Included file -> files that include it.

    Example:
        index = IncludeIndex.build(Path("/ws"), include5_dir="/t/MQL5/Include")
        index.find_candidate_mains(Path("/ws/Include/Lib.mqh"))
        # [Path("/ws/Experts/Bot.mq5")]
    """

    def __init__(self, reverse: dict[str, set[Path]] | None = None) -> None:
        self._reverse: dict[str, set[Path]] = reverse or {}

    def __len__(self) -> int:
        return len(self._reverse)

    @classmethod
    def build(
        cls,
        workspace: Path | str,
        include4_dir: str = "",
        include5_dir: str = "",
        max_files: int = DEFAULT_MAX_FILES,
    ) -> IncludeIndex:
        """Scan the workspace and record every resolvable include.

        Args:
            workspace: Folder to scan.
            include4_dir: MQL4 include directory, used for ``.mq4`` and MQL4 paths.
            include5_dir: MQL5 include directory, used for everything else.
            max_files: Upper bound on files read.

        Returns:
            The populated index.
        """
        root = Path(workspace).resolve()
        reverse: dict[str, set[Path]] = {}
        for source in iter_sources(root, max_files):
            try:
                text = source.read_text(encoding="utf-8", errors="replace")
            except OSError as e:
                logger.warning("Skipping %s while indexing includes: %s", source, e)
                continue

            is_mql4 = source.suffix.lower() == ".mq4" or "mql4" in str(source).lower()
            include_dir = include4_dir if is_mql4 else include5_dir
            for include in parse_includes(text):
                for resolved in resolve_include_path(include, source.parent, root, include_dir):
                    reverse.setdefault(index_key(resolved), set()).add(source)

        logger.debug("Indexed includes of %s: %d included files", root, len(reverse))
        return cls(reverse)

    def including(self, path: Path | str) -> set[Path]:
        """Files that include ``path`` directly."""
        return set(self._reverse.get(index_key(path), ()))

    def find_candidate_mains(self, header: Path | str) -> list[Path]:
        """Main files that include ``header``, following header-to-header includes.

        Returns:
            Main files sorted by path.
        """
        mains: set[Path] = set()
        visited: set[str] = set()
        queue = deque([index_key(header)])
        while queue:
            current = queue.popleft()
            if current in visited:
                continue
            visited.add(current)
            for including in self._reverse.get(current, ()):
                suffix = including.suffix.lower()
                if suffix in MAIN_SUFFIXES:
                    mains.add(including)
                elif suffix == HEADER_SUFFIX:
                    queue.append(index_key(including))
        return sorted(mains)


__all__ = [
    "IncludeIndex",
    "index_key",
    "iter_sources",
    "parse_includes",
    "resolve_include_path",
]
