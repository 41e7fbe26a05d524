"""Compile targets with their flavor resolved up front."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from mql_tools.compiler.include_index import IncludeIndex
from mql_tools.flavor import HEADER_SUFFIX, Flavor
from mql_tools.settings import resolve_setting_path

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping, Sequence

    from mql_tools.settings import ToolingSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CompileTarget:
    """A source file and the flavor it is compiled as.

    Attributes:
        path: Absolute path of the file handed to the compiler.
        flavor: Dialect, resolved once and passed through unchanged.
    """

    path: Path
    flavor: Flavor

    def __post_init__(self) -> None:
        if not self.path.is_absolute():
            msg = f"Compile target must be an absolute path, got '{self.path}'"
            raise ValueError(msg)

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def log_path(self) -> Path:
        """Log next to the source, named after the stem (``Bot.mq5`` -> ``Bot.log``)."""
        return self.path.with_suffix(".log")


def mapping_key(header: Path, workspace: Path) -> str:
    """Saved-mapping key: workspace-relative, forward slashes, lower-cased."""
    return Path(os.path.relpath(header, workspace)).as_posix().lower()


class HeaderTargetResolver:
    """Finds the main files compiled for a header.

    Saved mappings win when at least one of their targets still exists;
    otherwise the reverse include index of the workspace is consulted. The
    index is built on first use.

    Attributes:
        workspace: Folder mappings are relative to and the index scans.
    """

    def __init__(
        self,
        workspace: Path | str,
        mappings: Mapping[str, Sequence[str]] | None = None,
        index_factory: Callable[[], IncludeIndex] | None = None,
    ) -> None:
        self.workspace = Path(workspace).resolve()
        self._mappings = {key.replace("\\", "/").lower(): list(value) for key, value in (mappings or {}).items()}
        self._index_factory = index_factory or (lambda: IncludeIndex.build(self.workspace))
        self._index: IncludeIndex | None = None

    @classmethod
    def from_settings(cls, settings: ToolingSettings, workspace: Path | str) -> HeaderTargetResolver:
        metaeditor = settings.metaeditor
        include4 = resolve_setting_path(metaeditor.include4_dir, workspace)
        include5 = resolve_setting_path(metaeditor.include5_dir, workspace)
        max_files = settings.compile_target.infer_max_files
        return cls(
            workspace,
            mappings=settings.compile_target.map,
            index_factory=lambda: IncludeIndex.build(workspace, include4, include5, max_files),
        )

    @property
    def index(self) -> IncludeIndex:
        if self._index is None:
            self._index = self._index_factory()
        return self._index

    def invalidate(self) -> None:
        """Drop the include index; it is rebuilt on next use."""
        self._index = None

    def saved_targets(self, header: Path) -> list[Path]:
        """Mapped targets of ``header`` that still exist."""
        saved = self._mappings.get(mapping_key(header, self.workspace), ())
        targets = [(self.workspace / relative.replace("\\", "/")).resolve() for relative in saved]
        valid = [target for target in targets if target.is_file()]
        if saved and not valid:
            logger.info("Saved compile targets for %s no longer exist; inferring", header)
        return valid

    def resolve(self, header: Path) -> list[Path]:
        """Main files for ``header``, empty when none are known."""
        return self.saved_targets(header) or self.index.find_candidate_mains(header)


def header_flavor_fallback(path: Path) -> Flavor:
    """Last-resort flavor for a header: MQL4 if the path mentions it, else MQL5."""
    return Flavor.MQL4 if "mql4" in str(path).lower() else Flavor.MQL5


def resolve_flavor(
    path: Path,
    header_flavor: Callable[[Path], Flavor | None] | None = None,
) -> Flavor | None:
    """Resolve the flavor of a source file.

    Args:
        path: Source file.
        header_flavor: Collaborator deciding header flavor from saved target
            mappings; consulted only for ``.mqh`` files.

    Returns:
        The flavor, or ``None`` for unsupported suffixes.
    """
    suffix = path.suffix.lower()
    flavor = Flavor.from_suffix(suffix)
    if flavor is not None:
        return flavor
    if suffix != HEADER_SUFFIX:
        return None
    if header_flavor is not None:
        resolved = header_flavor(path)
        if resolved is not None:
            return resolved
    return header_flavor_fallback(path)


def resolve_targets(
    paths: Iterable[Path | str],
    header_flavor: Callable[[Path], Flavor | None] | None = None,
    header_resolver: HeaderTargetResolver | None = None,
) -> list[CompileTarget]:
    """Build compile targets, skipping files the compiler does not accept.

    A header is replaced by the main files that include it, each compiled
    with its own flavor. Only when no main file is known is the header
    itself compiled, with a flavor from ``header_flavor`` or its path.

    Args:
        paths: Files to compile, relative paths resolved against the CWD.
        header_flavor: Optional header flavor collaborator.
        header_resolver: Finds the main files for a header.

    Returns:
        Targets in input order without duplicates.
    """
    targets: list[CompileTarget] = []
    seen: set[Path] = set()

    def add(path: Path, flavor: Flavor) -> None:
        if path not in seen:
            seen.add(path)
            targets.append(CompileTarget(path=path, flavor=flavor))

    for raw in paths:
        path = Path(raw).expanduser().resolve()
        if path.suffix.lower() == HEADER_SUFFIX and header_resolver is not None:
            mains = header_resolver.resolve(path)
            if mains:
                logger.info("Compiling %s through %d main file(s)", path.name, len(mains))
                for main in mains:
                    main_flavor = resolve_flavor(main)
                    if main_flavor is not None:
                        add(main, main_flavor)
                continue
            logger.info("No main file includes %s; compiling it directly", path)

        flavor = resolve_flavor(path, header_flavor)
        if flavor is None:
            logger.warning("Skipping %s: not an MQL source file", path)
            continue
        add(path, flavor)
    return targets


__all__ = [
    "CompileTarget",
    "HeaderTargetResolver",
    "header_flavor_fallback",
    "mapping_key",
    "resolve_flavor",
    "resolve_targets",
]
