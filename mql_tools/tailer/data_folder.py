"""Terminal data folder inference for the log tailer.

A MetaTrader data folder (``.../MQL5``) contains ``Include``, ``Files`` and
``Logs``. When no include directory is configured the tailer asks an
inference strategy to locate one from the active file or the workspace.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from mql_tools.flavor import Flavor

if TYPE_CHECKING:
    from collections.abc import Sequence

    from mql_tools.settings import MetaEditorSettings

MARKER_DIRS = ("Logs", "Include")


def detect_flavor(
    active_file: Path | str | None = None,
    workspace_folders: Sequence[Path | str] = (),
    metaeditor: MetaEditorSettings | None = None,
) -> Flavor | None:
    """Guess the flavor the user is working with.

    Checks the active file, then workspace folder names, then which include
    directory is configured.

    Returns:
        The flavor, or ``None`` if nothing hints at one.
    """
    if active_file:
        name = str(active_file).lower()
        flavor = Flavor.from_suffix(Path(name).suffix)
        if flavor is not None:
            return flavor
        if "mql4" in name:
            return Flavor.MQL4
        if "mql5" in name:
            return Flavor.MQL5

    for folder in workspace_folders:
        lowered = str(folder).lower()
        if "mql4" in lowered:
            return Flavor.MQL4
        if "mql5" in lowered:
            return Flavor.MQL5

    if metaeditor is not None:
        if metaeditor.include5_dir and not metaeditor.include4_dir:
            return Flavor.MQL5
        if metaeditor.include4_dir and not metaeditor.include5_dir:
            return Flavor.MQL4
    return None


def _looks_like_data_folder(path: Path) -> bool:
    return any((path / marker).exists() for marker in MARKER_DIRS)


def infer_data_folder(
    flavor: Flavor,
    active_file: Path | str | None = None,
    workspace: Path | str | None = None,
) -> Path | None:
    """Locate the ``MQL4``/``MQL5`` data folder.

    Strategy:
        1. Walk up from the active file to a folder named after the flavor
           that contains ``Logs`` or ``Include``.
        2. The workspace itself when named after the flavor.
        3. A flavor-named child of the workspace.
        4. The workspace when it has both ``Logs`` and ``Include``.

    Returns:
        The data folder, or ``None``.
    """
    target = flavor.label

    if active_file:
        for parent in Path(active_file).parents:
            if parent.name.upper() == target and _looks_like_data_folder(parent):
                return parent

    if workspace:
        root = Path(workspace)
        if root.name.upper() == target:
            return root
        child = root / target
        if child.is_dir():
            return child
        if all((root / marker).exists() for marker in MARKER_DIRS):
            return root
    return None


class DataFolderInference:
    """Inference strategy bound to the current editor context.

    Example:
        strategy = DataFolderInference(active_file="/t/MQL5/Experts/Bot.mq5")
        strategy(Flavor.MQL5)  # Path("/t/MQL5")
    """

    def __init__(self, active_file: Path | str | None = None, workspace: Path | str | None = None) -> None:
        self.active_file = active_file
        self.workspace = workspace

    def __call__(self, flavor: Flavor) -> Path | None:
        return infer_data_folder(flavor, self.active_file, self.workspace)


__all__ = ["DataFolderInference", "detect_flavor", "infer_data_folder"]
