"""Per-call compiler environment resolution and prerequisite checks."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from mql_tools.errors import ConfigurationError
from mql_tools.settings import MetaEditorSettings, resolve_setting_path
from mql_tools.shim.wine import ShimConfig, shim_active, validate_shim_path

if TYPE_CHECKING:
    from mql_tools.flavor import Flavor
    from mql_tools.settings import ToolingSettings


@dataclass(frozen=True)
class ToolEnvironment:
    """Everything needed to run the compiler for one flavor.

    Resolved fresh for every compile call so settings changes apply
    immediately.

    Attributes:
        flavor: Dialect this environment was resolved for.
        executable_path: MetaEditor executable.
        include_directory: Include directory, ``None`` if not configured.
        portable: Whether the portable switch is passed.
        shim: Wine parameters when running under the shim.
        delete_log_after_read: Remove the compiler log once parsed.
    """

    flavor: Flavor
    executable_path: str
    include_directory: str | None = None
    portable: bool = False
    shim: ShimConfig | None = None
    delete_log_after_read: bool = False

    @property
    def uses_shim(self) -> bool:
        return self.shim is not None


def resolve_environment(
    settings: ToolingSettings,
    flavor: Flavor,
    workspace: Path | str | None = None,
    platform: str | None = None,
) -> ToolEnvironment:
    """Pick executable, include directory and portable flag for a flavor.

    Args:
        settings: Current settings.
        flavor: Target flavor.
        workspace: Workspace folder for ``${workspaceFolder}`` and relative paths.
        platform: Host platform override (defaults to ``sys.platform``).

    Returns:
        Immutable ToolEnvironment.
    """
    metaeditor = settings.metaeditor
    executable = resolve_setting_path(metaeditor.executable_for(flavor), workspace)
    include = resolve_setting_path(metaeditor.include_for(flavor), workspace)
    shim = ShimConfig.from_settings(settings.shim) if shim_active(settings.shim, platform) else None
    return ToolEnvironment(
        flavor=flavor,
        executable_path=executable,
        include_directory=include or None,
        portable=metaeditor.portable_for(flavor),
        shim=shim,
        delete_log_after_read=settings.log_file.delete_after_read,
    )


def validate_prerequisites(env: ToolEnvironment) -> None:
    """Check that configured paths exist before anything is spawned.

    Raises:
        ConfigurationError: Naming the first missing or unusable path.
    """
    executable_setting = MetaEditorSettings.setting_name("metaeditor", env.flavor)
    if env.shim is not None and env.executable_path:
        path_error = validate_shim_path(env.executable_path)
        if path_error:
            raise ConfigurationError(
                f"Wine Configuration Error: {path_error}",
                setting=executable_setting,
                path=env.executable_path,
            )

    if not env.executable_path or not Path(env.executable_path).exists():
        shown = env.executable_path or "(not set)"
        raise ConfigurationError(
            f"MetaEditor for {env.flavor.label} not found: {shown}. "
            f"Check the {executable_setting} setting.",
            setting=executable_setting,
            path=env.executable_path,
        )

    if env.include_directory and not Path(env.include_directory).exists():
        include_setting = MetaEditorSettings.setting_name("include", env.flavor)
        raise ConfigurationError(
            f"Include directory for {env.flavor.label} not found: {env.include_directory}. "
            f"Check the {include_setting} setting.",
            setting=include_setting,
            path=env.include_directory,
        )


__all__ = ["ToolEnvironment", "resolve_environment", "validate_prerequisites"]
