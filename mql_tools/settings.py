"""Tooling settings using Pydantic v2 models.

Settings are read from a YAML file. The file path comes from the CLI
``--config`` option or the ``MQL_TOOLS_CONFIG`` environment variable; when
neither is given the defaults below apply.

Example file:

    metaeditor:
      metaeditor5_dir: /home/me/.wine/drive_c/Program Files/MetaTrader 5/metaeditor64.exe
      include5_dir: ${workspaceFolder}/MQL5/Include
    shim:
      enabled: true
      binary: wine64
      timeout_ms: 60000
    tailer:
      mode: livelog
"""

from __future__ import annotations

import os
import re
from enum import StrEnum
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from mql_tools.errors import ConfigurationError
from mql_tools.flavor import Flavor

# Environment variable naming the settings file
ENV_CONFIG_PATH = "MQL_TOOLS_CONFIG"

WORKSPACE_VARIABLE = "${workspaceFolder}"

# Drive-letter paths (C:\..., D:/...)
WINDOWS_DRIVE_RE = re.compile(r"^[A-Za-z]:[/\\]")


class TailMode(StrEnum):
    """Log sourcing strategy of the tailer."""

    LIVE = "livelog"  # Files/LiveLog.txt written by LiveLog.mqh, UTF-8
    STANDARD = "standard"  # Logs/YYYYMMDD.log journal, UTF-16-LE


class MetaEditorSettings(BaseModel):
    """Compiler locations per flavor.

    Attributes:
        metaeditor4_dir: Path to the MQL4 MetaEditor executable.
        metaeditor5_dir: Path to the MQL5 MetaEditor executable.
        include4_dir: Optional MQL4 include directory.
        include5_dir: Optional MQL5 include directory.
        portable4: Pass the portable switch for MQL4.
        portable5: Pass the portable switch for MQL5.
    """

    model_config = ConfigDict(extra="forbid")

    metaeditor4_dir: str = ""
    metaeditor5_dir: str = ""
    include4_dir: str = ""
    include5_dir: str = ""
    portable4: bool = False
    portable5: bool = False

    def executable_for(self, flavor: Flavor) -> str:
        return self.metaeditor4_dir if flavor == Flavor.MQL4 else self.metaeditor5_dir

    def include_for(self, flavor: Flavor) -> str:
        return self.include4_dir if flavor == Flavor.MQL4 else self.include5_dir

    def portable_for(self, flavor: Flavor) -> bool:
        return self.portable4 if flavor == Flavor.MQL4 else self.portable5

    @staticmethod
    def setting_name(kind: str, flavor: Flavor) -> str:
        """Dotted setting name for error messages, e.g. ``metaeditor.include5_dir``."""
        digit = "4" if flavor == Flavor.MQL4 else "5"
        return f"metaeditor.{kind}{digit}_dir"


class ShimSettings(BaseModel):
    """Compatibility shim (Wine) settings for non-Windows hosts."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = False
    binary: str = Field(default="wine64", min_length=1)
    prefix: str = ""
    timeout_ms: int = Field(default=60_000, gt=0)


class TailerSettings(BaseModel):
    """Runtime log tailer settings."""

    model_config = ConfigDict(extra="forbid")

    mode: TailMode = TailMode.LIVE
    poll_interval_s: float = Field(default=5.0, gt=0)


class LogFileSettings(BaseModel):
    """Compiler log file handling."""

    model_config = ConfigDict(extra="forbid")

    delete_after_read: bool = False


class CompileTargetSettings(BaseModel):
    """Which main files are compiled when a header is requested.

    Attributes:
        map: Saved header -> main file mappings, workspace-relative paths.
            Keys are lower-cased with forward slashes.
        infer_max_files: Upper bound on files scanned for the include index.
    """

    model_config = ConfigDict(extra="forbid")

    map: dict[str, list[str]] = Field(default_factory=dict)
    infer_max_files: int = Field(default=5000, gt=0)


class ToolingSettings(BaseModel):
    """Complete settings document."""

    model_config = ConfigDict(extra="forbid")

    metaeditor: MetaEditorSettings = Field(default_factory=MetaEditorSettings)
    shim: ShimSettings = Field(default_factory=ShimSettings)
    tailer: TailerSettings = Field(default_factory=TailerSettings)
    log_file: LogFileSettings = Field(default_factory=LogFileSettings)
    compile_target: CompileTargetSettings = Field(default_factory=CompileTargetSettings)


def _format_validation_errors(error: ValidationError) -> list[str]:
    """Format Pydantic validation errors into readable messages."""
    messages = []
    for err in error.errors():
        loc = ".".join(str(x) for x in err["loc"])
        messages.append(f"{loc}: {err['msg']}")
    return messages


def parse_settings_string(yaml_content: str, source: Path | str | None = None) -> ToolingSettings:
    """Parse settings from a YAML string.

    Args:
        yaml_content: YAML content.
        source: File the content came from, for error messages.

    Returns:
        Validated settings.

    Raises:
        ConfigurationError: If the YAML is malformed or fails validation.
    """
    where = f" in {source}" if source else ""
    try:
        data = yaml.safe_load(yaml_content)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML syntax{where}: {e}", action=None) from e

    if data is None:
        return ToolingSettings()
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Expected YAML mapping{where}, got {type(data).__name__}",
            action=None,
        )

    try:
        return ToolingSettings.model_validate(data)
    except ValidationError as e:
        details = "; ".join(_format_validation_errors(e))
        raise ConfigurationError(f"Invalid settings{where}: {details}", action=None) from e


def load_settings(path: Path | str | None = None) -> ToolingSettings:
    """Load settings from a YAML file.

    Args:
        path: Settings file. Falls back to ``$MQL_TOOLS_CONFIG``; defaults apply
            when neither is set.

    Returns:
        Validated settings.

    Raises:
        ConfigurationError: If the file is missing or invalid.
    """
    if path is None:
        env_path = os.getenv(ENV_CONFIG_PATH)
        if not env_path:
            return ToolingSettings()
        path = env_path

    settings_path = Path(path)
    if not settings_path.exists():
        raise ConfigurationError(f"Settings file not found: {settings_path}", path=settings_path, action=None)
    return parse_settings_string(settings_path.read_text(encoding="utf-8"), source=settings_path)


def resolve_setting_path(raw: str, workspace: Path | str | None = None) -> str:
    """Expand ``${workspaceFolder}`` and resolve relative paths against the workspace.

    Args:
        raw: Path as written in the settings.
        workspace: Workspace folder, if any.

    Returns:
        The resolved path, or an empty string for an empty setting.
    """
    if not raw:
        return ""
    workspace_str = str(workspace) if workspace else ""
    expanded = raw.replace(WORKSPACE_VARIABLE, workspace_str) if WORKSPACE_VARIABLE in raw else raw
    expanded = os.path.expanduser(expanded)
    if WINDOWS_DRIVE_RE.match(expanded):
        return expanded
    if os.path.isabs(expanded):
        return os.path.normpath(expanded)
    if not workspace_str:
        return expanded
    return os.path.normpath(os.path.join(workspace_str, expanded))


__all__ = [
    "ENV_CONFIG_PATH",
    "CompileTargetSettings",
    "LogFileSettings",
    "MetaEditorSettings",
    "ShimSettings",
    "TailMode",
    "TailerSettings",
    "ToolingSettings",
    "WINDOWS_DRIVE_RE",
    "load_settings",
    "parse_settings_string",
    "resolve_setting_path",
]
