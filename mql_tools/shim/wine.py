"""Wine compatibility shim configuration and setup checks.

MetaEditor is a Windows binary. On macOS/Linux it runs under Wine, which
needs its own binary, an optional ``WINEPREFIX`` and a process timeout.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from mql_tools.settings import WINDOWS_DRIVE_RE

if TYPE_CHECKING:
    from collections.abc import Mapping

    from mql_tools.settings import ShimSettings

logger = logging.getLogger(__name__)

# Timeout for quick shim queries (version check, winepath)
SHIM_QUERY_TIMEOUT_SECONDS = 10.0


@dataclass(frozen=True)
class ShimConfig:
    """Resolved shim parameters for one compile call.

    Attributes:
        binary_path: Wine executable (``wine64``, ``/opt/homebrew/bin/wine``...).
        prefix_path: WINEPREFIX, empty when the default prefix is used.
        timeout_ms: Wall-clock limit for shim-mediated compiler runs.
        env: Full environment for shim processes.
    """

    binary_path: str
    prefix_path: str = ""
    timeout_ms: int = 60_000
    env: Mapping[str, str] = field(default_factory=dict)

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000

    @classmethod
    def from_settings(cls, settings: ShimSettings) -> ShimConfig:
        return cls(
            binary_path=settings.binary,
            prefix_path=settings.prefix,
            timeout_ms=settings.timeout_ms,
            env=shim_env(settings.prefix),
        )


@dataclass
class ShimValidation:
    """Result of a shim setup check."""

    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    version: str | None = None


def shim_env(prefix: str = "") -> dict[str, str]:
    """Copy of the current environment with ``WINEPREFIX`` set if configured."""
    env = dict(os.environ)
    if prefix:
        env["WINEPREFIX"] = prefix
    return env


def shim_active(settings: ShimSettings, platform: str | None = None) -> bool:
    """Shim is used only on non-Windows hosts when explicitly enabled."""
    platform = platform or sys.platform
    return platform != "win32" and settings.enabled


def validate_shim_path(path: str) -> str | None:
    """Check that an executable path is host-native for shim mode.

    Returns:
        Error message, or ``None`` if the path is usable.
    """
    if not path:
        return "Path is empty or invalid"
    if WINDOWS_DRIVE_RE.match(path):
        return (
            f'Wine mode requires Unix-style paths. Got "{path}". '
            'Use something like "/Users/you/.wine/drive_c/..." instead of "C:\\..."'
        )
    return None


async def check_shim_installed(binary: str, prefix: str = "") -> tuple[bool, str]:
    """Run ``<binary> --version``.

    Returns:
        ``(True, version)`` when Wine answered, ``(False, error message)`` otherwise.
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            binary,
            "--version",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=shim_env(prefix),
        )
    except FileNotFoundError:
        return False, (
            f'Wine binary not found at "{binary}". '
            "Please install Wine or update the shim.binary setting."
        )
    except OSError as e:
        return False, f"Wine check failed: {e}"

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), SHIM_QUERY_TIMEOUT_SECONDS)
    except TimeoutError:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        await proc.wait()
        return False, "Wine check failed: timed out"

    if proc.returncode != 0:
        detail = stderr.decode(errors="replace").strip() or f"exit code {proc.returncode}"
        return False, f"Wine check failed: {detail}"
    return True, stdout.decode(errors="replace").strip()


async def validate_shim_setup(settings: ShimSettings, executable_path: str = "") -> ShimValidation:
    """Check Wine installation, prefix and the MetaEditor path.

    Args:
        settings: Shim settings.
        executable_path: MetaEditor executable to check, if any.

    Returns:
        ShimValidation with collected errors and warnings.
    """
    result = ShimValidation(valid=True)

    installed, detail = await check_shim_installed(settings.binary, settings.prefix)
    if installed:
        result.version = detail
        logger.info("Found Wine: %s", detail)
    else:
        result.errors.append(detail)

    if settings.prefix:
        prefix = Path(settings.prefix)
        if not prefix.exists():
            result.errors.append(f'Wine prefix not found: "{prefix}"')
        elif not (prefix / "system.reg").exists():
            result.warnings.append(
                f'Wine prefix may not be initialized: "{prefix}" (system.reg not found)'
            )

    if executable_path:
        path_error = validate_shim_path(executable_path)
        if path_error:
            result.errors.append(path_error)
        if not Path(executable_path).exists():
            result.errors.append(f'MetaEditor not found at: "{executable_path}"')

    result.valid = not result.errors
    return result


__all__ = [
    "ShimConfig",
    "ShimValidation",
    "check_shim_installed",
    "shim_active",
    "shim_env",
    "validate_shim_path",
    "validate_shim_setup",
]
