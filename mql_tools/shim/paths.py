"""Host path to Wine path translation via ``winepath``."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from dataclasses import dataclass
from typing import TYPE_CHECKING

from mql_tools.settings import WINDOWS_DRIVE_RE
from mql_tools.shim.wine import SHIM_QUERY_TIMEOUT_SECONDS

if TYPE_CHECKING:
    from mql_tools.shim.wine import ShimConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TranslationResult:
    """Outcome of a path translation.

    Attributes:
        success: True if the shim returned a translated path.
        path: Translated path on success, the original path otherwise.
        error: Failure description when ``success`` is False.
    """

    success: bool
    path: str
    error: str | None = None


def check_translatable(path: str) -> str | None:
    """Validate a translation input without touching the shim.

    Returns:
        Error message, or ``None`` if the path may be sent to ``winepath``.
    """
    if not path:
        return "Path is empty"
    if WINDOWS_DRIVE_RE.match(path):
        return f"Path is already in Windows format: {path}"
    if not os.path.isabs(path):
        return f"Path is not absolute: {path}"
    return None


class PathTranslator:
    """Converts host-native absolute paths into Wine's Windows paths.

    Example:
        translator = PathTranslator(shim)
        result = await translator.translate("/home/me/MQL5/Experts/Bot.mq5")
        # result.path == "Z:\\home\\me\\MQL5\\Experts\\Bot.mq5"
    """

    def __init__(self, shim: ShimConfig) -> None:
        self._shim = shim

    async def translate(self, path: str) -> TranslationResult:
        """Translate ``path`` with ``<shim> winepath -w``.

        Invalid inputs are rejected before any shim process is started.

        Args:
            path: Host-native absolute path.

        Returns:
            TranslationResult; on failure ``path`` holds the original input.
        """
        rejection = check_translatable(path)
        if rejection is not None:
            return TranslationResult(success=False, path=path, error=rejection)

        try:
            proc = await asyncio.create_subprocess_exec(
                self._shim.binary_path,
                "winepath",
                "-w",
                path,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=dict(self._shim.env) or None,
            )
        except OSError as e:
            return self._failure(path, str(e))

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), SHIM_QUERY_TIMEOUT_SECONDS)
        except TimeoutError:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
            return self._failure(path, f"timed out after {SHIM_QUERY_TIMEOUT_SECONDS:.0f}s")

        translated = stdout.decode(errors="replace").strip()
        if proc.returncode != 0 or not translated:
            detail = stderr.decode(errors="replace").strip() or f"exit code {proc.returncode}"
            return self._failure(path, detail)

        return TranslationResult(success=True, path=translated)

    @staticmethod
    def _failure(path: str, detail: str) -> TranslationResult:
        message = f'[Wine] Failed to convert path "{path}" with winepath: {detail}'
        logger.error(message)
        return TranslationResult(success=False, path=path, error=message)


__all__ = ["PathTranslator", "TranslationResult", "check_translatable"]
