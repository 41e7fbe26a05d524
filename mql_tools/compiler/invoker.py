"""External compiler process invocation.

Runs MetaEditor directly on Windows or through ``<shim> cmd /c <script>``
on macOS/Linux. Every invocation produces exactly one ProcessOutcome.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import signal
import sys
import tempfile
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING

from mql_tools.compiler.flags import format_command_line

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from mql_tools.shim.paths import PathTranslator
    from mql_tools.shim.wine import ShimConfig

logger = logging.getLogger(__name__)

# Seconds between SIGTERM and SIGKILL on shim timeout
TERMINATE_GRACE_SECONDS = 2.0

SCRIPT_PREFIX = "mql_compile_"
SCRIPT_SUFFIX = ".bat"


class OutcomeStatus(StrEnum):
    """How a compiler process ended."""

    EXITED = "exited"
    LAUNCH_FAILED = "launch_failed"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class ProcessOutcome:
    """Result of one compiler invocation.

    Attributes:
        status: Exit, launch failure or timeout.
        exit_code: Process exit code when it ran to completion.
        launch_error: Why the process could not start (or was killed).
        stderr_text: Captured standard error.
    """

    status: OutcomeStatus
    exit_code: int | None = None
    launch_error: str | None = None
    stderr_text: str = ""

    @property
    def launched(self) -> bool:
        return self.status != OutcomeStatus.LAUNCH_FAILED

    def failure_detail(self) -> str | None:
        """Launch/exit problem worth showing next to a missing log."""
        if self.status == OutcomeStatus.LAUNCH_FAILED:
            return self.launch_error
        if self.status == OutcomeStatus.TIMED_OUT:
            return self.launch_error or "process timed out"
        if self.exit_code:
            detail = f"exit code {self.exit_code}"
            return f"{detail}: {self.stderr_text.strip()}" if self.stderr_text.strip() else detail
        return None


@contextlib.contextmanager
def temporary_script(command_line: str, directory: str | None = None) -> Iterator[Path]:
    """Write ``command_line`` to a temporary batch script, removed on exit.

    Args:
        command_line: Full command line run by the script.
        directory: Where to create the script (system temp dir by default).

    Yields:
        Path of the script.
    """
    fd, name = tempfile.mkstemp(prefix=SCRIPT_PREFIX, suffix=SCRIPT_SUFFIX, dir=directory)
    path = Path(name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\r\n") as f:
            f.write("@echo off\n")
            f.write(command_line + "\n")
        yield path
    finally:
        with contextlib.suppress(FileNotFoundError):
            path.unlink()


async def terminate_process(
    proc: asyncio.subprocess.Process,
    grace_seconds: float = TERMINATE_GRACE_SECONDS,
) -> None:
    """Send SIGTERM, escalating to SIGKILL if the process outlives the grace period."""
    if proc.returncode is not None:
        return
    with contextlib.suppress(ProcessLookupError):
        proc.send_signal(signal.SIGTERM)
    try:
        await asyncio.wait_for(proc.wait(), grace_seconds)
    except TimeoutError:
        logger.warning("Process %s ignored SIGTERM, sending SIGKILL", proc.pid)
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        await proc.wait()


class ToolInvoker:
    """Spawns the compiler and collects its outcome.

    Direct mode passes pre-quoted arguments through untouched: as an argv
    list on POSIX and as a raw command line on Windows. Shim mode writes the
    command line into a temporary script and runs it with ``cmd /c`` under
    the shim, subject to the shim timeout.

    Example:
        invoker = ToolInvoker()
        outcome = await invoker.run_direct("C:\\MT5\\metaeditor64.exe", args)
        if outcome.status == OutcomeStatus.EXITED:
            ...
    """

    def __init__(
        self,
        platform: str | None = None,
        grace_seconds: float = TERMINATE_GRACE_SECONDS,
        script_dir: str | None = None,
    ) -> None:
        """Initialize ToolInvoker.

        Args:
            platform: Host platform override (defaults to ``sys.platform``).
            grace_seconds: SIGTERM to SIGKILL grace period.
            script_dir: Directory for temporary shim scripts.
        """
        self._platform = platform or sys.platform
        self._grace_seconds = grace_seconds
        self._script_dir = script_dir

    async def run_direct(self, executable: str, args: Sequence[str]) -> ProcessOutcome:
        """Run the compiler without a shim. No timeout is applied."""
        logger.debug("Running %s %s", executable, " ".join(args))
        try:
            if self._platform == "win32":
                proc = await asyncio.create_subprocess_shell(
                    format_command_line(executable, args),
                    stdout=asyncio.subprocess.DEVNULL,
                    stderr=asyncio.subprocess.PIPE,
                )
            else:
                proc = await asyncio.create_subprocess_exec(
                    executable,
                    *args,
                    stdout=asyncio.subprocess.DEVNULL,
                    stderr=asyncio.subprocess.PIPE,
                )
        except OSError as e:
            return self._launch_failed(executable, e)

        _, stderr = await proc.communicate()
        return self._exited(proc, stderr)

    async def run_via_shim(
        self,
        shim: ShimConfig,
        executable: str,
        args: Sequence[str],
        translator: PathTranslator | None = None,
    ) -> ProcessOutcome:
        """Run the compiler through ``<shim> cmd /c <script>``.

        Args:
            shim: Shim parameters (binary, env, timeout).
            executable: Compiler path in the shim's Windows namespace.
            args: Pre-quoted compiler arguments.
            translator: Translates the script path; untranslated if omitted
                or if translation fails.

        Returns:
            ProcessOutcome; TIMED_OUT when the shim timeout expired.
        """
        command_line = format_command_line(executable, args)
        with temporary_script(command_line, self._script_dir) as script:
            script_path = str(script)
            if translator is not None:
                result = await translator.translate(script_path)
                script_path = result.path

            logger.debug("Running %s cmd /c %s: %s", shim.binary_path, script_path, command_line)
            try:
                proc = await asyncio.create_subprocess_exec(
                    shim.binary_path,
                    "cmd",
                    "/c",
                    script_path,
                    stdout=asyncio.subprocess.DEVNULL,
                    stderr=asyncio.subprocess.PIPE,
                    env=dict(shim.env) or None,
                )
            except OSError as e:
                return self._launch_failed(shim.binary_path, e)

            try:
                _, stderr = await asyncio.wait_for(proc.communicate(), shim.timeout_seconds)
            except TimeoutError:
                await terminate_process(proc, self._grace_seconds)
                message = f"Wine process timed out after {shim.timeout_seconds:g}s"
                logger.error(message)
                return ProcessOutcome(
                    status=OutcomeStatus.TIMED_OUT,
                    exit_code=proc.returncode,
                    launch_error=message,
                )

            return self._exited(proc, stderr)

    @staticmethod
    def _launch_failed(executable: str, error: OSError) -> ProcessOutcome:
        message = f"Failed to start {executable}: {error}"
        logger.error(message)
        return ProcessOutcome(status=OutcomeStatus.LAUNCH_FAILED, launch_error=message)

    @staticmethod
    def _exited(proc: asyncio.subprocess.Process, stderr: bytes | None) -> ProcessOutcome:
        text = (stderr or b"").decode(errors="replace")
        if proc.returncode:
            logger.info("Compiler exited with code %s", proc.returncode)
        return ProcessOutcome(status=OutcomeStatus.EXITED, exit_code=proc.returncode, stderr_text=text)


__all__ = [
    "TERMINATE_GRACE_SECONDS",
    "OutcomeStatus",
    "ProcessOutcome",
    "ToolInvoker",
    "temporary_script",
    "terminate_process",
]
