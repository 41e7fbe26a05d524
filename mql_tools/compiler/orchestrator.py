"""Compile orchestration.

Drives one compile request per target:
ResolveEnvironment -> ValidatePrerequisites -> Invoke -> AwaitLog -> Parse -> Publish.
Targets in a batch run strictly one after another and a failing target never
stops the batch.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING

from mql_tools.compiler.diagnostics import DiagnosticStore, LinkIndex, group_by_file
from mql_tools.compiler.environment import resolve_environment, validate_prerequisites
from mql_tools.compiler.flags import build_compiler_args
from mql_tools.compiler.invoker import OutcomeStatus, ToolInvoker
from mql_tools.compiler.log_parser import parse_log
from mql_tools.errors import (
    ConfigurationError,
    ErrorReporter,
    LogUnavailableError,
    ToolingError,
    TranslationError,
)
from mql_tools.output import OutputChannel
from mql_tools.shim.paths import PathTranslator

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from pathlib import Path

    from mql_tools.compiler.diagnostics import Diagnostic
    from mql_tools.compiler.environment import ToolEnvironment
    from mql_tools.compiler.invoker import ProcessOutcome
    from mql_tools.compiler.targets import CompileTarget
    from mql_tools.settings import ToolingSettings
    from mql_tools.shim.wine import ShimConfig

logger = logging.getLogger(__name__)

# Log file polling after the compiler exits (~3s total)
LOG_POLL_INTERVAL_SECONDS = 0.1
LOG_POLL_ATTEMPTS = 30
LOG_SETTLE_SECONDS = 0.05

LOG_ENCODING = "utf-16-le"


class CompileMode(StrEnum):
    """Syntax check or full compile."""

    CHECK = "check"
    COMPILE = "compile"

    @property
    def label(self) -> str:
        return "Checking" if self is CompileMode.CHECK else "Compiling"


@dataclass
class CompileOutcome:
    """Result of one target.

    Attributes:
        target: The compiled target.
        display_text: Parsed log text shown in the output channel.
        diagnostics_by_file: Published diagnostics grouped by file.
        has_error: Compiler errors were reported or the target failed fatally.
        failure: Fatal failure that stopped this target, if any.
    """

    target: CompileTarget
    display_text: str = ""
    diagnostics_by_file: dict[str, list[Diagnostic]] = field(default_factory=dict)
    has_error: bool = False
    failure: ToolingError | None = None


@dataclass
class BatchOutcome:
    """Results of a batch in target order."""

    outcomes: list[CompileOutcome] = field(default_factory=list)

    @property
    def has_error(self) -> bool:
        return any(outcome.has_error for outcome in self.outcomes)


class CompileOrchestrator:
    """Compiles targets and publishes their results.

    Settings are read through ``settings_provider`` on every target so edits
    take effect without restarting.

    Example:
        orchestrator = CompileOrchestrator(lambda: load_settings(), output=channel)
        batch = await orchestrator.compile_batch(targets, CompileMode.CHECK)
        if batch.has_error:
            ...
    """

    def __init__(
        self,
        settings_provider: Callable[[], ToolingSettings],
        invoker: ToolInvoker | None = None,
        store: DiagnosticStore | None = None,
        links: LinkIndex | None = None,
        output: OutputChannel | None = None,
        reporter: ErrorReporter | None = None,
        workspace: Path | str | None = None,
        platform: str | None = None,
        translator_factory: Callable[[ShimConfig], PathTranslator] = PathTranslator,
        poll_interval: float = LOG_POLL_INTERVAL_SECONDS,
        poll_attempts: int = LOG_POLL_ATTEMPTS,
        settle_delay: float = LOG_SETTLE_SECONDS,
    ) -> None:
        """Initialize CompileOrchestrator.

        Args:
            settings_provider: Returns the current settings.
            invoker: Process runner.
            store: Diagnostic store results are published into.
            links: Link index replaced on every publish.
            output: Channel for headers, display text and warnings.
            reporter: Failure reporter (defaults to one writing to ``output``).
            workspace: Workspace folder for path settings.
            platform: Host platform override.
            translator_factory: Builds the path translator for a shim.
            poll_interval: Seconds between log existence checks.
            poll_attempts: Number of log existence checks.
            settle_delay: Grace period once a late log appears.
        """
        self._settings_provider = settings_provider
        self._platform = platform
        self._invoker = invoker or ToolInvoker(platform=platform)
        self.store = store or DiagnosticStore()
        self.links = links or LinkIndex()
        self.output = output or OutputChannel("MQL Compiler")
        self._reporter = reporter or ErrorReporter(output=self.output)
        self._workspace = workspace
        self._translator_factory = translator_factory
        self._poll_interval = poll_interval
        self._poll_attempts = poll_attempts
        self._settle_delay = settle_delay

    async def compile_batch(self, targets: Iterable[CompileTarget], mode: CompileMode) -> BatchOutcome:
        """Compile targets sequentially.

        The diagnostic store and the output channel are cleared first.

        Returns:
            BatchOutcome whose error flag is the OR over all targets.
        """
        self.store.clear()
        self.output.clear()
        batch = BatchOutcome()
        for target in targets:
            batch.outcomes.append(await self.compile_target(target, mode))
        logger.info(
            "Batch finished: %d target(s), errors=%s",
            len(batch.outcomes),
            batch.has_error,
            extra={"mode": mode.value},
        )
        return batch

    async def compile_target(self, target: CompileTarget, mode: CompileMode) -> CompileOutcome:
        """Run the full pipeline for one target.

        Fatal failures (configuration, missing log) are reported once and
        recorded on the outcome instead of raised.
        """
        stamp = datetime.now().strftime("%H:%M:%S")
        started = time.monotonic()
        target_name = str(target.path)

        try:
            env = resolve_environment(self._settings_provider(), target.flavor, self._workspace, self._platform)
            validate_prerequisites(env)
        except ConfigurationError as e:
            self._reporter.report(e, target=target_name)
            return CompileOutcome(target=target, has_error=True, failure=e)

        log_path = target.log_path
        self._remove_stale_log(log_path)

        outcome = await self._invoke(env, target, log_path)
        if outcome.stderr_text.strip():
            self.output.warning(f"Stderr: {outcome.stderr_text.strip()}")
        if outcome.status == OutcomeStatus.TIMED_OUT:
            self._reporter.warn(f"[Wine] {outcome.launch_error}. Process killed.")

        try:
            raw = await self._await_log(log_path)
        except OSError as e:
            raw = None
            logger.error("Failed to read log file %s: %s", log_path, e)
        if raw is None:
            error = LogUnavailableError(log_path, outcome.failure_detail())
            self._reporter.report(error, target=target_name, metadata={"status": outcome.status.value})
            return CompileOutcome(target=target, has_error=True, failure=error)

        if env.delete_log_after_read:
            try:
                log_path.unlink()
            except OSError as e:
                self._reporter.warn(f"Failed to remove log file {log_path}: {e}")

        result = parse_log(raw, check_only=mode == CompileMode.CHECK)
        diagnostics_by_file = group_by_file(result.diagnostics)
        for file_path, diagnostics in diagnostics_by_file.items():
            self.store.replace(file_path, diagnostics)
        self.links.replace(result.link_index)

        elapsed = time.monotonic() - started
        self.output.append_line(f"[{stamp}] {mode.label} '{target.name}' [{elapsed:.2f}s]")
        self.output.append(result.display_text)

        logger.info(
            "%s %s: %d diagnostic(s), errors=%s",
            mode.label,
            target.name,
            len(result.diagnostics),
            result.has_error,
            extra={"target": target_name, "elapsed_s": round(elapsed, 3)},
        )
        return CompileOutcome(
            target=target,
            display_text=result.display_text,
            diagnostics_by_file=diagnostics_by_file,
            has_error=result.has_error,
        )

    async def _invoke(self, env: ToolEnvironment, target: CompileTarget, log_path: Path) -> ProcessOutcome:
        if env.shim is None:
            args = build_compiler_args(str(target.path), str(log_path), env.include_directory, env.portable)
            return await self._invoker.run_direct(env.executable_path, args)

        translator = self._translator_factory(env.shim)
        executable = await self._translate(translator, "executable", env.executable_path)
        compile_arg = await self._translate(translator, "compile", str(target.path))
        log_arg = await self._translate(translator, "log", str(log_path))
        include_arg = None
        if env.include_directory:
            include_arg = await self._translate(translator, "include", env.include_directory)

        args = build_compiler_args(compile_arg, log_arg, include_arg, env.portable)
        return await self._invoker.run_via_shim(env.shim, executable, args, translator)

    async def _translate(self, translator: PathTranslator, label: str, path: str) -> str:
        result = await translator.translate(path)
        if result.success:
            return result.path
        self._reporter.report(
            TranslationError(f"[Wine] Path conversion failed for {label} path '{path}'; using original path as fallback"),
            target=path,
            metadata={"detail": result.error},
        )
        return path

    async def _await_log(self, log_path: Path) -> str | None:
        """Wait for the compiler log and decode it, ``None`` if it never appears."""
        found = log_path.exists()
        attempts = 0
        while not found and attempts < self._poll_attempts:
            await asyncio.sleep(self._poll_interval)
            attempts += 1
            found = log_path.exists()
        if not found:
            return None
        if attempts:
            await asyncio.sleep(self._settle_delay)

        data = await asyncio.to_thread(log_path.read_bytes)
        return data.decode(LOG_ENCODING, errors="replace")

    @staticmethod
    def _remove_stale_log(log_path: Path) -> None:
        try:
            log_path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not remove stale log %s: %s", log_path, e)


__all__ = [
    "LOG_POLL_ATTEMPTS",
    "LOG_POLL_INTERVAL_SECONDS",
    "BatchOutcome",
    "CompileMode",
    "CompileOrchestrator",
    "CompileOutcome",
]
