"""Tests for CompileOrchestrator."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from mql_tools.compiler.invoker import OutcomeStatus, ProcessOutcome
from mql_tools.compiler.orchestrator import CompileMode, CompileOrchestrator
from mql_tools.compiler.targets import CompileTarget
from mql_tools.errors import ConfigurationError, ErrorCategory, ErrorReporter, LogUnavailableError
from mql_tools.flavor import Flavor
from mql_tools.shim.paths import TranslationResult

from tests.fixtures.compiler_logs import CLEAN_COMPILE_LOG, SAMPLE_CHECK_LOG, write_utf16_log

if TYPE_CHECKING:
    from collections.abc import Sequence

    from mql_tools.output import OutputChannel
    from mql_tools.shim.wine import ShimConfig

BOT = "C:\\MT5\\MQL5\\Experts\\Bot.mq5"


def flag_value(args: Sequence[str], flag: str) -> str:
    for arg in args:
        if arg.startswith(flag):
            return arg[len(flag) :].strip('"')
    raise AssertionError(f"{flag} not in {args}")


def host_path(raw: str) -> Path:
    """Undo ``wine_path`` so the fake compiler writes where the host expects."""
    if raw.startswith("Z:"):
        return Path(raw[2:].replace("\\", "/"))
    return Path(raw)


def wine_path(path: Path | str) -> str:
    return "Z:" + str(path).replace("/", "\\")


class FakeInvoker:
    """Records calls and writes a prepared log where the compiler would.

    With ``delay`` the log is written that many seconds after the call
    returns, as a compiler that exits before flushing its log would.
    """

    def __init__(
        self,
        logs: dict[str, str] | None = None,
        outcome: ProcessOutcome | None = None,
        delay: float | None = None,
    ) -> None:
        self.logs = logs or {}
        self.outcome = outcome or ProcessOutcome(status=OutcomeStatus.EXITED, exit_code=0)
        self.delay = delay
        self.calls: list[tuple[str, list[str]]] = []
        self.shim_calls: list[tuple[str, list[str]]] = []
        self.translators: list[object] = []
        self.log_present_on_return: list[bool] = []

    def _write(self, args: Sequence[str]) -> None:
        log_path = host_path(flag_value(args, "/log:"))
        content = self.logs.get(log_path.stem)
        if content is not None:
            if self.delay is None:
                write_utf16_log(log_path, content)
            else:
                asyncio.get_running_loop().call_later(self.delay, write_utf16_log, log_path, content)
        self.log_present_on_return.append(log_path.exists())

    async def run_direct(self, executable: str, args: Sequence[str]) -> ProcessOutcome:
        self.calls.append((executable, list(args)))
        self._write(args)
        return self.outcome

    async def run_via_shim(self, shim: ShimConfig, executable: str, args: Sequence[str], translator=None):
        self.shim_calls.append((executable, list(args)))
        self.translators.append(translator)
        self._write(args)
        return self.outcome


class FailingTranslator:
    def __init__(self, shim: ShimConfig) -> None:
        self.shim = shim

    async def translate(self, path: str) -> TranslationResult:
        return TranslationResult(success=False, path=path, error="winepath missing")


class MappingTranslator:
    """Translates host paths onto the ``Z:`` drive."""

    def __init__(self, shim: ShimConfig) -> None:
        self.shim = shim
        self.requests: list[str] = []

    async def translate(self, path: str) -> TranslationResult:
        self.requests.append(path)
        return TranslationResult(success=True, path=wine_path(path))


@pytest.fixture
def sources(tmp_path: Path) -> Path:
    folder = tmp_path / "Experts"
    folder.mkdir()
    return folder


@pytest.fixture
def settings_for(make_settings, metaeditor_exe: Path):
    def _make(**sections):
        sections.setdefault("metaeditor", {"metaeditor5_dir": str(metaeditor_exe)})
        return make_settings(**sections)

    return _make


def make_orchestrator(settings, invoker, output: OutputChannel, **kwargs) -> CompileOrchestrator:
    kwargs.setdefault("reporter", ErrorReporter(output=output))
    kwargs.setdefault("poll_interval", 0.01)
    kwargs.setdefault("poll_attempts", 3)
    kwargs.setdefault("settle_delay", 0.0)
    provider = kwargs.pop("settings_provider", lambda: settings)
    return CompileOrchestrator(provider, invoker=invoker, output=output, platform="linux", **kwargs)


def target(folder: Path, name: str) -> CompileTarget:
    return CompileTarget(path=folder / name, flavor=Flavor.MQL5)


class TestCompileBatch:
    """Tests for batch compilation."""

    @pytest.mark.asyncio
    async def test_failing_target_does_not_stop_batch(self, settings_for, sources, output):
        invoker = FakeInvoker(logs={"First": SAMPLE_CHECK_LOG, "Second": CLEAN_COMPILE_LOG})
        orchestrator = make_orchestrator(settings_for(), invoker, output)

        batch = await orchestrator.compile_batch(
            [target(sources, "First.mq5"), target(sources, "Second.mq5")], CompileMode.CHECK
        )

        assert len(invoker.calls) == 2
        assert [o.has_error for o in batch.outcomes] == [True, False]
        assert batch.has_error
        assert [d.code for d in orchestrator.store.get(BOT)] == ["256", "43"]
        assert "[Error] Result: 1 errors, 1 warnings, 120 msec elapsed" in output.lines
        headers = [line for line in output.lines if "Checking '" in line]
        assert len(headers) == 2
        assert headers[0].endswith("s]")
        assert "'First.mq5'" in headers[0]

    @pytest.mark.asyncio
    async def test_store_and_output_cleared_per_batch(self, settings_for, sources, output):
        invoker = FakeInvoker(logs={"Bot": SAMPLE_CHECK_LOG})
        orchestrator = make_orchestrator(settings_for(), invoker, output)
        await orchestrator.compile_batch([target(sources, "Bot.mq5")], CompileMode.CHECK)
        assert list(orchestrator.store.snapshot()) == [BOT]

        invoker.logs["Bot"] = CLEAN_COMPILE_LOG
        batch = await orchestrator.compile_batch([target(sources, "Bot.mq5")], CompileMode.COMPILE)

        assert not batch.has_error
        assert len(orchestrator.store) == 0
        assert "Checking" not in output.text
        assert "Compiling 'Bot.mq5'" in output.text

    @pytest.mark.asyncio
    async def test_link_index_replaced(self, settings_for, sources, output):
        invoker = FakeInvoker(logs={"Bot": SAMPLE_CHECK_LOG})
        orchestrator = make_orchestrator(settings_for(), invoker, output)

        await orchestrator.compile_batch([target(sources, "Bot.mq5")], CompileMode.CHECK)
        assert "'Ordersend' - undeclared identifier (12,5)" in orchestrator.links

        invoker.logs["Bot"] = CLEAN_COMPILE_LOG
        await orchestrator.compile_batch([target(sources, "Bot.mq5")], CompileMode.CHECK)
        assert "'Ordersend' - undeclared identifier (12,5)" not in orchestrator.links

    @pytest.mark.asyncio
    async def test_direct_args(self, settings_for, sources, output, tmp_path, metaeditor_exe):
        include = tmp_path / "MQL5"
        include.mkdir()
        settings = settings_for(
            metaeditor={"metaeditor5_dir": str(metaeditor_exe), "include5_dir": str(include), "portable5": True}
        )
        invoker = FakeInvoker(logs={"Bot": CLEAN_COMPILE_LOG})

        await make_orchestrator(settings, invoker, output).compile_batch(
            [target(sources, "Bot.mq5")], CompileMode.COMPILE
        )

        executable, args = invoker.calls[0]
        assert executable == str(metaeditor_exe)
        assert args == [
            f'/compile:"{sources / "Bot.mq5"}"',
            f'/log:"{sources / "Bot.log"}"',
            f'/inc:"{include}"',
            "/portable",
        ]


class TestFailures:
    """Tests for per-target failures."""

    @pytest.mark.asyncio
    async def test_configuration_error_never_spawns(self, make_settings, sources, output):
        invoker = FakeInvoker(logs={"Bot": CLEAN_COMPILE_LOG})
        reporter = ErrorReporter(output=output)
        orchestrator = make_orchestrator(make_settings(), invoker, output, reporter=reporter)

        batch = await orchestrator.compile_batch([target(sources, "Bot.mq5")], CompileMode.CHECK)

        assert invoker.calls == []
        assert batch.has_error
        assert isinstance(batch.outcomes[0].failure, ConfigurationError)
        assert reporter.notices[0].category == ErrorCategory.CONFIGURATION
        assert reporter.notices[0].setting == "metaeditor.metaeditor5_dir"

    @pytest.mark.asyncio
    async def test_missing_log_reports_launch_detail(self, settings_for, sources, output):
        invoker = FakeInvoker(
            outcome=ProcessOutcome(status=OutcomeStatus.EXITED, exit_code=1, stderr_text="boom")
        )
        reporter = ErrorReporter(output=output)
        orchestrator = make_orchestrator(settings_for(), invoker, output, reporter=reporter)

        batch = await orchestrator.compile_batch([target(sources, "Bot.mq5")], CompileMode.CHECK)

        failure = batch.outcomes[0].failure
        assert isinstance(failure, LogUnavailableError)
        assert failure.launch_error == "exit code 1: boom"
        assert "[Warning] Stderr: boom" in output.lines
        assert "[Error] Launch error: exit code 1: boom" in output.lines
        assert f"[Error] Log file not found at: {sources / 'Bot.log'}" in output.lines
        assert reporter.notices[0].category == ErrorCategory.LOG_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_stale_log_not_parsed(self, settings_for, sources, output):
        write_utf16_log(sources / "Bot.log", SAMPLE_CHECK_LOG)
        orchestrator = make_orchestrator(settings_for(), FakeInvoker(), output)

        batch = await orchestrator.compile_batch([target(sources, "Bot.mq5")], CompileMode.CHECK)

        assert isinstance(batch.outcomes[0].failure, LogUnavailableError)
        assert len(orchestrator.store) == 0

    @pytest.mark.asyncio
    async def test_timeout_warns(self, settings_for, sources, output):
        invoker = FakeInvoker(
            outcome=ProcessOutcome(status=OutcomeStatus.TIMED_OUT, launch_error="Wine process timed out after 1s")
        )
        orchestrator = make_orchestrator(settings_for(), invoker, output)

        await orchestrator.compile_batch([target(sources, "Bot.mq5")], CompileMode.CHECK)

        assert "[Warning] [Wine] Wine process timed out after 1s. Process killed." in output.lines

    @pytest.mark.asyncio
    async def test_delete_after_read(self, settings_for, sources, output):
        settings = settings_for(log_file={"delete_after_read": True})
        orchestrator = make_orchestrator(settings, FakeInvoker(logs={"Bot": CLEAN_COMPILE_LOG}), output)

        batch = await orchestrator.compile_batch([target(sources, "Bot.mq5")], CompileMode.CHECK)

        assert not batch.has_error
        assert not (sources / "Bot.log").exists()

    @pytest.mark.asyncio
    async def test_log_kept_by_default(self, settings_for, sources, output):
        orchestrator = make_orchestrator(settings_for(), FakeInvoker(logs={"Bot": CLEAN_COMPILE_LOG}), output)
        await orchestrator.compile_batch([target(sources, "Bot.mq5")], CompileMode.CHECK)
        assert (sources / "Bot.log").exists()


class TestLogWait:
    """Tests for waiting on a log written after the compiler returns."""

    @pytest.mark.asyncio
    async def test_late_log_is_parsed(self, settings_for, sources, output):
        invoker = FakeInvoker(logs={"Bot": SAMPLE_CHECK_LOG}, delay=0.05)
        orchestrator = make_orchestrator(settings_for(), invoker, output, poll_attempts=100)

        batch = await orchestrator.compile_batch([target(sources, "Bot.mq5")], CompileMode.CHECK)

        assert invoker.log_present_on_return == [False]
        assert batch.outcomes[0].failure is None
        assert batch.has_error
        assert [d.code for d in orchestrator.store.get(BOT)] == ["256", "43"]
        assert "[Error] Result: 1 errors, 1 warnings, 120 msec elapsed" in output.lines

    @pytest.mark.asyncio
    async def test_settings_read_once_per_target(self, settings_for, sources, output):
        settings = settings_for(log_file={"delete_after_read": True})
        reads = []

        def provider():
            reads.append(1)
            if len(reads) == 2:
                raise ConfigurationError("settings file became invalid")
            return settings

        invoker = FakeInvoker(logs={"First": CLEAN_COMPILE_LOG, "Second": CLEAN_COMPILE_LOG})
        orchestrator = make_orchestrator(settings, invoker, output, settings_provider=provider)

        batch = await orchestrator.compile_batch(
            [target(sources, "First.mq5"), target(sources, "Second.mq5")], CompileMode.CHECK
        )

        assert len(reads) == 2
        assert not (sources / "First.log").exists()
        assert batch.outcomes[0].failure is None
        assert isinstance(batch.outcomes[1].failure, ConfigurationError)
        assert len(invoker.calls) == 1


class TestShimMode:
    """Tests for shim-mediated compiles."""

    @pytest.mark.asyncio
    async def test_translation_failure_falls_back(self, settings_for, sources, output):
        settings = settings_for(shim={"enabled": True})
        invoker = FakeInvoker(logs={"Bot": CLEAN_COMPILE_LOG})
        orchestrator = make_orchestrator(settings, invoker, output, translator_factory=FailingTranslator)

        batch = await orchestrator.compile_batch([target(sources, "Bot.mq5")], CompileMode.CHECK)

        assert not batch.has_error
        assert invoker.calls == []
        _, args = invoker.shim_calls[0]
        assert args[0] == f'/compile:"{sources / "Bot.mq5"}"'
        warnings = [line for line in output.lines if "Path conversion failed" in line]
        assert any("for compile path" in line for line in warnings)
        assert all(line.startswith("[Warning] [Wine]") for line in warnings)

    @pytest.mark.asyncio
    async def test_translated_paths_reach_shim(self, settings_for, sources, output, tmp_path, metaeditor_exe):
        include = tmp_path / "MQL5"
        include.mkdir()
        settings = settings_for(
            metaeditor={"metaeditor5_dir": str(metaeditor_exe), "include5_dir": str(include)},
            shim={"enabled": True},
        )
        translators: list[MappingTranslator] = []

        def factory(shim: ShimConfig) -> MappingTranslator:
            translators.append(MappingTranslator(shim))
            return translators[-1]

        invoker = FakeInvoker(logs={"Bot": CLEAN_COMPILE_LOG})
        orchestrator = make_orchestrator(settings, invoker, output, translator_factory=factory)

        batch = await orchestrator.compile_batch([target(sources, "Bot.mq5")], CompileMode.CHECK)

        assert not batch.has_error
        assert invoker.calls == []
        executable, args = invoker.shim_calls[0]
        assert executable == wine_path(metaeditor_exe)
        assert args == [
            f'/compile:"{wine_path(sources / "Bot.mq5")}"',
            f'/log:"{wine_path(sources / "Bot.log")}"',
            f'/inc:"{wine_path(include)}"',
        ]
        assert invoker.translators == translators
        assert not any("[Wine]" in line for line in output.lines)
