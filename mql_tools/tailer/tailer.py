"""Runtime log tailer.

Follows the log written by a running MetaTrader terminal and streams new
content into an output channel. Two sources are supported:

- LIVE: ``<data>/Files/LiveLog.txt`` written by the bundled ``LiveLog.mqh``
  with ``FileFlush``, UTF-8, truncated when tailing starts.
- STANDARD: the terminal journal ``<data>/Logs/YYYYMMDD.log``, UTF-16-LE,
  rotating daily and never truncated by us.

Change detection uses a native file watch (watchfiles) with a slower poll
loop that recreates a dead watch and handles daily rotation.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
import shutil
from datetime import date
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING

from watchfiles import awatch

from mql_tools.errors import ConfigurationError, ErrorReporter, WatchError
from mql_tools.flavor import Flavor
from mql_tools.output import OutputChannel
from mql_tools.settings import MetaEditorSettings, TailMode, resolve_setting_path
from mql_tools.tailer.session import ChangeKind, TailSession

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

    from mql_tools.settings import ToolingSettings

logger = logging.getLogger(__name__)

LIVELOG_FILENAME = "LiveLog.txt"
LIVELOG_LIBRARY = "LiveLog.mqh"
TEMPLATE_PATH = Path(__file__).parent / "templates" / LIVELOG_LIBRARY

# Native watch debounce; the poll loop covers anything it misses
WATCH_DEBOUNCE_MS = 100

ACTION_CONFIGURE = "configure"
STOP_MARKER = "--- Tail Stopped ---"


class TailerState(StrEnum):
    IDLE = "idle"
    TAILING = "tailing"


class DeployChoice(StrEnum):
    """Answer to the LiveLog library deployment prompt."""

    INSTALL = "install"
    USE_STANDARD = "use_standard"
    CANCEL = "cancel"


def log_file_name(day: date) -> str:
    """Journal file name for a day, e.g. ``20240131.log``."""
    return f"{day:%Y%m%d}.log"


def resolve_base_path(include_dir: Path | str) -> Path:
    """Data folder for an include directory: an ``Include`` folder maps to its parent."""
    path = Path(include_dir)
    if path.name.lower() == "include":
        return path.parent
    return path


def watch_file(path: Path) -> AsyncIterator[object]:
    """Native change notifications for a single file."""
    return awatch(path, watch_filter=None, debounce=WATCH_DEBOUNCE_MS)


def _decline_deploy(library_path: Path) -> DeployChoice:
    return DeployChoice.USE_STANDARD


class LogTailer:
    """Streams a growing MetaTrader log into an output channel.

    Only one session exists at a time: ``start`` stops the active session
    before establishing a new one.

    Example:
        tailer = LogTailer(lambda: settings, output=OutputChannel.to_stdout("MQL Runtime Log"))
        await tailer.start(TailMode.STANDARD)
        ...
        await tailer.stop()
    """

    def __init__(
        self,
        settings_provider: Callable[[], ToolingSettings],
        output: OutputChannel | None = None,
        reporter: ErrorReporter | None = None,
        flavor_detector: Callable[[], Flavor | None] | None = None,
        infer_data_folder: Callable[[Flavor], Path | None] | None = None,
        deploy_prompt: Callable[[Path], DeployChoice | Awaitable[DeployChoice]] = _decline_deploy,
        workspace: Path | str | None = None,
        today: Callable[[], date] = date.today,
        watch: Callable[[Path], AsyncIterator[object]] = watch_file,
        template_path: Path = TEMPLATE_PATH,
    ) -> None:
        """Initialize LogTailer.

        Args:
            settings_provider: Returns the current settings.
            output: Channel receiving log content and notices.
            reporter: Failure reporter (defaults to one writing to ``output``).
            flavor_detector: Decides the flavor; MQL5 when it returns ``None``.
            infer_data_folder: Locates the data folder when no include
                directory is configured.
            deploy_prompt: Asked whether to install ``LiveLog.mqh`` when it is
                missing. May be sync or async.
            workspace: Workspace folder for path settings.
            today: Clock used for journal rotation.
            watch: Native watch factory.
            template_path: Bundled ``LiveLog.mqh``.
        """
        self._settings_provider = settings_provider
        self.output = output or OutputChannel("MQL Runtime Log")
        self._reporter = reporter or ErrorReporter(output=self.output)
        self._flavor_detector = flavor_detector
        self._infer_data_folder = infer_data_folder
        self._deploy_prompt = deploy_prompt
        self._workspace = workspace
        self._today = today
        self._watch = watch
        self._template_path = template_path

        self._state = TailerState.IDLE
        self._configured_mode: TailMode | None = None
        self._mode: TailMode | None = None
        self._flavor: Flavor | None = None
        self._base_path: Path | None = None
        self._session: TailSession | None = None
        self._watch_task: asyncio.Task[None] | None = None
        self._poll_task: asyncio.Task[None] | None = None
        self._poll_interval = 5.0
        self._read_lock = asyncio.Lock()

    @property
    def state(self) -> TailerState:
        return self._state

    @property
    def is_tailing(self) -> bool:
        return self._state == TailerState.TAILING

    @property
    def mode(self) -> TailMode | None:
        """Mode of the current (or last) session."""
        return self._mode

    @property
    def flavor(self) -> Flavor | None:
        return self._flavor

    @property
    def base_path(self) -> Path | None:
        return self._base_path

    @property
    def session(self) -> TailSession | None:
        return self._session

    @property
    def watch_alive(self) -> bool:
        return self._watch_task is not None and not self._watch_task.done()

    async def start(self, mode: TailMode | None = None) -> bool:
        """Start tailing.

        Args:
            mode: LIVE or STANDARD. Defaults to the last configured mode,
                initially the ``tailer.mode`` setting.

        Returns:
            True if a session was established.
        """
        if self.is_tailing:
            await self.stop()

        settings = self._settings_provider()
        if mode is not None:
            self._configured_mode = mode
        mode = self._configured_mode or settings.tailer.mode
        self._poll_interval = settings.tailer.poll_interval_s

        flavor = (self._flavor_detector() if self._flavor_detector else None) or Flavor.MQL5
        self._flavor = flavor

        try:
            base = self._resolve_base(settings, flavor)
        except ConfigurationError as e:
            self._reporter.report(e)
            return False
        self._base_path = base

        if mode == TailMode.LIVE and not (base / "Include" / LIVELOG_LIBRARY).exists():
            choice = await self._ask_deploy(base / "Include" / LIVELOG_LIBRARY)
            if choice == DeployChoice.INSTALL:
                if not self.deploy_live_log(base):
                    return False
                self.output.append_line(
                    f"[Info] {LIVELOG_LIBRARY} installed. Add `#include <{LIVELOG_LIBRARY}>` "
                    "to your EA and use PrintLive() for real-time output."
                )
            elif choice == DeployChoice.USE_STANDARD:
                mode = TailMode.STANDARD
                self._configured_mode = TailMode.STANDARD
            else:
                logger.info("Tailing cancelled at LiveLog deployment prompt")
                return False

        try:
            session = self._open_session(base, mode, flavor)
        except ConfigurationError as e:
            self._reporter.report(e)
            return False

        self._mode = mode
        self._session = session
        description = "LiveLog (real-time)" if mode == TailMode.LIVE else "Standard Journal"
        self.output.append_line(f"--- Starting {description} Tail ---")
        self.output.append_line(f"[Info] Mode: {mode.value.upper()}")
        self.output.append_line(f"[Info] Tailing: {session.file_path}")
        if mode == TailMode.LIVE:
            self.output.append_line("[Info] For real-time logs, use PrintLive() instead of Print() in your EA")
            self.output.append_line(f"[Info] Add: #include <{LIVELOG_LIBRARY}>")

        self._state = TailerState.TAILING

        if mode == TailMode.LIVE and session.file_path.exists():
            # Watch must be registered before truncating so racing writes are seen
            ready = self._start_watch()
            if ready is not None:
                await ready.wait()
            async with self._read_lock:
                try:
                    session.file_path.write_bytes(b"")
                    session.reset()
                    self.output.append_line("[Info] Cleared previous log content")
                except OSError as e:
                    self.output.warning(f"Could not clear log file: {e}")

        if not session.file_path.exists():
            self.output.warning(f"Log file {session.file_path.name} does not exist yet. Waiting for activity...")

        self._start_watch()
        self._poll_task = asyncio.create_task(self._poll_loop())
        logger.info(
            "Tailing %s",
            session.file_path,
            extra={"mode": mode.value, "flavor": flavor.value},
        )
        return True

    async def stop(self) -> None:
        """Cancel the watch and the poll loop and go idle."""
        was_tailing = self.is_tailing
        self._state = TailerState.IDLE
        for task in (self._watch_task, self._poll_task):
            if task is None:
                continue
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._watch_task = None
        self._poll_task = None
        if was_tailing:
            self.output.append_line(STOP_MARKER)
            logger.info("Tail stopped")

    async def toggle(self) -> bool:
        """Stop if tailing, start otherwise.

        Returns:
            Whether the tailer is tailing afterwards.
        """
        if self.is_tailing:
            await self.stop()
            return False
        return await self.start()

    async def check_for_new_content(self) -> None:
        """Emit bytes appended since the last check; reset on truncation.

        The read runs in a worker thread. Checks are serialized, so the watch
        and the poll loop never emit the same delta twice.
        """
        session = self._session
        if not self.is_tailing or session is None:
            return
        async with self._read_lock:
            try:
                change = await asyncio.to_thread(session.check)
            except OSError as e:
                logger.warning("Tail read failed for %s: %s", session.file_path, e)
                return
            if session is not self._session or not self.is_tailing:
                return

            if change.kind == ChangeKind.GROWN and change.text:
                self.output.append(change.text)
            elif change.kind == ChangeKind.TRUNCATED:
                self.output.append_line("[Info] Log file truncated. Refreshing...")

    async def poll_once(self) -> None:
        """One poll cycle: daily rotation, watch self-healing, content check."""
        session = self._session
        if not self.is_tailing or session is None:
            return

        if self._mode == TailMode.STANDARD:
            expected = log_file_name(self._today())
            if session.file_path.name != expected:
                self.output.append_line(f"[Info] Day changed. Switching to {expected}")
                async with self._read_lock:
                    session.switch_file(session.file_path.with_name(expected))
                self._restart_watch()

        if not self.watch_alive and session.file_path.exists():
            self._start_watch()

        await self.check_for_new_content()

    def deploy_live_log(self, base: Path) -> bool:
        """Copy the bundled ``LiveLog.mqh`` into ``<base>/Include``."""
        target = base / "Include" / LIVELOG_LIBRARY
        if not self._template_path.exists():
            self._reporter.report(
                ConfigurationError(f"{LIVELOG_LIBRARY} template not found at: {self._template_path}", action=None)
            )
            return False
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(self._template_path, target)
        except OSError as e:
            self._reporter.report(
                ConfigurationError(f"Failed to install {LIVELOG_LIBRARY}: {e}", path=target, action=None)
            )
            return False
        self.output.append_line(f"[Info] Installed {LIVELOG_LIBRARY} to: {target}")
        return True

    def _resolve_base(self, settings: ToolingSettings, flavor: Flavor) -> Path:
        include = resolve_setting_path(settings.metaeditor.include_for(flavor), self._workspace)
        if include:
            return resolve_base_path(include)
        inferred = self._infer_data_folder(flavor) if self._infer_data_folder else None
        if inferred is None:
            raise ConfigurationError(
                f"Include path for {flavor.label} is not set and could not be inferred. "
                "Please configure MQL Tools settings.",
                setting=MetaEditorSettings.setting_name("include", flavor),
                action=ACTION_CONFIGURE,
            )
        return resolve_base_path(inferred)

    def _open_session(self, base: Path, mode: TailMode, flavor: Flavor) -> TailSession:
        if mode == TailMode.LIVE:
            files_dir = base / "Files"
            try:
                files_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise ConfigurationError(f"Failed to create Files folder: {e}", path=files_dir, action=None) from e
            return TailSession(file_path=files_dir / LIVELOG_FILENAME, mode=mode)

        logs_dir = base / "Logs"
        if not logs_dir.is_dir():
            raise ConfigurationError(
                f"Logs folder not found at: {logs_dir}. "
                "Make sure your include path points into the MQL4/MQL5 data folder.",
                setting=MetaEditorSettings.setting_name("include", flavor),
                path=logs_dir,
                action=ACTION_CONFIGURE,
            )
        return TailSession.at_end(logs_dir / log_file_name(self._today()), mode)

    async def _ask_deploy(self, library_path: Path) -> DeployChoice:
        answer = self._deploy_prompt(library_path)
        if inspect.isawaitable(answer):
            answer = await answer
        return DeployChoice(answer)

    def _start_watch(self) -> asyncio.Event | None:
        """Start the native watch.

        Returns:
            Event set once the watch is registered (or has failed), or
            ``None`` when no watch was started.
        """
        if self._session is None or self.watch_alive or not self._session.file_path.exists():
            return None
        ready = asyncio.Event()
        self._watch_task = asyncio.create_task(self._watch_loop(self._session.file_path, ready))
        return ready

    def _restart_watch(self) -> None:
        if self._watch_task is not None:
            self._watch_task.cancel()
            self._watch_task = None
        self._start_watch()

    async def _watch_loop(self, path: Path, ready: asyncio.Event) -> None:
        try:
            changes = self._watch(path)
            # awatch registers its watcher on the first step of iteration,
            # which runs before any waiter on ready resumes
            ready.set()
            async for _changes in changes:
                await self.check_for_new_content()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # Poll loop recreates the watch
            self._reporter.report(WatchError(f"File watcher stopped for {path.name}: {e}"), target=str(path))
        finally:
            ready.set()

    async def _poll_loop(self) -> None:
        while self.is_tailing:
            await asyncio.sleep(self._poll_interval)
            await self.poll_once()


__all__ = [
    "LIVELOG_FILENAME",
    "LIVELOG_LIBRARY",
    "STOP_MARKER",
    "DeployChoice",
    "LogTailer",
    "TailerState",
    "log_file_name",
    "resolve_base_path",
]
