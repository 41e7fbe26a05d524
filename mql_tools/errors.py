"""Error taxonomy and reporting for compiler and tailer failures.

Failures are classified by category. User-facing categories are surfaced as
notices carrying an actionable next step; internal categories are only
logged and appended to the output channel so the caller's flow continues.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from mql_tools.output import OutputChannel

logger = logging.getLogger(__name__)


class ErrorCategory(StrEnum):
    """Categories of failures for reporting decisions."""

    CONFIGURATION = "configuration"  # Missing/invalid setting, no spawn attempted
    LAUNCH = "launch"  # Subprocess failed to start
    TOOL_FAILURE = "tool_failure"  # Compiler reported errors in its own log
    LOG_UNAVAILABLE = "log_unavailable"  # Log never materialized
    TRANSLATION = "translation"  # Shim path conversion failed, original path used
    WATCH = "watch"  # Native file watch failed, poll loop takes over


# Categories shown to the user as notices
USER_FACING_CATEGORIES = frozenset(
    {
        ErrorCategory.CONFIGURATION,
        ErrorCategory.LAUNCH,
        ErrorCategory.LOG_UNAVAILABLE,
    }
)

# Categories that abort the affected target
FATAL_CATEGORIES = frozenset(
    {
        ErrorCategory.CONFIGURATION,
        ErrorCategory.LOG_UNAVAILABLE,
    }
)

ACTION_OPEN_SETTINGS = "open_settings"


class ToolingError(Exception):
    """Base error for compiler and tailer failures.

    Attributes:
        category: Failure category.
        action: Suggested next step for the user, if any.
    """

    category: ErrorCategory = ErrorCategory.TOOL_FAILURE

    def __init__(self, message: str, action: str | None = None) -> None:
        super().__init__(message)
        self.action = action

    @property
    def is_fatal(self) -> bool:
        return self.category in FATAL_CATEGORIES


class ConfigurationError(ToolingError):
    """Required setting missing or pointing at a path that does not exist.

    Attributes:
        setting: Name of the offending setting, if known.
        path: The missing path, if the error is about one.
    """

    category = ErrorCategory.CONFIGURATION

    def __init__(
        self,
        message: str,
        setting: str | None = None,
        path: Path | str | None = None,
        action: str | None = ACTION_OPEN_SETTINGS,
    ) -> None:
        super().__init__(message, action=action)
        self.setting = setting
        self.path = path


class LaunchError(ToolingError):
    """Subprocess failed to start."""

    category = ErrorCategory.LAUNCH


class LogUnavailableError(ToolingError):
    """Expected compiler log never appeared.

    Attributes:
        log_path: Where the log was expected.
        launch_error: Launch/exit problem captured from the process, if any.
    """

    category = ErrorCategory.LOG_UNAVAILABLE

    def __init__(self, log_path: Path | str, launch_error: str | None = None) -> None:
        super().__init__(f"Log file not found at: {log_path}")
        self.log_path = log_path
        self.launch_error = launch_error


class TranslationError(ToolingError):
    """Shim path translation failed."""

    category = ErrorCategory.TRANSLATION


class WatchError(ToolingError):
    """Native file watch could not be established or died."""

    category = ErrorCategory.WATCH


@dataclass
class Notice:
    """User-facing failure notice.

    Attributes:
        category: Failure category.
        message: Text shown to the user.
        action: Suggested next step (e.g. ``open_settings``).
        setting: Setting to open when the action is taken.
        timestamp: When the notice was raised.
    """

    category: ErrorCategory
    message: str
    action: str | None = None
    setting: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


class ErrorReporter:
    """Central reporting point for tooling failures.

    - User-facing failures: log error, append to output, emit a Notice
    - Internal failures: log warning, append to output only

    Attributes:
        on_notice: Callback receiving user-facing notices.
    """

    def __init__(
        self,
        output: OutputChannel | None = None,
        on_notice: Callable[[Notice], None] | None = None,
    ) -> None:
        """Initialize error reporter.

        Args:
            output: Channel receiving ``[Error]``/``[Warning]`` lines.
            on_notice: Callback(notice) for user-facing failures.
        """
        self._output = output
        self._on_notice = on_notice
        self._notices: list[Notice] = []

    @property
    def notices(self) -> list[Notice]:
        """Notices raised so far."""
        return list(self._notices)

    def report(self, error: ToolingError, target: str = "", metadata: dict[str, Any] | None = None) -> None:
        """Report a tooling failure according to its category.

        Args:
            error: The failure.
            target: File or resource the failure concerns.
            metadata: Additional context for the log record.
        """
        extra = {
            "error_category": error.category.value,
            "target": target,
            "metadata": metadata or {},
        }
        if error.category in USER_FACING_CATEGORIES:
            logger.error("%s failure for %s: %s", error.category.value, target or "-", error, extra=extra)
            if isinstance(error, LogUnavailableError) and error.launch_error:
                self._append_error(f"Launch error: {error.launch_error}")
            self._append_error(str(error))
            notice = Notice(
                category=error.category,
                message=str(error),
                action=error.action,
                setting=getattr(error, "setting", None),
            )
            self._notices.append(notice)
            if self._on_notice is not None:
                self._on_notice(notice)
        else:
            logger.warning("%s failure for %s: %s", error.category.value, target or "-", error, extra=extra)
            if self._output is not None:
                self._output.warning(str(error))

    def warn(self, message: str) -> None:
        """Append an internal warning without raising a notice."""
        logger.warning(message)
        if self._output is not None:
            self._output.warning(message)

    def _append_error(self, message: str) -> None:
        if self._output is not None:
            self._output.error(message)


__all__ = [
    "ACTION_OPEN_SETTINGS",
    "FATAL_CATEGORIES",
    "USER_FACING_CATEGORIES",
    "ConfigurationError",
    "ErrorCategory",
    "ErrorReporter",
    "LaunchError",
    "LogUnavailableError",
    "Notice",
    "ToolingError",
    "TranslationError",
    "WatchError",
]
