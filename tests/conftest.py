"""Pytest fixtures for mql-tools tests."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest

from mql_tools.output import OutputChannel
from mql_tools.settings import ToolingSettings
from tests.fixtures.compiler_logs import CLEAN_COMPILE_LOG, SAMPLE_CHECK_LOG, write_utf16_log

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path


@pytest.fixture
def write_log() -> Callable[[Path, str], Path]:
    return write_utf16_log


@pytest.fixture
def sample_check_log() -> str:
    return SAMPLE_CHECK_LOG


@pytest.fixture
def clean_compile_log() -> str:
    return CLEAN_COMPILE_LOG


@pytest.fixture
def output() -> OutputChannel:
    """In-memory output channel."""
    return OutputChannel("test")


@pytest.fixture
def metaeditor_exe(tmp_path: Path) -> Path:
    """Fake MetaEditor executable on disk."""
    exe = tmp_path / "MT5" / "metaeditor64.exe"
    exe.parent.mkdir(parents=True)
    exe.write_bytes(b"MZ")
    return exe


@pytest.fixture
def make_settings() -> Callable[..., ToolingSettings]:
    """Factory building settings from nested keyword sections."""

    def _make(**sections: dict[str, Any]) -> ToolingSettings:
        return ToolingSettings.model_validate(sections)

    return _make


@pytest.fixture
def data_folder(tmp_path: Path) -> Path:
    """Terminal data folder with the standard subfolders."""
    base = tmp_path / "Terminal" / "MQL5"
    for name in ("Include", "Files", "Logs"):
        (base / name).mkdir(parents=True)
    return base
