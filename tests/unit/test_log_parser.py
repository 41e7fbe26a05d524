"""Tests for the compiler log parser."""

from __future__ import annotations

import pytest

from mql_tools.compiler.diagnostics import Severity
from mql_tools.compiler.log_parser import (
    RULES,
    LineKind,
    classify_line,
    is_suppressed,
    parse_log,
)

BOT = "C:\\MT5\\MQL5\\Experts\\Bot.mq5"


class TestClassifyLine:
    """Tests for the ordered rule table."""

    @pytest.mark.parametrize(
        ("line", "kind"),
        [
            (f"{BOT} : information: compiling 'Bot.mq5'", LineKind.COMPILING_HEADER),
            (f"{BOT} : information: checking 'Bot.mq5'", LineKind.COMPILING_HEADER),
            (f"{BOT} : information: including 'Utils.mqh'", LineKind.INCLUDE_NOTICE),
            (f"{BOT} : information: generating code", LineKind.INFO_NOTICE),
            (f"{BOT} : information: info some notice", LineKind.INFO_NOTICE),
            ("Result: 0 errors, 0 warnings", LineKind.RESULT_SUMMARY),
            (f"{BOT} : information: result 0 errors, 0 warnings", LineKind.RESULT_SUMMARY),
            (f"{BOT}(3,1) : error 100: oops", LineKind.PATH_DIAGNOSTIC),
            ("(3,1) : warning 43: conversion", LineKind.PATH_DIAGNOSTIC),
            ("MetaEditor build 4000", LineKind.PLAIN),
        ],
    )
    def test_kinds(self, line, kind):
        assert classify_line(line) == kind

    def test_rule_order(self):
        assert [rule.kind for rule in RULES] == list(LineKind)

    def test_plain_rule_is_catch_all(self):
        assert RULES[-1].predicate("anything at all")


class TestDiagnostics:
    """Tests for path diagnostics."""

    def test_error_position_converted_to_zero_based(self):
        result = parse_log(f"{BOT}(12,5) : error 256: 'Ordersend' - undeclared identifier\n")

        assert len(result.diagnostics) == 1
        diag = result.diagnostics[0]
        assert diag.file_path == BOT
        assert (diag.line, diag.column) == (11, 4)
        assert diag.severity == Severity.ERROR
        assert diag.code == "256"
        assert diag.message == "'Ordersend' - undeclared identifier"
        assert result.has_error

    def test_warning_does_not_set_error(self):
        result = parse_log(f"{BOT}(20,11) : warning 43: possible loss of data\n")

        assert result.diagnostics[0].severity == Severity.WARNING
        assert not result.has_error

    def test_display_text_and_link(self):
        result = parse_log(f"{BOT}(12,5) : error 256: undeclared identifier\n")

        assert result.display_text == "undeclared identifier (12,5)\n"
        entry = result.link_index["undeclared identifier (12,5)"]
        assert entry.link == "file:///C:/MT5/MQL5/Experts/Bot.mq5#12,5"
        assert entry.number == "256"

    def test_code_181_dropped(self):
        result = parse_log(f"{BOT}(31,7) : warning 181: implicit conversion from 'number' to 'string'\n")

        assert result.diagnostics == []
        assert result.display_text == ""
        assert result.link_index == {}

    def test_implicit_conversion_without_code_dropped(self):
        result = parse_log(f"{BOT}(31,7) : warning: implicit conversion from 'number' to 'string'\n")
        assert result.diagnostics == []

    def test_pathless_line_only_displays(self):
        result = parse_log("(5,3) : error 100: something broke\n")

        assert result.diagnostics == []
        assert result.display_text == "something broke (5,3)\n"
        assert not result.has_error

    def test_presentation(self):
        diag = parse_log(f"{BOT}(2,3) : error 256: bad\n").diagnostics[0]
        data = diag.to_presentation()
        assert data["range"] == {"start": {"line": 1, "character": 2}, "end": {"line": 1, "character": 3}}
        assert data["code"]["value"] == "MQL256"
        assert data["severity"] == "error"


class TestResultSummary:
    """Tests for result lines."""

    def test_zero_errors_not_error(self):
        result = parse_log("0 error(s), 0 warning(s)\nResult: 0 error(s), 0 warning(s)\n")
        assert not result.has_error

    def test_nonzero_errors_is_error(self):
        result = parse_log("Result: 1 error(s), 0 warning(s)\n")
        assert result.has_error
        assert result.display_text == "[Error] Result: 1 error(s), 0 warning(s)\n"

    def test_warning_tag(self):
        result = parse_log("Result: 0 errors, 2 warnings\n")
        assert result.display_text == "[Warning] Result: 0 errors, 2 warnings\n"
        assert not result.has_error

    def test_check_mode_shows_raw_line(self):
        line = f"{BOT} : information: result 0 errors, 0 warnings"
        assert parse_log(line, check_only=True).display_text == f"[Done] {line}\n"
        assert parse_log(line, check_only=False).display_text == "[Done] Result: 0 errors, 0 warnings\n"


class TestWholeLog:
    """Tests over complete logs."""

    def test_sample_check_log(self, sample_check_log):
        result = parse_log("\ufeff" + sample_check_log, check_only=True)

        assert result.display_text.splitlines() == [
            "'Bot.mq5'",
            "'Utils.mqh'",
            "'Ordersend' - undeclared identifier (12,5)",
            "possible loss of data due to type conversion (20,11)",
            "[Error] Result: 1 errors, 1 warnings, 120 msec elapsed",
        ]
        assert [d.code for d in result.diagnostics] == ["256", "43"]
        assert result.has_error
        assert result.link_index["'Bot.mq5'"].link == "file:///C:/MT5/MQL5/Experts/Bot.mq5"
        assert result.link_index["'Utils.mqh'"].link == "file:///C:/MT5/MQL5/Include/Utils.mqh"

    def test_clean_compile_log(self, clean_compile_log):
        result = parse_log(clean_compile_log.replace("\n", "\r\n"))

        assert result.display_text == "'Bot.mq5'\n[Done] Result: 0 errors, 0 warnings, 350 msec elapsed\n"
        assert result.diagnostics == []
        assert not result.has_error

    def test_plain_lines_verbatim_blank_lines_skipped(self):
        result = parse_log("MetaEditor 5\n\n   \nsome text\n")
        assert result.display_text == "MetaEditor 5\nsome text\n"

    def test_empty_log(self):
        result = parse_log("")
        assert result.display_text == ""
        assert not result.has_error

    def test_each_call_returns_fresh_link_index(self, sample_check_log):
        first = parse_log(sample_check_log)
        second = parse_log("Result: 0 errors, 0 warnings\n")
        assert first.link_index
        assert second.link_index == {}


@pytest.mark.parametrize(
    ("code", "message", "expected"),
    [
        ("181", "anything", True),
        (None, "implicit conversion from 'number' to 'string'", True),
        ("43", "possible loss of data", False),
        (None, "implicit conversion from 'int' to 'double'", False),
    ],
)
def test_is_suppressed(code, message, expected):
    assert is_suppressed(code, message) is expected
