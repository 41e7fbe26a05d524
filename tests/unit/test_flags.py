"""Tests for compiler flag quoting."""

from __future__ import annotations

import pytest

from mql_tools.compiler.flags import (
    build_compiler_args,
    format_command_line,
    quote_flag,
    quote_flags,
    quote_value,
)


class TestQuoteFlag:
    """Tests for quote_flag."""

    @pytest.mark.parametrize(
        "arg",
        [
            "/compile:C:\\MT5\\Experts\\My Bot.mq5",
            "/log:Z:\\home\\me\\Bot.log",
            "/inc:C:\\MT5\\MQL5",
            '/compile:"C:\\MT5\\Experts\\Bot.mq5"',
        ],
    )
    def test_idempotent(self, arg):
        once = quote_flag(arg)
        assert quote_flag(once) == once

    def test_quotes_value_as_unit(self):
        assert quote_flag("/compile:C:\\My Files\\Bot.mq5") == '/compile:"C:\\My Files\\Bot.mq5"'

    def test_already_quoted_unchanged(self):
        arg = '/log:"C:\\x\\Bot.log"'
        assert quote_flag(arg) == arg

    def test_unknown_args_untouched(self):
        assert quote_flag("/portable") == "/portable"
        assert quote_flag("C:\\foo") == "C:\\foo"

    def test_flag_prefix_case_insensitive(self):
        assert quote_flag("/COMPILE:C:\\x.mq5") == '/COMPILE:"C:\\x.mq5"'

    def test_quote_value(self):
        assert quote_value("abc") == '"abc"'
        assert quote_value('"abc"') == '"abc"'
        assert quote_value('"') == '"""'


class TestBuildCompilerArgs:
    """Tests for build_compiler_args."""

    def test_minimal(self):
        assert build_compiler_args("C:\\x\\Bot.mq5", "C:\\x\\Bot.log") == [
            '/compile:"C:\\x\\Bot.mq5"',
            '/log:"C:\\x\\Bot.log"',
        ]

    def test_include_and_portable(self):
        args = build_compiler_args("/a/Bot.mq5", "/a/Bot.log", include_dir="/a/MQL5", portable=True)
        assert args == ['/compile:"/a/Bot.mq5"', '/log:"/a/Bot.log"', '/inc:"/a/MQL5"', "/portable"]

    def test_requoting_is_noop(self):
        args = build_compiler_args("C:\\x\\Bot.mq5", "C:\\x\\Bot.log", include_dir="C:\\inc")
        assert quote_flags(args) == args


def test_format_command_line_keeps_args_verbatim():
    line = format_command_line("C:\\Program Files\\MT5\\metaeditor64.exe", ['/compile:"C:\\a b\\Bot.mq5"', "/portable"])
    assert line == '"C:\\Program Files\\MT5\\metaeditor64.exe" /compile:"C:\\a b\\Bot.mq5" /portable'
