"""MetaEditor command-line flags.

MetaEditor expects path flags as ``/compile:"C:\\path\\file.mq5"`` with the
quotes being part of the argument value. Quoting is idempotent: values that
are already quoted are left untouched.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

COMPILE_FLAG = "/compile:"
LOG_FLAG = "/log:"
INCLUDE_FLAG = "/inc:"
PORTABLE_SWITCH = "/portable"

# Flags whose value is a path and must be quoted as a unit
PATH_FLAGS = (COMPILE_FLAG, LOG_FLAG, INCLUDE_FLAG)


def quote_value(value: str) -> str:
    """Wrap a value in double quotes unless it already is."""
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        return value
    return f'"{value}"'


def quote_flag(arg: str) -> str:
    """Quote the value of a known path flag.

    Unknown arguments pass through unchanged so Windows paths such as
    ``C:\\foo`` are never mistaken for flags.

    Args:
        arg: A single argument, e.g. ``/compile:C:\\x\\Bot.mq5``.

    Returns:
        The argument with its path value quoted, e.g. ``/compile:"C:\\x\\Bot.mq5"``.
    """
    lowered = arg.lower()
    for flag in PATH_FLAGS:
        if lowered.startswith(flag):
            return arg[: len(flag)] + quote_value(arg[len(flag) :])
    return arg


def quote_flags(args: Sequence[str]) -> list[str]:
    return [quote_flag(arg) for arg in args]


def build_compiler_args(
    compile_path: str,
    log_path: str,
    include_dir: str | None = None,
    portable: bool = False,
) -> list[str]:
    """Build the MetaEditor argument list.

    Args:
        compile_path: Source file (already translated in shim mode).
        log_path: Log output file.
        include_dir: Optional include directory.
        portable: Append the portable switch.

    Returns:
        Arguments with every path flag quoted as a unit.
    """
    args = [f"{COMPILE_FLAG}{compile_path}", f"{LOG_FLAG}{log_path}"]
    if include_dir:
        args.append(f"{INCLUDE_FLAG}{include_dir}")
    if portable:
        args.append(PORTABLE_SWITCH)
    return quote_flags(args)


def format_command_line(executable: str, args: Sequence[str]) -> str:
    """Join executable and pre-quoted arguments into one command line.

    Arguments are copied verbatim; only the executable is quoted.
    """
    return " ".join([quote_value(executable), *args])


__all__ = [
    "COMPILE_FLAG",
    "INCLUDE_FLAG",
    "LOG_FLAG",
    "PATH_FLAGS",
    "PORTABLE_SWITCH",
    "build_compiler_args",
    "format_command_line",
    "quote_flag",
    "quote_flags",
    "quote_value",
]
