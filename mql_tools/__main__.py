"""CLI entry point for mql-tools."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from mql_tools.errors import ConfigurationError, ErrorReporter, Notice
from mql_tools.flavor import Flavor
from mql_tools.output import OutputChannel
from mql_tools.settings import TailMode, load_settings

if TYPE_CHECKING:
    from collections.abc import Callable

    from mql_tools.settings import ToolingSettings
    from mql_tools.tailer import DeployChoice


def _print_notice(notice: Notice) -> None:
    hint = f" (see setting {notice.setting})" if notice.setting else ""
    print(f"{notice.message}{hint}", file=sys.stderr)


def _settings_provider(args: argparse.Namespace) -> Callable[[], ToolingSettings]:
    def provider() -> ToolingSettings:
        return load_settings(args.config)

    return provider


def cmd_compile(args: argparse.Namespace) -> int:
    """Compile or syntax-check MQL files.

    Args:
        args: Parsed CLI arguments.

    Returns:
        Exit code (1 if any target had errors).
    """
    from mql_tools.compiler import CompileMode, CompileOrchestrator, HeaderTargetResolver, resolve_targets

    mode = CompileMode.CHECK if args.command == "check" else CompileMode.COMPILE
    try:
        settings = load_settings(args.config)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    header_flavor = Flavor(args.header_flavor) if args.header_flavor else None
    resolver = HeaderTargetResolver.from_settings(settings, args.workspace or Path.cwd())
    targets = resolve_targets(
        args.paths,
        (lambda _path: header_flavor) if header_flavor else None,
        header_resolver=resolver,
    )
    if not targets:
        print("Error: no .mq4/.mq5/.mqh files to compile", file=sys.stderr)
        return 2

    output = OutputChannel.to_stdout("MQL Compiler")
    orchestrator = CompileOrchestrator(
        _settings_provider(args),
        output=output,
        reporter=ErrorReporter(output=output, on_notice=_print_notice),
        workspace=args.workspace,
    )
    batch = asyncio.run(orchestrator.compile_batch(targets, mode))

    if args.json:
        import json

        diagnostics = {
            path: [d.to_presentation() for d in items] for path, items in orchestrator.store.snapshot().items()
        }
        print(json.dumps(diagnostics, indent=2))
    return 1 if batch.has_error else 0


def _prompt_deploy(library_path: Path) -> DeployChoice:
    from mql_tools.tailer import DeployChoice

    answer = input(
        f"{library_path.name} not found at {library_path.parent}. "
        "[i]nstall it, use [s]tandard logs, or [c]ancel? "
    ).strip().lower()
    if answer.startswith("i"):
        return DeployChoice.INSTALL
    if answer.startswith("s"):
        return DeployChoice.USE_STANDARD
    return DeployChoice.CANCEL


async def _run_tail(args: argparse.Namespace) -> int:
    from mql_tools.tailer import DataFolderInference, LogTailer, detect_flavor

    settings = load_settings(args.config)
    workspace = args.workspace or str(Path.cwd())
    output = OutputChannel.to_stdout("MQL Runtime Log")

    if args.flavor:
        flavor: Flavor | None = Flavor(args.flavor)
    else:
        flavor = detect_flavor(args.active_file, [workspace], settings.metaeditor)

    tailer = LogTailer(
        _settings_provider(args),
        output=output,
        reporter=ErrorReporter(output=output, on_notice=_print_notice),
        flavor_detector=lambda: flavor,
        infer_data_folder=DataFolderInference(args.active_file, workspace),
        deploy_prompt=_prompt_deploy,
        workspace=workspace,
    )
    mode = TailMode(args.mode) if args.mode else None
    if not await tailer.start(mode):
        return 1
    try:
        if args.duration:
            await asyncio.sleep(args.duration)
        else:
            await asyncio.Event().wait()
    finally:
        await tailer.stop()
    return 0


def cmd_tail(args: argparse.Namespace) -> int:
    """Follow the terminal runtime log until interrupted."""
    try:
        return asyncio.run(_run_tail(args))
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        return 0


def cmd_suggest(args: argparse.Namespace) -> int:
    """Print spelling suggestions for identifiers."""
    from mql_tools.spellcheck import find_closest_matches

    found = False
    for token in args.identifiers:
        matches = find_closest_matches(token, args.max_distance, args.max_results)
        if not matches:
            print(f"{token}: no suggestions")
            continue
        found = True
        rendered = ", ".join(f"{m.name} ({m.distance}){' *' if m.is_high_confidence else ''}" for m in matches)
        print(f"{token}: {rendered}")
    return 0 if found else 1


def cmd_shim_check(args: argparse.Namespace) -> int:
    """Validate the Wine setup and the configured MetaEditor path."""
    from mql_tools.settings import resolve_setting_path
    from mql_tools.shim import validate_shim_setup

    try:
        settings = load_settings(args.config)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    flavor = Flavor(args.flavor)
    executable = resolve_setting_path(settings.metaeditor.executable_for(flavor), args.workspace)
    result = asyncio.run(validate_shim_setup(settings.shim, executable))

    if result.version:
        print(f"Wine: {result.version}")
    for warning in result.warnings:
        print(f"[Warning] {warning}")
    for error in result.errors:
        print(f"[Error] {error}")
    print("Shim setup OK" if result.valid else "Shim setup has errors")
    return 0 if result.valid else 1


def build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser.

    Returns:
        Configured ArgumentParser.
    """
    parser = argparse.ArgumentParser(
        prog="mql-tools",
        description="MetaEditor compiler wrapper, runtime log tailer and identifier suggestions",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Settings YAML file (default: $MQL_TOOLS_CONFIG or built-in defaults)",
    )
    parser.add_argument(
        "--workspace",
        type=str,
        default=None,
        help="Workspace folder for ${workspaceFolder} and relative settings paths",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(
        title="commands",
        dest="command",
        help="Available commands",
    )

    for name, help_text in (("compile", "Compile MQL files"), ("check", "Syntax-check MQL files")):
        compile_parser = subparsers.add_parser(name, help=help_text)
        compile_parser.add_argument("paths", nargs="+", help="Files to compile (.mq4, .mq5, .mqh)")
        compile_parser.add_argument(
            "--header-flavor",
            choices=[f.value for f in Flavor],
            default=None,
            help="Flavor for .mqh files (default: inferred from path, else mql5)",
        )
        compile_parser.add_argument("--json", action="store_true", help="Print diagnostics as JSON")
        compile_parser.set_defaults(func=cmd_compile)

    tail_parser = subparsers.add_parser("tail", help="Follow the terminal runtime log")
    tail_parser.add_argument(
        "--mode",
        choices=[m.value for m in TailMode],
        default=None,
        help="Log source (default: tailer.mode setting)",
    )
    tail_parser.add_argument("--flavor", choices=[f.value for f in Flavor], default=None)
    tail_parser.add_argument("--active-file", type=str, default=None, help="File used to infer flavor/data folder")
    tail_parser.add_argument("--duration", type=float, default=None, help="Stop after N seconds")
    tail_parser.set_defaults(func=cmd_tail)

    suggest_parser = subparsers.add_parser("suggest", help="Suggest built-in function names")
    suggest_parser.add_argument("identifiers", nargs="+")
    suggest_parser.add_argument("--max-distance", type=int, default=2)
    suggest_parser.add_argument("--max-results", type=int, default=3)
    suggest_parser.set_defaults(func=cmd_suggest)

    shim_parser = subparsers.add_parser("shim-check", help="Validate the Wine setup")
    shim_parser.add_argument("--flavor", choices=[f.value for f in Flavor], default=Flavor.MQL5.value)
    shim_parser.set_defaults(func=cmd_shim_check)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Returns:
        Exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 0

    result: int = args.func(args)
    return result


if __name__ == "__main__":
    sys.exit(main())
