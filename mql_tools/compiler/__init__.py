"""MetaEditor compiler integration.

Resolves compile targets and tool environments, runs the compiler (directly
or under the Wine shim), parses its log and publishes diagnostics.
"""

from mql_tools.compiler.diagnostics import (
    Diagnostic,
    DiagnosticStore,
    LinkEntry,
    LinkIndex,
    Severity,
)
from mql_tools.compiler.environment import ToolEnvironment, resolve_environment, validate_prerequisites
from mql_tools.compiler.flags import build_compiler_args, quote_flag
from mql_tools.compiler.invoker import OutcomeStatus, ProcessOutcome, ToolInvoker
from mql_tools.compiler.log_parser import LineKind, ParseResult, classify_line, parse_log
from mql_tools.compiler.orchestrator import (
    BatchOutcome,
    CompileMode,
    CompileOrchestrator,
    CompileOutcome,
)
from mql_tools.compiler.include_index import IncludeIndex, parse_includes
from mql_tools.compiler.targets import CompileTarget, HeaderTargetResolver, resolve_flavor, resolve_targets

__all__ = [
    "BatchOutcome",
    "CompileMode",
    "CompileOrchestrator",
    "CompileOutcome",
    "CompileTarget",
    "Diagnostic",
    "DiagnosticStore",
    "HeaderTargetResolver",
    "IncludeIndex",
    "LineKind",
    "LinkEntry",
    "LinkIndex",
    "OutcomeStatus",
    "ParseResult",
    "ProcessOutcome",
    "Severity",
    "ToolEnvironment",
    "ToolInvoker",
    "build_compiler_args",
    "classify_line",
    "parse_includes",
    "parse_log",
    "quote_flag",
    "resolve_environment",
    "resolve_flavor",
    "resolve_targets",
    "validate_prerequisites",
]
