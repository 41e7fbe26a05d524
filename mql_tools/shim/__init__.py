"""Wine compatibility shim support.

Provides path translation into Wine's Windows namespace and setup checks
for running MetaEditor on macOS/Linux.
"""

from mql_tools.shim.paths import PathTranslator, TranslationResult, check_translatable
from mql_tools.shim.wine import (
    ShimConfig,
    ShimValidation,
    check_shim_installed,
    shim_active,
    shim_env,
    validate_shim_path,
    validate_shim_setup,
)

__all__ = [
    "PathTranslator",
    "ShimConfig",
    "ShimValidation",
    "TranslationResult",
    "check_shim_installed",
    "check_translatable",
    "shim_active",
    "shim_env",
    "validate_shim_path",
    "validate_shim_setup",
]
