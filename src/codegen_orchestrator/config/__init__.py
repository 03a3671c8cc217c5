"""
codegen-orchestrator config package public API.

Purpose
- Export config loading/validation entrypoints and public error types.
- Support loading from ``orchestrator.toml`` + ``CODEGEN_`` env overrides.
"""

from codegen_orchestrator.config.loader import (
    ConfigLoadError,
    dump_effective_config,
    env_name_for_path,
    load_config,
    load_settings,
    normalize_paths,
)
from codegen_orchestrator.config.schema import (
    BUILTIN_PROFILE_NAMES,
    DEFAULT_CONFIG,
    ConfigValidationError,
    ConfigValidationIssue,
    ConfigValidationResult,
    EngineSettings,
    OrchestratorConfig,
    apply_profile_overlay,
    assert_valid_config,
    default_config,
    merge_config,
    redact_config,
    validate_config,
)

__all__ = [
    "BUILTIN_PROFILE_NAMES",
    "ConfigLoadError",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "EngineSettings",
    "OrchestratorConfig",
    "apply_profile_overlay",
    "assert_valid_config",
    "default_config",
    "dump_effective_config",
    "env_name_for_path",
    "load_config",
    "load_settings",
    "merge_config",
    "normalize_paths",
    "redact_config",
    "validate_config",
]
