"""Stable constants shared across orchestrator planes."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Schema versions for persisted contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1
PLAN_SCHEMA_VERSION: Final[int] = 1
RUN_RESULT_SCHEMA_VERSION: Final[int] = 1

# Default runtime paths (relative to workspace root unless overridden by config).
DEFAULT_CONFIG_FILENAME: Final[str] = "orchestrator.toml"
LOG_DIR: Final[PurePosixPath] = PurePosixPath(".codegen/logs")
ENV_PREFIX: Final[str] = "CODEGEN_"

# Agent types understood by the default planner tables.
AGENT_TYPES: Final[tuple[str, ...]] = (
    "component",
    "api",
    "database",
    "styling",
    "testing",
    "documentation",
    "infrastructure",
    "utility",
)

# Rough per-task effort used for plan duration estimates (minutes).
AGENT_EFFORT_MINUTES: Final[dict[str, int]] = {
    "component": 3,
    "api": 4,
    "database": 3,
    "styling": 2,
    "testing": 3,
    "documentation": 1,
    "infrastructure": 4,
    "utility": 2,
}

# Quality scoring.
MAX_QUALITY_SCORE: Final[float] = 100.0
DEFAULT_QUALITY_THRESHOLD: Final[float] = 70.0

# Entry-point group scanned by ``AgentRegistry.load_entry_points``.
AGENT_ENTRY_POINT_GROUP: Final[str] = "codegen_orchestrator.agents"

__all__ = [
    "AGENT_EFFORT_MINUTES",
    "AGENT_ENTRY_POINT_GROUP",
    "AGENT_TYPES",
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_CONFIG_FILENAME",
    "DEFAULT_QUALITY_THRESHOLD",
    "ENV_PREFIX",
    "LOG_DIR",
    "MAX_QUALITY_SCORE",
    "PLAN_SCHEMA_VERSION",
    "RUN_RESULT_SCHEMA_VERSION",
]
