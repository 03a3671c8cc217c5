"""Requirement ingestion and read-only project inspection."""

from codegen_orchestrator.spec_ingestion.project_context import (
    build_project_context,
    context_summary,
    detect_patterns,
)
from codegen_orchestrator.spec_ingestion.requirements import (
    TYPE_ALIASES,
    categorize,
    parse_requirements,
)

__all__ = [
    "TYPE_ALIASES",
    "build_project_context",
    "categorize",
    "context_summary",
    "detect_patterns",
    "parse_requirements",
]
