"""Observability: structured logging, run metrics, and progress events."""

from codegen_orchestrator.observability.events import DispatchError, EventBus
from codegen_orchestrator.observability.logging import (
    LoggingConfig,
    StructuredLoggingHandle,
    correlation_scope,
    setup_logging,
    setup_structured_logging,
    shutdown_logging,
)
from codegen_orchestrator.observability.metrics import RunMetricsAccumulator
from codegen_orchestrator.observability.progress import ProgressTracker

__all__ = [
    "DispatchError",
    "EventBus",
    "LoggingConfig",
    "ProgressTracker",
    "RunMetricsAccumulator",
    "StructuredLoggingHandle",
    "correlation_scope",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]
