"""Domain records, errors, identifiers and progress events."""

from codegen_orchestrator.domain.errors import (
    AgentExecutionError,
    OrchestrationError,
    PlanningError,
    QualityGateFailure,
    RollbackFailure,
    ValidationError,
    WorkspaceIOError,
)
from codegen_orchestrator.domain.events import EventType, ProgressEvent
from codegen_orchestrator.domain.models import (
    AgentContext,
    AnalysisReport,
    Checkpoint,
    FileSnapshot,
    GeneratedFile,
    GenerationPlan,
    GenerationResult,
    GenerationTask,
    IssueSeverity,
    ProjectContext,
    QualityCheckResult,
    QualityGateConfig,
    QualityIssue,
    Requirement,
    RequirementCategory,
    RunMetrics,
    RunResult,
    RunStatus,
    RunSummary,
    TaskOutcome,
    TaskStatus,
)

__all__ = [
    "AgentContext",
    "AgentExecutionError",
    "AnalysisReport",
    "Checkpoint",
    "EventType",
    "FileSnapshot",
    "GeneratedFile",
    "GenerationPlan",
    "GenerationResult",
    "GenerationTask",
    "IssueSeverity",
    "OrchestrationError",
    "PlanningError",
    "ProgressEvent",
    "ProjectContext",
    "QualityCheckResult",
    "QualityGateConfig",
    "QualityGateFailure",
    "QualityIssue",
    "Requirement",
    "RequirementCategory",
    "RollbackFailure",
    "RunMetrics",
    "RunResult",
    "RunStatus",
    "RunSummary",
    "TaskOutcome",
    "TaskStatus",
    "ValidationError",
    "WorkspaceIOError",
]
