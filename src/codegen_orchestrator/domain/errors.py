"""Error taxonomy for analysis, planning and execution.

``ValidationError`` and ``PlanningError`` are raised before any task runs.
``AgentExecutionError`` and ``QualityGateFailure`` are contained at the task
boundary and converted into a rollback. ``RollbackFailure`` is fatal for the
whole run. ``WorkspaceIOError`` aborts the single task whose checkpoint failed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from codegen_orchestrator.domain.models import QualityCheckResult


class OrchestrationError(Exception):
    """Base class for every error raised by the orchestration engine."""


class ValidationError(OrchestrationError, ValueError):
    """Malformed requirement input. ``location`` points at the offending entry."""

    def __init__(self, message: str, *, location: str | None = None) -> None:
        self.location = location
        super().__init__(f"{location}: {message}" if location else message)


class PlanningError(OrchestrationError, ValueError):
    """The plan cannot be built or scheduled."""

    def __init__(
        self,
        message: str,
        *,
        task_ids: Iterable[str] = (),
        cycle: Iterable[str] = (),
    ) -> None:
        self.task_ids: tuple[str, ...] = tuple(sorted(set(task_ids)))
        self.cycle: tuple[str, ...] = tuple(cycle)
        super().__init__(message)


class AgentExecutionError(OrchestrationError):
    """An agent raised, timed out, or produced an unusable result."""

    def __init__(
        self,
        message: str,
        *,
        task_id: str,
        agent_type: str,
        timed_out: bool = False,
    ) -> None:
        self.task_id = task_id
        self.agent_type = agent_type
        self.timed_out = timed_out
        super().__init__(f"task {task_id!r} ({agent_type}): {message}")


class QualityGateFailure(OrchestrationError):
    """Generated output was rejected by the quality gate."""

    def __init__(self, check: QualityCheckResult) -> None:
        self.check = check
        blocking = [issue.code for issue in check.issues if issue.severity == "blocking"]
        detail = f"; blocking: {', '.join(blocking)}" if blocking else ""
        super().__init__(
            f"task {check.task_id!r} rejected by quality gate (score {check.score:.1f}{detail})"
        )


class RollbackFailure(OrchestrationError):
    """Restoring a checkpoint failed; the workspace state is no longer trusted."""

    def __init__(self, message: str, *, checkpoint_id: str, task_id: str) -> None:
        self.checkpoint_id = checkpoint_id
        self.task_id = task_id
        super().__init__(f"rollback of task {task_id!r} from {checkpoint_id}: {message}")


class WorkspaceIOError(OrchestrationError, OSError):
    """A checkpoint could not be captured, so the task never started."""

    def __init__(self, message: str, *, task_id: str | None = None) -> None:
        self.task_id = task_id
        super().__init__(message)

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


__all__ = [
    "AgentExecutionError",
    "OrchestrationError",
    "PlanningError",
    "QualityGateFailure",
    "RollbackFailure",
    "ValidationError",
    "WorkspaceIOError",
]
