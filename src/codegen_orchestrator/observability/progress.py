"""Progress tracker: couples terminal task outcomes to metrics and events."""

from __future__ import annotations

from typing import TYPE_CHECKING

from codegen_orchestrator.domain.events import EventType
from codegen_orchestrator.observability.events import EventBus
from codegen_orchestrator.observability.metrics import RunMetricsAccumulator

if TYPE_CHECKING:
    from collections.abc import Sequence

    from codegen_orchestrator.domain.models import (
        GenerationPlan,
        GenerationTask,
        RunMetrics,
        RunResult,
        TaskOutcome,
    )


class ProgressTracker:
    """Publishes lifecycle events for one run.

    ``task_resolved`` is the only path that touches the metrics accumulator,
    so metrics change exactly once per task and only on terminal states.
    """

    def __init__(
        self,
        run_id: str,
        *,
        bus: EventBus | None = None,
        metrics: RunMetricsAccumulator | None = None,
    ) -> None:
        self.run_id = run_id
        self.bus = bus if bus is not None else EventBus()
        self.metrics = metrics if metrics is not None else RunMetricsAccumulator()

    async def run_started(self, plan: GenerationPlan) -> None:
        await self.bus.emit_async(
            EventType.RUN_STARTED,
            {
                "plan_id": plan.plan_id,
                "task_count": len(plan.tasks),
                "wave_count": len(plan.waves),
            },
            run_id=self.run_id,
        )

    async def wave_started(self, index: int, task_ids: Sequence[str], pool_size: int) -> None:
        await self.bus.emit_async(
            EventType.WAVE_STARTED,
            {"wave": index, "task_ids": list(task_ids), "pool_size": pool_size},
            run_id=self.run_id,
        )

    async def task_started(self, task: GenerationTask, wave: int) -> None:
        await self.bus.emit_async(
            EventType.TASK_STARTED,
            {"task_id": task.task_id, "agent_type": task.agent_type, "wave": wave},
            run_id=self.run_id,
        )

    async def task_resolved(self, outcome: TaskOutcome) -> RunMetrics:
        snapshot = self.metrics.record(outcome)
        await self.bus.emit_async(
            EventType.TASK_RESOLVED,
            {
                "task_id": outcome.task_id,
                "agent_type": outcome.agent_type,
                "status": outcome.status.value,
                "wave": outcome.wave,
                "error": outcome.error,
                "files": [item.path for item in outcome.committed_files],
            },
            run_id=self.run_id,
        )
        await self.bus.emit_async(EventType.METRICS_UPDATED, snapshot.to_dict(), run_id=self.run_id)
        return snapshot

    async def wave_completed(self, index: int, outcomes: Sequence[TaskOutcome]) -> None:
        await self.bus.emit_async(
            EventType.WAVE_COMPLETED,
            {
                "wave": index,
                "statuses": {item.task_id: item.status.value for item in outcomes},
            },
            run_id=self.run_id,
        )

    async def run_completed(self, result: RunResult) -> None:
        event_type = EventType.RUN_CANCELLED if result.summary.cancelled else EventType.RUN_COMPLETED
        await self.bus.emit_async(
            event_type,
            {"status": result.status.value, "summary": result.summary.to_dict()},
            run_id=self.run_id,
        )

    async def run_aborted(self, reason: str, *, task_id: str | None = None) -> None:
        await self.bus.emit_async(
            EventType.RUN_ABORTED,
            {"reason": reason, "task_id": task_id},
            run_id=self.run_id,
        )


__all__ = ["ProgressTracker"]
