"""
codegen-orchestrator — generation orchestrator

File: src/codegen_orchestrator/control_plane/controller.py

Purpose
- Public entrypoint tying ingestion, planning, dispatch, verification and
  checkpoint/rollback together: ``analyze`` -> ``plan`` -> ``execute``.

Functional requirements
- Waves run strictly in sequence; tasks inside a wave run on a bounded
  worker pool.
- Per task: checkpoint, dispatch, quality gate, then write or roll back.
  The gate only sees the result object; a gate that raises rejects it.
  A task that does not succeed never leaves files behind, and every task
  depending on it (directly or transitively) is skipped without its agent
  being called.
- A checkpoint failure marks the task ``failed`` without rollback; agent
  errors, timeouts, gate rejections and write failures roll the task back.
- A rollback failure aborts the run and is re-raised to the caller.
- ``cancel`` stops new waves and new tasks; calls already in flight finish.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Final

import structlog

from codegen_orchestrator.config.schema import EngineSettings
from codegen_orchestrator.constants import MAX_QUALITY_SCORE
from codegen_orchestrator.control_plane.scheduler import WaveScheduler
from codegen_orchestrator.domain.errors import (
    AgentExecutionError,
    QualityGateFailure,
    RollbackFailure,
    WorkspaceIOError,
)
from codegen_orchestrator.domain.ids import generate_run_id
from codegen_orchestrator.domain.models import (
    AgentContext,
    AnalysisReport,
    GenerationPlan,
    IssueSeverity,
    QualityCheckResult,
    QualityGateConfig,
    QualityIssue,
    RequirementCategory,
    RunResult,
    RunStatus,
    RunSummary,
    TaskOutcome,
    TaskStatus,
)
from codegen_orchestrator.integration_plane.checkpoints import CheckpointManager
from codegen_orchestrator.integration_plane.rollback import RollbackManager
from codegen_orchestrator.integration_plane.vcs import GitVersionControl
from codegen_orchestrator.integration_plane.workspace import Workspace
from codegen_orchestrator.observability.logging import correlation_scope
from codegen_orchestrator.observability.progress import ProgressTracker
from codegen_orchestrator.planning.architect import ArchitecturePlanner, agent_type_for
from codegen_orchestrator.spec_ingestion.project_context import (
    build_project_context,
    detect_patterns,
)
from codegen_orchestrator.spec_ingestion.requirements import parse_requirements
from codegen_orchestrator.synthesis_plane.dispatch import AgentDispatcher
from codegen_orchestrator.utils.concurrency import CancellationToken, WorkerPool
from codegen_orchestrator.verification_plane.quality_gate import build_quality_gate

if TYPE_CHECKING:
    from collections.abc import Sequence

    from structlog.typing import FilteringBoundLogger

    from codegen_orchestrator.domain.models import (
        GenerationResult,
        GenerationTask,
        ProjectContext,
        Requirement,
    )
    from codegen_orchestrator.integration_plane.vcs import VersionControlPort
    from codegen_orchestrator.observability.events import EventBus
    from codegen_orchestrator.synthesis_plane.registry import AgentRegistry
    from codegen_orchestrator.verification_plane.quality_gate import QualityGate

_UNKNOWN: Final[str] = "unknown"
_CONTAINED_ERRORS: Final = (AgentExecutionError, QualityGateFailure, WorkspaceIOError)


class GenerationOrchestrator:
    """Analyzes requirements, plans generation tasks and executes plans."""

    def __init__(
        self,
        workspace_root: Path | str,
        registry: AgentRegistry,
        *,
        settings: EngineSettings | None = None,
        quality_gate: QualityGate | None = None,
        vcs: VersionControlPort | None = None,
        bus: EventBus | None = None,
        templates: Mapping[str, str] | None = None,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        self.workspace_root = Path(workspace_root)
        self.registry = registry
        self.settings = (
            settings if settings is not None else EngineSettings.defaults(workspace_root)
        )
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        if vcs is None and self.settings.use_vcs:
            vcs = GitVersionControl(self.workspace_root, logger=self._logger)
        self._vcs = vcs
        self._quality_gate = quality_gate
        self._bus = bus
        self._templates: Mapping[str, str] = dict(templates or {})
        self._scheduler = WaveScheduler(max_workers=self.settings.max_workers)
        self._workspace = Workspace(self.workspace_root, logger=self._logger)
        self._dispatcher = AgentDispatcher(
            registry,
            default_timeout_seconds=self.settings.task_timeout_seconds,
            logger=self._logger,
        )
        self._cancel_token: CancellationToken | None = None
        self._pending_cancel: str | None = None

    # ------------------------------------------------------------------
    # Analyze / plan
    # ------------------------------------------------------------------

    def analyze(self, raw: object) -> AnalysisReport:
        """Parse requirements and inspect the workspace. Never writes."""

        requirements = parse_requirements(raw)
        context = build_project_context(self.workspace_root, logger=self._logger)
        patterns = detect_patterns(self.workspace_root, context.source_dirs)
        required = tuple(sorted({agent_type_for(item) for item in requirements}))

        compatible = [item for item in requirements if self._is_compatible(item, context)]
        score = (
            round(100.0 * len(compatible) / len(requirements), 1)
            if requirements
            else MAX_QUALITY_SCORE
        )
        report = AnalysisReport(
            requirements=requirements,
            project_context=context,
            patterns=patterns,
            required_agent_types=required,
            compatibility_score=score,
            recommendations=self._analysis_recommendations(requirements, context, required),
        )
        self._logger.info(
            "analysis_completed",
            requirements=len(requirements),
            project_type=context.project_type,
            framework=context.framework,
            compatibility_score=score,
            missing_agents=[name for name in required if not self.registry.has(name)],
        )
        return report

    def plan(self, report: AnalysisReport) -> GenerationPlan:
        planner = ArchitecturePlanner(
            scheduler=self._scheduler,
            quality_gate=QualityGateConfig(
                kind=self.settings.quality_gate,
                threshold=self.settings.quality_threshold,
                evaluators=self.settings.quality_evaluators,
            ),
            logger=self._logger,
        )
        return planner.plan(report, self.registry)

    # ------------------------------------------------------------------
    # Execute
    # ------------------------------------------------------------------

    def execute(self, plan: GenerationPlan, *, run_id: str | None = None) -> RunResult:
        """Synchronous wrapper around ``execute_async``."""
        return asyncio.run(self.execute_async(plan, run_id=run_id))

    def cancel(self, reason: str = "cancelled by caller") -> None:
        """Stop starting new work. Applies to the next run when none is active."""

        if self._cancel_token is not None:
            self._cancel_token.cancel(reason)
        else:
            self._pending_cancel = reason
        self._logger.info("run_cancel_requested", reason=reason)

    async def execute_async(
        self, plan: GenerationPlan, *, run_id: str | None = None
    ) -> RunResult:
        run_id = run_id or generate_run_id()
        token = CancellationToken()
        if self._pending_cancel is not None:
            token.cancel(self._pending_cancel)
            self._pending_cancel = None
        self._cancel_token = token

        try:
            with correlation_scope(run_id=run_id):
                return await self._run_plan(plan, run_id, token)
        finally:
            self._cancel_token = None

    async def _run_plan(
        self, plan: GenerationPlan, run_id: str, token: CancellationToken
    ) -> RunResult:
        started_at = datetime.now(tz=UTC)
        started = time.monotonic()
        tracker = ProgressTracker(run_id, bus=self._bus)
        gate = self._quality_gate or build_quality_gate(plan.quality_gate)
        checkpoints = CheckpointManager(self.workspace_root, vcs=self._vcs, logger=self._logger)
        rollbacks = RollbackManager(
            self.workspace_root,
            vcs=self._vcs,
            prefer_vcs=self.settings.prefer_vcs_restore,
            logger=self._logger,
        )
        self._workspace.ensure_exists()

        outcomes: dict[str, TaskOutcome] = {}
        halted_reason: str | None = None
        cancel_skipped: list[str] = []

        self._logger.info(
            "run_started", plan_id=plan.plan_id, tasks=len(plan.tasks), waves=len(plan.waves)
        )
        await tracker.run_started(plan)

        try:
            for index, wave in enumerate(plan.waves):
                stop_reason = _cancelled_reason(token) if token.is_cancelled else halted_reason
                if stop_reason is not None:
                    for task_id in wave:
                        outcome = self._skipped(plan.task(task_id), index, stop_reason)
                        outcomes[task_id] = outcome
                        if token.is_cancelled:
                            cancel_skipped.append(task_id)
                        await tracker.task_resolved(outcome)
                    continue

                runnable: list[GenerationTask] = []
                blocked: list[tuple[GenerationTask, str]] = []
                for task_id in wave:
                    task = plan.task(task_id)
                    blocker = next(
                        (
                            dep
                            for dep in sorted(task.depends_on)
                            if outcomes[dep].status is not TaskStatus.SUCCEEDED
                        ),
                        None,
                    )
                    if blocker is None:
                        runnable.append(task)
                    else:
                        blocked.append((task, blocker))

                pool_size = self._scheduler.pool_size(runnable)
                await tracker.wave_started(index, wave, pool_size)

                wave_outcomes: list[TaskOutcome] = []
                for task, blocker in blocked:
                    outcome = self._skipped(
                        task, index, f"dependency {blocker!r} {outcomes[blocker].status.value}"
                    )
                    outcomes[task.task_id] = outcome
                    wave_outcomes.append(outcome)
                    self._logger.info(
                        "task_skipped", task_id=task.task_id, wave=index, blocked_by=blocker
                    )
                    await tracker.task_resolved(outcome)

                if runnable:
                    existing_files = self._workspace.list_files()
                    pool: WorkerPool[TaskOutcome] = WorkerPool(pool_size)
                    coroutines = [
                        self._run_task(
                            task,
                            index,
                            plan=plan,
                            gate=gate,
                            token=token,
                            tracker=tracker,
                            checkpoints=checkpoints,
                            rollbacks=rollbacks,
                            existing_files=existing_files,
                        )
                        for task in runnable
                    ]
                    async for outcome in pool.run(coroutines):
                        outcomes[outcome.task_id] = outcome
                        wave_outcomes.append(outcome)
                        if outcome.status is TaskStatus.SKIPPED:
                            cancel_skipped.append(outcome.task_id)

                wave_outcomes.sort(key=lambda item: item.task_id)
                await tracker.wave_completed(index, wave_outcomes)

                failed = [
                    item.task_id
                    for item in wave_outcomes
                    if item.status in {TaskStatus.FAILED, TaskStatus.ROLLED_BACK}
                ]
                if failed and self.settings.fail_fast and halted_reason is None:
                    halted_reason = f"fail-fast after task {failed[0]!r} did not succeed"
                    self._logger.warning("run_halted", wave=index, reason=halted_reason)
        except RollbackFailure as exc:
            self._logger.error(
                "run_aborted",
                task_id=exc.task_id,
                checkpoint_id=exc.checkpoint_id,
                error=str(exc),
            )
            await tracker.run_aborted(str(exc), task_id=exc.task_id)
            raise

        result = self._build_result(
            plan,
            run_id=run_id,
            outcomes=outcomes,
            gate=gate,
            cancelled=token.is_cancelled and bool(cancel_skipped),
            cancel_reason=token.reason,
            started_at=started_at,
            duration_seconds=time.monotonic() - started,
            tracker=tracker,
        )
        self._logger.info(
            "run_completed",
            status=result.status.value,
            succeeded=result.summary.succeeded,
            rolled_back=result.summary.rolled_back,
            skipped=result.summary.skipped,
            files=result.summary.total_files_generated,
        )
        await tracker.run_completed(result)
        return result

    async def _run_task(
        self,
        task: GenerationTask,
        wave: int,
        *,
        plan: GenerationPlan,
        gate: QualityGate,
        token: CancellationToken,
        tracker: ProgressTracker,
        checkpoints: CheckpointManager,
        rollbacks: RollbackManager,
        existing_files: tuple[str, ...],
    ) -> TaskOutcome:
        with correlation_scope(task_id=task.task_id, wave=wave):
            if token.is_cancelled:
                outcome = self._skipped(task, wave, _cancelled_reason(token))
                await tracker.task_resolved(outcome)
                return outcome

            started = time.monotonic()
            try:
                checkpoint = checkpoints.capture(task, metrics=tracker.metrics.snapshot())
            except WorkspaceIOError as exc:
                self._logger.warning("checkpoint_failed", task_id=task.task_id, error=str(exc))
                outcome = TaskOutcome(
                    task_id=task.task_id,
                    agent_type=task.agent_type,
                    status=TaskStatus.FAILED,
                    wave=wave,
                    error=str(exc),
                    error_type=type(exc).__name__,
                    duration_seconds=time.monotonic() - started,
                )
                await tracker.task_resolved(outcome)
                return outcome

            await tracker.task_started(task, wave)
            context = AgentContext(
                task=task,
                project_context=plan.project_context,
                requirements=plan.requirements,
                architecture=plan.architecture,
                plan=plan,
                existing_files=existing_files,
                templates=self._templates,
            )

            check: QualityCheckResult | None = None
            try:
                result = await self._dispatcher.dispatch(task, context, cancel_token=token)
                check = self._judge(gate, result, task)
                if not check.passed:
                    raise QualityGateFailure(check)
                self._workspace.write_result(result)
            except _CONTAINED_ERRORS as exc:
                rollbacks.rollback(checkpoints.pop(checkpoint.checkpoint_id))
                self._logger.warning(
                    "task_rolled_back",
                    task_id=task.task_id,
                    checkpoint_id=checkpoint.checkpoint_id,
                    error_type=type(exc).__name__,
                    error=str(exc),
                )
                outcome = TaskOutcome(
                    task_id=task.task_id,
                    agent_type=task.agent_type,
                    status=TaskStatus.ROLLED_BACK,
                    wave=wave,
                    quality_check=check,
                    error=str(exc),
                    error_type=type(exc).__name__,
                    checkpoint_id=checkpoint.checkpoint_id,
                    duration_seconds=time.monotonic() - started,
                )
            else:
                checkpoints.discard(checkpoint.checkpoint_id)
                self._logger.info(
                    "task_committed",
                    task_id=task.task_id,
                    files=list(result.paths),
                    score=check.score,
                )
                outcome = TaskOutcome(
                    task_id=task.task_id,
                    agent_type=task.agent_type,
                    status=TaskStatus.SUCCEEDED,
                    wave=wave,
                    result=result,
                    quality_check=check,
                    checkpoint_id=checkpoint.checkpoint_id,
                    duration_seconds=time.monotonic() - started,
                )

            await tracker.task_resolved(outcome)
            return outcome

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _skipped(task: GenerationTask, wave: int, reason: str) -> TaskOutcome:
        return TaskOutcome(
            task_id=task.task_id,
            agent_type=task.agent_type,
            status=TaskStatus.SKIPPED,
            wave=wave,
            error=reason,
        )

    def _judge(
        self, gate: QualityGate, result: GenerationResult, task: GenerationTask
    ) -> QualityCheckResult:
        """Gate verdict for ``result``; a gate that raises rejects it."""

        gate_name = str(getattr(gate, "name", type(gate).__name__))
        try:
            return gate.evaluate(result, task)
        except Exception as exc:  # noqa: BLE001 - pluggable gate boundary.
            self._logger.warning(
                "quality_gate_errored",
                task_id=task.task_id,
                gate=gate_name,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return QualityCheckResult(
                task_id=task.task_id,
                passed=False,
                score=0.0,
                issues=(
                    QualityIssue(
                        code="gate_error",
                        message=f"{type(exc).__name__}: {exc}",
                        severity=IssueSeverity.BLOCKING,
                    ),
                ),
                gate=gate_name,
            )

    def _build_result(
        self,
        plan: GenerationPlan,
        *,
        run_id: str,
        outcomes: Mapping[str, TaskOutcome],
        gate: QualityGate,
        cancelled: bool,
        cancel_reason: str | None,
        started_at: datetime,
        duration_seconds: float,
        tracker: ProgressTracker,
    ) -> RunResult:
        ordered = [outcomes[task_id] for wave in plan.waves for task_id in wave]
        by_status: dict[TaskStatus, list[str]] = {status: [] for status in TaskStatus}
        for outcome in ordered:
            by_status[outcome.status].append(outcome.task_id)

        quality_checks = tuple(
            item.quality_check for item in ordered if item.quality_check is not None
        )
        quality_score = (
            round(sum(check.score for check in quality_checks) / len(quality_checks), 1)
            if quality_checks
            else MAX_QUALITY_SCORE
        )
        metrics = tracker.metrics.snapshot()
        generated = tuple(item for outcome in ordered for item in outcome.committed_files)

        if cancelled:
            status = RunStatus.CANCELLED
        elif len(by_status[TaskStatus.SUCCEEDED]) == len(ordered):
            status = RunStatus.COMPLETED
        else:
            status = RunStatus.PARTIAL

        summary = RunSummary(
            total_tasks=len(ordered),
            total_files_generated=len(generated),
            succeeded=len(by_status[TaskStatus.SUCCEEDED]),
            failed=metrics.tasks_failed,
            rolled_back=len(by_status[TaskStatus.ROLLED_BACK]),
            skipped=len(by_status[TaskStatus.SKIPPED]),
            quality_score=quality_score,
            cancelled=cancelled,
            duration_seconds=round(duration_seconds, 6),
            recommendations=run_recommendations(
                ordered,
                quality_checks=quality_checks,
                gate_name=gate.name,
                cancel_reason=cancel_reason if cancelled else None,
            ),
        )
        return RunResult(
            run_id=run_id,
            plan_id=plan.plan_id,
            status=status,
            generated_files=generated,
            failed_tasks={
                item.task_id: item.error or item.status.value
                for item in ordered
                if item.status in {TaskStatus.FAILED, TaskStatus.ROLLED_BACK}
            },
            rolled_back_tasks=tuple(by_status[TaskStatus.ROLLED_BACK]),
            skipped_tasks=tuple(by_status[TaskStatus.SKIPPED]),
            quality_checks=quality_checks,
            outcomes=tuple(ordered),
            metrics=metrics,
            summary=summary,
            started_at=started_at,
            finished_at=datetime.now(tz=UTC),
        )

    def _is_compatible(self, requirement: Requirement, context: ProjectContext) -> bool:
        if not self.registry.has(agent_type_for(requirement)):
            return False
        for key, detected in (("language", context.language), ("framework", context.framework)):
            wanted = requirement.parameters.get(key)
            if isinstance(wanted, str) and detected != _UNKNOWN:
                if wanted.strip().lower() != detected.lower():
                    return False
        return True

    def _analysis_recommendations(
        self,
        requirements: Sequence[Requirement],
        context: ProjectContext,
        required: Sequence[str],
    ) -> tuple[str, ...]:
        notes: list[str] = []
        for agent_type in required:
            if self.registry.has(agent_type):
                continue
            count = sum(1 for item in requirements if agent_type_for(item) == agent_type)
            notes.append(f"register an agent for {agent_type!r} ({count} requirement(s) need it)")
        for requirement in requirements:
            for key, detected in (
                ("language", context.language),
                ("framework", context.framework),
            ):
                wanted = requirement.parameters.get(key)
                if isinstance(wanted, str) and detected != _UNKNOWN:
                    if wanted.strip().lower() != detected.lower():
                        notes.append(
                            f"{requirement.requirement_id} targets {key} {wanted!r} "
                            f"but the project uses {detected!r}"
                        )
        if context.project_type == _UNKNOWN:
            notes.append("no project manifest detected; output paths use TypeScript defaults")
        has_tests = any(item.category is RequirementCategory.TESTING for item in requirements)
        if context.test_framework == "none" and not has_tests:
            notes.append("no test framework detected; consider adding testing requirements")
        return tuple(notes)


def _cancelled_reason(token: CancellationToken) -> str:
    return f"run cancelled: {token.reason or 'no reason given'}"


def run_recommendations(
    outcomes: Sequence[TaskOutcome],
    *,
    quality_checks: Sequence[QualityCheckResult] = (),
    gate_name: str = "always_pass",
    cancel_reason: str | None = None,
) -> tuple[str, ...]:
    """Follow-up advice shown after a run."""

    notes: list[str] = []
    rolled_back = [item for item in outcomes if item.status is TaskStatus.ROLLED_BACK]
    failed = [item for item in outcomes if item.status is TaskStatus.FAILED]
    skipped = [item for item in outcomes if item.status is TaskStatus.SKIPPED]

    for outcome in rolled_back:
        if outcome.quality_check is not None and not outcome.quality_check.passed:
            codes = sorted({issue.code for issue in outcome.quality_check.issues})
            notes.append(
                f"review quality issues for {outcome.task_id}: {', '.join(codes) or 'low score'}"
            )
        else:
            notes.append(f"fix agent {outcome.agent_type!r} and re-run {outcome.task_id}")
    for outcome in failed:
        notes.append(f"check workspace permissions for {outcome.task_id}: {outcome.error}")
    if cancel_reason is not None:
        notes.append(
            f"run was cancelled ({cancel_reason}); re-run to generate {len(skipped)} task(s)"
        )
    elif skipped:
        notes.append(f"re-run after fixing failures to generate {len(skipped)} skipped task(s)")

    warnings = sum(len(check.issues) for check in quality_checks if check.passed)
    if warnings:
        notes.append(f"address {warnings} quality warning(s) in committed output")
    if gate_name == "always_pass" and outcomes:
        notes.append("enable the threshold quality gate to score generated output")
    return tuple(notes)


__all__ = ["GenerationOrchestrator", "run_recommendations"]
