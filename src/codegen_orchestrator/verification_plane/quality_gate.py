"""
codegen-orchestrator — quality gate

File: src/codegen_orchestrator/verification_plane/quality_gate.py

Purpose
- Decides whether a generation result may be committed.

Functional requirements
- Gates inspect the result (and the task's declared paths) only; they never
  read or write the workspace.
- ``ThresholdQualityGate`` scores 100 minus weighted penalties, clamped to
  0..100, and passes when the score meets the threshold and no issue is
  blocking.
- Built-in evaluators are addressed by name from configuration.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Mapping
from typing import TYPE_CHECKING, Final, Protocol, runtime_checkable

from codegen_orchestrator.constants import DEFAULT_QUALITY_THRESHOLD, MAX_QUALITY_SCORE
from codegen_orchestrator.domain.models import (
    IssueSeverity,
    QualityCheckResult,
    QualityGateConfig,
    QualityIssue,
)

if TYPE_CHECKING:
    from codegen_orchestrator.domain.models import GenerationResult, GenerationTask

Evaluator = Callable[["GenerationResult", "GenerationTask | None"], Iterable[QualityIssue]]

SEVERITY_PENALTIES: Final[Mapping[IssueSeverity, float]] = {
    IssueSeverity.BLOCKING: 100.0,
    IssueSeverity.WARNING: 10.0,
    IssueSeverity.INFO: 0.0,
}

_PLACEHOLDER_RE: Final[re.Pattern[str]] = re.compile(
    r"\b(?:TODO|FIXME|XXX)\b|\bNotImplemented(?:Error)?\b|not implemented",
    flags=re.IGNORECASE,
)


@runtime_checkable
class QualityGate(Protocol):
    name: str

    def evaluate(
        self, result: GenerationResult, task: GenerationTask | None = None
    ) -> QualityCheckResult: ...


class AlwaysPassGate:
    """Accepts every result with a perfect score."""

    name = "always_pass"

    def evaluate(
        self, result: GenerationResult, task: GenerationTask | None = None
    ) -> QualityCheckResult:
        return QualityCheckResult(
            task_id=result.task_id, passed=True, score=MAX_QUALITY_SCORE, gate=self.name
        )


class ThresholdQualityGate:
    """Runs evaluators and compares the penalty-adjusted score to a threshold."""

    name = "threshold"

    def __init__(
        self,
        evaluators: Iterable[Evaluator | str] = (),
        *,
        threshold: float = DEFAULT_QUALITY_THRESHOLD,
    ) -> None:
        if not 0.0 <= threshold <= MAX_QUALITY_SCORE:
            raise ValueError("threshold must be within 0..100")
        self.threshold = float(threshold)
        self.evaluators: tuple[Evaluator, ...] = tuple(
            resolve_evaluator(item) if isinstance(item, str) else item for item in evaluators
        )

    def evaluate(
        self, result: GenerationResult, task: GenerationTask | None = None
    ) -> QualityCheckResult:
        issues: list[QualityIssue] = []
        for evaluator in self.evaluators:
            issues.extend(evaluator(result, task))

        penalty = sum(SEVERITY_PENALTIES[issue.severity] for issue in issues)
        score = min(MAX_QUALITY_SCORE, max(0.0, MAX_QUALITY_SCORE - penalty))
        blocking = any(issue.severity is IssueSeverity.BLOCKING for issue in issues)
        return QualityCheckResult(
            task_id=result.task_id,
            passed=score >= self.threshold and not blocking,
            score=score,
            issues=tuple(issues),
            gate=self.name,
        )


# ---------------------------------------------------------------------------
# Built-in evaluators
# ---------------------------------------------------------------------------


def empty_output(result: GenerationResult, task: GenerationTask | None) -> list[QualityIssue]:
    """Blocking when a task that declares outputs produced nothing."""

    expected = bool(task.output_paths) if task is not None else True
    if not result.files and expected:
        return [
            QualityIssue(
                code="empty_output",
                message="agent produced no files",
                severity=IssueSeverity.BLOCKING,
            )
        ]
    issues = []
    for item in result.files:
        if not item.content.strip():
            issues.append(
                QualityIssue(
                    code="empty_file",
                    message="generated file is empty",
                    severity=IssueSeverity.WARNING,
                    path=item.path,
                )
            )
    return issues


def undeclared_path(result: GenerationResult, task: GenerationTask | None) -> list[QualityIssue]:
    if task is None:
        return []
    declared = set(task.touched_paths)
    return [
        QualityIssue(
            code="undeclared_path",
            message="file is outside the task's declared paths",
            severity=IssueSeverity.BLOCKING,
            path=item.path,
        )
        for item in result.files
        if item.path not in declared
    ]


def placeholder_marker(
    result: GenerationResult, task: GenerationTask | None
) -> list[QualityIssue]:
    issues = []
    for item in result.files:
        hits = len(_PLACEHOLDER_RE.findall(item.content))
        if hits:
            issues.append(
                QualityIssue(
                    code="placeholder_marker",
                    message=f"{hits} placeholder marker(s) left in generated code",
                    severity=IssueSeverity.WARNING,
                    path=item.path,
                )
            )
    return issues


def agent_warnings(result: GenerationResult, task: GenerationTask | None) -> list[QualityIssue]:
    return [
        QualityIssue(code="agent_warning", message=warning, severity=IssueSeverity.WARNING)
        for warning in result.warnings
    ]


BUILTIN_EVALUATORS: Final[Mapping[str, Evaluator]] = {
    "agent_warnings": agent_warnings,
    "empty_output": empty_output,
    "placeholder_marker": placeholder_marker,
    "undeclared_path": undeclared_path,
}


def resolve_evaluator(name: str) -> Evaluator:
    try:
        return BUILTIN_EVALUATORS[name]
    except KeyError:
        known = ", ".join(sorted(BUILTIN_EVALUATORS))
        raise ValueError(f"unknown quality evaluator {name!r}; known: {known}") from None


def build_quality_gate(config: QualityGateConfig) -> QualityGate:
    """Instantiate the gate described by a plan's ``QualityGateConfig``."""

    if config.kind == AlwaysPassGate.name:
        return AlwaysPassGate()
    if config.kind == ThresholdQualityGate.name:
        return ThresholdQualityGate(config.evaluators, threshold=config.threshold)
    raise ValueError(f"unknown quality gate kind {config.kind!r}")


__all__ = [
    "AlwaysPassGate",
    "BUILTIN_EVALUATORS",
    "Evaluator",
    "QualityGate",
    "SEVERITY_PENALTIES",
    "ThresholdQualityGate",
    "agent_warnings",
    "build_quality_gate",
    "empty_output",
    "placeholder_marker",
    "resolve_evaluator",
    "undeclared_path",
]
