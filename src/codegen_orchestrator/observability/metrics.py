"""Run metrics accumulated from terminal task outcomes.

Counters only move forward, and only when a task reaches a terminal state.
Every mutation goes through one lock, so concurrent wave workers can report
outcomes without coordinating with each other.
"""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Final

from codegen_orchestrator.domain.models import RunMetrics, TaskStatus

if TYPE_CHECKING:
    from collections.abc import Mapping

    from codegen_orchestrator.domain.models import JSONValue, TaskOutcome

_MetricLabels = tuple[tuple[str, str], ...]

FILES_GENERATED: Final[str] = "files_generated"
LINES_OF_CODE: Final[str] = "lines_of_code"
TASKS_SUCCEEDED: Final[str] = "tasks_succeeded"
TASKS_FAILED: Final[str] = "tasks_failed"
TASKS_ROLLED_BACK: Final[str] = "tasks_rolled_back"
TASKS_SKIPPED: Final[str] = "tasks_skipped"
ROLLBACKS: Final[str] = "rollbacks"
COMPONENTS_CREATED: Final[str] = "components_created"
TESTS_GENERATED: Final[str] = "tests_generated"
TASK_DURATION_SECONDS: Final[str] = "task_duration_seconds"

_STATUS_COUNTER: Final[dict[TaskStatus, str]] = {
    TaskStatus.SUCCEEDED: TASKS_SUCCEEDED,
    TaskStatus.FAILED: TASKS_FAILED,
    TaskStatus.ROLLED_BACK: TASKS_ROLLED_BACK,
    TaskStatus.SKIPPED: TASKS_SKIPPED,
}


@dataclass(frozen=True, order=True, slots=True)
class _MetricKey:
    name: str
    labels: _MetricLabels


@dataclass(slots=True)
class _DistributionState:
    count: int = 0
    total: float = 0.0
    minimum: float | None = None
    maximum: float | None = None

    def observe(self, value: float) -> None:
        self.count += 1
        self.total += value
        if self.minimum is None or value < self.minimum:
            self.minimum = value
        if self.maximum is None or value > self.maximum:
            self.maximum = value

    def as_dict(self) -> dict[str, JSONValue]:
        return {
            "count": self.count,
            "sum": self.total,
            "min": self.minimum,
            "max": self.maximum,
            "avg": self.total / self.count if self.count else 0.0,
        }


class RunMetricsAccumulator:
    """Single serialization point for run metrics.

    ``record`` accepts each task's terminal outcome exactly once. Recording a
    non-terminal outcome or the same task twice is a programming error.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._created_at = datetime.now(tz=UTC)
        self._counters: dict[_MetricKey, int] = {}
        self._distributions: dict[_MetricKey, _DistributionState] = {}
        self._recorded: set[str] = set()

    def record(self, outcome: TaskOutcome) -> RunMetrics:
        """Fold a terminal outcome into the counters and return the new snapshot."""

        if not outcome.status.is_terminal:
            raise ValueError(f"task {outcome.task_id!r} is not terminal: {outcome.status}")

        labels = {"agent_type": outcome.agent_type}
        with self._lock:
            if outcome.task_id in self._recorded:
                raise ValueError(f"outcome for task {outcome.task_id!r} already recorded")
            self._recorded.add(outcome.task_id)

            self._inc(_STATUS_COUNTER[outcome.status])
            self._inc(_STATUS_COUNTER[outcome.status], labels=labels)
            if outcome.status is TaskStatus.ROLLED_BACK:
                self._inc(ROLLBACKS)
                # A rolled-back task also counts as failed work.
                self._inc(TASKS_FAILED)
            if outcome.status is not TaskStatus.SKIPPED:
                self._observe(TASK_DURATION_SECONDS, outcome.duration_seconds, labels=labels)

            files = outcome.committed_files
            if files:
                assert outcome.result is not None
                self._inc(FILES_GENERATED, len(files))
                self._inc(FILES_GENERATED, len(files), labels=labels)
                self._inc(LINES_OF_CODE, outcome.result.lines_of_code)
                if outcome.agent_type == "component":
                    self._inc(COMPONENTS_CREATED, len(files))
                elif outcome.agent_type == "testing":
                    self._inc(TESTS_GENERATED, len(files))

            return self._snapshot_locked()

    def snapshot(self) -> RunMetrics:
        with self._lock:
            return self._snapshot_locked()

    def get_counter(self, name: str, *, labels: Mapping[str, str] | None = None) -> int:
        with self._lock:
            return self._counters.get(_metric_key(name, labels), 0)

    def export(self) -> dict[str, JSONValue]:
        """Detailed deterministic export including per-agent breakdowns."""

        with self._lock:
            counters = sorted(self._counters.items())
            distributions = sorted(self._distributions.items())
        return {
            "created_at": self._created_at.isoformat(timespec="seconds").replace("+00:00", "Z"),
            "counters": {_metric_identifier(key): value for key, value in counters},
            "distributions": {
                _metric_identifier(key): state.as_dict() for key, state in distributions
            },
        }

    def to_json(self, *, indent: int | None = None) -> str:
        return json.dumps(self.export(), sort_keys=True, indent=indent, ensure_ascii=False)

    def _inc(self, name: str, amount: int = 1, *, labels: Mapping[str, str] | None = None) -> None:
        if amount < 0:
            raise ValueError("counter increment amount must be >= 0")
        key = _metric_key(name, labels)
        self._counters[key] = self._counters.get(key, 0) + amount

    def _observe(self, name: str, value: float, *, labels: Mapping[str, str] | None = None) -> None:
        key = _metric_key(name, labels)
        self._distributions.setdefault(key, _DistributionState()).observe(value)

    def _snapshot_locked(self) -> RunMetrics:
        def total(name: str) -> int:
            return self._counters.get(_MetricKey(name, ()), 0)

        return RunMetrics(
            files_generated=total(FILES_GENERATED),
            lines_of_code=total(LINES_OF_CODE),
            tasks_succeeded=total(TASKS_SUCCEEDED),
            tasks_failed=total(TASKS_FAILED),
            tasks_rolled_back=total(TASKS_ROLLED_BACK),
            tasks_skipped=total(TASKS_SKIPPED),
            rollbacks=total(ROLLBACKS),
            components_created=total(COMPONENTS_CREATED),
            tests_generated=total(TESTS_GENERATED),
        )


def _metric_key(name: str, labels: Mapping[str, str] | None) -> _MetricKey:
    normalized = name.strip()
    if not normalized:
        raise ValueError("metric name must not be empty")
    return _MetricKey(name=normalized, labels=tuple(sorted((labels or {}).items())))


def _metric_identifier(key: _MetricKey) -> str:
    if not key.labels:
        return key.name
    labels = ",".join(f"{k}={v}" for k, v in key.labels)
    return f"{key.name}{{{labels}}}"


__all__ = [
    "COMPONENTS_CREATED",
    "FILES_GENERATED",
    "LINES_OF_CODE",
    "ROLLBACKS",
    "RunMetricsAccumulator",
    "TASKS_FAILED",
    "TASKS_ROLLED_BACK",
    "TASKS_SKIPPED",
    "TASKS_SUCCEEDED",
    "TESTS_GENERATED",
]
