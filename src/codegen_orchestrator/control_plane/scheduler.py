"""Deterministic wave scheduler for generation tasks."""

from __future__ import annotations

from dataclasses import dataclass
from itertools import combinations
from typing import TYPE_CHECKING

from codegen_orchestrator.domain.errors import PlanningError
from codegen_orchestrator.planning.task_graph import CycleError, TaskGraph, UnknownDependencyError
from codegen_orchestrator.utils.fs import paths_overlap

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from codegen_orchestrator.domain.models import GenerationTask


@dataclass(frozen=True, slots=True)
class PathConflict:
    """Two tasks of one wave that may write overlapping paths."""

    left_task: str
    right_task: str
    left_path: str
    right_path: str


class WaveScheduler:
    """Splits a task set into barrier-separated waves.

    Tasks inside one wave have no dependency on each other and write disjoint
    paths, so they may run concurrently; a wave starts only after every task
    of the previous wave has resolved.
    """

    __slots__ = ("_max_workers",)

    def __init__(self, *, max_workers: int = 4) -> None:
        if max_workers <= 0:
            raise ValueError("max_workers must be > 0")
        self._max_workers = max_workers

    @property
    def max_workers(self) -> int:
        return self._max_workers

    def compute_waves(self, tasks: Iterable[GenerationTask]) -> tuple[tuple[str, ...], ...]:
        """Return waves of task ids or raise :class:`PlanningError`.

        Unknown dependency references and cycles are planning errors; so are
        overlapping declared paths between two tasks of the same wave.
        """

        task_list = list(tasks)
        try:
            graph = TaskGraph.from_tasks(task_list)
            waves = graph.waves()
        except UnknownDependencyError as exc:
            raise PlanningError(str(exc), task_ids=exc.missing) from exc
        except CycleError as exc:
            cycle = exc.cycles[0] if exc.cycles else ()
            raise PlanningError(str(exc), task_ids=exc.participants, cycle=cycle) from exc

        by_id = {task.task_id: task for task in task_list}
        for index, wave in enumerate(waves):
            conflicts = find_path_conflicts([by_id[task_id] for task_id in wave])
            if conflicts:
                first = conflicts[0]
                raise PlanningError(
                    f"wave {index}: tasks {first.left_task!r} and {first.right_task!r} "
                    f"both write {first.left_path!r}"
                    + ("" if first.left_path == first.right_path else f" / {first.right_path!r}"),
                    task_ids=(first.left_task, first.right_task),
                )
        return waves

    def pool_size(self, wave_tasks: Sequence[GenerationTask]) -> int:
        """Worker count for one wave: distinct agent types, capped by ``max_workers``."""

        if not wave_tasks:
            return 0
        return min(len({task.agent_type for task in wave_tasks}), self._max_workers)


def find_path_conflicts(tasks: Sequence[GenerationTask]) -> tuple[PathConflict, ...]:
    """All pairwise path overlaps among ``tasks``, in deterministic order."""

    ordered = sorted(tasks, key=lambda task: task.task_id)
    conflicts: list[PathConflict] = []
    for left, right in combinations(ordered, 2):
        for left_path in left.touched_paths:
            for right_path in right.touched_paths:
                if paths_overlap(left_path, right_path):
                    conflicts.append(
                        PathConflict(left.task_id, right.task_id, left_path, right_path)
                    )
    return tuple(conflicts)


__all__ = ["PathConflict", "WaveScheduler", "find_path_conflicts"]
