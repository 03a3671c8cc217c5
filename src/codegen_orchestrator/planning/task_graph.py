"""Dependency graph over generation tasks.

An edge ``(parent, child)`` means ``child`` depends on ``parent``. Every
traversal visits ids in sorted order, so waves, cycle reports and critical
paths come out identical for identical input.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from codegen_orchestrator.domain.models import GenerationTask


class CycleError(ValueError):
    """The graph has at least one cycle; ``cycles`` holds closed paths."""

    def __init__(self, cycles: Iterable[Sequence[str]]) -> None:
        self.cycles: tuple[tuple[str, ...], ...] = tuple(tuple(path) for path in cycles)
        shown = "; ".join(" -> ".join(path) for path in self.cycles[:3])
        more = " ..." if len(self.cycles) > 3 else ""
        super().__init__(f"dependency cycle: {shown}{more}" if shown else "dependency cycle")

    @property
    def participants(self) -> tuple[str, ...]:
        return tuple(sorted({node for path in self.cycles for node in path}))


class UnknownDependencyError(KeyError):
    """Some task depends on an id that is not in the graph."""

    def __init__(self, missing: Mapping[str, Iterable[str]]) -> None:
        self.missing = {task_id: tuple(sorted(refs)) for task_id, refs in sorted(missing.items())}
        detail = "; ".join(f"{task_id} -> {', '.join(refs)}" for task_id, refs in self.missing.items())
        super().__init__(f"unknown dependency reference(s): {detail}")

    def __str__(self) -> str:
        return str(self.args[0])


class TaskGraph:
    __slots__ = ("_dependencies", "_dependents")

    def __init__(
        self,
        nodes: Iterable[str] = (),
        edges: Iterable[tuple[str, str]] = (),
    ) -> None:
        self._dependencies: dict[str, set[str]] = {}
        self._dependents: dict[str, set[str]] = {}
        for node in nodes:
            self.add_node(node)
        for parent, child in edges:
            self.add_edge(parent, child)

    @classmethod
    def from_tasks(cls, tasks: Iterable[GenerationTask]) -> TaskGraph:
        """Graph of ``tasks`` and their ``depends_on`` edges.

        Raises :class:`UnknownDependencyError` listing every dangling reference.
        """

        task_list = list(tasks)
        graph = cls(task.task_id for task in task_list)
        missing: dict[str, list[str]] = {}
        for task in task_list:
            for dependency in task.depends_on:
                if dependency in graph._dependencies:
                    graph.add_edge(dependency, task.task_id)
                else:
                    missing.setdefault(task.task_id, []).append(dependency)
        if missing:
            raise UnknownDependencyError(missing)
        return graph

    @property
    def nodes(self) -> tuple[str, ...]:
        return tuple(sorted(self._dependencies))

    @property
    def edges(self) -> tuple[tuple[str, str], ...]:
        return tuple(
            (parent, child)
            for parent in self.nodes
            for child in sorted(self._dependents[parent])
        )

    def add_node(self, node: str) -> None:
        if not isinstance(node, str) or not node:
            raise ValueError("node id must be a non-empty string")
        self._dependencies.setdefault(node, set())
        self._dependents.setdefault(node, set())

    def add_edge(self, parent: str, child: str) -> None:
        self.add_node(parent)
        self.add_node(child)
        self._dependencies[child].add(parent)
        self._dependents[parent].add(child)

    def dependencies_of(self, node: str, *, transitive: bool = False) -> tuple[str, ...]:
        return self._neighbours(self._dependencies, node, transitive)

    def dependents_of(self, node: str, *, transitive: bool = False) -> tuple[str, ...]:
        return self._neighbours(self._dependents, node, transitive)

    def waves(self) -> tuple[tuple[str, ...], ...]:
        """Levels of the graph: each wave depends only on earlier waves.

        Raises :class:`CycleError` when some node can never be placed.
        """

        remaining = {node: len(parents) for node, parents in self._dependencies.items()}
        wave = sorted(node for node, count in remaining.items() if count == 0)
        levels: list[tuple[str, ...]] = []
        while wave:
            levels.append(tuple(wave))
            unlocked: set[str] = set()
            for node in wave:
                del remaining[node]
                for child in self._dependents[node]:
                    remaining[child] -= 1
                    if remaining[child] == 0:
                        unlocked.add(child)
            wave = sorted(unlocked)
        if remaining:
            raise CycleError(self.detect_cycles())
        return tuple(levels)

    def topological_sort(self) -> tuple[str, ...]:
        return tuple(node for wave in self.waves() for node in wave)

    def detect_cycles(self) -> tuple[tuple[str, ...], ...]:
        """Closed paths like ``("a", "b", "a")``, each starting at its smallest id."""

        found: set[tuple[str, ...]] = set()
        finished: set[str] = set()
        for root in self.nodes:
            if root in finished:
                continue
            path = [root]
            position = {root: 0}
            pending: list[Iterator[str]] = [iter(sorted(self._dependents[root]))]
            while pending:
                child = next(pending[-1], None)
                if child is None:
                    pending.pop()
                    node = path.pop()
                    del position[node]
                    finished.add(node)
                elif child in position:
                    found.add(_rotate_cycle(path[position[child] :]))
                elif child not in finished:
                    position[child] = len(path)
                    path.append(child)
                    pending.append(iter(sorted(self._dependents[child])))
        return tuple(sorted(found))

    def critical_path(self, weights: Mapping[str, float] | None = None) -> tuple[str, ...]:
        """Heaviest dependency chain; unweighted nodes count 1.0, ties go to smaller ids."""

        best: dict[str, tuple[float, tuple[str, ...]]] = {}
        for node in self.topological_sort():
            total, chain = 0.0, ()
            parents = self._dependencies[node]
            if parents:
                total, chain = best[min(parents, key=lambda parent: (-best[parent][0], parent))]
            best[node] = (total + _node_weight(node, weights), (*chain, node))
        if not best:
            return ()
        return min(best.values(), key=lambda entry: (-entry[0], entry[1][-1]))[1]

    def _neighbours(
        self, adjacency: Mapping[str, set[str]], node: str, transitive: bool
    ) -> tuple[str, ...]:
        if node not in adjacency:
            raise KeyError(f"unknown node: {node}")
        if not transitive:
            return tuple(sorted(adjacency[node]))
        seen: set[str] = set()
        stack = list(adjacency[node])
        while stack:
            current = stack.pop()
            if current not in seen:
                seen.add(current)
                stack.extend(adjacency[current] - seen)
        return tuple(sorted(seen))


def _rotate_cycle(core: Sequence[str]) -> tuple[str, ...]:
    start = min(range(len(core)), key=lambda index: core[index])
    rotated = tuple(core[start:]) + tuple(core[:start])
    return (*rotated, rotated[0])


def _node_weight(node: str, weights: Mapping[str, float] | None) -> float:
    value = 1.0 if weights is None else weights.get(node, 1.0)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"weight for node '{node}' must be numeric")
    return float(value)


__all__ = ["CycleError", "TaskGraph", "UnknownDependencyError"]
