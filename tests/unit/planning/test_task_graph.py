"""Unit tests for planning.task_graph."""

from __future__ import annotations

import random

import pytest

from codegen_orchestrator.domain.models import GenerationTask
from codegen_orchestrator.planning.task_graph import CycleError, TaskGraph, UnknownDependencyError


def _task(task_id: str, *deps: str) -> GenerationTask:
    return GenerationTask(
        task_id=task_id, agent_type="utility", description=task_id, depends_on=frozenset(deps)
    )


def test_diamond_graph_critical_path_correctness() -> None:
    graph = TaskGraph(
        edges=(
            ("A", "B"),
            ("A", "C"),
            ("B", "D"),
            ("C", "D"),
        )
    )

    critical = graph.critical_path(weights={"A": 1.0, "B": 4.0, "C": 2.0, "D": 1.0})
    assert critical == ("A", "B", "D")
    assert graph.critical_path() == ("A", "B", "D")


def test_cycle_detection_returns_cycle() -> None:
    graph = TaskGraph(
        edges=(
            ("A", "B"),
            ("B", "C"),
            ("C", "A"),
            ("C", "D"),
        )
    )

    cycles = graph.detect_cycles()
    assert cycles == (("A", "B", "C", "A"),)

    with pytest.raises(CycleError) as error:
        graph.topological_sort()
    assert error.value.participants == ("A", "B", "C")
    with pytest.raises(CycleError):
        graph.waves()


def test_self_loop_is_reported_as_cycle() -> None:
    graph = TaskGraph(edges=(("solo", "solo"),))
    assert graph.detect_cycles() == (("solo", "solo"),)


def test_dependency_queries_are_deterministic() -> None:
    graph = TaskGraph(
        nodes=("node-b", "node-a"),
        edges=(
            ("node-a", "node-c"),
            ("node-a", "node-b"),
            ("node-b", "node-d"),
            ("node-c", "node-d"),
        ),
    )

    assert graph.dependencies_of("node-d") == ("node-b", "node-c")
    assert graph.dependencies_of("node-d", transitive=True) == ("node-a", "node-b", "node-c")
    assert graph.dependents_of("node-a") == ("node-b", "node-c")
    assert graph.dependents_of("node-a", transitive=True) == ("node-b", "node-c", "node-d")
    assert graph.edges == (
        ("node-a", "node-b"),
        ("node-a", "node-c"),
        ("node-b", "node-d"),
        ("node-c", "node-d"),
    )
    with pytest.raises(KeyError):
        graph.dependents_of("node-z")


def test_waves_group_nodes_by_dependency_level() -> None:
    graph = TaskGraph.from_tasks(
        [_task("c", "a"), _task("a"), _task("b"), _task("d", "b", "c"), _task("e")]
    )

    assert graph.waves() == (("a", "b", "e"), ("c",), ("d",))


def test_from_tasks_rejects_unknown_dependencies() -> None:
    with pytest.raises(UnknownDependencyError) as error:
        TaskGraph.from_tasks([_task("a", "ghost", "phantom"), _task("b", "ghost")])

    assert error.value.missing == {"a": ("ghost", "phantom"), "b": ("ghost",)}
    assert "a -> ghost, phantom" in str(error.value)


def test_invalid_node_ids_and_weights_are_rejected() -> None:
    with pytest.raises(ValueError):
        TaskGraph(nodes=("",))
    with pytest.raises(TypeError):
        TaskGraph(nodes=("a",)).critical_path(weights={"a": True})


def test_seeded_random_dag_with_1000_nodes_topological_sort_stress() -> None:
    rng = random.Random(2_026_021_4)
    node_count = 1_000
    node_ids = [f"task-{index:04d}" for index in range(node_count)]

    graph = TaskGraph(nodes=node_ids)

    for child_index in range(1, node_count):
        fan_in = min(4, child_index)
        for parent_index in rng.sample(range(child_index), fan_in):
            if rng.random() < 0.55:
                graph.add_edge(node_ids[parent_index], node_ids[child_index])

    order = graph.topological_sort()
    assert len(order) == node_count

    position = {node_id: index for index, node_id in enumerate(order)}
    assert len(position) == node_count
    for parent, child in graph.edges:
        assert position[parent] < position[child]

    wave_of = {node: index for index, wave in enumerate(graph.waves()) for node in wave}
    for parent, child in graph.edges:
        assert wave_of[parent] < wave_of[child]
