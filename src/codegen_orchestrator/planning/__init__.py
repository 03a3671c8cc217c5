"""Planning layer: the dependency graph and the architecture planner.

``ArchitecturePlanner`` is imported from
:mod:`codegen_orchestrator.planning.architect`.
"""

from codegen_orchestrator.planning.task_graph import CycleError, TaskGraph, UnknownDependencyError

__all__ = ["CycleError", "TaskGraph", "UnknownDependencyError"]
