"""Control plane: wave scheduling and the orchestrator entry point.

``GenerationOrchestrator`` is imported from
:mod:`codegen_orchestrator.control_plane.controller`.
"""

from codegen_orchestrator.control_plane.scheduler import (
    PathConflict,
    WaveScheduler,
    find_path_conflicts,
)

__all__ = ["PathConflict", "WaveScheduler", "find_path_conflicts"]
