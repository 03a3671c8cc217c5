"""Workspace writes, checkpoints, rollback, and the version-control port."""

from codegen_orchestrator.integration_plane.checkpoints import CheckpointManager
from codegen_orchestrator.integration_plane.rollback import RollbackManager
from codegen_orchestrator.integration_plane.vcs import (
    GitCommandError,
    GitVersionControl,
    InMemoryVersionControl,
    VersionControlError,
    VersionControlPort,
)
from codegen_orchestrator.integration_plane.workspace import DEFAULT_EXCLUDED_DIRS, Workspace

__all__ = [
    "DEFAULT_EXCLUDED_DIRS",
    "CheckpointManager",
    "GitCommandError",
    "GitVersionControl",
    "InMemoryVersionControl",
    "RollbackManager",
    "VersionControlError",
    "VersionControlPort",
    "Workspace",
]
