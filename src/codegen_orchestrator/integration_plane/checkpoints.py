"""
codegen-orchestrator — checkpoint capture

File: src/codegen_orchestrator/integration_plane/checkpoints.py

Purpose
- Snapshots every path a task may touch before its agent runs, so a failed
  or rejected task can be undone byte for byte.

Functional requirements
- A snapshot records either the exact prior bytes or the fact that the path
  did not exist. Parent directories that did not exist are recorded too, so
  rollback can remove directories the task created.
- When a version-control port is available the current revision is stored.
- Capture failures raise ``WorkspaceIOError``; the task must not start.
- Checkpoints live on a per-run stack: discarded on commit, consumed on
  rollback.
"""

from __future__ import annotations

import threading
from datetime import UTC, datetime
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

import structlog

from codegen_orchestrator.domain.errors import WorkspaceIOError
from codegen_orchestrator.domain.ids import generate_checkpoint_id
from codegen_orchestrator.domain.models import Checkpoint, FileSnapshot, RunMetrics
from codegen_orchestrator.integration_plane.vcs import VersionControlError
from codegen_orchestrator.utils.fs import read_bytes_if_exists, resolve_in_workspace
from codegen_orchestrator.utils.hashing import sha256_bytes

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from codegen_orchestrator.domain.models import GenerationTask
    from codegen_orchestrator.integration_plane.vcs import VersionControlPort


class CheckpointManager:
    """Captures and tracks checkpoints for one run."""

    def __init__(
        self,
        workspace_root: Path | str,
        *,
        vcs: VersionControlPort | None = None,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        self.workspace_root = Path(workspace_root)
        self._vcs = vcs
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._stack: list[Checkpoint] = []
        self._lock = threading.Lock()

    @property
    def active(self) -> tuple[Checkpoint, ...]:
        """Checkpoints neither committed nor rolled back, oldest first."""
        with self._lock:
            return tuple(self._stack)

    def capture(self, task: GenerationTask, *, metrics: RunMetrics | None = None) -> Checkpoint:
        try:
            snapshots = tuple(self._snapshot(path) for path in task.touched_paths)
            absent_dirs = self._absent_parent_dirs(task.touched_paths)
            revision = self._current_revision()
        except WorkspaceIOError as exc:
            exc.task_id = task.task_id
            raise
        except (OSError, ValueError) as exc:
            raise WorkspaceIOError(
                f"checkpoint for task {task.task_id!r} failed: {exc}", task_id=task.task_id
            ) from exc

        checkpoint = Checkpoint(
            checkpoint_id=generate_checkpoint_id(),
            task_id=task.task_id,
            created_at=datetime.now(tz=UTC),
            files=snapshots,
            vcs_revision=revision,
            absent_dirs=absent_dirs,
            metrics=metrics if metrics is not None else RunMetrics(),
        )
        with self._lock:
            self._stack.append(checkpoint)
        self._logger.debug(
            "checkpoint_captured",
            task_id=task.task_id,
            checkpoint_id=checkpoint.checkpoint_id,
            paths=list(checkpoint.paths),
            vcs_revision=revision,
        )
        return checkpoint

    def discard(self, checkpoint_id: str) -> Checkpoint:
        """Drop a checkpoint after its task committed."""
        return self._remove(checkpoint_id)

    def pop(self, checkpoint_id: str) -> Checkpoint:
        """Remove and return a checkpoint so it can be rolled back."""
        return self._remove(checkpoint_id)

    def _remove(self, checkpoint_id: str) -> Checkpoint:
        with self._lock:
            for index, checkpoint in enumerate(self._stack):
                if checkpoint.checkpoint_id == checkpoint_id:
                    return self._stack.pop(index)
        raise KeyError(f"unknown or already released checkpoint: {checkpoint_id}")

    def _snapshot(self, relative_path: str) -> FileSnapshot:
        target = resolve_in_workspace(self.workspace_root, relative_path)
        if target.is_dir():
            raise WorkspaceIOError(f"cannot snapshot {relative_path!r}: path is a directory")
        content = read_bytes_if_exists(target)
        if content is None:
            return FileSnapshot(path=relative_path, existed=False)
        return FileSnapshot(
            path=relative_path,
            existed=True,
            content=content,
            sha256=sha256_bytes(content),
        )

    def _absent_parent_dirs(self, paths: tuple[str, ...]) -> tuple[str, ...]:
        missing: set[str] = set()
        for relative_path in paths:
            for parent in PurePosixPath(relative_path).parents:
                if str(parent) == ".":
                    break
                if (self.workspace_root / parent).is_dir():
                    break
                missing.add(parent.as_posix())
        # Deepest first so rollback can remove them in order.
        return tuple(sorted(missing, key=lambda item: (-item.count("/"), item)))

    def _current_revision(self) -> str | None:
        if self._vcs is None:
            return None
        try:
            if not self._vcs.is_available():
                return None
            return self._vcs.current_revision()
        except VersionControlError as exc:
            raise WorkspaceIOError(f"cannot read current revision: {exc}") from exc


__all__ = ["CheckpointManager"]
