"""Restore a task's checkpoint byte for byte."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from codegen_orchestrator.domain.errors import RollbackFailure
from codegen_orchestrator.integration_plane.vcs import VersionControlError
from codegen_orchestrator.utils.fs import (
    atomic_write,
    remove_empty_directory,
    resolve_in_workspace,
    safe_delete,
)
from codegen_orchestrator.utils.hashing import sha256_file

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from codegen_orchestrator.domain.models import Checkpoint, FileSnapshot
    from codegen_orchestrator.integration_plane.vcs import VersionControlPort


class RollbackManager:
    """Undoes a task's writes from its checkpoint.

    Every failure surfaces as ``RollbackFailure``: once a restore is partial
    the workspace can no longer be trusted and the run must stop.
    """

    def __init__(
        self,
        workspace_root: Path | str,
        *,
        vcs: VersionControlPort | None = None,
        prefer_vcs: bool = False,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        self.workspace_root = Path(workspace_root)
        self._vcs = vcs
        self._prefer_vcs = prefer_vcs
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def rollback(self, checkpoint: Checkpoint) -> None:
        if self._prefer_vcs and self._vcs is not None and checkpoint.vcs_revision:
            try:
                self._vcs.reset_hard(checkpoint.vcs_revision)
            except VersionControlError as exc:
                raise self._failure(checkpoint, f"vcs reset failed: {exc}") from exc

        for snapshot in checkpoint.files:
            try:
                self._restore(snapshot)
            except (OSError, ValueError) as exc:
                raise self._failure(checkpoint, f"cannot restore {snapshot.path}: {exc}") from exc

        for relative_dir in checkpoint.absent_dirs:
            target = self.workspace_root / relative_dir
            if not target.is_dir():
                continue
            try:
                remove_empty_directory(target, self.workspace_root)
            except (OSError, ValueError) as exc:
                raise self._failure(checkpoint, f"cannot remove {relative_dir}: {exc}") from exc

        for snapshot in checkpoint.files:
            mismatch = self._verify(snapshot)
            if mismatch is not None:
                raise self._failure(checkpoint, mismatch)

        self._logger.info(
            "checkpoint_restored",
            task_id=checkpoint.task_id,
            checkpoint_id=checkpoint.checkpoint_id,
            paths=list(checkpoint.paths),
        )

    def _restore(self, snapshot: FileSnapshot) -> None:
        target = resolve_in_workspace(self.workspace_root, snapshot.path)
        if snapshot.existed:
            if target.is_dir() and not target.is_symlink():
                raise IsADirectoryError(f"a directory now occupies {snapshot.path}")
            atomic_write(target, snapshot.content or b"")
            return
        if target.is_dir() and not target.is_symlink():
            raise IsADirectoryError(f"a directory now occupies {snapshot.path}")
        safe_delete(target, self.workspace_root)

    def _verify(self, snapshot: FileSnapshot) -> str | None:
        target = resolve_in_workspace(self.workspace_root, snapshot.path)
        if not snapshot.existed:
            if target.exists() or target.is_symlink():
                return f"{snapshot.path} still exists after rollback"
            return None
        try:
            restored = sha256_file(target)
        except OSError as exc:
            return f"cannot verify {snapshot.path}: {exc}"
        if restored != snapshot.sha256:
            return f"{snapshot.path} hash mismatch after rollback"
        return None

    @staticmethod
    def _failure(checkpoint: Checkpoint, message: str) -> RollbackFailure:
        return RollbackFailure(
            message, checkpoint_id=checkpoint.checkpoint_id, task_id=checkpoint.task_id
        )


__all__ = ["RollbackManager"]
