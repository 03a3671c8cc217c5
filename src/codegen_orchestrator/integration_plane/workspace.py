"""Workspace access: existing-file listing and atomic materialization of results."""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING, Final

import structlog

from codegen_orchestrator.domain.errors import WorkspaceIOError
from codegen_orchestrator.utils.fs import atomic_write, resolve_in_workspace

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from codegen_orchestrator.domain.models import GenerationResult

DEFAULT_EXCLUDED_DIRS: Final[frozenset[str]] = frozenset(
    {".git", ".codegen", "node_modules", "__pycache__", ".venv", "venv", ".mypy_cache"}
)


class Workspace:
    """The directory tree generated files are written into."""

    def __init__(
        self,
        root: Path | str,
        *,
        excluded_dirs: frozenset[str] = DEFAULT_EXCLUDED_DIRS,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        self.root = Path(root)
        self._excluded_dirs = excluded_dirs
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def ensure_exists(self) -> None:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise WorkspaceIOError(f"cannot create workspace root {self.root}: {exc}") from exc

    def list_files(self) -> tuple[str, ...]:
        """Sorted workspace-relative POSIX paths of every regular file."""

        if not self.root.is_dir():
            return ()
        found: list[str] = []
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = sorted(name for name in dirnames if name not in self._excluded_dirs)
            base = Path(dirpath)
            for filename in filenames:
                found.append((base / filename).relative_to(self.root).as_posix())
        return tuple(sorted(found))

    def path_for(self, relative_path: str) -> Path:
        return resolve_in_workspace(self.root, relative_path)

    def write_result(self, result: GenerationResult) -> tuple[str, ...]:
        """Write every file of ``result`` atomically; returns the paths written.

        A failure part way through leaves earlier files in place; the caller
        rolls the task back from its checkpoint.
        """

        written: list[str] = []
        for item in result.files:
            try:
                atomic_write(self.path_for(item.path), item.content)
            except (OSError, ValueError) as exc:
                raise WorkspaceIOError(
                    f"cannot write {item.path}: {exc}", task_id=result.task_id
                ) from exc
            written.append(item.path)
        self._logger.debug("result_written", task_id=result.task_id, paths=written)
        return tuple(written)


__all__ = ["DEFAULT_EXCLUDED_DIRS", "Workspace"]
