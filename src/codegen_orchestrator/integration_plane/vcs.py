"""Version-control port used by checkpoints and rollback.

The orchestrator never commits. It only records the current revision when a
checkpoint is taken and, when configured to prefer it, hard-resets to that
revision before restoring file snapshots.
"""

from __future__ import annotations

import os
import shutil
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from structlog.typing import FilteringBoundLogger


class VersionControlError(RuntimeError):
    """Base error for version-control failures."""


class GitCommandError(VersionControlError):
    """Raised when a git subprocess exits non-zero."""

    def __init__(
        self,
        *,
        command: Sequence[str],
        returncode: int,
        stdout: str,
        stderr: str,
    ) -> None:
        self.command = tuple(command)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        message = f"git command failed ({returncode}): {' '.join(command)}"
        if stderr.strip():
            message = f"{message}: {stderr.strip()}"
        super().__init__(message)


@dataclass(frozen=True, slots=True)
class CommandResult:
    command: tuple[str, ...]
    cwd: str
    returncode: int
    stdout: str
    stderr: str


class VersionControlPort(ABC):
    """Minimal capability the checkpoint and rollback managers need."""

    @abstractmethod
    def is_available(self) -> bool:
        """True when the workspace is under this version control system."""

    @abstractmethod
    def current_revision(self) -> str | None:
        """The checked-out revision, or ``None`` when there is none yet."""

    @abstractmethod
    def reset_hard(self, revision: str) -> None:
        """Discard working-tree changes and move to ``revision``."""


class GitVersionControl(VersionControlPort):
    """``git`` subprocess adapter rooted at the workspace."""

    def __init__(
        self,
        repo_path: Path | str,
        *,
        git_binary: str = "git",
        env_overrides: Mapping[str, str] | None = None,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        self.repo_path = Path(repo_path)
        self._git_binary = git_binary
        self._env_overrides = dict(env_overrides or {})
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def is_available(self) -> bool:
        if shutil.which(self._git_binary) is None or not self.repo_path.is_dir():
            return False
        result = self._run_git(["rev-parse", "--is-inside-work-tree"], check=False)
        return result.returncode == 0 and result.stdout.strip() == "true"

    def current_revision(self) -> str | None:
        result = self._run_git(["rev-parse", "--verify", "--quiet", "HEAD"], check=False)
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def reset_hard(self, revision: str) -> None:
        if not revision or revision.startswith("-"):
            raise VersionControlError(f"refusing to reset to unsafe revision {revision!r}")
        self._run_git(["reset", "--hard", "--quiet", revision])
        self._logger.info("vcs_reset_hard", revision=revision, repo=self.repo_path.as_posix())

    def _run_git(self, args: Sequence[str], *, check: bool = True) -> CommandResult:
        command = (self._git_binary, *args)
        run_cwd = self.repo_path.resolve()
        env = os.environ.copy()
        env["GIT_TERMINAL_PROMPT"] = "0"
        env.setdefault("GIT_CONFIG_NOSYSTEM", "1")
        env.update(self._env_overrides)

        try:
            completed = subprocess.run(
                command,
                cwd=run_cwd,
                env=env,
                text=True,
                capture_output=True,
                check=False,
            )
        except OSError as exc:
            raise VersionControlError(f"cannot run {self._git_binary}: {exc}") from exc

        result = CommandResult(
            command=command,
            cwd=run_cwd.as_posix(),
            returncode=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
        )
        if check and result.returncode != 0:
            raise GitCommandError(
                command=result.command,
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        return result


class InMemoryVersionControl(VersionControlPort):
    """Test double that records revisions and resets without touching disk."""

    def __init__(
        self,
        revision: str | None = "rev-0",
        *,
        available: bool = True,
        fail_reset: bool = False,
    ) -> None:
        self.revision = revision
        self.available = available
        self.fail_reset = fail_reset
        self.resets: list[str] = []
        self._counter = 0

    def is_available(self) -> bool:
        return self.available

    def current_revision(self) -> str | None:
        return self.revision

    def reset_hard(self, revision: str) -> None:
        if self.fail_reset:
            raise VersionControlError(f"reset to {revision} failed")
        self.resets.append(revision)
        self.revision = revision

    def commit(self) -> str:
        """Advance to a new synthetic revision and return it."""
        self._counter += 1
        self.revision = f"rev-{self._counter}"
        return self.revision


__all__ = [
    "CommandResult",
    "GitCommandError",
    "GitVersionControl",
    "InMemoryVersionControl",
    "VersionControlError",
    "VersionControlPort",
]
