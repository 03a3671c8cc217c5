"""
codegen-orchestrator — test suite for the version-control port.

File: tests/unit/integration_plane/test_vcs.py

Purpose
- Validate the git adapter over local temporary repositories and the
  in-memory double used by checkpoint tests.
"""

from __future__ import annotations

import os
import shutil
import subprocess
from typing import TYPE_CHECKING

import pytest

from codegen_orchestrator.integration_plane.vcs import (
    GitCommandError,
    GitVersionControl,
    InMemoryVersionControl,
    VersionControlError,
)

if TYPE_CHECKING:
    from pathlib import Path

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")


def run_git(cwd: Path, *args: str) -> str:
    env = os.environ.copy()
    env["GIT_TERMINAL_PROMPT"] = "0"
    env.setdefault("GIT_CONFIG_NOSYSTEM", "1")
    completed = subprocess.run(
        ["git", *args],
        cwd=cwd,
        env=env,
        text=True,
        capture_output=True,
        check=False,
    )
    if completed.returncode != 0:
        raise AssertionError(f"git {' '.join(args)} failed:\n{completed.stderr}")
    return completed.stdout.strip()


@pytest.fixture(autouse=True)
def isolated_git_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_TERMINAL_PROMPT", "0")


def init_repo(tmp_path: Path) -> Path:
    repo = tmp_path / "repo"
    repo.mkdir()
    run_git(repo, "init", "--quiet")
    run_git(repo, "config", "user.email", "dev@example.com")
    run_git(repo, "config", "user.name", "Dev")
    return repo


def commit_file(repo: Path, rel_path: str, content: str) -> str:
    path = repo / rel_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    run_git(repo, "add", "--all")
    run_git(repo, "commit", "--quiet", "-m", f"update {rel_path}")
    return run_git(repo, "rev-parse", "HEAD")


@requires_git
def test_plain_directory_is_not_available(tmp_path: Path) -> None:
    plain = tmp_path / "plain"
    plain.mkdir()

    assert not GitVersionControl(plain).is_available()
    assert not GitVersionControl(tmp_path / "missing").is_available()


@requires_git
def test_fresh_repository_has_no_revision(tmp_path: Path) -> None:
    vcs = GitVersionControl(init_repo(tmp_path))

    assert vcs.is_available()
    assert vcs.current_revision() is None


@requires_git
def test_reset_hard_restores_committed_state(tmp_path: Path) -> None:
    repo = init_repo(tmp_path)
    first = commit_file(repo, "src/app.ts", "one\n")
    commit_file(repo, "src/app.ts", "two\n")
    vcs = GitVersionControl(repo)

    (repo / "src" / "app.ts").write_text("dirty\n", encoding="utf-8")
    vcs.reset_hard(first)

    assert vcs.current_revision() == first
    assert (repo / "src" / "app.ts").read_text(encoding="utf-8") == "one\n"


@requires_git
def test_reset_to_unknown_revision_raises_command_error(tmp_path: Path) -> None:
    repo = init_repo(tmp_path)
    commit_file(repo, "a.txt", "a\n")

    with pytest.raises(GitCommandError) as error:
        GitVersionControl(repo).reset_hard("0" * 40)
    assert error.value.returncode != 0
    assert error.value.command[:3] == ("git", "reset", "--hard")


@pytest.mark.parametrize("revision", ["", "--hard", "-x"])
def test_reset_refuses_option_like_revisions(tmp_path: Path, revision: str) -> None:
    with pytest.raises(VersionControlError, match="unsafe revision"):
        GitVersionControl(tmp_path).reset_hard(revision)


def test_missing_git_binary_is_a_version_control_error(tmp_path: Path) -> None:
    vcs = GitVersionControl(tmp_path, git_binary=str(tmp_path / "no-such-git"))

    assert not vcs.is_available()
    with pytest.raises(VersionControlError, match="cannot run"):
        vcs.current_revision()


def test_in_memory_double_tracks_resets_and_commits() -> None:
    vcs = InMemoryVersionControl()

    assert vcs.current_revision() == "rev-0"
    assert vcs.commit() == "rev-1"
    vcs.reset_hard("rev-0")
    assert vcs.resets == ["rev-0"]
    assert vcs.current_revision() == "rev-0"

    failing = InMemoryVersionControl(fail_reset=True)
    with pytest.raises(VersionControlError):
        failing.reset_hard("rev-0")
