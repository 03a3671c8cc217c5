"""
codegen-orchestrator — CLI subprocess smoke contracts

File: tests/integration/test_cli_smoke.py

Purpose
- Drive `python -m codegen_orchestrator` analyze/plan/run/config end to end.
- Verify exit codes, JSON payloads, and the files a run leaves behind.
- Confirm a rejected run leaves a git worktree exactly as committed.
"""

from __future__ import annotations

import json
import os
import shutil
import subprocess
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[2]
SRC_PATH = PROJECT_ROOT / "src"

_REQUIREMENTS = """
requirements:
  - type: component
    name: Button
  - type: api
    name: users
""".lstrip()


def _run_cli(repo_root: Path, *args: str) -> subprocess.CompletedProcess[str]:
    env = os.environ.copy()
    existing_pythonpath = env.get("PYTHONPATH")
    src_pythonpath = str(SRC_PATH)
    env["PYTHONPATH"] = (
        src_pythonpath if not existing_pythonpath else f"{src_pythonpath}:{existing_pythonpath}"
    )
    for key in [name for name in env if name.startswith("CODEGEN_")]:
        del env[key]
    env["NO_COLOR"] = "1"
    env.setdefault("GIT_TERMINAL_PROMPT", "0")
    env.setdefault("GIT_CONFIG_NOSYSTEM", "1")
    return subprocess.run(
        [sys.executable, "-m", "codegen_orchestrator", *args],
        cwd=repo_root,
        text=True,
        capture_output=True,
        check=False,
        env=env,
    )


def _git(repo_root: Path, *args: str) -> str:
    env = os.environ.copy()
    env.setdefault("GIT_TERMINAL_PROMPT", "0")
    env.setdefault("GIT_CONFIG_NOSYSTEM", "1")
    completed = subprocess.run(
        ["git", *args],
        cwd=repo_root,
        text=True,
        capture_output=True,
        check=False,
        env=env,
    )
    if completed.returncode != 0:
        command = "git " + " ".join(args)
        detail = completed.stderr.strip() or completed.stdout.strip()
        raise RuntimeError(f"git command failed: {command}: {detail}")
    return completed.stdout


def _write(path: Path, contents: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(contents, encoding="utf-8")


def _seed_workspace(root: Path, *, template: str = "// {{ name }}") -> Path:
    _write(root / "reqs.yaml", _REQUIREMENTS)
    templates = root.parent / f"{root.name}-templates"
    _write(templates / "default.j2", template)
    return templates


def test_version_flag(tmp_path: Path) -> None:
    completed = _run_cli(tmp_path, "--version")

    assert completed.returncode == 0
    assert completed.stdout.startswith("codegen ")


def test_analyze_renders_project_facts(tmp_path: Path) -> None:
    templates = _seed_workspace(tmp_path)

    completed = _run_cli(tmp_path, "analyze", "reqs.yaml", "--templates", str(templates))

    assert completed.returncode == 0, completed.stderr
    assert "Requirements: 2" in completed.stdout
    assert "Language: unknown" in completed.stdout
    assert "Project type: unknown" in completed.stdout
    assert "component-button" in completed.stdout
    assert "$ codegen plan reqs.yaml" in completed.stdout


def test_plan_json_lists_waves_and_outputs(tmp_path: Path) -> None:
    templates = _seed_workspace(tmp_path)

    completed = _run_cli(tmp_path, "plan", "reqs.yaml", "--templates", str(templates), "--json")

    assert completed.returncode == 0, completed.stderr
    payload = json.loads(completed.stdout)
    assert payload["command"] == "plan"
    assert payload["waves"] == [["api-users", "component-button"]]
    outputs = {task["task_id"]: task["input_spec"]["output_paths"] for task in payload["tasks"]}
    assert outputs == {
        "api-users": ["api/users.ts"],
        "component-button": ["components/Button.tsx"],
    }
    assert not (tmp_path / "components").exists()


def test_plan_without_agents_is_a_config_error(tmp_path: Path) -> None:
    _seed_workspace(tmp_path)

    completed = _run_cli(tmp_path, "plan", "reqs.yaml")

    assert completed.returncode == 2
    assert "planning failed" in completed.stderr


def test_missing_requirements_file_is_a_config_error(tmp_path: Path) -> None:
    completed = _run_cli(tmp_path, "analyze", "absent.yaml")

    assert completed.returncode == 2
    assert "requirements file not found" in completed.stderr


def test_run_writes_files_and_run_log(tmp_path: Path) -> None:
    templates = _seed_workspace(tmp_path)

    completed = _run_cli(
        tmp_path,
        "run",
        "reqs.yaml",
        "--templates",
        str(templates),
        "--workspace",
        str(tmp_path),
        "--json",
    )

    assert completed.returncode == 0, completed.stderr
    payload = json.loads(completed.stdout)
    assert payload["status"] == "completed"
    assert sorted(payload["generated_files"]) == ["api/users.ts", "components/Button.tsx"]
    assert payload["metrics"]["tasks_succeeded"] == 2
    assert (tmp_path / "components" / "Button.tsx").read_text(encoding="utf-8") == "// Button\n"
    assert (tmp_path / "api" / "users.ts").read_text(encoding="utf-8") == "// users\n"
    log_path = Path(payload["log_path"])
    assert log_path.is_file()
    assert log_path.is_relative_to(tmp_path.resolve() / ".codegen" / "logs")


def test_rejected_run_rolls_back_and_exits_partial(tmp_path: Path) -> None:
    templates = _seed_workspace(tmp_path, template="// TODO: {{ name }}")
    _write(
        tmp_path / "orchestrator.toml",
        '[quality]\ngate = "threshold"\nthreshold = 95.0\n',
    )

    completed = _run_cli(tmp_path, "run", "reqs.yaml", "--templates", str(templates))

    assert completed.returncode == 1, completed.stderr
    assert "Status: partial" in completed.stdout
    assert "rolled_back" in completed.stdout
    assert not (tmp_path / "components").exists()
    assert not (tmp_path / "api").exists()


def test_config_shows_profile_overlay(tmp_path: Path) -> None:
    completed = _run_cli(tmp_path, "config", "--profile", "strict", "--json")

    assert completed.returncode == 0, completed.stderr
    payload = json.loads(completed.stdout)
    assert payload["active_profile"] == "strict"
    assert payload["config"]["quality"]["gate"] == "threshold"
    assert payload["config"]["engine"]["fail_fast"] is True


@pytest.mark.integration
@pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")
def test_rejected_run_leaves_git_worktree_clean(tmp_path: Path) -> None:
    repo = tmp_path / "repo"
    repo.mkdir()
    templates = _seed_workspace(repo, template="// FIXME {{ name }}")
    _write(repo / ".gitignore", ".codegen/\n")
    _write(repo / "NOTES.txt", "seed\n")
    _write(
        repo / "orchestrator.toml",
        '[quality]\ngate = "threshold"\nthreshold = 95.0\n\n[checkpoint]\nuse_vcs = true\n',
    )
    _git(repo, "init", "--quiet")
    _git(repo, "config", "user.email", "dev@example.com")
    _git(repo, "config", "user.name", "Dev")
    _git(repo, "add", "--all")
    _git(repo, "commit", "--quiet", "-m", "seed")

    completed = _run_cli(repo, "run", "reqs.yaml", "--templates", str(templates), "--json")

    assert completed.returncode == 1, completed.stderr
    payload = json.loads(completed.stdout)
    assert payload["status"] == "partial"
    assert sorted(payload["rolled_back_tasks"]) == ["api-users", "component-button"]
    assert _git(repo, "status", "--porcelain") == ""
