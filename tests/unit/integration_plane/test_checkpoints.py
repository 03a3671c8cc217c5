"""
codegen-orchestrator — checkpoint, rollback and workspace tests

File: tests/unit/integration_plane/test_checkpoints.py

Purpose
- Validate that a checkpoint captured before a task can undo every write
  the task makes, byte for byte.

What this test file should cover
- Snapshot of existing and absent paths, including absent parent dirs.
- Rollback of created, modified and deleted files.
- Checkpoint stack bookkeeping (discard / pop).
- Failure modes: capture errors and unrecoverable rollbacks.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from codegen_orchestrator.domain.errors import RollbackFailure, WorkspaceIOError
from codegen_orchestrator.domain.models import (
    GeneratedFile,
    GenerationResult,
    GenerationTask,
    RunMetrics,
)
from codegen_orchestrator.integration_plane.checkpoints import CheckpointManager
from codegen_orchestrator.integration_plane.rollback import RollbackManager
from codegen_orchestrator.integration_plane.vcs import InMemoryVersionControl
from codegen_orchestrator.integration_plane.workspace import Workspace
from codegen_orchestrator.utils.hashing import create_manifest, sha256_bytes

if TYPE_CHECKING:
    from pathlib import Path


def _task(*outputs: str, modifies: tuple[str, ...] = ()) -> GenerationTask:
    return GenerationTask(
        task_id="component-card",
        agent_type="component",
        description="Generate component Card",
        input_spec={"output_paths": list(outputs), "modifies_paths": list(modifies)},
    )


def _result(**files: str) -> GenerationResult:
    return GenerationResult(
        task_id="component-card",
        files=tuple(GeneratedFile(path=path, content=content) for path, content in files.items()),
    )


def _seed(root: Path, relative: str, data: bytes) -> None:
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


def test_capture_records_existing_bytes_and_absent_paths(tmp_path: Path) -> None:
    _seed(tmp_path, "src/index.ts", b"export {}\r\n")
    manager = CheckpointManager(tmp_path)

    checkpoint = manager.capture(
        _task("src/components/card/Card.tsx", modifies=("src/index.ts",)),
        metrics=RunMetrics(tasks_succeeded=2),
    )

    by_path = {snapshot.path: snapshot for snapshot in checkpoint.files}
    assert checkpoint.paths == ("src/components/card/Card.tsx", "src/index.ts")
    assert by_path["src/index.ts"].existed
    assert by_path["src/index.ts"].content == b"export {}\r\n"
    assert by_path["src/index.ts"].sha256 == sha256_bytes(b"export {}\r\n")
    assert not by_path["src/components/card/Card.tsx"].existed
    assert checkpoint.absent_dirs == ("src/components/card", "src/components")
    assert checkpoint.metrics.tasks_succeeded == 2
    assert checkpoint.vcs_revision is None
    assert checkpoint.checkpoint_id.startswith("ckpt-")
    assert manager.active == (checkpoint,)


def test_rollback_restores_workspace_byte_for_byte(tmp_path: Path) -> None:
    _seed(tmp_path, "src/index.ts", b"export {}\r\n")
    _seed(tmp_path, "src/styles.css", b"body{}\n")
    before = create_manifest(tmp_path)
    task = _task("src/components/card/Card.tsx", modifies=("src/index.ts", "src/styles.css"))
    checkpoints = CheckpointManager(tmp_path)
    checkpoint = checkpoints.capture(task)

    Workspace(tmp_path).write_result(
        _result(**{"src/components/card/Card.tsx": "new\n", "src/index.ts": "changed\n"})
    )
    (tmp_path / "src" / "styles.css").unlink()

    RollbackManager(tmp_path).rollback(checkpoints.pop(checkpoint.checkpoint_id))

    assert create_manifest(tmp_path) == before
    assert not (tmp_path / "src" / "components").exists()
    assert checkpoints.active == ()


def test_rollback_keeps_directories_that_gained_other_files(tmp_path: Path) -> None:
    checkpoints = CheckpointManager(tmp_path)
    checkpoint = checkpoints.capture(_task("gen/a.ts"))
    _seed(tmp_path, "gen/a.ts", b"a")
    _seed(tmp_path, "gen/other.ts", b"kept")

    RollbackManager(tmp_path).rollback(checkpoint)

    assert not (tmp_path / "gen" / "a.ts").exists()
    assert (tmp_path / "gen" / "other.ts").read_bytes() == b"kept"


def test_discard_and_pop_release_checkpoints_once(tmp_path: Path) -> None:
    manager = CheckpointManager(tmp_path)
    first = manager.capture(_task("a.ts"))
    second = manager.capture(_task("b.ts"))

    assert manager.discard(first.checkpoint_id) == first
    assert manager.active == (second,)
    with pytest.raises(KeyError, match="already released"):
        manager.pop(first.checkpoint_id)


def test_capture_of_directory_path_fails(tmp_path: Path) -> None:
    (tmp_path / "src" / "Card.tsx").mkdir(parents=True)

    with pytest.raises(WorkspaceIOError, match="directory") as error:
        CheckpointManager(tmp_path).capture(_task("src/Card.tsx"))
    assert error.value.task_id == "component-card"


def test_capture_records_vcs_revision(tmp_path: Path) -> None:
    vcs = InMemoryVersionControl("rev-7")

    checkpoint = CheckpointManager(tmp_path, vcs=vcs).capture(_task("a.ts"))
    unavailable = CheckpointManager(
        tmp_path, vcs=InMemoryVersionControl(available=False)
    ).capture(_task("a.ts"))

    assert checkpoint.vcs_revision == "rev-7"
    assert unavailable.vcs_revision is None


def test_prefer_vcs_resets_before_restoring_snapshots(tmp_path: Path) -> None:
    vcs = InMemoryVersionControl("rev-3")
    checkpoint = CheckpointManager(tmp_path, vcs=vcs).capture(_task("a.ts"))
    _seed(tmp_path, "a.ts", b"generated")

    RollbackManager(tmp_path, vcs=vcs, prefer_vcs=True).rollback(checkpoint)
    RollbackManager(tmp_path, vcs=vcs).rollback(checkpoint)

    assert vcs.resets == ["rev-3"]
    assert not (tmp_path / "a.ts").exists()


def test_failed_vcs_reset_is_a_rollback_failure(tmp_path: Path) -> None:
    vcs = InMemoryVersionControl(fail_reset=True)
    checkpoint = CheckpointManager(tmp_path, vcs=vcs).capture(_task("a.ts"))

    with pytest.raises(RollbackFailure, match="vcs reset failed") as error:
        RollbackManager(tmp_path, vcs=vcs, prefer_vcs=True).rollback(checkpoint)
    assert error.value.checkpoint_id == checkpoint.checkpoint_id
    assert error.value.task_id == "component-card"


def test_directory_occupying_snapshot_path_is_a_rollback_failure(tmp_path: Path) -> None:
    checkpoint = CheckpointManager(tmp_path).capture(_task("out/a.ts"))
    (tmp_path / "out" / "a.ts").mkdir(parents=True)

    with pytest.raises(RollbackFailure, match="directory now occupies out/a.ts"):
        RollbackManager(tmp_path).rollback(checkpoint)


def test_workspace_lists_files_and_skips_tool_directories(tmp_path: Path) -> None:
    _seed(tmp_path, "src/b.ts", b"")
    _seed(tmp_path, "a.md", b"")
    _seed(tmp_path, "node_modules/pkg/index.js", b"")
    _seed(tmp_path, ".git/HEAD", b"")
    _seed(tmp_path, ".codegen/logs/run.jsonl", b"")

    assert Workspace(tmp_path).list_files() == ("a.md", "src/b.ts")
    assert Workspace(tmp_path / "missing").list_files() == ()


def test_workspace_write_result_is_confined_to_root(tmp_path: Path) -> None:
    workspace = Workspace(tmp_path)

    assert workspace.write_result(_result(**{"src/a.ts": "a\n"})) == ("src/a.ts",)
    assert (tmp_path / "src" / "a.ts").read_text(encoding="utf-8") == "a\n"

    (tmp_path / "src" / "blocker").write_text("file", encoding="utf-8")
    with pytest.raises(WorkspaceIOError, match="cannot write src/blocker/b.ts") as error:
        workspace.write_result(_result(**{"src/blocker/b.ts": "b\n"}))
    assert error.value.task_id == "component-card"
