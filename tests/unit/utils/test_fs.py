"""Unit tests for filesystem and hashing helpers."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from codegen_orchestrator.utils.fs import (
    atomic_write,
    normalize_relative_path,
    paths_overlap,
    read_bytes_if_exists,
    remove_empty_directory,
    resolve_in_workspace,
    safe_delete,
)
from codegen_orchestrator.utils.hashing import create_manifest, sha256_text, stable_digest

if TYPE_CHECKING:
    from pathlib import Path

_SEGMENT = st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789_-", min_size=1, max_size=8)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("components/Button.tsx", "components/Button.tsx"),
        ("./src//api/users.ts", "src/api/users.ts"),
        ("src\\styles\\main.css", "src/styles/main.css"),
    ],
)
def test_normalize_relative_path(raw: str, expected: str) -> None:
    assert normalize_relative_path(raw) == expected


@pytest.mark.parametrize(
    "raw", ["", "  ", "/etc/passwd", "C:/temp/x", "../outside.ts", "a/../../b", "."]
)
def test_normalize_relative_path_rejects_unsafe_paths(raw: str) -> None:
    with pytest.raises(ValueError):
        normalize_relative_path(raw)


@settings(max_examples=50, deadline=None)
@given(st.lists(_SEGMENT, min_size=1, max_size=5))
def test_normalize_relative_path_is_idempotent(segments: list[str]) -> None:
    once = normalize_relative_path("./" + "/".join(segments))
    assert normalize_relative_path(once) == once


def test_paths_overlap_detects_prefix_directories() -> None:
    assert paths_overlap("src/api", "src/api/users.ts")
    assert paths_overlap("src/a.ts", "./src/a.ts")
    assert not paths_overlap("src/api", "src/apiary.ts")


def test_resolve_in_workspace_refuses_symlink_escape(tmp_path: Path) -> None:
    workspace = tmp_path / "ws"
    outside = tmp_path / "outside"
    workspace.mkdir()
    outside.mkdir()
    (workspace / "link").symlink_to(outside, target_is_directory=True)

    assert resolve_in_workspace(workspace, "src/a.ts") == workspace.resolve() / "src" / "a.ts"
    with pytest.raises(ValueError, match="escapes"):
        resolve_in_workspace(workspace, "link/a.ts")


def test_atomic_write_creates_parents_and_replaces_content(tmp_path: Path) -> None:
    target = tmp_path / "deep" / "dir" / "file.ts"

    atomic_write(target, "first")
    atomic_write(target, b"second")

    assert target.read_bytes() == b"second"
    assert sorted(item.name for item in target.parent.iterdir()) == ["file.ts"]
    assert read_bytes_if_exists(tmp_path / "missing.ts") is None


def test_safe_delete_and_remove_empty_directory_stay_inside_workspace(tmp_path: Path) -> None:
    nested = tmp_path / "pkg"
    nested.mkdir()
    target = nested / "a.ts"
    target.write_text("x", encoding="utf-8")

    assert safe_delete(target, tmp_path) is True
    assert safe_delete(target, tmp_path) is False
    assert remove_empty_directory(nested, tmp_path) is True

    with pytest.raises(ValueError):
        safe_delete(tmp_path.parent / "elsewhere.ts", tmp_path)
    with pytest.raises(ValueError):
        remove_empty_directory(tmp_path, tmp_path)


def test_remove_empty_directory_keeps_non_empty_directory(tmp_path: Path) -> None:
    nested = tmp_path / "pkg"
    nested.mkdir()
    (nested / "keep.ts").write_text("x", encoding="utf-8")

    assert remove_empty_directory(nested, tmp_path) is False
    assert nested.is_dir()


def test_manifest_is_sorted_and_skips_excluded_dirs(tmp_path: Path) -> None:
    (tmp_path / "b.ts").write_text("b", encoding="utf-8")
    (tmp_path / "a").mkdir()
    (tmp_path / "a" / "c.ts").write_text("c", encoding="utf-8")
    (tmp_path / ".git").mkdir()
    (tmp_path / ".git" / "HEAD").write_text("ref", encoding="utf-8")

    manifest = create_manifest(tmp_path, exclude_dirs=frozenset({".git"}))

    assert list(manifest) == ["a/c.ts", "b.ts"]
    assert manifest["b.ts"] == sha256_text("b")


def test_stable_digest_ignores_key_order() -> None:
    assert stable_digest({"a": 1, "b": [1, 2]}) == stable_digest({"b": [1, 2], "a": 1})
    assert len(stable_digest({"a": 1}, length=12)) == 12
    with pytest.raises(ValueError):
        stable_digest({}, length=0)
