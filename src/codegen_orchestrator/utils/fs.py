"""
codegen-orchestrator — filesystem utilities

File: src/codegen_orchestrator/utils/fs.py

Purpose
- Safe, minimal filesystem helpers for workspace-relative generated files.

Functional requirements
- Workspace paths are relative POSIX strings; absolute paths and ``..`` segments are rejected.
- Atomic writes use temp files in the destination directory and replace in a single step.
- Deletion refuses paths outside the workspace root.
"""

from __future__ import annotations

import contextlib
import os
import tempfile
from pathlib import Path, PurePosixPath

PathLike = str | os.PathLike[str]

__all__ = [
    "atomic_write",
    "is_within",
    "normalize_relative_path",
    "paths_overlap",
    "read_bytes_if_exists",
    "remove_empty_directory",
    "resolve_in_workspace",
    "safe_delete",
]


def normalize_relative_path(raw: str) -> str:
    """Return ``raw`` as a canonical workspace-relative POSIX path.

    Backslashes are converted, redundant ``./`` segments dropped. Absolute
    paths, empty paths and parent traversal raise ``ValueError``.
    """

    if not isinstance(raw, str):
        raise ValueError(f"path must be a string, got {type(raw).__name__}")
    candidate = raw.strip().replace("\\", "/")
    if not candidate:
        raise ValueError("path cannot be empty")
    posix = PurePosixPath(candidate)
    if posix.is_absolute() or (len(candidate) > 1 and candidate[1] == ":"):
        raise ValueError(f"path must be relative: {raw!r}")
    parts = [part for part in posix.parts if part not in {"", "."}]
    if not parts:
        raise ValueError(f"path cannot be empty: {raw!r}")
    if ".." in parts:
        raise ValueError(f"path must not traverse upwards: {raw!r}")
    return "/".join(parts)


def paths_overlap(left: str, right: str) -> bool:
    """True when the paths are identical or one is a directory prefix of the other."""

    a = normalize_relative_path(left)
    b = normalize_relative_path(right)
    if a == b:
        return True
    return a.startswith(f"{b}/") or b.startswith(f"{a}/")


def resolve_in_workspace(workspace_root: PathLike, relative_path: str) -> Path:
    """Map a workspace-relative path onto the filesystem, refusing escapes."""

    root = Path(workspace_root).resolve()
    normalized = normalize_relative_path(relative_path)
    target = root.joinpath(*normalized.split("/"))
    # Symlinked parents could still point outside the workspace.
    resolved_parent = target.parent.resolve()
    if not _is_relative_to(resolved_parent, root):
        raise ValueError(f"path escapes workspace root: {relative_path!r}")
    return target


def read_bytes_if_exists(path: PathLike) -> bytes | None:
    """Return file bytes or ``None`` when the path does not exist."""

    target = Path(path)
    try:
        return target.read_bytes()
    except FileNotFoundError:
        return None
    except IsADirectoryError as exc:
        raise IsADirectoryError(f"expected a file, found a directory: {target!s}") from exc


def atomic_write(path: PathLike, data: bytes | str, *, encoding: str = "utf-8") -> None:
    """
    Atomically write ``data`` to ``path``, creating parent directories.

    The write strategy is:
    1. create temp file in the same directory,
    2. write + flush + fsync file data,
    3. replace target via ``os.replace``.
    """

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target_parent = target.parent.resolve(strict=True)

    payload = data if isinstance(data, bytes) else data.encode(encoding)
    fd, temp_name = tempfile.mkstemp(
        prefix=f".{target.name}.",
        suffix=".tmp",
        dir=str(target_parent),
    )
    temp_path = Path(temp_name)

    try:
        with os.fdopen(fd, "wb") as file_handle:
            file_handle.write(payload)
            file_handle.flush()
            os.fsync(file_handle.fileno())
        os.replace(temp_path, target)
        _fsync_directory(target_parent)
    except Exception:
        with contextlib.suppress(OSError):
            temp_path.unlink(missing_ok=True)
        raise


def is_within(child: PathLike, parent: PathLike) -> bool:
    """Return ``True`` if resolved ``child`` is within resolved ``parent``."""

    resolved_parent = Path(parent).resolve()
    resolved_child = Path(child).resolve()
    return _is_relative_to(resolved_child, resolved_parent)


def safe_delete(path: PathLike, workspace_root: PathLike) -> bool:
    """
    Delete the file at ``path`` only if it is contained within ``workspace_root``.

    Returns ``False`` when nothing existed. Symlinks are unlinked without traversal.
    """

    workspace = Path(workspace_root).resolve(strict=True)
    target = Path(path)
    candidate = target.parent.resolve() / target.name
    if not _is_relative_to(candidate, workspace) or candidate == workspace:
        raise ValueError(f"refusing to delete path outside workspace root: {target!s}")

    if not target.is_symlink() and not target.exists():
        return False
    if target.is_dir() and not target.is_symlink():
        raise IsADirectoryError(f"refusing to delete directory: {target!s}")

    target.unlink()
    return True


def remove_empty_directory(path: PathLike, workspace_root: PathLike) -> bool:
    """Remove ``path`` if it is an empty directory strictly inside the workspace."""

    workspace = Path(workspace_root).resolve(strict=True)
    candidate = Path(path).resolve()
    if candidate == workspace or not _is_relative_to(candidate, workspace):
        raise ValueError(f"refusing to remove directory outside workspace root: {path!s}")
    try:
        candidate.rmdir()
    except FileNotFoundError:
        return False
    except OSError:
        # Not empty: something else lives there now.
        return False
    return True


def _is_relative_to(child: Path, parent: Path) -> bool:
    try:
        child.relative_to(parent)
    except ValueError:
        return False
    return True


def _fsync_directory(path: Path) -> None:
    """Best-effort directory fsync; some platforms do not support it."""

    if os.name == "nt":
        return

    flags = os.O_RDONLY
    if hasattr(os, "O_DIRECTORY"):
        flags |= os.O_DIRECTORY

    try:
        dir_fd = os.open(path, flags)
    except OSError:
        return

    try:
        os.fsync(dir_fd)
    except OSError:
        return
    finally:
        os.close(dir_fd)
