"""SHA-256 helpers for snapshots, restore checks and content-derived ids.

``create_manifest`` maps every regular file under a directory to its digest;
comparing two manifests is how tests prove a workspace came back byte for
byte after a rollback.
"""

from __future__ import annotations

import hashlib
import json
import os
from pathlib import Path
from typing import Any, Final

_CHUNK: Final[int] = 1 << 20


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def sha256_text(text: str) -> str:
    return sha256_bytes(text.encode("utf-8"))


def sha256_file(path: str | os.PathLike[str]) -> str:
    with Path(path).open("rb") as handle:
        return hashlib.file_digest(handle, "sha256").hexdigest()


def stable_digest(value: Any, *, length: int | None = None) -> str:
    """Digest of ``value`` as canonical JSON, optionally cut to ``length`` chars."""

    if length is not None and length <= 0:
        raise ValueError("length must be > 0")
    canonical = json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return sha256_text(canonical)[:length]


def create_manifest(
    directory: str | os.PathLike[str], *, exclude_dirs: frozenset[str] = frozenset()
) -> dict[str, str]:
    """``{relative posix path: sha256}`` for regular files, sorted by path.

    Symlinks are neither followed nor listed; directories named in
    ``exclude_dirs`` are pruned wherever they appear.
    """

    root = Path(directory).resolve(strict=True)
    if not root.is_dir():
        raise NotADirectoryError(f"{root} is not a directory")
    manifest: dict[str, str] = {}
    for current, dir_names, file_names in os.walk(root):
        dir_names[:] = [name for name in dir_names if name not in exclude_dirs]
        for name in file_names:
            candidate = Path(current, name)
            if candidate.is_file() and not candidate.is_symlink():
                manifest[candidate.relative_to(root).as_posix()] = sha256_file(candidate)
    return dict(sorted(manifest.items()))


__all__ = ["create_manifest", "sha256_bytes", "sha256_text", "sha256_file", "stable_digest"]
