"""Utility exports for filesystem, hashing, and concurrency helpers."""

from codegen_orchestrator.utils.concurrency import (
    CancellationToken,
    WorkerPool,
    call_maybe_async,
    run_with_timeout,
)
from codegen_orchestrator.utils.fs import (
    atomic_write,
    is_within,
    normalize_relative_path,
    paths_overlap,
    read_bytes_if_exists,
    remove_empty_directory,
    resolve_in_workspace,
    safe_delete,
)
from codegen_orchestrator.utils.hashing import (
    create_manifest,
    sha256_bytes,
    sha256_file,
    sha256_text,
    stable_digest,
)

__all__ = [
    "CancellationToken",
    "WorkerPool",
    "atomic_write",
    "call_maybe_async",
    "create_manifest",
    "is_within",
    "normalize_relative_path",
    "paths_overlap",
    "read_bytes_if_exists",
    "remove_empty_directory",
    "resolve_in_workspace",
    "run_with_timeout",
    "safe_delete",
    "sha256_bytes",
    "sha256_file",
    "sha256_text",
    "stable_digest",
]
