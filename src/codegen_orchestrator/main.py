"""Executable CLI entrypoint for ``codegen_orchestrator``."""

from __future__ import annotations

import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence


class ExitCode(IntEnum):
    """Deterministic process exit-code contract."""

    SUCCESS = 0
    PARTIAL = 1
    CONFIG_ERROR = 2
    EXECUTION_ERROR = 3
    INTERNAL_ERROR = 4


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Entrypoint used by ``python -m codegen_orchestrator`` and the ``codegen`` script."""

    try:
        from codegen_orchestrator.ui.cli import run_cli

        return _normalize_exit_code(run_cli(argv))
    except SystemExit as exc:
        return _normalize_exit_code(exc.code)
    except KeyboardInterrupt:
        _write_stderr("interrupted")
        return int(ExitCode.PARTIAL)
    except Exception as exc:  # noqa: BLE001 - CLI boundary normalization.
        exit_code = route_exception(exc)
        _emit_failure(exc, exit_code)
        return int(exit_code)


def route_exception(exc: BaseException) -> ExitCode:
    """Map an exception escaping a command to its exit code."""

    from codegen_orchestrator.config.loader import ConfigLoadError
    from codegen_orchestrator.config.schema import ConfigValidationError
    from codegen_orchestrator.domain.errors import (
        AgentExecutionError,
        PlanningError,
        RollbackFailure,
        ValidationError,
    )

    for item in _iter_exception_chain(exc):
        if isinstance(item, (RollbackFailure, AgentExecutionError)):
            return ExitCode.EXECUTION_ERROR
        if isinstance(
            item, (ConfigLoadError, ConfigValidationError, ValidationError, PlanningError)
        ):
            return ExitCode.CONFIG_ERROR
        if isinstance(item, (FileNotFoundError, NotADirectoryError, PermissionError)):
            return ExitCode.CONFIG_ERROR
    return ExitCode.INTERNAL_ERROR


def _normalize_exit_code(raw_code: object) -> int:
    if raw_code is None:
        return int(ExitCode.SUCCESS)
    if isinstance(raw_code, int) and raw_code in frozenset(ExitCode):
        return raw_code
    if isinstance(raw_code, str) and raw_code.strip():
        _write_stderr(raw_code)
    return int(ExitCode.INTERNAL_ERROR)


def _iter_exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """``exc`` and its causes, newest first; implicit context counts unless suppressed."""

    visited: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in visited:
        visited.add(id(current))
        yield current
        if current.__cause__ is not None or current.__suppress_context__:
            current = current.__cause__
        else:
            current = current.__context__


def _emit_failure(exc: BaseException, exit_code: ExitCode) -> None:
    if exit_code is ExitCode.INTERNAL_ERROR:
        traceback.print_exception(exc, file=sys.stderr)
    else:
        _write_stderr(f"error: {str(exc).strip() or type(exc).__name__}")


def _write_stderr(message: str) -> None:
    print(message.strip(), file=sys.stderr)


__all__ = ["ExitCode", "cli_entrypoint", "route_exception"]
