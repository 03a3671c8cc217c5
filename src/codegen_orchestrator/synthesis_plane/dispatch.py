"""
codegen-orchestrator — agent dispatch

File: src/codegen_orchestrator/synthesis_plane/dispatch.py

Purpose
- Invokes the agent bound to a task under a per-task timeout and turns
  whatever it returns into a validated ``GenerationResult``.

Functional requirements
- Agent exceptions, timeouts, malformed results, and writes outside the
  task's declared paths all surface as ``AgentExecutionError``.
- A run that is already cancelled never starts a new agent call; a call in
  flight is allowed to finish.
- Supports sync and async agents.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Mapping, Sequence
from dataclasses import replace
from typing import TYPE_CHECKING, Any

import structlog

from codegen_orchestrator.domain.errors import AgentExecutionError
from codegen_orchestrator.domain.models import GeneratedFile, GenerationResult
from codegen_orchestrator.utils.concurrency import call_maybe_async, run_with_timeout

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from codegen_orchestrator.domain.models import AgentContext, GenerationTask
    from codegen_orchestrator.synthesis_plane.registry import AgentRegistry
    from codegen_orchestrator.utils.concurrency import CancellationToken


class AgentDispatcher:
    """Routes tasks to registered agents and validates their output."""

    def __init__(
        self,
        registry: AgentRegistry,
        *,
        default_timeout_seconds: float | None = None,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        if default_timeout_seconds is not None and default_timeout_seconds <= 0:
            raise ValueError("default_timeout_seconds must be > 0")
        self._registry = registry
        self._default_timeout = default_timeout_seconds
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def registry(self) -> AgentRegistry:
        return self._registry

    async def dispatch(
        self,
        task: GenerationTask,
        context: AgentContext,
        *,
        timeout_seconds: float | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> GenerationResult:
        timeout = timeout_seconds if timeout_seconds is not None else self._default_timeout

        try:
            agent = self._registry.get(task.agent_type)
        except KeyError as exc:
            raise AgentExecutionError(
                str(exc.args[0]), task_id=task.task_id, agent_type=task.agent_type
            ) from exc

        if cancel_token is not None and cancel_token.is_cancelled:
            raise AgentExecutionError(
                f"run cancelled before dispatch ({cancel_token.reason or 'no reason given'})",
                task_id=task.task_id,
                agent_type=task.agent_type,
            )

        started = time.monotonic()
        try:
            raw = await run_with_timeout(call_maybe_async(agent.generate, context), timeout)
        except TimeoutError as exc:
            self._logger.warning(
                "agent_timed_out",
                task_id=task.task_id,
                agent_type=task.agent_type,
                timeout_seconds=timeout,
            )
            raise AgentExecutionError(
                f"timed out after {timeout} seconds",
                task_id=task.task_id,
                agent_type=task.agent_type,
                timed_out=True,
            ) from exc
        except asyncio.CancelledError:
            raise
        except AgentExecutionError:
            raise
        except Exception as exc:
            raise AgentExecutionError(
                f"{type(exc).__name__}: {exc}",
                task_id=task.task_id,
                agent_type=task.agent_type,
            ) from exc

        try:
            result = normalize_result(task.task_id, raw)
        except (TypeError, ValueError) as exc:
            raise AgentExecutionError(
                f"malformed result: {exc}", task_id=task.task_id, agent_type=task.agent_type
            ) from exc

        undeclared = sorted(set(result.paths) - set(task.touched_paths))
        if undeclared:
            raise AgentExecutionError(
                f"wrote undeclared path(s): {', '.join(undeclared)}",
                task_id=task.task_id,
                agent_type=task.agent_type,
            )

        self._logger.info(
            "agent_dispatched",
            task_id=task.task_id,
            agent_type=task.agent_type,
            files=len(result.files),
            lines_of_code=result.lines_of_code,
            duration_seconds=round(time.monotonic() - started, 6),
        )
        return result


def normalize_result(task_id: str, raw: object) -> GenerationResult:
    """Coerce an agent's return value into a ``GenerationResult`` for ``task_id``.

    Accepts ``None`` (no output), a ``GenerationResult``, or a mapping using
    either ``lines_of_code`` or ``linesOfCode``. A missing or zero line count
    is derived from the files. Duplicate paths are rejected.
    """

    if raw is None:
        return GenerationResult(task_id=task_id)

    if isinstance(raw, GenerationResult):
        result = raw if raw.task_id == task_id else replace(raw, task_id=task_id)
    elif isinstance(raw, Mapping):
        result = _result_from_mapping(task_id, raw)
    else:
        raise TypeError(f"expected GenerationResult or mapping, got {type(raw).__name__}")

    seen: set[str] = set()
    for item in result.files:
        if item.path in seen:
            raise ValueError(f"duplicate output path {item.path!r}")
        seen.add(item.path)

    if result.lines_of_code == 0 and result.files:
        result = replace(result, lines_of_code=sum(item.line_count for item in result.files))
    return result


def _result_from_mapping(task_id: str, raw: Mapping[str, Any]) -> GenerationResult:
    raw_files = raw.get("files", ())
    if not isinstance(raw_files, Sequence) or isinstance(raw_files, (str, bytes)):
        raise TypeError("'files' must be a list")
    files = tuple(_coerce_file(item, index) for index, item in enumerate(raw_files))

    lines = raw.get("lines_of_code", raw.get("linesOfCode"))
    if lines is None:
        lines = 0
    if isinstance(lines, bool) or not isinstance(lines, int):
        raise TypeError("'lines_of_code' must be an integer")

    return GenerationResult(
        task_id=task_id,
        files=files,
        lines_of_code=lines,
        dependencies=_string_tuple(raw.get("dependencies", ()), "dependencies"),
        warnings=_string_tuple(raw.get("warnings", ()), "warnings"),
    )


def _coerce_file(item: object, index: int) -> GeneratedFile:
    if isinstance(item, GeneratedFile):
        return item
    if not isinstance(item, Mapping):
        raise TypeError(f"files[{index}] must be a mapping, got {type(item).__name__}")
    path = item.get("path")
    content = item.get("content")
    if not isinstance(path, str):
        raise TypeError(f"files[{index}].path must be a string")
    if not isinstance(content, str):
        raise TypeError(f"files[{index}].content must be a string")
    return GeneratedFile(path=path, content=content, type=str(item.get("type", "source")))


def _string_tuple(value: object, field_name: str) -> tuple[str, ...]:
    if isinstance(value, str) or not isinstance(value, Sequence):
        raise TypeError(f"'{field_name}' must be a list of strings")
    return tuple(str(item) for item in value)


__all__ = ["AgentDispatcher", "normalize_result"]
