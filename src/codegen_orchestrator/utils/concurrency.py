"""Async building blocks for wave execution."""

from __future__ import annotations

import asyncio
import contextlib
import contextvars
import inspect
import threading
from typing import TYPE_CHECKING, Any, Generic, TypeVar

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable, Iterable

T = TypeVar("T")


class CancellationToken:
    """Cooperative, run-scoped stop flag.

    The backing ``asyncio.Event`` is created on first ``wait`` so a token can be
    built outside a running loop, e.g. by a caller that later drives
    ``asyncio.run``. Only the first ``cancel`` reason is kept.
    """

    def __init__(self) -> None:
        self._event: asyncio.Event | None = None
        self._cancelled = False
        self._reason: str | None = None

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self._reason = reason
        if self._event is not None:
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise asyncio.CancelledError(self._reason or "operation cancelled")

    async def wait(self) -> None:
        if self._event is None:
            self._event = asyncio.Event()
            if self._cancelled:
                self._event.set()
        await self._event.wait()


class WorkerPool(Generic[T]):
    """At most ``max_concurrency`` coroutines in flight; results stream in finish order.

    When one coroutine raises, the others are cancelled and awaited before the
    error reaches the caller.
    """

    def __init__(self, max_concurrency: int) -> None:
        if max_concurrency <= 0:
            raise ValueError("max_concurrency must be > 0")
        self.max_concurrency = max_concurrency
        self._slots = asyncio.Semaphore(max_concurrency)
        self._active = 0
        self.peak_concurrency = 0

    async def run(self, coroutines: Iterable[Awaitable[T]]) -> AsyncIterator[T]:
        tasks = [asyncio.ensure_future(self._limited(coroutine)) for coroutine in coroutines]
        try:
            for finished in asyncio.as_completed(tasks):
                yield await finished
        finally:
            leftover = [task for task in tasks if not task.done()]
            for task in leftover:
                task.cancel()
            await asyncio.gather(*leftover, return_exceptions=True)

    async def gather(self, coroutines: Iterable[Awaitable[T]]) -> list[T]:
        return [result async for result in self.run(coroutines)]

    async def _limited(self, coroutine: Awaitable[T]) -> T:
        async with self._slots:
            self._active += 1
            self.peak_concurrency = max(self.peak_concurrency, self._active)
            try:
                return await coroutine
            finally:
                self._active -= 1


async def run_with_timeout(
    awaitable: Awaitable[T],
    timeout_seconds: float | None,
    cancel_token: CancellationToken | None = None,
) -> T:
    """Await ``awaitable`` for at most ``timeout_seconds`` (``None``: no limit).

    Expiry raises ``TimeoutError``; a ``cancel_token`` firing first raises
    ``asyncio.CancelledError``. Either way the work is cancelled and awaited.
    """

    if timeout_seconds is not None and timeout_seconds <= 0:
        if inspect.iscoroutine(awaitable):
            awaitable.close()
        raise ValueError("timeout_seconds must be > 0")

    work: asyncio.Future[T] = asyncio.ensure_future(awaitable)
    stop = asyncio.ensure_future(cancel_token.wait()) if cancel_token is not None else None
    watched: set[asyncio.Future[Any]] = {work} if stop is None else {work, stop}
    try:
        done, _ = await asyncio.wait(
            watched, timeout=timeout_seconds, return_when=asyncio.FIRST_COMPLETED
        )
    finally:
        unfinished = [future for future in watched if not future.done()]
        for future in unfinished:
            future.cancel()
        await asyncio.gather(*unfinished, return_exceptions=True)

    if work in done:
        return work.result()
    if stop is not None and stop in done:
        raise asyncio.CancelledError(cancel_token.reason if cancel_token else None)
    raise TimeoutError(f"operation timed out after {timeout_seconds} seconds")


async def call_maybe_async(func: Callable[..., Any], /, *args: Any) -> Any:
    """Await coroutine functions; run plain callables on a daemon thread.

    The thread is not owned by the loop's default executor, so a caller that
    stops waiting (timeout, cancellation) does not block loop shutdown on it.
    """

    if inspect.iscoroutinefunction(func):
        return await func(*args)
    result = await _run_in_daemon_thread(func, *args)
    if inspect.isawaitable(result):
        return await result
    return result


async def _run_in_daemon_thread(func: Callable[..., Any], /, *args: Any) -> Any:
    loop = asyncio.get_running_loop()
    future: asyncio.Future[Any] = loop.create_future()
    context = contextvars.copy_context()

    def settle(value: Any, error: BaseException | None) -> None:
        if future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(value)

    def target() -> None:
        try:
            value, error = context.run(func, *args), None
        except Exception as exc:  # noqa: BLE001 - handed back to the awaiting task.
            value, error = None, exc
        # The loop may already be closed when an abandoned call finishes.
        with contextlib.suppress(RuntimeError):
            loop.call_soon_threadsafe(settle, value, error)

    name = f"codegen-agent-{getattr(func, '__qualname__', type(func).__name__)}"
    threading.Thread(target=target, name=name, daemon=True).start()
    return await future


__all__ = ["CancellationToken", "WorkerPool", "call_maybe_async", "run_with_timeout"]
