"""Unit tests for wave concurrency primitives."""

from __future__ import annotations

import asyncio
import gc
import threading
import time
import warnings

import pytest

from codegen_orchestrator.utils.concurrency import (
    CancellationToken,
    WorkerPool,
    call_maybe_async,
    run_with_timeout,
)


async def _slow() -> int:
    await asyncio.sleep(0.01)
    return 1


async def _never() -> int:
    await asyncio.sleep(3600)
    return 0


@pytest.mark.asyncio
async def test_worker_pool_respects_concurrency_limit() -> None:
    pool: WorkerPool[int] = WorkerPool(max_concurrency=2)
    active = 0
    peak = 0

    async def job(value: int) -> int:
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.005)
        active -= 1
        return value

    results = await pool.gather(job(index) for index in range(6))

    assert sorted(results) == list(range(6))
    assert peak <= 2
    assert pool.peak_concurrency == 2


@pytest.mark.asyncio
async def test_worker_pool_propagates_first_error_and_cancels_the_rest() -> None:
    pool: WorkerPool[int] = WorkerPool(max_concurrency=4)
    cancelled: list[str] = []

    async def boom() -> int:
        raise RuntimeError("agent crashed")

    async def waiter() -> int:
        try:
            await asyncio.sleep(3600)
        except asyncio.CancelledError:
            cancelled.append("waiter")
            raise
        return 0

    with pytest.raises(RuntimeError, match="agent crashed"):
        await pool.gather([waiter(), boom()])
    assert cancelled == ["waiter"]


def test_worker_pool_rejects_non_positive_concurrency() -> None:
    with pytest.raises(ValueError):
        WorkerPool(max_concurrency=0)


@pytest.mark.asyncio
async def test_worker_pool_streams_results_in_finish_order() -> None:
    pool: WorkerPool[str] = WorkerPool(max_concurrency=3)

    async def after(delay: float, label: str) -> str:
        await asyncio.sleep(delay)
        return label

    seen = [label async for label in pool.run([after(0.03, "slow"), after(0.0, "fast"), after(0.01, "mid")])]

    assert seen == ["fast", "mid", "slow"]
    assert pool.peak_concurrency == 3


@pytest.mark.asyncio
async def test_run_with_timeout_returns_value_and_raises_on_expiry() -> None:
    assert await run_with_timeout(_slow(), 1.0) == 1
    assert await run_with_timeout(_slow(), None) == 1

    with pytest.raises(TimeoutError, match="timed out"):
        await run_with_timeout(_never(), 0.01)


@pytest.mark.asyncio
async def test_run_with_timeout_honours_cancellation_token() -> None:
    token = CancellationToken()

    async def cancel_soon() -> None:
        await asyncio.sleep(0.005)
        token.cancel("user pressed stop")

    canceller = asyncio.create_task(cancel_soon())
    with pytest.raises(asyncio.CancelledError):
        await run_with_timeout(_never(), 5.0, token)
    await canceller


@pytest.mark.asyncio
async def test_run_with_timeout_rejects_bad_timeout_without_leaking_coroutine() -> None:
    with warnings.catch_warnings():
        warnings.simplefilter("error", RuntimeWarning)
        with pytest.raises(ValueError, match="timeout_seconds"):
            await run_with_timeout(_slow(), 0)
        gc.collect()


def test_cancellation_token_is_idempotent_and_keeps_first_reason() -> None:
    token = CancellationToken()
    assert not token.is_cancelled
    token.raise_if_cancelled()

    token.cancel("first")
    token.cancel("second")

    assert token.is_cancelled
    assert token.reason == "first"
    with pytest.raises(asyncio.CancelledError):
        token.raise_if_cancelled()


@pytest.mark.asyncio
async def test_token_cancelled_before_wait_resolves_immediately() -> None:
    token = CancellationToken()
    token.cancel()
    await asyncio.wait_for(token.wait(), timeout=1.0)


@pytest.mark.asyncio
async def test_call_maybe_async_handles_sync_and_async_callables() -> None:
    async def async_double(value: int) -> int:
        return value * 2

    def sync_triple(value: int) -> int:
        return value * 3

    assert await call_maybe_async(async_double, 2) == 4
    assert await call_maybe_async(sync_triple, 2) == 6


@pytest.mark.asyncio
async def test_call_maybe_async_runs_sync_callables_on_daemon_threads() -> None:
    def on_daemon() -> bool:
        return threading.current_thread().daemon

    def broken() -> None:
        raise ValueError("bad input")

    assert await call_maybe_async(on_daemon) is True
    with pytest.raises(ValueError, match="bad input"):
        await call_maybe_async(broken)


def test_abandoned_sync_call_does_not_block_loop_shutdown() -> None:
    release = threading.Event()

    def stuck() -> int:
        release.wait(5.0)
        return 1

    async def main() -> None:
        with pytest.raises(TimeoutError):
            await run_with_timeout(call_maybe_async(stuck), 0.02)

    started = time.monotonic()
    asyncio.run(main())
    elapsed = time.monotonic() - started
    release.set()

    assert elapsed < 2.0
