"""In-process event bus with replay and isolated subscriber failures."""

from __future__ import annotations

import asyncio
import inspect
import threading
from collections import deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Final

from codegen_orchestrator.domain.events import EventType, ProgressEvent

Subscriber = Callable[[ProgressEvent], object]

_DEFAULT_ERROR_BUFFER: Final[int] = 1024


@dataclass(frozen=True, slots=True)
class DispatchError:
    """Subscriber failure captured without interrupting the publisher."""

    event_id: str
    event_type: str
    target: str
    error_type: str
    message: str


@dataclass(frozen=True, slots=True)
class _Subscription:
    token: int
    event_type: EventType | None
    callback: Subscriber


class EventBus:
    """Event bus with sync and async subscribers and a bounded replay buffer.

    A subscriber that raises never affects the publisher or other
    subscribers; the failure is recorded in ``dispatch_errors``.
    """

    def __init__(self, *, buffer_size: int = 512) -> None:
        if buffer_size <= 0:
            raise ValueError("buffer_size must be > 0")
        self._buffer: deque[ProgressEvent] = deque(maxlen=buffer_size)
        self._subscriptions: dict[int, _Subscription] = {}
        self._dispatch_errors: deque[DispatchError] = deque(maxlen=_DEFAULT_ERROR_BUFFER)
        self._pending_async_tasks: set[asyncio.Task[Any]] = set()
        self._next_token = 1
        self._lock = threading.RLock()

    def subscribe(self, event_type: str | EventType | None, callback: Subscriber) -> int:
        """Subscribe to one event type, or to every event when ``event_type`` is ``None``."""

        if not callable(callback):
            raise ValueError("callback must be callable")
        normalized = None if event_type is None else EventType(event_type)
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._subscriptions[token] = _Subscription(token, normalized, callback)
        return token

    def unsubscribe(self, token: int) -> bool:
        with self._lock:
            return self._subscriptions.pop(token, None) is not None

    def publish(self, event: ProgressEvent) -> tuple[DispatchError, ...]:
        """Publish from synchronous code; async subscribers are scheduled on the running loop."""

        errors: list[DispatchError] = []
        for subscription in self._record(event):
            try:
                result = subscription.callback(event)
                if inspect.isawaitable(result):
                    self._schedule(result, event, subscription.callback)
            except Exception as exc:  # noqa: BLE001
                errors.append(_dispatch_error(event, subscription.callback, exc))
        return self._store_errors(errors)

    async def publish_async(self, event: ProgressEvent) -> tuple[DispatchError, ...]:
        """Publish from async code and await async subscribers in subscription order."""

        errors: list[DispatchError] = []
        for subscription in self._record(event):
            try:
                result = subscription.callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:  # noqa: BLE001
                errors.append(_dispatch_error(event, subscription.callback, exc))
        return self._store_errors(errors)

    async def emit_async(
        self,
        event_type: str | EventType,
        payload: Mapping[str, object],
        *,
        run_id: str | None = None,
    ) -> ProgressEvent:
        event = ProgressEvent(event_type=EventType(event_type), payload=dict(payload), run_id=run_id)
        await self.publish_async(event)
        return event

    def emit(
        self,
        event_type: str | EventType,
        payload: Mapping[str, object],
        *,
        run_id: str | None = None,
    ) -> ProgressEvent:
        event = ProgressEvent(event_type=EventType(event_type), payload=dict(payload), run_id=run_id)
        self.publish(event)
        return event

    async def drain_async(self) -> None:
        """Await async subscriber tasks scheduled by synchronous ``publish``."""

        with self._lock:
            pending = tuple(self._pending_async_tasks)
            self._pending_async_tasks.clear()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def replay(
        self,
        *,
        event_type: str | EventType | None = None,
        run_id: str | None = None,
        limit: int | None = None,
    ) -> tuple[ProgressEvent, ...]:
        """Replay buffered events in publish order."""

        type_filter = None if event_type is None else EventType(event_type)
        with self._lock:
            events = tuple(self._buffer)
        filtered = [
            event
            for event in events
            if (type_filter is None or event.event_type is type_filter)
            and (run_id is None or event.run_id == run_id)
        ]
        if limit is not None:
            if limit <= 0:
                return ()
            filtered = filtered[-limit:]
        return tuple(filtered)

    def dispatch_errors(self) -> tuple[DispatchError, ...]:
        with self._lock:
            return tuple(self._dispatch_errors)

    def _record(self, event: ProgressEvent) -> tuple[_Subscription, ...]:
        if not isinstance(event, ProgressEvent):
            raise ValueError(f"event must be ProgressEvent, got {type(event).__name__}")
        with self._lock:
            self._buffer.append(event)
            return tuple(
                item
                for item in self._subscriptions.values()
                if item.event_type is None or item.event_type is event.event_type
            )

    def _store_errors(self, errors: list[DispatchError]) -> tuple[DispatchError, ...]:
        if errors:
            with self._lock:
                self._dispatch_errors.extend(errors)
        return tuple(errors)

    def _schedule(self, awaitable: Any, event: ProgressEvent, callback: Subscriber) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(_await(awaitable))
            return

        task = loop.create_task(_await(awaitable))
        with self._lock:
            self._pending_async_tasks.add(task)

        def on_done(done: asyncio.Task[Any]) -> None:
            with self._lock:
                self._pending_async_tasks.discard(done)
            if done.cancelled():
                return
            exc = done.exception()
            if isinstance(exc, Exception):
                self._store_errors([_dispatch_error(event, callback, exc)])

        task.add_done_callback(on_done)


async def _await(awaitable: Any) -> Any:
    return await awaitable


def _callback_name(callback: object) -> str:
    name = getattr(callback, "__qualname__", None) or getattr(callback, "__name__", None)
    if isinstance(name, str) and name:
        return name
    return callback.__class__.__name__


def _dispatch_error(event: ProgressEvent, callback: object, exc: Exception) -> DispatchError:
    return DispatchError(
        event_id=event.event_id,
        event_type=event.event_type.value,
        target=_callback_name(callback),
        error_type=exc.__class__.__name__,
        message=str(exc),
    )


__all__ = ["DispatchError", "EventBus", "Subscriber"]
