"""Progress event definitions and serialization."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from codegen_orchestrator.domain import ids
from codegen_orchestrator.domain.models import JSONValue, thaw

_SENSITIVE_KEY_TERMS = ("secret", "password", "token", "api_key", "apikey")
_REDACTED_VALUE = "***REDACTED***"


class EventType(StrEnum):
    """Lifecycle events emitted while a plan executes."""

    RUN_STARTED = "run_started"
    RUN_COMPLETED = "run_completed"
    RUN_CANCELLED = "run_cancelled"
    RUN_ABORTED = "run_aborted"

    WAVE_STARTED = "wave_started"
    WAVE_COMPLETED = "wave_completed"

    TASK_STARTED = "task_started"
    TASK_RESOLVED = "task_resolved"

    METRICS_UPDATED = "metrics_updated"


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    """Serializable envelope delivered to progress subscribers."""

    event_type: EventType
    payload: dict[str, JSONValue] = field(default_factory=dict)
    run_id: str | None = None
    event_id: str = field(default_factory=ids.generate_event_id)
    timestamp: datetime = field(default_factory=lambda: datetime.now(tz=UTC))

    def __post_init__(self) -> None:
        object.__setattr__(self, "event_type", EventType(self.event_type))
        if self.timestamp.tzinfo is None:
            raise ValueError("ProgressEvent.timestamp: datetime must be timezone-aware")
        object.__setattr__(self, "payload", _as_json_object(self.payload))

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "timestamp": self.timestamp.astimezone(UTC)
            .isoformat(timespec="microseconds")
            .replace("+00:00", "Z"),
            "run_id": self.run_id,
            "payload": self.payload,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def redact_sensitive(event: ProgressEvent) -> ProgressEvent:
    """Return a copy of ``event`` with sensitive payload keys deeply redacted."""
    redacted = _redact_value(event.payload, key_context=None)
    if not isinstance(redacted, dict):
        raise ValueError("redacted payload must remain a JSON object")
    return ProgressEvent(
        event_type=event.event_type,
        payload=redacted,
        run_id=event.run_id,
        event_id=event.event_id,
        timestamp=event.timestamp,
    )


def _as_json_object(value: Any) -> dict[str, JSONValue]:
    plain = thaw(value)
    if not isinstance(plain, dict):
        raise ValueError("ProgressEvent.payload: expected object")
    # Round-trip to reject values json cannot represent.
    try:
        return json.loads(json.dumps(plain, allow_nan=False))
    except (TypeError, ValueError) as exc:
        raise ValueError(f"ProgressEvent.payload: not JSON-serializable: {exc}") from exc


def _is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(term in lowered for term in _SENSITIVE_KEY_TERMS)


def _redact_value(value: JSONValue, key_context: str | None) -> JSONValue:
    if key_context is not None and _is_sensitive_key(key_context):
        return _REDACTED_VALUE
    if isinstance(value, list):
        return [_redact_value(item, key_context=None) for item in value]
    if isinstance(value, dict):
        return {key: _redact_value(item, key_context=key) for key, item in value.items()}
    return value


__all__ = ["EventType", "ProgressEvent", "redact_sensitive"]
