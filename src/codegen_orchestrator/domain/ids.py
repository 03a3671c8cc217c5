"""Identifier generation for runs, checkpoints, events and planned entities.

Run-scoped ids (runs, checkpoints, events) are ULIDs so they sort by creation
time. Plan-scoped ids (requirements, tasks) are deterministic slugs derived
from content: planning the same input twice must produce the same ids.
"""

from __future__ import annotations

import re
import secrets
import time
from collections.abc import Callable
from typing import Final

CROCKFORD_BASE32_ALPHABET: Final[str] = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
ULID_LENGTH: Final[int] = 26
ULID_RANDOM_BYTES: Final[int] = 10
ULID_MAX_TIMESTAMP_MS: Final[int] = (1 << 48) - 1
_PREFIX_SEPARATOR: Final[str] = "-"

# Stable entity ID prefixes.
RUN_ID_PREFIX: Final[str] = "run"
CHECKPOINT_ID_PREFIX: Final[str] = "ckpt"
EVENT_ID_PREFIX: Final[str] = "evt"
PLAN_ID_PREFIX: Final[str] = "plan"

_SLUG_INVALID_RE: Final[re.Pattern[str]] = re.compile(r"[^a-z0-9]+")
_CAMEL_BOUNDARY_RE: Final[re.Pattern[str]] = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_MAX_SLUG_LENGTH: Final[int] = 64

_DECODE_TABLE: Final[dict[str, int]] = {
    char: index for index, char in enumerate(CROCKFORD_BASE32_ALPHABET)
}

_RandBytes = Callable[[int], bytes]

__all__ = [
    "CHECKPOINT_ID_PREFIX",
    "EVENT_ID_PREFIX",
    "PLAN_ID_PREFIX",
    "RUN_ID_PREFIX",
    "ULID_LENGTH",
    "generate_checkpoint_id",
    "generate_event_id",
    "generate_prefixed_id",
    "generate_run_id",
    "generate_ulid",
    "requirement_id_for",
    "slugify",
    "validate_prefixed_id",
    "validate_ulid",
]


def generate_ulid(
    *,
    timestamp_ms: int | None = None,
    randbytes: _RandBytes | None = None,
) -> str:
    """Generate a ULID as a 26-character uppercase Crockford Base32 string."""
    ts_ms = time.time_ns() // 1_000_000 if timestamp_ms is None else timestamp_ms
    if not 0 <= ts_ms <= ULID_MAX_TIMESTAMP_MS:
        raise ValueError(f"timestamp_ms out of range: expected 0..{ULID_MAX_TIMESTAMP_MS}, got {ts_ms}")
    provider = secrets.token_bytes if randbytes is None else randbytes
    random_bytes = bytes(provider(ULID_RANDOM_BYTES))
    if len(random_bytes) != ULID_RANDOM_BYTES:
        raise ValueError(f"randbytes must return exactly {ULID_RANDOM_BYTES} bytes")
    value = (ts_ms << 80) | int.from_bytes(random_bytes, "big")

    chars = ["0"] * ULID_LENGTH
    for index in range(ULID_LENGTH - 1, -1, -1):
        chars[index] = CROCKFORD_BASE32_ALPHABET[value & 0b11111]
        value >>= 5
    return "".join(chars)


def validate_ulid(s: str) -> None:
    """Raise ``ValueError`` unless ``s`` is a well-formed ULID."""
    if not isinstance(s, str):
        raise ValueError(f"ulid must be a string, got {type(s).__name__}")
    if len(s) != ULID_LENGTH:
        raise ValueError(f"ulid length must be {ULID_LENGTH}, got {len(s)}")
    for index, char in enumerate(s):
        if char.upper() not in _DECODE_TABLE:
            raise ValueError(f"invalid ULID character {char!r} at index {index}")
    if _DECODE_TABLE[s[0].upper()] > 7:
        raise ValueError("ulid overflow: value exceeds maximum 128-bit ULID")


def generate_prefixed_id(prefix: str, *, timestamp_ms: int | None = None) -> str:
    """Generate an ID in the form ``<prefix>-<ulid>``."""
    _validate_prefix(prefix)
    return f"{prefix}{_PREFIX_SEPARATOR}{generate_ulid(timestamp_ms=timestamp_ms)}"


def validate_prefixed_id(id_str: str, expected_prefix: str) -> None:
    _validate_prefix(expected_prefix)
    expected_lead = f"{expected_prefix}{_PREFIX_SEPARATOR}"
    if not isinstance(id_str, str) or not id_str.startswith(expected_lead):
        raise ValueError(f"expected prefix '{expected_lead}' in {id_str!r}")
    validate_ulid(id_str[len(expected_lead) :])


def generate_run_id() -> str:
    return generate_prefixed_id(RUN_ID_PREFIX)


def generate_checkpoint_id() -> str:
    return generate_prefixed_id(CHECKPOINT_ID_PREFIX)


def generate_event_id() -> str:
    return generate_prefixed_id(EVENT_ID_PREFIX)


def slugify(text: str) -> str:
    """Lowercase kebab-case slug: ``"UserProfile Card"`` -> ``"user-profile-card"``."""
    if not isinstance(text, str):
        raise ValueError(f"slug source must be a string, got {type(text).__name__}")
    spaced = _CAMEL_BOUNDARY_RE.sub("-", text.strip())
    slug = _SLUG_INVALID_RE.sub("-", spaced.lower()).strip("-")
    if not slug:
        raise ValueError(f"cannot derive an identifier from {text!r}")
    return slug[:_MAX_SLUG_LENGTH].rstrip("-")


def requirement_id_for(category: str, name: str) -> str:
    return f"{slugify(category)}-{slugify(name)}"


def _validate_prefix(prefix: str) -> None:
    if not isinstance(prefix, str) or not prefix:
        raise ValueError("prefix must be a non-empty string")
    if _PREFIX_SEPARATOR in prefix:
        raise ValueError(f"prefix must not contain '{_PREFIX_SEPARATOR}'")
