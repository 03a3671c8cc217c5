"""Unit tests for canonical ID helpers."""

from __future__ import annotations

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from codegen_orchestrator.domain import ids


def _zero_bytes(size: int) -> bytes:
    return b"\x00" * size


def _ff_bytes(size: int) -> bytes:
    return b"\xff" * size


def test_generate_ulid_no_collision_10000() -> None:
    generated = {ids.generate_ulid() for _ in range(10_000)}
    assert len(generated) == 10_000


def test_ulid_charset_length_and_reject_invalid_chars() -> None:
    ulid_value = ids.generate_ulid(timestamp_ms=123_456, randbytes=_ff_bytes)
    assert len(ulid_value) == ids.ULID_LENGTH
    assert ulid_value == ulid_value.upper()
    assert all(char in ids.CROCKFORD_BASE32_ALPHABET for char in ulid_value)

    ids.validate_ulid(ulid_value.lower())

    with pytest.raises(ValueError, match="ulid length must be"):
        ids.validate_ulid("0" * 25)
    for invalid in ["I" + "0" * 25, "O" + "0" * 25, "U" + "0" * 25]:
        with pytest.raises(ValueError, match="invalid ULID character"):
            ids.validate_ulid(invalid)
    with pytest.raises(ValueError, match="overflow"):
        ids.validate_ulid("8" + "0" * 25)


def test_ulids_sort_by_timestamp() -> None:
    earlier = ids.generate_ulid(timestamp_ms=1_000, randbytes=_ff_bytes)
    later = ids.generate_ulid(timestamp_ms=1_001, randbytes=_zero_bytes)
    assert earlier < later


def test_prefixed_ids_validate_against_their_prefix() -> None:
    run_id = ids.generate_run_id()
    ids.validate_prefixed_id(run_id, ids.RUN_ID_PREFIX)
    assert ids.generate_checkpoint_id().startswith("ckpt-")
    assert ids.generate_event_id().startswith("evt-")

    with pytest.raises(ValueError, match="expected prefix"):
        ids.validate_prefixed_id(run_id, ids.CHECKPOINT_ID_PREFIX)
    with pytest.raises(ValueError):
        ids.generate_prefixed_id("bad-prefix")


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("UserProfile Card", "user-profile-card"),
        ("LoginForm", "login-form"),
        ("  /api/users  ", "api-users"),
        ("OAuth2 callback!", "oauth2-callback"),
    ],
)
def test_slugify(text: str, expected: str) -> None:
    assert ids.slugify(text) == expected


def test_slugify_rejects_text_without_identifier_characters() -> None:
    with pytest.raises(ValueError, match="cannot derive"):
        ids.slugify("!!!")


def test_requirement_id_combines_category_and_name() -> None:
    assert ids.requirement_id_for("component", "LoginForm") == "component-login-form"


_SLUGGABLE = st.text(min_size=1, max_size=80).filter(
    lambda value: any(char.isascii() and char.isalnum() for char in value)
)


@settings(max_examples=50, deadline=None)
@given(_SLUGGABLE)
def test_slugify_output_is_stable_and_kebab_case(text: str) -> None:
    slug = ids.slugify(text)
    assert slug == ids.slugify(text)
    assert slug == slug.strip("-")
    assert len(slug) <= 64
    assert all(char.islower() or char.isdigit() or char == "-" for char in slug)
