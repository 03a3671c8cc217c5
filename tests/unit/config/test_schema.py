"""Unit tests for config.schema."""

from __future__ import annotations

from pathlib import Path

import pytest

from codegen_orchestrator.config.schema import (
    DEFAULT_CONFIG,
    QUALITY_EVALUATOR_NAMES,
    ConfigValidationError,
    EngineSettings,
    apply_profile_overlay,
    assert_valid_config,
    default_config,
    merge_config,
    migration_guidance,
    redact_config,
    validate_config,
)


def _issue_paths(config: object) -> list[str]:
    return [issue.path for issue in validate_config(config).issues]


def test_defaults_are_valid_and_copied() -> None:
    config = default_config()
    assert validate_config(config).is_valid

    config["engine"]["max_workers"] = 99
    assert DEFAULT_CONFIG["engine"]["max_workers"] == 4


def test_non_mapping_root_is_rejected() -> None:
    assert _issue_paths(["not", "a", "mapping"]) == ["<root>"]


def test_missing_sections_and_fields_are_reported() -> None:
    config = default_config()
    del config["checkpoint"]
    del config["engine"]["fail_fast"]

    assert _issue_paths(config) == ["checkpoint", "engine.fail_fast"]


@pytest.mark.parametrize(
    ("section", "key", "value", "message"),
    [
        ("engine", "max_workers", True, "expected integer"),
        ("engine", "task_timeout_seconds", 0, "must be > 0.0"),
        ("quality", "threshold", 101, "must be <= 100.0"),
        ("quality", "gate", "strictest", "invalid value"),
        ("observability", "log_level", "TRACE", "invalid value"),
        ("checkpoint", "use_vcs", "yes", "expected boolean"),
        ("paths", "log_dir", "   ", "must not be empty"),
    ],
)
def test_field_rules(section: str, key: str, value: object, message: str) -> None:
    config = default_config()
    config[section][key] = value  # type: ignore[literal-required]

    result = validate_config(config)

    assert not result.is_valid
    assert [issue.path for issue in result.issues] == [f"{section}.{key}"]
    assert message in result.issues[0].message


def test_unknown_fields_and_embedded_secrets_are_rejected() -> None:
    config = merge_config(default_config(), {"engine": {"turbo": True, "api_key": "sk-1"}})

    issues = {issue.path: issue.message for issue in validate_config(config).issues}

    assert issues["engine.turbo"] == "unknown field"
    assert "secret" in issues["engine.api_key"]


def test_unknown_evaluator_is_rejected() -> None:
    config = default_config()
    config["quality"]["evaluators"] = ["empty_output", "vibes"]

    assert _issue_paths(config) == ["quality.evaluators"]


def test_schema_version_mismatch_includes_migration_guidance() -> None:
    config = default_config()
    config["meta"]["schema_version"] = 2

    result = validate_config(config)
    assert result.issues[0].path == "meta.schema_version"
    assert "newer" in result.issues[0].message
    assert "older" in migration_guidance(0)


def test_profile_names_and_sections_are_validated() -> None:
    config = merge_config(
        default_config(),
        {"profiles": {"Bad Name": {}, "fast": {"meta": {"schema_version": 1}}}},
    )

    paths = _issue_paths(config)
    assert "profiles.Bad Name" in paths
    assert "profiles.fast.meta" in paths


def test_apply_profile_overlay_revalidates() -> None:
    config = assert_valid_config(
        merge_config(default_config(), {"profiles": {"slow": {"engine": {"max_workers": 1}}}})
    )

    overlaid = apply_profile_overlay(config, "slow")
    assert overlaid["engine"]["max_workers"] == 1
    assert apply_profile_overlay(config, None) == config

    with pytest.raises(ConfigValidationError, match="not defined"):
        apply_profile_overlay(config, "missing")


def test_merge_config_is_deep_and_does_not_mutate_inputs() -> None:
    base = {"engine": {"max_workers": 4, "fail_fast": False}}
    merged = merge_config(base, {"engine": {"fail_fast": True}})

    assert merged == {"engine": {"max_workers": 4, "fail_fast": True}}
    assert base["engine"]["fail_fast"] is False


def test_redact_config_masks_sensitive_keys() -> None:
    redacted = redact_config(
        {"provider": {"token": "abc", "name": "x"}, "items": [{"password": 1}]}
    )

    assert redacted == {
        "items": [{"password": "<redacted>"}],
        "provider": {"name": "x", "token": "<redacted>"},
    }
    assert redact_config("nope") == {}


def test_engine_settings_from_config_and_defaults(tmp_path: Path) -> None:
    config = default_config()
    config["paths"]["workspace_root"] = str(tmp_path)
    config["quality"]["gate"] = "threshold"

    settings = EngineSettings.from_config(config)

    assert settings.workspace_root == tmp_path
    assert settings.log_dir == tmp_path / ".codegen" / "logs"
    assert settings.quality_gate == "threshold"
    assert settings.quality_evaluators == QUALITY_EVALUATOR_NAMES
    assert settings.max_workers == 4

    fallback = EngineSettings.defaults(tmp_path)
    assert fallback.log_dir == tmp_path / ".codegen" / "logs"
    assert fallback.use_vcs is False
