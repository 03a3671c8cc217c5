"""
codegen-orchestrator — configuration schema and validation.

File: src/codegen_orchestrator/config/schema.py

Purpose
- Define authoritative configuration defaults and strict validation rules.

Functional requirements
- Validate config payloads and return structured errors (field path + message).
- Support profile overlays (``strict`` and ``permissive`` ship built in).
- Materialize the typed ``EngineSettings`` view consumed by the orchestrator.

Non-functional requirements
- Keep rules deterministic and easy to audit: every rule lives in ``_SECTION_RULES``.
"""

from __future__ import annotations

import copy
import math
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final, Literal, TypedDict

from codegen_orchestrator.constants import CONFIG_SCHEMA_VERSION, DEFAULT_QUALITY_THRESHOLD

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION
BUILTIN_PROFILE_NAMES: Final[tuple[str, ...]] = ("strict", "permissive")
QUALITY_GATE_KINDS: Final[tuple[str, ...]] = ("always_pass", "threshold")
QUALITY_EVALUATOR_NAMES: Final[tuple[str, ...]] = (
    "agent_warnings",
    "empty_output",
    "placeholder_marker",
    "undeclared_path",
)
LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")

_PROFILE_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_-]*$")
_SENSITIVE_KEY_TOKENS: Final[frozenset[str]] = frozenset(
    {"secret", "token", "password", "passwd", "apikey", "credential", "credentials"}
)


class MetaConfig(TypedDict):
    schema_version: int


class EngineConfig(TypedDict):
    max_workers: int
    task_timeout_seconds: float
    fail_fast: bool


class QualityConfig(TypedDict):
    gate: Literal["always_pass", "threshold"]
    threshold: float
    evaluators: list[str]


class CheckpointConfig(TypedDict):
    use_vcs: bool
    prefer_vcs_restore: bool


class PathsConfig(TypedDict):
    workspace_root: str
    log_dir: str


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_to_stdout: bool
    redact_secrets: bool


class OrchestratorConfig(TypedDict):
    meta: MetaConfig
    engine: EngineConfig
    quality: QualityConfig
    checkpoint: CheckpointConfig
    paths: PathsConfig
    observability: ObservabilityConfig
    profiles: dict[str, dict[str, object]]


DEFAULT_CONFIG: Final[OrchestratorConfig] = {
    "meta": {"schema_version": ConfigSchemaVersion},
    "engine": {
        "max_workers": 4,
        "task_timeout_seconds": 300.0,
        "fail_fast": False,
    },
    "quality": {
        "gate": "always_pass",
        "threshold": DEFAULT_QUALITY_THRESHOLD,
        "evaluators": list(QUALITY_EVALUATOR_NAMES),
    },
    "checkpoint": {
        "use_vcs": False,
        "prefer_vcs_restore": False,
    },
    "paths": {
        "workspace_root": ".",
        "log_dir": ".codegen/logs",
    },
    "observability": {
        "log_level": "INFO",
        "log_to_stdout": False,
        "redact_secrets": True,
    },
    "profiles": {
        "strict": {
            "engine": {"fail_fast": True},
            "quality": {"gate": "threshold", "threshold": 85.0},
        },
        "permissive": {
            "quality": {"gate": "always_pass"},
        },
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """A config payload broke one or more rules; ``issues`` lists them in path order."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        lines = [f"- {issue.path}: {issue.message}" for issue in self.issues] or ["- <unknown>"]
        super().__init__("invalid config:\n" + "\n".join(lines))


@dataclass(frozen=True, slots=True)
class _Field:
    """Rule for one scalar or list leaf.

    ``kind`` is one of ``bool``, ``int``, ``number``, ``str`` or ``str_list``.
    ``above`` turns ``minimum`` into a strict bound.
    """

    kind: str
    minimum: float | None = None
    maximum: float | None = None
    above: bool = False
    choices: tuple[str, ...] = ()

    def check(self, value: object, path: str, issues: list[ConfigValidationIssue]) -> Any:
        problem, parsed = self._parse(value)
        if problem is None:
            return parsed
        issues.append(ConfigValidationIssue(path, problem))
        return None

    def _parse(self, value: object) -> tuple[str | None, Any]:
        got = type(value).__name__
        if self.kind == "bool":
            return (None, value) if isinstance(value, bool) else (f"expected boolean, got {got}", None)
        if self.kind in {"int", "number"}:
            return self._parse_number(value, got)
        if self.kind == "str_list":
            if isinstance(value, str) or not isinstance(value, (list, tuple)):
                return f"expected list of strings, got {got}", None
            items: list[str] = []
            for index, item in enumerate(value):
                problem, text = _Field("str")._parse(item)
                if problem is not None:
                    return f"item {index}: {problem}", None
                if text not in items:
                    items.append(text)
            return None, items
        if not isinstance(value, str):
            return f"expected string, got {got}", None
        text = value.strip()
        if not text:
            return "must not be empty", None
        if "\x00" in text:
            return "must not contain NUL bytes", None
        if self.choices and text not in self.choices:
            return f"invalid value {text!r}; expected one of: {', '.join(sorted(self.choices))}", None
        return None, text

    def _parse_number(self, value: object, got: str) -> tuple[str | None, Any]:
        wanted = (int,) if self.kind == "int" else (int, float)
        if isinstance(value, bool) or not isinstance(value, wanted):
            return f"expected {'integer' if self.kind == 'int' else 'number'}, got {got}", None
        if not math.isfinite(value):
            return "must be finite", None
        if self.minimum is not None and (value < self.minimum or (self.above and value == self.minimum)):
            return f"must be {'>' if self.above else '>='} {self.minimum}", None
        if self.maximum is not None and value > self.maximum:
            return f"must be <= {self.maximum}", None
        return None, value if self.kind == "int" else float(value)


_SECTION_RULES: Final[dict[str, dict[str, _Field]]] = {
    "meta": {"schema_version": _Field("int", minimum=1)},
    "engine": {
        "max_workers": _Field("int", minimum=1),
        "task_timeout_seconds": _Field("number", minimum=0.0, above=True),
        "fail_fast": _Field("bool"),
    },
    "quality": {
        "gate": _Field("str", choices=QUALITY_GATE_KINDS),
        "threshold": _Field("number", minimum=0.0, maximum=100.0),
        "evaluators": _Field("str_list"),
    },
    "checkpoint": {
        "use_vcs": _Field("bool"),
        "prefer_vcs_restore": _Field("bool"),
    },
    "paths": {
        "workspace_root": _Field("str"),
        "log_dir": _Field("str"),
    },
    "observability": {
        "log_level": _Field("str", choices=LOG_LEVELS),
        "log_to_stdout": _Field("bool"),
        "redact_secrets": _Field("bool"),
    },
}


@dataclass(frozen=True, slots=True)
class EngineSettings:
    """Typed view over a validated config, consumed by the orchestrator."""

    workspace_root: Path
    log_dir: Path
    max_workers: int = 4
    task_timeout_seconds: float | None = 300.0
    fail_fast: bool = False
    quality_gate: str = "always_pass"
    quality_threshold: float = DEFAULT_QUALITY_THRESHOLD
    quality_evaluators: tuple[str, ...] = QUALITY_EVALUATOR_NAMES
    use_vcs: bool = False
    prefer_vcs_restore: bool = False
    log_level: str = "INFO"
    log_to_stdout: bool = False
    redact_secrets: bool = True

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> EngineSettings:
        engine = config["engine"]
        quality = config["quality"]
        checkpoint = config["checkpoint"]
        paths = config["paths"]
        observability = config["observability"]
        workspace_root = Path(paths["workspace_root"])
        return cls(
            workspace_root=workspace_root,
            log_dir=workspace_root / paths["log_dir"],
            max_workers=int(engine["max_workers"]),
            task_timeout_seconds=float(engine["task_timeout_seconds"]),
            fail_fast=bool(engine["fail_fast"]),
            quality_gate=str(quality["gate"]),
            quality_threshold=float(quality["threshold"]),
            quality_evaluators=tuple(quality["evaluators"]),
            use_vcs=bool(checkpoint["use_vcs"]),
            prefer_vcs_restore=bool(checkpoint["prefer_vcs_restore"]),
            log_level=str(observability["log_level"]),
            log_to_stdout=bool(observability["log_to_stdout"]),
            redact_secrets=bool(observability["redact_secrets"]),
        )

    @classmethod
    def defaults(cls, workspace_root: Path | str = ".") -> EngineSettings:
        root = Path(workspace_root)
        return cls(workspace_root=root, log_dir=root / ".codegen" / "logs")


def default_config() -> OrchestratorConfig:
    """Return a deep copy of deterministic built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade orchestrator.toml to the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade the codegen-orchestrator runtime"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deterministically deep-merge ``overlay`` onto ``base``."""

    merged = copy.deepcopy(dict(base))
    _merge_into(merged, overlay)
    return merged


def apply_profile_overlay(config: Mapping[str, object], profile: str | None) -> dict[str, Any]:
    """Apply a named profile overlay and re-validate the resulting config."""

    materialized = copy.deepcopy(dict(config))
    selected = profile.strip() if isinstance(profile, str) else ""
    if not selected:
        return materialized

    profiles_raw = materialized.get("profiles")
    overlay_raw = profiles_raw.get(selected) if isinstance(profiles_raw, Mapping) else None
    if overlay_raw is None:
        raise ConfigValidationError(
            (ConfigValidationIssue("profiles", f"profile {selected!r} is not defined"),)
        )
    if not isinstance(overlay_raw, Mapping):
        raise ConfigValidationError(
            (ConfigValidationIssue(f"profiles.{selected}", "profile overlay must be an object"),)
        )

    return assert_valid_config(merge_config(materialized, overlay_raw))


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    """Check ``config`` against the rule table.

    Issues come back in a stable order: root-level keys, then each section in
    sorted order, then profiles, then cross-field checks.
    """

    issues: list[ConfigValidationIssue] = []
    if not isinstance(config, Mapping):
        issues.append(ConfigValidationIssue("<root>", f"expected object, got {type(config).__name__}"))
        return ConfigValidationResult(config=None, issues=tuple(issues))

    _reject_unknown_keys(config, {*_SECTION_RULES, "profiles"}, "", issues)
    normalized: dict[str, Any] = {}
    for section in sorted(_SECTION_RULES):
        if config.get(section) is None:
            issues.append(ConfigValidationIssue(section, "missing required section"))
        else:
            normalized[section] = _validate_section(config[section], section, issues, partial=False)

    profiles = config.get("profiles", {})
    if isinstance(profiles, Mapping):
        normalized["profiles"] = _validate_profiles(profiles, issues)
    else:
        issues.append(ConfigValidationIssue("profiles", f"expected object, got {type(profiles).__name__}"))

    version = normalized.get("meta", {}).get("schema_version")
    if isinstance(version, int) and version != ConfigSchemaVersion:
        issues.append(ConfigValidationIssue("meta.schema_version", migration_guidance(version)))

    unknown = sorted(set(normalized.get("quality", {}).get("evaluators", ())) - set(QUALITY_EVALUATOR_NAMES))
    if unknown:
        issues.append(
            ConfigValidationIssue(
                "quality.evaluators",
                f"unknown evaluators {unknown}; expected any of: {', '.join(QUALITY_EVALUATOR_NAMES)}",
            )
        )

    if issues:
        return ConfigValidationResult(config=None, issues=tuple(issues))
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def redact_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Copy of ``config`` with values under secret-looking keys masked."""

    return _redact_value(config) if isinstance(config, Mapping) else {}


def _validate_section(
    payload: object,
    path: str,
    issues: list[ConfigValidationIssue],
    *,
    partial: bool,
) -> dict[str, Any]:
    if not isinstance(payload, Mapping):
        issues.append(ConfigValidationIssue(path, f"expected object, got {type(payload).__name__}"))
        return {}
    rules = _SECTION_RULES[path.rsplit(".", 1)[-1]]
    _reject_unknown_keys(payload, set(rules), path, issues)

    checked: dict[str, Any] = {}
    for key, rule in sorted(rules.items()):
        if key in payload:
            value = rule.check(payload[key], f"{path}.{key}", issues)
            if value is not None:
                checked[key] = value
        elif not partial:
            issues.append(ConfigValidationIssue(f"{path}.{key}", "missing required field"))
    return checked


def _validate_profiles(
    payload: Mapping[str, object], issues: list[ConfigValidationIssue]
) -> dict[str, Any]:
    overlayable = set(_SECTION_RULES) - {"meta"}
    profiles: dict[str, Any] = {}
    for name, overlay in sorted(payload.items()):
        where = f"profiles.{name}"
        if not _PROFILE_NAME_PATTERN.fullmatch(name):
            issues.append(ConfigValidationIssue(where, f"profile name must match {_PROFILE_NAME_PATTERN.pattern}"))
        elif not isinstance(overlay, Mapping):
            issues.append(ConfigValidationIssue(where, "profile overlay must be an object"))
        else:
            _reject_unknown_keys(overlay, overlayable, where, issues)
            profiles[name] = {
                section: _validate_section(overlay[section], f"{where}.{section}", issues, partial=True)
                for section in sorted(overlayable & set(overlay))
            }
    return profiles


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: list[ConfigValidationIssue],
) -> None:
    for key in sorted(str(item) for item in payload if str(item) not in allowed):
        where = f"{path}.{key}" if path else key
        if _looks_sensitive_key(key):
            issues.append(ConfigValidationIssue(where, "embedded secret values are forbidden in orchestrator config"))
        else:
            issues.append(ConfigValidationIssue(where, "unknown field"))


def _looks_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return "api_key" in lowered or not _SENSITIVE_KEY_TOKENS.isdisjoint(re.split(r"[^a-z0-9]+", lowered))


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key, value in sorted(overlay.items()):
        current = target.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            _merge_into(current, value)
        else:
            target[key] = copy.deepcopy(value)


def _redact_value(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {
            key: "<redacted>" if _looks_sensitive_key(str(key)) else _redact_value(item)
            for key, item in sorted(value.items())
        }
    if isinstance(value, (list, tuple)):
        return [_redact_value(item) for item in value]
    return value


__all__ = [
    "BUILTIN_PROFILE_NAMES",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "EngineSettings",
    "LOG_LEVELS",
    "OrchestratorConfig",
    "QUALITY_EVALUATOR_NAMES",
    "QUALITY_GATE_KINDS",
    "apply_profile_overlay",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "migration_guidance",
    "redact_config",
    "validate_config",
]
