"""
codegen-orchestrator — runtime config loader.

File: src/codegen_orchestrator/config/loader.py

Purpose
- Build the effective config from layered sources.

Functional requirements
- Layers, lowest first: built-in defaults, ``orchestrator.toml``, the selected
  profile, ``CODEGEN_*`` environment variables, CLI overrides.
- Every scalar leaf has an environment name
  (``engine.max_workers`` -> ``CODEGEN_ENGINE_MAX_WORKERS``) and env text is
  coerced to the type of the value it replaces.
- A relative ``paths.workspace_root`` is anchored at the config file's
  directory; a relative ``paths.log_dir`` is anchored at the workspace root.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import Any, Final

from codegen_orchestrator.config.schema import (
    EngineSettings,
    apply_profile_overlay,
    assert_valid_config,
    default_config,
    merge_config,
    redact_config,
)
from codegen_orchestrator.constants import DEFAULT_CONFIG_FILENAME, ENV_PREFIX

_TRUTHY: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_FALSY: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})
_NOT_OVERRIDABLE: Final[frozenset[str]] = frozenset({"meta", "profiles"})


class ConfigLoadError(ValueError):
    """The config file is unreadable or an override has the wrong shape."""


def load_config(
    config_path: str | Path | None = None,
    *,
    base_dir: str | Path | None = None,
    profile: str | None = None,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Return the validated effective config.

    Without ``config_path`` an ``orchestrator.toml`` in ``base_dir`` (default:
    the current directory) is used when present. An explicit path must exist.
    ``cli_overrides`` maps dotted keys (``"engine.max_workers"``) to values;
    ``None`` values are ignored and the ``"profile"`` key selects a profile.
    """

    anchor = Path(base_dir).expanduser().resolve() if base_dir is not None else Path.cwd()
    if config_path is None:
        source = anchor / DEFAULT_CONFIG_FILENAME
        file_layer = _read_toml(source) if source.is_file() else {}
    else:
        source = Path(config_path).expanduser().resolve()
        if not source.is_file():
            raise ConfigLoadError(f"config file not found: {source}")
        file_layer = _read_toml(source)
    env = os.environ if environ is None else environ
    cli = dict(cli_overrides or {})

    config = assert_valid_config(merge_config(default_config(), file_layer))
    chosen = _pick_profile(profile, cli.pop("profile", None), env.get(f"{ENV_PREFIX}PROFILE"))
    if chosen is not None:
        config = apply_profile_overlay(config, chosen)
    config = merge_config(config, _env_layer(config, env))
    config = merge_config(config, _dotted_layer(cli))
    config = assert_valid_config(config)

    return normalize_paths(config, base_dir=source.parent if source.is_file() else anchor)


def load_settings(config_path: str | Path | None = None, **kwargs: Any) -> EngineSettings:
    return EngineSettings.from_config(load_config(config_path, **kwargs))


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Make ``paths.workspace_root`` and ``paths.log_dir`` absolute POSIX strings."""

    resolved = merge_config({}, config)
    paths = resolved["paths"]
    workspace = _absolute(str(paths["workspace_root"]), base_dir)
    paths["workspace_root"] = workspace.as_posix()
    paths["log_dir"] = _absolute(str(paths["log_dir"]), workspace).as_posix()
    return resolved


def dump_effective_config(config: Mapping[str, object]) -> str:
    return json.dumps(redact_config(config), sort_keys=True, indent=2, ensure_ascii=False)


def env_name_for_path(path: tuple[str, ...]) -> str:
    return ENV_PREFIX + "_".join(part.upper() for part in path)


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc


def _pick_profile(*candidates: object) -> str | None:
    for candidate in candidates:
        if candidate is None:
            continue
        if not isinstance(candidate, str):
            raise ConfigLoadError("profile override must be a string")
        return candidate.strip() or None
    return None


def _leaves(
    node: Mapping[str, object], prefix: tuple[str, ...] = ()
) -> Iterator[tuple[tuple[str, ...], object]]:
    for key in sorted(node):
        value = node[key]
        if isinstance(value, Mapping):
            yield from _leaves(value, (*prefix, key))
        else:
            yield (*prefix, key), value


def _env_layer(config: Mapping[str, object], environ: Mapping[str, str]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for path, current in _leaves(config):
        name = env_name_for_path(path)
        if path[0] in _NOT_OVERRIDABLE or name not in environ:
            continue
        _assign(layer, path, _coerce(environ[name], current, name, ".".join(path)))
    return layer


def _coerce(raw: str, current: object, name: str, dotted: str) -> object:
    text = raw.strip()
    if isinstance(current, bool):
        if text.lower() in _TRUTHY:
            return True
        if text.lower() in _FALSY:
            return False
        raise ConfigLoadError(f"{name} -> {dotted} must be a boolean (true/false/1/0/yes/no)")
    if isinstance(current, int):
        try:
            return int(text)
        except ValueError as exc:
            raise ConfigLoadError(f"{name} -> {dotted} must be an integer") from exc
    if isinstance(current, float):
        try:
            return float(text)
        except ValueError as exc:
            raise ConfigLoadError(f"{name} -> {dotted} must be a number") from exc
    if isinstance(current, list):
        return [item.strip() for item in text.split(",") if item.strip()]
    return text


def _dotted_layer(overrides: Mapping[str, object]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for key, value in sorted(overrides.items()):
        if value is None:
            continue
        path = tuple(part for part in key.split(".") if part)
        if not path:
            raise ConfigLoadError(f"invalid CLI override key {key!r}")
        _assign(layer, path, value)
    return layer


def _assign(target: dict[str, Any], path: tuple[str, ...], value: object) -> None:
    for part in path[:-1]:
        target = target.setdefault(part, {})
    target[path[-1]] = value


def _absolute(raw: str, anchor: Path) -> Path:
    candidate = Path(os.path.expandvars(raw)).expanduser()
    return Path(os.path.normpath(anchor / candidate))


__all__ = [
    "ConfigLoadError",
    "dump_effective_config",
    "env_name_for_path",
    "load_config",
    "load_settings",
    "normalize_paths",
]
