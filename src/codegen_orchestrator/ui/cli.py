"""Command-line interface router for codegen-orchestrator."""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

import structlog
import yaml

from codegen_orchestrator import __version__
from codegen_orchestrator.config import (
    ConfigLoadError,
    ConfigValidationError,
    EngineSettings,
    dump_effective_config,
    load_config,
    redact_config,
)
from codegen_orchestrator.control_plane.controller import GenerationOrchestrator
from codegen_orchestrator.domain.errors import PlanningError, RollbackFailure, ValidationError
from codegen_orchestrator.domain.ids import generate_run_id
from codegen_orchestrator.domain.models import RunStatus
from codegen_orchestrator.observability.logging import (
    configure_structlog,
    setup_logging,
    shutdown_logging,
)
from codegen_orchestrator.planning.architect import CATEGORY_AGENT_TYPES
from codegen_orchestrator.synthesis_plane.registry import AgentRegistry
from codegen_orchestrator.synthesis_plane.template_agent import TemplateAgent, load_template_dir
from codegen_orchestrator.ui.render import (
    CLIRenderer,
    create_renderer,
    render_analysis,
    render_plan,
    render_run,
)

YAML_SUFFIXES: Final[frozenset[str]] = frozenset({".yaml", ".yml"})
JSON_SUFFIXES: Final[frozenset[str]] = frozenset({".json"})


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 2

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router."""

    parser = argparse.ArgumentParser(
        prog="codegen",
        description=(
            "codegen-orchestrator: plan and run multi-agent code generation.\n\n"
            "Common workflows:\n"
            "  codegen analyze reqs.yaml                  Inspect requirements and project\n"
            "  codegen plan reqs.yaml                     Show the generation waves\n"
            "  codegen run reqs.yaml --templates tmpl/    Generate files from templates\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--workspace",
        default=None,
        help="Workspace root to analyze and write into (default: paths.workspace_root).",
    )
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to orchestrator TOML config (default: ./orchestrator.toml if present).",
    )
    common.add_argument("--profile", default=None, help="Config profile overlay name.")
    common.add_argument(
        "--verbose", "-v", action="store_true", default=False, help="Show detailed output."
    )
    common.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )
    common.add_argument("--json", action="store_true", help="Emit deterministic JSON output")
    common.add_argument(
        "--templates",
        default=None,
        help="Template directory; registers a template agent for every category.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    analyze_parser = subparsers.add_parser(
        "analyze",
        parents=[common],
        help="Parse requirements and inspect the workspace",
    )
    analyze_parser.add_argument("requirements", help="Requirements file (YAML, JSON or text)")
    analyze_parser.set_defaults(handler=_cmd_analyze)

    plan_parser = subparsers.add_parser(
        "plan",
        parents=[common],
        help="Build a deterministic generation plan",
    )
    plan_parser.add_argument("requirements", help="Requirements file (YAML, JSON or text)")
    plan_parser.set_defaults(handler=_cmd_plan)

    run_parser = subparsers.add_parser(
        "run",
        parents=[common],
        help="Plan and execute generation",
    )
    run_parser.add_argument("requirements", help="Requirements file (YAML, JSON or text)")
    run_parser.add_argument(
        "--max-workers", type=int, default=None, help="Override engine.max_workers."
    )
    run_parser.add_argument(
        "--fail-fast",
        action="store_true",
        default=None,
        help="Stop starting new waves after the first failed task.",
    )
    run_parser.set_defaults(handler=_cmd_run)

    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Show the effective (redacted) configuration",
    )
    config_parser.set_defaults(handler=_cmd_config)

    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return the process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    finally:
        structlog.reset_defaults()
    return int(result)


def main(argv: Sequence[str] | None = None) -> int:
    return run_cli(argv)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_analyze(args: argparse.Namespace) -> int:
    settings = _load_settings(args)
    configure_structlog()
    orchestrator = GenerationOrchestrator(
        settings.workspace_root, _build_registry(args), settings=settings
    )

    try:
        report = orchestrator.analyze(_read_requirements(args.requirements))
    except ValidationError as exc:
        raise CLIError(f"invalid requirements: {exc}") from exc

    if args.json:
        _emit_json({"command": "analyze", **report.to_dict()})
        return 0

    renderer = _get_renderer(args)
    render_analysis(renderer, report)
    renderer.next_steps([f"codegen plan {args.requirements}"])
    return 0


def _cmd_plan(args: argparse.Namespace) -> int:
    settings = _load_settings(args)
    configure_structlog()
    orchestrator = GenerationOrchestrator(
        settings.workspace_root, _build_registry(args), settings=settings
    )

    try:
        report = orchestrator.analyze(_read_requirements(args.requirements))
        plan = orchestrator.plan(report)
    except ValidationError as exc:
        raise CLIError(f"invalid requirements: {exc}") from exc
    except PlanningError as exc:
        raise CLIError(f"planning failed: {exc}") from exc

    if args.json:
        _emit_json({"command": "plan", **plan.to_dict()})
        return 0

    renderer = _get_renderer(args)
    render_plan(renderer, plan)
    renderer.next_steps([f"codegen run {args.requirements} --templates <dir>"])
    return 0


def _cmd_run(args: argparse.Namespace) -> int:
    settings = _load_settings(args)
    registry = _build_registry(args)
    requirements = _read_requirements(args.requirements)

    run_id = generate_run_id()
    handle = setup_logging(settings, run_id=run_id)
    try:
        orchestrator = GenerationOrchestrator(settings.workspace_root, registry, settings=settings)
        try:
            plan = orchestrator.plan(orchestrator.analyze(requirements))
        except ValidationError as exc:
            raise CLIError(f"invalid requirements: {exc}") from exc
        except PlanningError as exc:
            raise CLIError(f"planning failed: {exc}") from exc

        try:
            result = orchestrator.execute(plan, run_id=run_id)
        except RollbackFailure as exc:
            raise CLIError(f"run aborted: {exc}", exit_code=3) from exc
    finally:
        shutdown_logging(handle)

    exit_code = 0 if result.status is RunStatus.COMPLETED else 1
    if args.json:
        _emit_json(
            {
                "command": "run",
                "run_id": result.run_id,
                "plan_id": result.plan_id,
                "status": result.status.value,
                "generated_files": [item.path for item in result.generated_files],
                "failed_tasks": dict(result.failed_tasks),
                "rolled_back_tasks": list(result.rolled_back_tasks),
                "skipped_tasks": list(result.skipped_tasks),
                "metrics": result.metrics.to_dict(),
                "summary": result.summary.to_dict(),
                "log_path": str(handle.log_path),
            }
        )
        return exit_code

    renderer = _get_renderer(args)
    render_run(renderer, result)
    renderer.kv("Log", handle.log_path)
    return exit_code


def _cmd_config(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    if args.json:
        _emit_json(
            {"command": "config", "active_profile": args.profile, "config": redact_config(config)}
        )
        return 0

    renderer = _get_renderer(args)
    renderer.kv("Active profile", args.profile or "(default)")
    renderer.text(dump_effective_config(config))
    return 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _emit_json(payload: Mapping[str, object]) -> None:
    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    return create_renderer(no_color=args.no_color, verbose=args.verbose)


def _load_effective_config(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, object] = {}
    if args.workspace is not None:
        workspace = Path(args.workspace).expanduser().resolve()
        if not workspace.is_dir():
            raise CLIError(f"workspace is not a directory: {workspace}")
        overrides["paths.workspace_root"] = str(workspace)
    if getattr(args, "max_workers", None) is not None:
        overrides["engine.max_workers"] = args.max_workers
    if getattr(args, "fail_fast", None) is not None:
        overrides["engine.fail_fast"] = args.fail_fast

    try:
        return load_config(args.config_path, profile=args.profile, cli_overrides=overrides)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc)) from exc


def _load_settings(args: argparse.Namespace) -> EngineSettings:
    return EngineSettings.from_config(_load_effective_config(args))


def _build_registry(args: argparse.Namespace) -> AgentRegistry:
    """Installed entry-point agents, plus a template agent per category with ``--templates``."""

    registry = AgentRegistry()
    registry.load_entry_points()
    templates_dir = getattr(args, "templates", None)
    if templates_dir is None:
        return registry

    directory = Path(templates_dir).expanduser()
    if not directory.is_dir():
        raise CLIError(f"templates directory not found: {directory}")
    agent = TemplateAgent(load_template_dir(directory))
    for agent_type in sorted(set(CATEGORY_AGENT_TYPES.values())):
        if not registry.has(agent_type):
            registry.register(agent_type, agent)
    return registry


def read_requirements(path: Path) -> object:
    """Load a requirements file: YAML or JSON by suffix, free text otherwise."""

    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise CLIError(f"requirements file not found: {path}") from exc
    except OSError as exc:
        raise CLIError(f"cannot read requirements file {path}: {exc}") from exc

    suffix = path.suffix.lower()
    if suffix in YAML_SUFFIXES:
        try:
            return yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise CLIError(f"invalid YAML in {path}: {exc}") from exc
    if suffix in JSON_SUFFIXES:
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise CLIError(f"invalid JSON in {path}: {exc}") from exc
    return text


def _read_requirements(raw_path: str) -> object:
    return read_requirements(Path(raw_path).expanduser())


__all__ = ["CLIError", "build_parser", "main", "read_requirements", "run_cli"]
