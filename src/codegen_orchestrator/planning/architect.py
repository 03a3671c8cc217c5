"""
codegen-orchestrator — architecture planner

File: src/codegen_orchestrator/planning/architect.py

Purpose
- Turns an analysis report into an immutable ``GenerationPlan``: one primary
  task per requirement, cross-cutting dependency edges, computed output
  paths, and scheduled waves.

Functional requirements
- Every task is bound to exactly one registered agent type.
- Unresolvable dependency references, unknown agent types, cycles and
  same-wave path overlaps fail with ``PlanningError``; no partial plan is
  returned.
- Identical requirements and context yield identical plans, plan id
  included.

Non-functional requirements
- No I/O: the planner reads the report and the registry only.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Any, Final

import structlog

from codegen_orchestrator.constants import AGENT_EFFORT_MINUTES
from codegen_orchestrator.control_plane.scheduler import WaveScheduler
from codegen_orchestrator.domain.errors import PlanningError
from codegen_orchestrator.domain.ids import PLAN_ID_PREFIX, slugify
from codegen_orchestrator.domain.models import (
    GenerationPlan,
    GenerationTask,
    QualityGateConfig,
    RequirementCategory,
    thaw,
)
from codegen_orchestrator.planning.task_graph import TaskGraph
from codegen_orchestrator.utils.hashing import stable_digest

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from codegen_orchestrator.domain.models import AnalysisReport, ProjectContext, Requirement
    from codegen_orchestrator.synthesis_plane.registry import AgentRegistry

CATEGORY_AGENT_TYPES: Final[Mapping[RequirementCategory, str]] = {
    RequirementCategory.COMPONENT: "component",
    RequirementCategory.API: "api",
    RequirementCategory.DATABASE: "database",
    RequirementCategory.STYLING: "styling",
    RequirementCategory.TESTING: "testing",
    RequirementCategory.DOCUMENTATION: "documentation",
    RequirementCategory.INFRASTRUCTURE: "infrastructure",
    RequirementCategory.UTILITY: "utility",
    RequirementCategory.GENERAL: "utility",
}

ARCHITECTURE_KEYS: Final[Mapping[RequirementCategory, str]] = {
    RequirementCategory.COMPONENT: "components",
    RequirementCategory.API: "apis",
    RequirementCategory.DATABASE: "schemas",
    RequirementCategory.STYLING: "styles",
    RequirementCategory.TESTING: "tests",
    RequirementCategory.DOCUMENTATION: "docs",
    RequirementCategory.INFRASTRUCTURE: "infrastructure",
    RequirementCategory.UTILITY: "utilities",
    RequirementCategory.GENERAL: "general",
}

_CATEGORY_DIRS: Final[Mapping[RequirementCategory, str]] = {
    RequirementCategory.COMPONENT: "components",
    RequirementCategory.API: "api",
    RequirementCategory.DATABASE: "models",
    RequirementCategory.STYLING: "styles",
    RequirementCategory.TESTING: "tests",
    RequirementCategory.DOCUMENTATION: "docs",
    RequirementCategory.INFRASTRUCTURE: "infra",
    RequirementCategory.UTILITY: "utils",
    RequirementCategory.GENERAL: "lib",
}

# Categories whose files live at the repository root rather than under src/.
_ROOT_LEVEL: Final[frozenset[RequirementCategory]] = frozenset(
    {
        RequirementCategory.TESTING,
        RequirementCategory.DOCUMENTATION,
        RequirementCategory.INFRASTRUCTURE,
    }
)

_SOURCE_EXTENSIONS: Final[Mapping[str, str]] = {
    "typescript": ".ts",
    "javascript": ".js",
    "python": ".py",
    "go": ".go",
    "rust": ".rs",
}
_COMPONENT_EXTENSIONS: Final[Mapping[str, str]] = {"typescript": ".tsx", "javascript": ".jsx"}
_FIXED_EXTENSIONS: Final[Mapping[RequirementCategory, str]] = {
    RequirementCategory.STYLING: ".css",
    RequirementCategory.DOCUMENTATION: ".md",
    RequirementCategory.INFRASTRUCTURE: ".yml",
}
_PYTHON_STYLE_LANGUAGES: Final[frozenset[str]] = frozenset({"python", "go", "rust"})
_TEST_TASK_PREFIX: Final[str] = "test-"


class ArchitecturePlanner:
    """Builds generation plans from analysis reports."""

    def __init__(
        self,
        *,
        scheduler: WaveScheduler | None = None,
        quality_gate: QualityGateConfig | None = None,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        self._scheduler = scheduler if scheduler is not None else WaveScheduler()
        self._quality_gate = quality_gate if quality_gate is not None else QualityGateConfig()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def plan(self, report: AnalysisReport, registry: AgentRegistry) -> GenerationPlan:
        requirements = report.requirements
        context = report.project_context
        architecture = build_architecture(requirements)

        primary: dict[str, GenerationTask] = {}
        by_reference: dict[str, str] = {}
        for requirement in requirements:
            task = self._primary_task(requirement, context)
            primary[requirement.requirement_id] = task
            by_reference[requirement.requirement_id] = task.task_id
            by_reference.setdefault(requirement.name.lower(), task.task_id)
            by_reference.setdefault(slugify(requirement.name), task.task_id)

        tasks: list[GenerationTask] = []
        for requirement in requirements:
            task = primary[requirement.requirement_id]
            depends_on = self._cross_cutting_dependencies(requirement, requirements, primary)
            depends_on |= _resolve_references(
                requirement, _explicit_dependencies(requirement), by_reference
            )
            target = requirement.parameters.get("target")
            if requirement.category is RequirementCategory.TESTING and target is not None:
                depends_on |= _resolve_references(requirement, [target], by_reference)
            depends_on.discard(task.task_id)
            tasks.append(_with_dependencies(task, depends_on))

            if _wants_companion_tests(requirement):
                tasks.append(self._companion_test_task(requirement, task, context))

        _check_agent_types(tasks, registry)
        waves = self._scheduler.compute_waves(tasks)

        ordered = tuple(sorted(tasks, key=lambda item: item.task_id))
        plan_id = f"{PLAN_ID_PREFIX}-" + stable_digest(
            {
                "tasks": [item.to_dict() for item in ordered],
                "context": context.to_dict(),
                "quality_gate": self._quality_gate.to_dict(),
            },
            length=16,
        )
        plan = GenerationPlan(
            plan_id=plan_id,
            tasks=ordered,
            waves=waves,
            architecture=architecture,
            requirements=requirements,
            project_context=context,
            quality_gate=self._quality_gate,
            estimated_duration_minutes=estimate_duration_minutes(ordered),
            file_structure=tuple(sorted({path for item in ordered for path in item.output_paths})),
            agent_groups=_agent_groups(ordered),
        )
        self._logger.info(
            "plan_created",
            plan_id=plan.plan_id,
            tasks=len(plan.tasks),
            waves=len(plan.waves),
            estimated_duration_minutes=plan.estimated_duration_minutes,
        )
        return plan

    def _primary_task(self, requirement: Requirement, context: ProjectContext) -> GenerationTask:
        parameters = requirement.parameters
        agent_type = agent_type_for(requirement)
        output_paths = parameters.get("output_paths")
        if output_paths is None:
            output_paths = (default_output_path(requirement, context),)
        input_spec: dict[str, Any] = {
            "name": requirement.name,
            "category": requirement.category.value,
            "architecture_key": ARCHITECTURE_KEYS[requirement.category],
            "parameters": thaw(parameters),
            "output_paths": _as_path_list(output_paths, requirement, "output_paths"),
            "modifies_paths": _as_path_list(
                parameters.get("modifies_paths", ()), requirement, "modifies_paths"
            ),
        }
        return _build_task(
            requirement,
            task_id=requirement.requirement_id,
            agent_type=agent_type,
            description=_describe(requirement),
            input_spec=input_spec,
        )

    def _companion_test_task(
        self, requirement: Requirement, target: GenerationTask, context: ProjectContext
    ) -> GenerationTask:
        return _build_task(
            requirement,
            task_id=f"{_TEST_TASK_PREFIX}{target.task_id}",
            agent_type=CATEGORY_AGENT_TYPES[RequirementCategory.TESTING],
            description=f"Generate tests for {requirement.name}",
            input_spec={
                "name": requirement.name,
                "category": RequirementCategory.TESTING.value,
                "architecture_key": ARCHITECTURE_KEYS[RequirementCategory.TESTING],
                "parameters": {"target": target.task_id},
                "target_paths": list(target.output_paths),
                "output_paths": [companion_test_path(target.output_paths[0], context)]
                if target.output_paths
                else [],
            },
            depends_on=frozenset({target.task_id}),
        )

    @staticmethod
    def _cross_cutting_dependencies(
        requirement: Requirement,
        requirements: Sequence[Requirement],
        primary: Mapping[str, GenerationTask],
    ) -> set[str]:
        def tasks_in(*categories: RequirementCategory) -> set[str]:
            return {
                primary[item.requirement_id].task_id
                for item in requirements
                if item.category in categories
            }

        category = requirement.category
        if category is RequirementCategory.API:
            return tasks_in(RequirementCategory.DATABASE)
        if category is RequirementCategory.COMPONENT:
            return tasks_in(RequirementCategory.STYLING)
        if category is RequirementCategory.DOCUMENTATION:
            return tasks_in(RequirementCategory.API, RequirementCategory.COMPONENT)
        return set()


def agent_type_for(requirement: Requirement) -> str:
    """The agent a requirement is bound to: ``parameters.agent`` or its category default."""

    override = requirement.parameters.get("agent")
    if isinstance(override, str) and override.strip():
        return override.strip().lower()
    return CATEGORY_AGENT_TYPES[requirement.category]


def build_architecture(requirements: Sequence[Requirement]) -> dict[str, tuple[str, ...]]:
    """Requirement names grouped under architecture keys; every key is present."""

    grouped: dict[str, list[str]] = {key: [] for key in ARCHITECTURE_KEYS.values()}
    for requirement in requirements:
        grouped[ARCHITECTURE_KEYS[requirement.category]].append(requirement.name)
    return {key: tuple(names) for key, names in grouped.items()}


def default_output_path(requirement: Requirement, context: ProjectContext) -> str:
    """Conventional location for a requirement's primary file."""

    category = requirement.category
    language = context.language if context.language in _SOURCE_EXTENSIONS else "typescript"
    convention_key = "components" if category is RequirementCategory.COMPONENT else "files"
    convention = context.naming_conventions.get(convention_key, "kebab-case")
    if language in _PYTHON_STYLE_LANGUAGES:
        convention = "snake_case"

    extension = _FIXED_EXTENSIONS.get(category)
    if extension is None:
        extension = _SOURCE_EXTENSIONS[language]
        if category is RequirementCategory.COMPONENT:
            extension = _COMPONENT_EXTENSIONS.get(language, extension)
    stem = apply_naming_convention(requirement.name, convention)
    if category is RequirementCategory.TESTING:
        stem = _test_stem(stem, language)

    directory = _CATEGORY_DIRS[category]
    if category not in _ROOT_LEVEL and "src" in context.source_dirs:
        directory = f"src/{directory}"
    return f"{directory}/{stem}{extension}"


def companion_test_path(target_path: str, context: ProjectContext) -> str:
    """Companion test location for a generated source file."""

    path = PurePosixPath(target_path)
    if context.language == "python":
        return f"tests/test_{path.stem}.py"
    if context.language == "go":
        return str(path.with_name(f"{path.stem}_test.go"))
    if context.language == "rust":
        return f"tests/{path.stem}.rs"
    return str(path.with_name(f"{path.stem}.test{path.suffix}"))


def apply_naming_convention(name: str, convention: str) -> str:
    parts = slugify(name).split("-")
    if convention == "PascalCase":
        return "".join(part.capitalize() for part in parts)
    if convention == "camelCase":
        return parts[0] + "".join(part.capitalize() for part in parts[1:])
    if convention == "snake_case":
        return "_".join(parts)
    return "-".join(parts)


def estimate_duration_minutes(tasks: Sequence[GenerationTask]) -> int:
    """Effort along the critical path; parallel branches do not add up."""

    if not tasks:
        return 0
    weights = {task.task_id: float(AGENT_EFFORT_MINUTES.get(task.agent_type, 2)) for task in tasks}
    graph = TaskGraph.from_tasks(tasks)
    return int(sum(weights[node] for node in graph.critical_path(weights)))


def _test_stem(stem: str, language: str) -> str:
    if language == "python":
        return f"test_{stem}"
    if language == "go":
        return f"{stem}_test"
    if language == "rust":
        return stem
    return f"{stem}.test"


def _describe(requirement: Requirement) -> str:
    if requirement.description and requirement.description != requirement.name:
        return f"Generate {requirement.category.value} {requirement.name}: {requirement.description}"
    return f"Generate {requirement.category.value} {requirement.name}"


def _wants_companion_tests(requirement: Requirement) -> bool:
    return requirement.category in {
        RequirementCategory.COMPONENT,
        RequirementCategory.API,
    } and requirement.parameters.get("tests") is True


def _explicit_dependencies(requirement: Requirement) -> list[object]:
    raw = requirement.parameters.get("depends_on", ())
    if isinstance(raw, str):
        return [raw]
    if isinstance(raw, Sequence):
        return list(raw)
    raise PlanningError(
        f"requirement {requirement.requirement_id!r}: 'depends_on' must be a string or list",
        task_ids=(requirement.requirement_id,),
    )


def _resolve_references(
    requirement: Requirement, references: Sequence[object], by_reference: Mapping[str, str]
) -> set[str]:
    resolved: set[str] = set()
    for reference in references:
        key = str(reference).strip()
        task_id = by_reference.get(key) or by_reference.get(key.lower())
        if task_id is None:
            try:
                task_id = by_reference.get(slugify(key))
            except ValueError:
                task_id = None
        if task_id is None:
            raise PlanningError(
                f"requirement {requirement.requirement_id!r} depends on unknown {key!r}",
                task_ids=(requirement.requirement_id,),
            )
        resolved.add(task_id)
    return resolved


def _as_path_list(raw: object, requirement: Requirement, field_name: str) -> list[str]:
    if isinstance(raw, str):
        return [raw]
    if isinstance(raw, Sequence) and all(isinstance(item, str) for item in raw):
        return list(raw)
    raise PlanningError(
        f"requirement {requirement.requirement_id!r}: '{field_name}' must be a list of paths",
        task_ids=(requirement.requirement_id,),
    )


def _build_task(
    requirement: Requirement,
    *,
    task_id: str,
    agent_type: str,
    description: str,
    input_spec: Mapping[str, Any],
    depends_on: frozenset[str] = frozenset(),
) -> GenerationTask:
    try:
        return GenerationTask(
            task_id=task_id,
            agent_type=agent_type,
            description=description,
            requirement_id=requirement.requirement_id,
            input_spec=input_spec,
            depends_on=depends_on,
        )
    except ValueError as exc:
        raise PlanningError(str(exc), task_ids=(task_id,)) from exc


def _with_dependencies(task: GenerationTask, depends_on: set[str]) -> GenerationTask:
    if not depends_on:
        return task
    return GenerationTask(
        task_id=task.task_id,
        agent_type=task.agent_type,
        description=task.description,
        requirement_id=task.requirement_id,
        input_spec=thaw(task.input_spec),
        depends_on=frozenset(depends_on) | task.depends_on,
    )


def _check_agent_types(tasks: Sequence[GenerationTask], registry: AgentRegistry) -> None:
    missing = sorted({task.agent_type for task in tasks if not registry.has(task.agent_type)})
    if missing:
        raise PlanningError(
            f"no agent registered for type(s): {', '.join(missing)}; "
            f"available: {', '.join(registry.agent_types) or '<none>'}",
            task_ids=[task.task_id for task in tasks if task.agent_type in missing],
        )


def _agent_groups(tasks: Sequence[GenerationTask]) -> dict[str, tuple[str, ...]]:
    groups: dict[str, list[str]] = {}
    for task in tasks:
        groups.setdefault(task.agent_type, []).append(task.task_id)
    return {agent_type: tuple(sorted(ids)) for agent_type, ids in sorted(groups.items())}


__all__ = [
    "ARCHITECTURE_KEYS",
    "CATEGORY_AGENT_TYPES",
    "ArchitecturePlanner",
    "agent_type_for",
    "apply_naming_convention",
    "build_architecture",
    "companion_test_path",
    "default_output_path",
    "estimate_duration_minutes",
]
