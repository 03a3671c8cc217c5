"""Frozen domain records with canonical JSON serialization.

Every record is immutable once built: requirements are produced once by the
parser, plans once by the planner, and run results once per execution. Nested
mappings are frozen into read-only views so an agent holding an
``AgentContext`` cannot mutate shared planning state.
"""

from __future__ import annotations

import json
import math
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import UTC, datetime
from enum import Enum, StrEnum
from types import MappingProxyType
from typing import Any, NoReturn, cast

from codegen_orchestrator.utils.fs import normalize_relative_path

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]


class RequirementCategory(StrEnum):
    COMPONENT = "component"
    API = "api"
    DATABASE = "database"
    STYLING = "styling"
    TESTING = "testing"
    DOCUMENTATION = "documentation"
    INFRASTRUCTURE = "infrastructure"
    UTILITY = "utility"
    GENERAL = "general"


class TaskStatus(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self not in {TaskStatus.PENDING, TaskStatus.RUNNING}


class RunStatus(StrEnum):
    COMPLETED = "completed"
    PARTIAL = "partial"
    CANCELLED = "cancelled"
    ABORTED = "aborted"


class IssueSeverity(StrEnum):
    INFO = "info"
    WARNING = "warning"
    BLOCKING = "blocking"


class CanonicalModel:
    """Mixin for canonical dict/json serialization."""

    __slots__ = ()

    def to_dict(self) -> dict[str, JSONValue]:
        serialized = _serialize_value(self, self.__class__.__name__)
        if not isinstance(serialized, dict):
            _fail(self.__class__.__name__, "serialized model must be an object")
        return serialized

    def to_json(self, *, indent: int | None = None) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, indent=indent, ensure_ascii=False)


# ---------------------------------------------------------------------------
# Requirements and project context
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Requirement(CanonicalModel):
    requirement_id: str
    type: str
    category: RequirementCategory
    name: str
    description: str = ""
    parameters: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        _require_text(self.requirement_id, "Requirement.requirement_id")
        _require_text(self.type, "Requirement.type")
        _require_text(self.name, "Requirement.name")
        object.__setattr__(self, "category", RequirementCategory(self.category))
        object.__setattr__(self, "parameters", freeze(self.parameters))


@dataclass(frozen=True, slots=True)
class ProjectContext(CanonicalModel):
    """Read-only facts about the target codebase. Unknown facts carry defaults."""

    root: str
    project_type: str = "unknown"
    framework: str = "unknown"
    language: str = "unknown"
    build_system: str = "unknown"
    test_framework: str = "none"
    package_manager: str = "none"
    styling_approach: str = "none"
    state_management: str = "none"
    naming_conventions: Mapping[str, str] = field(
        default_factory=lambda: {"components": "PascalCase", "files": "kebab-case"}
    )
    source_dirs: tuple[str, ...] = ()
    dependencies: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "naming_conventions", freeze(self.naming_conventions))
        object.__setattr__(self, "source_dirs", tuple(self.source_dirs))
        object.__setattr__(self, "dependencies", tuple(sorted(set(self.dependencies))))


@dataclass(frozen=True, slots=True)
class AnalysisReport(CanonicalModel):
    requirements: tuple[Requirement, ...]
    project_context: ProjectContext
    patterns: tuple[str, ...] = ()
    required_agent_types: tuple[str, ...] = ()
    compatibility_score: float = 100.0
    recommendations: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class GenerationTask(CanonicalModel):
    """One unit of generation work bound to exactly one agent type.

    ``input_spec`` carries ``output_paths`` (files the agent may create) and
    optionally ``modifies_paths`` (existing files it may rewrite).
    """

    task_id: str
    agent_type: str
    description: str
    requirement_id: str | None = None
    input_spec: Mapping[str, Any] = field(default_factory=dict)
    depends_on: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        _require_text(self.task_id, "GenerationTask.task_id")
        _require_text(self.agent_type, "GenerationTask.agent_type")
        spec = dict(self.input_spec)
        for key in ("output_paths", "modifies_paths"):
            raw_paths = spec.get(key, ())
            if isinstance(raw_paths, str):
                raw_paths = (raw_paths,)
            try:
                spec[key] = tuple(normalize_relative_path(item) for item in raw_paths)
            except ValueError as exc:
                _fail(f"GenerationTask[{self.task_id}].input_spec.{key}", str(exc))
        object.__setattr__(self, "input_spec", freeze(spec))
        object.__setattr__(self, "depends_on", frozenset(self.depends_on))
        if self.task_id in self.depends_on:
            _fail(f"GenerationTask[{self.task_id}]", "task cannot depend on itself")

    @property
    def output_paths(self) -> tuple[str, ...]:
        return cast("tuple[str, ...]", self.input_spec["output_paths"])

    @property
    def modifies_paths(self) -> tuple[str, ...]:
        return cast("tuple[str, ...]", self.input_spec["modifies_paths"])

    @property
    def touched_paths(self) -> tuple[str, ...]:
        """Every path this task may write, sorted and de-duplicated."""
        return tuple(sorted(set(self.output_paths) | set(self.modifies_paths)))


@dataclass(frozen=True, slots=True)
class QualityGateConfig(CanonicalModel):
    kind: str = "always_pass"
    threshold: float = 70.0
    evaluators: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not 0.0 <= float(self.threshold) <= 100.0:
            _fail("QualityGateConfig.threshold", "must be within 0..100")
        object.__setattr__(self, "evaluators", tuple(self.evaluators))


@dataclass(frozen=True, slots=True)
class GenerationPlan(CanonicalModel):
    plan_id: str
    tasks: tuple[GenerationTask, ...]
    waves: tuple[tuple[str, ...], ...]
    architecture: Mapping[str, tuple[str, ...]]
    requirements: tuple[Requirement, ...]
    project_context: ProjectContext
    quality_gate: QualityGateConfig = field(default_factory=QualityGateConfig)
    estimated_duration_minutes: int = 0
    file_structure: tuple[str, ...] = ()
    agent_groups: Mapping[str, tuple[str, ...]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "architecture", freeze(self.architecture))
        object.__setattr__(self, "agent_groups", freeze(self.agent_groups))
        seen: set[str] = set()
        for task in self.tasks:
            if task.task_id in seen:
                _fail("GenerationPlan.tasks", f"duplicate task id {task.task_id!r}")
            seen.add(task.task_id)
        placed = [task_id for wave in self.waves for task_id in wave]
        if sorted(placed) != sorted(seen):
            _fail("GenerationPlan.waves", "waves must place every task exactly once")

    @property
    def task_ids(self) -> tuple[str, ...]:
        return tuple(task.task_id for task in self.tasks)

    def task(self, task_id: str) -> GenerationTask:
        for task in self.tasks:
            if task.task_id == task_id:
                return task
        raise KeyError(f"unknown task id: {task_id}")

    def dependents(self, task_id: str, *, transitive: bool = True) -> tuple[str, ...]:
        """Tasks that depend on ``task_id``; transitively by default."""
        children: dict[str, set[str]] = {task.task_id: set() for task in self.tasks}
        for task in self.tasks:
            for parent in task.depends_on:
                children.setdefault(parent, set()).add(task.task_id)
        if task_id not in children:
            raise KeyError(f"unknown task id: {task_id}")

        found: set[str] = set()
        stack = sorted(children[task_id])
        while stack:
            current = stack.pop()
            if current in found:
                continue
            found.add(current)
            if transitive:
                stack.extend(sorted(children.get(current, ())))
        return tuple(sorted(found))


# ---------------------------------------------------------------------------
# Generation results and quality
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class GeneratedFile(CanonicalModel):
    path: str
    content: str
    type: str = "source"

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "path", normalize_relative_path(self.path))
        except ValueError as exc:
            _fail("GeneratedFile.path", str(exc))
        if not isinstance(self.content, str):
            _fail(f"GeneratedFile[{self.path}].content", "content must be text")

    @property
    def line_count(self) -> int:
        return len(self.content.splitlines())


@dataclass(frozen=True, slots=True)
class GenerationResult(CanonicalModel):
    task_id: str
    files: tuple[GeneratedFile, ...] = ()
    lines_of_code: int = 0
    dependencies: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "files", tuple(self.files))
        object.__setattr__(self, "dependencies", tuple(self.dependencies))
        object.__setattr__(self, "warnings", tuple(self.warnings))
        if self.lines_of_code < 0:
            _fail("GenerationResult.lines_of_code", "must be >= 0")

    @property
    def paths(self) -> tuple[str, ...]:
        return tuple(item.path for item in self.files)


@dataclass(frozen=True, slots=True)
class QualityIssue(CanonicalModel):
    code: str
    message: str
    severity: IssueSeverity = IssueSeverity.WARNING
    path: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "severity", IssueSeverity(self.severity))


@dataclass(frozen=True, slots=True)
class QualityCheckResult(CanonicalModel):
    task_id: str
    passed: bool
    score: float
    issues: tuple[QualityIssue, ...] = ()
    gate: str = "always_pass"

    def __post_init__(self) -> None:
        if not 0.0 <= self.score <= 100.0:
            _fail("QualityCheckResult.score", "must be within 0..100")
        object.__setattr__(self, "issues", tuple(self.issues))

    @property
    def blocking_issues(self) -> tuple[QualityIssue, ...]:
        return tuple(issue for issue in self.issues if issue.severity is IssueSeverity.BLOCKING)


# ---------------------------------------------------------------------------
# Checkpoints
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class FileSnapshot(CanonicalModel):
    path: str
    existed: bool
    content: bytes | None = field(default=None, repr=False)
    sha256: str | None = None

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "path": self.path,
            "existed": self.existed,
            "sha256": self.sha256,
            "size": None if self.content is None else len(self.content),
        }


@dataclass(frozen=True, slots=True)
class RunMetrics(CanonicalModel):
    files_generated: int = 0
    lines_of_code: int = 0
    tasks_succeeded: int = 0
    tasks_failed: int = 0
    tasks_rolled_back: int = 0
    tasks_skipped: int = 0
    rollbacks: int = 0
    components_created: int = 0
    tests_generated: int = 0


@dataclass(frozen=True, slots=True)
class Checkpoint(CanonicalModel):
    checkpoint_id: str
    task_id: str
    created_at: datetime
    files: tuple[FileSnapshot, ...]
    vcs_revision: str | None = None
    absent_dirs: tuple[str, ...] = ()
    metrics: RunMetrics = field(default_factory=RunMetrics)

    @property
    def paths(self) -> tuple[str, ...]:
        return tuple(snapshot.path for snapshot in self.files)


# ---------------------------------------------------------------------------
# Agent contract
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class AgentContext:
    """Everything an agent may read. Agents hold no reference back to the engine."""

    task: GenerationTask
    project_context: ProjectContext
    requirements: tuple[Requirement, ...]
    architecture: Mapping[str, tuple[str, ...]]
    plan: GenerationPlan
    existing_files: tuple[str, ...] = ()
    templates: Mapping[str, str] = field(default_factory=dict)

    @property
    def input_spec(self) -> Mapping[str, Any]:
        return self.task.input_spec

    @property
    def requirement(self) -> Requirement | None:
        for requirement in self.requirements:
            if requirement.requirement_id == self.task.requirement_id:
                return requirement
        return None


# ---------------------------------------------------------------------------
# Run results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TaskOutcome(CanonicalModel):
    task_id: str
    agent_type: str
    status: TaskStatus
    wave: int
    result: GenerationResult | None = None
    quality_check: QualityCheckResult | None = None
    error: str | None = None
    error_type: str | None = None
    checkpoint_id: str | None = None
    duration_seconds: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "status", TaskStatus(self.status))
        if not self.status.is_terminal:
            _fail(f"TaskOutcome[{self.task_id}].status", "outcome must be terminal")

    @property
    def committed_files(self) -> tuple[GeneratedFile, ...]:
        if self.status is not TaskStatus.SUCCEEDED or self.result is None:
            return ()
        return self.result.files


@dataclass(frozen=True, slots=True)
class RunSummary(CanonicalModel):
    total_tasks: int
    total_files_generated: int
    succeeded: int
    failed: int
    rolled_back: int
    skipped: int
    quality_score: float
    cancelled: bool = False
    duration_seconds: float = 0.0
    recommendations: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class RunResult(CanonicalModel):
    run_id: str
    plan_id: str
    status: RunStatus
    generated_files: tuple[GeneratedFile, ...]
    failed_tasks: Mapping[str, str]
    rolled_back_tasks: tuple[str, ...]
    skipped_tasks: tuple[str, ...]
    quality_checks: tuple[QualityCheckResult, ...]
    outcomes: tuple[TaskOutcome, ...]
    metrics: RunMetrics
    summary: RunSummary
    started_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    finished_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))

    def __post_init__(self) -> None:
        object.__setattr__(self, "failed_tasks", freeze(self.failed_tasks))

    def outcome(self, task_id: str) -> TaskOutcome:
        for outcome in self.outcomes:
            if outcome.task_id == task_id:
                return outcome
        raise KeyError(f"unknown task id: {task_id}")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def freeze(value: Any) -> Any:
    """Recursively convert dicts to read-only mappings and lists to tuples."""
    if isinstance(value, Mapping):
        return MappingProxyType({str(key): freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(item) for item in value)
    if isinstance(value, (set, frozenset)):
        return frozenset(freeze(item) for item in value)
    return value


def thaw(value: Any) -> Any:
    """Inverse of :func:`freeze` producing plain JSON-compatible containers."""
    if isinstance(value, Mapping):
        return {key: thaw(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [thaw(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return sorted(thaw(item) for item in value)
    return value


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


def _require_text(value: object, path: str) -> None:
    if not isinstance(value, str) or not value.strip():
        _fail(path, "expected a non-empty string")


def _serialize_value(value: object, path: str) -> JSONValue:
    if value is None or isinstance(value, bool):
        return cast("JSONValue", value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            _fail(path, "float values must be finite")
        return value
    if isinstance(value, str):
        return value
    if isinstance(value, Enum):
        return cast("JSONValue", value.value)
    if isinstance(value, datetime):
        return value.astimezone(UTC).isoformat().replace("+00:00", "Z")
    if isinstance(value, (tuple, list)):
        return [_serialize_value(item, f"{path}[]") for item in value]
    if isinstance(value, (set, frozenset)):
        return sorted((_serialize_value(item, f"{path}[]") for item in value), key=str)
    if isinstance(value, Mapping):
        out: dict[str, JSONValue] = {}
        for key, item in value.items():
            out[str(key)] = _serialize_value(item, f"{path}.{key}")
        return out
    if isinstance(value, CanonicalModel) and type(value).to_dict is not CanonicalModel.to_dict:
        return value.to_dict()
    if is_dataclass(value) and not isinstance(value, type):
        out_obj: dict[str, JSONValue] = {}
        for dataclass_field in fields(value):
            out_obj[dataclass_field.name] = _serialize_value(
                getattr(value, dataclass_field.name),
                f"{path}.{dataclass_field.name}",
            )
        return out_obj

    _fail(path, f"cannot serialize value of type {type(value).__name__}")


__all__ = [
    "AgentContext",
    "AnalysisReport",
    "CanonicalModel",
    "Checkpoint",
    "FileSnapshot",
    "GeneratedFile",
    "GenerationPlan",
    "GenerationResult",
    "GenerationTask",
    "IssueSeverity",
    "JSONValue",
    "ProjectContext",
    "QualityCheckResult",
    "QualityGateConfig",
    "QualityIssue",
    "Requirement",
    "RequirementCategory",
    "RunMetrics",
    "RunResult",
    "RunStatus",
    "RunSummary",
    "TaskOutcome",
    "TaskStatus",
    "freeze",
    "thaw",
]
