"""
codegen-orchestrator — template-backed agent

File: src/codegen_orchestrator/synthesis_plane/template_agent.py

Purpose
- A producer that renders caller-supplied jinja2 templates once per output
  path of its task. Used by the CLI when ``--templates DIR`` is given.

Functional requirements
- Template lookup per output path: exact path, then file suffix, then agent
  type, then ``default``. Templates carried on the agent context take
  precedence over the agent's own set.
- Rendering is strict: an undefined variable is an error, never an empty
  string.
- Same inputs render the same bytes.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Final

from jinja2 import Environment, StrictUndefined

from codegen_orchestrator.domain.ids import slugify
from codegen_orchestrator.domain.models import GeneratedFile, GenerationResult, thaw

if TYPE_CHECKING:
    from codegen_orchestrator.domain.models import AgentContext

TEMPLATE_SUFFIX: Final[str] = ".j2"
DEFAULT_TEMPLATE_KEY: Final[str] = "default"
# Bare extensions: ``tsx.j2`` keys every ``.tsx`` output.
_SUFFIX_KEYS: Final[frozenset[str]] = frozenset(
    {"py", "js", "jsx", "ts", "tsx", "vue", "css", "scss", "md", "sql", "go", "rs", "json", "yml", "yaml"}
)


class TemplateNotFoundError(LookupError):
    """No template matches an output path."""


class TemplateAgent:
    """Renders one file per declared output path from jinja2 templates."""

    def __init__(
        self,
        templates: Mapping[str, str] | None = None,
        *,
        file_type: str = "source",
    ) -> None:
        self._templates = dict(templates or {})
        self._file_type = file_type
        self._environment = Environment(
            undefined=StrictUndefined,
            autoescape=False,
            keep_trailing_newline=True,
            newline_sequence="\n",
        )

    @classmethod
    def from_directory(cls, template_dir: Path | str, **kwargs: str) -> TemplateAgent:
        return cls(load_template_dir(template_dir), **kwargs)

    @property
    def template_keys(self) -> tuple[str, ...]:
        return tuple(sorted(self._templates))

    def generate(self, context: AgentContext) -> GenerationResult:
        task = context.task
        templates = {**self._templates, **dict(context.templates)}
        requirement = context.requirement
        name = requirement.name if requirement is not None else task.task_id
        parameters = thaw(requirement.parameters) if requirement is not None else {}

        files: list[GeneratedFile] = []
        for path in task.output_paths:
            source = _select_template(templates, path, task.agent_type)
            if source is None:
                raise TemplateNotFoundError(
                    f"no template for {path!r} (agent type {task.agent_type!r}); "
                    f"available: {', '.join(sorted(templates)) or '<none>'}"
                )
            rendered = self._environment.from_string(source).render(
                name=name,
                component_name=pascal_case(name),
                slug=slugify(name),
                path=path,
                task_id=task.task_id,
                agent_type=task.agent_type,
                description=task.description,
                parameters=parameters,
                requirement=requirement.to_dict() if requirement is not None else {},
                project=context.project_context.to_dict(),
                architecture=thaw(context.architecture),
                existing_files=list(context.existing_files),
            )
            if rendered and not rendered.endswith("\n"):
                rendered += "\n"
            files.append(GeneratedFile(path=path, content=rendered, type=self._file_type))

        dependencies = parameters.get("dependencies", ()) if isinstance(parameters, dict) else ()
        return GenerationResult(
            task_id=task.task_id,
            files=tuple(files),
            lines_of_code=sum(item.line_count for item in files),
            dependencies=tuple(str(item) for item in dependencies),
        )


def load_template_dir(template_dir: Path | str) -> dict[str, str]:
    """Read ``*.j2`` files; the key is the file name without ``.j2``.

    ``component.j2`` keys ``component``; ``tsx.j2`` keys the ``.tsx`` suffix;
    nested files key their relative path (``src/index.ts.j2`` -> ``src/index.ts``).
    """

    root = Path(template_dir)
    if not root.is_dir():
        raise NotADirectoryError(f"template directory does not exist: {root}")
    templates: dict[str, str] = {}
    for path in sorted(root.rglob(f"*{TEMPLATE_SUFFIX}")):
        if not path.is_file():
            continue
        relative = path.relative_to(root).as_posix()[: -len(TEMPLATE_SUFFIX)]
        key = f".{relative}" if relative in _SUFFIX_KEYS else relative
        templates[key] = path.read_text(encoding="utf-8")
    return templates


def pascal_case(text: str) -> str:
    return "".join(part.capitalize() for part in slugify(text).split("-"))


def _select_template(templates: Mapping[str, str], path: str, agent_type: str) -> str | None:
    suffix = PurePosixPath(path).suffix
    for key in (path, suffix, agent_type, DEFAULT_TEMPLATE_KEY):
        if key and key in templates:
            return templates[key]
    return None


__all__ = ["TemplateAgent", "TemplateNotFoundError", "load_template_dir", "pascal_case"]
