"""Plain-text rendering for codegen CLI output.

File: src/codegen_orchestrator/ui/render.py

Purpose
- Render analysis reports, plans and run results as deterministic text.
- Respect the NO_COLOR environment variable and the --no-color CLI flag.

Functional requirements
- Plain-text rendering always works; ANSI colour is only added for status
  words on a TTY.
"""

from __future__ import annotations

import os
import sys
from typing import IO, TYPE_CHECKING, Final

from codegen_orchestrator.spec_ingestion.project_context import context_summary

if TYPE_CHECKING:
    from collections.abc import Sequence

    from codegen_orchestrator.domain.models import AnalysisReport, GenerationPlan, RunResult

_STATUS_COLORS: Final[dict[str, str]] = {
    "completed": "32",
    "succeeded": "32",
    "partial": "33",
    "skipped": "33",
    "cancelled": "33",
    "rolled_back": "31",
    "failed": "31",
    "aborted": "31",
}


def _color_allowed(no_color_flag: bool, stream: IO[str]) -> bool:
    if no_color_flag:
        return False
    if os.environ.get("NO_COLOR", ""):
        return False
    return hasattr(stream, "isatty") and stream.isatty()


class CLIRenderer:
    """Thin text renderer writing to ``stream`` (stdout by default)."""

    def __init__(
        self,
        *,
        no_color: bool = False,
        verbose: bool = False,
        stream: IO[str] | None = None,
    ) -> None:
        self.verbose = verbose
        self._stream = stream if stream is not None else sys.stdout
        self._color = _color_allowed(no_color, self._stream)

    @property
    def color(self) -> bool:
        return self._color

    def _write(self, line: str = "") -> None:
        print(line, file=self._stream)

    def kv(self, key: str, value: object) -> None:
        self._write(f"{key}: {value}")

    def text(self, line: str) -> None:
        self._write(line)

    def section(self, title: str) -> None:
        self._write(f"\n{title}")

    def items(self, entries: Sequence[str], *, prefix: str = "- ") -> None:
        for entry in entries:
            self._write(f"  {prefix}{entry}")

    def status(self, value: str) -> str:
        """``value`` wrapped in its ANSI colour when colour is enabled."""

        code = _STATUS_COLORS.get(value)
        if not self._color or code is None:
            return value
        return f"\x1b[{code}m{value}\x1b[0m"

    def table(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[str]],
        *,
        title: str | None = None,
    ) -> None:
        """Print an aligned ASCII table; nothing when ``rows`` is empty."""

        if not rows:
            return

        col_count = len(headers)
        widths = [len(h) for h in headers]
        for row in rows:
            for i in range(min(len(row), col_count)):
                widths[i] = max(widths[i], len(str(row[i])))

        def _pad(cells: Sequence[str]) -> str:
            parts: list[str] = []
            for i in range(col_count):
                cell = str(cells[i]) if i < len(cells) else ""
                parts.append(cell.ljust(widths[i]))
            return "  ".join(parts).rstrip()

        if title:
            self.section(title)
        self._write(f"  {_pad(list(headers))}")
        self._write(f"  {'  '.join('-' * w for w in widths)}")
        for row in rows:
            self._write(f"  {_pad(list(row))}")

    def next_steps(self, steps: Sequence[str]) -> None:
        if not steps:
            return
        self.section("Next steps:")
        for step in steps:
            self._write(f"  $ {step}")


def create_renderer(
    *, no_color: bool = False, verbose: bool = False, stream: IO[str] | None = None
) -> CLIRenderer:
    return CLIRenderer(no_color=no_color, verbose=verbose, stream=stream)


# ---------------------------------------------------------------------------
# Domain views
# ---------------------------------------------------------------------------


def render_analysis(renderer: CLIRenderer, report: AnalysisReport) -> None:
    renderer.kv("Requirements", len(report.requirements))
    for key, value in context_summary(report.project_context).items():
        renderer.kv(key.replace("_", " ").capitalize(), value)
    renderer.kv("Patterns", ", ".join(report.patterns) or "(none)")
    renderer.kv("Agent types", ", ".join(report.required_agent_types) or "(none)")
    renderer.kv("Compatibility", f"{report.compatibility_score:.1f}%")

    renderer.table(
        ["ID", "CATEGORY", "NAME"],
        [[item.requirement_id, item.category.value, item.name] for item in report.requirements],
        title="Requirements:",
    )
    if report.recommendations:
        renderer.section("Recommendations:")
        renderer.items(list(report.recommendations))


def render_plan(renderer: CLIRenderer, plan: GenerationPlan) -> None:
    renderer.kv("Plan ID", plan.plan_id)
    renderer.kv("Tasks", len(plan.tasks))
    renderer.kv("Waves", len(plan.waves))
    renderer.kv("Quality gate", plan.quality_gate.kind)
    renderer.kv("Estimated minutes", plan.estimated_duration_minutes)

    wave_of = {task_id: index for index, wave in enumerate(plan.waves) for task_id in wave}
    rows = [
        [
            str(wave_of[task.task_id]),
            task.task_id,
            task.agent_type,
            ", ".join(sorted(task.depends_on)) or "-",
            ", ".join(task.output_paths) or "-",
        ]
        for wave in plan.waves
        for task in (plan.task(task_id) for task_id in wave)
    ]
    renderer.table(["WAVE", "TASK", "AGENT", "DEPENDS ON", "OUTPUTS"], rows, title="Tasks:")
    if renderer.verbose and plan.file_structure:
        renderer.section("File structure:")
        renderer.items(list(plan.file_structure))


def render_run(renderer: CLIRenderer, result: RunResult) -> None:
    summary = result.summary
    renderer.kv("Run ID", result.run_id)
    renderer.kv("Status", renderer.status(result.status.value))
    renderer.kv(
        "Tasks",
        f"succeeded={summary.succeeded} rolled_back={summary.rolled_back} "
        f"failed={summary.failed} skipped={summary.skipped}",
    )
    renderer.kv("Files generated", summary.total_files_generated)
    renderer.kv("Lines of code", result.metrics.lines_of_code)
    renderer.kv("Quality score", f"{summary.quality_score:.1f}")
    renderer.kv("Duration", f"{summary.duration_seconds:.2f}s")

    renderer.table(
        ["TASK", "AGENT", "STATUS", "DETAIL"],
        [
            [
                outcome.task_id,
                outcome.agent_type,
                renderer.status(outcome.status.value),
                outcome.error or ", ".join(item.path for item in outcome.committed_files),
            ]
            for outcome in result.outcomes
        ],
        title="Outcomes:",
    )
    if summary.recommendations:
        renderer.section("Recommendations:")
        renderer.items(list(summary.recommendations))


__all__ = [
    "CLIRenderer",
    "create_renderer",
    "render_analysis",
    "render_plan",
    "render_run",
]
