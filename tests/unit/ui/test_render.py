"""Unit tests for plain-text CLI rendering."""

from __future__ import annotations

import io

import pytest

from codegen_orchestrator.domain.models import (
    AnalysisReport,
    GeneratedFile,
    GenerationPlan,
    GenerationResult,
    GenerationTask,
    ProjectContext,
    RunMetrics,
    RunResult,
    RunStatus,
    RunSummary,
    TaskOutcome,
    TaskStatus,
)
from codegen_orchestrator.ui.render import (
    CLIRenderer,
    render_analysis,
    render_plan,
    render_run,
)


class _TTY(io.StringIO):
    def isatty(self) -> bool:
        return True


def _renderer(*, verbose: bool = False) -> tuple[CLIRenderer, io.StringIO]:
    stream = io.StringIO()
    return CLIRenderer(verbose=verbose, stream=stream), stream


def test_table_aligns_columns_and_skips_empty_rows() -> None:
    renderer, stream = _renderer()

    renderer.table(["ID", "NAME"], [["a", "alpha"], ["bb", "b"]], title="Rows:")
    renderer.table(["ID"], [])

    assert stream.getvalue().splitlines() == [
        "",
        "Rows:",
        "  ID  NAME",
        "  --  -----",
        "  a   alpha",
        "  bb  b",
    ]


def test_status_colour_only_on_tty(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("NO_COLOR", raising=False)

    assert CLIRenderer(stream=_TTY()).status("failed") == "\x1b[31mfailed\x1b[0m"
    assert CLIRenderer(stream=_TTY(), no_color=True).status("failed") == "failed"
    assert CLIRenderer(stream=io.StringIO()).status("failed") == "failed"
    assert CLIRenderer(stream=_TTY()).status("unknown") == "unknown"

    monkeypatch.setenv("NO_COLOR", "1")
    assert not CLIRenderer(stream=_TTY()).color


def test_render_analysis_lists_context_and_recommendations() -> None:
    renderer, stream = _renderer()
    report = AnalysisReport(
        requirements=(),
        project_context=ProjectContext(root=".", language="python", framework="fastapi"),
        compatibility_score=50.0,
        recommendations=("register an agent for 'api'",),
    )

    render_analysis(renderer, report)

    output = stream.getvalue()
    assert "Language: python" in output
    assert "Framework: fastapi" in output
    assert "Package manager: none" in output
    assert "Patterns: (none)" in output
    assert "Compatibility: 50.0%" in output
    assert "  - register an agent for 'api'" in output


def test_render_plan_shows_waves_and_file_structure_when_verbose() -> None:
    first = GenerationTask(
        task_id="database-user",
        agent_type="database",
        description="Generate database user",
        input_spec={"output_paths": ["models/user.ts"]},
    )
    second = GenerationTask(
        task_id="api-users",
        agent_type="api",
        description="Generate api users",
        input_spec={"output_paths": ["api/users.ts"]},
        depends_on=frozenset({"database-user"}),
    )
    plan = GenerationPlan(
        plan_id="plan-1",
        tasks=(first, second),
        waves=(("database-user",), ("api-users",)),
        architecture={"apis": ("users",), "models": ("user",)},
        requirements=(),
        project_context=ProjectContext(root="."),
        file_structure=("api/users.ts", "models/user.ts"),
    )
    renderer, stream = _renderer(verbose=True)

    render_plan(renderer, plan)

    lines = stream.getvalue().splitlines()
    assert "Waves: 2" in lines
    assert any(line.split()[:3] == ["1", "api-users", "api"] for line in lines)
    assert "  - models/user.ts" in lines


def test_render_run_summarizes_outcomes() -> None:
    files = (GeneratedFile(path="api/users.ts", content="x\n"),)
    result = RunResult(
        run_id="run-1",
        plan_id="plan-1",
        status=RunStatus.PARTIAL,
        generated_files=files,
        failed_tasks={"database-user": "agent exploded"},
        rolled_back_tasks=("database-user",),
        skipped_tasks=(),
        quality_checks=(),
        outcomes=(
            TaskOutcome(
                task_id="api-users",
                agent_type="api",
                status=TaskStatus.SUCCEEDED,
                wave=0,
                result=GenerationResult(task_id="api-users", files=files),
            ),
            TaskOutcome(
                task_id="database-user",
                agent_type="database",
                status=TaskStatus.ROLLED_BACK,
                wave=0,
                error="agent exploded",
            ),
        ),
        metrics=RunMetrics(files_generated=1, lines_of_code=1, tasks_succeeded=1),
        summary=RunSummary(
            total_tasks=2,
            total_files_generated=1,
            succeeded=1,
            failed=0,
            rolled_back=1,
            skipped=0,
            quality_score=100.0,
        ),
    )
    renderer, stream = _renderer()

    render_run(renderer, result)

    output = stream.getvalue()
    assert "Status: partial" in output
    assert "succeeded=1 rolled_back=1 failed=0 skipped=0" in output
    assert "api/users.ts" in output
    assert "agent exploded" in output
