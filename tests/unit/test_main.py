"""Unit tests for the CLI exit-code contract."""

from __future__ import annotations

import pytest

from codegen_orchestrator.config.loader import ConfigLoadError
from codegen_orchestrator.domain.errors import (
    AgentExecutionError,
    PlanningError,
    RollbackFailure,
    ValidationError,
)
from codegen_orchestrator.main import ExitCode, cli_entrypoint, route_exception
from codegen_orchestrator.ui import cli


@pytest.mark.parametrize(
    ("exc", "expected"),
    [
        (RollbackFailure("boom", checkpoint_id="ckpt-1", task_id="a"), ExitCode.EXECUTION_ERROR),
        (AgentExecutionError("boom", task_id="a", agent_type="api"), ExitCode.EXECUTION_ERROR),
        (PlanningError("cycle"), ExitCode.CONFIG_ERROR),
        (ValidationError("empty", location="requirements[0]"), ExitCode.CONFIG_ERROR),
        (ConfigLoadError("bad toml"), ExitCode.CONFIG_ERROR),
        (FileNotFoundError("reqs.yaml"), ExitCode.CONFIG_ERROR),
        (RuntimeError("unexpected"), ExitCode.INTERNAL_ERROR),
    ],
)
def test_route_exception(exc: BaseException, expected: ExitCode) -> None:
    assert route_exception(exc) is expected


def test_route_exception_follows_the_cause_chain() -> None:
    try:
        try:
            raise PlanningError("unknown dependency", task_ids=["b"])
        except PlanningError as inner:
            raise RuntimeError("wrapped") from inner
    except RuntimeError as outer:
        assert route_exception(outer) is ExitCode.CONFIG_ERROR


def test_cli_entrypoint_reports_usage_errors(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli_entrypoint(["frobnicate"]) == int(ExitCode.CONFIG_ERROR)
    assert "invalid choice" in capsys.readouterr().err


def test_cli_entrypoint_routes_uncaught_errors(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    def explode(argv: object) -> int:
        raise RollbackFailure("disk gone", checkpoint_id="ckpt-9", task_id="api-users")

    monkeypatch.setattr(cli, "run_cli", explode)

    assert cli_entrypoint([]) == int(ExitCode.EXECUTION_ERROR)
    assert "error: rollback of task 'api-users' from ckpt-9: disk gone" in capsys.readouterr().err
