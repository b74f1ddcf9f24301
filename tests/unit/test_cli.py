"""
tests/unit/test_cli.py — CLI rendering, argument parsing and step events

Renders into a recording rich Console; no terminal required.
"""

from __future__ import annotations

from io import StringIO
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from rich.console import Console

from sqlpilot.agent.events import EventKind, StepEvent
from sqlpilot.agent.types import (
    PolicyDecision,
    RunStatus,
    RunSummary,
    ScopeAssessment,
    Step,
    StepStatus,
)
from sqlpilot.interfaces.cli import ConsoleRenderer, run_question
from sqlpilot.main import parse_args


def _console() -> Console:
    return Console(file=StringIO(), width=120, record=True, color_system=None)


def _step(**kwargs) -> Step:
    kwargs.setdefault("rationale", "count customers")
    kwargs.setdefault("action", "execute_sql")
    kwargs.setdefault("parameters", {"query": "SELECT COUNT(*) FROM customers"})
    return Step(**kwargs)


# ── StepEvent.text ────────────────────────────────────────────────────────────

class TestStepEventText:
    def test_proposed(self):
        assert StepEvent(EventKind.PROPOSED, "r1", step=_step()).text == "proposed: execute_sql"

    def test_assessed_shows_confidence(self):
        event = StepEvent(
            EventKind.ASSESSED, "r1", step=_step(), assessment=ScopeAssessment(confidence_score=0.97)
        )
        assert event.text == "assessed: execute_sql (confidence 0.97)"

    def test_denied_shows_reason(self):
        decision = PolicyDecision.deny("Read-only users cannot modify data (UPDATE).")
        event = StepEvent(EventKind.DENIED, "r1", step=_step(), decision=decision)
        assert "denied" in event.text and "Read-only" in event.text

    def test_finished(self):
        event = StepEvent(EventKind.FINISHED, "r1", summary=RunSummary("x", RunStatus.BLOCKED))
        assert event.text == "finished (blocked)"


# ── ConsoleRenderer ───────────────────────────────────────────────────────────

class TestConsoleRenderer:
    def test_progress_lines(self):
        console = _console()
        renderer = ConsoleRenderer(console=console)
        done = _step().advance(StepStatus.APPROVED).advance(StepStatus.COMPLETED, result={})

        renderer.on_event(StepEvent(EventKind.PROPOSED, "r1", step=_step()))
        renderer.on_event(StepEvent(EventKind.ASSESSED, "r1", step=_step(), assessment=ScopeAssessment()))
        renderer.on_event(StepEvent(EventKind.EXECUTED, "r1", step=done))

        out = console.export_text()
        assert "proposed: execute_sql" in out
        assert "assessed" not in out
        assert "executed: execute_sql [completed]" in out

    def test_verbose_shows_sql(self):
        console = _console()
        ConsoleRenderer(console=console, verbose=True).on_event(
            StepEvent(EventKind.PROPOSED, "r1", step=_step())
        )
        assert "SELECT COUNT(*) FROM customers" in console.export_text()

    def test_summary_with_rows(self):
        console = _console()
        summary = RunSummary(
            summary_text="Germany has 2 customers.",
            status=RunStatus.SUCCESS,
            data=[{"name": "Ada", "country": "DE"}, {"name": "Kurt", "country": None}],
            columns=["name", "country"],
            row_count=2,
            step_count=2,
        )
        ConsoleRenderer(console=console).render_summary(summary)

        out = console.export_text()
        assert "Success" in out
        assert "Germany has 2 customers." in out
        assert "Ada" in out and "NULL" in out

    def test_blocked_summary(self):
        console = _console()
        ConsoleRenderer(console=console).render_summary(
            RunSummary("Blocked: Destructive operations (DROP) require 'admin' role.", RunStatus.BLOCKED)
        )
        out = console.export_text()
        assert "Blocked" in out
        assert "admin" in out


@pytest.mark.asyncio
async def test_run_question_exit_codes():
    kernel = MagicMock()
    kernel.shutdown = AsyncMock()
    kernel.orchestrator.run = AsyncMock(side_effect=[
        RunSummary("partial", RunStatus.PARTIAL),
        RunSummary("blocked", RunStatus.BLOCKED),
    ])
    with patch("sqlpilot.kernel.bootstrap.AgentKernel.build", new=AsyncMock(return_value=kernel)):
        assert await run_question(MagicMock(), "q", console=_console()) == 0
        assert await run_question(MagicMock(), "q", console=_console()) == 1
    assert kernel.shutdown.await_count == 2


# ── Argument parsing ──────────────────────────────────────────────────────────

class TestParseArgs:
    def test_defaults(self):
        args = parse_args(["How many customers?"])
        assert args.question == "How many customers?"
        assert args.roles is None
        assert args.max_steps is None
        assert args.user == "anonymous"

    def test_repeatable_roles(self):
        args = parse_args(["q", "--role", "admin", "--role", "analyst", "--max-steps", "4"])
        assert args.roles == ["admin", "analyst"]
        assert args.max_steps == 4

    def test_db_url_and_config(self):
        args = parse_args(["q", "--db-url", "sqlite+aiosqlite:///x.db", "--config", "c.yaml"])
        assert args.db_url == "sqlite+aiosqlite:///x.db"
        assert args.config == "c.yaml"
