"""
tests/unit/test_decider.py — Next-Step Decider

Covers:
  - proposal → pending Step + incremented step count
  - finish → success summary carrying the last result as rows
  - budget exhausted → partial, no reasoning call
  - repeat of a denied / failed / replan-feedback step is rejected locally
  - unusable responses consume attempts; exhaustion → failed
  - correction blocks appear in the prompt
"""

from __future__ import annotations

import pytest

from sqlpilot.actions.catalog import default_catalog
from sqlpilot.agent.decider import Decider
from sqlpilot.agent.state import RunState
from sqlpilot.agent.types import (
    CallerContext,
    PolicyDecision,
    ReplanFeedback,
    RunStatus,
    Step,
    StepStatus,
)
from sqlpilot.brain.llm_client import LLMConnectionError
from tests.fakes import ScriptedReasoner, finish_decision, step_decision


def _decider(reasoner, max_attempts: int = 3) -> Decider:
    return Decider(reasoner, default_catalog(), max_attempts=max_attempts)


def _state(**kwargs) -> RunState:
    return RunState(request="How many customers?", caller=CallerContext(), **kwargs)


def _finished(query: str, status=StepStatus.COMPLETED, result=None) -> Step:
    step = Step(rationale=f"run {query}", action="execute_sql", parameters={"query": query})
    return step.advance(StepStatus.APPROVED).advance(status, result=result or {})


class TestProposals:
    @pytest.mark.asyncio
    async def test_proposes_pending_step(self):
        reasoner = ScriptedReasoner(decider=[step_decision("execute_sql", {"query": "SELECT COUNT(*) FROM customers"})])
        update = await _decider(reasoner).decide(_state(step_count=2))

        step = update.current_step
        assert step.status is StepStatus.PENDING
        assert step.action == "execute_sql"
        assert step.parameters == {"query": "SELECT COUNT(*) FROM customers"}
        assert update.step_count == 3
        assert update.replan_feedback is None

    @pytest.mark.asyncio
    async def test_missing_action_means_finish(self):
        reasoner = ScriptedReasoner(decider=[{"final_summary": None}])
        update = await _decider(reasoner).decide(_state())
        assert update.summary.status is RunStatus.SUCCESS
        assert update.summary.summary_text == "Completed"

    @pytest.mark.asyncio
    async def test_unknown_tool_name_is_passed_through(self):
        reasoner = ScriptedReasoner(decider=[step_decision("pragma_table_info", {"table": "t"})])
        update = await _decider(reasoner).decide(_state())
        assert update.current_step.action == "pragma_table_info"


class TestFinish:
    @pytest.mark.asyncio
    async def test_finish_carries_last_rows(self):
        done = _finished("SELECT name FROM customers", result={
            "success": True,
            "data": [{"name": "Ada"}, {"name": "Linus"}],
            "row_count": 2,
        })
        reasoner = ScriptedReasoner(decider=[finish_decision("Two customers: Ada, Linus.")])
        update = await _decider(reasoner).decide(_state(completed_steps=(done,), step_count=1))

        summary = update.summary
        assert summary.status is RunStatus.SUCCESS
        assert summary.summary_text == "Two customers: Ada, Linus."
        assert summary.data == [{"name": "Ada"}, {"name": "Linus"}]
        assert summary.columns == ["name"]
        assert summary.row_count == 2
        assert summary.actions_taken == ["run SELECT name FROM customers"]
        assert update.current_step is None

    @pytest.mark.asyncio
    async def test_budget_exhausted_skips_reasoning(self):
        reasoner = ScriptedReasoner()
        update = await _decider(reasoner).decide(_state(max_steps=2, step_count=2))

        assert update.summary.status is RunStatus.PARTIAL
        assert update.summary.summary_text == "Max steps reached."
        assert reasoner.calls("decider") == 0

    @pytest.mark.asyncio
    async def test_zero_budget_is_partial_immediately(self):
        update = await _decider(ScriptedReasoner()).decide(_state(max_steps=0))
        assert update.summary.status is RunStatus.PARTIAL


class TestRepeatRejection:
    @pytest.mark.asyncio
    async def test_repeat_of_failed_step_rejected(self):
        failed = _finished("SELECT nme FROM customers", StepStatus.FAILED, {"error": "no such column: nme"})
        reasoner = ScriptedReasoner(decider=[
            step_decision("execute_sql", {"query": "SELECT  nme FROM customers"}),
            step_decision("execute_sql", {"query": "SELECT name FROM customers"}),
        ])
        update = await _decider(reasoner).decide(_state(completed_steps=(failed,), step_count=1))

        assert update.current_step.parameters["query"] == "SELECT name FROM customers"
        assert reasoner.calls("decider") == 2
        assert "VIOLATION (attempt 1)" in reasoner.prompts["decider"][1]

    @pytest.mark.asyncio
    async def test_repeat_of_denied_step_rejected(self):
        denied = Step(
            rationale="", action="execute_sql", parameters={"query": "SELECT * FROM orders"},
        ).advance(StepStatus.DENIED, policy=PolicyDecision.deny("x"))
        reasoner = ScriptedReasoner(decider=[
            step_decision("execute_sql", {"query": "SELECT * FROM orders"}),
            finish_decision("gave up"),
        ])
        update = await _decider(reasoner).decide(_state(denied_steps=(denied,), step_count=1))
        assert update.summary.summary_text == "gave up"

    @pytest.mark.asyncio
    async def test_repeat_of_replan_feedback_rejected(self):
        feedback = ReplanFeedback(
            action="execute_sql",
            parameters={"query": "SELECT 1"},
            confidence=0.5,
            threshold=0.95,
            issues=("wrong table",),
        )
        reasoner = ScriptedReasoner(decider=[
            step_decision("execute_sql", {"query": "SELECT 1"}),
            step_decision("execute_sql", {"query": "SELECT 2"}),
        ])
        update = await _decider(reasoner).decide(_state(replan_feedback=feedback, step_count=1))

        assert update.current_step.parameters == {"query": "SELECT 2"}
        assert "REPLANNING REQUIRED" in reasoner.prompts["decider"][0]
        assert "wrong table" in reasoner.prompts["decider"][0]

    @pytest.mark.asyncio
    async def test_repeats_exhaust_attempts(self):
        failed = _finished("SELECT x", StepStatus.FAILED, {"error": "boom"})
        reasoner = ScriptedReasoner(decider=[step_decision("execute_sql", {"query": "SELECT x"})] * 3)
        update = await _decider(reasoner).decide(_state(completed_steps=(failed,), step_count=1))

        assert update.summary.status is RunStatus.FAILED
        assert update.summary.summary_text == "Decider could not produce a valid next action."


class TestUnusableResponses:
    @pytest.mark.asyncio
    async def test_bad_json_then_valid(self):
        reasoner = ScriptedReasoner(decider=["not json at all", finish_decision()])
        update = await _decider(reasoner).decide(_state())
        assert update.summary.status is RunStatus.SUCCESS
        assert "could not be used" in reasoner.prompts["decider"][1]

    @pytest.mark.asyncio
    async def test_execute_without_tool_name(self):
        reasoner = ScriptedReasoner(decider=[{"action": "execute_step"}] * 2)
        update = await _decider(reasoner, max_attempts=2).decide(_state())
        assert update.summary.status is RunStatus.FAILED

    @pytest.mark.asyncio
    async def test_transport_errors_are_absorbed(self):
        reasoner = ScriptedReasoner(decider=[LLMConnectionError("down")] * 3)
        update = await _decider(reasoner).decide(_state())
        assert update.summary.status is RunStatus.FAILED


class TestPrompt:
    @pytest.mark.asyncio
    async def test_self_correction_block_after_failure(self):
        failed = _finished("SELECT nme FROM t", StepStatus.FAILED, {"error": "no such column: nme"})
        reasoner = ScriptedReasoner(decider=[finish_decision()])
        await _decider(reasoner).decide(_state(completed_steps=(failed,), step_count=1))

        prompt = reasoner.prompts["decider"][0]
        assert "SELF-CORRECTION REQUIRED" in prompt
        assert "no such column: nme" in prompt

    @pytest.mark.asyncio
    async def test_first_turn_prompt(self):
        reasoner = ScriptedReasoner(decider=[finish_decision()])
        await _decider(reasoner).decide(_state())

        prompt = reasoner.prompts["decider"][0]
        assert "How many customers?" in prompt
        assert "No steps executed yet." in prompt
        assert "execute_sql" in prompt
        assert "SELF-CORRECTION" not in prompt
