"""
tests/unit/test_planner_reflector.py — Planner and Scope Reflector

Both components call the Reasoning Port and must never fail the run:
the Planner falls back to standard guidance, the Reflector to a
zero-confidence assessment.
"""

from __future__ import annotations

import pytest

from sqlpilot.agent.planner import Planner
from sqlpilot.agent.reflector import ScopeReflector
from sqlpilot.agent.state import RunState
from sqlpilot.agent.types import (
    CallerContext,
    OperationCategory,
    PlannerOutput,
    Step,
    TrendMode,
)
from sqlpilot.brain.llm_client import LLMConnectionError
from tests.fakes import ScriptedReasoner, assessment


def _state(**kwargs) -> RunState:
    return RunState(request="Which customers stopped ordering?", caller=CallerContext(), **kwargs)


def _sql(query: str) -> Step:
    return Step(rationale="q", action="execute_sql", parameters={"query": query})


# ─────────────────────────────────────────────────────────────────────────────
# Planner
# ─────────────────────────────────────────────────────────────────────────────

class TestPlanner:
    @pytest.mark.asyncio
    async def test_plan_parses_output(self):
        reasoner = ScriptedReasoner(planner=[{
            "operation": "sequential_analysis",
            "entities": "customers",
            "trend_mode": "net_positive",
            "reasoning": "asks about stopping",
        }])
        update = await Planner(reasoner).plan(_state())

        out = update.planner_output
        assert out.operation is OperationCategory.SEQUENTIAL_ANALYSIS
        assert out.trend_mode is TrendMode.NET_POSITIVE
        assert "Which customers stopped ordering?" in reasoner.prompts["planner"][0]

    @pytest.mark.asyncio
    async def test_unparsable_falls_back_to_standard(self):
        update = await Planner(ScriptedReasoner(planner=["no idea"])).plan(_state())
        assert update.planner_output.operation is OperationCategory.STANDARD

    @pytest.mark.asyncio
    async def test_invalid_category_falls_back(self):
        update = await Planner(ScriptedReasoner(planner=[{"operation": "clairvoyance"}])).plan(_state())
        assert update.planner_output.operation is OperationCategory.STANDARD

    @pytest.mark.asyncio
    async def test_reasoning_failure_falls_back(self):
        update = await Planner(ScriptedReasoner(planner=[LLMConnectionError("down")])).plan(_state())
        assert update.planner_output == PlannerOutput.standard()

    @pytest.mark.asyncio
    async def test_runs_once_per_run(self):
        reasoner = ScriptedReasoner()
        update = await Planner(reasoner).plan(_state(planner_output=PlannerOutput.standard()))
        assert update.is_empty
        assert reasoner.calls("planner") == 0


# ─────────────────────────────────────────────────────────────────────────────
# Scope Reflector
# ─────────────────────────────────────────────────────────────────────────────

class TestScopeReflector:
    @pytest.mark.asyncio
    async def test_metadata_action_skips_reasoning(self):
        reasoner = ScriptedReasoner()
        result = await ScopeReflector(reasoner).assess(Step(rationale="", action="list_tables"), _state())

        assert result.confidence_score == 1.0
        assert reasoner.calls("reflector") == 0

    @pytest.mark.asyncio
    async def test_parses_assessment(self):
        reasoner = ScriptedReasoner(reflector=[assessment(0.9, performance_issues=["no index"])])
        result = await ScopeReflector(reasoner).assess(_sql("SELECT * FROM orders"), _state())

        assert result.confidence_score == 0.9
        assert result.issues == ["no index"]
        assert "SQL Query: SELECT * FROM orders" in reasoner.prompts["reflector"][0]

    @pytest.mark.asyncio
    async def test_unparsable_is_zero_confidence(self):
        reasoner = ScriptedReasoner(reflector=["```\nnot json\n```"])
        result = await ScopeReflector(reasoner).assess(_sql("SELECT 1"), _state())

        assert result.confidence_score == 0.0
        assert result.is_destructive
        assert result.issues[0] == "Reflector failed"

    @pytest.mark.asyncio
    async def test_reasoning_failure_is_zero_confidence(self):
        reasoner = ScriptedReasoner(reflector=[LLMConnectionError("down")])
        result = await ScopeReflector(reasoner).assess(_sql("SELECT 1"), _state())
        assert result.confidence_score == 0.0

    @pytest.mark.asyncio
    async def test_satisfied_checklist_raises_confidence(self):
        reasoner = ScriptedReasoner(reflector=[
            assessment(0.7, requirements_checklist={"groups by customer": True, "orders by date": True}),
        ])
        result = await ScopeReflector(reasoner).assess(_sql("SELECT 1"), _state())
        assert result.confidence_score == 0.96

    @pytest.mark.asyncio
    async def test_partial_checklist_leaves_confidence(self):
        reasoner = ScriptedReasoner(reflector=[
            assessment(0.7, requirements_checklist={"a": True, "b": False}),
        ])
        result = await ScopeReflector(reasoner).assess(_sql("SELECT 1"), _state())
        assert result.confidence_score == 0.7

    @pytest.mark.asyncio
    async def test_override_never_lowers_confidence(self):
        reasoner = ScriptedReasoner(reflector=[
            assessment(0.99, requirements_checklist={"a": True}),
        ])
        result = await ScopeReflector(reasoner).assess(_sql("SELECT 1"), _state())
        assert result.confidence_score == 0.99

    @pytest.mark.asyncio
    async def test_planner_constraints_in_prompt(self):
        planner = PlannerOutput(operation=OperationCategory.PER_ENTITY_ARGMAX, entities="artist")
        reasoner = ScriptedReasoner(reflector=[assessment()])
        await ScopeReflector(reasoner).assess(_sql("SELECT 1"), _state(planner_output=planner))

        prompt = reasoner.prompts["reflector"][0]
        assert "PLANNER CONSTRAINTS" in prompt
        assert "per_entity_argmax" in prompt

    def test_sequence_warning_without_ordering(self):
        planner = PlannerOutput(operation=OperationCategory.SEQUENTIAL_ANALYSIS)
        state = _state(planner_output=planner)

        unordered = ScopeReflector.describe(_sql("SELECT customer_id FROM orders"), state)
        ordered = ScopeReflector.describe(_sql("SELECT customer_id FROM orders ORDER BY created_at"), state)

        assert unordered != "SQL Query: SELECT customer_id FROM orders"
        assert ordered == "SQL Query: SELECT customer_id FROM orders ORDER BY created_at"

    def test_describe_other_action(self):
        text = ScopeReflector.describe(Step(rationale="", action="describe_table", parameters={"table": "t"}), _state())
        assert text == 'Tool describe_table with params {"table": "t"}'
