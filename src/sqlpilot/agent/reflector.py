"""
agent/reflector.py — Scope Reflector

Scores a pending Step before the Policy Gate sees it: risk, operation type,
destructiveness, complexity, and a confidence score for semantic
correctness against the request and the planner constraints.

  - Metadata actions are scored without calling the reasoning layer.
  - A fully satisfied requirements checklist raises confidence to the
    override level. The override never lowers a score.
  - Any failure produces ScopeAssessment.unparsable(): zero confidence,
    high risk. The gate then sends the step back for replanning.
"""

from __future__ import annotations

import json

from pydantic import ValidationError

from sqlpilot.agent.context_builder import ContextBuilder
from sqlpilot.agent.state import RunState
from sqlpilot.agent.types import OperationCategory, ScopeAssessment, Step
from sqlpilot.brain.reasoning import REASONING_ERRORS, ReasoningPort, parse_json_object
from sqlpilot.observability.logger import get_logger
from sqlpilot.safety.rules import METADATA_ACTIONS

log = get_logger(__name__)

_REFLECTOR_ERRORS = REASONING_ERRORS + (ValidationError,)

PROMPT_HEADER = "You are an Expert Database Administrator (DBA) and Query Optimizer."

_SEQUENCE_WARNING = (
    "\n[WARNING: Planner requested sequential/temporal analysis, but the SQL lacks "
    "ORDER BY or window functions. This is likely a semantic failure.]"
)

_PROMPT = PROMPT_HEADER + """

User Request: "{request}"
{constraints}

RECENT EXECUTION HISTORY:
{history}
If the previous step failed, does this action FIX the error? If the agent is
repeating the same mistake, lower the confidence score.

Proposed Action (Tool: {action}):
{description}

Analyze this action:
1. Risk and destructiveness: does it change data or drop objects?
2. Performance and quality: unbounded joins, cartesian products, SELECT * on large
   tables, redundant sorting, integer division, division by zero (use NULLIF).
   If the planner operation is sequential_analysis or statistical_analysis, scans
   and window functions are necessary. Do not flag them unless clearly redundant.
3. Intent alignment: does this action answer what the user asked?
4. Planner verification: does the SQL satisfy the planner constraints? Build a
   checklist of requirements.

Confidence is a semantic correctness score from 0.0 to 1.0. It is independent of
complexity: a complex query that satisfies the planner constraints MUST score above
0.9. Penalize only wrong logic, never performance or complexity.

RESPONSE FORMAT (JSON ONLY):
{{
    "summary": "...",
    "risk_level": "low" | "medium" | "high",
    "operation_type": "read" | "write" | "ddl" | "schema",
    "tables_involved": ["..."],
    "is_destructive": true | false,
    "complexity_score": 1-10,
    "performance_issues": ["..."],
    "optimization_suggestions": ["..."],
    "user_intent_alignment": "...",
    "confidence_score": 0.95,
    "requirements_checklist": {{"per_entity_argmax": true, "correct_filters": true}}
}}"""


class ScopeReflector:
    def __init__(
        self,
        reasoning: ReasoningPort,
        context: ContextBuilder | None = None,
        override_confidence: float = 0.96,
    ):
        self._reasoning = reasoning
        self._context = context or ContextBuilder()
        self._override = override_confidence

    async def assess(self, step: Step, state: RunState) -> ScopeAssessment:
        if step.action in METADATA_ACTIONS:
            log.debug("reflector.metadata_shortcut", step_id=step.id, action=step.action)
            return ScopeAssessment.metadata_shortcut(step.action)

        prompt = _PROMPT.format(
            request=state.request,
            constraints=self._context.render_planner_constraints(state.planner_output),
            history=self._context.render_history(state),
            action=step.action,
            description=self.describe(step, state),
        )

        try:
            raw = await self._reasoning.complete(prompt, json_mode=True)
            assessment = ScopeAssessment.model_validate(parse_json_object(raw))
        except _REFLECTOR_ERRORS as e:
            log.warning(
                "reflector.unparsable",
                step_id=step.id,
                error=str(e)[:200],
                error_type=type(e).__name__,
            )
            return ScopeAssessment.unparsable(f"{type(e).__name__}: {str(e)[:200]}")

        if assessment.checklist_satisfied and assessment.confidence_score < self._override:
            log.info(
                "reflector.confidence_override",
                step_id=step.id,
                from_score=assessment.confidence_score,
                to_score=self._override,
            )
            assessment = assessment.with_confidence(self._override)

        log.info(
            "reflector.assessed",
            step_id=step.id,
            confidence=assessment.confidence_score,
            complexity=assessment.complexity_score,
            risk=assessment.risk_level.value,
            operation=assessment.operation_type.value,
        )
        return assessment

    @staticmethod
    def describe(step: Step, state: RunState) -> str:
        if step.action == "execute_sql":
            query = str(step.parameters.get("query", ""))
            description = f"SQL Query: {query}"
            planner = state.planner_output
            lowered = query.lower()
            if (
                planner is not None
                and planner.operation is OperationCategory.SEQUENTIAL_ANALYSIS
                and "order by" not in lowered
                and "over" not in lowered
            ):
                description += _SEQUENCE_WARNING
            return description
        return f"Tool {step.action} with params {json.dumps(step.parameters, default=str)}"
