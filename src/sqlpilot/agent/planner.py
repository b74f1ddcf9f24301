"""
agent/planner.py — Semantic Query Planner

Classifies the request once per run into an operation category so the
Decider and the Scope Reflector know which SQL shape a correct answer needs
(window functions for per-entity argmax, ordering for sequences, ...).

Never fatal: any reasoning or parse failure yields standard guidance.
"""

from __future__ import annotations

from pydantic import ValidationError

from sqlpilot.agent.state import NO_UPDATE, RunState, RunUpdate
from sqlpilot.agent.types import PlannerOutput
from sqlpilot.brain.reasoning import REASONING_ERRORS, ReasoningPort, parse_json_object
from sqlpilot.observability.logger import get_logger

log = get_logger(__name__)

_PLANNER_ERRORS = REASONING_ERRORS + (ValidationError,)

PROMPT_HEADER = "You are a SQL Query Planner."

_PROMPT = PROMPT_HEADER + """
Your job is to analyze the SEMANTICS of a user request to determine the
correct architectural approach for SQL generation.

User Request: "{request}"

Detect the architectural pattern:

1. Per-Entity Argmax
   Signs: "top X users and their favorite category", "most common error for each service"
   operation: "per_entity_argmax"
   constraint: "Requires window functions (ROW_NUMBER) or correlated subqueries."

2. Statistical Analysis
   Signs: "skew", "distribution", "variance", "deviation", "correlation", "z-score", "percentile"
   operation: "statistical_analysis"
   constraint: "Use canonical statistical functions (STDDEV, AVG OVER(), PERCENT_RANK)."
   Detect ambiguity. "skew of revenue" may mean skewness over time or deviation
   from the mean. State your reading in interpretation_note, e.g.
   "Interpreting 'skew' as deviation from the mean (z-score) across the dataset."

3. Sequential / Temporal Analysis
   Signs: "stopped", "churned", "first", "last", "after", "before", "sequence", "then"
   operation: "sequential_analysis"
   constraint: "MUST use window functions."

4. Trend / Acceleration Analysis (a subtype of sequential_analysis)
   Signs: "accelerated", "increasing", "declining", "worsened", "improved", "growth"
   operation: "sequential_analysis"
   trend_mode:
     any_occurrence  did it happen at least once (weakest)
     net_positive    more increases than decreases (default for growth/acceleration)
     monotonic       always increased (strictest, e.g. "consistently increasing")
   Default to net_positive when ambiguous and say so in interpretation_note.

5. Standard
   Simple filtering, simple aggregation, or global ordering.
   operation: "standard"

Return ONLY a valid JSON object:
{{
    "entities": "...",
    "measure": "...",
    "secondary_attribute": "...",
    "operation": "standard" | "per_entity_argmax" | "statistical_analysis" | "sequential_analysis",
    "trend_mode": "any_occurrence" | "net_positive" | "monotonic" | null,
    "constraint": "...",
    "reasoning": "...",
    "interpretation_note": "..."
}}"""


class Planner:
    """Produces the run's PlannerOutput. Runs at most once per run."""

    def __init__(self, reasoning: ReasoningPort):
        self._reasoning = reasoning

    async def plan(self, state: RunState) -> RunUpdate:
        if state.planner_output is not None:
            return NO_UPDATE

        log.info("planner.plan", request=state.request[:80])
        prompt = _PROMPT.format(request=state.request)
        try:
            raw = await self._reasoning.complete(prompt, json_mode=True)
            output = PlannerOutput.model_validate(parse_json_object(raw))
        except _PLANNER_ERRORS as e:
            log.warning("planner.fallback_standard", error=str(e)[:200], error_type=type(e).__name__)
            output = PlannerOutput.standard()

        log.info(
            "planner.planned",
            operation=output.operation.value,
            trend_mode=output.trend_mode.value if output.trend_mode else None,
        )
        return RunUpdate(planner_output=output)
