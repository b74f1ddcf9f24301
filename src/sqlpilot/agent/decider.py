"""
agent/decider.py — Next-Step Decider

Chooses what happens next: propose one more action or finish the run.

Contract with the rest of the loop:
  - The step budget is checked before the reasoning layer is called.
  - A proposal identical to a step the Policy Gate sent back, or to a step
    that failed, is rejected locally and the reasoning layer is asked again
    with an explicit violation note.
  - Unusable responses (bad JSON, missing tool name) consume an attempt the
    same way. When attempts run out the run finishes as failed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from sqlpilot.actions.catalog import ActionCatalog
from sqlpilot.agent.context_builder import ContextBuilder
from sqlpilot.agent.finalizer import tabulate_step
from sqlpilot.agent.state import RunState, RunUpdate
from sqlpilot.agent.types import RunStatus, RunSummary, Step
from sqlpilot.brain.reasoning import REASONING_ERRORS, ReasoningPort, parse_json_object
from sqlpilot.exceptions import ReasoningParseError
from sqlpilot.observability.logger import get_logger

log = get_logger(__name__)

PROMPT_HEADER = "You are a Database Management Engine."

_PROMPT = PROMPT_HEADER + """
User Request: {request}

Available Tools:
{tools}

Execution History (last {window} steps):
{history}

PLANNER GUIDANCE:
{planner}

Strategies:
1. Schema first: if you don't know the exact table/column names, call get_schema first.
2. Lookups: do NOT guess identifiers for names like "Rock" or "Jane". SELECT them first.
3. Joins: follow foreign keys visible in the schema (e.g. artist_id, album_id).
4. Empty results: a valid query returning 0 rows is an answer, not an error.
   Say "No results found" and finish. Do NOT retry endlessly.
5. Error recovery: if a step failed, read the error message and fix its cause
   (unknown column, bad alias, syntax). Never retry the exact same query.
6. Scope feedback: when a step's confidence was low, fix the issues it lists.
7. Math safety: cast before dividing integers, wrap denominators in NULLIF(x, 0),
   cast to NUMERIC before ROUND() on PostgreSQL.
8. per_entity_argmax / sequential_analysis plans MUST NOT be answered with a
   simple GROUP BY ... ORDER BY ... LIMIT. Use CTEs with window functions
   (ROW_NUMBER() OVER (PARTITION BY ... ORDER BY ...)).
9. statistical_analysis: z-score is (v - AVG(v) OVER()) / NULLIF(STDDEV(v) OVER(), 0);
   percentile is PERCENT_RANK() OVER (ORDER BY v). Follow the interpretation_note.
10. Trend modes: any_occurrence = count > 0; net_positive = more ups than downs
    (SUM(CASE WHEN v > prev ...) > SUM(CASE WHEN v < prev ...)); monotonic = every
    step is >= the previous one.
{corrections}
Response Format (JSON only, no markdown fences):
{{
    "action": "execute_step" | "finish",
    "tool_name": "tool_name_here",
    "tool_parameters": {{"param": "value"}},
    "rationale": "Why you are taking this step",
    "final_summary": "Summary if action is finish"
}}

Decide the next step.
If the request is satisfied, set action='finish'. When the user asked for data,
final_summary MUST include the data retrieved, formatted as a short list or table.
To run SQL set tool_name='execute_sql' and tool_parameters={{"query": "..."}}.
To inspect the structure set tool_name='get_schema' and tool_parameters={{}}."""


@dataclass(frozen=True)
class _Decision:
    finish: bool
    tool_name: str = ""
    parameters: Optional[dict] = None
    rationale: str = ""
    final_summary: str = ""


def _parse_decision(data: dict[str, Any]) -> _Decision:
    action = str(data.get("action") or "finish").strip().lower()
    if action == "finish":
        return _Decision(finish=True, final_summary=str(data.get("final_summary") or "Completed"))
    if action != "execute_step":
        raise ReasoningParseError(f"unknown action '{action}'")
    tool_name = data.get("tool_name")
    if not tool_name or not isinstance(tool_name, str):
        raise ReasoningParseError("execute_step without tool_name")
    params = data.get("tool_parameters") or {}
    if not isinstance(params, dict):
        raise ReasoningParseError("tool_parameters must be an object")
    return _Decision(
        finish=False,
        tool_name=tool_name.strip(),
        parameters=params,
        rationale=str(data.get("rationale") or "Executing step"),
    )


class Decider:
    def __init__(
        self,
        reasoning: ReasoningPort,
        catalog: ActionCatalog,
        context: Optional[ContextBuilder] = None,
        max_attempts: int = 3,
    ):
        self._reasoning = reasoning
        self._catalog = catalog
        self._context = context or ContextBuilder()
        self._max_attempts = max_attempts

    async def decide(self, state: RunState) -> RunUpdate:
        if state.budget_exhausted:
            log.warning("decider.budget_exhausted", step_count=state.step_count, max_steps=state.max_steps)
            return self._finish(state, "Max steps reached.", RunStatus.PARTIAL)

        base = self._build_prompt(state)
        violations: list[str] = []

        for attempt in range(1, self._max_attempts + 1):
            prompt = base
            if violations:
                prompt += "\n\nPREVIOUS ATTEMPTS WERE REJECTED:\n" + "\n".join(violations)

            try:
                raw = await self._reasoning.complete(prompt, json_mode=True)
                decision = _parse_decision(parse_json_object(raw))
            except REASONING_ERRORS as e:
                log.warning(
                    "decider.unusable_response",
                    attempt=attempt,
                    error=str(e)[:200],
                    error_type=type(e).__name__,
                )
                violations.append(
                    f"Attempt {attempt}: the response could not be used ({e}). "
                    "Reply with one JSON object in the required format."
                )
                continue

            if decision.finish:
                log.info("decider.finish", step_count=state.step_count)
                return self._finish(state, decision.final_summary, RunStatus.SUCCESS)

            step = Step(
                rationale=decision.rationale,
                action=decision.tool_name,
                parameters=decision.parameters or {},
            )
            if self._repeats_rejected(step, state):
                log.warning(
                    "decider.repeat_rejected",
                    attempt=attempt,
                    action=step.action,
                )
                violations.append(ContextBuilder.render_repeat_violation(step, attempt))
                continue

            log.info(
                "decider.step_proposed",
                step_id=step.id,
                action=step.action,
                step=state.step_count + 1,
                max_steps=state.max_steps,
            )
            return RunUpdate(
                current_step=step,
                step_count=state.step_count + 1,
                replan_feedback=None,
            )

        log.error("decider.attempts_exhausted", attempts=self._max_attempts)
        return self._finish(
            state,
            "Decider could not produce a valid next action.",
            RunStatus.FAILED,
        )

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _build_prompt(self, state: RunState) -> str:
        corrections = "\n\n".join(
            block for block in (
                self._context.render_self_correction(state),
                self._context.render_replan(state.replan_feedback),
            ) if block
        )
        return _PROMPT.format(
            request=state.request,
            tools=self._catalog.render_for_prompt(),
            window=self._context.history_window,
            history=self._context.render_history(state),
            planner=self._context.render_planner(state.planner_output),
            corrections=f"\n{corrections}\n" if corrections else "",
        )

    @staticmethod
    def _repeats_rejected(step: Step, state: RunState) -> bool:
        if any(step.same_action(denied) for denied in state.denied_steps):
            return True
        feedback = state.replan_feedback
        if feedback is not None and step.same_action(
            Step(rationale="", action=feedback.action, parameters=feedback.parameters)
        ):
            return True
        failed = state.last_failed
        return failed is not None and step.same_action(failed)

    @staticmethod
    def _finish(state: RunState, text: str, status: RunStatus) -> RunUpdate:
        data, columns, row_count = tabulate_step(state.last_completed)
        return RunUpdate(
            current_step=None,
            summary=RunSummary(
                summary_text=text,
                status=status,
                actions_taken=[s.describe() for s in state.completed_steps],
                data=data,
                columns=columns,
                row_count=row_count,
                step_count=state.step_count,
            ),
        )
