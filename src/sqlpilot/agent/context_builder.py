"""
agent/context_builder.py — Prompt Context Builder

Renders run state into the text blocks shared by the Decider and the
Scope Reflector prompts:

    history window → planner guidance → self-correction → replanning

The history window is bounded twice: only the last ``history_window``
completed steps are shown, and each step's result rows are capped at
``history_row_cap`` with a note saying how many were left out.
"""

from __future__ import annotations

import json
from typing import Any, Optional

from sqlpilot.agent.state import RunState
from sqlpilot.agent.types import PlannerOutput, ReplanFeedback, Step, StepStatus

_RESULT_MAX_CHARS = 4_000


def _dump(value: Any) -> str:
    return json.dumps(value, indent=2, default=str)


class ContextBuilder:
    def __init__(self, history_window: int = 3, history_row_cap: int = 5):
        self.history_window = history_window
        self.history_row_cap = history_row_cap

    # ── History ───────────────────────────────────────────────────────────────

    def truncate_result(self, result: Optional[dict]) -> Optional[dict]:
        if not result or not isinstance(result.get("data"), list):
            return result
        rows = result["data"]
        if len(rows) <= self.history_row_cap:
            return result
        hidden = len(rows) - self.history_row_cap
        return {
            **result,
            "data": rows[: self.history_row_cap],
            "note": f"... {hidden} more rows truncated ...",
        }

    def history(self, state: RunState) -> list[dict]:
        window = state.completed_steps[-self.history_window:]
        entries = []
        for step in window:
            entry: dict[str, Any] = {
                "tool": step.action,
                "params": step.parameters,
                "status": step.status.value,
                "result": self.truncate_result(step.result),
            }
            if step.assessment is not None:
                entry["scope_feedback"] = {
                    "confidence_score": step.assessment.confidence_score,
                    "summary": step.assessment.summary,
                    "issues": step.assessment.issues,
                }
            entries.append(entry)
        return entries

    def render_history(self, state: RunState) -> str:
        entries = self.history(state)
        if not entries:
            return "No steps executed yet."
        text = _dump(entries)
        if len(text) > _RESULT_MAX_CHARS * self.history_window:
            text = text[: _RESULT_MAX_CHARS * self.history_window] + "\n... [history truncated]"
        return text

    # ── Guidance blocks ───────────────────────────────────────────────────────

    def render_planner(self, planner: Optional[PlannerOutput]) -> str:
        if planner is None:
            return "No planner output available."
        return _dump(planner.model_dump(mode="json", exclude_none=True))

    def render_planner_constraints(self, planner: Optional[PlannerOutput]) -> str:
        if planner is None:
            return ""
        return (
            "PLANNER CONSTRAINTS (MUST SATISFY):\n"
            f"- Operation: {planner.operation.value}\n"
            f"- Entities: {planner.entities}\n"
            f"- Measure: {planner.measure}\n"
            f"- Filter/Constraint: {planner.constraint}\n"
            f"- Trend mode: {planner.trend_mode.value if planner.trend_mode else None}\n"
            f"- Interpretation Note: {planner.interpretation_note}"
        )

    def render_self_correction(self, state: RunState) -> str:
        last = state.last_completed
        if last is None or last.status is not StepStatus.FAILED:
            return ""
        return (
            "SELF-CORRECTION REQUIRED:\n"
            f"Your previous action ({last.action}) failed with this error:\n"
            f"{last.error or 'unknown error'}\n"
            f"Failed parameters: {_dump(last.parameters)}\n"
            "The error text is authoritative. Fix the cause it names. "
            "Do NOT repeat the same action with the same parameters."
        )

    def render_replan(self, feedback: Optional[ReplanFeedback]) -> str:
        if feedback is None:
            return ""
        issues = "\n".join(f"  - {i}" for i in feedback.issues) or "  - none listed"
        suggestions = "\n".join(f"  - {s}" for s in feedback.suggestions) or "  - none listed"
        return (
            "REPLANNING REQUIRED:\n"
            f"Your previous proposal was REJECTED by the Policy Gate: confidence "
            f"{feedback.confidence:.2f} is not above the {feedback.threshold:.2f} threshold.\n"
            f"Rejected action: {feedback.action}\n"
            f"Rejected parameters: {_dump(feedback.parameters)}\n"
            f"Issues:\n{issues}\n"
            f"Suggestions:\n{suggestions}\n"
            f"Intent alignment: {feedback.intent_alignment or 'n/a'}\n"
            "You MUST address these points. Proposing the rejected action again "
            "with the same parameters is not allowed."
        )

    @staticmethod
    def render_repeat_violation(step: Step, attempt: int) -> str:
        return (
            f"VIOLATION (attempt {attempt}): you proposed '{step.action}' with parameters "
            f"{_dump(step.parameters)}, which repeats an action that was already "
            "rejected or failed. Propose a different action or different parameters, "
            "or finish."
        )
