"""
agent/state.py — Run State + Update Merge

RunState is the complete, immutable state of one run. Loop components never
modify it; they return a RunUpdate describing what changed and the
orchestrator folds it in with apply_update().

RunUpdate fields default to UNSET ("not touched") so that an explicit None
can clear a slot, e.g. RunUpdate(current_step=None) after execution.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Optional

from sqlpilot.agent.types import (
    CallerContext,
    PlannerOutput,
    ReplanFeedback,
    RunSummary,
    Step,
    StepStatus,
)
from sqlpilot.exceptions import StateMergeError


class _Unset:
    _instance: Optional["_Unset"] = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


@dataclass(frozen=True)
class RunState:
    request: str
    caller: CallerContext
    max_steps: int = 10
    planner_output: Optional[PlannerOutput] = None
    completed_steps: tuple[Step, ...] = ()
    denied_steps: tuple[Step, ...] = ()
    current_step: Optional[Step] = None
    step_count: int = 0
    replan_feedback: Optional[ReplanFeedback] = None
    summary: Optional[RunSummary] = None
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    @property
    def last_completed(self) -> Optional[Step]:
        return self.completed_steps[-1] if self.completed_steps else None

    @property
    def last_failed(self) -> Optional[Step]:
        for step in reversed(self.completed_steps):
            if step.status is StepStatus.FAILED:
                return step
        return None

    @property
    def budget_exhausted(self) -> bool:
        return self.step_count >= self.max_steps


@dataclass(frozen=True)
class RunUpdate:
    """Partial diff against a RunState. Step lists are appended, never replaced."""
    planner_output: Any = UNSET
    current_step: Any = UNSET
    append_completed: tuple[Step, ...] = ()
    append_denied: tuple[Step, ...] = ()
    step_count: Any = UNSET
    replan_feedback: Any = UNSET
    summary: Any = UNSET

    @property
    def is_empty(self) -> bool:
        return self == NO_UPDATE


NO_UPDATE = RunUpdate()


def apply_update(state: RunState, update: RunUpdate) -> RunState:
    """
    Merge ``update`` into ``state`` and return the new state.

    Raises StateMergeError for merges that would rewrite history: replacing
    the planner output or the summary, lowering the step count, or
    appending steps that are not in a final status.
    """
    changes: dict[str, Any] = {}

    if update.planner_output is not UNSET:
        if state.planner_output is not None and update.planner_output != state.planner_output:
            raise StateMergeError("planner output is already set for this run")
        changes["planner_output"] = update.planner_output

    if update.current_step is not UNSET:
        changes["current_step"] = update.current_step

    if update.append_completed:
        for step in update.append_completed:
            if step.status not in (StepStatus.COMPLETED, StepStatus.FAILED):
                raise StateMergeError(
                    f"step {step.id} appended to history with status '{step.status.value}'"
                )
        changes["completed_steps"] = state.completed_steps + tuple(update.append_completed)

    if update.append_denied:
        for step in update.append_denied:
            if step.status is not StepStatus.DENIED:
                raise StateMergeError(
                    f"step {step.id} recorded as denied with status '{step.status.value}'"
                )
        changes["denied_steps"] = state.denied_steps + tuple(update.append_denied)

    if update.step_count is not UNSET:
        if update.step_count < state.step_count:
            raise StateMergeError(
                f"step count cannot decrease ({state.step_count} -> {update.step_count})"
            )
        changes["step_count"] = update.step_count

    if update.replan_feedback is not UNSET:
        changes["replan_feedback"] = update.replan_feedback

    if update.summary is not UNSET:
        if state.summary is not None:
            raise StateMergeError("run summary is already set")
        changes["summary"] = update.summary

    return replace(state, **changes) if changes else state
