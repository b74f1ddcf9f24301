"""
agent/orchestrator.py — Agent Orchestrator

The heart of SQLPilot. Drives one run through an explicit stage machine:

    PLAN ─► DECIDE ─► REFLECT ─► GATE ─► EXECUTE ─┐
              ▲  │                 │  │            │
              │  │                 │  └─(replan)───┤
              │  └─► FINALIZE ◄────┘ (blocked)     │
              └────────────────────────────────────┘

Each stage returns a RunUpdate which is folded into the immutable RunState
with apply_update(). The only state shared between concurrent runs is the
Reasoning Port and the Database Port handed in at construction.

Failure handling:
  - reasoning faults are absorbed by each component's fallback
  - execution faults become failed Steps the Decider can correct
  - bookkeeping faults (illegal step transition, bad merge, anything
    unexpected) end the run with a failed summary
  - asyncio.CancelledError propagates to the caller untouched

Usage:
    orc = Orchestrator.from_settings(settings, reasoning, database)
    summary = await orc.run("Which artist has the most tracks?", roles=["readonly"])
"""

from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Iterable, Optional

from sqlpilot.actions.catalog import ActionCatalog, default_catalog
from sqlpilot.agent.context_builder import ContextBuilder
from sqlpilot.agent.decider import Decider
from sqlpilot.agent.events import EventCallback, EventKind, StepEvent
from sqlpilot.agent.executor import Executor
from sqlpilot.agent.finalizer import Finalizer
from sqlpilot.agent.planner import Planner
from sqlpilot.agent.reflector import ScopeReflector
from sqlpilot.agent.state import RunState, RunUpdate, apply_update
from sqlpilot.agent.types import (
    CallerContext,
    PolicyCategory,
    RunStatus,
    RunSummary,
    StepStatus,
)
from sqlpilot.brain.reasoning import ReasoningPort
from sqlpilot.database.port import DatabasePort
from sqlpilot.exceptions import AgentError
from sqlpilot.observability.logger import bind_run, clear_run, get_logger
from sqlpilot.safety.policy_gate import PolicyGate

log = get_logger(__name__)

_DEFAULT_MAX_STEPS = 10

# Stage transitions per executed step (decide, reflect, gate, execute)
_STAGES_PER_STEP = 4


class Stage(str, Enum):
    PLAN     = "plan"
    DECIDE   = "decide"
    REFLECT  = "reflect"
    GATE     = "gate"
    EXECUTE  = "execute"
    FINALIZE = "finalize"
    DONE     = "done"


class Orchestrator:
    """
    Coordinates Planner → Decider → Scope Reflector → Policy Gate → Executor
    for each request.

    Inject all components via the constructor; use from_settings() when
    wiring up the application.
    """

    def __init__(
        self,
        planner: Planner,
        decider: Decider,
        reflector: ScopeReflector,
        gate: PolicyGate,
        executor: Executor,
        finalizer: Optional[Finalizer] = None,
        max_steps: int = _DEFAULT_MAX_STEPS,
        default_roles: Iterable[str] = ("readonly",),
        on_event: Optional[EventCallback] = None,
    ):
        self._planner = planner
        self._decider = decider
        self._reflector = reflector
        self._gate = gate
        self._executor = executor
        self._finalizer = finalizer or Finalizer()
        self._max_steps = max_steps
        self._default_roles = frozenset(default_roles)
        self._on_event = on_event

    @classmethod
    def from_settings(
        cls,
        settings,
        reasoning: ReasoningPort,
        database: DatabasePort,
        catalog: Optional[ActionCatalog] = None,
        on_event: Optional[EventCallback] = None,
    ) -> "Orchestrator":
        agent_cfg = settings.agent
        context = ContextBuilder(
            history_window=agent_cfg.history_window,
            history_row_cap=agent_cfg.history_row_cap,
        )
        return cls(
            planner=Planner(reasoning),
            decider=Decider(
                reasoning,
                catalog or default_catalog(),
                context=context,
                max_attempts=agent_cfg.max_decision_attempts,
            ),
            reflector=ScopeReflector(
                reasoning,
                context=context,
                override_confidence=settings.safety.override_confidence,
            ),
            gate=PolicyGate.from_settings(settings),
            executor=Executor(database),
            max_steps=agent_cfg.max_steps,
            default_roles=agent_cfg.default_roles,
            on_event=on_event,
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Public
    # ─────────────────────────────────────────────────────────────────────────

    async def run(
        self,
        request: str,
        roles: Optional[Iterable[str]] = None,
        max_steps: Optional[int] = None,
        user_id: str = "anonymous",
        on_event: Optional[EventCallback] = None,
    ) -> RunSummary:
        """
        Answer one request and return its RunSummary. Never raises except
        for cancellation.
        """
        caller = CallerContext(
            user_id=user_id,
            roles=frozenset(roles) if roles is not None else self._default_roles,
        )
        budget = self._max_steps if max_steps is None else max(max_steps, 0)
        state = RunState(request=request, caller=caller, max_steps=budget)
        callback = on_event or self._on_event

        bind_run(state.run_id, caller.user_id)
        log.info(
            "orchestrator.run_start",
            request=request[:120],
            roles=sorted(caller.roles),
            max_steps=budget,
        )
        t0 = time.monotonic()

        try:
            stage = Stage.PLAN
            iterations = 0
            cap = _STAGES_PER_STEP * (budget + 1) + 4
            while stage is not Stage.DONE:
                iterations += 1
                if iterations > cap:
                    raise AgentError(f"loop exceeded {cap} stage transitions")
                stage, state = await self._advance(stage, state, callback)

            summary = state.summary
            if summary is None:
                raise AgentError("run ended without a summary")

        except asyncio.CancelledError:
            log.info("orchestrator.run_cancelled", step_count=state.step_count)
            clear_run()
            raise
        except Exception as e:
            log.error(
                "orchestrator.run_error",
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            summary = RunSummary(
                summary_text=f"Run aborted: {type(e).__name__}: {e}",
                status=RunStatus.FAILED,
                actions_taken=[s.describe() for s in state.completed_steps],
                step_count=state.step_count,
            )

        log.info(
            "orchestrator.run_done",
            status=summary.status.value,
            step_count=summary.step_count,
            denied_steps=len(state.denied_steps),
            ms=round((time.monotonic() - t0) * 1000),
        )
        self._emit(callback, StepEvent(kind=EventKind.FINISHED, run_id=state.run_id, summary=summary))
        clear_run()
        return summary

    # ─────────────────────────────────────────────────────────────────────────
    # Stage machine
    # ─────────────────────────────────────────────────────────────────────────

    async def _advance(
        self,
        stage: Stage,
        state: RunState,
        callback: Optional[EventCallback],
    ) -> tuple[Stage, RunState]:
        log.debug("orchestrator.stage", stage=stage.value, step_count=state.step_count)

        if stage is Stage.PLAN:
            state = apply_update(state, await self._planner.plan(state))
            return Stage.DECIDE, state

        if stage is Stage.DECIDE:
            state = apply_update(state, await self._decider.decide(state))
            if state.current_step is None:
                return Stage.FINALIZE, state
            self._emit(callback, StepEvent(EventKind.PROPOSED, state.run_id, step=state.current_step))
            return Stage.REFLECT, state

        if stage is Stage.REFLECT:
            step = self._in_flight(state, StepStatus.PENDING)
            assessment = await self._reflector.assess(step, state)
            step = step.with_assessment(assessment)
            state = apply_update(state, RunUpdate(current_step=step))
            self._emit(callback, StepEvent(EventKind.ASSESSED, state.run_id, step=step, assessment=assessment))
            return Stage.GATE, state

        if stage is Stage.GATE:
            step = self._in_flight(state, StepStatus.PENDING)
            decision = self._gate.evaluate(step, state.caller)

            if decision.approved:
                step = step.advance(StepStatus.APPROVED, policy=decision)
                state = apply_update(state, RunUpdate(current_step=step))
                self._emit(callback, StepEvent(EventKind.APPROVED, state.run_id, step=step, decision=decision))
                return Stage.EXECUTE, state

            denied = step.advance(StepStatus.DENIED, policy=decision)
            self._emit(callback, StepEvent(EventKind.DENIED, state.run_id, step=denied, decision=decision))

            if decision.category is PolicyCategory.CONFIDENCE_DENIAL:
                state = apply_update(state, RunUpdate(
                    current_step=None,
                    append_denied=(denied,),
                    replan_feedback=decision.feedback,
                ))
                return Stage.DECIDE, state

            state = apply_update(state, RunUpdate(current_step=denied))
            return Stage.FINALIZE, state

        if stage is Stage.EXECUTE:
            step = self._in_flight(state, StepStatus.APPROVED)
            state = apply_update(state, await self._executor.execute(step))
            self._emit(callback, StepEvent(EventKind.EXECUTED, state.run_id, step=state.last_completed))
            return Stage.DECIDE, state

        if stage is Stage.FINALIZE:
            state = apply_update(state, self._finalizer.finalize(state))
            return Stage.DONE, state

        raise AgentError(f"no handler for stage '{stage.value}'")

    @staticmethod
    def _in_flight(state: RunState, expected: StepStatus):
        step = state.current_step
        if step is None or step.status is not expected:
            found = step.status.value if step else "none"
            raise AgentError(f"expected a {expected.value} step in flight, found {found}")
        return step

    @staticmethod
    def _emit(callback: Optional[EventCallback], event: StepEvent) -> None:
        if callback is None:
            return
        try:
            callback(event)
        except Exception as e:
            log.warning(
                "orchestrator.event_callback_failed",
                kind=event.kind.value,
                error=str(e),
                error_type=type(e).__name__,
            )
