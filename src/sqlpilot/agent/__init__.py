"""
agent/ — SQLPilot Agent Loop

Component overview:
    Planner          Classifies the request into an operation category (once)
    Decider          Proposes the next Step or finishes the run
    ScopeReflector   Scores a pending Step: risk, complexity, confidence
    PolicyGate       Deterministic approve / replan / block verdict (safety/)
    Executor         Runs approved Steps against the Database Port
    Finalizer        Produces the summary when the loop halts without one
    Orchestrator     Stage machine wiring the above together

Only the data contracts are re-exported here; import components from their
modules (e.g. ``from sqlpilot.agent.orchestrator import Orchestrator``).
"""

from sqlpilot.agent.state import UNSET, RunState, RunUpdate, apply_update
from sqlpilot.agent.types import (
    CallerContext,
    PlannerOutput,
    PolicyCategory,
    PolicyDecision,
    ReplanFeedback,
    RunStatus,
    RunSummary,
    ScopeAssessment,
    Step,
    StepStatus,
)

__all__ = [
    "CallerContext",
    "PlannerOutput",
    "PolicyCategory",
    "PolicyDecision",
    "ReplanFeedback",
    "RunState",
    "RunStatus",
    "RunSummary",
    "RunUpdate",
    "ScopeAssessment",
    "Step",
    "StepStatus",
    "UNSET",
    "apply_update",
]
