"""
agent/events.py — Step Events

Read-only side channel from the orchestrator to its caller. Each stage
transition that concerns a Step is published as a StepEvent so interfaces
can render progress while the run is still going. Events carry copies of
immutable objects; nothing a listener does can change the run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from sqlpilot.agent.types import PolicyDecision, RunSummary, ScopeAssessment, Step


class EventKind(str, Enum):
    PROPOSED = "proposed"
    ASSESSED = "assessed"
    APPROVED = "approved"
    DENIED   = "denied"
    EXECUTED = "executed"
    FINISHED = "finished"


@dataclass(frozen=True)
class StepEvent:
    kind: EventKind
    run_id: str
    step: Optional[Step] = None
    assessment: Optional[ScopeAssessment] = None
    decision: Optional[PolicyDecision] = None
    summary: Optional[RunSummary] = None
    detail: dict = field(default_factory=dict)

    @property
    def text(self) -> str:
        """One-line description for plain-text interfaces."""
        if self.kind is EventKind.FINISHED and self.summary is not None:
            return f"finished ({self.summary.status.value})"
        if self.step is None:
            return self.kind.value
        base = f"{self.kind.value}: {self.step.action}"
        if self.kind is EventKind.ASSESSED and self.assessment is not None:
            return f"{base} (confidence {self.assessment.confidence_score:.2f})"
        if self.kind is EventKind.DENIED and self.decision is not None:
            return f"{base} ({self.decision.category.value}: {self.decision.reason})"
        if self.kind is EventKind.EXECUTED:
            return f"{base} [{self.step.status.value}]"
        return base


EventCallback = Callable[[StepEvent], None]
