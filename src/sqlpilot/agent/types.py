"""
agent/types.py — Agent Loop Data Contracts

Everything the loop components pass to each other:

  - Step:             one proposed action moving through its lifecycle
  - ScopeAssessment:  reflector verdict on a pending Step (pydantic; parsed
                      straight from the reasoning layer's JSON)
  - PolicyDecision:   Policy Gate verdict, with ReplanFeedback on
                      confidence denials
  - PlannerOutput:    semantic guidance produced once per run
  - CallerContext:    who is asking (roles only, authentication is upstream)
  - RunSummary:       terminal outcome of a run

Step instances are immutable. Lifecycle changes go through Step.advance(),
which enforces the forward-only status order:

    pending ──► approved ──► completed
       │           └──────► failed
       └──────► denied
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sqlpilot.exceptions import StepTransitionError


# ─────────────────────────────────────────────────────────────────────────────
# Enums
# ─────────────────────────────────────────────────────────────────────────────

class StepStatus(str, Enum):
    PENDING   = "pending"
    APPROVED  = "approved"
    DENIED    = "denied"
    COMPLETED = "completed"
    FAILED    = "failed"

    @property
    def is_final(self) -> bool:
        return self in (StepStatus.DENIED, StepStatus.COMPLETED, StepStatus.FAILED)


_TRANSITIONS: dict[StepStatus, frozenset[StepStatus]] = {
    StepStatus.PENDING:  frozenset({StepStatus.APPROVED, StepStatus.DENIED}),
    StepStatus.APPROVED: frozenset({StepStatus.COMPLETED, StepStatus.FAILED}),
}


class RiskLevel(str, Enum):
    LOW    = "low"
    MEDIUM = "medium"
    HIGH   = "high"

    def _order(self) -> int:
        return ["low", "medium", "high"].index(self.value)

    def __lt__(self, other: "RiskLevel") -> bool: return self._order() < other._order()
    def __le__(self, other: "RiskLevel") -> bool: return self._order() <= other._order()
    def __gt__(self, other: "RiskLevel") -> bool: return self._order() > other._order()
    def __ge__(self, other: "RiskLevel") -> bool: return self._order() >= other._order()


class OperationType(str, Enum):
    READ   = "read"
    WRITE  = "write"
    DDL    = "ddl"
    SCHEMA = "schema"


# Words models use for operation_type that are not one of the four values.
_OPERATION_ALIASES = {
    "select": "read",
    "query": "read",
    "insert": "write",
    "update": "write",
    "delete": "write",
    "create": "ddl",
    "alter": "ddl",
    "drop": "ddl",
    "metadata": "schema",
}


class OperationCategory(str, Enum):
    STANDARD             = "standard"
    PER_ENTITY_ARGMAX    = "per_entity_argmax"
    STATISTICAL_ANALYSIS = "statistical_analysis"
    SEQUENTIAL_ANALYSIS  = "sequential_analysis"


class TrendMode(str, Enum):
    ANY_OCCURRENCE = "any_occurrence"
    NET_POSITIVE   = "net_positive"
    MONOTONIC      = "monotonic"


class PolicyCategory(str, Enum):
    ALLOWED           = "allowed"
    DENIED            = "denied"
    REQUIRES_APPROVAL = "requires_approval"
    CONFIDENCE_DENIAL = "confidence_denial"


class RunStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED  = "failed"
    BLOCKED = "blocked"


# ─────────────────────────────────────────────────────────────────────────────
# ScopeAssessment
# ─────────────────────────────────────────────────────────────────────────────

class ScopeAssessment(BaseModel):
    """
    Reflector verdict on a pending Step.

    confidence_score measures semantic correctness against the request and
    the planner constraints. complexity_score is independent: a complex
    query that does the right thing scores high confidence.
    """
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    summary: str = ""
    risk_level: RiskLevel = RiskLevel.MEDIUM
    operation_type: OperationType = OperationType.READ
    tables_involved: list[str] = Field(default_factory=list)
    is_destructive: bool = False
    complexity_score: int = Field(default=5, ge=1, le=10)
    confidence_score: float = Field(default=0.0, ge=0.0, le=1.0)
    issues: list[str] = Field(default_factory=list, alias="performance_issues")
    suggestions: list[str] = Field(default_factory=list, alias="optimization_suggestions")
    intent_alignment: str = Field(default="", alias="user_intent_alignment")
    requirements_checklist: dict[str, bool] = Field(default_factory=dict)

    @field_validator("risk_level", mode="before")
    @classmethod
    def _lower_risk(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("operation_type", mode="before")
    @classmethod
    def _normalise_operation(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip().lower()
            return _OPERATION_ALIASES.get(v, v)
        return v

    @field_validator("complexity_score", mode="before")
    @classmethod
    def _clamp_complexity(cls, v: Any) -> Any:
        if isinstance(v, (int, float)):
            return min(max(int(round(v)), 1), 10)
        return v

    @field_validator("tables_involved", "issues", "suggestions", mode="before")
    @classmethod
    def _none_to_list(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            return [v] if v else []
        return v

    @field_validator("intent_alignment", "summary", mode="before")
    @classmethod
    def _none_to_str(cls, v: Any) -> Any:
        return "" if v is None else v

    @property
    def checklist_satisfied(self) -> bool:
        """True when the checklist is non-empty and every requirement is met."""
        return bool(self.requirements_checklist) and all(self.requirements_checklist.values())

    def with_confidence(self, score: float) -> "ScopeAssessment":
        return self.model_copy(update={"confidence_score": score})

    @classmethod
    def metadata_shortcut(cls, action: str = "get_schema") -> "ScopeAssessment":
        return cls(
            summary=f"Reading database metadata ({action}).",
            risk_level=RiskLevel.LOW,
            operation_type=OperationType.SCHEMA,
            complexity_score=1,
            confidence_score=1.0,
            intent_alignment="Inspecting the schema before answering the request.",
        )

    @classmethod
    def unparsable(cls, reason: str) -> "ScopeAssessment":
        return cls(
            summary="Analysis failed",
            risk_level=RiskLevel.HIGH,
            operation_type=OperationType.WRITE,
            is_destructive=True,
            complexity_score=10,
            confidence_score=0.0,
            issues=["Reflector failed", reason],
            intent_alignment="Unknown",
        )


# ─────────────────────────────────────────────────────────────────────────────
# Policy
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ReplanFeedback:
    """Why a step was sent back. Mandatory context for the next proposal."""
    action: str
    parameters: dict
    confidence: float
    threshold: float
    issues: tuple[str, ...] = ()
    suggestions: tuple[str, ...] = ()
    intent_alignment: str = ""


@dataclass(frozen=True)
class PolicyDecision:
    approved: bool
    category: PolicyCategory
    reason: str
    feedback: Optional[ReplanFeedback] = None

    @property
    def is_terminal(self) -> bool:
        return self.category in (PolicyCategory.DENIED, PolicyCategory.REQUIRES_APPROVAL)

    @classmethod
    def allow(cls, reason: str) -> "PolicyDecision":
        return cls(approved=True, category=PolicyCategory.ALLOWED, reason=reason)

    @classmethod
    def deny(cls, reason: str) -> "PolicyDecision":
        return cls(approved=False, category=PolicyCategory.DENIED, reason=reason)

    @classmethod
    def needs_approval(cls, reason: str) -> "PolicyDecision":
        return cls(approved=False, category=PolicyCategory.REQUIRES_APPROVAL, reason=reason)

    @classmethod
    def low_confidence(cls, reason: str, feedback: ReplanFeedback) -> "PolicyDecision":
        return cls(
            approved=False,
            category=PolicyCategory.CONFIDENCE_DENIAL,
            reason=reason,
            feedback=feedback,
        )


# ─────────────────────────────────────────────────────────────────────────────
# Step
# ─────────────────────────────────────────────────────────────────────────────

_WS = re.compile(r"\s+")


def _normalise(value: Any) -> Any:
    if isinstance(value, str):
        return _WS.sub(" ", value).strip()
    if isinstance(value, dict):
        return {k: _normalise(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalise(v) for v in value]
    return value


@dataclass(frozen=True)
class Step:
    """
    One proposed action. Created pending by the Decider, assessed by the
    reflector, judged by the Policy Gate and finished by the Executor.
    """
    rationale: str
    action: str
    parameters: dict = field(default_factory=dict)
    status: StepStatus = StepStatus.PENDING
    assessment: Optional[ScopeAssessment] = None
    policy: Optional[PolicyDecision] = None
    result: Optional[dict] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])

    def with_assessment(self, assessment: ScopeAssessment) -> "Step":
        if self.status is not StepStatus.PENDING:
            raise StepTransitionError(self.id, self.status.value, "assessed")
        return replace(self, assessment=assessment)

    def advance(self, status: StepStatus, **fields: Any) -> "Step":
        if status not in _TRANSITIONS.get(self.status, frozenset()):
            raise StepTransitionError(self.id, self.status.value, status.value)
        return replace(self, status=status, **fields)

    def same_action(self, other: "Step") -> bool:
        """Same action kind with equal parameters, ignoring whitespace differences."""
        return (
            self.action == other.action
            and _normalise(self.parameters) == _normalise(other.parameters)
        )

    @property
    def error(self) -> Optional[str]:
        if self.result and self.result.get("error"):
            return str(self.result["error"])
        return None

    def describe(self) -> str:
        return self.rationale or self.action


# ─────────────────────────────────────────────────────────────────────────────
# Planner output
# ─────────────────────────────────────────────────────────────────────────────

class PlannerOutput(BaseModel):
    """Semantic guidance for the whole run. Produced once, never changed."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    operation: OperationCategory = OperationCategory.STANDARD
    entities: Optional[str] = None
    measure: Optional[str] = None
    secondary_attribute: Optional[str] = None
    trend_mode: Optional[TrendMode] = None
    constraint: Optional[str] = None
    reasoning: str = ""
    interpretation_note: Optional[str] = None

    @field_validator("entities", "measure", "secondary_attribute", "constraint",
                     "interpretation_note", mode="before")
    @classmethod
    def _stringify(cls, v: Any) -> Any:
        if isinstance(v, list):
            return ", ".join(str(x) for x in v)
        return v

    @field_validator("reasoning", mode="before")
    @classmethod
    def _reasoning_none(cls, v: Any) -> Any:
        return "" if v is None else v

    @classmethod
    def standard(cls, reasoning: str = "Planner unavailable; using standard guidance.") -> "PlannerOutput":
        return cls(operation=OperationCategory.STANDARD, reasoning=reasoning)


# ─────────────────────────────────────────────────────────────────────────────
# Caller + summary
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class CallerContext:
    user_id: str = "anonymous"
    roles: frozenset[str] = field(default_factory=lambda: frozenset({"readonly"}))

    @property
    def is_admin(self) -> bool:
        return "admin" in self.roles

    @property
    def is_readonly(self) -> bool:
        """Non-admin callers are treated as read-only."""
        return not self.is_admin


@dataclass
class RunSummary:
    summary_text: str
    status: RunStatus
    actions_taken: list[str] = field(default_factory=list)
    data: Optional[list[dict]] = None
    columns: list[str] = field(default_factory=list)
    row_count: int = 0
    step_count: int = 0

    @property
    def succeeded(self) -> bool:
        return self.status in (RunStatus.SUCCESS, RunStatus.PARTIAL)
