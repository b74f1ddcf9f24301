"""
safety/policy_gate.py — Policy Gate

The gatekeeper between the Scope Reflector and the Executor. Every proposed
Step passes through here before it runs. Deterministic: no reasoning calls,
no I/O besides the audit log.

Decision flow:
  0. Exempt action kinds are approved outright
  1. Confidence at or below the threshold → confidence_denial (replan)
  2. Authorization
       a. destructive or high-risk assessment needs the admin role
       b. keyword backstop over the literal statement
       c. read-only callers may only read or inspect the schema
       d. configured operation types need out-of-band approval
  3. Otherwise allowed
  4. Emit audit log entry
"""

from __future__ import annotations

from typing import Optional

from sqlpilot.agent.types import (
    CallerContext,
    OperationType,
    PolicyDecision,
    ReplanFeedback,
    RiskLevel,
    Step,
)
from sqlpilot.observability.logger import get_logger
from sqlpilot.safety.rules import (
    ADMIN_ROLE,
    CONFIDENCE_EXEMPT_ACTIONS,
    READONLY_OPERATION_TYPES,
    scan_statement,
    statement_text,
)

log = get_logger(__name__)


class PolicyGate:
    """
    Evaluates proposed steps against caller roles and the reflector's verdict.

    Usage:
        gate = PolicyGate(confidence_threshold=0.95)
        decision = gate.evaluate(step, caller)
        if decision.approved:
            ...execute
        elif decision.is_terminal:
            ...finalize as blocked
        else:
            ...send decision.feedback back to the Decider
    """

    def __init__(
        self,
        confidence_threshold: float = 0.95,
        require_approval_for: Optional[list[str]] = None,
    ):
        self.confidence_threshold = confidence_threshold
        self.require_approval_for = frozenset(
            OperationType(op) for op in (require_approval_for or [])
        )

    @classmethod
    def from_settings(cls, settings) -> "PolicyGate":
        return cls(
            confidence_threshold=settings.safety.confidence_threshold,
            require_approval_for=settings.safety.require_approval_for,
        )

    def evaluate(self, step: Step, caller: CallerContext) -> PolicyDecision:
        decision = self._evaluate(step, caller)

        log_fn = log.info if decision.approved else log.warning
        log_fn(
            "policy.decision",
            step_id=step.id,
            action=step.action,
            category=decision.category.value,
            approved=decision.approved,
            reason=decision.reason,
            user_id=caller.user_id,
            roles=sorted(caller.roles),
            confidence=step.assessment.confidence_score if step.assessment else None,
        )
        return decision

    def _evaluate(self, step: Step, caller: CallerContext) -> PolicyDecision:
        # ── Step 0: Exempt action kinds ───────────────────────────────────────
        if step.action in CONFIDENCE_EXEMPT_ACTIONS:
            return PolicyDecision.allow(f"'{step.action}' is an exempt metadata action.")

        scope = step.assessment

        # ── Step 1: Confidence ────────────────────────────────────────────────
        if scope is not None and scope.confidence_score <= self.confidence_threshold:
            return PolicyDecision.low_confidence(
                f"Confidence score {scope.confidence_score:.2f} is below "
                f"{self.confidence_threshold:.2f} threshold",
                ReplanFeedback(
                    action=step.action,
                    parameters=dict(step.parameters),
                    confidence=scope.confidence_score,
                    threshold=self.confidence_threshold,
                    issues=tuple(scope.issues),
                    suggestions=tuple(scope.suggestions),
                    intent_alignment=scope.intent_alignment,
                ),
            )

        # ── Step 2a: Assessed destructiveness ─────────────────────────────────
        if scope is not None and (scope.is_destructive or scope.risk_level >= RiskLevel.HIGH):
            if not caller.is_admin:
                return PolicyDecision.deny(
                    f"Destructive/high-risk operation detected ({scope.operation_type.value}) "
                    f"and requires '{ADMIN_ROLE}' role."
                )

        # ── Step 2b: Keyword backstop ─────────────────────────────────────────
        scan = scan_statement(statement_text(step.parameters))
        if scan.destructive and not caller.is_admin:
            return PolicyDecision.deny(
                f"Destructive operations ({'/'.join(scan.destructive)}) require "
                f"'{ADMIN_ROLE}' role."
            )
        if scan.writes and caller.is_readonly:
            return PolicyDecision.deny(
                f"Read-only users cannot modify data ({'/'.join(scan.writes)})."
            )

        # ── Step 2c: Read-only callers ────────────────────────────────────────
        if (
            scope is not None
            and caller.is_readonly
            and scope.operation_type.value not in READONLY_OPERATION_TYPES
        ):
            return PolicyDecision.deny(
                f"Read-only users cannot run '{scope.operation_type.value}' operations."
            )

        # ── Step 2d: Out-of-band approval ─────────────────────────────────────
        if scope is not None and scope.operation_type in self.require_approval_for:
            return PolicyDecision.needs_approval(
                f"'{scope.operation_type.value}' operations require explicit approval."
            )

        return PolicyDecision.allow("Operation allowed by default policy.")
