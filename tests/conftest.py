"""
tests/conftest.py — Shared fixtures for the agent loop tests.
"""

from __future__ import annotations

from typing import Callable, Optional

import pytest

from sqlpilot.actions.catalog import default_catalog
from sqlpilot.agent.context_builder import ContextBuilder
from sqlpilot.agent.decider import Decider
from sqlpilot.agent.executor import Executor
from sqlpilot.agent.orchestrator import Orchestrator
from sqlpilot.agent.planner import Planner
from sqlpilot.agent.reflector import ScopeReflector
from sqlpilot.safety.policy_gate import PolicyGate
from tests.fakes import FakeDatabase, ScriptedReasoner


@pytest.fixture
def database() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def make_orchestrator() -> Callable[..., Orchestrator]:
    """Factory wiring real loop components around the given fakes."""
    def _build(
        reasoner: ScriptedReasoner,
        database: FakeDatabase,
        max_steps: int = 10,
        confidence_threshold: float = 0.95,
        require_approval_for: Optional[list[str]] = None,
        on_event=None,
    ) -> Orchestrator:
        context = ContextBuilder()
        return Orchestrator(
            planner=Planner(reasoner),
            decider=Decider(reasoner, default_catalog(), context=context),
            reflector=ScopeReflector(reasoner, context=context),
            gate=PolicyGate(
                confidence_threshold=confidence_threshold,
                require_approval_for=require_approval_for,
            ),
            executor=Executor(database),
            max_steps=max_steps,
            on_event=on_event,
        )
    return _build
