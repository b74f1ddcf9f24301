"""
tests/fakes.py — Test doubles for the agent loop

ScriptedReasoner stands in for the Reasoning Port. It recognises which
component is asking by the first line of the prompt and answers from a
per-component queue. Dict entries are sent as JSON, str entries verbatim,
exception instances are raised.

FakeDatabase stands in for the Database Port: a fixed schema plus canned
QueryResults keyed by a substring of the SQL text.
"""

from __future__ import annotations

import json
from typing import Any, Optional

from sqlpilot.agent import decider as decider_module
from sqlpilot.agent import planner as planner_module
from sqlpilot.agent import reflector as reflector_module
from sqlpilot.database.port import QueryResult
from sqlpilot.exceptions import ReasoningError


# ─────────────────────────────────────────────────────────────────────────────
# Reasoning Port fake
# ─────────────────────────────────────────────────────────────────────────────

_HEADERS = {
    planner_module.PROMPT_HEADER: "planner",
    decider_module.PROMPT_HEADER: "decider",
    reflector_module.PROMPT_HEADER: "reflector",
}


class ScriptedReasoner:
    def __init__(
        self,
        planner: Optional[list] = None,
        decider: Optional[list] = None,
        reflector: Optional[list] = None,
    ):
        self.queues: dict[str, list] = {
            "planner": list(planner or []),
            "decider": list(decider or []),
            "reflector": list(reflector or []),
        }
        self.prompts: dict[str, list[str]] = {"planner": [], "decider": [], "reflector": []}

    async def complete(self, prompt: str, *, json_mode: bool = False) -> str:
        component = next(
            (name for header, name in _HEADERS.items() if prompt.startswith(header)),
            None,
        )
        if component is None:
            raise AssertionError(f"unrecognised prompt: {prompt[:80]!r}")
        self.prompts[component].append(prompt)

        queue = self.queues[component]
        if not queue:
            raise ReasoningError(f"no scripted {component} response left")
        item = queue.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item if isinstance(item, str) else json.dumps(item)

    def calls(self, component: str) -> int:
        return len(self.prompts[component])


# ─────────────────────────────────────────────────────────────────────────────
# Database Port fake
# ─────────────────────────────────────────────────────────────────────────────

DEFAULT_SCHEMA = {
    "customers": ["id", "name", "country"],
    "orders": ["id", "customer_id", "total", "created_at"],
}


class FakeDatabase:
    def __init__(
        self,
        schema: Optional[dict[str, list[str]]] = None,
        responses: Optional[dict[str, QueryResult]] = None,
    ):
        self.schema = dict(DEFAULT_SCHEMA if schema is None else schema)
        self.responses = dict(responses or {})
        self.executed: list[tuple[str, Optional[dict]]] = []
        self.disposed = False

    async def execute(self, sql: str, params: Optional[dict[str, Any]] = None) -> QueryResult:
        self.executed.append((sql, params))
        for fragment, result in self.responses.items():
            if fragment in sql:
                return result
        return QueryResult.ok([], 0, "Query returned 0 rows.")

    async def get_schema(self) -> dict[str, list[str]]:
        return dict(self.schema)

    async def dispose(self) -> None:
        self.disposed = True


# ─────────────────────────────────────────────────────────────────────────────
# Response builders
# ─────────────────────────────────────────────────────────────────────────────

def step_decision(tool: str, params: Optional[dict] = None, rationale: str = "next step") -> dict:
    return {
        "action": "execute_step",
        "tool_name": tool,
        "tool_parameters": params or {},
        "rationale": rationale,
    }


def finish_decision(summary: str = "Done.") -> dict:
    return {"action": "finish", "final_summary": summary}


def assessment(confidence: float = 0.99, **overrides: Any) -> dict:
    data = {
        "summary": "Selects rows",
        "risk_level": "low",
        "operation_type": "read",
        "tables_involved": ["customers"],
        "is_destructive": False,
        "complexity_score": 2,
        "confidence_score": confidence,
        "performance_issues": [],
        "optimization_suggestions": [],
        "user_intent_alignment": "Matches the request.",
        "requirements_checklist": {},
    }
    data.update(overrides)
    return data


