"""
actions/catalog.py — Action Catalog

Declares the action kinds the Decider may propose and the Executor knows how
to run. Each ActionSpec carries the JSON-schema parameters shown to the
reasoning layer; the catalog renders them into the Decider prompt.

Usage:
    catalog = default_catalog()
    spec = catalog.get("execute_sql")
    prompt_block = catalog.render_for_prompt()
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Optional

from sqlpilot.exceptions import ActionNotFoundError


@dataclass(frozen=True)
class ActionSpec:
    """
    Static description of one action kind.

    Rules:
      - name is snake_case and unique within a catalog.
      - parameters is a JSON Schema object; ``required`` lists the keys the
        Executor refuses to run without.
    """
    name: str
    description: str
    parameters: dict = field(default_factory=lambda: {"type": "object", "properties": {}})

    @property
    def required(self) -> tuple[str, ...]:
        return tuple(self.parameters.get("required", ()))

    def to_llm_schema(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }


class ActionCatalog:
    """Name → ActionSpec. Populated at startup, read-only while runs execute."""

    def __init__(self, specs: Optional[list[ActionSpec]] = None) -> None:
        self._specs: dict[str, ActionSpec] = {}
        for spec in specs or []:
            self.register(spec)

    def register(self, spec: ActionSpec) -> None:
        """Register an action kind. Raises ValueError on duplicate name."""
        if spec.name in self._specs:
            raise ValueError(f"Action '{spec.name}' is already registered.")
        self._specs[spec.name] = spec

    def get(self, name: str) -> ActionSpec:
        if name not in self._specs:
            raise ActionNotFoundError(
                f"Action '{name}' is not registered. "
                f"Available actions: {sorted(self._specs)}"
            )
        return self._specs[name]

    def list_names(self) -> list[str]:
        return list(self._specs)

    def to_llm_schemas(self) -> list[dict]:
        return [s.to_llm_schema() for s in self._specs.values()]

    def render_for_prompt(self) -> str:
        return json.dumps(self.to_llm_schemas(), indent=2)

    def __len__(self) -> int:
        return len(self._specs)

    def __contains__(self, name: object) -> bool:
        return name in self._specs

    def __repr__(self) -> str:
        return f"<ActionCatalog actions={sorted(self._specs)}>"


# ─────────────────────────────────────────────────────────────────────────────
# Built-in actions
# ─────────────────────────────────────────────────────────────────────────────

EXECUTE_SQL = ActionSpec(
    name="execute_sql",
    description=(
        "Execute a single SQL statement against the database and return the "
        "resulting rows. Use named bind parameters (:name) for literal values "
        "when convenient."
    ),
    parameters={
        "type": "object",
        "properties": {
            "query": {"type": "string", "description": "The SQL statement to run."},
            "params": {
                "type": "object",
                "description": "Optional named bind parameter values.",
            },
        },
        "required": ["query"],
    },
)

GET_SCHEMA = ActionSpec(
    name="get_schema",
    description="Return every table in the database with its column names.",
)

LIST_TABLES = ActionSpec(
    name="list_tables",
    description="Return the names of all tables in the database.",
)

DESCRIBE_TABLE = ActionSpec(
    name="describe_table",
    description="Return the column names of a single table.",
    parameters={
        "type": "object",
        "properties": {
            "table": {"type": "string", "description": "Table name."},
        },
        "required": ["table"],
    },
)


def default_catalog() -> ActionCatalog:
    return ActionCatalog([EXECUTE_SQL, GET_SCHEMA, LIST_TABLES, DESCRIBE_TABLE])
