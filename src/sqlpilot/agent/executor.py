"""
agent/executor.py — Step Executor

Runs approved Steps against the Database Port and records the outcome on
the Step. Never raises for execution faults: a missing parameter, an
unknown action kind, a driver error or an ``error`` field in the result all
produce a failed Step carrying the raw error text, which the Decider reads
on its next turn.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable

from sqlalchemy.exc import SQLAlchemyError

from sqlpilot.agent.state import NO_UPDATE, RunUpdate
from sqlpilot.agent.types import Step, StepStatus
from sqlpilot.database.port import DatabasePort
from sqlpilot.exceptions import DatabaseError
from sqlpilot.observability.logger import get_logger

log = get_logger(__name__)

_Handler = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]

# Driver and I/O faults recorded on the step rather than propagated.
_EXECUTION_ERRORS = (DatabaseError, SQLAlchemyError, OSError, ValueError, TypeError)


class _MissingParameter(ValueError):
    pass


def _require(params: dict[str, Any], key: str, action: str) -> Any:
    value = params.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise _MissingParameter(f"Missing '{key}' parameter for {action}")
    return value


class Executor:
    def __init__(self, database: DatabasePort):
        self._db = database
        self._handlers: dict[str, _Handler] = {
            "execute_sql": self._execute_sql,
            "get_schema": self._get_schema,
            "list_tables": self._list_tables,
            "describe_table": self._describe_table,
        }

    async def execute(self, step: Step) -> RunUpdate:
        if step.status is not StepStatus.APPROVED:
            log.warning("executor.skipped_unapproved", step_id=step.id, status=step.status.value)
            return NO_UPDATE

        handler = self._handlers.get(step.action)
        if handler is None:
            result: dict[str, Any] = {"success": False, "error": f"Unknown tool {step.action}"}
        else:
            try:
                result = await handler(step.parameters)
            except _EXECUTION_ERRORS as e:
                result = {"success": False, "error": str(e)}

        status = StepStatus.FAILED if result.get("error") else StepStatus.COMPLETED
        finished = step.advance(status, result=result)

        log_fn = log.warning if status is StepStatus.FAILED else log.info
        log_fn(
            "executor.step_finished",
            step_id=step.id,
            action=step.action,
            status=status.value,
            error=result.get("error"),
            row_count=result.get("row_count"),
        )
        return RunUpdate(current_step=None, append_completed=(finished,))

    # ── Action handlers ───────────────────────────────────────────────────────

    async def _execute_sql(self, params: dict[str, Any]) -> dict[str, Any]:
        query = _require(params, "query", "execute_sql")
        bind = params.get("params")
        if bind is not None and not isinstance(bind, dict):
            raise _MissingParameter("'params' for execute_sql must be an object of named values")
        return (await self._db.execute(str(query), bind)).to_dict()

    async def _get_schema(self, params: dict[str, Any]) -> dict[str, Any]:
        return {"success": True, "schema": await self._db.get_schema()}

    async def _list_tables(self, params: dict[str, Any]) -> dict[str, Any]:
        schema = await self._db.get_schema()
        return {"success": True, "tables": sorted(schema)}

    async def _describe_table(self, params: dict[str, Any]) -> dict[str, Any]:
        table = str(_require(params, "table", "describe_table"))
        schema = await self._db.get_schema()
        # case-insensitive match; identifiers are often folded by the model
        match = next((t for t in schema if t.lower() == table.lower()), None)
        if match is None:
            return {"success": False, "error": f"Table '{table}' does not exist. Known tables: {sorted(schema)}"}
        return {"success": True, "table": match, "columns": schema[match]}
