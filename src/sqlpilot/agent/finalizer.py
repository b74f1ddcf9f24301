"""
agent/finalizer.py — Run Finalizer

Produces the terminal RunSummary when the loop halts without one (policy
block, unexpected exit). A run that already has a summary is left alone,
so finalizing twice is harmless.

tabulate_step() turns the different result shapes the Executor records
into one tabular form for callers:

    rows            [{...}, ...]                  passed through
    schema mapping  {"schema": {table: [cols]}}   → [{"table_name", "columns"}]
    table list      {"tables": [...]}             → [{"table_name"}]
    describe        {"table", "columns": [...]}   → [{"column_name"}]
"""

from __future__ import annotations

from typing import Optional

from sqlpilot.agent.state import NO_UPDATE, RunState, RunUpdate
from sqlpilot.agent.types import RunStatus, RunSummary, Step, StepStatus
from sqlpilot.observability.logger import get_logger

log = get_logger(__name__)


def tabulate_step(step: Optional[Step]) -> tuple[Optional[list[dict]], list[str], int]:
    """Return (rows, columns, row_count) for a completed step's result."""
    if step is None or step.status is not StepStatus.COMPLETED or not step.result:
        return None, [], 0

    result = step.result
    rows: Optional[list[dict]] = None

    if isinstance(result.get("data"), list):
        rows = [r if isinstance(r, dict) else {"value": r} for r in result["data"]]
    elif isinstance(result.get("schema"), dict):
        rows = [
            {"table_name": table, "columns": ", ".join(str(c) for c in cols)}
            for table, cols in result["schema"].items()
        ]
    elif isinstance(result.get("tables"), list):
        rows = [{"table_name": t} for t in result["tables"]]
    elif isinstance(result.get("columns"), list):
        rows = [{"column_name": c} for c in result["columns"]]

    if rows is None:
        return None, [], 0

    columns: list[str] = []
    for row in rows:
        for key in row:
            if key not in columns:
                columns.append(key)
    return rows, columns, len(rows)


class Finalizer:
    def finalize(self, state: RunState) -> RunUpdate:
        if state.summary is not None:
            return NO_UPDATE

        actions = [s.describe() for s in state.completed_steps]
        current = state.current_step

        if current is not None and current.status is StepStatus.DENIED:
            reason = current.policy.reason if current.policy else "Denied"
            log.warning("finalizer.blocked", step_id=current.id, reason=reason)
            return RunUpdate(
                summary=RunSummary(
                    summary_text=f"Blocked: {reason}",
                    status=RunStatus.BLOCKED,
                    actions_taken=actions,
                    step_count=state.step_count,
                ),
            )

        last = state.last_completed
        failed = last is not None and last.status is StepStatus.FAILED
        data, columns, row_count = tabulate_step(last)
        if failed:
            text = f"Run ended after a failed step: {last.error or 'unknown error'}"
        elif last is None:
            text = "Run ended without executing any step."
        else:
            text = "Run ended; showing the last result."

        log.info("finalizer.summary", status="failed" if failed else "success", steps=len(actions))
        return RunUpdate(
            summary=RunSummary(
                summary_text=text,
                status=RunStatus.FAILED if failed else RunStatus.SUCCESS,
                actions_taken=actions,
                data=data,
                columns=columns,
                row_count=row_count,
                step_count=state.step_count,
            ),
        )
