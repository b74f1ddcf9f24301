"""
interfaces/cli.py — SQLPilot CLI Interface

One-shot terminal front end: answers a single question and exits.
Uses rich for terminal rendering.

Features:
  - Live step progress (proposed / assessed / approved / denied / executed)
  - Final summary panel coloured by run status
  - Result rows rendered as a table, truncated for the terminal

Usage:
    sqlpilot "How many customers are in Germany?"
    sqlpilot "Delete inactive users" --role admin
"""

from __future__ import annotations

from typing import Optional

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from sqlpilot.agent.events import EventKind, StepEvent
from sqlpilot.agent.types import RunStatus, RunSummary
from sqlpilot.observability.logger import get_logger

log = get_logger(__name__)

_MAX_ROWS = 50
_MAX_CELL = 60

_STATUS_STYLE = {
    RunStatus.SUCCESS: ("green", "✓ Success"),
    RunStatus.PARTIAL: ("yellow", "◐ Partial"),
    RunStatus.FAILED:  ("red", "✗ Failed"),
    RunStatus.BLOCKED: ("red", "⛔ Blocked"),
}

_EVENT_STYLE = {
    EventKind.PROPOSED: "dim cyan",
    EventKind.ASSESSED: "dim",
    EventKind.APPROVED: "green",
    EventKind.DENIED:   "yellow",
    EventKind.EXECUTED: "cyan",
}


def _cell(value) -> str:
    text = "NULL" if value is None else str(value)
    text = text if len(text) <= _MAX_CELL else text[: _MAX_CELL - 1] + "…"
    return escape(text)


class ConsoleRenderer:
    """Renders step events and the final RunSummary to a rich Console."""

    def __init__(self, console: Optional[Console] = None, verbose: bool = False):
        self.console = console or Console()
        self._verbose = verbose

    # ── Progress ──────────────────────────────────────────────────────────────

    def on_event(self, event: StepEvent) -> None:
        """EventCallback for the orchestrator."""
        if event.kind is EventKind.FINISHED:
            return
        if event.kind is EventKind.ASSESSED and not self._verbose:
            return
        style = _EVENT_STYLE.get(event.kind, "white")
        self.console.print(f"  [{style}]{escape(event.text)}[/]", highlight=False)

        if self._verbose and event.kind is EventKind.PROPOSED and event.step is not None:
            query = event.step.parameters.get("query")
            if query:
                self.console.print(f"    [dim]{escape(str(query))}[/]", highlight=False)

    # ── Summary ───────────────────────────────────────────────────────────────

    def render_summary(self, summary: RunSummary) -> None:
        colour, label = _STATUS_STYLE.get(summary.status, ("white", summary.status.value))
        self.console.print()
        self.console.print(
            Panel(
                escape(summary.summary_text.strip()) or "(no summary)",
                title=f"[bold {colour}]{label}[/]",
                subtitle=f"[dim]{summary.step_count} step(s)[/]",
                border_style=colour,
                padding=(0, 2),
            )
        )

        if summary.data:
            self.console.print(self._build_table(summary))

        if self._verbose and summary.actions_taken:
            self.console.print("[dim]Actions taken:[/]")
            for i, action in enumerate(summary.actions_taken, 1):
                self.console.print(f"  [dim]{i}. {escape(action)}[/]", highlight=False)

    def _build_table(self, summary: RunSummary) -> Table:
        columns = summary.columns or list(summary.data[0].keys())
        shown = summary.data[:_MAX_ROWS]
        caption = None
        if summary.row_count > len(shown):
            caption = f"showing {len(shown)} of {summary.row_count} rows"

        table = Table(box=box.ROUNDED, border_style="dim", caption=caption)
        for col in columns:
            table.add_column(escape(str(col)), style="cyan" if col == columns[0] else None)
        for row in shown:
            table.add_row(*(_cell(row.get(col)) for col in columns))
        return table


# ── Public entry point ────────────────────────────────────────────────────────


async def run_question(
    settings,
    question: str,
    roles: Optional[list[str]] = None,
    max_steps: Optional[int] = None,
    user_id: str = "anonymous",
    verbose: bool = False,
    console: Optional[Console] = None,
) -> int:
    """
    Answer one question end to end and return the process exit code:
    0 for success or partial runs, 1 otherwise.
    """
    from sqlpilot.kernel.bootstrap import AgentKernel

    renderer = ConsoleRenderer(console=console, verbose=verbose)
    renderer.console.print(f"[bold cyan]SQLPilot[/] [dim]›[/] {escape(question)}", highlight=False)

    kernel = await AgentKernel.build(settings, on_event=renderer.on_event)
    try:
        summary = await kernel.orchestrator.run(
            question,
            roles=roles,
            max_steps=max_steps,
            user_id=user_id,
        )
    finally:
        await kernel.shutdown()

    renderer.render_summary(summary)
    log.info("cli.run_complete", status=summary.status.value, step_count=summary.step_count)
    return 0 if summary.succeeded else 1
