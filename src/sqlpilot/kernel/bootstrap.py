"""
kernel/bootstrap.py — AgentKernel

Single assembly point that wires every SQLPilot sub-system into a
ready-to-use kernel object. The CLI and tests obtain an Orchestrator by
calling AgentKernel.build(settings) rather than importing the individual
sub-packages.

  * No business logic here, pure wiring.
  * AgentKernel.build() is the only place that reads from Settings besides
    the from_settings() factories it calls.
  * Fail loudly at startup: a missing API key or a bad database URL raises.

Usage::

    from sqlpilot.kernel.bootstrap import AgentKernel
    from sqlpilot.config.settings import load_settings

    settings = load_settings()
    kernel   = await AgentKernel.build(settings)
    summary  = await kernel.orchestrator.run("How many customers are there?")
    await kernel.shutdown()
"""

from __future__ import annotations

from typing import Optional

from sqlpilot.agent.events import EventCallback
from sqlpilot.agent.orchestrator import Orchestrator
from sqlpilot.brain.reasoning import ReasoningPort
from sqlpilot.database.port import DatabasePort
from sqlpilot.observability.logger import get_logger

log = get_logger(__name__)


class AgentKernel:
    """
    Fully assembled SQLPilot kernel. Holds the shared ports and the
    Orchestrator. Do not instantiate directly, use AgentKernel.build().
    """

    def __init__(
        self,
        reasoning: ReasoningPort,
        database: DatabasePort,
        orchestrator: Orchestrator,
    ) -> None:
        self.reasoning    = reasoning
        self.database     = database
        self.orchestrator = orchestrator

    @classmethod
    async def build(
        cls,
        settings,
        *,
        reasoning: Optional[ReasoningPort] = None,
        database: Optional[DatabasePort] = None,
        on_event: Optional[EventCallback] = None,
    ) -> "AgentKernel":
        """
        Assemble the kernel from a Settings instance. ``reasoning`` and
        ``database`` override the ports built from settings (tests use this).
        """
        log.info("kernel.build.start")

        # ── Reasoning Port ───────────────────────────────────────────────────
        if reasoning is None:
            from sqlpilot.brain import LLMClientFactory, LLMReasoningPort
            client = LLMClientFactory.from_settings(settings)
            reasoning = LLMReasoningPort(
                client,
                model=settings.llm.default_model,
                temperature=settings.llm.temperature,
                max_tokens=settings.llm.max_tokens,
                timeout_seconds=settings.llm.timeout_seconds,
            )
        log.info(
            "kernel.reasoning_ready",
            provider=settings.llm.default_provider,
            model=settings.llm.default_model,
        )

        # ── Database Port ────────────────────────────────────────────────────
        if database is None:
            from sqlpilot.database.sql_client import SQLAlchemyDatabase
            database = SQLAlchemyDatabase.from_settings(settings)
        log.info("kernel.database_ready", database=repr(database))

        # ── Orchestrator ─────────────────────────────────────────────────────
        orchestrator = Orchestrator.from_settings(
            settings,
            reasoning=reasoning,
            database=database,
            on_event=on_event,
        )
        log.info("kernel.build.complete", max_steps=settings.agent.max_steps)
        return cls(reasoning=reasoning, database=database, orchestrator=orchestrator)

    async def shutdown(self) -> None:
        """Release the database pool if the port owns one."""
        log.info("kernel.shutdown.start")
        dispose = getattr(self.database, "dispose", None)
        if dispose is not None:
            await dispose()
        log.info("kernel.shutdown.complete")
