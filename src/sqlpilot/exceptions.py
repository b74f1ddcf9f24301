"""
exceptions.py — SQLPilot Unified Error Hierarchy

All SQLPilot-specific exceptions live here. Every layer of the stack
raises typed subclasses of SqlPilotError — never bare Exception.

Import from here, not from individual modules:
    from sqlpilot.exceptions import StepTransitionError, ReasoningParseError

Hierarchy:
    SqlPilotError
    ├── AgentError
    │   ├── StepTransitionError
    │   └── StateMergeError
    ├── ReasoningError
    │   └── ReasoningParseError
    ├── DatabaseError
    │   └── DatabaseNotReadyError
    └── CatalogError
        └── ActionNotFoundError

LLM provider errors (LLMError and subclasses) live in brain/llm_client.py
and are re-exported here for convenience.
"""

from __future__ import annotations


# ─────────────────────────────────────────────────────────────────────────────
# Root
# ─────────────────────────────────────────────────────────────────────────────

class SqlPilotError(Exception):
    """Base class for all SQLPilot exceptions."""


# ─────────────────────────────────────────────────────────────────────────────
# Agent layer: orchestrator bookkeeping faults
# ─────────────────────────────────────────────────────────────────────────────

class AgentError(SqlPilotError):
    """Base for agent orchestration errors."""


class StepTransitionError(AgentError):
    """A Step was asked to move backwards (or sideways) through its lifecycle."""

    def __init__(self, step_id: str, current: str, requested: str) -> None:
        self.step_id = step_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Step {step_id} cannot move from '{current}' to '{requested}'."
        )


class StateMergeError(AgentError):
    """A RunUpdate could not be merged into the RunState."""


# ─────────────────────────────────────────────────────────────────────────────
# Reasoning layer
# ─────────────────────────────────────────────────────────────────────────────

class ReasoningError(SqlPilotError):
    """The reasoning collaborator failed to produce a usable response."""


class ReasoningParseError(ReasoningError):
    """The reasoning response did not contain a JSON object."""

    def __init__(self, message: str, raw: str = "") -> None:
        self.raw = raw
        super().__init__(message)


# ─────────────────────────────────────────────────────────────────────────────
# Database layer
# ─────────────────────────────────────────────────────────────────────────────

class DatabaseError(SqlPilotError):
    """Base for database port errors."""


class DatabaseNotReadyError(DatabaseError):
    """The database engine was used after dispose()."""


# ─────────────────────────────────────────────────────────────────────────────
# Action catalog
# ─────────────────────────────────────────────────────────────────────────────

class CatalogError(SqlPilotError):
    """Base for action catalog errors."""


class ActionNotFoundError(CatalogError):
    """Requested action kind is not registered in the ActionCatalog."""


# ─────────────────────────────────────────────────────────────────────────────
# LLM layer  (re-exported from brain/llm_client.py)
# ─────────────────────────────────────────────────────────────────────────────

from sqlpilot.brain.llm_client import (  # noqa: E402,F401
    LLMConnectionError,
    LLMContextError,
    LLMError,
    LLMInvalidRequestError,
    LLMRateLimitError,
)


__all__ = [
    "SqlPilotError",
    # Agent
    "AgentError",
    "StepTransitionError",
    "StateMergeError",
    # Reasoning
    "ReasoningError",
    "ReasoningParseError",
    # Database
    "DatabaseError",
    "DatabaseNotReadyError",
    # Catalog
    "CatalogError",
    "ActionNotFoundError",
    # LLM (re-exported)
    "LLMError",
    "LLMConnectionError",
    "LLMRateLimitError",
    "LLMContextError",
    "LLMInvalidRequestError",
]
