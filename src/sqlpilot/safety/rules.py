"""
safety/rules.py — Policy Gate Rule Tables

Explicit, reviewable tables consumed by the Policy Gate and the Scope
Reflector:

    CONFIDENCE_EXEMPT_ACTIONS  auto-approved action kinds (no confidence check,
                               no authorization check)
    METADATA_ACTIONS           action kinds the reflector scores without
                               calling the reasoning layer
    DESTRUCTIVE_PATTERNS       verbs that always need the admin role
    WRITE_PATTERNS             verbs a read-only caller may never run

scan_statement() is a keyword backstop over the literal statement text. It
catches what an over-optimistic assessment misses; it is not a SQL parser
and not a security boundary on its own.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any


ADMIN_ROLE = "admin"
READONLY_ROLE = "readonly"

# Operation types a read-only caller may run.
READONLY_OPERATION_TYPES: frozenset[str] = frozenset({"read", "schema"})


# ─────────────────────────────────────────────────────────────────────────────
# Action kind tables
# ─────────────────────────────────────────────────────────────────────────────

# Must stay within the default catalog; an exempt kind skips every gate check.
CONFIDENCE_EXEMPT_ACTIONS: frozenset[str] = frozenset({
    "get_schema",
    "list_tables",
    "describe_table",
})

METADATA_ACTIONS: frozenset[str] = CONFIDENCE_EXEMPT_ACTIONS


# ─────────────────────────────────────────────────────────────────────────────
# Statement keyword tables
# ─────────────────────────────────────────────────────────────────────────────

DESTRUCTIVE_PATTERNS: dict[str, re.Pattern] = {
    verb: re.compile(rf"\b{verb}\b", re.IGNORECASE)
    for verb in ("DROP", "DELETE", "TRUNCATE")
}

# REPLACE() is also a string function, so REPLACE and MERGE only count when
# they start a statement.
WRITE_PATTERNS: dict[str, re.Pattern] = {
    **{
        verb: re.compile(rf"\b{verb}\b", re.IGNORECASE)
        for verb in ("INSERT", "UPDATE", "CREATE", "ALTER", "GRANT", "REVOKE")
    },
    **{
        verb: re.compile(rf"(?:\A|;)\s*{verb}\b", re.IGNORECASE)
        for verb in ("REPLACE", "MERGE")
    },
}

# Literals and comments, matched left to right so a quote inside a comment
# (or a comment marker inside a literal) is handled correctly.
_NON_CODE = re.compile(
    r"'(?:[^']|'')*'"
    r'|"(?:[^"]|"")*"'
    r"|--[^\n]*"
    r"|/\*.*?\*/",
    re.DOTALL,
)


@dataclass(frozen=True)
class StatementScan:
    destructive: tuple[str, ...] = ()
    writes: tuple[str, ...] = ()

    @property
    def is_clean(self) -> bool:
        return not self.destructive and not self.writes


def statement_text(parameters: dict[str, Any]) -> str:
    """The literal statement an action would send to the database, if any."""
    query = parameters.get("query")
    return query if isinstance(query, str) else ""


def scan_statement(sql: str) -> StatementScan:
    """Return the destructive and write verbs in ``sql``, ignoring literals and comments."""
    if not sql:
        return StatementScan()
    body = _NON_CODE.sub(" ", sql)
    return StatementScan(
        destructive=tuple(v for v, p in DESTRUCTIVE_PATTERNS.items() if p.search(body)),
        writes=tuple(v for v, p in WRITE_PATTERNS.items() if p.search(body)),
    )
