"""
database/sql_client.py — SQLAlchemy async Database Port

One AsyncEngine per database URL, shared by every concurrent run. Statements
go through text(), so the caller's SQL is executed as written with named
bind parameters (``:name``) taken from ``params``.

Driver errors are returned as QueryResult(error=...) so the Executor can
record them on the failed Step and the Decider can self-correct.

Schema introspection uses sqlalchemy.inspect() through run_sync and is
cached until a DDL statement runs or refresh_schema() is called.
"""

from __future__ import annotations

import asyncio
import re
from typing import Any, Optional

from sqlalchemy import inspect, text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from sqlpilot.database.port import QueryResult
from sqlpilot.exceptions import DatabaseNotReadyError
from sqlpilot.observability.logger import get_logger

log = get_logger(__name__)


class SQLAlchemyDatabase:
    """
    Database Port over a SQLAlchemy AsyncEngine.

    SQLite works through aiosqlite (``sqlite+aiosqlite:///path.db``);
    PostgreSQL through any installed async driver (``postgresql+asyncpg://``).
    """

    def __init__(self, url: str, pool_size: int = 5, echo: bool = False):
        self._url = url
        kwargs: dict[str, Any] = {"echo": echo}
        # SQLite pools are single-file; sizing only applies to server databases
        if not url.startswith("sqlite"):
            kwargs["pool_size"] = pool_size
            kwargs["pool_pre_ping"] = True
        self._engine: Optional[AsyncEngine] = create_async_engine(url, **kwargs)
        self._schema_cache: Optional[dict[str, list[str]]] = None
        self._schema_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings) -> "SQLAlchemyDatabase":
        return cls(
            url=settings.effective_database_url,
            pool_size=settings.database.pool_size,
            echo=settings.database.echo,
        )

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise DatabaseNotReadyError("Database engine has been disposed.")
        return self._engine

    # ── Public API ────────────────────────────────────────────────────────────

    async def execute(self, sql: str, params: Optional[dict[str, Any]] = None) -> QueryResult:
        engine = self.engine
        log.debug("db.execute.start", sql=sql[:500], has_params=bool(params))
        try:
            async with engine.begin() as conn:
                result = await conn.execute(text(sql), params or {})
                if result.returns_rows:
                    rows = [dict(row._mapping) for row in result.fetchall()]
                    count = len(rows)
                    message = f"Query returned {count} rows."
                else:
                    rows = []
                    count = max(result.rowcount, 0)
                    message = f"Statement affected {count} rows."
        except SQLAlchemyError as e:
            error = str(getattr(e, "orig", None) or e)
            log.warning("db.execute.failed", error=error, error_type=type(e).__name__)
            return QueryResult.fail(error)

        if _is_schema_change(sql):
            self._schema_cache = None

        log.debug("db.execute.complete", row_count=count)
        return QueryResult.ok(rows, count, message)

    async def get_schema(self) -> dict[str, list[str]]:
        if self._schema_cache is not None:
            return self._schema_cache
        async with self._schema_lock:
            if self._schema_cache is None:
                await self.refresh_schema()
        return self._schema_cache or {}

    async def refresh_schema(self) -> dict[str, list[str]]:
        async with self.engine.connect() as conn:
            schema = await conn.run_sync(_inspect_schema)
        self._schema_cache = schema
        log.info("db.schema_refreshed", tables=sorted(schema))
        return schema

    async def dispose(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            log.info("db.disposed")

    def __repr__(self) -> str:
        return f"<SQLAlchemyDatabase url={self._safe_url()}>"

    def _safe_url(self) -> str:
        if self._engine is not None:
            return self._engine.url.render_as_string(hide_password=True)
        return "<disposed>"


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

_SCHEMA_VERBS = ("create", "alter", "drop", "rename")

_LEADING_COMMENTS = re.compile(r"\A(?:\s+|--[^\n]*|/\*.*?\*/)*", re.DOTALL)


def _is_schema_change(sql: str) -> bool:
    return _LEADING_COMMENTS.sub("", sql).lower().startswith(_SCHEMA_VERBS)


def _inspect_schema(sync_conn: Connection) -> dict[str, list[str]]:
    inspector = inspect(sync_conn)
    return {
        table: [col["name"] for col in inspector.get_columns(table)]
        for table in inspector.get_table_names()
    }
