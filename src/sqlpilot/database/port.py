"""
database/port.py — Database Port

The Executor only needs two capabilities from a database: run a statement
and describe the schema. Both are expressed as a Protocol so tests can
supply an in-memory fake and production can plug in SQLAlchemy.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, runtime_checkable


@dataclass
class QueryResult:
    """Outcome of a single statement. Driver errors are data, not exceptions."""
    success: bool
    data: list[dict[str, Any]] = field(default_factory=list)
    row_count: int = 0
    message: str = ""
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: list[dict[str, Any]], row_count: int, message: str = "") -> "QueryResult":
        return cls(success=True, data=data, row_count=row_count, message=message)

    @classmethod
    def fail(cls, error: str) -> "QueryResult":
        return cls(success=False, error=error)

    def to_dict(self) -> dict[str, Any]:
        if not self.success:
            return {"success": False, "error": self.error}
        return {
            "success": True,
            "data": self.data,
            "row_count": self.row_count,
            "message": self.message,
        }


@runtime_checkable
class DatabasePort(Protocol):
    async def execute(self, sql: str, params: Optional[dict[str, Any]] = None) -> QueryResult:
        ...

    async def get_schema(self) -> dict[str, list[str]]:
        """Table name → ordered column names."""
        ...
