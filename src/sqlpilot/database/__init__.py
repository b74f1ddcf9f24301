"""
database/__init__.py — SQLPilot Database Port
"""

from sqlpilot.database.port import DatabasePort, QueryResult
from sqlpilot.database.sql_client import SQLAlchemyDatabase

__all__ = [
    "DatabasePort",
    "QueryResult",
    "SQLAlchemyDatabase",
]
