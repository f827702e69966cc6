"""querykit: fluent, parameterized SELECT/UPDATE/INSERT over SQLite.

Builders render SQL with `?` placeholders and hand it to a StatementExecutor;
values are always bound, only table/column names end up in the SQL text.
"""
from __future__ import annotations

from .builder import QueryBuilder, QueryConfig
from .db import Database, get_conn, get_db_path
from .errors import ConfigurationError, QueryExecutionError, QueryKitError, Result
from .executor import StatementExecutor

__all__ = [
    "ConfigurationError",
    "Database",
    "QueryBuilder",
    "QueryConfig",
    "QueryExecutionError",
    "QueryKitError",
    "Result",
    "StatementExecutor",
    "get_conn",
    "get_db_path",
]

__version__ = "0.1.0"
