"""
Statement executor: the only layer that talks to the sqlite3 connection.

No query semantics live here. It runs a statement with positional values,
turns rows into column-keyed dicts, and answers "did it match anything".
"""
from __future__ import annotations

import logging
import sqlite3
from sqlite3 import Connection, Cursor
from typing import Any, Dict, List, Optional

from .errors import QueryExecutionError
from .logs import StatementLogContext
from .values import SqlValue, normalize_params

logger = logging.getLogger(__name__)


class StatementExecutor:
    """Execute/fetch plumbing over a single sqlite3 connection."""

    def __init__(self, conn: Connection, audit: bool = False):
        self.conn = conn
        self.audit = audit

    def run(self, sql: str, bound_values: Any = None, action: Optional[str] = None) -> Cursor:
        """
        Prepare and execute `sql`, binding values to the `?` placeholders in order.

        A single non-list value is bound as a one-element list.

        Raises:
            QueryExecutionError: the driver rejected or failed the statement
        """
        params = normalize_params(bound_values)
        log = StatementLogContext(action or _verb(sql), sql, params)
        logger.debug("run: %s %s", sql, params)
        try:
            cur = self.conn.execute(sql, params)
        except sqlite3.Error as e:
            logger.warning("statement failed: %s (%s)", sql, e)
            self._audit(log, "ERROR", str(e))
            raise QueryExecutionError(str(e), sql, params) from e
        self._audit(log, "OK")
        return cur

    def _audit(self, log: StatementLogContext, result: str, err: Optional[str] = None):
        # a failed audit write never changes the outcome of the audited statement
        if not self.audit:
            return
        try:
            log.write(self.conn, result, err)
        except sqlite3.Error as e:
            logger.warning("statement_log write failed for %s [%s]: %s", log.action, log.request_id, e)

    def fetch_all(self, cur: Cursor) -> List[Dict[str, SqlValue]]:
        """Consume the cursor; one flat dict per row, duplicate column names: last one wins."""
        if cur.description is None:
            return []
        names = [d[0] for d in cur.description]
        out: List[Dict[str, SqlValue]] = []
        try:
            for row in cur:
                out.append({name: row[i] for i, name in enumerate(names)})
        except sqlite3.Error as e:
            raise QueryExecutionError(str(e)) from e
        return out

    def matched(self, cur: Cursor) -> bool:
        """Row existence for statements with a result shape, affected rows otherwise."""
        if cur.description is not None:
            try:
                return cur.fetchone() is not None
            except sqlite3.Error as e:
                raise QueryExecutionError(str(e)) from e
        return cur.rowcount > 0


def _verb(sql: str) -> str:
    head = sql.lstrip().split(None, 1)
    return head[0].upper() if head else "SQL"
