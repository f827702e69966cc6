from __future__ import annotations

# querykit/logs.py
import datetime as dt
import json
import logging
import time
import uuid
from sqlite3 import Connection
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

DDL = """
CREATE TABLE IF NOT EXISTS statement_log (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  ts TEXT NOT NULL,
  action TEXT NOT NULL,
  request_id TEXT,
  sql TEXT NOT NULL,
  params_json TEXT,
  result TEXT,
  err_msg TEXT,
  latency_ms INTEGER
);
CREATE INDEX IF NOT EXISTS idx_stmt_log_ts ON statement_log(ts);
CREATE INDEX IF NOT EXISTS idx_stmt_log_action ON statement_log(action);
"""

LOG_TABLE = "statement_log"
LOG_COLUMNS = [
    "id", "ts", "action", "request_id", "sql", "params_json",
    "result", "err_msg", "latency_ms",
]


def ensure_log_schema(conn: Connection):
    conn.executescript(DDL)


def _params_json(params: List[Any]) -> str:
    # bytes are not JSON serializable; keep a readable marker instead
    safe = [f"<{len(p)} bytes>" if isinstance(p, bytes) else p for p in params]
    return json.dumps(safe, ensure_ascii=False)


class StatementLogContext:
    """Timing and audit record for one executed statement."""

    def __init__(self, action: str, sql: str, params: Optional[List[Any]] = None):
        self.action = action
        self.sql = sql
        self.params = list(params or [])
        self.request_id = str(uuid.uuid4())
        self.start = time.perf_counter()

    @property
    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self.start) * 1000)

    def write(self, conn: Connection, result: str = "OK", err: Optional[str] = None):
        rec = {
            "ts": dt.datetime.now(dt.timezone.utc).isoformat(),
            "action": self.action,
            "request_id": self.request_id,
            "sql": self.sql,
            "params_json": _params_json(self.params),
            "result": result,
            "err_msg": err,
            "latency_ms": self.elapsed_ms,
        }
        conn.execute(
            """INSERT INTO statement_log
            (ts,action,request_id,sql,params_json,result,err_msg,latency_ms)
            VALUES(:ts,:action,:request_id,:sql,:params_json,:result,:err_msg,:latency_ms)""",
            rec,
        )
        logger.debug("%s %s [%s] %dms", self.action, result, self.request_id, rec["latency_ms"])


def search_logs(
    conn: Connection,
    action: Optional[str] = None,
    result: Optional[str] = None,
    page: int = 1,
    size: int = 20,
) -> Tuple[int, List[Dict[str, Any]]]:
    """
    Paginated audit log listing, newest first.

    Returns:
        (total matching rows, rows of the requested page)
    """
    from .builder import QueryBuilder
    from .executor import StatementExecutor

    cond: Dict[str, Any] = {}
    if action:
        cond["action"] = action.upper()
    if result:
        cond["result"] = result.upper()

    qb = (
        QueryBuilder(StatementExecutor(conn))
        .for_table(LOG_TABLE)
        .with_model(LOG_COLUMNS)
        .where(cond)
    )
    total = qb.count().unwrap()
    page = max(page, 1)
    items = (
        qb.order_by({"id": "DESC"})
        .limit({(page - 1) * size: size})
        .select(LOG_COLUMNS)
        .unwrap()
    )
    return total, items
