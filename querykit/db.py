from __future__ import annotations

# querykit/db.py
import logging
import os
import sqlite3
from contextlib import contextmanager
from typing import Iterator, Optional

import yaml

from .builder import QueryBuilder
from .errors import ConfigurationError, QueryExecutionError
from .executor import StatementExecutor
from .logs import ensure_log_schema

logger = logging.getLogger(__name__)

# DB path resolution order:
# 1) explicit argument
# 2) env QUERYKIT_DB_PATH
# 3) config.yaml test_db_path (when running under tests)
# 4) config.yaml db_path
# 5) ./querykit.db
DEFAULT_CONFIG_PATH = "config.yaml"
DEFAULT_DB_PATH = "querykit.db"
ENV_DB_PATH = "QUERYKIT_DB_PATH"


def read_config(path: Optional[str] = None) -> dict:
    cfg_path = path or DEFAULT_CONFIG_PATH
    if not os.path.exists(cfg_path):
        return {}
    try:
        with open(cfg_path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning("ignoring unreadable config %s: %s", cfg_path, e)
        return {}
    if not isinstance(cfg, dict):
        return {}
    out = {}
    for k in ("db_path", "test_db_path", "schema_path"):
        v = cfg.get(k)
        if isinstance(v, str) and v.strip():
            out[k] = v.strip()
    if isinstance(cfg.get("log_statements"), bool):
        out["log_statements"] = cfg["log_statements"]
    return out


def get_db_path(explicit: Optional[str] = None, config_path: Optional[str] = None) -> str:
    cfg = read_config(config_path)
    is_test = (os.environ.get("APP_ENV") == "test") or (os.environ.get("PYTEST_CURRENT_TEST") is not None)

    if explicit:
        path = explicit
    elif os.environ.get(ENV_DB_PATH):
        path = os.environ[ENV_DB_PATH]
    elif is_test and cfg.get("test_db_path"):
        path = cfg["test_db_path"]
    elif cfg.get("db_path"):
        path = cfg["db_path"]
    else:
        path = DEFAULT_DB_PATH

    if path != ":memory:":
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    return path


def _connect(path: str) -> sqlite3.Connection:
    conn = sqlite3.connect(
        path,
        check_same_thread=False,
        isolation_level=None,
    )
    conn.execute("PRAGMA foreign_keys = ON;")
    conn.row_factory = sqlite3.Row
    return conn


@contextmanager
def get_conn(db_path: Optional[str] = None) -> Iterator[sqlite3.Connection]:
    """
    Autocommit SQLite connection with foreign keys on and sqlite3.Row rows.
    Uses `db_path` if given, otherwise get_db_path().
    """
    conn = _connect(db_path or get_db_path())
    try:
        yield conn
    finally:
        conn.close()


def ensure_writable(path: str):
    """Raise ConfigurationError if the database file (or its directory, for a new file) is read-only."""
    if path == ":memory:":
        return
    target = path if os.path.exists(path) else (os.path.dirname(path) or ".")
    if not os.access(target, os.W_OK):
        raise ConfigurationError(f"Permission denied: '{target}' is not writable")


def init_schema(conn: sqlite3.Connection, schema_path: str):
    try:
        with open(schema_path, "r", encoding="utf-8") as f:
            script = f.read()
    except OSError as e:
        raise ConfigurationError(f"Cannot read schema file '{schema_path}': {e}") from e
    try:
        conn.executescript(script)
    except sqlite3.Error as e:
        raise QueryExecutionError(f"Schema script '{schema_path}' failed: {e}", script) from e
    logger.info("schema loaded from %s", schema_path)


class Database:
    """
    An open SQLite database plus the executor builders run against.

        with Database("app.db") as db:
            rows = db.table("users").where({"id": 1}).flatten().select(["id", "name"]).unwrap()
    """

    def __init__(
        self,
        path: Optional[str] = None,
        schema_path: Optional[str] = None,
        log_statements: Optional[bool] = None,
        config_path: Optional[str] = None,
    ):
        cfg = read_config(config_path)
        self.path = get_db_path(path, config_path)
        schema_path = schema_path or cfg.get("schema_path")
        if log_statements is None:
            log_statements = cfg.get("log_statements", False)

        ensure_writable(self.path)
        is_new = self.path == ":memory:" or not os.path.exists(self.path)
        self.conn = _connect(self.path)
        try:
            if schema_path and is_new:
                init_schema(self.conn, schema_path)
            if log_statements:
                ensure_log_schema(self.conn)
        except Exception:
            self.conn.close()
            raise
        self.executor = StatementExecutor(self.conn, audit=bool(log_statements))

    def builder(self) -> QueryBuilder:
        return QueryBuilder(self.executor)

    def table(self, name: str) -> QueryBuilder:
        return self.builder().for_table(name)

    def close(self):
        self.conn.close()

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
