import os
import sys
import sqlite3
import pytest
from pathlib import Path
from unittest.mock import MagicMock

# Ensure project root on sys.path
_THIS_DIR = Path(__file__).resolve().parent
_PROJECT_ROOT = _THIS_DIR.parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

SCHEMA_PATH = _THIS_DIR / "schema.sql"


@pytest.fixture(scope="session")
def tmp_db_path(tmp_path_factory):
    path = tmp_path_factory.mktemp("db") / "querykit_test.db"
    # Point querykit to this temp DB
    os.environ["QUERYKIT_DB_PATH"] = str(path)
    # Initialize schema
    schema = SCHEMA_PATH.read_text(encoding="utf-8")
    conn = sqlite3.connect(str(path))
    try:
        conn.executescript(schema)
        conn.commit()
    finally:
        conn.close()
    return str(path)


@pytest.fixture()
def conn(tmp_db_path):
    from querykit.db import get_conn
    with get_conn(tmp_db_path) as c:
        yield c


@pytest.fixture()
def executor(conn):
    from querykit.executor import StatementExecutor
    return StatementExecutor(conn)


@pytest.fixture()
def qb(executor):
    from querykit.builder import QueryBuilder
    return QueryBuilder(executor)


@pytest.fixture()
def dry_qb():
    """Builder over an executor mock, for asserting that no SQL is issued."""
    from querykit.builder import QueryBuilder
    from querykit.executor import StatementExecutor
    return QueryBuilder(MagicMock(spec=StatementExecutor))


@pytest.fixture(autouse=True)
def _clean_db(tmp_db_path):
    # Clean tables before each test for isolation
    # Safety: ensure we only ever wipe the temp DB, never a real one
    assert os.environ.get("QUERYKIT_DB_PATH") == tmp_db_path, "Refusing to clean non-temp DB"
    tables = ["users", "item", "blob_store", "statement_log"]
    conn = sqlite3.connect(tmp_db_path)
    try:
        for t in tables:
            try:
                conn.execute(f"DELETE FROM {t}")
            except sqlite3.OperationalError:
                pass
        conn.commit()
    finally:
        conn.close()
    yield
