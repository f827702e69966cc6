import json
from pathlib import Path

import pandas as pd
import pytest

import sqlq

SCHEMA_PATH = Path(__file__).resolve().parent / "schema.sql"


@pytest.fixture()
def db_file(tmp_path):
    path = str(tmp_path / "cli.db")
    assert sqlq.main(["--db", path, "init", "--schema", str(SCHEMA_PATH)]) == 0
    return path


def test_init_insert_select(db_file, capsys):
    assert sqlq.main(["--db", db_file, "insert", "users", "1", "ann", "null", "30"]) == 0
    assert sqlq.main(["--db", db_file, "insert", "users", "2", "bob", "null", "25"]) == 0
    capsys.readouterr()

    assert sqlq.main([
        "--db", db_file, "select", "users", "--columns", "id,name",
        "--where", json.dumps({"age": 30}), "--where", json.dumps({"name": "bob"}),
        "--order", json.dumps({"id": "DESC"}),
    ]) == 0
    out = capsys.readouterr().out
    assert "ann" in out and "bob" in out
    assert out.index("bob") < out.index("ann")


def test_select_existence(db_file, capsys):
    assert sqlq.main(["--db", db_file, "select", "item"]) == 0
    assert capsys.readouterr().out.strip() == "false"
    sqlq.main(["--db", db_file, "insert", "item", "7"])
    capsys.readouterr()
    assert sqlq.main(["--db", db_file, "select", "item", "--where", '{"x": 7}']) == 0
    assert capsys.readouterr().out.strip() == "true"


def test_select_csv_export(db_file, tmp_path, capsys):
    sqlq.main(["--db", db_file, "insert", "users", "1", "ann", "a@x", "30"])
    out_csv = tmp_path / "exports" / "users.csv"
    assert sqlq.main([
        "--db", db_file, "select", "users", "--columns", "id,email",
        "--limit", "1", "--flatten", "--csv", str(out_csv),
    ]) == 0
    df = pd.read_csv(out_csv, encoding="utf-8-sig")
    assert list(df.columns) == ["id", "email"]
    assert df.iloc[0]["email"] == "a@x"


def test_update_and_logs(db_file, capsys):
    sqlq.main(["--db", db_file, "--log-statements", "insert", "item", "1"])
    assert sqlq.main([
        "--db", db_file, "--log-statements", "update", "item", "--set", '{"x": 2}', "--where", '{"x": 1}',
    ]) == 0
    assert "updated" in capsys.readouterr().out

    assert sqlq.main(["--db", db_file, "update", "item", "--set", '{"x": 3}', "--where", '{"x": 99}']) == 0
    assert "no rows matched" in capsys.readouterr().out

    assert sqlq.main(["--db", db_file, "logs", "--action", "update"]) == 0
    out = capsys.readouterr().out
    assert out.startswith("1 statement(s)")


def test_errors_exit_nonzero(db_file, capsys):
    assert sqlq.main(["--db", db_file, "insert", "users", "1", "ann", "--model", "id"]) == 1
    assert "does not match columns in model" in capsys.readouterr().err

    assert sqlq.main(["--db", db_file, "select", "missing", "--columns", "a"]) == 1
    assert "no such table" in capsys.readouterr().err

    assert sqlq.main(["--db", db_file, "update", "item", "--set", "[1]"]) == 1
    assert "--set must be a JSON object" in capsys.readouterr().err


def test_offset_without_limit_is_rejected(db_file, capsys):
    assert sqlq.main(["--db", db_file, "select", "users", "--columns", "id", "--offset", "2"]) == 1
    assert "--offset requires --limit" in capsys.readouterr().err


def test_offset_with_limit(db_file, capsys):
    for i in range(1, 4):
        sqlq.main(["--db", db_file, "insert", "item", str(i)])
    capsys.readouterr()
    assert sqlq.main([
        "--db", db_file, "select", "item", "--columns", "x",
        "--order", '{"x": "ASC"}', "--offset", "0", "--limit", "1", "--flatten",
    ]) == 0
    out = capsys.readouterr().out
    assert "1" in out and "2" not in out and "3" not in out
