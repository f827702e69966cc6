#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
querykit command line (SQLite)

Commands:
  init                Create the database and load a schema script
  select              Run a filtered SELECT and print rows (optionally export CSV)
  insert              Insert one positional row
  update              Update rows matching the filters
  logs                List the statement audit log

Notes:
- --where takes a JSON object and may be repeated; each one is an OR-ed group.
- Values on the command line are parsed as JSON when possible ("1" -> 1, "null" -> None),
  otherwise kept as text.
"""

import argparse
import json
import logging
import os
import sys

import pandas as pd

from querykit import ConfigurationError, Database, QueryExecutionError
from querykit.db import get_conn, get_db_path, init_schema
from querykit.logs import search_logs

logger = logging.getLogger("sqlq")


# ---------------- helpers ----------------

def parse_value(raw: str):
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def parse_json_object(raw: str, what: str) -> dict:
    try:
        obj = json.loads(raw)
    except ValueError as e:
        raise ConfigurationError(f"{what} must be a JSON object: {e}") from e
    if not isinstance(obj, dict):
        raise ConfigurationError(f"{what} must be a JSON object, got {type(obj).__name__}")
    return obj


def open_db(args) -> Database:
    return Database(args.db, log_statements=args.log_statements or None, config_path=args.config)


def print_frame(df: pd.DataFrame):
    pd.set_option("display.max_rows", 200)
    pd.set_option("display.width", 160)
    if df.empty:
        print("(empty)")
    else:
        print(df)


# ---------------- Commands ----------------

def cmd_init(args):
    path = get_db_path(args.db, args.config)
    with get_conn(path) as conn:
        init_schema(conn, args.schema)
    print("DB initialized:", path)


def cmd_select(args):
    if args.offset is not None and args.limit is None:
        raise ConfigurationError("--offset requires --limit")
    with open_db(args) as db:
        qb = db.table(args.table).with_model(args.model)
        qb = qb.where(*[parse_json_object(w, "--where") for w in args.where or []])
        if args.order:
            qb = qb.order_by(parse_json_object(args.order, "--order"))
        if args.limit is not None:
            qb = qb.limit({args.offset: args.limit} if args.offset is not None else args.limit)
        qb = qb.flatten(args.flatten)

        res = qb.select(args.columns).unwrap()
        if isinstance(res, bool):
            print("true" if res else "false")
            return
        df = pd.DataFrame([res] if isinstance(res, dict) else res)
        print_frame(df)
        if args.csv:
            os.makedirs(os.path.dirname(args.csv) or ".", exist_ok=True)
            df.to_csv(args.csv, index=False, encoding="utf-8-sig")
            print("\nCSV exported to", args.csv)


def cmd_insert(args):
    with open_db(args) as db:
        ok = db.table(args.table).with_model(args.model).insert([parse_value(v) for v in args.values]).unwrap()
    print("inserted" if ok else "nothing inserted")


def cmd_update(args):
    with open_db(args) as db:
        qb = db.table(args.table).with_model(args.model)
        qb = qb.where(*[parse_json_object(w, "--where") for w in args.where or []])
        ok = qb.update(parse_json_object(args.set, "--set")).unwrap()
    print("updated" if ok else "no rows matched")


def cmd_logs(args):
    path = get_db_path(args.db, args.config)
    with get_conn(path) as conn:
        total, items = search_logs(conn, args.action, args.result, args.page, args.size)
    print(f"{total} statement(s)")
    print_frame(pd.DataFrame(items))


# ---------------- Entry ----------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Fluent SQLite queries from the command line")
    parser.add_argument("--config", default="config.yaml")
    parser.add_argument("--db", default=None, help="database file (default: from env/config)")
    parser.add_argument("--log-statements", action="store_true", help="record statements in statement_log")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers()

    p_init = sub.add_parser("init", help="create db and load a schema script")
    p_init.add_argument("--schema", required=True)
    p_init.set_defaults(func=cmd_init)

    p_sel = sub.add_parser("select", help="select rows")
    p_sel.add_argument("table")
    p_sel.add_argument("--columns", required=False, help="a,b,c (omit for an existence check)")
    p_sel.add_argument("--model", required=False, help="whitelist of columns a,b,c")
    p_sel.add_argument("--where", action="append", help='JSON object, e.g. {"id": 1}')
    p_sel.add_argument("--order", required=False, help='JSON object, e.g. {"id": "DESC"}')
    p_sel.add_argument("--limit", type=int, required=False)
    p_sel.add_argument("--offset", type=int, default=None)
    p_sel.add_argument("--flatten", action="store_true")
    p_sel.add_argument("--csv", required=False, help="export rows to this CSV file")
    p_sel.set_defaults(func=cmd_select)

    p_ins = sub.add_parser("insert", help="insert one row")
    p_ins.add_argument("table")
    p_ins.add_argument("values", nargs="+")
    p_ins.add_argument("--model", required=False)
    p_ins.set_defaults(func=cmd_insert)

    p_upd = sub.add_parser("update", help="update matching rows")
    p_upd.add_argument("table")
    p_upd.add_argument("--set", required=True, help='JSON object, e.g. {"name": "x"}')
    p_upd.add_argument("--where", action="append")
    p_upd.add_argument("--model", required=False)
    p_upd.set_defaults(func=cmd_update)

    p_logs = sub.add_parser("logs", help="list the statement audit log")
    p_logs.add_argument("--action", required=False)
    p_logs.add_argument("--result", required=False, choices=["OK", "ERROR"])
    p_logs.add_argument("--page", type=int, default=1)
    p_logs.add_argument("--size", type=int, default=20)
    p_logs.set_defaults(func=cmd_logs)

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not hasattr(args, "func"):
        parser.print_help()
        return 0
    try:
        args.func(args)
    except (ConfigurationError, QueryExecutionError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
