"""
Fluent SELECT / UPDATE / INSERT construction on top of StatementExecutor.

A builder is a value: every configuration method returns a new builder that
shares the executor and carries an updated, frozen QueryConfig. Nothing that
was configured for one statement can leak into another one built from the
same starting point.

Terminal operations (select/update/insert/count) return a Result instead of
raising. Configuration mistakes are recorded in the config when they happen
and reported by the next terminal call, which then issues no SQL.
"""
from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict

from .errors import ConfigurationError, QueryExecutionError, Result
from .executor import StatementExecutor
from .values import SqlValue, to_sql_value

logger = logging.getLogger(__name__)

ORDER_DIRECTIONS = ("ASC", "DESC")

Condition = Tuple[str, Any]
Limit = Union[int, Tuple[int, int]]


class QueryConfig(BaseModel):
    """Everything a builder has been told so far. Immutable."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    table: Optional[str] = None
    model: Optional[Tuple[str, ...]] = None
    # groups are OR-ed, conditions inside a group AND-ed
    filters: Tuple[Tuple[Condition, ...], ...] = ()
    order_by: Tuple[Tuple[str, str], ...] = ()
    limit: Optional[Limit] = None
    flatten: bool = False
    error: Optional[ConfigurationError] = None
    # set when with_model() failed; survives reset()
    model_error: Optional[ConfigurationError] = None


class QueryBuilder:
    def __init__(self, executor: StatementExecutor, config: Optional[QueryConfig] = None):
        self.executor = executor
        self._config = config if config is not None else QueryConfig()

    def __repr__(self) -> str:
        return f"QueryBuilder(table={self._config.table!r}, error={self._config.error!r})"

    @property
    def config(self) -> QueryConfig:
        return self._config

    @property
    def error(self) -> Optional[ConfigurationError]:
        return self._config.error

    def _with(self, **changes) -> "QueryBuilder":
        return QueryBuilder(self.executor, self._config.model_copy(update=changes))

    def _fail(self, message: str) -> "QueryBuilder":
        # first error wins, later ones are usually a consequence of it
        if self._config.error is not None:
            return self
        logger.debug("configuration error: %s", message)
        return self._with(error=ConfigurationError(message))

    def _in_model(self, column: str) -> bool:
        model = self._config.model
        return model is None or column in model

    def reset(self) -> "QueryBuilder":
        """
        Drop filters, ordering, limit, flatten and recorded errors; keep table and model.

        An error from with_model() is kept: the whitelist it should have set is
        missing, so the builder must not run unrestricted.
        """
        model_error = self._config.model_error
        return QueryBuilder(
            self.executor,
            QueryConfig(
                table=self._config.table,
                model=self._config.model,
                model_error=model_error,
                error=model_error,
            ),
        )

    # ---------------- configuration ----------------

    def for_table(self, name: str) -> "QueryBuilder":
        if not isinstance(name, str) or not name.strip():
            return self._fail("No table name defined")
        return self._with(table=name.strip())

    def with_model(self, columns: Union[Sequence[str], Mapping[Any, str], str, None] = None) -> "QueryBuilder":
        """
        Restrict the builder to a whitelist of column names; None or empty clears it.

        A mapping is read as {key: column_name}; the key is only used to report
        a non-string entry.
        """
        if columns is not None and not isinstance(columns, (str, Mapping, Sequence)):
            return self._bad_model(f"Model must be a list or mapping of column names, got {type(columns).__name__}")
        if not columns:
            return self._with(model=None, model_error=None)
        if isinstance(columns, str):
            columns = [c.strip() for c in columns.split(",") if c.strip()]
        items = columns.items() if isinstance(columns, Mapping) else enumerate(columns)
        model: List[str] = []
        for k, v in items:
            if not isinstance(v, str):
                return self._bad_model(f"Key {k} must have a value of type string")
            model.append(v)
        return self._with(model=tuple(model), model_error=None)

    def _bad_model(self, message: str) -> "QueryBuilder":
        failed = self._fail(message)
        model_error = failed.error if self._config.error is None else ConfigurationError(message)
        return failed._with(model_error=model_error)

    def where(self, *groups: Mapping[str, Any]) -> "QueryBuilder":
        """
        Equality filters. Each group is a mapping of column -> value; conditions
        in a group are AND-ed, groups are OR-ed.

        With a model set, a condition on a column outside the model is dropped on
        its own; a group that ends up empty adds nothing. When nothing survives,
        the builder has no WHERE clause at all.
        """
        filters: List[Tuple[Condition, ...]] = []
        for i, group in enumerate(groups):
            if not group:
                continue
            if not isinstance(group, Mapping):
                return self._fail(f"Filter group {i} must be a mapping of column -> value")
            conds: List[Condition] = []
            for col, value in group.items():
                if not self._in_model(col):
                    logger.debug("filter on '%s' dropped: not in table model", col)
                    continue
                try:
                    conds.append((col, to_sql_value(value, col)))
                except ConfigurationError as e:
                    return self._fail(str(e))
            if conds:
                filters.append(tuple(conds))
        return self._with(filters=tuple(filters))

    def limit(self, value: Union[int, Mapping[int, int], None]) -> "QueryBuilder":
        """Row cap as an int, or {offset: count} rendered as `LIMIT offset,count`. None clears."""
        if value is None:
            return self._with(limit=None)
        if isinstance(value, bool):
            return self._fail("Limit must be an integer or a one-entry {offset: count} mapping")
        if isinstance(value, int):
            if value < 0:
                return self._fail(f"Limit must not be negative, got {value}")
            return self._with(limit=value)
        if isinstance(value, Mapping) and len(value) == 1:
            offset, count = next(iter(value.items()))
            if not all(isinstance(n, int) and not isinstance(n, bool) for n in (offset, count)):
                return self._fail(f"Limit range {offset!r}: {count!r} must be integers")
            if offset < 0 or count < 0:
                return self._fail(f"Limit range {offset},{count} must not be negative")
            return self._with(limit=(offset, count))
        return self._fail("Limit must be an integer or a one-entry {offset: count} mapping")

    def flatten(self, flag: bool = True) -> "QueryBuilder":
        return self._with(flatten=bool(flag))

    def order_by(self, order: Optional[Mapping[str, str]]) -> "QueryBuilder":
        """
        Ordering as {column: "ASC" | "DESC"}.

        Rendered the legacy way: all columns comma-joined, then all directions
        pipe-joined (`ORDER BY a,b ASC|DESC`). Only a single column yields SQL
        that SQLite accepts as intended.
        """
        if not order:
            return self._with(order_by=())
        if not isinstance(order, Mapping):
            return self._fail("Order must be a mapping of column -> direction")
        terms: List[Tuple[str, str]] = []
        for col, direction in order.items():
            token = str(direction).strip().upper()
            if token not in ORDER_DIRECTIONS:
                return self._fail(f"Order direction for '{col}' must be ASC or DESC, got {direction!r}")
            terms.append((col, token))
        if len(terms) > 1:
            logger.warning("ORDER BY over %d columns renders as '%s'; directions are not paired per column",
                           len(terms), _order_fragment(terms))
        return self._with(order_by=tuple(terms))

    # ---------------- fragments ----------------

    @property
    def where_sql(self) -> Optional[str]:
        if not self._config.filters:
            return None
        return " OR ".join(
            "(" + " AND ".join(f"{col} = ?" for col, _ in group) + ")"
            for group in self._config.filters
        )

    @property
    def where_params(self) -> List[SqlValue]:
        return [value for group in self._config.filters for _, value in group]

    @property
    def order_sql(self) -> Optional[str]:
        if not self._config.order_by:
            return None
        return _order_fragment(self._config.order_by)

    @property
    def limit_sql(self) -> Optional[str]:
        lim = self._config.limit
        if lim is None:
            return None
        if isinstance(lim, tuple):
            return f"{lim[0]},{lim[1]}"
        return str(lim)

    def _where_clause(self) -> str:
        w = self.where_sql
        return f" WHERE {w}" if w else ""

    def _tail(self) -> str:
        o, l = self.order_sql, self.limit_sql
        return self._where_clause() + (f" ORDER BY {o}" if o else "") + (f" LIMIT {l}" if l else "")

    def _check_ready(self):
        if self._config.error is not None:
            raise self._config.error
        if not self._config.table:
            raise ConfigurationError("No table name defined")

    def _select_columns(self, columns: Union[Sequence[str], str, None]) -> List[str]:
        if columns is None:
            return []
        if isinstance(columns, str):
            columns = columns.split(",")
        cols: List[str] = []
        for i, col in enumerate(columns):
            if not isinstance(col, str):
                raise ConfigurationError(f"Column {i} must be a string")
            col = col.strip()
            if not col:
                continue
            if not self._in_model(col):
                logger.debug("column '%s' dropped from SELECT: not in table model", col)
                continue
            cols.append(col)
        return cols

    # ---------------- rendering ----------------

    def _render_select(self, cols: List[str]) -> Tuple[str, List[SqlValue]]:
        self._check_ready()
        cols_sql = ",".join(cols) if cols else "NULL"
        sql = f"SELECT {cols_sql} FROM {self._config.table}{self._tail()}"
        return sql, self.where_params

    def _render_update(self, entity: Mapping[str, Any]) -> Tuple[str, List[SqlValue]]:
        self._check_ready()
        if not isinstance(entity, Mapping) or not entity:
            raise ConfigurationError("Update requires a non-empty mapping of column -> value")
        for col in entity:
            if not self._in_model(col):
                raise ConfigurationError(f"Column key '{col}' does not exist in table model")
        changes = ", ".join(f"{col} = ?" for col in entity)
        params = [to_sql_value(v, col) for col, v in entity.items()] + self.where_params
        sql = f"UPDATE {self._config.table} SET {changes}{self._where_clause()}"
        return sql, params

    def _render_insert(self, values: Sequence[Any]) -> Tuple[str, List[SqlValue]]:
        self._check_ready()
        if not isinstance(values, (list, tuple)) or not values:
            raise ConfigurationError("Insert requires a non-empty list of values")
        model = self._config.model
        if model is not None and len(values) != len(model):
            raise ConfigurationError(
                f"Values length ({len(values)}) does not match columns in model ({len(model)})"
            )
        params = [to_sql_value(v, i) for i, v in enumerate(values)]
        placeholders = ", ".join("?" for _ in params)
        return f"INSERT INTO {self._config.table} VALUES ({placeholders})", params

    def _render_count(self) -> Tuple[str, List[SqlValue]]:
        self._check_ready()
        return f"SELECT COUNT(1) AS n FROM {self._config.table}{self._where_clause()}", self.where_params

    def render_select(self, columns: Union[Sequence[str], str, None] = None) -> Result[str]:
        return _rendered(lambda: self._render_select(self._select_columns(columns)))

    def render_update(self, entity: Mapping[str, Any]) -> Result[str]:
        return _rendered(lambda: self._render_update(entity))

    def render_insert(self, values: Sequence[Any]) -> Result[str]:
        return _rendered(lambda: self._render_insert(values))

    # ---------------- terminal ----------------

    def select(self, columns: Union[Sequence[str], str, None] = None) -> Result[Any]:
        """
        Without columns: Result(bool), whether the filtered query matches any row.
        With columns: Result(list of row dicts), or Result(first row) when
        flatten is set and there is at least one row.
        """
        try:
            cols = self._select_columns(columns)
            sql, params = self._render_select(cols)
        except ConfigurationError as e:
            return Result.failure(e)
        try:
            cur = self.executor.run(sql, params, action="SELECT")
            if not cols:
                return Result.success(self.executor.matched(cur), sql, params)
            rows = self.executor.fetch_all(cur)
        except QueryExecutionError as e:
            return Result.failure(e, sql, params)
        if self._config.flatten and rows:
            return Result.success(rows[0], sql, params)
        return Result.success(rows, sql, params)

    def update(self, entity: Mapping[str, Any]) -> Result[bool]:
        """SET from `entity` (in key order) on the rows matching the current filter."""
        try:
            sql, params = self._render_update(entity)
        except ConfigurationError as e:
            return Result.failure(e)
        return self._exec_bool(sql, params, "UPDATE")

    def insert(self, values: Sequence[Any]) -> Result[bool]:
        """Positional insert, one placeholder per value."""
        try:
            sql, params = self._render_insert(values)
        except ConfigurationError as e:
            return Result.failure(e)
        return self._exec_bool(sql, params, "INSERT")

    def count(self) -> Result[int]:
        """Number of rows matching the current filter; ordering and limit are ignored."""
        try:
            sql, params = self._render_count()
        except ConfigurationError as e:
            return Result.failure(e)
        try:
            rows = self.executor.fetch_all(self.executor.run(sql, params, action="COUNT"))
        except QueryExecutionError as e:
            return Result.failure(e, sql, params)
        return Result.success(int(rows[0]["n"]), sql, params)

    def _exec_bool(self, sql: str, params: List[SqlValue], action: str) -> Result[bool]:
        try:
            cur = self.executor.run(sql, params, action=action)
            return Result.success(self.executor.matched(cur), sql, params)
        except QueryExecutionError as e:
            return Result.failure(e, sql, params)


def _order_fragment(terms: Sequence[Tuple[str, str]]) -> str:
    return ",".join(col for col, _ in terms) + " " + "|".join(d for _, d in terms)


def _rendered(render) -> Result[str]:
    try:
        sql, params = render()
    except ConfigurationError as e:
        return Result.failure(e)
    return Result.success(sql, sql, params)
