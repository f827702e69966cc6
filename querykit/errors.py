from __future__ import annotations

# querykit/errors.py
from dataclasses import dataclass, field
from typing import Any, Generic, List, Optional, TypeVar

T = TypeVar("T")


class QueryKitError(Exception):
    """Base class for every error raised or returned by querykit."""


class ConfigurationError(QueryKitError):
    """Caller misuse: missing table, whitelist violation, bad shape or value type."""


class QueryExecutionError(QueryKitError):
    """The driver failed to prepare or execute a statement."""

    def __init__(self, message: str, sql: Optional[str] = None, params: Optional[List[Any]] = None):
        super().__init__(message)
        self.sql = sql
        self.params = list(params) if params is not None else []


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Outcome of a terminal builder operation.

    Exactly one of `value` / `error` is meaningful: `ok` tells which.
    `sql` and `params` are the rendered statement, when rendering got that far.
    """
    value: Optional[T] = None
    error: Optional[QueryKitError] = None
    sql: Optional[str] = None
    params: List[Any] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]

    @classmethod
    def success(cls, value: T, sql: Optional[str] = None, params: Optional[List[Any]] = None) -> "Result[T]":
        return cls(value=value, sql=sql, params=list(params or []))

    @classmethod
    def failure(cls, error: QueryKitError, sql: Optional[str] = None, params: Optional[List[Any]] = None) -> "Result[T]":
        return cls(error=error, sql=sql, params=list(params or []))
