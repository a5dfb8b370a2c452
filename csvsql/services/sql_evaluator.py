from __future__ import annotations

import sqlite3
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import create_engine
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from csvsql.services.dataset import CellValue, Record, infer_cell
from csvsql.utils.logging import get_logger

LOGGER = get_logger(__name__)

BOOLEAN_DECLTYPE = "BOOLEAN"

# The driver raises plain Python errors for values it cannot bind.
DRIVER_FAULTS = (SQLAlchemyError, OverflowError, ValueError, TypeError)


def _decode_boolean(raw: bytes) -> CellValue:
    if raw in (b"0", b"1"):
        return raw == b"1"
    return infer_cell(raw.decode("utf-8", errors="replace"))


sqlite3.register_converter(BOOLEAN_DECLTYPE, _decode_boolean)


class EvaluationFault(RuntimeError):
    """Raised by an evaluator when it cannot bind data or run a query."""


@dataclass(frozen=True)
class EvaluatorResult:
    columns: tuple[str, ...]
    records: list[Record]


class SqlEvaluator(Protocol):
    def bind_table(self, name: str, columns: Sequence[str], records: Sequence[Mapping[str, object]]) -> None:
        ...

    def evaluate(self, query: str) -> EvaluatorResult:
        ...


def build_memory_engine() -> Engine:
    # One shared connection keeps the in-memory database alive between calls.
    return create_engine(
        "sqlite://",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False, "detect_types": sqlite3.PARSE_DECLTYPES},
    )


def column_decltype(column: str, records: Sequence[Mapping[str, object]]) -> str | None:
    """``BOOLEAN`` for columns holding only booleans and nulls, otherwise untyped."""
    seen = False
    for record in records:
        value = record.get(column)
        if value is None:
            continue
        if not isinstance(value, bool):
            return None
        seen = True
    return BOOLEAN_DECLTYPE if seen else None


class SqliteEvaluator:
    """Evaluate SQL against a single in-memory SQLite table through SQLAlchemy."""

    def __init__(self, *, engine: Engine | None = None) -> None:
        self.engine = engine or build_memory_engine()
        self._bound_table: str | None = None

    def _quote(self, identifier: str) -> str:
        return self.engine.dialect.identifier_preparer.quote_identifier(identifier)

    def _column_sql(self, column: str, records: Sequence[Mapping[str, object]]) -> str:
        # Untyped columns leave every value with its own storage class.
        decltype = column_decltype(column, records)
        quoted = self._quote(column)
        return f"{quoted} {decltype}" if decltype else quoted

    def bind_table(self, name: str, columns: Sequence[str], records: Sequence[Mapping[str, object]]) -> None:
        if not columns:
            raise EvaluationFault("Cannot bind a table without columns.")
        table = self._quote(name)
        column_sql = ", ".join(self._column_sql(column, records) for column in columns)
        placeholders = ", ".join("?" for _ in columns)
        rows = [tuple(record.get(column) for column in columns) for record in records]
        try:
            with self.engine.begin() as connection:
                if self._bound_table is not None and self._bound_table != name:
                    connection.exec_driver_sql(f"DROP TABLE IF EXISTS {self._quote(self._bound_table)}")
                connection.exec_driver_sql(f"DROP TABLE IF EXISTS {table}")
                connection.exec_driver_sql(f"CREATE TABLE {table} ({column_sql})")
                if rows:
                    connection.exec_driver_sql(f"INSERT INTO {table} VALUES ({placeholders})", rows)
        except DRIVER_FAULTS as error:
            LOGGER.warning("Unable to bind table %s: %s", name, error)
            self._bound_table = None
            raise EvaluationFault(_fault_message(error)) from error
        self._bound_table = name

    def evaluate(self, query: str) -> EvaluatorResult:
        try:
            with self.engine.begin() as connection:
                return self._run(connection, query)
        except DRIVER_FAULTS as error:
            raise EvaluationFault(_fault_message(error)) from error

    def _run(self, connection: Connection, query: str) -> EvaluatorResult:
        result = connection.exec_driver_sql(query)
        if not result.returns_rows:
            return EvaluatorResult(columns=(), records=[])
        columns = tuple(str(key) for key in result.keys())
        records = [dict(zip(columns, row)) for row in result.fetchall()]
        return EvaluatorResult(columns=columns, records=records)

    def dispose(self) -> None:
        self.engine.dispose()


def _fault_message(error: Exception) -> str:
    original = getattr(error, "orig", None)
    if original is not None:
        return str(original)
    return str(error)
