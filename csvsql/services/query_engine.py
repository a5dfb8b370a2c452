from __future__ import annotations

import time

from csvsql.services.dataset import Dataset, QueryResult
from csvsql.services.errors import QueryError, UsageError
from csvsql.services.sql_evaluator import EvaluationFault, SqlEvaluator, SqliteEvaluator
from csvsql.utils.config import get_table_name
from csvsql.utils.logging import get_logger, log_timing
from csvsql.utils.metrics import emit_query_metric

LOGGER = get_logger(__name__)


def default_query(table_name: str) -> str:
    return f"SELECT * FROM {table_name} LIMIT 10"


class QueryEngine:
    """Bind the active dataset to the virtual table and forward queries to the evaluator."""

    def __init__(self, *, evaluator: SqlEvaluator | None = None, table_name: str | None = None) -> None:
        self.evaluator = evaluator or SqliteEvaluator()
        self.table_name = table_name or get_table_name()

    def execute(self, query: str, dataset: Dataset | None) -> QueryResult:
        if dataset is None:
            raise UsageError("Please upload a CSV file first")
        if not query or not query.strip():
            raise UsageError("Please enter a SQL query")

        start = time.perf_counter()
        try:
            with log_timing(LOGGER, "query.execute", table=self.table_name, rows=dataset.row_count):
                self.evaluator.bind_table(self.table_name, dataset.columns, dataset.records)
                evaluated = self.evaluator.evaluate(query)
        except EvaluationFault as error:
            emit_query_metric("failed", table=self.table_name, detail=str(error))
            raise QueryError(str(error)) from error

        execution_ms = (time.perf_counter() - start) * 1000.0
        emit_query_metric(
            "succeeded",
            table=self.table_name,
            result_rows=len(evaluated.records),
            execution_ms=execution_ms,
        )
        return QueryResult(
            query=query,
            columns=evaluated.columns,
            records=tuple(evaluated.records),
            execution_ms=execution_ms,
        )
