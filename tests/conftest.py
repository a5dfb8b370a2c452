from __future__ import annotations

from collections.abc import Iterable, Sequence
from pathlib import Path

import pytest

from csvsql.services.dataset import Dataset
from csvsql.services.ingestion import CsvUpload, ingest_csv
from csvsql.services.query_engine import QueryEngine
from csvsql.services.session import AnalysisSession
from csvsql.services.sql_evaluator import SqliteEvaluator
from csvsql.utils.config import ToolConfig
from tests.fixtures.csv_sources.factory import (
    DEFAULT_CSV_HEADERS,
    DEFAULT_CSV_ROWS,
    build_csv,
    render_csv,
)


@pytest.fixture
def tool_config() -> ToolConfig:
    return ToolConfig(self_test_settle_seconds=0.0)


@pytest.fixture
def small_chunk_config() -> ToolConfig:
    return ToolConfig(chunk_bytes=16, self_test_settle_seconds=0.0)


@pytest.fixture
def csv_fixture_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "csv_sources"
    directory.mkdir(parents=True, exist_ok=True)
    return directory


@pytest.fixture
def csv_builder(csv_fixture_dir: Path):
    def _builder(
        *,
        headers: Sequence[str] | None = None,
        rows: Iterable[Sequence[object]] | None = None,
        filename: str = "budget.csv",
    ) -> Path:
        return build_csv(
            csv_fixture_dir / filename,
            headers=headers or DEFAULT_CSV_HEADERS,
            rows=rows if rows is not None else DEFAULT_CSV_ROWS,
        )

    return _builder


@pytest.fixture
def upload_builder():
    def _builder(
        *,
        headers: Sequence[str] | None = None,
        rows: Iterable[Sequence[object]] | None = None,
        name: str = "upload.csv",
    ) -> CsvUpload:
        return CsvUpload.from_bytes(name, render_csv(headers, rows))

    return _builder


@pytest.fixture
def evaluator():
    instance = SqliteEvaluator()
    try:
        yield instance
    finally:
        instance.dispose()


@pytest.fixture
def query_engine(evaluator: SqliteEvaluator) -> QueryEngine:
    return QueryEngine(evaluator=evaluator, table_name="tablename")


@pytest.fixture
def budget_dataset(upload_builder, tool_config: ToolConfig) -> Dataset:
    return ingest_csv(upload_builder(), config=tool_config).dataset


@pytest.fixture
def analysis_session(tool_config: ToolConfig, query_engine: QueryEngine) -> AnalysisSession:
    return AnalysisSession(config=tool_config, engine=query_engine)
