from __future__ import annotations

from dataclasses import dataclass, field

from csvsql.services.dataset import Dataset, QueryResult, Record
from csvsql.services.errors import CsvSqlError
from csvsql.services.ingestion import CsvUpload, IngestionResult, ingest_csv
from csvsql.services.query_engine import QueryEngine, default_query
from csvsql.services.statistics import HistogramBin, SummaryStatistics, chart_columns, histograms, summarize
from csvsql.utils.config import ToolConfig, load_tool_config
from csvsql.utils.logging import get_logger, log_event

LOGGER = get_logger(__name__)


@dataclass
class AnalysisSession:
    """Explicit owner of the active dataset, the latest result and the user-facing message."""

    config: ToolConfig = field(default_factory=load_tool_config)
    engine: QueryEngine | None = None
    dataset: Dataset | None = None
    result: QueryResult | None = None
    file_name: str | None = None
    query: str = ""
    message: str | None = None

    def __post_init__(self) -> None:
        if self.engine is None:
            self.engine = QueryEngine(table_name=self.config.table_name)
        if not self.query:
            self.query = default_query(self.engine.table_name)

    def load(self, upload: CsvUpload | None) -> IngestionResult:
        """Ingest an upload and promote it to the active dataset.

        A partial recovery is still promoted; its warning becomes the session message.
        On failure the previous dataset is kept and the error is re-raised.
        """
        try:
            outcome = ingest_csv(upload, config=self.config)
        except CsvSqlError as error:
            self.message = str(error)
            raise

        self.promote(outcome.dataset)
        self.message = outcome.warning.message if outcome.warning else None
        return outcome

    def promote(self, dataset: Dataset) -> None:
        self.dataset = dataset
        self.file_name = dataset.source_name
        self.result = None
        log_event(LOGGER, "session.dataset", file_name=dataset.source_name, rows=dataset.row_count)

    def run_query(self, query: str | None = None) -> QueryResult:
        """Execute ``query`` (or the stored query) and keep the result on success only."""
        if query is not None:
            self.query = query
        engine = self.engine
        if engine is None:
            engine = self.engine = QueryEngine(table_name=self.config.table_name)
        try:
            result = engine.execute(self.query, self.dataset)
        except CsvSqlError as error:
            self.message = str(error)
            raise
        self.result = result
        self.message = None
        return result

    def display_rows(self) -> list[Record]:
        if self.result is None:
            return []
        return self.result.head(self.config.display_row_limit)

    def summary(self) -> SummaryStatistics | None:
        if self.result is None:
            return None
        return summarize(self.result.records)

    def charts(self) -> dict[str, list[HistogramBin]]:
        if self.result is None:
            return {}
        columns = chart_columns(self.summary(), self.config.chart_column_limit)
        return histograms(self.result.records, columns, max_bins=self.config.max_histogram_bins)
