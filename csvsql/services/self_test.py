"""End-to-end diagnostic that drives ingestion, querying and analytics on fixed data."""

from __future__ import annotations

import csv
import io
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from typing import Literal

from csvsql.services.ingestion import CsvUpload, ingest_csv
from csvsql.services.query_engine import QueryEngine
from csvsql.services.session import AnalysisSession
from csvsql.services.statistics import chart_columns, histograms, summarize
from csvsql.utils.config import ToolConfig, load_tool_config
from csvsql.utils.logging import get_logger, log_event

LOGGER = get_logger(__name__)

StepStatus = Literal["running", "success", "failed"]

SELF_TEST_FILE_NAME = "test_data.csv"
SELF_TEST_COLUMNS: tuple[str, ...] = ("City", "PM25", "AQI", "O3", "NO2")
SELF_TEST_ROWS: tuple[dict[str, object], ...] = (
    {"City": "Los Angeles", "PM25": 45.2, "AQI": 123, "O3": 0.068, "NO2": 42},
    {"City": "New York", "PM25": 35.1, "AQI": 98, "O3": 0.055, "NO2": 38},
    {"City": "Chicago", "PM25": 28.3, "AQI": 85, "O3": 0.048, "NO2": 32},
    {"City": "Houston", "PM25": 52.7, "AQI": 145, "O3": 0.075, "NO2": 48},
    {"City": "Phoenix", "PM25": 41.5, "AQI": 115, "O3": 0.062, "NO2": 40},
    {"City": "Philadelphia", "PM25": 33.8, "AQI": 95, "O3": 0.052, "NO2": 36},
    {"City": "San Antonio", "PM25": 38.9, "AQI": 108, "O3": 0.058, "NO2": 41},
    {"City": "San Diego", "PM25": 30.2, "AQI": 88, "O3": 0.050, "NO2": 34},
)
SELF_TEST_QUERY_TEMPLATE = (
    "SELECT City, AVG(PM25) as avg_pm25, AVG(AQI) as avg_aqi "
    "FROM {table} GROUP BY City ORDER BY avg_aqi DESC"
)

STEP_GENERATE = "Generate test CSV"
STEP_UPLOAD = "Upload test CSV"
STEP_QUERY = "Execute SQL query"
STEP_VISUALIZE = "Generate visualizations"
STEP_ERROR = "Error"


def self_test_query(table_name: str) -> str:
    return SELF_TEST_QUERY_TEMPLATE.format(table=table_name)


@dataclass(frozen=True)
class StepResult:
    name: str
    status: StepStatus
    message: str | None = None


class SelfTestFailure(RuntimeError):
    """Raised inside the harness when a step produces an unusable outcome."""


def build_self_test_csv() -> bytes:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=list(SELF_TEST_COLUMNS), lineterminator="\n")
    writer.writeheader()
    writer.writerows(SELF_TEST_ROWS)
    return buffer.getvalue().encode("utf-8")


def self_test_status(steps: Sequence[StepResult]) -> StepStatus:
    if any(step.status == "failed" for step in steps):
        return "failed"
    if not steps or any(step.status == "running" for step in steps):
        return "running"
    return "success"


def run_self_test(
    *,
    session: AnalysisSession | None = None,
    config: ToolConfig | None = None,
    engine: QueryEngine | None = None,
    sleep: Callable[[float], None] = time.sleep,
    on_update: Callable[[list[StepResult]], None] | None = None,
) -> list[StepResult]:
    """Run the four diagnostic steps in order and report each step's outcome.

    The first failing step is marked ``failed``, a terminal ``Error`` step carries the
    fault message and no later step runs. When ``session`` is given the generated
    dataset, the query and its result are promoted into it.
    """
    settings = config or (session.config if session is not None else load_tool_config())
    query_engine = engine or (session.engine if session is not None else None)
    if query_engine is None:
        query_engine = QueryEngine(table_name=settings.table_name)

    steps: list[StepResult] = []

    def _start(name: str) -> None:
        steps.append(StepResult(name=name, status="running"))
        _publish()

    def _finish() -> None:
        steps[-1] = replace(steps[-1], status="success")
        _publish()

    def _publish() -> None:
        if on_update is not None:
            on_update(list(steps))

    try:
        _start(STEP_GENERATE)
        payload = build_self_test_csv()
        _finish()

        _start(STEP_UPLOAD)
        ingested = ingest_csv(CsvUpload.from_bytes(SELF_TEST_FILE_NAME, payload), config=settings)
        dataset = ingested.dataset
        if session is not None:
            session.promote(dataset)
        _finish()

        _start(STEP_QUERY)
        query = self_test_query(query_engine.table_name)
        result = query_engine.execute(query, dataset)
        if not result.records:
            raise SelfTestFailure("Query returned no results")
        if session is not None:
            session.query = query
            session.result = result
        _finish()

        _start(STEP_VISUALIZE)
        sleep(settings.self_test_settle_seconds)
        summary = summarize(result.records)
        histograms(
            result.records,
            chart_columns(summary, settings.chart_column_limit),
            max_bins=settings.max_histogram_bins,
        )
        _finish()
    except Exception as error:
        LOGGER.exception("Self-test step '%s' failed: %s", steps[-1].name if steps else "?", error)
        if steps:
            steps[-1] = replace(steps[-1], status="failed")
        steps.append(StepResult(name=STEP_ERROR, status="failed", message=str(error)))
        _publish()
        return steps

    log_event(LOGGER, "self_test.complete", steps=len(steps), status=self_test_status(steps))
    return steps
