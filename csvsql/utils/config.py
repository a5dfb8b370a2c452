from __future__ import annotations

import os
from dataclasses import dataclass

MIB = 1024 * 1024
GIB = 1024 * MIB

DEFAULT_MAX_BYTES = GIB
DEFAULT_CHUNK_BYTES = 10 * MIB
DEFAULT_TABLE_NAME = "tablename"
DEFAULT_DISPLAY_ROW_LIMIT = 100
DEFAULT_CHART_COLUMN_LIMIT = 6
DEFAULT_MAX_HISTOGRAM_BINS = 15
DEFAULT_SELF_TEST_SETTLE_SECONDS = 0.5

MAX_BYTES_ENV = "CSVSQL_MAX_BYTES"
CHUNK_BYTES_ENV = "CSVSQL_CHUNK_BYTES"
TABLE_NAME_ENV = "CSVSQL_TABLE_NAME"
DISPLAY_ROWS_ENV = "CSVSQL_DISPLAY_ROWS"
CHART_COLUMNS_ENV = "CSVSQL_CHART_COLUMNS"
MAX_BINS_ENV = "CSVSQL_MAX_BINS"
SELF_TEST_SETTLE_ENV = "CSVSQL_SELF_TEST_SETTLE"


@dataclass(frozen=True)
class ToolConfig:
    max_bytes: int = DEFAULT_MAX_BYTES
    chunk_bytes: int = DEFAULT_CHUNK_BYTES
    table_name: str = DEFAULT_TABLE_NAME
    display_row_limit: int = DEFAULT_DISPLAY_ROW_LIMIT
    chart_column_limit: int = DEFAULT_CHART_COLUMN_LIMIT
    max_histogram_bins: int = DEFAULT_MAX_HISTOGRAM_BINS
    self_test_settle_seconds: float = DEFAULT_SELF_TEST_SETTLE_SECONDS


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    value = int(raw)
    if value <= 0:
        raise ValueError(f"{name} must be a positive integer, got {raw!r}.")
    return value


def get_table_name() -> str:
    return (os.getenv(TABLE_NAME_ENV) or DEFAULT_TABLE_NAME).strip() or DEFAULT_TABLE_NAME


def load_tool_config() -> ToolConfig:
    settle = float(os.getenv(SELF_TEST_SETTLE_ENV, DEFAULT_SELF_TEST_SETTLE_SECONDS))
    return ToolConfig(
        max_bytes=_int_env(MAX_BYTES_ENV, DEFAULT_MAX_BYTES),
        chunk_bytes=_int_env(CHUNK_BYTES_ENV, DEFAULT_CHUNK_BYTES),
        table_name=get_table_name(),
        display_row_limit=_int_env(DISPLAY_ROWS_ENV, DEFAULT_DISPLAY_ROW_LIMIT),
        chart_column_limit=_int_env(CHART_COLUMNS_ENV, DEFAULT_CHART_COLUMN_LIMIT),
        max_histogram_bins=_int_env(MAX_BINS_ENV, DEFAULT_MAX_HISTOGRAM_BINS),
        self_test_settle_seconds=max(0.0, settle),
    )
