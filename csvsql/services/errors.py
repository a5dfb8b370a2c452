from __future__ import annotations

from dataclasses import dataclass


class CsvSqlError(RuntimeError):
    """Base class for every failure surfaced to the user as a message."""


class UsageError(CsvSqlError):
    """Raised when an operation is invoked without its preconditions."""


class SizeLimitError(UsageError):
    """Raised when an upload exceeds the configured size ceiling."""

    def __init__(self, message: str, *, size_bytes: int, size_mb: str, size_gb: str) -> None:
        super().__init__(message)
        self.size_bytes = size_bytes
        self.size_mb = size_mb
        self.size_gb = size_gb


class IngestionError(CsvSqlError):
    """Raised when parsing fails before any row could be recovered."""


class EmptyDataError(CsvSqlError):
    """Raised when a structurally valid CSV yields no data rows."""


class QueryError(CsvSqlError):
    """Raised when the SQL evaluator rejects a query."""

    def __init__(self, detail: str) -> None:
        super().__init__(f"Query error: {detail}")
        self.detail = detail


@dataclass(frozen=True)
class IngestionWarning:
    """Non-fatal partial recovery; the recovered rows remain usable."""

    row_count: int
    cause: str | None = None

    @property
    def message(self) -> str:
        return (
            f"Warning: File partially loaded ({self.row_count:,} rows). "
            "Some data may be missing due to parsing issues."
        )
