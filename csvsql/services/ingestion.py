from __future__ import annotations

import codecs
import csv
import io
import re
import time
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Optional

from csvsql.services.dataset import Dataset, Record, infer_cell
from csvsql.services.errors import (
    EmptyDataError,
    IngestionError,
    IngestionWarning,
    SizeLimitError,
    UsageError,
)
from csvsql.utils.config import GIB, MIB, ToolConfig, load_tool_config
from csvsql.utils.logging import get_logger, log_event, log_timing, log_warning_event
from csvsql.utils.metrics import emit_ingest_metric

LOGGER = get_logger(__name__)

# Faults that may interrupt streaming after rows were already recovered.
PARSE_FAULTS = (csv.Error, UnicodeError, OSError, MemoryError)

EMPTY_DATA_MESSAGE = "No data found in CSV file. The file may be empty or have formatting issues."
FATAL_PARSE_MESSAGE = (
    "File parsing error: Unable to read file. This may be due to file corruption, "
    "encoding issues, or memory limitations."
)


@dataclass(frozen=True)
class CsvUpload:
    """A named byte source awaiting ingestion."""

    name: str
    size: int
    opener: Callable[[], BinaryIO]

    def open(self) -> BinaryIO:
        return self.opener()

    @classmethod
    def from_path(cls, path: Path | str) -> "CsvUpload":
        source = Path(path)
        return cls(name=source.name, size=source.stat().st_size, opener=lambda: source.open("rb"))

    @classmethod
    def from_bytes(cls, name: str, payload: bytes) -> "CsvUpload":
        return cls(name=name, size=len(payload), opener=lambda: io.BytesIO(payload))

    @classmethod
    def from_uploaded_file(cls, uploaded) -> "CsvUpload":
        """Wrap a Streamlit ``UploadedFile`` (anything with name, size and getvalue)."""
        return cls(
            name=str(uploaded.name),
            size=int(uploaded.size),
            opener=lambda: io.BytesIO(uploaded.getvalue()),
        )


@dataclass(frozen=True)
class RowBatch:
    index: int
    columns: tuple[str, ...]
    records: list[Record]
    bytes_read: int
    extra_field_rows: int


@dataclass
class IngestionResult:
    dataset: Dataset
    warning: Optional[IngestionWarning]
    elapsed_ms: float

    @property
    def row_count(self) -> int:
        return self.dataset.row_count


def format_size(size_bytes: int) -> tuple[str, str]:
    return f"{size_bytes / MIB:.2f}", f"{size_bytes / GIB:.2f}"


def normalize_headers(raw_headers: Sequence[str]) -> tuple[str, ...]:
    """Fill blank header names and disambiguate duplicates with numeric suffixes."""
    seen: dict[str, int] = {}
    headers: list[str] = []
    for position, raw in enumerate(raw_headers, start=1):
        name = raw.strip() or f"column_{position}"
        if name in seen:
            seen[name] += 1
            candidate = f"{name}_{seen[name]}"
            while candidate in seen:
                seen[name] += 1
                candidate = f"{name}_{seen[name]}"
            name = candidate
        seen.setdefault(name, 0)
        headers.append(name)
    return tuple(headers)


_LINE_END = re.compile(r"\r\n|\r|\n")


def split_lines(text: str, *, final: bool) -> tuple[list[str], str]:
    """Split off complete lines ending in ``\\n``, ``\\r\\n`` or a bare ``\\r``.

    Returns the lines (terminators kept) and the unterminated remainder. Unless
    ``final``, a trailing ``\\r`` stays pending since its ``\\n`` may be in the next block.
    """
    lines: list[str] = []
    start = 0
    for match in _LINE_END.finditer(text):
        if not final and match.group() == "\r" and match.end() == len(text):
            break
        lines.append(text[start : match.end()])
        start = match.end()
    return lines, text[start:]


class _ChunkedLineReader:
    """Decode a binary stream block by block and hand out complete lines."""

    def __init__(self, stream: BinaryIO, chunk_bytes: int, encoding: str = "utf-8-sig") -> None:
        self._stream = stream
        self._chunk_bytes = chunk_bytes
        self._encoding = encoding
        self.chunks_read = 0
        self.bytes_read = 0

    def __iter__(self) -> Iterator[str]:
        decoder = codecs.getincrementaldecoder(self._encoding)()
        pending = ""
        while True:
            block = self._stream.read(self._chunk_bytes)
            if not block:
                break
            self.chunks_read += 1
            self.bytes_read += len(block)
            pending += decoder.decode(block)
            lines, pending = split_lines(pending, final=False)
            yield from lines
        pending += decoder.decode(b"", final=True)
        lines, pending = split_lines(pending, final=True)
        yield from lines
        if pending:
            yield pending


def _is_blank(row: Sequence[str]) -> bool:
    return all(not cell.strip() for cell in row)


def iter_row_batches(stream: BinaryIO, *, chunk_bytes: int) -> Iterator[RowBatch]:
    """Yield typed record batches, one per block of roughly ``chunk_bytes`` input.

    If a parse or I/O fault interrupts the stream, rows parsed so far are yielded as a
    final batch before the fault propagates.
    """
    lines = _ChunkedLineReader(stream, chunk_bytes)
    reader = csv.reader(lines)

    columns: tuple[str, ...] = ()
    batch: list[Record] = []
    batch_index = 0
    batch_chunk = 0
    extra_field_rows = 0

    def _flush() -> RowBatch:
        nonlocal batch, batch_index, extra_field_rows
        flushed = RowBatch(
            index=batch_index,
            columns=columns,
            records=batch,
            bytes_read=lines.bytes_read,
            extra_field_rows=extra_field_rows,
        )
        batch = []
        batch_index += 1
        extra_field_rows = 0
        return flushed

    try:
        for row in reader:
            if not columns:
                if _is_blank(row):
                    continue
                columns = normalize_headers(row)
                batch_chunk = lines.chunks_read
                continue
            if _is_blank(row):
                continue

            width = len(columns)
            if len(row) > width:
                extra_field_rows += 1
            cells = list(row[:width]) + [None] * (width - len(row))
            batch.append({column: infer_cell(cell) for column, cell in zip(columns, cells)})

            if lines.chunks_read != batch_chunk:
                batch_chunk = lines.chunks_read
                yield _flush()
    except PARSE_FAULTS:
        if batch:
            yield _flush()
        raise

    if batch:
        yield _flush()


def _check_upload(upload: CsvUpload | None, config: ToolConfig) -> CsvUpload:
    if upload is None:
        raise UsageError("Please upload a CSV file")
    if not upload.name.lower().endswith(".csv"):
        raise UsageError("Please upload a CSV file")

    size_mb, size_gb = format_size(upload.size)
    log_event(LOGGER, "ingest.upload", file_name=upload.name, size_mb=size_mb, size_gb=size_gb)
    if upload.size > config.max_bytes:
        limit_mb, limit_gb = format_size(config.max_bytes)
        raise SizeLimitError(
            f"File is too large ({size_gb} GB / {size_mb} MB). Maximum supported size is "
            f"{limit_gb} GB ({limit_mb} MB). Please use a smaller file or a subset of the data.",
            size_bytes=upload.size,
            size_mb=size_mb,
            size_gb=size_gb,
        )
    return upload


def ingest_csv(upload: CsvUpload | None, *, config: ToolConfig | None = None) -> IngestionResult:
    """Stream a CSV upload into a fully materialized :class:`Dataset`."""
    settings = config or load_tool_config()
    upload = _check_upload(upload, settings)

    timer = time.perf_counter()
    try:
        stream = upload.open()
    except Exception as error:
        LOGGER.exception("Unable to open upload %s: %s", upload.name, error)
        raise IngestionError(f"Error: {error}") from error

    records: list[Record] = []
    columns: tuple[str, ...] = ()
    chunk_count = 0
    extra_field_rows = 0
    warning: IngestionWarning | None = None

    with stream, log_timing(LOGGER, "ingest.parse", file_name=upload.name):
        try:
            for batch in iter_row_batches(stream, chunk_bytes=settings.chunk_bytes):
                chunk_count += 1
                columns = batch.columns
                extra_field_rows += batch.extra_field_rows
                records.extend(batch.records)
                emit_ingest_metric(
                    "chunk",
                    file_name=upload.name,
                    chunk=chunk_count,
                    rows_in_chunk=len(batch.records),
                    total_rows=len(records),
                    bytes_read=batch.bytes_read,
                )
        except PARSE_FAULTS as error:
            if not records:
                LOGGER.error("Parse failed for %s before any row was recovered: %s", upload.name, error)
                raise IngestionError(FATAL_PARSE_MESSAGE) from error
            warning = IngestionWarning(row_count=len(records), cause=str(error))
            log_warning_event(
                LOGGER,
                "ingest.partial",
                file_name=upload.name,
                rows=len(records),
                chunks=chunk_count,
                cause=str(error),
            )

    if not records:
        raise EmptyDataError(EMPTY_DATA_MESSAGE)

    if extra_field_rows:
        log_warning_event(LOGGER, "ingest.extra_fields", file_name=upload.name, rows=extra_field_rows)

    dataset = Dataset(
        source_name=upload.name,
        columns=columns,
        records=tuple(records),
        chunk_count=chunk_count,
        extra_field_rows=extra_field_rows,
    )
    elapsed_ms = (time.perf_counter() - timer) * 1000.0
    emit_ingest_metric(
        "complete",
        file_name=upload.name,
        rows=dataset.row_count,
        chunks=chunk_count,
        partial=warning is not None,
        elapsed_ms=elapsed_ms,
    )
    return IngestionResult(dataset=dataset, warning=warning, elapsed_ms=elapsed_ms)
