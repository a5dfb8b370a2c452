"""In-memory row store types and the cell typing rule used during ingestion."""

from __future__ import annotations

import math
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Union

CellValue = Union[int, float, str, bool, None]
Record = dict[str, CellValue]

_INTEGER_PATTERN = re.compile(r"[+-]?\d+")
_DECIMAL_PATTERN = re.compile(r"[+-]?(?:\d+\.\d*|\.\d+|\d+)(?:[eE][+-]?\d+)?")
_BOOLEAN_TOKENS = {"true": True, "false": False}

# SQLite stores integers as signed 64-bit values.
INTEGER_MIN = -(2**63)
INTEGER_MAX = 2**63 - 1
_INTEGER_MAX_DIGITS = len(str(INTEGER_MAX))


def _has_redundant_leading_zero(token: str) -> bool:
    digits = token.lstrip("+-")
    integer_part = digits.split(".", 1)[0].split("e", 1)[0].split("E", 1)[0]
    return len(integer_part) > 1 and integer_part.startswith("0")


def infer_cell(raw: str | None) -> CellValue:
    """Convert one raw CSV cell into a typed value.

    Empty cells become ``None``; ``true``/``false`` in any case become booleans;
    integer and decimal literals become numbers unless the integer part carries a
    redundant leading zero (``007`` stays a string) or the integer does not fit in a
    signed 64-bit value. Anything else is kept verbatim.
    """
    if raw is None:
        return None
    token = raw.strip()
    if not token:
        return None

    boolean = _BOOLEAN_TOKENS.get(token.lower())
    if boolean is not None:
        return boolean

    if _INTEGER_PATTERN.fullmatch(token):
        if _has_redundant_leading_zero(token):
            return raw
        if len(token.lstrip("+-")) > _INTEGER_MAX_DIGITS:
            return raw
        integer = int(token)
        if not INTEGER_MIN <= integer <= INTEGER_MAX:
            return raw
        return integer

    if _DECIMAL_PATTERN.fullmatch(token):
        if _has_redundant_leading_zero(token):
            return raw
        number = float(token)
        if not math.isfinite(number):
            return raw
        return number

    return raw


def is_numeric(value: object) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    if isinstance(value, float):
        return math.isfinite(value)
    return False


def numeric_values(records: Sequence[Mapping[str, object]], column: str) -> list[float]:
    values: list[float] = []
    for record in records:
        value = record.get(column)
        if value is None or not is_numeric(value):
            continue
        values.append(value)  # type: ignore[arg-type]
    return values


@dataclass(frozen=True)
class Dataset:
    """Fully materialized table produced by one ingestion."""

    source_name: str
    columns: tuple[str, ...]
    records: tuple[Record, ...]
    chunk_count: int = 1
    extra_field_rows: int = 0

    def __post_init__(self) -> None:
        if not self.records:
            raise ValueError("A dataset requires at least one record.")

    @property
    def row_count(self) -> int:
        return len(self.records)

    def __len__(self) -> int:
        return len(self.records)


@dataclass(frozen=True)
class QueryResult:
    query: str
    columns: tuple[str, ...]
    records: tuple[Record, ...]
    execution_ms: float = 0.0

    @property
    def row_count(self) -> int:
        return len(self.records)

    def head(self, limit: int) -> list[Record]:
        return list(self.records[: max(0, limit)])

    def __len__(self) -> int:
        return len(self.records)
