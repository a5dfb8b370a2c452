from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from csvsql.services.dataset import numeric_values
from csvsql.utils.config import DEFAULT_CHART_COLUMN_LIMIT, DEFAULT_MAX_HISTOGRAM_BINS

Records = Sequence[Mapping[str, object]]


@dataclass(frozen=True)
class ColumnStatistics:
    count: int
    min: float
    max: float
    mean: float
    median: float
    std_dev: float

    def to_dict(self) -> dict[str, object]:
        return {
            "count": self.count,
            "min": self.min,
            "max": self.max,
            "mean": self.mean,
            "median": self.median,
            "std_dev": self.std_dev,
        }


@dataclass(frozen=True)
class SummaryStatistics:
    stats: dict[str, ColumnStatistics]
    numeric_columns: list[str]


@dataclass(frozen=True)
class HistogramBin:
    range_label: str
    count: int

    def to_dict(self) -> dict[str, object]:
        return {"range": self.range_label, "count": self.count}


def _median(sorted_values: Sequence[float]) -> float:
    size = len(sorted_values)
    middle = size // 2
    if size % 2 == 0:
        return (sorted_values[middle - 1] + sorted_values[middle]) / 2
    return sorted_values[middle]


def _total(values: Sequence[float]) -> float:
    try:
        return math.fsum(values)
    except OverflowError:
        # Plain summation saturates to inf where the exact sum is not representable.
        return sum(float(value) for value in values)


def describe(values: Sequence[float]) -> ColumnStatistics:
    """Descriptive statistics over a non-empty sequence of numbers, rounded to 2 places."""
    if not values:
        raise ValueError("Cannot describe an empty set of values.")
    ordered = sorted(values)
    count = len(ordered)
    mean = _total(ordered) / count
    variance = _total([(value - mean) * (value - mean) for value in ordered]) / count
    return ColumnStatistics(
        count=count,
        min=round(ordered[0], 2),
        max=round(ordered[-1], 2),
        mean=round(mean, 2),
        median=round(_median(ordered), 2),
        std_dev=round(math.sqrt(variance), 2),
    )


def summarize(records: Records) -> SummaryStatistics | None:
    """Per-column statistics for every column of ``records`` holding numeric values.

    Columns are taken from the first record; a column without any numeric value is left
    out entirely. Returns ``None`` for an empty result.
    """
    if not records:
        return None

    stats: dict[str, ColumnStatistics] = {}
    numeric_columns: list[str] = []
    for column in records[0].keys():
        values = numeric_values(records, column)
        if not values:
            continue
        numeric_columns.append(column)
        stats[column] = describe(values)
    return SummaryStatistics(stats=stats, numeric_columns=numeric_columns)


def histogram(
    records: Records,
    column: str,
    *,
    max_bins: int = DEFAULT_MAX_HISTOGRAM_BINS,
) -> list[HistogramBin] | None:
    if not records:
        return None
    values = numeric_values(records, column)
    if not values:
        return None

    low = min(values)
    high = max(values)
    bin_count = min(max_bins, math.ceil(math.sqrt(len(values))))
    width = (high - low) / bin_count
    # Spans near the float limit overflow to inf; those collapse to a single bin too.
    if low == high or width <= 0 or not math.isfinite(width):
        return [HistogramBin(range_label=f"{low:.1f}", count=len(values))]

    counts = [0] * bin_count
    for value in values:
        index = min(math.floor((value - low) / width), bin_count - 1)
        counts[index] += 1
    return [
        HistogramBin(range_label=f"{low + index * width:.1f}", count=count)
        for index, count in enumerate(counts)
    ]


def histograms(
    records: Records,
    columns: Sequence[str],
    *,
    max_bins: int = DEFAULT_MAX_HISTOGRAM_BINS,
) -> dict[str, list[HistogramBin]]:
    """Histograms for an arbitrary subset of columns; columns without numbers are skipped."""
    charts: dict[str, list[HistogramBin]] = {}
    for column in columns:
        bins = histogram(records, column, max_bins=max_bins)
        if bins:
            charts[column] = bins
    return charts


def chart_columns(summary: SummaryStatistics | None, limit: int = DEFAULT_CHART_COLUMN_LIMIT) -> list[str]:
    if summary is None:
        return []
    return summary.numeric_columns[: max(0, limit)]
