from collections.abc import Iterable, Sequence
from typing import Optional

from src.ndi.contracts import MetricPoint, Source
from src.ndi.deltas import percent_change
from src.ndi.periods import CanonicalPeriod, normalize_period


GroupKey = tuple[Optional[str], Optional[str], Optional[str]]


def _group_key(point: MetricPoint) -> GroupKey:
    return (point.group_a, point.group_b, point.group_c)


def _aggregated_rows(points: Iterable[MetricPoint], period: CanonicalPeriod) -> list[MetricPoint]:
    return sorted(
        (
            point
            for point in points
            if not point.superseded
            and point.source == Source.AGGREGATED
            and normalize_period(point.period) == period
        ),
        key=lambda point: point.group_sort_key(),
    )


def _values_by_group(rows: Sequence[MetricPoint]) -> dict[GroupKey, float]:
    # duplicate keys are reported by check_integrity; the last row in sort order wins here
    return {_group_key(row): row.value for row in rows}


def build_breakdown_with_history(
    points: Sequence[MetricPoint], period: CanonicalPeriod
) -> list[dict[str, object]]:
    """Per-row AGGREGATED breakdown for ``period`` with QoQ and YoY against identical group keys."""
    current_rows = _aggregated_rows(points, period)
    previous_quarter = _values_by_group(_aggregated_rows(points, period.previous()))
    previous_year = _values_by_group(_aggregated_rows(points, period.same_quarter_last_year()))

    rows: list[dict[str, object]] = []
    for row in current_rows:
        key = _group_key(row)
        entry: dict[str, object] = {"period": str(period), **row.group_fields(), "value": row.value}
        if row.weight is not None:
            entry["weight"] = row.weight

        prev_quarter_value = previous_quarter.get(key)
        prev_year_value = previous_year.get(key)
        qoq = percent_change(row.value, prev_quarter_value)
        yoy = percent_change(row.value, prev_year_value)
        if qoq is not None:
            entry["qoqChange"] = qoq
            entry["prevQuarterValue"] = prev_quarter_value
        if yoy is not None:
            entry["yoyChange"] = yoy
            entry["prevYearValue"] = prev_year_value
        rows.append(entry)
    return rows
