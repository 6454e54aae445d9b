import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Optional

from src.ndi.contracts import MetricPoint, ResolvedValue, Source
from src.ndi.deltas import compute_deltas, percent_change, rolling_average
from src.ndi.periods import CanonicalPeriod, in_range, normalize_period
from src.ndi.resolver import ensure_metric, resolve_value


LOGGER = logging.getLogger(__name__)

NO_DATA = ResolvedValue(value=None, count=0.0, method="no data")

PeriodRange = tuple[Optional[CanonicalPeriod], Optional[CanonicalPeriod]]


@dataclass(frozen=True)
class PeriodIndex:
    """Non-superseded points grouped by canonical period, resolved once per period."""

    groups: dict[CanonicalPeriod, list[MetricPoint]]
    ignored_rows: int = 0
    resolved: dict[CanonicalPeriod, ResolvedValue] = field(default_factory=dict)

    def resolve(self, period: CanonicalPeriod) -> ResolvedValue:
        return self.resolved.get(period, NO_DATA)

    def rows(self, period: CanonicalPeriod) -> list[MetricPoint]:
        return self.groups.get(period, [])

    def periods(self) -> list[CanonicalPeriod]:
        return sorted(self.groups)


@dataclass(frozen=True)
class SeriesPoint:
    period: CanonicalPeriod
    value: Optional[float]
    r4: Optional[float] = None
    yoy: Optional[float] = None

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "period": str(self.period),
            "date": self.period.quarter_end_date().isoformat(),
            "value": self.value,
        }
        if self.r4 is not None:
            payload["r4"] = self.r4
        if self.yoy is not None:
            payload["yoy"] = self.yoy
        return payload


@dataclass(frozen=True)
class SeriesResult:
    points: list[SeriesPoint]
    ignored_rows: int = 0

    def to_dicts(self) -> list[dict[str, object]]:
        return [point.to_dict() for point in self.points]


def group_by_period(points: Iterable[MetricPoint], metric: Optional[str] = None) -> PeriodIndex:
    snapshot = list(points)
    ensure_metric(snapshot, metric)

    groups: dict[CanonicalPeriod, list[MetricPoint]] = {}
    ignored = 0
    for point in snapshot:
        if point.superseded:
            continue
        period = normalize_period(point.period)
        if period is None:
            ignored += 1
            continue
        groups.setdefault(period, []).append(point)

    if ignored:
        LOGGER.warning("ignored %d metric point(s) with unparseable periods", ignored)

    resolved = {period: resolve_value(rows) for period, rows in groups.items()}
    return PeriodIndex(groups=groups, ignored_rows=ignored, resolved=resolved)


def build_series(
    points: Iterable[MetricPoint],
    metric: Optional[str] = None,
    period_range: Optional[PeriodRange] = None,
) -> SeriesResult:
    index = group_by_period(points, metric)
    period_from, period_to = period_range or (None, None)

    series: list[SeriesPoint] = []
    for period in index.periods():
        if not in_range(period, period_from, period_to):
            continue
        series.append(
            SeriesPoint(
                period=period,
                value=index.resolve(period).value,
                r4=rolling_average(index.resolve, period),
                yoy=index.resolve(period.same_quarter_last_year()).value,
            )
        )
    return SeriesResult(points=series, ignored_rows=index.ignored_rows)


def build_summary(
    points: Iterable[MetricPoint], period: CanonicalPeriod, metric: Optional[str] = None
) -> dict[str, object]:
    index = group_by_period(points, metric)
    resolved = index.resolve(period)
    summary: dict[str, object] = {"period": str(period), "total": resolved.value}
    if resolved.value is None:
        return summary

    deltas = compute_deltas(period, index.resolve)
    optional_fields = {
        "qoqChange": deltas.qoq,
        "yoyChange": deltas.yoy,
        "prevQuarterValue": deltas.prev_quarter_value,
        "prevYearValue": deltas.prev_year_value,
        "rolling4q": deltas.rolling4q,
        "totalResponses": resolved.count if resolved.count > 0 else None,
    }
    summary.update({key: value for key, value in optional_fields.items() if value is not None})
    return summary


def latest_period(points: Iterable[MetricPoint]) -> Optional[CanonicalPeriod]:
    periods = [
        period
        for period in (normalize_period(point.period) for point in points if not point.superseded)
        if period is not None
    ]
    return max(periods) if periods else None


def _aggregated_rows(rows: Sequence[MetricPoint]) -> list[dict[str, object]]:
    return [
        {
            "rowIndex": position,
            "value": row.value,
            "label": row.group_a or f"Index row {position}",
            "originalLabel": row.group_b or "Index",
        }
        for position, row in enumerate(rows, start=1)
    ]


def _breakdown_rows(rows: Sequence[MetricPoint]) -> list[dict[str, object]]:
    return [{"value": row.value, "weight": row.weight or 0.0, **row.group_fields()} for row in rows]


def build_calculation(
    points: Iterable[MetricPoint], period: CanonicalPeriod, metric: Optional[str] = None
) -> dict[str, object]:
    """Audit view of how the period's value was resolved, row by row."""
    index = group_by_period(points, metric)
    rows = sorted(index.rows(period), key=lambda row: row.group_sort_key())
    aggregated = [row for row in rows if row.source == Source.AGGREGATED]
    breakdown = [row for row in rows if row.source == Source.BREAKDOWN]
    resolved = index.resolve(period)

    if aggregated:
        source: Optional[str] = Source.AGGREGATED.value
    elif breakdown:
        source = Source.BREAKDOWN.value
    else:
        source = None

    payload: dict[str, object] = {
        "period": str(period),
        "source": source,
        "aggregatedRows": _aggregated_rows(aggregated),
        "breakdownRows": _breakdown_rows(breakdown),
        "finalValue": resolved.value,
        "calculationMethod": resolved.method,
    }
    qoq = percent_change(resolved.value, index.resolve(period.previous()).value)
    yoy = percent_change(resolved.value, index.resolve(period.same_quarter_last_year()).value)
    if qoq is not None:
        payload["qoqChange"] = qoq
    if yoy is not None:
        payload["yoyChange"] = yoy
    return payload
