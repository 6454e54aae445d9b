"""Scalar value resolution for a single canonical period.

AGGREGATED rows always win over BREAKDOWN rows. Several AGGREGATED rows are
repeated "Index" lines of one source document and are averaged with equal
weight; BREAKDOWN rows fall back to a weighted mean whenever any row carries a
positive weight.
"""

import logging
import math
from collections import Counter
from collections.abc import Iterable, Sequence
from typing import Optional

from src.ndi.contracts import IdentityKey, MetricPoint, ResolvedValue, Source


LOGGER = logging.getLogger(__name__)

PERCENT_FLOOR = 0.0
PERCENT_CEILING = 100.0


class DuplicateMetricPointError(ValueError):
    def __init__(self, keys: Sequence[IdentityKey]) -> None:
        self.keys = list(keys)
        preview = ", ".join("|".join(str(part or "") for part in key) for key in self.keys[:3])
        super().__init__(f"duplicate non-superseded metric points for {len(self.keys)} key(s): {preview}")


def clamp_percent(value: Optional[float]) -> Optional[float]:
    if value is None or not math.isfinite(value):
        return None
    return max(PERCENT_FLOOR, min(PERCENT_CEILING, value))


def weighted_mean(points: Sequence[MetricPoint]) -> tuple[Optional[float], float, bool]:
    """Return (mean, count, weighted) for breakdown-style rows.

    The weighted branch fires as soon as one row has weight > 0; rows without a
    weight then contribute zero weight. ``count`` is the weight sum in that case
    and the row count otherwise.
    """
    if not points:
        return None, 0.0, False

    has_weights = any(point.weight is not None and point.weight > 0 for point in points)
    if not has_weights:
        return sum(point.value for point in points) / len(points), float(len(points)), False

    total_weight = sum(point.weight or 0.0 for point in points)
    if total_weight == 0:
        return None, 0.0, True
    numerator = sum(point.value * (point.weight or 0.0) for point in points)
    return numerator / total_weight, total_weight, True


def ensure_metric(points: Iterable[MetricPoint], metric: Optional[str]) -> None:
    if metric is None:
        return
    foreign = sorted({point.metric for point in points if point.metric != metric})
    if foreign:
        raise ValueError(f"resolver for metric {metric!r} received rows of {foreign}")


def resolve_value(points: Sequence[MetricPoint], metric: Optional[str] = None) -> ResolvedValue:
    ensure_metric(points, metric)
    active = [point for point in points if not point.superseded]
    aggregated = [point for point in active if point.source == Source.AGGREGATED]
    breakdown = [point for point in active if point.source == Source.BREAKDOWN]

    if aggregated:
        mean = sum(point.value for point in aggregated) / len(aggregated)
        if len(aggregated) == 1:
            method = "direct aggregated value"
        else:
            method = f"mean of {len(aggregated)} aggregated rows"
        return ResolvedValue(value=clamp_percent(mean), count=float(len(aggregated)), method=method)

    if breakdown:
        mean, count, weighted = weighted_mean(breakdown)
        kind = "weighted" if weighted else "unweighted"
        return ResolvedValue(
            value=clamp_percent(mean),
            count=count,
            method=f"{kind} mean of {len(breakdown)} breakdown rows",
        )

    return ResolvedValue(value=None, count=0.0, method="no data")


def find_duplicate_keys(points: Iterable[MetricPoint]) -> list[IdentityKey]:
    counts = Counter(point.identity_key() for point in points if not point.superseded)
    return sorted(
        (key for key, count in counts.items() if count > 1),
        key=lambda key: tuple(part or "" for part in key),
    )


def check_integrity(points: Iterable[MetricPoint], strict: bool = False) -> list[IdentityKey]:
    duplicates = find_duplicate_keys(points)
    for key in duplicates:
        LOGGER.warning("duplicate identity key among non-superseded metric points: %s", key)
    if duplicates and strict:
        raise DuplicateMetricPointError(duplicates)
    return duplicates
