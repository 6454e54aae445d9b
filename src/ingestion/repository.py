from collections.abc import Iterable
from dataclasses import dataclass
from typing import Optional

from src.ndi.contracts import IdentityKey, MetricPoint
from src.ndi.periods import CanonicalPeriod, in_range, normalize_period


@dataclass(frozen=True)
class UpsertResult:
    status: str
    revision_number: int


class InMemoryMetricPointRepository:
    def __init__(self, points: Optional[Iterable[MetricPoint]] = None) -> None:
        self.points: list[MetricPoint] = []
        self._revisions: dict[IdentityKey, int] = {}
        for point in points or []:
            self.upsert(point)

    def _active_index(self, key: IdentityKey) -> Optional[int]:
        for position, existing in enumerate(self.points):
            if not existing.superseded and existing.identity_key() == key:
                return position
        return None

    def upsert(self, point: MetricPoint) -> UpsertResult:
        """Revision numbers count changes of the active row; a superseded key starts again at 1."""
        key = point.identity_key()
        position = self._active_index(key)
        if position is None:
            self.points.append(point)
            self._revisions[key] = 1
            return UpsertResult(status="inserted", revision_number=1)

        existing = self.points[position]
        if existing.value == point.value and existing.weight == point.weight:
            return UpsertResult(status="noop", revision_number=self._revisions[key])

        self.points[position] = point
        self._revisions[key] += 1
        return UpsertResult(status="revision", revision_number=self._revisions[key])

    def upsert_metric_points(self, points: Iterable[MetricPoint]) -> list[UpsertResult]:
        return [self.upsert(point) for point in points]

    def supersede_period(self, period: CanonicalPeriod, metric: str) -> int:
        superseded = 0
        for position, point in enumerate(self.points):
            if point.superseded or point.metric != metric:
                continue
            if normalize_period(point.period) != period:
                continue
            self.points[position] = point.supersede()
            self._revisions.pop(point.identity_key(), None)
            superseded += 1
        return superseded

    def read_metric_points(
        self,
        metric: str,
        period_from: Optional[CanonicalPeriod] = None,
        period_to: Optional[CanonicalPeriod] = None,
    ) -> list[MetricPoint]:
        windowed = period_from is not None or period_to is not None
        rows: list[MetricPoint] = []
        for point in self.points:
            if point.superseded or point.metric != metric:
                continue
            period = normalize_period(point.period)
            if period is None:
                # unparseable rows are surfaced to the series builder, which tallies them
                if not windowed:
                    rows.append(point)
                continue
            if in_range(period, period_from, period_to):
                rows.append(point)
        return rows

    def snapshot_counts(self) -> dict[str, int]:
        superseded = sum(1 for point in self.points if point.superseded)
        return {"metric_points": len(self.points) - superseded, "superseded_points": superseded}
