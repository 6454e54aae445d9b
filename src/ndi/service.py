import logging
from collections.abc import Callable
from typing import Optional, Protocol, TypeVar

from src.ndi.cache import TTLCache, build_cache_key
from src.ndi.config import Settings
from src.ndi.contracts import MetricPoint
from src.ndi.history import build_breakdown_with_history
from src.ndi.periods import CanonicalPeriod
from src.ndi.resolver import check_integrity
from src.ndi.segments import build_demographic_breakdown
from src.ndi.series import build_calculation, build_series, build_summary, latest_period


LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class MetricPointReaderProtocol(Protocol):
    def read_metric_points(
        self,
        metric: str,
        period_from: Optional[CanonicalPeriod] = None,
        period_to: Optional[CanonicalPeriod] = None,
    ) -> list[MetricPoint]: ...


class NdiService:
    """Reads one snapshot per request and turns it into the NDI output records.

    Windows such as rolling 4Q and YoY reach outside the requested period, so
    the full metric snapshot is read and ranges are applied after annotation.
    """

    def __init__(
        self,
        repository: MetricPointReaderProtocol,
        settings: Optional[Settings] = None,
        cache: Optional[TTLCache] = None,
    ) -> None:
        self.repository = repository
        self.settings = settings or Settings()
        self.cache = cache

    @property
    def metric(self) -> str:
        return self.settings.metric

    def _snapshot(self) -> list[MetricPoint]:
        points = self.repository.read_metric_points(self.metric)
        check_integrity(points, strict=self.settings.strict_integrity)
        return points

    def _cached(
        self,
        view: str,
        compute: Callable[[], T],
        period_range: Optional[tuple[Optional[CanonicalPeriod], Optional[CanonicalPeriod]]] = None,
    ) -> T:
        if self.cache is None:
            return compute()
        key = build_cache_key(self.metric, period_range, {"view": view})
        return self.cache.get_or_compute(key, compute)

    def summary(self, period: CanonicalPeriod) -> dict[str, object]:
        return self._cached(
            "summary",
            lambda: build_summary(self._snapshot(), period, self.metric),
            (period, period),
        )

    def series(
        self,
        period_from: Optional[CanonicalPeriod] = None,
        period_to: Optional[CanonicalPeriod] = None,
    ) -> list[dict[str, object]]:
        def compute() -> list[dict[str, object]]:
            result = build_series(self._snapshot(), self.metric, (period_from, period_to))
            return result.to_dicts()

        return self._cached("series", compute, (period_from, period_to))

    def breakdown(self, period: CanonicalPeriod) -> list[dict[str, object]]:
        return self._cached(
            "breakdown",
            lambda: build_breakdown_with_history(self._snapshot(), period),
            (period, period),
        )

    def demographics(self, period: CanonicalPeriod) -> dict[str, object]:
        return self._cached(
            "demographics",
            lambda: build_demographic_breakdown(self._snapshot(), period),
            (period, period),
        )

    def calculation(self, period: CanonicalPeriod) -> dict[str, object]:
        return self._cached(
            "calculation",
            lambda: build_calculation(self._snapshot(), period, self.metric),
            (period, period),
        )

    def dashboard_view(self, period: Optional[CanonicalPeriod] = None) -> dict[str, object]:
        """Build every dashboard record from one snapshot; ``period`` defaults to the latest."""

        def compute() -> dict[str, object]:
            snapshot = self._snapshot()
            target = period or latest_period(snapshot)
            if target is None:
                return {"period": None}
            return {
                "period": str(target),
                "summary": build_summary(snapshot, target, self.metric),
                "series": build_series(snapshot, self.metric).to_dicts(),
                "demographics": build_demographic_breakdown(snapshot, target),
                "breakdown": build_breakdown_with_history(snapshot, target),
            }

        return self._cached("dashboard", compute, (period, period))

    def latest_period(self) -> Optional[CanonicalPeriod]:
        return latest_period(self._snapshot())

    def invalidate(self) -> None:
        if self.cache is not None:
            LOGGER.info("clearing NDI response cache")
            self.cache.clear()
