from collections.abc import Callable
from dataclasses import dataclass
from typing import Optional

from src.ndi.contracts import ResolvedValue
from src.ndi.periods import CanonicalPeriod, trailing_window


ResolverFn = Callable[[CanonicalPeriod], ResolvedValue]


@dataclass(frozen=True)
class TemporalDeltas:
    current: Optional[float]
    qoq: Optional[float]
    yoy: Optional[float]
    rolling4q: Optional[float]
    prev_quarter_value: Optional[float]
    prev_year_value: Optional[float]


def percent_change(current: Optional[float], previous: Optional[float]) -> Optional[float]:
    """Signed percentage change; None means "no prior data", 0.0 a zero base."""
    if current is None or previous is None:
        return None
    if previous == 0:
        return 0.0
    return (current - previous) / previous * 100


def rolling_average(resolver_fn: ResolverFn, period: CanonicalPeriod, size: int = 4) -> Optional[float]:
    values = [
        resolved.value
        for resolved in (resolver_fn(candidate) for candidate in trailing_window(period, size))
        if resolved.value is not None
    ]
    if not values:
        return None
    return sum(values) / len(values)


def compute_deltas(period: CanonicalPeriod, resolver_fn: ResolverFn) -> TemporalDeltas:
    current = resolver_fn(period).value
    prev_quarter_value = resolver_fn(period.previous()).value
    prev_year_value = resolver_fn(period.same_quarter_last_year()).value

    return TemporalDeltas(
        current=current,
        qoq=percent_change(current, prev_quarter_value),
        yoy=percent_change(current, prev_year_value),
        rolling4q=rolling_average(resolver_fn, period),
        prev_quarter_value=prev_quarter_value,
        prev_year_value=prev_year_value,
    )
