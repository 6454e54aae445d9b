import re
from dataclasses import dataclass
from datetime import date
from collections.abc import Iterable
from typing import Optional


_NON_PERIOD_CHARS = re.compile(r"[^0-9Qq]")
_CANONICAL_PERIOD = re.compile(r"^(\d{4})Q([1-4])$")
_QUARTER_END: dict[int, tuple[int, int]] = {1: (3, 31), 2: (6, 30), 3: (9, 30), 4: (12, 31)}


@dataclass(frozen=True, order=True)
class CanonicalPeriod:
    """Fiscal quarter identifier, ordered by year then quarter."""

    year: int
    quarter: int

    def __post_init__(self) -> None:
        if not 1 <= self.quarter <= 4:
            raise ValueError(f"quarter must be between 1 and 4: {self.quarter}")

    def __str__(self) -> str:
        return f"{self.year}Q{self.quarter}"

    @classmethod
    def parse(cls, raw: str) -> "CanonicalPeriod":
        period = normalize_period(raw)
        if period is None:
            raise ValueError(f"period must look like YYYYQ1-4: {raw!r}")
        return period

    def previous(self) -> "CanonicalPeriod":
        return self.add(-1)

    def same_quarter_last_year(self) -> "CanonicalPeriod":
        return CanonicalPeriod(self.year - 1, self.quarter)

    def add(self, quarters: int) -> "CanonicalPeriod":
        index = self.year * 4 + (self.quarter - 1) + quarters
        return CanonicalPeriod(index // 4, index % 4 + 1)

    def quarter_end_date(self) -> date:
        month, day = _QUARTER_END[self.quarter]
        return date(self.year, month, day)


def normalize_period(raw: object) -> Optional[CanonicalPeriod]:
    """Reduce a free-form label such as "2024 Q2" or "2024-q2" to a canonical period.

    Everything except digits and the letter Q is stripped before matching, so
    labels without a four-digit year ("Q2") do not normalize and yield None.
    """
    if isinstance(raw, CanonicalPeriod):
        return raw
    if not isinstance(raw, str) or not raw:
        return None

    cleaned = _NON_PERIOD_CHARS.sub("", raw).upper()
    match = _CANONICAL_PERIOD.fullmatch(cleaned)
    if not match:
        return None
    return CanonicalPeriod(int(match.group(1)), int(match.group(2)))


def trailing_window(period: CanonicalPeriod, size: int = 4) -> list[CanonicalPeriod]:
    window = [period]
    current = period
    for _ in range(size - 1):
        current = current.previous()
        window.append(current)
    return window


def sort_periods(periods: Iterable[CanonicalPeriod]) -> list[CanonicalPeriod]:
    return sorted(periods)


def in_range(
    period: CanonicalPeriod,
    period_from: Optional[CanonicalPeriod] = None,
    period_to: Optional[CanonicalPeriod] = None,
) -> bool:
    if period_from is not None and period < period_from:
        return False
    if period_to is not None and period > period_to:
        return False
    return True
