import logging
import time
from collections.abc import Callable, Mapping, Sequence
from typing import Optional, TypeVar

from src.ndi.periods import CanonicalPeriod


LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], float]


def build_cache_key(
    metric: str,
    period_range: Optional[tuple[Optional[CanonicalPeriod], Optional[CanonicalPeriod]]] = None,
    filters: Optional[Mapping[str, object]] = None,
) -> str:
    """Stable key for a request; list-valued filters are sorted so their order does not matter."""
    period_from, period_to = period_range or (None, None)
    parts = [
        f"metric={metric}",
        f"from={period_from or ''}",
        f"to={period_to or ''}",
    ]
    for name in sorted(filters or {}):
        value = (filters or {})[name]
        if isinstance(value, Sequence) and not isinstance(value, str):
            rendered = ",".join(sorted(str(item) for item in value))
        else:
            rendered = "" if value is None else str(value)
        parts.append(f"{name}={rendered}")
    return "|".join(parts)


class TTLCache:
    def __init__(self, ttl_seconds: float, clock: Clock = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[float, object]] = {}

    @property
    def enabled(self) -> bool:
        return self.ttl_seconds > 0

    def get(self, key: str) -> Optional[object]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            del self._entries[key]
            return None
        return value

    def get_or_compute(self, key: str, compute: Callable[[], T]) -> T:
        if not self.enabled:
            return compute()

        cached = self.get(key)
        if cached is not None:
            LOGGER.debug("cache hit for %s", key)
            return cached  # type: ignore[return-value]

        value = compute()
        self._entries[key] = (self._clock(), value)
        return value

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
