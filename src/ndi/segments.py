"""Demographic breakdown of BREAKDOWN rows per (dimension, segment).

Dimension labels arrive as free text from survey exports ("Kön", "Enhet",
"Riksbyggen byggt: Ja", ...). They are classified through DIMENSION_SYNONYMS,
an ordered table of case-insensitive substrings; the first match wins, so the
more specific custom dimensions are listed before the generic ones. New labels
or locales are added to the tables, not to the matching code.
"""

import math
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Optional

from src.ndi.contracts import MetricPoint, ResolvedValue, Source
from src.ndi.deltas import percent_change
from src.ndi.periods import CanonicalPeriod, normalize_period
from src.ndi.resolver import weighted_mean


class Dimension(str, Enum):
    GENDER = "Gender"
    AGE = "Age"
    DEVICE = "Device"
    OS = "OS"
    BROWSER = "Browser"
    BUILT = "Built"
    MANAGED = "Managed"
    INFORMATION_FOUND = "InformationFound"


DIMENSION_SYNONYMS: tuple[tuple[str, Dimension], ...] = (
    ("byggt", Dimension.BUILT),
    ("förvaltar", Dimension.MANAGED),
    ("information", Dimension.INFORMATION_FOUND),
    ("kön", Dimension.GENDER),
    ("gender", Dimension.GENDER),
    ("sex", Dimension.GENDER),
    ("ålder", Dimension.AGE),
    ("age", Dimension.AGE),
    ("enhet", Dimension.DEVICE),
    ("device", Dimension.DEVICE),
    ("webbläsare", Dimension.BROWSER),
    ("browser", Dimension.BROWSER),
    ("operativsystem", Dimension.OS),
    ("platform", Dimension.OS),
    ("os", Dimension.OS),
)

_YES_NO_ALIASES: dict[str, str] = {"ja": "Yes", "yes": "Yes", "nej": "No", "no": "No"}

SEGMENT_ALIASES: dict[Dimension, dict[str, str]] = {
    Dimension.GENDER: {
        "man": "Male",
        "male": "Male",
        "män": "Male",
        "kvinna": "Female",
        "female": "Female",
        "kvinnor": "Female",
    },
    Dimension.DEVICE: {
        "mobile": "Mobile",
        "mobil": "Mobile",
        "desktop": "Desktop",
        "dator": "Desktop",
    },
    Dimension.OS: {"android": "Android", "ios": "iOS", "iphone": "iOS"},
    Dimension.BROWSER: {
        "chrome": "Chrome",
        "safari": "Safari",
        "edge": "Edge",
        "microsoft edge": "Edge",
    },
    Dimension.BUILT: _YES_NO_ALIASES,
    Dimension.MANAGED: _YES_NO_ALIASES,
    Dimension.INFORMATION_FOUND: {
        **_YES_NO_ALIASES,
        "ja/ja, delvis": "Yes",
        "ja, delvis": "Partially",
        "yes, partially": "Partially",
        "delvis": "Partially",
        "partially": "Partially",
    },
}

# (minuend, subtrahend): delta = first - second, in percentage points.
BINARY_DIMENSION_PAIRS: dict[Dimension, tuple[str, str]] = {
    Dimension.GENDER: ("Male", "Female"),
    Dimension.DEVICE: ("Desktop", "Mobile"),
    Dimension.OS: ("iOS", "Android"),
    Dimension.BUILT: ("Yes", "No"),
    Dimension.MANAGED: ("Yes", "No"),
}

SegmentTable = dict[str, dict[str, ResolvedValue]]


@dataclass(frozen=True)
class SegmentKey:
    dimension: str
    segment: str


def round_half_up(value: Optional[float], places: int = 2) -> Optional[float]:
    """Round ties away from zero (71.005 -> 71.01), unlike the built-in round()."""
    if value is None or not math.isfinite(value):
        return None
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def classify_dimension(label: Optional[str]) -> Optional[str]:
    if label is None or not label.strip():
        return None
    lowered = label.strip().lower()
    for pattern, dimension in DIMENSION_SYNONYMS:
        if pattern in lowered:
            return dimension.value
    return label.strip()


def canonical_segment(dimension: str, label: str) -> str:
    text = label.strip()
    try:
        aliases = SEGMENT_ALIASES.get(Dimension(dimension), {})
    except ValueError:
        return text
    return aliases.get(text.lower(), text)


def segment_key(point: MetricPoint) -> Optional[SegmentKey]:
    if point.group_c is None or not point.group_c.strip():
        return None
    dimension = classify_dimension(point.group_b)
    if dimension is None:
        return None
    return SegmentKey(dimension=dimension, segment=canonical_segment(dimension, point.group_c))


def _bucket(
    points: Iterable[MetricPoint], period: CanonicalPeriod
) -> dict[SegmentKey, list[MetricPoint]]:
    buckets: dict[SegmentKey, list[MetricPoint]] = {}
    for point in points:
        if point.superseded or point.source != Source.BREAKDOWN:
            continue
        if normalize_period(point.period) != period:
            continue
        key = segment_key(point)
        if key is None:
            continue
        buckets.setdefault(key, []).append(point)
    return buckets


def resolve_segment(points: Sequence[MetricPoint]) -> ResolvedValue:
    if not points:
        return ResolvedValue(value=None, count=0.0, method="no data")
    mean, count, weighted = weighted_mean(points)
    kind = "weighted" if weighted else "unweighted"
    return ResolvedValue(
        value=round_half_up(mean),
        count=count,
        method=f"{kind} segment mean of {len(points)} rows",
    )


def breakdown(points: Iterable[MetricPoint], period: CanonicalPeriod) -> SegmentTable:
    table: SegmentTable = {}
    for key, rows in _bucket(points, period).items():
        table.setdefault(key.dimension, {})[key.segment] = resolve_segment(rows)
    return table


def pairwise_delta(dimension: str, segments: Mapping[str, ResolvedValue]) -> Optional[float]:
    try:
        pair = BINARY_DIMENSION_PAIRS.get(Dimension(dimension))
    except ValueError:
        return None
    if pair is None:
        return None
    first = segments.get(pair[0])
    second = segments.get(pair[1])
    if first is None or second is None or first.value is None or second.value is None:
        return None
    return round_half_up(first.value - second.value)


def _segment_payload(
    current: ResolvedValue, previous: Optional[ResolvedValue]
) -> dict[str, object]:
    payload: dict[str, object] = {
        "ndi": current.value,
        "count": int(round_half_up(current.count, 0) or 0),
    }
    if previous is None or previous.value is None:
        return payload
    payload["prevQuarterValue"] = previous.value
    if previous.value != 0 and current.value is not None:
        payload["qoqChange"] = percent_change(current.value, previous.value)
    return payload


def _ordered_segments(dimension: str, segments: Mapping[str, ResolvedValue]) -> list[str]:
    try:
        pair = BINARY_DIMENSION_PAIRS.get(Dimension(dimension))
    except ValueError:
        pair = None
    leading = list(pair) if pair else []
    return leading + sorted(name for name in segments if name not in leading)


def build_demographic_breakdown(
    points: Sequence[MetricPoint], period: CanonicalPeriod
) -> dict[str, object]:
    current = breakdown(points, period)
    previous = breakdown(points, period.previous())

    for dimension in BINARY_DIMENSION_PAIRS:
        current.setdefault(dimension.value, {})

    fixed_order = [dimension.value for dimension in Dimension]
    dimension_names = [name for name in fixed_order if name in current] + sorted(
        name for name in current if name not in fixed_order
    )

    empty = ResolvedValue(value=None, count=0.0, method="no data")
    dimensions: dict[str, object] = {}
    for name in dimension_names:
        segments = current[name]
        previous_segments = previous.get(name, {})
        entry: dict[str, object] = {
            "segments": {
                segment: _segment_payload(
                    segments.get(segment, empty), previous_segments.get(segment)
                )
                for segment in _ordered_segments(name, segments)
            }
        }
        if name in {dimension.value for dimension in BINARY_DIMENSION_PAIRS}:
            entry["delta"] = pairwise_delta(name, segments)
        dimensions[name] = entry

    return {"period": str(period), "dimensions": dimensions}
