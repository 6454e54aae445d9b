import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from src.ndi.periods import normalize_period


class Source(str, Enum):
    AGGREGATED = "AGGREGATED"
    BREAKDOWN = "BREAKDOWN"


IdentityKey = tuple[str, str, str, Optional[str], Optional[str], Optional[str]]


@dataclass(frozen=True)
class MetricPoint:
    period: str
    metric: str
    value: float
    source: Source
    weight: Optional[float] = None
    group_a: Optional[str] = None
    group_b: Optional[str] = None
    group_c: Optional[str] = None
    superseded: bool = False

    def identity_key(self) -> IdentityKey:
        canonical = normalize_period(self.period)
        period_key = str(canonical) if canonical is not None else self.period
        return (
            period_key,
            self.metric,
            self.source.value,
            self.group_a,
            self.group_b,
            self.group_c,
        )

    def group_fields(self) -> dict[str, str]:
        fields = {"groupA": self.group_a, "groupB": self.group_b, "groupC": self.group_c}
        return {key: value for key, value in fields.items() if value}

    def group_sort_key(self) -> tuple[str, str, str]:
        return (self.group_a or "", self.group_b or "", self.group_c or "")

    def supersede(self) -> "MetricPoint":
        return replace(self, superseded=True)

    @classmethod
    def from_mapping(cls, row: dict[str, object]) -> "MetricPoint":
        source_raw = str(row.get("source", "")).strip().upper()
        try:
            source = Source(source_raw)
        except ValueError as exc:
            raise ValueError(f"unsupported source: {row.get('source')!r}") from exc

        weight = row.get("weight")
        return cls(
            period=str(row.get("period", "")),
            metric=str(row.get("metric", "NDI")),
            value=_finite_number(row.get("value"), "value"),
            source=source,
            weight=None if weight is None else _finite_number(weight, "weight"),
            group_a=_optional_text(row.get("group_a", row.get("groupA"))),
            group_b=_optional_text(row.get("group_b", row.get("groupB"))),
            group_c=_optional_text(row.get("group_c", row.get("groupC"))),
            superseded=bool(row.get("superseded", False)),
        )


@dataclass(frozen=True)
class ResolvedValue:
    value: Optional[float]
    count: float
    method: str

    def to_dict(self) -> dict[str, object]:
        return {"value": self.value, "count": self.count, "method": self.method}


def _optional_text(value: object) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _finite_number(raw: object, field_name: str) -> float:
    if isinstance(raw, bool) or not isinstance(raw, (int, float, str)):
        raise ValueError(f"{field_name} must be numeric: {raw!r}")
    try:
        number = float(raw)
    except ValueError as exc:
        raise ValueError(f"{field_name} must be numeric: {raw!r}") from exc
    if not math.isfinite(number):
        raise ValueError(f"{field_name} must be a finite number: {raw!r}")
    return number
