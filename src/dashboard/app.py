import importlib
import logging
import math
import os
from collections.abc import Mapping
from typing import Optional

LOGGER = logging.getLogger(__name__)

PLACEHOLDER_STRINGS = {"", "-", "n/a", "na", "none", "null", "unknown"}
SUMMARY_CARD_KEYS: tuple[tuple[str, str], ...] = (
    ("total", "NDI"),
    ("qoqChange", "QoQ"),
    ("yoyChange", "YoY"),
    ("rolling4q", "Rolling 4Q"),
    ("totalResponses", "Responses"),
)


def _is_placeholder(value: object) -> bool:
    return isinstance(value, str) and value.strip().lower() in PLACEHOLDER_STRINGS


def _metric(value: object, status: str = "ok", reason: Optional[str] = None) -> dict[str, object]:
    return {"value": value, "status": status, "reason": reason}


def _to_float(value: object) -> Optional[float]:
    if value is None or isinstance(value, bool) or _is_placeholder(value):
        return None
    if isinstance(value, (int, float)):
        raw = float(value)
    elif isinstance(value, str):
        try:
            raw = float(value.strip().replace(",", ""))
        except ValueError:
            return None
    else:
        return None
    return raw if math.isfinite(raw) else None


def format_index(value: object) -> dict[str, object]:
    number = _to_float(value)
    if number is None:
        return _metric("n/a", status="unknown", reason="missing_or_placeholder")
    return _metric(f"{number:.1f}")


def format_change(value: object) -> dict[str, object]:
    number = _to_float(value)
    if number is None:
        return _metric("n/a", status="unknown", reason="no_prior_data")
    return _metric(f"{number:+.1f}%")


def format_points(value: object) -> dict[str, object]:
    number = _to_float(value)
    if number is None:
        return _metric("n/a", status="unknown", reason="missing_segment")
    return _metric(f"{number:+.2f} pp")


def format_count(value: object) -> dict[str, object]:
    number = _to_float(value)
    if number is None:
        return _metric("n/a", status="unknown", reason="missing_or_placeholder")
    return _metric(int(round(number)))


def _demographic_rows(demographics: Mapping[str, object]) -> list[dict[str, object]]:
    dimensions = demographics.get("dimensions", {})
    if not isinstance(dimensions, Mapping):
        return []
    rows: list[dict[str, object]] = []
    for dimension, entry in dimensions.items():
        if not isinstance(entry, Mapping):
            continue
        segments = entry.get("segments", {})
        if not isinstance(segments, Mapping):
            continue
        for segment, payload in segments.items():
            if not isinstance(payload, Mapping):
                continue
            rows.append(
                {
                    "dimension": dimension,
                    "segment": segment,
                    "ndi": format_index(payload.get("ndi"))["value"],
                    "count": format_count(payload.get("count"))["value"],
                    "qoq": format_change(payload.get("qoqChange"))["value"],
                }
            )
    return rows


def _dimension_deltas(demographics: Mapping[str, object]) -> dict[str, dict[str, object]]:
    dimensions = demographics.get("dimensions", {})
    if not isinstance(dimensions, Mapping):
        return {}
    return {
        str(dimension): format_points(entry.get("delta"))
        for dimension, entry in dimensions.items()
        if isinstance(entry, Mapping) and "delta" in entry
    }


def build_ndi_cards(view: Mapping[str, object]) -> dict[str, object]:
    """Format the NDI records of ``view`` for display; absent values render as "n/a"."""
    summary = view.get("summary", {})
    if not isinstance(summary, Mapping):
        summary = {}

    cards: dict[str, object] = {
        "period": str(summary.get("period") or view.get("period") or "n/a"),
        "total": format_index(summary.get("total")),
        "qoqChange": format_change(summary.get("qoqChange")),
        "yoyChange": format_change(summary.get("yoyChange")),
        "rolling4q": format_index(summary.get("rolling4q")),
        "totalResponses": format_count(summary.get("totalResponses")),
    }

    series = view.get("series", [])
    cards["series_rows"] = [
        {
            "period": row.get("period"),
            "date": row.get("date"),
            "value": _to_float(row.get("value")),
            "r4": _to_float(row.get("r4")),
            "yoy": _to_float(row.get("yoy")),
        }
        for row in (series if isinstance(series, list) else [])
        if isinstance(row, Mapping)
    ]

    demographics = view.get("demographics", {})
    if not isinstance(demographics, Mapping):
        demographics = {}
    cards["demographic_rows"] = _demographic_rows(demographics)
    cards["dimension_deltas"] = _dimension_deltas(demographics)

    breakdown = view.get("breakdown", [])
    cards["breakdown_rows"] = [
        {
            "groupA": row.get("groupA", ""),
            "groupB": row.get("groupB", ""),
            "groupC": row.get("groupC", ""),
            "value": format_index(row.get("value"))["value"],
            "qoq": format_change(row.get("qoqChange"))["value"],
            "yoy": format_change(row.get("yoyChange"))["value"],
        }
        for row in (breakdown if isinstance(breakdown, list) else [])
        if isinstance(row, Mapping)
    ]

    cards["has_data"] = cards["total"]["status"] == "ok"  # type: ignore[index]
    cards["error"] = view.get("error")
    return cards


def build_response_cache(ttl_seconds: float) -> Optional[object]:
    """Process-wide cache for dashboard views; a non-positive TTL disables caching."""
    if ttl_seconds <= 0:
        return None
    cache_module = importlib.import_module("src.ndi.cache")
    return cache_module.TTLCache(ttl_seconds)


def load_ndi_view(dsn: str, period: Optional[str] = None, cache: Optional[object] = None) -> dict[str, object]:
    service_module = importlib.import_module("src.ndi.service")
    config = importlib.import_module("src.ndi.config")
    periods = importlib.import_module("src.ndi.periods")
    postgres_repository = importlib.import_module("src.ingestion.postgres_repository")

    service = service_module.NdiService(
        repository=postgres_repository.PostgresRepository(dsn=dsn),
        settings=config.load_settings(),
        cache=cache,
    )
    try:
        target = periods.CanonicalPeriod.parse(period) if period else None
        view = dict(service.dashboard_view(target))
        view["error"] = None
        return view
    except Exception as exc:  # repository/driver failures are shown, not raised
        LOGGER.warning("failed to load NDI view: %s", exc)
        return {"period": period, "error": str(exc)}


def run_streamlit_app(dsn: str, period: Optional[str] = None, configure_page: bool = True) -> None:
    st = importlib.import_module("streamlit")
    config = importlib.import_module("src.ndi.config")

    if configure_page:
        st.set_page_config(page_title="NDI Dashboard", layout="wide")
    st.title("NDI Dashboard")

    # st.cache_resource keeps one cache per TTL across reruns and sessions
    cache = st.cache_resource(build_response_cache)(config.load_settings().cache_ttl_seconds)
    view = load_ndi_view(dsn, period, cache=cache)
    cards = build_ndi_cards(view)

    if cards["error"]:
        st.error(f"NDI data unavailable: {cards['error']}")
        return
    if not cards["has_data"]:
        st.info("No NDI data found for the selected period.")
        return

    st.caption(f"Period {cards['period']}")
    cols = st.columns(len(SUMMARY_CARD_KEYS))
    for col, (key, label) in zip(cols, SUMMARY_CARD_KEYS):
        col.metric(label, cards[key]["value"])  # type: ignore[index]

    series_rows = cards.get("series_rows", [])
    if isinstance(series_rows, list) and series_rows:
        st.subheader("Series")
        st.line_chart(
            {
                "NDI": [row["value"] for row in series_rows],
                "Rolling 4Q": [row["r4"] for row in series_rows],
            }
        )
        st.dataframe(series_rows, use_container_width=True)

    deltas = cards.get("dimension_deltas", {})
    if isinstance(deltas, Mapping) and deltas:
        st.subheader("Segment gaps")
        delta_cols = st.columns(len(deltas))
        for col, (dimension, metric) in zip(delta_cols, deltas.items()):
            col.metric(dimension, metric["value"])

    demographic_rows = cards.get("demographic_rows", [])
    if isinstance(demographic_rows, list) and demographic_rows:
        st.subheader("Demographics")
        st.dataframe(demographic_rows, use_container_width=True)

    breakdown_rows = cards.get("breakdown_rows", [])
    if isinstance(breakdown_rows, list) and breakdown_rows:
        st.subheader("Breakdown with history")
        st.dataframe(breakdown_rows, use_container_width=True)


def main() -> None:
    dsn = os.getenv("SUPABASE_DB_URL") or os.getenv("DATABASE_URL")
    if not dsn:
        raise ValueError("SUPABASE_DB_URL or DATABASE_URL is required")
    run_streamlit_app(dsn)


if __name__ == "__main__":
    main()
