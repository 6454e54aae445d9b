from __future__ import annotations

import logging
import os
from collections.abc import Mapping

import streamlit as st

from src.dashboard.app import run_streamlit_app
from src.ndi.periods import normalize_period

LOGGER = logging.getLogger(__name__)
SESSION_KEY = "ndi_period"


def _query_param_to_text(raw_value: object) -> str:
    if isinstance(raw_value, list):
        raw_value = raw_value[0] if raw_value else None
    return str(raw_value or "").strip()


def resolve_period(
    query_params: Mapping[str, object],
    session_state: Mapping[str, object],
) -> tuple[str | None, str | None]:
    requested = query_params.get("period")
    if requested is not None:
        requested_text = _query_param_to_text(requested)
        period = normalize_period(requested_text)
        if period is None:
            if requested_text:
                return None, f"Unknown period '{requested_text}'. Falling back to the latest period."
            return None, None
        return str(period), None

    current = session_state.get(SESSION_KEY)
    period = normalize_period(current)
    if period is not None:
        return str(period), None

    return None, None


def main() -> None:
    dsn = os.getenv("SUPABASE_DB_URL") or os.getenv("DATABASE_URL")
    if not dsn:
        raise ValueError("SUPABASE_DB_URL or DATABASE_URL is required")

    period, warning_message = resolve_period(st.query_params, st.session_state)

    st.set_page_config(page_title="NDI", layout="wide")

    if warning_message:
        LOGGER.warning(warning_message)
        st.warning(warning_message)

    if period is not None:
        st.session_state[SESSION_KEY] = period
        st.query_params["period"] = period

    run_streamlit_app(dsn, period=period, configure_page=False)


if __name__ == "__main__":
    main()
