from __future__ import annotations

import importlib


router = importlib.import_module("streamlit_app")


class FakeStreamlit:
    def __init__(self, query_params: dict[str, object] | None = None, session_state: dict[str, object] | None = None):
        self.query_params = query_params or {}
        self.session_state = session_state or {}
        self.warnings: list[str] = []
        self.page_config_calls: list[dict[str, object]] = []

    def set_page_config(self, **kwargs):
        self.page_config_calls.append(kwargs)

    def warning(self, message: str):
        self.warnings.append(message)


def test_resolve_period_defaults_to_latest_when_nothing_selected():
    period, warning = router.resolve_period({}, {})

    assert period is None
    assert warning is None


def test_resolve_period_normalizes_query_param():
    period, warning = router.resolve_period({"period": ["2024 q2"]}, {})

    assert period == "2024Q2"
    assert warning is None


def test_resolve_period_warns_on_unknown_query_param():
    period, warning = router.resolve_period({"period": "soon"}, {})

    assert period is None
    assert warning is not None
    assert "Unknown period 'soon'" in warning


def test_resolve_period_uses_session_state_when_query_missing():
    period, warning = router.resolve_period({}, {"ndi_period": "2023Q4"})

    assert period == "2023Q4"
    assert warning is None


def test_main_renders_selected_period(monkeypatch):
    fake_st = FakeStreamlit(query_params={"period": "2024Q1"})
    calls: list[tuple[str, str | None, bool]] = []

    monkeypatch.setenv("DATABASE_URL", "postgres://example")
    monkeypatch.setattr(router, "st", fake_st)
    monkeypatch.setattr(
        router,
        "run_streamlit_app",
        lambda dsn, period=None, configure_page=True: calls.append((dsn, period, configure_page)),
    )

    router.main()

    assert calls == [("postgres://example", "2024Q1", False)]
    assert fake_st.session_state["ndi_period"] == "2024Q1"
    assert fake_st.page_config_calls == [{"page_title": "NDI", "layout": "wide"}]


def test_main_falls_back_to_latest_period_on_unknown_query(monkeypatch):
    fake_st = FakeStreamlit(query_params={"period": "later"})
    calls: list[str | None] = []

    monkeypatch.setenv("DATABASE_URL", "postgres://example")
    monkeypatch.setattr(router, "st", fake_st)
    monkeypatch.setattr(
        router,
        "run_streamlit_app",
        lambda dsn, period=None, configure_page=True: calls.append(period),
    )

    router.main()

    assert calls == [None]
    assert fake_st.warnings and "Unknown period 'later'" in fake_st.warnings[0]
