import importlib


config = importlib.import_module("src.ndi.config")


def test_load_settings_defaults(monkeypatch):
    for name in ("NDI_METRIC", "NDI_CACHE_TTL_SECONDS", "NDI_STRICT_INTEGRITY"):
        monkeypatch.delenv(name, raising=False)

    settings = config.load_settings()

    assert settings.metric == "NDI"
    assert settings.cache_ttl_seconds == 300.0
    assert settings.strict_integrity is False


def test_load_settings_reads_environment(monkeypatch):
    monkeypatch.setenv("NDI_METRIC", " CSI ")
    monkeypatch.setenv("NDI_CACHE_TTL_SECONDS", "60")
    monkeypatch.setenv("NDI_STRICT_INTEGRITY", "yes")

    settings = config.load_settings()

    assert settings.metric == "CSI"
    assert settings.cache_ttl_seconds == 60.0
    assert settings.strict_integrity is True


def test_load_settings_falls_back_on_invalid_values(monkeypatch):
    monkeypatch.setenv("NDI_CACHE_TTL_SECONDS", "soon")
    monkeypatch.setenv("NDI_STRICT_INTEGRITY", "maybe")

    settings = config.load_settings()

    assert settings.cache_ttl_seconds == 300.0
    assert settings.strict_integrity is False


def test_database_url_prefers_supabase(monkeypatch):
    monkeypatch.setenv("SUPABASE_DB_URL", "postgres://supabase")
    monkeypatch.setenv("DATABASE_URL", "postgres://plain")

    assert config.database_url() == "postgres://supabase"

    monkeypatch.delenv("SUPABASE_DB_URL")
    assert config.database_url() == "postgres://plain"
