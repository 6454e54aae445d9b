import os
from dataclasses import dataclass
from typing import Optional


TRUTHY_STRINGS = {"1", "true", "yes", "on"}
FALSY_STRINGS = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    metric: str = "NDI"
    cache_ttl_seconds: float = 300.0
    strict_integrity: bool = False


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return max(0.0, float(raw.strip()))
    except ValueError:
        return default


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    normalized = raw.strip().lower()
    if normalized in TRUTHY_STRINGS:
        return True
    if normalized in FALSY_STRINGS:
        return False
    return default


def load_settings() -> Settings:
    defaults = Settings()
    metric = (os.getenv("NDI_METRIC") or "").strip() or defaults.metric
    return Settings(
        metric=metric,
        cache_ttl_seconds=_float_env("NDI_CACHE_TTL_SECONDS", defaults.cache_ttl_seconds),
        strict_integrity=_bool_env("NDI_STRICT_INTEGRITY", defaults.strict_integrity),
    )


def database_url() -> Optional[str]:
    return os.getenv("SUPABASE_DB_URL") or os.getenv("DATABASE_URL")
