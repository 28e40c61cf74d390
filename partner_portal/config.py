from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass


def _as_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(env: Mapping[str, str], name: str, *, default: int, minimum: int = 0) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw, 10)
    except ValueError:
        return default
    return max(minimum, value)


def _env_float(env: Mapping[str, str], name: str, *, default: float, minimum: float = 0.0) -> float:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return max(minimum, value)


def _env_bool(env: Mapping[str, str], name: str, *, default: bool) -> bool:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    return _as_bool(raw)


@dataclass(frozen=True)
class PortalSettings:
    store_backend: str = "memory"
    redis_dsn: str = ""
    key_prefix: str = ""
    store_timeout_seconds: float = 5.0
    default_page_size: int = 20
    max_page_size: int = 100
    cache_ttl_analytics_seconds: int = 5 * 60
    cache_ttl_overview_seconds: int = 10 * 60
    cache_ttl_credentials_seconds: int = 5 * 60
    require_true_stack: bool = False

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "PortalSettings":
        env = os.environ if environ is None else environ
        max_page_size = _env_int(env, "PORTAL_MAX_PAGE_SIZE", default=100, minimum=1)
        default_page_size = _env_int(env, "PORTAL_DEFAULT_PAGE_SIZE", default=20, minimum=1)
        return cls(
            store_backend=env.get("PORTAL_STORE_BACKEND", "memory").strip().lower() or "memory",
            redis_dsn=env.get("REDIS_DSN", "").strip(),
            key_prefix=env.get("PORTAL_KEY_PREFIX", "").strip(),
            store_timeout_seconds=_env_float(env, "PORTAL_STORE_TIMEOUT_SECONDS", default=5.0, minimum=0.1),
            default_page_size=min(default_page_size, max_page_size),
            max_page_size=max_page_size,
            cache_ttl_analytics_seconds=_env_int(
                env, "PORTAL_CACHE_TTL_ANALYTICS_SECONDS", default=5 * 60, minimum=1
            ),
            cache_ttl_overview_seconds=_env_int(
                env, "PORTAL_CACHE_TTL_OVERVIEW_SECONDS", default=10 * 60, minimum=1
            ),
            cache_ttl_credentials_seconds=_env_int(
                env, "PORTAL_CACHE_TTL_CREDENTIALS_SECONDS", default=5 * 60, minimum=1
            ),
            require_true_stack=_env_bool(env, "PORTAL_REQUIRE_TRUESTACK", default=False),
        )
