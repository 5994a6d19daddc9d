from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]

_TRUTHY = ("1", "true", "yes", "on")
_FALSY = ("0", "false", "no", "off")


def _getenv(name: str, default: str) -> str:
    # Centralize env access so it’s easy to extend later (type casting, required vars)
    return os.environ.get(name, default).strip()


def _getenv_bool(name: str, default: bool) -> bool:
    raw = _getenv(name, "true" if default else "false").lower()
    if raw in _TRUTHY:
        return True
    if raw in _FALSY:
        return False
    raise ValueError(f"{name} must be a boolean (got {raw!r})")


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    redis_url: str | None
    firestore_project: str | None = None
    fanout_concurrency: int = 4
    leaderboard_cache_ttl: int = 60

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()
    port_raw = _getenv("PORT", "8000")
    fanout_raw = _getenv("FANOUT_CONCURRENCY", "4")
    ttl_raw = _getenv("LEADERBOARD_CACHE_TTL", "60")

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    try:
        port = int(port_raw)
    except ValueError:
        raise ValueError(f"PORT must be an integer (got {port_raw!r})") from None

    try:
        fanout_concurrency = int(fanout_raw)
    except ValueError:
        raise ValueError(
            f"FANOUT_CONCURRENCY must be an integer (got {fanout_raw!r})"
        ) from None
    if fanout_concurrency < 1:
        raise ValueError(
            f"FANOUT_CONCURRENCY must be at least 1 (got {fanout_concurrency})"
        )

    try:
        leaderboard_cache_ttl = int(ttl_raw)
    except ValueError:
        raise ValueError(
            f"LEADERBOARD_CACHE_TTL must be an integer (got {ttl_raw!r})"
        ) from None

    log_json = _getenv_bool("LOG_JSON", False)
    redis_url = _getenv("REDIS_URL", "") or None
    firestore_project = _getenv("FIRESTORE_PROJECT", "") or None

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=log_json,
        port=port,
        redis_url=redis_url,
        firestore_project=firestore_project,
        fanout_concurrency=fanout_concurrency,
        leaderboard_cache_ttl=leaderboard_cache_ttl,
    )


# Optional: module-level singleton so imports are cheap
SETTINGS = load_settings()
