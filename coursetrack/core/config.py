from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]

_TRUTHY = ("1", "true", "yes", "on")


def _getenv(name: str, default: str) -> str:
    # Centralize env access so casting and validation stay in one place
    return os.environ.get(name, default).strip()


def _getenv_int(name: str, default: str, *, minimum: int = 0) -> int:
    raw = _getenv(name, default)
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from None
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum} (got {value})")
    return value


def _getenv_float(name: str, default: str) -> float:
    raw = _getenv(name, default)
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number (got {raw!r})") from None
    if value <= 0:
        raise ValueError(f"{name} must be positive (got {value})")
    return value


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    database_url: str | None
    redis_url: str | None
    # Single-admin seed: when set, only this subject may act as admin.
    admin_user_id: str | None = None
    jwt_public_key: str | None = None
    request_timeout_seconds: float = 5.0
    storage_retry_attempts: int = 3
    storage_retry_backoff_seconds: float = 0.05
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
    log_json = _getenv("LOG_JSON", "false").lower() in _TRUTHY

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    port = _getenv_int("PORT", "8000")

    database_url = _getenv("DATABASE_URL", "") or None
    redis_url = _getenv("REDIS_URL", "") or None
    admin_user_id = _getenv("ADMIN_USER_ID", "") or None
    jwt_public_key = _getenv("JWT_PUBLIC_KEY", "") or None

    if app_env_raw == "prod" and jwt_public_key is None:
        raise ValueError("JWT_PUBLIC_KEY is required when APP_ENV=prod")

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=log_json,
        port=port,
        database_url=database_url,
        redis_url=redis_url,
        admin_user_id=admin_user_id,
        jwt_public_key=jwt_public_key,
        request_timeout_seconds=_getenv_float("REQUEST_TIMEOUT_SECONDS", "5"),
        storage_retry_attempts=_getenv_int(
            "STORAGE_RETRY_ATTEMPTS", "3", minimum=1
        ),
        storage_retry_backoff_seconds=_getenv_float(
            "STORAGE_RETRY_BACKOFF_SECONDS", "0.05"
        ),
        leaderboard_cache_ttl=_getenv_int("LEADERBOARD_CACHE_TTL", "60", minimum=1),
    )


# Module-level singleton so imports are cheap
SETTINGS = load_settings()
