from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]


def _getenv(name: str, default: str) -> str:
    # Centralize env access so it’s easy to extend later (type casting, required vars)
    return os.environ.get(name, default).strip()


def _getint(name: str, default: str, *, minimum: int = 0) -> int:
    raw = _getenv(name, default)
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from None
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum} (got {value})")
    return value


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    database_url: str | None
    redis_url: str | None
    retry_max_attempts: int = 4
    retry_base_delay_ms: int = 300
    network_wait_timeout_ms: int = 5000
    subject_cache_ttl: int = 300
    connectivity_probe_interval: int = 5

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"

    @property
    def retry_base_delay(self) -> float:
        """Backoff base in seconds, as asyncio.sleep expects."""
        return self.retry_base_delay_ms / 1000

    @property
    def network_wait_timeout(self) -> float:
        return self.network_wait_timeout_ms / 1000


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()
    log_json_raw = _getenv("LOG_JSON", "false").lower()

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    port = _getint("PORT", "8000")

    database_url = _getenv("DATABASE_URL", "") or None
    redis_url = _getenv("REDIS_URL", "") or None

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=log_json_raw in ("1", "true", "yes"),
        port=port,
        database_url=database_url,
        redis_url=redis_url,
        retry_max_attempts=_getint("RETRY_MAX_ATTEMPTS", "4", minimum=1),
        retry_base_delay_ms=_getint("RETRY_BASE_DELAY_MS", "300"),
        network_wait_timeout_ms=_getint("NETWORK_WAIT_TIMEOUT_MS", "5000"),
        subject_cache_ttl=_getint("SUBJECT_CACHE_TTL", "300", minimum=1),
        connectivity_probe_interval=_getint(
            "CONNECTIVITY_PROBE_INTERVAL", "5", minimum=1
        ),
    )


# Optional: module-level singleton so imports are cheap
SETTINGS = load_settings()
