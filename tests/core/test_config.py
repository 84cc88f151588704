from __future__ import annotations

import pytest

from assessment_service.core.config import AppEnv, Settings, load_settings

_INT_VARS = (
    "RETRY_MAX_ATTEMPTS",
    "RETRY_BASE_DELAY_MS",
    "NETWORK_WAIT_TIMEOUT_MS",
    "SUBJECT_CACHE_TTL",
    "CONNECTIVITY_PROBE_INTERVAL",
    "PORT",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _INT_VARS:
        monkeypatch.delenv(name, raising=False)


# ---- valid values ----


def test_load_settings_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("APP_ENV", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    settings = load_settings()
    assert settings.app_env == "dev"
    assert settings.log_level == "info"
    assert settings.retry_max_attempts == 4
    assert settings.retry_base_delay == 0.3
    assert settings.network_wait_timeout == 5.0
    assert settings.subject_cache_ttl == 300
    assert settings.connectivity_probe_interval == 5


def test_load_settings_normalizes_case_and_whitespace(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("APP_ENV", "  PROD ")
    monkeypatch.setenv("LOG_LEVEL", "Warning")
    settings = load_settings()
    assert settings.app_env == "prod"
    assert settings.log_level == "warning"


def test_log_json_flag(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_JSON", "yes")
    assert load_settings().log_json is True
    monkeypatch.setenv("LOG_JSON", "off")
    assert load_settings().log_json is False


def test_retry_settings_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RETRY_MAX_ATTEMPTS", "6")
    monkeypatch.setenv("RETRY_BASE_DELAY_MS", "0")
    monkeypatch.setenv("NETWORK_WAIT_TIMEOUT_MS", "250")
    settings = load_settings()
    assert settings.retry_max_attempts == 6
    assert settings.retry_base_delay == 0.0
    assert settings.network_wait_timeout == 0.25


def test_empty_urls_mean_not_configured(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "  ")
    monkeypatch.setenv("REDIS_URL", "")
    settings = load_settings()
    assert settings.database_url is None
    assert settings.redis_url is None


# ---- invalid values ----


def test_load_settings_rejects_invalid_app_env(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("APP_ENV", "staging")
    with pytest.raises(ValueError, match="APP_ENV must be dev|test|prod"):
        load_settings()


def test_load_settings_rejects_invalid_log_level(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("APP_ENV", "dev")
    monkeypatch.setenv("LOG_LEVEL", "verbose")
    with pytest.raises(ValueError, match="LOG_LEVEL must be debug|info|warning|error"):
        load_settings()


def test_rejects_zero_attempts(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RETRY_MAX_ATTEMPTS", "0")
    with pytest.raises(ValueError, match="RETRY_MAX_ATTEMPTS must be >= 1"):
        load_settings()


def test_rejects_non_integer(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RETRY_BASE_DELAY_MS", "fast")
    with pytest.raises(ValueError, match="RETRY_BASE_DELAY_MS must be an integer"):
        load_settings()


def test_rejects_negative_delay(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RETRY_BASE_DELAY_MS", "-5")
    with pytest.raises(ValueError, match="RETRY_BASE_DELAY_MS must be >= 0"):
        load_settings()


# ---- Settings properties ----


def _make_settings(app_env: AppEnv = "dev") -> Settings:
    return Settings(  # type: ignore[arg-type]
        app_env=app_env,
        log_level="info",
        log_json=False,
        port=8000,
        database_url=None,
        redis_url=None,
    )


@pytest.mark.parametrize("app_env", ["dev", "test", "prod"])
def test_settings_env_flags(app_env: AppEnv) -> None:
    s = _make_settings(app_env)
    assert (s.is_dev, s.is_test, s.is_prod) == (
        app_env == "dev",
        app_env == "test",
        app_env == "prod",
    )


def test_settings_is_frozen() -> None:
    s = _make_settings()
    with pytest.raises(AttributeError):
        s.retry_max_attempts = 10  # type: ignore[misc]
