"""Tests for configuration helpers."""

from pathlib import Path
import sys

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:  # pragma: no cover
    sys.path.insert(0, str(ROOT))

from approval_broker import config  # noqa: E402


def _seed_env(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///local.db")
    monkeypatch.setenv("SLACK_BOT_TOKEN", "xoxb-token")
    monkeypatch.setenv("SLACK_SIGNING_SECRET", "secret")
    monkeypatch.setenv("DEFAULT_API_KEY", "sk-local")
    for var in ("NOTIFY_TIMEOUT_SECONDS", "LOG_LEVEL", "HOST", "PORT"):
        monkeypatch.delenv(var, raising=False)
    config.get_settings.cache_clear()


def test_get_settings_parses_expected_fields(monkeypatch):
    _seed_env(monkeypatch)

    settings = config.get_settings()

    assert settings.database_url == "sqlite:///local.db"
    assert settings.bot_token == "xoxb-token"
    assert settings.signing_secret == "secret"
    assert settings.default_api_key == "sk-local"
    assert settings.notify_timeout_seconds == 10
    assert settings.log_level == "INFO"
    assert settings.host == "0.0.0.0"
    assert settings.port == 3000


def test_optional_slack_settings_may_be_blank(monkeypatch):
    _seed_env(monkeypatch)
    monkeypatch.setenv("SLACK_BOT_TOKEN", "   ")
    monkeypatch.delenv("SLACK_SIGNING_SECRET")

    settings = config.get_settings()

    assert settings.bot_token is None
    assert settings.signing_secret is None


def test_overrides_are_coerced(monkeypatch):
    _seed_env(monkeypatch)
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("NOTIFY_TIMEOUT_SECONDS", "3")

    settings = config.get_settings()

    assert settings.port == 8080
    assert settings.log_level == "DEBUG"
    assert settings.notify_timeout_seconds == 3


def test_missing_database_url_raises_runtime_error(monkeypatch):
    _seed_env(monkeypatch)
    monkeypatch.delenv("DATABASE_URL")

    with pytest.raises(RuntimeError) as err:
        config.get_settings()

    assert "Missing required environment variables" in str(err.value)
    assert "DATABASE_URL" in str(err.value)


@pytest.mark.parametrize(
    ("var", "value"),
    [("LOG_LEVEL", "chatty"), ("NOTIFY_TIMEOUT_SECONDS", "0"), ("PORT", "not-a-port")],
)
def test_invalid_values_raise_runtime_error(monkeypatch, var, value):
    _seed_env(monkeypatch)
    monkeypatch.setenv(var, value)

    with pytest.raises(RuntimeError) as err:
        config.get_settings()

    assert str(err.value).startswith("Invalid configuration")


def test_settings_are_cached(monkeypatch):
    _seed_env(monkeypatch)

    first = config.get_settings()
    monkeypatch.setenv("PORT", "9999")

    assert config.get_settings() is first
