"""Unit tests for configuration loading."""

import pytest
from pydantic import ValidationError

from service.src.config import Settings, load_settings

ENV_KEYS = [
    "CH_HTTP_URL", "CH_USER", "CH_PASS", "CH_DATABASE",
    "PROM_URL", "VLOGS_URL", "UPSTREAM_TIMEOUT", "READINESS_TIMEOUT", "CORS_ORIGINS",
]


@pytest.fixture
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


def test_defaults(clean_env):
    settings = load_settings(dotenv=False)

    assert settings.clickhouse_url == "http://localhost:8123"
    assert settings.clickhouse_user == "default"
    assert settings.clickhouse_password == ""
    assert settings.clickhouse_database == "default"
    assert settings.prometheus_url == "http://localhost:9090"
    assert settings.victorialogs_url == "http://localhost:9428"
    assert settings.request_timeout == 20.0
    assert settings.readiness_timeout == 2.0
    assert settings.cors_origins == ["http://localhost:3000", "http://localhost:5173"]


def test_env_wins(clean_env):
    clean_env.setenv("CH_HTTP_URL", "http://ch:8123")
    clean_env.setenv("CH_USER", "reader")
    clean_env.setenv("CH_PASS", "pw")
    clean_env.setenv("CH_DATABASE", "otel")
    clean_env.setenv("UPSTREAM_TIMEOUT", "3.5")
    clean_env.setenv("CORS_ORIGINS", "https://ui.example.com, https://other.example.com")

    settings = load_settings(dotenv=False)

    assert settings.clickhouse_url == "http://ch:8123"
    assert settings.clickhouse_user == "reader"
    assert settings.clickhouse_password == "pw"
    assert settings.clickhouse_database == "otel"
    assert settings.request_timeout == 3.5
    assert settings.cors_origins == ["https://ui.example.com", "https://other.example.com"]


def test_empty_value_means_default(clean_env):
    clean_env.setenv("CH_HTTP_URL", "")
    clean_env.setenv("CH_DATABASE", "")

    settings = load_settings(dotenv=False)

    assert settings.clickhouse_url == "http://localhost:8123"
    assert settings.clickhouse_database == "default"


def test_empty_user_means_anonymous(clean_env):
    clean_env.setenv("CH_USER", "")

    settings = load_settings(dotenv=False)

    assert settings.has_clickhouse_credentials is False


@pytest.mark.parametrize("raw", ["soon", "0", "-1"])
def test_bad_timeout_falls_back(clean_env, raw):
    clean_env.setenv("UPSTREAM_TIMEOUT", raw)
    assert load_settings(dotenv=False).request_timeout == 20.0


def test_settings_are_immutable():
    settings = Settings()
    with pytest.raises(ValidationError):
        settings.clickhouse_url = "http://elsewhere"
