"""Unit tests for core/config.py -- startup validation of secrets and origins."""

from __future__ import annotations

import pytest

from core.config import Settings

A = "a" * 32
B = "b" * 32


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("ACCESS_TOKEN_SECRET", "REFRESH_TOKEN_SECRET", "CORS_ALLOWED_ORIGINS", "DEBUG", "LOGIN_RATE_LIMIT"):
        monkeypatch.delenv(name, raising=False)


def _prod(**overrides) -> Settings:
    values = {
        "debug": False,
        "access_token_secret": A,
        "refresh_token_secret": B,
        "cors_allowed_origins": ["https://segregate.org"],
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def test_valid_production_settings():
    settings = _prod()
    assert settings.access_token_expire_seconds == 900
    assert settings.refresh_token_expire_seconds == 604800
    assert settings.login_rate_limit == "10/minute"


@pytest.mark.parametrize("missing", ["access_token_secret", "refresh_token_secret"])
def test_production_requires_secrets(missing):
    with pytest.raises(ValueError, match=missing.upper()):
        _prod(**{missing: ""})


def test_production_requires_origins():
    with pytest.raises(ValueError, match="CORS_ALLOWED_ORIGINS"):
        _prod(cors_allowed_origins=[])


def test_equal_secrets_rejected():
    with pytest.raises(ValueError, match="must differ"):
        _prod(refresh_token_secret=A)


def test_short_secret_rejected():
    with pytest.raises(ValueError, match="at least 32"):
        _prod(access_token_secret="short")


def test_non_positive_lifetime_rejected():
    with pytest.raises(ValueError, match="positive"):
        _prod(access_token_expire_seconds=0)


def test_debug_generates_distinct_secrets_and_dev_origins():
    settings = Settings(_env_file=None, debug=True)
    assert len(settings.access_token_secret) >= 32
    assert settings.access_token_secret != settings.refresh_token_secret
    assert "http://localhost:3000" in settings.cors_allowed_origins


def test_origins_from_comma_separated_env(monkeypatch):
    monkeypatch.setenv("CORS_ALLOWED_ORIGINS", "https://a.segregate.org, https://b.segregate.org,")
    settings = Settings(_env_file=None, debug=False, access_token_secret=A, refresh_token_secret=B)
    assert settings.cors_allowed_origins == ["https://a.segregate.org", "https://b.segregate.org"]


def test_debug_from_env(monkeypatch):
    monkeypatch.setenv("DEBUG", "true")
    assert Settings(_env_file=None).debug is True
