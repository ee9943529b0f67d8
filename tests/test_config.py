from __future__ import annotations

import pytest

from content_access.config import AccessSettings


def test_defaults():
    settings = AccessSettings()
    assert settings.redis_url is None
    assert settings.cache_fallback == "none"
    assert settings.subscription_status_ttl == 300
    assert settings.creator_profile_ttl == 600
    assert settings.max_check_interval == 300
    assert settings.retry_after == 10
    assert settings.max_retries == 3


def test_from_env(monkeypatch):
    monkeypatch.setenv("REDIS_URL", "redis://cache:6379/1")
    monkeypatch.setenv("CONTENT_ACCESS_CACHE_FALLBACK", " Memory ")
    monkeypatch.setenv("CONTENT_ACCESS_SUBSCRIPTION_TTL_SECONDS", "120")
    monkeypatch.setenv("CONTENT_ACCESS_MAX_RETRIES", "5")
    monkeypatch.setenv("CONTENT_ACCESS_REDIS_TIMEOUT_SECONDS", "0.5")

    settings = AccessSettings.from_env()

    assert settings.redis_url == "redis://cache:6379/1"
    assert settings.cache_fallback == "memory"
    assert settings.subscription_status_ttl == 120
    assert settings.max_retries == 5
    assert settings.redis_socket_timeout == 0.5


def test_empty_env_values_use_defaults(monkeypatch):
    monkeypatch.setenv("REDIS_URL", "")
    monkeypatch.setenv("CONTENT_ACCESS_RETRY_AFTER_SECONDS", "  ")

    settings = AccessSettings.from_env()

    assert settings.redis_url is None
    assert settings.retry_after == 10


def test_invalid_integer_env_rejected(monkeypatch):
    monkeypatch.setenv("CONTENT_ACCESS_MAX_RETRIES", "three")

    with pytest.raises(ValueError, match="CONTENT_ACCESS_MAX_RETRIES must be an integer"):
        AccessSettings.from_env()


def test_non_positive_ttl_rejected():
    with pytest.raises(ValueError, match="TTLs must be positive"):
        AccessSettings(subscription_status_ttl=0)
