"""Tests for environment-driven settings."""

from shared.utils.config import CoreSettings


def test_settings_fields():
    assert set(CoreSettings.model_fields) == {
        "log_level",
        "redis_url",
        "database_url",
        "frontend_url",
        "weather_api_url",
        "weather_timezone",
        "weather_timeout",
        "weather_cache_ttl",
        "reimport_existing",
    }


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("WEATHER_CACHE_TTL", "0")
    monkeypatch.setenv("weather_timezone", "UTC")
    monkeypatch.setenv("REIMPORT_EXISTING", "true")

    settings = CoreSettings()

    assert settings.weather_cache_ttl == 0
    assert settings.weather_timezone == "UTC"
    assert settings.reimport_existing is True
