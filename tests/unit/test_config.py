"""Unit tests for configuration and settings."""
from booking_core.config import Settings, get_settings, reset_settings_cache


class TestSettings:
    """Test configuration management."""

    def test_get_settings_returns_same_instance(self):
        assert get_settings() is get_settings()

    def test_reset_settings_cache(self):
        settings1 = get_settings()
        reset_settings_cache()
        settings2 = get_settings()

        assert settings1 is not settings2

    def test_default_operating_hours(self):
        settings = Settings()

        assert settings.default_opening_hour == 8
        assert settings.default_closing_hour == 22
        assert settings.slot_allow_overrun is False

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("DEFAULT_OPENING_HOUR", "7")
        monkeypatch.setenv("SLOT_ALLOW_OVERRUN", "true")

        settings = Settings()

        assert settings.default_opening_hour == 7
        assert settings.slot_allow_overrun is True

    def test_repository_bounds(self):
        settings = get_settings()

        assert settings.repository_timeout_seconds > 0
        assert settings.repository_failure_threshold >= 1

    def test_jwt_configuration(self):
        settings = get_settings()

        assert settings.jwt_secret is not None
        assert settings.jwt_algorithm == "HS256"
        assert settings.access_token_expire_minutes > 0
