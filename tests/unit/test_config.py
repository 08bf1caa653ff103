"""Unit tests for application settings."""

import pytest
from pydantic import ValidationError

from intake_api.config import Settings, get_settings


def make_settings(**overrides) -> Settings:
    """Settings built from explicit values, ignoring any .env file."""
    values = {"database_url": "sqlite:///:memory:", "jwt_secret": "s3cret"}
    values.update(overrides)
    return Settings(_env_file=None, **values)


class TestSettings:
    """Tests for Settings validation and helpers."""

    def test_defaults(self):
        settings = make_settings()
        assert settings.jwt_algorithm == "HS256"
        assert settings.jwt_expire_minutes == 1440
        assert settings.auth_cookie_name == "token"
        assert settings.auto_create_tables is True
        assert settings.seed_file is None

    def test_environment_normalized(self):
        settings = make_settings(environment="PRODUCTION")
        assert settings.environment == "production"
        assert settings.is_production is True
        assert settings.is_development is False

    def test_invalid_environment_rejected(self):
        with pytest.raises(ValidationError):
            make_settings(environment="qa")

    def test_log_level_uppercased(self):
        assert make_settings(log_level="debug").log_level == "DEBUG"

    def test_invalid_log_level_rejected(self):
        with pytest.raises(ValidationError):
            make_settings(log_level="verbose")

    def test_timezone_offset_format(self):
        assert make_settings(default_timezone_offset="+05:30").default_timezone_offset == "+05:30"
        with pytest.raises(ValidationError):
            make_settings(default_timezone_offset="5")

    def test_allowed_origins_list(self):
        settings = make_settings(allowed_origins="https://a.example, https://b.example,,")
        assert settings.get_allowed_origins_list() == ["https://a.example", "https://b.example"]

    def test_non_positive_token_lifetime_rejected(self):
        with pytest.raises(ValidationError):
            make_settings(jwt_expire_minutes=0)

    def test_get_settings_cached(self):
        assert get_settings() is get_settings()
