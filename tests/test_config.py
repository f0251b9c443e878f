# tests/test_config.py
import pytest
from pydantic import ValidationError

from smartcare.config import Settings


def test_defaults_are_usable_without_environment():
    settings = Settings(SENDGRID_API_KEY="", FIREBASE_CREDENTIALS_FILE="")

    assert settings.email_enabled is False
    assert settings.push_enabled is False
    assert settings.recent_notifications_limit == 10
    assert settings.push_icon == "/SmartCare.png"


def test_cors_origins_from_comma_separated_string():
    settings = Settings(CORS_ORIGINS="https://app.smartcare.health, http://localhost:3000")

    assert settings.cors_origins == ["https://app.smartcare.health", "http://localhost:3000"]


@pytest.mark.parametrize("overrides", [
    {"SECRET_KEY": "too-short"},
    {"DATABASE_URL": "mysql://db/smartcare"},
    {"RECENT_NOTIFICATIONS_LIMIT": 0},
])
def test_invalid_settings_are_rejected(overrides):
    with pytest.raises(ValidationError):
        Settings(**overrides)
