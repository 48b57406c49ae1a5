"""
Unit tests for startup configuration validation.
"""

from unittest.mock import patch

import pytest

from shared.config import Settings
from shared.startup_validator import StartupValidationError, validate_startup_config


def _settings(**overrides) -> Settings:
    values = {
        "DATABASE_URL": "postgresql+asyncpg://krishi:pw@localhost:5432/krishi_db",
        "OPENROUTER_API_KEY": "sk-or-v1-abc",
        "WEATHER_API_KEY": "owm-key",
        "WEATHER_TIMEOUT_SECONDS": 5.0,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.mark.asyncio
async def test_valid_configuration_passes():
    with patch("shared.startup_validator.get_settings", return_value=_settings()):
        results = await validate_startup_config()

    assert all(results.values())


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides,message",
    [
        ({"OPENROUTER_API_KEY": "sk-or-placeholder"}, "OPENROUTER_API_KEY"),
        ({"WEATHER_API_KEY": "weather-placeholder"}, "WEATHER_API_KEY"),
    ],
)
async def test_placeholder_keys_block_startup(overrides, message):
    with patch("shared.startup_validator.get_settings", return_value=_settings(**overrides)):
        with pytest.raises(StartupValidationError, match=message):
            await validate_startup_config()


@pytest.mark.asyncio
async def test_warnings_do_not_block_startup():
    settings = _settings(DATABASE_URL="postgresql://krishi@localhost/krishi_db", WEATHER_TIMEOUT_SECONDS=30)

    with patch("shared.startup_validator.get_settings", return_value=settings):
        results = await validate_startup_config()

    assert results["database_url_format"] is False
    assert results["weather_timeout"] is False
    assert results["openrouter_api_key"] is True
