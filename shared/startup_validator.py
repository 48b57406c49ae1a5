"""
Startup configuration validation module.

This module provides startup-time validation for critical configuration
to catch misconfigurations early (fail-fast) rather than at runtime when
a farmer sends the first message.

Usage:
    from shared.startup_validator import validate_startup_config, StartupValidationError

    async def main():
        try:
            await validate_startup_config()
        except StartupValidationError as e:
            logger.critical(f"Startup blocked: {e}")
            sys.exit(1)
"""

import logging

from sqlalchemy import text

from shared.config import get_settings

logger = logging.getLogger(__name__)


class StartupValidationError(Exception):
    """Raised when critical startup validation fails."""

    pass


async def validate_startup_config() -> dict[str, bool]:
    """
    Validate all critical configuration at startup.

    Performs tiered validation:
    - TIER 1 (CRITICAL): Block startup if any fail
    - TIER 2 (IMPORTANT): Warn but allow startup

    Returns:
        dict of {check_name: passed} for all validations

    Raises:
        StartupValidationError: If any CRITICAL check fails
    """
    settings = get_settings()
    results: dict[str, bool] = {}
    critical_failures: list[str] = []

    # =========================================================================
    # TIER 1: CRITICAL (block startup if any fail)
    # =========================================================================

    # 1. OpenRouter API key format validation
    if settings.OPENROUTER_API_KEY == "sk-or-placeholder":
        critical_failures.append(
            "OPENROUTER_API_KEY is placeholder - set your OpenRouter API key"
        )
        results["openrouter_api_key"] = False
    elif not settings.OPENROUTER_API_KEY.startswith("sk-or-"):
        logger.warning(
            "OPENROUTER_API_KEY doesn't start with 'sk-or-' - verify it's correct"
        )
        results["openrouter_api_key"] = True  # Allow but warn
    else:
        results["openrouter_api_key"] = True
        logger.info("  [OK] OpenRouter API key configured")

    # 2. Weather API key
    if settings.WEATHER_API_KEY == "weather-placeholder" or not settings.WEATHER_API_KEY:
        critical_failures.append(
            "WEATHER_API_KEY is placeholder - set your OpenWeatherMap API key"
        )
        results["weather_api_key"] = False
    else:
        results["weather_api_key"] = True
        logger.info("  [OK] Weather API key configured")

    # =========================================================================
    # TIER 2: IMPORTANT (warn but allow startup)
    # =========================================================================

    # 3. Database URL format validation
    if not settings.DATABASE_URL.startswith("postgresql+asyncpg://"):
        logger.warning(
            "DATABASE_URL should use asyncpg driver: postgresql+asyncpg://..."
        )
        results["database_url_format"] = False
    else:
        results["database_url_format"] = True

    # 4. Weather timeout sanity
    if settings.WEATHER_TIMEOUT_SECONDS > 10:
        logger.warning(
            f"WEATHER_TIMEOUT_SECONDS={settings.WEATHER_TIMEOUT_SECONDS} - "
            f"slow weather lookups stall every chat turn"
        )
        results["weather_timeout"] = False
    else:
        results["weather_timeout"] = True

    # =========================================================================
    # Summary and result
    # =========================================================================

    passed = sum(1 for v in results.values() if v)
    total = len(results)
    logger.info(f"Startup validation: {passed}/{total} checks passed")

    if critical_failures:
        logger.critical("=" * 60)
        logger.critical("STARTUP BLOCKED - Critical configuration errors:")
        for i, failure in enumerate(critical_failures, 1):
            logger.critical(f"  {i}. {failure}")
        logger.critical("=" * 60)
        raise StartupValidationError(
            f"Critical startup validation failed ({len(critical_failures)} errors): "
            f"{'; '.join(critical_failures)}"
        )

    return results


async def validate_database_connection() -> bool:
    """
    Validate database connection is working.

    This is a separate check because it's slower and may be called
    after basic config validation.

    Returns:
        True if database connection successful, False otherwise
    """
    try:
        from database.connection import get_async_session

        async with get_async_session() as session:
            await session.execute(text("SELECT 1"))

        logger.info("  [OK] Database connection successful")
        return True

    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return False
