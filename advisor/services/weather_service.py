"""
Weather Service - Single source of truth for weather data.

This service is responsible for:
1. Validating location input (blank / "Not specified" never reach the provider)
2. Serving readings from the injected WeatherCache (60 min TTL)
3. Fetching and standardizing OpenWeatherMap payloads on cache miss
4. Classifying provider failures for logging, then degrading to None

Callers must treat None as "weather unavailable"; nothing here raises.
"""

import asyncio
import logging
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol

import httpx

from advisor.schemas import (
    NOT_SPECIFIED,
    Coordinates,
    NudgesWeather,
    StandardizedWeather,
    WeatherContext,
)
from shared.ttl_cache import CacheStats, WeatherCache

logger = logging.getLogger(__name__)

WEATHER_TTL_MINUTES = 60
DEFAULT_TIMEOUT_SECONDS = 5.0
DEFAULT_UNITS = "metric"

# Bulk preload batching
PRELOAD_BATCH_SIZE = 5
PRELOAD_BATCH_DELAY_SECONDS = 1.0


class WeatherProvider(Protocol):
    async def fetch_weather(
        self, location: str, units: str = DEFAULT_UNITS, timeout: float = DEFAULT_TIMEOUT_SECONDS
    ) -> dict[str, Any]: ...


class WeatherErrorKind(str, Enum):
    """Provider failure classes (for logging only)."""

    AUTHENTICATION = "authentication"
    LOCATION_NOT_FOUND = "location_not_found"
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    OTHER = "other"


def classify_weather_error(error: Exception) -> WeatherErrorKind:
    """
    Classify a provider exception.

    Args:
        error: Exception raised by the weather provider

    Returns:
        WeatherErrorKind

    Classes:
    - 401 -> AUTHENTICATION
    - 404 -> LOCATION_NOT_FOUND
    - 429 -> RATE_LIMITED
    - httpx timeouts / asyncio / builtin TimeoutError -> TIMEOUT
    - Everything else -> OTHER
    """
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        if status == 401:
            return WeatherErrorKind.AUTHENTICATION
        if status == 404:
            return WeatherErrorKind.LOCATION_NOT_FOUND
        if status == 429:
            return WeatherErrorKind.RATE_LIMITED
        return WeatherErrorKind.OTHER

    if isinstance(error, (httpx.TimeoutException, asyncio.TimeoutError, TimeoutError)):
        return WeatherErrorKind.TIMEOUT

    return WeatherErrorKind.OTHER


def is_valid_location(location: Any) -> bool:
    """A location is usable when it is a non-blank string other than the sentinel."""
    return (
        isinstance(location, str)
        and location.strip() != ""
        and location.strip() != NOT_SPECIFIED
    )


def _timestamp(seconds: int | float) -> datetime:
    return datetime.fromtimestamp(seconds, tz=UTC)


def standardize_weather_data(payload: dict[str, Any]) -> StandardizedWeather:
    """
    Convert a raw OpenWeatherMap payload into a StandardizedWeather.

    Temperatures are rounded to whole degrees and visibility is converted
    from metres to kilometres.
    """
    main = payload["main"]
    condition = payload["weather"][0]
    wind = payload.get("wind") or {}
    sys_info = payload.get("sys") or {}
    visibility = payload.get("visibility")

    return StandardizedWeather(
        temperature=round(main["temp"]),
        humidity=main["humidity"],
        conditions=condition["description"],
        wind_speed=wind.get("speed") or 0,
        wind_direction=wind.get("deg"),
        pressure=main["pressure"],
        visibility=round(visibility / 1000) if visibility else None,
        cloudiness=(payload.get("clouds") or {}).get("all") or 0,
        location=payload["name"],
        country=sys_info.get("country"),
        coordinates=Coordinates(lat=payload["coord"]["lat"], lon=payload["coord"]["lon"]),
        sunrise=_timestamp(sys_info["sunrise"]),
        sunset=_timestamp(sys_info["sunset"]),
        data_time=_timestamp(payload["dt"]),
        fetched_at=datetime.now(UTC),
        feels_like=round(main["feels_like"]),
        temp_min=round(main["temp_min"]),
        temp_max=round(main["temp_max"]),
        condition_id=condition.get("id"),
        condition_main=condition.get("main"),
        icon=condition.get("icon"),
    )


class WeatherService:
    """
    Cache-first weather lookups.

    The WeatherCache is injected by the composition root so the same
    instance is shared with every other weather consumer.
    """

    def __init__(
        self,
        provider: WeatherProvider,
        cache: WeatherCache,
        ttl_minutes: float = WEATHER_TTL_MINUTES,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        batch_delay_seconds: float = PRELOAD_BATCH_DELAY_SECONDS,
    ):
        self.provider = provider
        self.cache = cache
        self.ttl_minutes = ttl_minutes
        self.timeout = timeout
        self.batch_delay_seconds = batch_delay_seconds

    async def get_weather_data(self, location: Any) -> StandardizedWeather | None:
        """
        Get weather for a location with caching.

        Args:
            location: Location name (city, state, country)

        Returns:
            StandardizedWeather or None if unavailable
        """
        if not is_valid_location(location):
            logger.warning("Invalid location provided to weather service")
            return None

        normalized_location = location.strip()

        return await self.cache.get_or_load(
            normalized_location,
            lambda: self._fetch_from_provider(normalized_location),
            self.ttl_minutes,
        )

    async def _fetch_from_provider(self, location: str) -> StandardizedWeather | None:
        try:
            logger.info(
                f"Fetching weather data from API for: {location}",
                extra={"location": location},
            )
            payload = await self.provider.fetch_weather(
                location, units=DEFAULT_UNITS, timeout=self.timeout
            )
            weather = standardize_weather_data(payload)
            logger.info(
                f"Weather data fetched and cached for: {location}",
                extra={"location": location},
            )
            return weather

        except Exception as e:
            self._log_weather_error(e, location)
            return None

    def _log_weather_error(self, error: Exception, location: str) -> WeatherErrorKind:
        kind = classify_weather_error(error)
        extra = {"location": location}

        if kind is WeatherErrorKind.AUTHENTICATION:
            logger.error("Weather API authentication failed - check API key", extra=extra)
        elif kind is WeatherErrorKind.LOCATION_NOT_FOUND:
            logger.warning(f"Location not found in weather API: {location}", extra=extra)
        elif kind is WeatherErrorKind.RATE_LIMITED:
            logger.warning(f"Weather API rate limit exceeded for: {location}", extra=extra)
        elif kind is WeatherErrorKind.TIMEOUT:
            logger.warning(f"Weather API timeout for location: {location}", extra=extra)
        elif isinstance(error, httpx.HTTPStatusError):
            logger.error(
                f"Weather API error ({error.response.status_code}) for location: {location}",
                extra=extra,
            )
        else:
            logger.error(
                f"Weather service error for {location}: {type(error).__name__}: {error}",
                extra=extra,
            )
        return kind

    async def get_weather_for_nudges(self, location: Any) -> NudgesWeather | None:
        weather = await self.get_weather_data(location)
        if weather is None:
            return None

        return NudgesWeather(
            temperature=f"{weather.temperature}°C",
            humidity=f"{weather.humidity}%",
            conditions=weather.conditions,
            temp=weather.temperature,
        )

    async def get_weather_for_context(self, location: Any) -> WeatherContext | None:
        weather = await self.get_weather_data(location)
        if weather is None:
            return None

        return WeatherContext(
            temperature=weather.temperature,
            humidity=weather.humidity,
            conditions=weather.conditions,
            wind_speed=weather.wind_speed,
            pressure=weather.pressure,
            visibility=weather.visibility,
            location=weather.location,
            country=weather.country,
        )

    async def preload_weather(self, location: Any) -> None:
        """Warm the cache for one location (best effort)."""
        if not is_valid_location(location):
            return

        try:
            await self.get_weather_data(location)
            logger.debug(f"Weather pre-loaded for: {location}")
        except Exception as e:
            logger.warning(f"Failed to pre-load weather for: {location} ({e})")

    async def preload_multiple_weather(self, locations: list[str]) -> None:
        """
        Warm the cache for many locations in small batches.

        Batches of PRELOAD_BATCH_SIZE run concurrently; a short pause between
        batches keeps the provider under its rate limit.
        """
        valid_locations = [loc for loc in locations if is_valid_location(loc)]
        if not valid_locations:
            return

        logger.info(f"Pre-loading weather for {len(valid_locations)} locations")

        for i in range(0, len(valid_locations), PRELOAD_BATCH_SIZE):
            batch = valid_locations[i:i + PRELOAD_BATCH_SIZE]
            await asyncio.gather(
                *(self.preload_weather(location) for location in batch),
                return_exceptions=True,
            )

            if i + PRELOAD_BATCH_SIZE < len(valid_locations):
                await asyncio.sleep(self.batch_delay_seconds)

    def get_cache_stats(self) -> CacheStats:
        return self.cache.get_stats()

    def clear_cache(self) -> None:
        self.cache.clear()
