"""
OpenWeatherMap client for current-weather lookups.

This module provides the OpenWeatherClient class, the HTTP transport used by
WeatherService (advisor/services/weather_service.py). It returns the raw
provider payload; caching, standardization and error classification live in
the service layer.
"""

import logging
from typing import Any, cast

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from shared.config import get_settings

logger = logging.getLogger(__name__)


class OpenWeatherClient:
    """
    Client for the OpenWeatherMap "current weather" endpoint.

    Only connection failures are retried. Timeouts and HTTP error statuses
    are raised immediately so the caller can classify them.
    """

    def __init__(
        self,
        api_url: str | None = None,
        api_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize client with credentials from settings.

        Args:
            api_url: Override for WEATHER_API_URL
            api_key: Override for WEATHER_API_KEY
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        settings = get_settings()
        self.api_url = api_url or settings.WEATHER_API_URL
        self.api_key = api_key or settings.WEATHER_API_KEY
        self._transport = transport

        logger.info(f"OpenWeatherClient initialized: {self.api_url}")

    @retry(
        stop=stop_after_attempt(2),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=2),
        retry=retry_if_exception_type(httpx.ConnectError),
        reraise=True,
    )
    async def fetch_weather(
        self,
        location: str,
        units: str = "metric",
        timeout: float = 5.0,
    ) -> dict[str, Any]:
        """
        Fetch current weather for a location.

        Args:
            location: City name (optionally "city,country")
            units: OpenWeatherMap unit system ("metric", "imperial", "standard")
            timeout: Request timeout in seconds

        Returns:
            Raw OpenWeatherMap JSON payload

        Raises:
            httpx.HTTPStatusError: Provider answered with an error status
            httpx.TimeoutException: Provider did not answer within timeout
            httpx.HTTPError: Any other transport failure
        """
        async with httpx.AsyncClient(transport=self._transport) as client:
            response = await client.get(
                self.api_url,
                params={"q": location, "appid": self.api_key, "units": units},
                timeout=timeout,
            )
            response.raise_for_status()
            return cast(dict[str, Any], response.json())
