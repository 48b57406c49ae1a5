"""
Service composition for the API process.

The caches are built here, once per process, and injected into every
service that reads them. Routes reach the services through get_services().
"""

import logging
from dataclasses import dataclass

from fastapi import HTTPException, Request, status

from advisor.services import ChatService, ContextService, NudgesService, WeatherService
from database.repositories import MessageRepository, ThreadRepository, UserRepository
from shared.config import Settings
from shared.ttl_cache import ContextCache, WeatherCache
from shared.weather_client import OpenWeatherClient

logger = logging.getLogger(__name__)


@dataclass
class AppServices:
    weather_cache: WeatherCache
    context_cache: ContextCache
    weather_service: WeatherService
    context_service: ContextService
    chat_service: ChatService
    nudges_service: NudgesService

    def start(self) -> None:
        self.weather_cache.start()
        self.context_cache.start()

    async def stop(self) -> None:
        await self.weather_cache.stop()
        await self.context_cache.stop()


def build_services(settings: Settings) -> AppServices:
    """Wire caches, stores, weather provider and services from settings."""
    weather_cache = WeatherCache(
        max_size=settings.WEATHER_CACHE_MAX_SIZE,
        sweep_interval_seconds=settings.WEATHER_CACHE_SWEEP_MINUTES * 60,
    )
    context_cache = ContextCache(
        max_size=settings.CONTEXT_CACHE_MAX_SIZE,
        sweep_interval_seconds=settings.CONTEXT_CACHE_SWEEP_MINUTES * 60,
    )

    weather_service = WeatherService(
        provider=OpenWeatherClient(),
        cache=weather_cache,
        ttl_minutes=settings.WEATHER_CACHE_TTL_MINUTES,
        timeout=settings.WEATHER_TIMEOUT_SECONDS,
    )

    thread_repository = ThreadRepository()
    context_service = ContextService(
        user_store=UserRepository(),
        thread_store=thread_repository,
        weather_service=weather_service,
        cache=context_cache,
        timezone=settings.TIMEZONE,
        user_ttl_minutes=settings.USER_CONTEXT_TTL_MINUTES,
        conversation_ttl_minutes=settings.CONVERSATION_CONTEXT_TTL_MINUTES,
        message_limit=settings.CONVERSATION_MESSAGE_LIMIT,
    )

    chat_service = ChatService(
        context_service=context_service,
        thread_repository=thread_repository,
        message_repository=MessageRepository(),
        model=settings.LLM_MODEL,
        title_model=settings.NUDGES_MODEL,
    )
    nudges_service = NudgesService(weather_service, model=settings.NUDGES_MODEL)

    logger.info("Advisor services composed")
    return AppServices(
        weather_cache=weather_cache,
        context_cache=context_cache,
        weather_service=weather_service,
        context_service=context_service,
        chat_service=chat_service,
        nudges_service=nudges_service,
    )


def get_services(request: Request) -> AppServices:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Services are not initialized",
        )
    return services
