"""
Context Service - Gathers contextual information for AI conversations.

Before each chat turn this service assembles four independently-sourced
facets into one CompleteContext:
- user: farmer profile (ContextCache, 24 h TTL)
- conversation: thread metadata + recent messages (ContextCache, 30 min TTL)
- weather: current conditions at the farmer's location (WeatherService/WeatherCache)
- seasonal: Indian cropping season for the current month (pure, always present)

Any facet may fail independently; the failure is logged, recorded in
metadata.unavailable and the facet becomes None. build_complete_context()
never raises.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import date, datetime
from typing import Protocol, TypeVar
from zoneinfo import ZoneInfo

from advisor.schemas import (
    NOT_SPECIFIED,
    CompleteContext,
    ContextMetadata,
    ConversationContext,
    CurrentMessage,
    RecentMessage,
    SeasonalContext,
    UserContext,
    WeatherContext,
)
from advisor.services.weather_service import WeatherService, is_valid_location
from database.repositories import MessageRecord, ThreadRecord, UserRecord
from shared.ttl_cache import CacheStats, ContextCache

logger = logging.getLogger(__name__)

T = TypeVar("T")

USER_CONTEXT_TTL_MINUTES = 24 * 60
CONVERSATION_CONTEXT_TTL_MINUTES = 30
DEFAULT_MESSAGE_LIMIT = 10
MESSAGE_PREVIEW_CHARS = 200
DEFAULT_URGENCY_LEVEL = 3
HIGH_URGENCY_THRESHOLD = 3

DEFAULT_TIMEZONE = "Asia/Kolkata"

SEASONAL_ACTIVITIES: dict[str, list[str]] = {
    "kharif": ["planting rice", "cotton cultivation", "pest monitoring during rains"],
    "rabi": ["wheat cultivation", "irrigation management", "harvest preparation"],
    "zaid": ["summer crops", "water conservation", "heat stress management"],
}

AI_INSTRUCTIONS = (
    "INSTRUCTIONS:\n"
    "- Provide advice specific to the farmer's location and weather conditions\n"
    "- Consider the farmer's experience level in your response\n"
    "- Focus on the current season and appropriate activities\n"
    "- Be practical and actionable\n"
    "- Use simple language appropriate for the farmer's experience level\n"
)


class UserStore(Protocol):
    async def find_user_by_id(self, user_id: str) -> UserRecord | None: ...


class ThreadStore(Protocol):
    async def find_thread_by_id(self, thread_id: str) -> ThreadRecord | None: ...

    async def find_recent_messages(self, thread_id: str, limit: int) -> list[MessageRecord]: ...


class FacetUnavailableError(Exception):
    """Raised by a facet loader when its source has nothing for the request."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


def season_for_month(month: int) -> str:
    """Map a calendar month to kharif (Jun-Oct), rabi (Nov-Mar) or zaid (Apr-May)."""
    if 6 <= month <= 10:
        return "kharif"
    if month >= 11 or month <= 3:
        return "rabi"
    return "zaid"


def get_seasonal_context(today: date) -> SeasonalContext:
    """
    Seasonal heuristic for Indian agriculture.

    Planting season covers kharif and rabi. Harvest season is late rabi
    (February onwards) or late kharif (September onwards).
    """
    month = today.month
    season = season_for_month(month)

    return SeasonalContext(
        current_season=season,
        month=month,
        suggested_activities=list(SEASONAL_ACTIVITIES[season]),
        is_planting_season=season in ("kharif", "rabi"),
        is_harvest_season=(season == "rabi" and month >= 2) or (season == "kharif" and month >= 9),
    )


def build_user_context(user: UserRecord) -> UserContext:
    """Extract the user facet, defaulting every missing profile field."""
    return UserContext(
        location=user.location or NOT_SPECIFIED,
        farm_size=user.farm_size or NOT_SPECIFIED,
        crop_types=list(user.crop_types or []),
        experience=user.experience or "beginner",
        language=user.language or "en",
        first_name=user.first_name or user.username,
    )


def build_conversation_context(
    thread: ThreadRecord, messages_newest_first: list[MessageRecord]
) -> ConversationContext:
    """Compose the conversation facet; messages come back in chronological order."""
    recent = [
        RecentMessage(
            role=message.role,
            content=message.content[:MESSAGE_PREVIEW_CHARS],
            timestamp=message.timestamp,
        )
        for message in reversed(messages_newest_first)
    ]

    return ConversationContext(
        thread_category=thread.category,
        thread_title=thread.title,
        thread_description=thread.description,
        crop_type=thread.crop_type,
        season=thread.season,
        urgency_level=thread.urgency_level or DEFAULT_URGENCY_LEVEL,
        message_count=len(recent),
        recent_messages=recent,
    )


def format_context_for_ai(context: CompleteContext) -> str:
    """
    Render the context as a plain-text preamble for the model.

    Sections for absent facets are omitted; SEASONAL INFO and the closing
    INSTRUCTIONS block are always present.
    """
    sections: list[str] = []

    if context.user is not None:
        user = context.user
        lines = [
            "FARMER CONTEXT:",
            f"Farmer: {user.first_name} ({user.experience} level)",
            f"Location: {user.location}",
            f"Farm Size: {user.farm_size}",
        ]
        if user.crop_types:
            lines.append(f"Crops: {', '.join(user.crop_types)}")
        lines.append(f"Language: {user.language}")
        sections.append("\n".join(lines) + "\n")

    if context.weather is not None:
        weather = context.weather
        location = f"{weather.location}, {weather.country}" if weather.country else weather.location
        sections.append(
            "CURRENT WEATHER:\n"
            f"Location: {location}\n"
            f"Temperature: {weather.temperature}°C\n"
            f"Conditions: {weather.conditions}\n"
            f"Humidity: {weather.humidity}%\n"
            f"Wind Speed: {weather.wind_speed} m/s\n"
        )

    seasonal = context.seasonal
    sections.append(
        "SEASONAL INFO:\n"
        f"Current Season: {seasonal.current_season}\n"
        f"Month: {seasonal.month}\n"
        f"Typical Activities: {', '.join(seasonal.suggested_activities)}\n"
    )

    if context.conversation is not None:
        conversation = context.conversation
        lines = [
            "CONVERSATION CONTEXT:",
            f"Topic: {conversation.thread_category}",
            f"Title: {conversation.thread_title}",
        ]
        if conversation.crop_type:
            lines.append(f"Specific Crop: {conversation.crop_type}")
        if conversation.urgency_level > HIGH_URGENCY_THRESHOLD:
            lines.append("URGENT: This is a high priority query")
        sections.append("\n".join(lines) + "\n")

    sections.append(AI_INSTRUCTIONS)

    return "\n".join(sections) + "\n"


class ContextService:
    """
    Per-turn context assembly with cache-first facet loading.

    Stores, weather service and cache are injected; see api/main.py for
    the production wiring.
    """

    def __init__(
        self,
        user_store: UserStore,
        thread_store: ThreadStore,
        weather_service: WeatherService,
        cache: ContextCache,
        timezone: str = DEFAULT_TIMEZONE,
        user_ttl_minutes: float = USER_CONTEXT_TTL_MINUTES,
        conversation_ttl_minutes: float = CONVERSATION_CONTEXT_TTL_MINUTES,
        message_limit: int = DEFAULT_MESSAGE_LIMIT,
    ):
        self.user_store = user_store
        self.thread_store = thread_store
        self.weather_service = weather_service
        self.cache = cache
        self.tz = ZoneInfo(timezone)
        self.user_ttl_minutes = user_ttl_minutes
        self.conversation_ttl_minutes = conversation_ttl_minutes
        self.message_limit = message_limit

        logger.info(
            f"ContextService initialized | timezone={timezone} | message_limit={message_limit}"
        )

    def _now(self) -> datetime:
        return datetime.now(self.tz)

    # =========================================================================
    # Facet loaders (raise on failure; wrapped by _resolve_facet)
    # =========================================================================

    async def _load_user_context(self, user_id: str) -> UserContext:
        async def load() -> UserContext:
            user = await self.user_store.find_user_by_id(user_id)
            if user is None:
                raise FacetUnavailableError("user_not_found")
            logger.debug(f"User context retrieved for: {user_id}", extra={"user_id": user_id})
            return build_user_context(user)

        return await self.cache.get_or_load(f"user:{user_id}", load, self.user_ttl_minutes)

    async def _load_conversation_context(self, thread_id: str, limit: int) -> ConversationContext:
        async def load() -> ConversationContext:
            thread = await self.thread_store.find_thread_by_id(thread_id)
            if thread is None:
                raise FacetUnavailableError("thread_not_found")
            messages = await self.thread_store.find_recent_messages(thread_id, limit)
            logger.debug(
                f"Conversation context retrieved for thread: {thread_id}",
                extra={"thread_id": thread_id},
            )
            return build_conversation_context(thread, messages)

        return await self.cache.get_or_load(
            f"conversation:{thread_id}:{limit}", load, self.conversation_ttl_minutes
        )

    async def _load_weather_context(self, location: str | None) -> WeatherContext:
        if not is_valid_location(location):
            raise FacetUnavailableError("location_not_specified")

        weather = await self.weather_service.get_weather_for_context(location)
        if weather is None:
            raise FacetUnavailableError("weather_unavailable")
        return weather

    async def _resolve_facet(
        self, name: str, loader: Callable[[], Awaitable[T]]
    ) -> tuple[T | None, str | None]:
        """Run a facet loader, converting any failure into (None, reason)."""
        try:
            return await loader(), None
        except FacetUnavailableError as e:
            logger.warning(f"Context facet '{name}' unavailable: {e.reason}")
            return None, e.reason
        except Exception as e:
            logger.error(f"Error getting {name} context: {e}", exc_info=True)
            return None, f"error: {e}"

    # =========================================================================
    # Public facet accessors
    # =========================================================================

    async def get_user_context(self, user_id: str) -> UserContext | None:
        user, _ = await self._resolve_facet("user", lambda: self._load_user_context(user_id))
        return user

    async def get_conversation_context(
        self, thread_id: str, limit: int | None = None
    ) -> ConversationContext | None:
        limit = self.message_limit if limit is None else limit
        conversation, _ = await self._resolve_facet(
            "conversation", lambda: self._load_conversation_context(thread_id, limit)
        )
        return conversation

    async def get_weather_context(self, location: str | None) -> WeatherContext | None:
        weather, _ = await self._resolve_facet(
            "weather", lambda: self._load_weather_context(location)
        )
        return weather

    def get_seasonal_context(self, today: date | None = None) -> SeasonalContext:
        return get_seasonal_context(today or self._now().date())

    # =========================================================================
    # Assembly
    # =========================================================================

    async def build_complete_context(
        self, user_id: str, thread_id: str, user_message: str
    ) -> CompleteContext:
        """
        Build complete context for an AI conversation turn.

        Args:
            user_id: User ID
            thread_id: Thread ID
            user_message: The farmer's current message

        Returns:
            CompleteContext (degraded to seasonal + current message on unexpected errors)
        """
        now = self._now()
        current_message = CurrentMessage(content=user_message, timestamp=now)
        log_extra = {"user_id": user_id, "thread_id": thread_id}

        try:
            logger.info(f"Building context for user: {user_id}, thread: {thread_id}", extra=log_extra)

            (user, user_reason), (conversation, conversation_reason) = await asyncio.gather(
                self._resolve_facet("user", lambda: self._load_user_context(user_id)),
                self._resolve_facet(
                    "conversation",
                    lambda: self._load_conversation_context(thread_id, self.message_limit),
                ),
            )

            if user is not None:
                weather, weather_reason = await self._resolve_facet(
                    "weather", lambda: self._load_weather_context(user.location)
                )
            else:
                weather, weather_reason = None, "no_user_profile"

            seasonal = self.get_seasonal_context(now.date())

            unavailable = {
                name: reason
                for name, reason in (
                    ("user", user_reason),
                    ("weather", weather_reason),
                    ("conversation", conversation_reason),
                )
                if reason is not None
            }

            context = CompleteContext(
                user=user,
                weather=weather,
                conversation=conversation,
                seasonal=seasonal,
                current_message=current_message,
                metadata=ContextMetadata(
                    context_built_at=self._now(),
                    has_user_data=user is not None,
                    has_weather_data=weather is not None,
                    has_conversation_data=conversation is not None,
                    unavailable=unavailable,
                ),
            )

            logger.info(
                f"Context built successfully - Weather: {weather is not None}, "
                f"User: {user is not None}, Conversation: {conversation is not None}",
                extra=log_extra,
            )
            return context

        except Exception as e:
            logger.error(f"Error building complete context: {e}", exc_info=True, extra=log_extra)
            return self._degraded_context(current_message, str(e))

    def _degraded_context(self, current_message: CurrentMessage, error: str) -> CompleteContext:
        """Minimal context so the chat still works."""
        return CompleteContext(
            seasonal=self.get_seasonal_context(),
            current_message=current_message,
            metadata=ContextMetadata(
                context_built_at=self._now(),
                unavailable={
                    "user": "context_error",
                    "weather": "context_error",
                    "conversation": "context_error",
                },
                error=error,
            ),
        )

    async def preload_user_weather(self, user_id: str) -> None:
        """Warm the weather cache for a user's location (best effort)."""
        try:
            user = await self.get_user_context(user_id)
            if user is not None and user.has_location:
                await self.weather_service.preload_weather(user.location)
                logger.debug(
                    f"Weather pre-loaded for user {user_id} at location: {user.location}",
                    extra={"user_id": user_id, "location": user.location},
                )
        except Exception as e:
            logger.warning(f"Failed to pre-load weather for user {user_id}: {e}")

    def format_context_for_ai(self, context: CompleteContext) -> str:
        return format_context_for_ai(context)

    def invalidate_conversation(self, thread_id: str, limit: int | None = None) -> None:
        """Drop the cached conversation facet after new messages are stored."""
        limit = self.message_limit if limit is None else limit
        self.cache.delete(f"conversation:{thread_id}:{limit}")

    def get_cache_stats(self) -> dict[str, CacheStats]:
        return {
            "context_cache": self.cache.get_stats(),
            "weather_cache": self.weather_service.get_cache_stats(),
        }

    def clear_cache(self) -> None:
        self.cache.clear()
        self.weather_service.clear_cache()
