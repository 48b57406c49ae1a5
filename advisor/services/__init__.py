"""
Advisor services module.

Services:
- weather_service: Cached weather lookups, error classification, preloading
- context_service: Per-turn context assembly over the context cache
- chat_service: Chat turn orchestration (context + OpenRouter + persistence)
- nudges_service: Weather-aware farming tips for a crop
"""

from advisor.services.chat_service import (
    ChatGenerationError,
    ChatService,
    ChatServiceError,
    EmptyMessageError,
    ThreadNotFoundError,
    clean_thread_title,
)
from advisor.services.context_service import (
    ContextService,
    FacetUnavailableError,
    format_context_for_ai,
    get_seasonal_context,
)
from advisor.services.nudges_service import (
    NudgesService,
    NudgesUnavailableError,
    parse_nudges,
)
from advisor.services.weather_service import (
    WeatherErrorKind,
    WeatherService,
    classify_weather_error,
    standardize_weather_data,
)

__all__ = [
    # Chat service
    "ChatGenerationError",
    "ChatService",
    "ChatServiceError",
    "EmptyMessageError",
    "ThreadNotFoundError",
    "clean_thread_title",
    # Context service
    "ContextService",
    "FacetUnavailableError",
    "format_context_for_ai",
    "get_seasonal_context",
    # Nudges service
    "NudgesService",
    "NudgesUnavailableError",
    "parse_nudges",
    # Weather service
    "WeatherErrorKind",
    "WeatherService",
    "classify_weather_error",
    "standardize_weather_data",
]
