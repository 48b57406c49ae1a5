"""
Unit tests for ContextService.

Tests verify:
- The Kochi scenario end-to-end (all four facets, rendered prompt)
- build_complete_context() never raises, whatever the collaborators do
- Absent facets carry a reason in metadata.unavailable
- Facet caching and invalidation
"""

from dataclasses import replace
from datetime import datetime
from unittest.mock import AsyncMock, patch
from zoneinfo import ZoneInfo

import pytest

from advisor.services.context_service import ContextService
from advisor.services.weather_service import WeatherService
from database.repositories import MessageRecord
from shared.ttl_cache import ContextCache, WeatherCache

USER_ID = "5b0f7a1e-3c2d-4e8f-9a6b-1c2d3e4f5a6b"
THREAD_ID = "9d8c7b6a-5f4e-4d3c-8b2a-1f0e9d8c7b6a"
JULY_MORNING = datetime(2025, 7, 15, 9, 30, tzinfo=ZoneInfo("Asia/Kolkata"))


@pytest.fixture
def context_cache(clock):
    return ContextCache(clock=clock)


@pytest.fixture
def weather_service(weather_provider, clock):
    return WeatherService(weather_provider, WeatherCache(clock=clock))


@pytest.fixture
def context_service(user_store, thread_store, weather_service, context_cache):
    return ContextService(user_store, thread_store, weather_service, context_cache)


@pytest.fixture
def in_july():
    with patch.object(ContextService, "_now", return_value=JULY_MORNING):
        yield


class TestKochiScenario:
    @pytest.mark.asyncio
    async def test_all_facets_present(self, context_service, in_july):
        context = await context_service.build_complete_context(USER_ID, THREAD_ID, "Should I spray now?")

        assert context.user.location == "Kochi"
        assert context.user.first_name == "Ravi"
        assert context.weather.temperature == 29
        assert context.weather.humidity == 80
        assert context.weather.conditions == "light rain"
        assert context.conversation.thread_category == "pest_management"
        assert context.conversation.crop_type == "banana"
        assert context.conversation.message_count == 2
        assert context.seasonal.current_season == "kharif"
        assert context.seasonal.month == 7
        assert context.seasonal.is_planting_season is True
        assert context.current_message.content == "Should I spray now?"

        assert context.metadata.has_user_data
        assert context.metadata.has_weather_data
        assert context.metadata.has_conversation_data
        assert context.metadata.unavailable == {}
        assert context.metadata.error is None

    @pytest.mark.asyncio
    async def test_recent_messages_chronological(self, context_service, in_july):
        context = await context_service.build_complete_context(USER_ID, THREAD_ID, "hi")

        roles = [message.role for message in context.conversation.recent_messages]
        assert roles == ["user", "assistant"]

    @pytest.mark.asyncio
    async def test_long_message_truncated_to_preview(self, context_service, thread_store, in_july):
        thread_store.find_recent_messages.return_value = [
            MessageRecord(role="user", content="x" * 500, timestamp=JULY_MORNING),
        ]

        context = await context_service.build_complete_context(USER_ID, THREAD_ID, "hi")

        assert len(context.conversation.recent_messages[0].content) == 200

    @pytest.mark.asyncio
    async def test_formatted_prompt_has_all_sections(self, context_service, in_july):
        context = await context_service.build_complete_context(USER_ID, THREAD_ID, "hi")
        prompt = context_service.format_context_for_ai(context)

        for header in ("FARMER CONTEXT:", "CURRENT WEATHER:", "SEASONAL INFO:", "CONVERSATION CONTEXT:"):
            assert header in prompt
        assert "Location: Kochi, IN" in prompt
        assert "URGENT: This is a high priority query" in prompt

        no_weather = context.model_copy(update={"weather": None})
        assert "CURRENT WEATHER" not in context_service.format_context_for_ai(no_weather)


class TestDegradedContext:
    @pytest.mark.asyncio
    async def test_user_store_failure(self, context_service, user_store, weather_provider):
        user_store.find_user_by_id.side_effect = ConnectionError("db down")

        context = await context_service.build_complete_context(USER_ID, THREAD_ID, "hi")

        assert context.user is None
        assert context.weather is None
        assert context.conversation is not None
        assert context.metadata.unavailable["user"].startswith("error:")
        assert context.metadata.unavailable["weather"] == "no_user_profile"
        assert weather_provider.fetch_weather.await_count == 0

    @pytest.mark.asyncio
    async def test_thread_store_failure(self, context_service, thread_store):
        thread_store.find_thread_by_id.side_effect = ConnectionError("db down")

        context = await context_service.build_complete_context(USER_ID, THREAD_ID, "hi")

        assert context.conversation is None
        assert context.user is not None
        assert context.weather is not None
        assert set(context.metadata.unavailable) == {"conversation"}

    @pytest.mark.asyncio
    async def test_weather_failure(self, context_service, weather_provider):
        weather_provider.fetch_weather.side_effect = TimeoutError()

        context = await context_service.build_complete_context(USER_ID, THREAD_ID, "hi")

        assert context.weather is None
        assert context.metadata.unavailable == {"weather": "weather_unavailable"}

    @pytest.mark.asyncio
    async def test_all_collaborators_fail(self, context_service, user_store, thread_store, weather_provider):
        user_store.find_user_by_id.side_effect = RuntimeError("boom")
        thread_store.find_thread_by_id.side_effect = RuntimeError("boom")
        weather_provider.fetch_weather.side_effect = RuntimeError("boom")

        context = await context_service.build_complete_context(USER_ID, THREAD_ID, "hi")

        assert context.user is None
        assert context.weather is None
        assert context.conversation is None
        assert context.seasonal is not None
        assert context.current_message.content == "hi"
        assert set(context.metadata.unavailable) == {"user", "weather", "conversation"}

    @pytest.mark.asyncio
    async def test_unexpected_assembly_error_returns_minimal_context(self, context_service):
        with patch.object(
            ContextService, "_resolve_facet", new_callable=AsyncMock, side_effect=RuntimeError("bug")
        ):
            context = await context_service.build_complete_context(USER_ID, THREAD_ID, "hi")

        assert context.user is None
        assert context.conversation is None
        assert context.seasonal is not None
        assert context.metadata.error == "bug"
        assert context.metadata.unavailable["user"] == "context_error"

    @pytest.mark.asyncio
    async def test_missing_records_have_reasons(self, context_service, user_store, thread_store):
        user_store.find_user_by_id.return_value = None
        thread_store.find_thread_by_id.return_value = None

        context = await context_service.build_complete_context(USER_ID, THREAD_ID, "hi")

        assert context.metadata.unavailable == {
            "user": "user_not_found",
            "weather": "no_user_profile",
            "conversation": "thread_not_found",
        }

    @pytest.mark.asyncio
    async def test_location_not_specified(self, context_service, user_store, farmer_record, weather_provider):
        user_store.find_user_by_id.return_value = replace(farmer_record, location=None)

        context = await context_service.build_complete_context(USER_ID, THREAD_ID, "hi")

        assert context.user.location == "Not specified"
        assert context.metadata.unavailable == {"weather": "location_not_specified"}
        assert weather_provider.fetch_weather.await_count == 0


class TestFacetCaching:
    @pytest.mark.asyncio
    async def test_user_facet_cached(self, context_service, user_store):
        await context_service.get_user_context(USER_ID)
        await context_service.get_user_context(USER_ID)

        user_store.find_user_by_id.assert_awaited_once_with(USER_ID)

    @pytest.mark.asyncio
    async def test_user_facet_expires_after_a_day(self, context_service, user_store, clock):
        await context_service.get_user_context(USER_ID)
        clock.advance(hours=24)
        await context_service.get_user_context(USER_ID)

        assert user_store.find_user_by_id.await_count == 2

    @pytest.mark.asyncio
    async def test_missing_user_not_cached(self, context_service, user_store):
        user_store.find_user_by_id.return_value = None

        assert await context_service.get_user_context(USER_ID) is None
        assert await context_service.get_user_context(USER_ID) is None
        assert user_store.find_user_by_id.await_count == 2

    @pytest.mark.asyncio
    async def test_conversation_invalidation(self, context_service, thread_store):
        await context_service.get_conversation_context(THREAD_ID)
        context_service.invalidate_conversation(THREAD_ID)
        await context_service.get_conversation_context(THREAD_ID)

        assert thread_store.find_thread_by_id.await_count == 2
        thread_store.find_recent_messages.assert_awaited_with(THREAD_ID, 10)

    @pytest.mark.asyncio
    async def test_explicit_zero_limit_is_honoured(self, context_service, thread_store):
        await context_service.get_conversation_context(THREAD_ID, limit=0)
        thread_store.find_recent_messages.assert_awaited_once_with(THREAD_ID, 0)

        context_service.invalidate_conversation(THREAD_ID, 0)
        await context_service.get_conversation_context(THREAD_ID, limit=0)

        assert thread_store.find_thread_by_id.await_count == 2
        thread_store.find_recent_messages.assert_awaited_with(THREAD_ID, 0)

    @pytest.mark.asyncio
    async def test_stats_and_clear(self, context_service):
        await context_service.build_complete_context(USER_ID, THREAD_ID, "hi")

        stats = context_service.get_cache_stats()
        assert stats["context_cache"].size == 2
        assert stats["weather_cache"].size == 1

        context_service.clear_cache()
        stats = context_service.get_cache_stats()
        assert stats["context_cache"].size == 0
        assert stats["weather_cache"].size == 0


class TestPreloadUserWeather:
    @pytest.mark.asyncio
    async def test_warms_weather_cache(self, context_service, weather_provider):
        await context_service.preload_user_weather(USER_ID)

        weather_provider.fetch_weather.assert_awaited_once()
        assert context_service.weather_service.get_cache_stats().size == 1

    @pytest.mark.asyncio
    async def test_unknown_user_is_noop(self, context_service, user_store, weather_provider):
        user_store.find_user_by_id.return_value = None

        await context_service.preload_user_weather(USER_ID)

        assert weather_provider.fetch_weather.await_count == 0
