"""
Unit tests for NudgesService and nudge parsing.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from langchain_core.messages import AIMessage

from advisor.schemas import NudgesWeather
from advisor.services.nudges_service import NudgesService, NudgesUnavailableError, parse_nudges

KOCHI_WEATHER = NudgesWeather(temperature="29°C", humidity="80%", conditions="light rain", temp=29)


class TestParseNudges:
    def test_strips_numbering_and_blank_lines(self):
        text = "1. Check drainage channels.\n\n2. Delay fertilizer until dry weather.\n3) Scout for leaf spot."

        assert parse_nudges(text) == [
            "Check drainage channels.",
            "Delay fertilizer until dry weather.",
            "Scout for leaf spot.",
        ]

    def test_drops_intro_and_extra_tips(self):
        text = (
            "Okay, here are 3 tips:\n"
            "1. **Mulch** the base.\n"
            "2. Stake tall plants.\n"
            "3. Remove dead leaves.\n"
            "4. An extra tip."
        )

        assert parse_nudges(text) == ["Mulch the base.", "Stake tall plants.", "Remove dead leaves."]

    def test_empty_text(self):
        assert parse_nudges("") == []


@pytest.fixture
def weather_service():
    service = MagicMock()
    service.get_weather_for_nudges = AsyncMock(return_value=KOCHI_WEATHER)
    return service


@pytest.fixture
def nudges_llm():
    llm = MagicMock()
    llm.ainvoke = AsyncMock(
        return_value=AIMessage(content="1. Improve drainage.\n2. Watch for Sigatoka.\n3. Prop up bunches.")
    )
    return llm


@pytest.fixture
def nudges_service(weather_service, nudges_llm):
    return NudgesService(weather_service, model="google/gemini-2.0-flash-001", llm_factory=MagicMock(return_value=nudges_llm))


@pytest.mark.asyncio
async def test_get_nudges(nudges_service, weather_service, nudges_llm):
    result = await nudges_service.get_nudges(" banana ", "Kochi")

    assert result.crop == "banana"
    assert result.location == "Kochi"
    assert result.weather == KOCHI_WEATHER
    assert result.nudges == ["Improve drainage.", "Watch for Sigatoka.", "Prop up bunches."]
    weather_service.get_weather_for_nudges.assert_awaited_once_with("Kochi")

    prompt = nudges_llm.ainvoke.await_args.args[0]
    assert "banana" in prompt
    assert "light rain" in prompt
    assert "29°C" in prompt


@pytest.mark.asyncio
async def test_weather_unavailable(nudges_service, weather_service, nudges_llm):
    weather_service.get_weather_for_nudges.return_value = None

    with pytest.raises(NudgesUnavailableError):
        await nudges_service.get_nudges("banana", "Atlantis")

    nudges_llm.ainvoke.assert_not_awaited()


@pytest.mark.asyncio
async def test_llm_failure(nudges_service, nudges_llm):
    nudges_llm.ainvoke.side_effect = RuntimeError("rate limited")

    with pytest.raises(NudgesUnavailableError, match="rate limited"):
        await nudges_service.get_nudges("banana", "Kochi")


@pytest.mark.asyncio
async def test_unparseable_reply(nudges_service, nudges_llm):
    nudges_llm.ainvoke.return_value = AIMessage(content="Here are some tips")

    with pytest.raises(NudgesUnavailableError):
        await nudges_service.get_nudges("banana", "Kochi")
