"""
Nudges Service - Three short, weather-aware farming tips for a crop.
"""

import logging
import re
from collections.abc import Callable
from typing import Any

from advisor.llm import get_llm
from advisor.prompts import build_nudges_prompt
from advisor.schemas import NudgesResult
from advisor.services.weather_service import WeatherService

logger = logging.getLogger(__name__)

MAX_NUDGES = 3
NUDGES_MAX_TOKENS = 300

_NUMBERING_RE = re.compile(r"^\s*(?:\d+[.)]|[-*•])\s*")
_INTRO_RE = re.compile(r"^(?:okay|ok|sure|here are|here's)\b", re.IGNORECASE)


class NudgesUnavailableError(Exception):
    """Raised when weather or the LLM cannot produce nudges."""
    pass


def parse_nudges(text: str) -> list[str]:
    """
    Split an LLM answer into at most three tips.

    Drops blank lines and chatty introductions, strips "1." / "-" style
    markers and bold markdown.
    """
    nudges = []
    for line in (text or "").splitlines():
        line = line.strip()
        if not line or _INTRO_RE.match(line):
            continue
        line = _NUMBERING_RE.sub("", line).replace("**", "").strip()
        if line:
            nudges.append(line)
    return nudges[:MAX_NUDGES]


class NudgesService:
    def __init__(
        self,
        weather_service: WeatherService,
        model: str | None = None,
        llm_factory: Callable[..., Any] = get_llm,
    ):
        self.weather_service = weather_service
        self.model = model
        self._llm_factory = llm_factory

    async def get_nudges(self, crop: str, location: str) -> NudgesResult:
        """
        Generate nudges for a crop at a location.

        Raises:
            NudgesUnavailableError: Weather unavailable, LLM failed or no tips parsed
        """
        crop = crop.strip()
        location = location.strip()
        log_extra = {"location": location}

        weather = await self.weather_service.get_weather_for_nudges(location)
        if weather is None:
            logger.warning(f"No weather for nudges: crop={crop}", extra=log_extra)
            raise NudgesUnavailableError(f"Weather data unavailable for {location}")

        try:
            llm = self._llm_factory(model=self.model, temperature=0.7, max_tokens=NUDGES_MAX_TOKENS)
            response = await llm.ainvoke(build_nudges_prompt(crop, weather))
        except Exception as e:
            logger.error(f"Nudges generation failed for {crop}: {e}", exc_info=True, extra=log_extra)
            raise NudgesUnavailableError(f"Nudges generation failed: {e}") from e

        nudges = parse_nudges(str(response.content or ""))
        if not nudges:
            raise NudgesUnavailableError("AI returned no usable nudges")

        logger.info(f"Generated {len(nudges)} nudges for {crop}", extra=log_extra)
        return NudgesResult(crop=crop, location=location, weather=weather, nudges=nudges)
