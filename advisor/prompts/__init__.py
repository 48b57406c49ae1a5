"""
Prompt loading and construction for the Krishi Officer assistant.

This module provides:
- load_system_prompt(): Fixed assistant persona (from disk, with fallback)
- build_chat_messages(): System prompt + history + context-prefixed farmer turn
- build_nudges_prompt(): Three-tip prompt for a crop under current weather
- build_title_prompt(): Short thread title from the first farmer message
"""

import logging
from functools import lru_cache
from pathlib import Path

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from advisor.schemas import NudgesWeather
from database.repositories import MessageRecord

logger = logging.getLogger(__name__)

FALLBACK_SYSTEM_PROMPT = (
    "You are a Digital Krishi Officer, an AI-powered agricultural advisory assistant. "
    "Provide helpful, accurate, and practical farming advice."
)


@lru_cache
def load_system_prompt() -> str:
    """
    Load the Krishi Officer system prompt from disk.

    Returns:
        str: The complete system prompt text.

    Raises:
        No exceptions raised - returns fallback prompt on errors.
    """
    prompt_path = Path(__file__).parent / "krishi_system_prompt.md"

    try:
        prompt = prompt_path.read_text(encoding="utf-8").strip()

        if len(prompt) < 100:
            logger.error(
                f"System prompt too short ({len(prompt)} characters), using fallback"
            )
            return FALLBACK_SYSTEM_PROMPT

        logger.info(f"Loaded system prompt ({len(prompt)} characters)")
        return prompt

    except FileNotFoundError:
        logger.error(f"System prompt file not found at {prompt_path}, using fallback")
        return FALLBACK_SYSTEM_PROMPT

    except OSError as e:
        logger.error(f"Error reading system prompt file: {e}, using fallback")
        return FALLBACK_SYSTEM_PROMPT


def build_chat_messages(
    history: list[MessageRecord],
    context_block: str,
    user_message: str,
    system_prompt: str | None = None,
) -> list[BaseMessage]:
    """
    Assemble the model conversation for one chat turn.

    The context block is advisory: it is prefixed to the farmer's current
    message rather than sent as a system message.

    Args:
        history: Prior visible messages, chronological
        context_block: Output of format_context_for_ai()
        user_message: The farmer's current message
        system_prompt: Override for the persona prompt

    Returns:
        LangChain message list ready for ChatOpenAI.ainvoke()
    """
    messages: list[BaseMessage] = [SystemMessage(content=system_prompt or load_system_prompt())]

    for record in history:
        if record.role == "assistant":
            messages.append(AIMessage(content=record.content))
        elif record.role == "user":
            messages.append(HumanMessage(content=record.content))

    messages.append(HumanMessage(content=f"{context_block}FARMER'S QUESTION:\n{user_message}"))
    return messages


def build_nudges_prompt(crop: str, weather: NudgesWeather) -> str:
    return (
        "You are an agricultural expert.\n"
        f"Provide 3 short, actionable farming tips for a farmer growing {crop}.\n"
        f"Weather right now: {weather.conditions}, temperature: {weather.temperature}, "
        f"humidity: {weather.humidity}.\n"
        "Important:\n"
        "- Give the tips directly, without any introductory sentence.\n"
        "- Number them 1, 2, 3 only.\n"
        f"- Keep them simple and relevant only to {crop}.\n"
        '- Do NOT include phrases like "Okay, here are..." or "Here are 3 tips".\n'
    )


def build_title_prompt(first_message: str) -> str:
    return (
        "Write a short title (at most 6 words) for a farming advice conversation "
        "that starts with the message below. Reply with the title only, "
        "no quotes and no punctuation at the end.\n\n"
        f"Message: {first_message}"
    )


__all__ = [
    "FALLBACK_SYSTEM_PROMPT",
    "build_chat_messages",
    "build_nudges_prompt",
    "build_title_prompt",
    "load_system_prompt",
]
