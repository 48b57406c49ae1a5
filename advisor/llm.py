"""
OpenRouter LLM access via LangChain's ChatOpenAI.

OpenRouter speaks the OpenAI chat-completions protocol, so ChatOpenAI only
needs the OpenRouter base URL plus the optional ranking headers.
"""

import logging
from typing import Any

from langchain_openai import ChatOpenAI

from shared.config import get_settings

logger = logging.getLogger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


def get_llm(
    model: str | None = None,
    temperature: float = 0.7,
    max_tokens: int = 2000,
    request_timeout: float = 60.0,
) -> ChatOpenAI:
    """
    Build a ChatOpenAI client bound to OpenRouter.

    Args:
        model: OpenRouter model id (defaults to LLM_MODEL)
        temperature: Sampling temperature
        max_tokens: Completion token cap
        request_timeout: Per-request timeout in seconds

    Returns:
        Configured ChatOpenAI instance
    """
    settings = get_settings()
    return ChatOpenAI(
        model=model or settings.LLM_MODEL,
        base_url=OPENROUTER_BASE_URL,
        api_key=settings.OPENROUTER_API_KEY,
        temperature=temperature,
        max_tokens=max_tokens,
        request_timeout=request_timeout,
        max_retries=2,
        default_headers={
            "HTTP-Referer": settings.SITE_URL,
            "X-Title": settings.SITE_NAME,
        },
    )


def extract_token_usage(response: Any) -> dict[str, int]:
    """
    Pull token counts from an AIMessage.

    Returns {"input", "output", "total"} or an empty dict when the provider
    did not report usage.
    """
    usage = getattr(response, "usage_metadata", None)
    if not usage:
        return {}

    return {
        "input": usage.get("input_tokens", 0),
        "output": usage.get("output_tokens", 0),
        "total": usage.get("total_tokens", 0),
    }
