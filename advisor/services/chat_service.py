"""
Chat Service - One advisory chat turn, end to end.

Responsibilities:
1. Verify the thread belongs to the farmer and store the farmer's message
2. Name "New Chat" threads from their first message (LLM + regex cleanup)
3. Build the per-turn context and prefix it to the farmer's message
4. Generate the reply through OpenRouter and store it with usage metadata
5. Invalidate the cached conversation facet so the next turn sees this exchange
"""

import logging
import re
import time
from collections.abc import Callable
from typing import Any

from advisor.llm import extract_token_usage, get_llm
from advisor.prompts import build_chat_messages, build_title_prompt
from advisor.schemas import ChatReply
from advisor.services.context_service import ContextService
from database.models import MessageRole
from database.repositories import MessageRepository, ThreadRecord, ThreadRepository

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 20
DEFAULT_THREAD_TITLE = "New Chat"
MAX_TITLE_LENGTH = 50

CHAT_TEMPERATURE = 0.7
CHAT_MAX_TOKENS = 2000
TITLE_MAX_TOKENS = 30

_WHITESPACE_RE = re.compile(r"\s+")
_MARKDOWN_RE = re.compile(r"[*_#`]+")
_TITLE_PREFIX_RE = re.compile(r"^(?:thread\s+)?title\s*[:\-]\s*", re.IGNORECASE)
_TRAILING_PUNCT_RE = re.compile(r"[\s.,;:!?\-]+$")
_QUOTE_CHARS = "\"'“”‘’«» "


class ChatServiceError(Exception):
    """Base exception for chat turn failures."""
    pass


class EmptyMessageError(ChatServiceError):
    """Raised when the farmer's message is blank."""
    pass


class ThreadNotFoundError(ChatServiceError):
    """Raised when the thread does not exist or belongs to another user."""
    pass


class ChatGenerationError(ChatServiceError):
    """Raised when the LLM call fails or returns nothing."""
    pass


def _truncate_on_word(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    cut = text[:max_length]
    if " " in cut:
        cut = cut[:cut.rfind(" ")]
    return cut.rstrip()


def clean_thread_title(raw_title: str, fallback: str) -> str:
    """
    Normalize an LLM-generated thread title.

    Keeps only the first line, strips markdown, "Title:" prefixes, wrapping
    quotes and trailing punctuation, collapses whitespace and caps the
    result at MAX_TITLE_LENGTH characters on a word boundary. Falls back
    to the (cleaned) first message when nothing usable remains.
    """
    lines = [line for line in (raw_title or "").strip().splitlines() if line.strip()]
    title = lines[0] if lines else ""

    title = _MARKDOWN_RE.sub("", title)
    title = _WHITESPACE_RE.sub(" ", title).strip()
    title = _TITLE_PREFIX_RE.sub("", title)
    title = _TRAILING_PUNCT_RE.sub("", title)
    title = title.strip(_QUOTE_CHARS)
    title = _TRAILING_PUNCT_RE.sub("", title)

    if not title:
        title = _WHITESPACE_RE.sub(" ", fallback).strip() or DEFAULT_THREAD_TITLE

    return _truncate_on_word(title, MAX_TITLE_LENGTH)


class ChatService:
    """Runs chat turns against OpenRouter with per-turn farming context."""

    def __init__(
        self,
        context_service: ContextService,
        thread_repository: ThreadRepository,
        message_repository: MessageRepository,
        model: str,
        title_model: str | None = None,
        llm_factory: Callable[..., Any] = get_llm,
    ):
        self.context_service = context_service
        self.thread_repository = thread_repository
        self.message_repository = message_repository
        self.model = model
        self.title_model = title_model or model
        self._llm_factory = llm_factory

    async def generate_reply(self, user_id: str, thread_id: str, message: str) -> ChatReply:
        """
        Run one chat turn.

        Args:
            user_id: Farmer's user ID
            thread_id: Thread the message belongs to
            message: Farmer's message text

        Returns:
            ChatReply with the assistant's answer

        Raises:
            EmptyMessageError: Message is blank
            ThreadNotFoundError: Thread missing or owned by another user
            ChatGenerationError: LLM failed or returned an empty answer
        """
        if not message or not message.strip():
            raise EmptyMessageError("Message content cannot be empty")
        message = message.strip()
        log_extra = {"user_id": user_id, "thread_id": thread_id}

        thread = await self.thread_repository.find_thread_for_user(thread_id, user_id)
        if thread is None:
            raise ThreadNotFoundError(f"Thread not found: {thread_id}")

        history = await self.message_repository.get_conversation_history(thread_id, HISTORY_LIMIT)

        await self.message_repository.add_message(thread_id, user_id, MessageRole.USER, message)
        await self.thread_repository.increment_message_count(thread_id)

        new_title = await self._maybe_update_title(thread, message)

        context = await self.context_service.build_complete_context(user_id, thread_id, message)
        context_block = self.context_service.format_context_for_ai(context)
        messages = build_chat_messages(history, context_block, message)

        logger.info(
            f"Starting AI generation for thread {thread_id} with model {self.model}",
            extra=log_extra,
        )
        started = time.perf_counter()
        try:
            llm = self._llm_factory(
                model=self.model, temperature=CHAT_TEMPERATURE, max_tokens=CHAT_MAX_TOKENS
            )
            response = await llm.ainvoke(messages)
        except Exception as e:
            logger.error(f"AI generation failed for thread {thread_id}: {e}", exc_info=True, extra=log_extra)
            raise ChatGenerationError(f"AI generation failed: {e}") from e

        reply = str(response.content or "").strip()
        if not reply:
            logger.error(f"AI returned an empty response for thread {thread_id}", extra=log_extra)
            raise ChatGenerationError("AI returned an empty response")

        processing_time_ms = int((time.perf_counter() - started) * 1000)
        token_usage = extract_token_usage(response)

        await self.message_repository.add_message(
            thread_id,
            user_id,
            MessageRole.ASSISTANT,
            reply,
            model=self.model,
            processing_time_ms=processing_time_ms,
            token_usage=token_usage,
        )
        await self.thread_repository.increment_message_count(thread_id)
        self.context_service.invalidate_conversation(thread_id)

        logger.info(
            f"AI reply stored for thread {thread_id} | length={len(reply)} | "
            f"processing_time_ms={processing_time_ms}",
            extra=log_extra,
        )

        return ChatReply(
            thread_id=thread_id,
            reply=reply,
            model=self.model,
            title=new_title,
            processing_time_ms=processing_time_ms,
            token_usage=token_usage,
            context=context.metadata,
        )

    async def _maybe_update_title(self, thread: ThreadRecord, first_message: str) -> str | None:
        """Rename a default-titled thread after its first farmer message. Never raises."""
        if not thread.title.startswith(DEFAULT_THREAD_TITLE):
            return None

        try:
            user_message_count = await self.message_repository.count_user_messages(thread.id)
            if user_message_count != 1:
                return None

            title = await self.generate_thread_title(first_message)
            await self.thread_repository.update_title(thread.id, title)
            logger.info(f'Thread title updated: {thread.id} -> "{title}"', extra={"thread_id": thread.id})
            return title

        except Exception as e:
            logger.error(f"Failed to update thread title: {e}", extra={"thread_id": thread.id})
            return None

    async def generate_thread_title(self, first_message: str) -> str:
        """Ask the title model for a short title and clean it up."""
        llm = self._llm_factory(model=self.title_model, temperature=0.3, max_tokens=TITLE_MAX_TOKENS)
        response = await llm.ainvoke(build_title_prompt(first_message))
        return clean_thread_title(str(response.content or ""), fallback=first_message)
