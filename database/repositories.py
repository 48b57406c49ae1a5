"""
Repositories over the users/threads/messages tables.

Each repository opens its own short-lived session per call and returns
immutable record dataclasses, so callers (context service, chat service)
never hold ORM objects outside a session.

The read methods implement the store protocols consumed by
advisor.services.context_service:
- UserRepository.find_user_by_id
- ThreadRepository.find_thread_by_id / find_recent_messages
"""

import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_async_session
from database.models import Message, MessageRole, Thread, User

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]

# Roles included in AI-facing conversation history
CONVERSATION_ROLES = (MessageRole.USER, MessageRole.ASSISTANT)


@dataclass(frozen=True)
class UserRecord:
    id: str
    username: str
    first_name: str | None = None
    location: str | None = None
    farm_size: str | None = None
    crop_types: list[str] = field(default_factory=list)
    experience: str | None = None
    language: str | None = None


@dataclass(frozen=True)
class ThreadRecord:
    id: str
    user_id: str
    title: str
    category: str
    description: str | None = None
    crop_type: str | None = None
    season: str | None = None
    urgency_level: int | None = None
    message_count: int = 0


@dataclass(frozen=True)
class MessageRecord:
    role: str
    content: str
    timestamp: datetime
    id: str | None = None


def parse_uuid(value: str | UUID) -> UUID | None:
    """Parse an id from the API layer; None for malformed ids."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


def _enum_value(value) -> str | None:
    if value is None:
        return None
    return getattr(value, "value", value)


def _user_to_record(user: User) -> UserRecord:
    return UserRecord(
        id=str(user.id),
        username=user.username,
        first_name=user.first_name,
        location=user.location,
        farm_size=user.farm_size,
        crop_types=list(user.crop_types or []),
        experience=_enum_value(user.experience),
        language=_enum_value(user.language),
    )


def _thread_to_record(thread: Thread) -> ThreadRecord:
    return ThreadRecord(
        id=str(thread.id),
        user_id=str(thread.user_id),
        title=thread.title,
        category=_enum_value(thread.category),
        description=thread.description,
        crop_type=thread.crop_type,
        season=_enum_value(thread.season),
        urgency_level=thread.urgency_level,
        message_count=thread.message_count,
    )


def _message_to_record(message: Message) -> MessageRecord:
    return MessageRecord(
        id=str(message.id),
        role=_enum_value(message.role),
        content=message.content,
        timestamp=message.created_at,
    )


class UserRepository:
    """Read access to farmer profiles."""

    def __init__(self, session_factory: SessionFactory = get_async_session):
        self._session_factory = session_factory

    async def find_user_by_id(self, user_id: str) -> UserRecord | None:
        uid = parse_uuid(user_id)
        if uid is None:
            logger.warning(f"Malformed user id: {user_id}")
            return None

        async with self._session_factory() as session:
            result = await session.execute(select(User).where(User.id == uid))
            user = result.scalar_one_or_none()

        return _user_to_record(user) if user is not None else None


class ThreadRepository:
    """Thread metadata plus the recent-history queries used for AI context."""

    def __init__(self, session_factory: SessionFactory = get_async_session):
        self._session_factory = session_factory

    async def find_thread_by_id(self, thread_id: str) -> ThreadRecord | None:
        tid = parse_uuid(thread_id)
        if tid is None:
            logger.warning(f"Malformed thread id: {thread_id}")
            return None

        async with self._session_factory() as session:
            result = await session.execute(select(Thread).where(Thread.id == tid))
            thread = result.scalar_one_or_none()

        return _thread_to_record(thread) if thread is not None else None

    async def find_thread_for_user(self, thread_id: str, user_id: str) -> ThreadRecord | None:
        """Return the thread only if it belongs to user_id."""
        tid = parse_uuid(thread_id)
        uid = parse_uuid(user_id)
        if tid is None or uid is None:
            return None

        async with self._session_factory() as session:
            result = await session.execute(
                select(Thread).where(Thread.id == tid, Thread.user_id == uid)
            )
            thread = result.scalar_one_or_none()

        return _thread_to_record(thread) if thread is not None else None

    async def find_recent_messages(self, thread_id: str, limit: int = 10) -> list[MessageRecord]:
        """
        Most recent visible user/assistant messages, NEWEST FIRST.

        Callers reverse the list for chronological prompts.
        """
        tid = parse_uuid(thread_id)
        if tid is None:
            return []

        stmt = (
            select(Message)
            .where(
                Message.thread_id == tid,
                Message.is_visible.is_(True),
                Message.role.in_(CONVERSATION_ROLES),
            )
            .order_by(Message.created_at.desc())
            .limit(limit)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            messages = result.scalars().all()

        return [_message_to_record(m) for m in messages]

    async def update_title(self, thread_id: str, title: str) -> None:
        tid = parse_uuid(thread_id)
        if tid is None:
            return

        async with self._session_factory() as session:
            await session.execute(
                update(Thread).where(Thread.id == tid).values(title=title)
            )
            await session.commit()

    async def increment_message_count(self, thread_id: str, by: int = 1) -> None:
        tid = parse_uuid(thread_id)
        if tid is None:
            return

        async with self._session_factory() as session:
            await session.execute(
                update(Thread)
                .where(Thread.id == tid)
                .values(
                    message_count=Thread.message_count + by,
                    last_message_at=datetime.now(UTC),
                )
            )
            await session.commit()


class MessageRepository:
    """Write side of the chat history."""

    def __init__(self, session_factory: SessionFactory = get_async_session):
        self._session_factory = session_factory

    async def add_message(
        self,
        thread_id: str,
        user_id: str,
        role: MessageRole,
        content: str,
        model: str | None = None,
        processing_time_ms: int | None = None,
        token_usage: dict[str, int] | None = None,
    ) -> MessageRecord:
        token_usage = token_usage or {}
        message = Message(
            thread_id=parse_uuid(thread_id),
            user_id=parse_uuid(user_id),
            role=role,
            content=content,
            model=model,
            processing_time_ms=processing_time_ms,
            input_tokens=token_usage.get("input"),
            output_tokens=token_usage.get("output"),
            total_tokens=token_usage.get("total"),
            created_at=datetime.now(UTC),
        )

        async with self._session_factory() as session:
            session.add(message)
            await session.commit()
            await session.refresh(message)

        logger.debug(
            f"Message stored | thread_id={thread_id} | role={role.value}",
            extra={"thread_id": thread_id, "user_id": user_id},
        )
        return _message_to_record(message)

    async def count_user_messages(self, thread_id: str) -> int:
        tid = parse_uuid(thread_id)
        if tid is None:
            return 0

        async with self._session_factory() as session:
            result = await session.execute(
                select(func.count())
                .select_from(Message)
                .where(Message.thread_id == tid, Message.role == MessageRole.USER)
            )
            return int(result.scalar_one())

    async def get_conversation_history(self, thread_id: str, limit: int = 20) -> list[MessageRecord]:
        """Last `limit` visible user/assistant messages in chronological order."""
        tid = parse_uuid(thread_id)
        if tid is None:
            return []

        stmt = (
            select(Message)
            .where(
                Message.thread_id == tid,
                Message.is_visible.is_(True),
                Message.role.in_(CONVERSATION_ROLES),
            )
            .order_by(Message.created_at.desc())
            .limit(limit)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            messages = result.scalars().all()

        return [_message_to_record(m) for m in reversed(messages)]
