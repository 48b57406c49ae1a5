"""
Unit tests for the SQLAlchemy repositories with a mocked AsyncSession.

No database is required: session.execute() returns MagicMock results
holding in-memory ORM instances.
"""

from contextlib import asynccontextmanager
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock
from uuid import UUID

import pytest

from database.models import (
    ExperienceLevel,
    Language,
    Message,
    MessageRole,
    Season,
    Thread,
    ThreadCategory,
    User,
)
from database.repositories import (
    MessageRepository,
    ThreadRepository,
    UserRepository,
    parse_uuid,
)

USER_UUID = UUID("5b0f7a1e-3c2d-4e8f-9a6b-1c2d3e4f5a6b")
THREAD_UUID = UUID("9d8c7b6a-5f4e-4d3c-8b2a-1f0e9d8c7b6a")


def _session_returning(result) -> MagicMock:
    session = MagicMock()
    session.execute = AsyncMock(return_value=result)
    session.commit = AsyncMock()
    session.refresh = AsyncMock()
    return session


def _factory(session):
    @asynccontextmanager
    async def factory():
        yield session

    return factory


def _message(role: MessageRole, content: str, minute: int) -> Message:
    return Message(
        thread_id=THREAD_UUID,
        user_id=USER_UUID,
        role=role,
        content=content,
        is_visible=True,
        created_at=datetime(2025, 7, 14, 10, minute, tzinfo=UTC),
    )


def test_parse_uuid():
    assert parse_uuid(str(USER_UUID)) == USER_UUID
    assert parse_uuid(USER_UUID) is USER_UUID
    assert parse_uuid("not-a-uuid") is None


@pytest.mark.asyncio
async def test_find_user_by_id_maps_enums():
    result = MagicMock()
    result.scalar_one_or_none.return_value = User(
        id=USER_UUID,
        username="ravi_k",
        email="ravi@example.com",
        password_hash="x",
        first_name="Ravi",
        location="Kochi",
        crop_types=["banana"],
        experience=ExperienceLevel.ADVANCED,
        language=Language.MALAYALAM,
    )
    repo = UserRepository(session_factory=_factory(_session_returning(result)))

    record = await repo.find_user_by_id(str(USER_UUID))

    assert record.id == str(USER_UUID)
    assert record.location == "Kochi"
    assert record.experience == "advanced"
    assert record.language == "ml"
    assert record.farm_size is None


@pytest.mark.asyncio
async def test_malformed_id_skips_database():
    session = _session_returning(MagicMock())
    repo = UserRepository(session_factory=_factory(session))

    assert await repo.find_user_by_id("abc") is None
    session.execute.assert_not_awaited()


@pytest.mark.asyncio
async def test_find_thread_by_id():
    result = MagicMock()
    result.scalar_one_or_none.return_value = Thread(
        id=THREAD_UUID,
        user_id=USER_UUID,
        title="Banana leaf spots",
        category=ThreadCategory.PEST_MANAGEMENT,
        crop_type="banana",
        season=Season.KHARIF,
        urgency_level=4,
        message_count=2,
    )
    repo = ThreadRepository(session_factory=_factory(_session_returning(result)))

    record = await repo.find_thread_by_id(str(THREAD_UUID))

    assert record.category == "pest_management"
    assert record.season == "kharif"
    assert record.user_id == str(USER_UUID)


@pytest.mark.asyncio
async def test_recent_messages_newest_first_and_history_chronological():
    newest_first = [
        _message(MessageRole.ASSISTANT, "Remove affected leaves.", 5),
        _message(MessageRole.USER, "My banana leaves have spots", 0),
    ]
    result = MagicMock()
    result.scalars.return_value.all.return_value = newest_first
    factory = _factory(_session_returning(result))

    recent = await ThreadRepository(session_factory=factory).find_recent_messages(str(THREAD_UUID), 10)
    history = await MessageRepository(session_factory=factory).get_conversation_history(str(THREAD_UUID))

    assert [m.role for m in recent] == ["assistant", "user"]
    assert [m.role for m in history] == ["user", "assistant"]


@pytest.mark.asyncio
async def test_add_message_stores_token_usage():
    session = _session_returning(MagicMock())
    repo = MessageRepository(session_factory=_factory(session))

    record = await repo.add_message(
        str(THREAD_UUID),
        str(USER_UUID),
        MessageRole.ASSISTANT,
        "Spray after the rain.",
        model="google/gemini-2.5-flash-lite",
        processing_time_ms=900,
        token_usage={"input": 120, "output": 30, "total": 150},
    )

    stored = session.add.call_args.args[0]
    assert stored.thread_id == THREAD_UUID
    assert stored.role is MessageRole.ASSISTANT
    assert (stored.input_tokens, stored.output_tokens, stored.total_tokens) == (120, 30, 150)
    session.commit.assert_awaited_once()
    assert record.role == "assistant"
    assert record.content == "Spray after the rain."
