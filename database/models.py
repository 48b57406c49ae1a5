"""
SQLAlchemy ORM models for the advisory chat tables.

This module defines the core tables:
- users: Farmers with profile (location, farm size, crops) and preferences
- threads: Conversation threads with topic category and crop metadata
- messages: Individual chat messages within a thread

All models use:
- UUID primary keys (auto-generated)
- TIMESTAMP WITH TIME ZONE for datetime fields
- Proper indexes and constraints
"""

from datetime import UTC, datetime
from enum import Enum as PyEnum
from uuid import UUID, uuid4

from sqlalchemy import (
    ARRAY,
    TIMESTAMP,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy import (
    Enum as SQLEnum,
)
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ============================================================================
# Base Class
# ============================================================================


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


# ============================================================================
# Enums
# ============================================================================


class ExperienceLevel(str, PyEnum):
    """Farmer's self-declared experience."""

    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class Language(str, PyEnum):
    """Preferred reply language."""

    ENGLISH = "en"
    MALAYALAM = "ml"
    HINDI = "hi"


class ThreadCategory(str, PyEnum):
    """Advisory topic of a thread."""

    PEST_MANAGEMENT = "pest_management"
    DISEASE_CONTROL = "disease_control"
    FERTILIZER_ADVICE = "fertilizer_advice"
    WEATHER_GUIDANCE = "weather_guidance"
    CROP_PLANNING = "crop_planning"
    MARKET_INFORMATION = "market_information"
    GOVERNMENT_SCHEMES = "government_schemes"
    GENERAL_QUERY = "general_query"
    OTHER = "other"


class ThreadStatus(str, PyEnum):
    ACTIVE = "active"
    RESOLVED = "resolved"
    ARCHIVED = "archived"


class ThreadPriority(str, PyEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class Season(str, PyEnum):
    """Indian cropping seasons."""

    KHARIF = "kharif"  # Monsoon
    RABI = "rabi"  # Winter
    ZAID = "zaid"  # Summer
    PERENNIAL = "perennial"


class MessageRole(str, PyEnum):
    """Role of message sender in a thread."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


# ============================================================================
# Core Models
# ============================================================================


class User(Base):
    """
    User model - Farmers using the advisory chat.

    Profile fields feed the "user" facet of the AI context. Missing values
    are defaulted by the context service, not here.
    """

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), primary_key=True, default=uuid4
    )

    # Credentials
    username: Mapped[str] = mapped_column(String(30), unique=True, nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    # Profile
    first_name: Mapped[str | None] = mapped_column(String(50), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(50), nullable=True)
    location: Mapped[str | None] = mapped_column(String(100), nullable=True)
    farm_size: Mapped[str | None] = mapped_column(String(50), nullable=True)
    crop_types: Mapped[list[str]] = mapped_column(
        ARRAY(String(50)), default=list, nullable=False
    )
    experience: Mapped[ExperienceLevel] = mapped_column(
        SQLEnum(ExperienceLevel, name="experience_level", create_type=True,
                values_callable=lambda e: [m.value for m in e]),
        default=ExperienceLevel.BEGINNER,
        nullable=False,
    )

    # Preferences
    language: Mapped[Language] = mapped_column(
        SQLEnum(Language, name="language", create_type=True,
                values_callable=lambda e: [m.value for m in e]),
        default=Language.ENGLISH,
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_login: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    threads: Mapped[list["Thread"]] = relationship("Thread", back_populates="user")

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username='{self.username}')>"


class Thread(Base):
    """
    Thread model - One advisory conversation.

    Crop/season/urgency metadata feed the "conversation" facet of the AI context.
    """

    __tablename__ = "threads"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), primary_key=True, default=uuid4
    )
    user_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False, default="New Chat")
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    category: Mapped[ThreadCategory] = mapped_column(
        SQLEnum(ThreadCategory, name="thread_category", create_type=True,
                values_callable=lambda e: [m.value for m in e]),
        default=ThreadCategory.GENERAL_QUERY,
        nullable=False,
    )
    status: Mapped[ThreadStatus] = mapped_column(
        SQLEnum(ThreadStatus, name="thread_status", create_type=True,
                values_callable=lambda e: [m.value for m in e]),
        default=ThreadStatus.ACTIVE,
        nullable=False,
    )
    priority: Mapped[ThreadPriority] = mapped_column(
        SQLEnum(ThreadPriority, name="thread_priority", create_type=True,
                values_callable=lambda e: [m.value for m in e]),
        default=ThreadPriority.MEDIUM,
        nullable=False,
    )

    # Agricultural metadata
    crop_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    season: Mapped[Season | None] = mapped_column(
        SQLEnum(Season, name="season", create_type=True,
                values_callable=lambda e: [m.value for m in e]),
        nullable=True,
    )
    urgency_level: Mapped[int] = mapped_column(Integer, default=3, nullable=False)

    message_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_message_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=_utcnow, nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    user: Mapped["User"] = relationship("User", back_populates="threads")
    messages: Mapped[list["Message"]] = relationship("Message", back_populates="thread")

    __table_args__ = (
        CheckConstraint(
            "urgency_level BETWEEN 1 AND 5",
            name="check_urgency_level_range",
        ),
        Index("idx_threads_user_last_message", "user_id", "last_message_at"),
    )

    def __repr__(self) -> str:
        return f"<Thread(id={self.id}, title='{self.title}', category='{self.category.value}')>"


class Message(Base):
    """
    Message model - Single chat message in a thread.

    Assistant messages carry generation metadata (model, latency, token usage).
    """

    __tablename__ = "messages"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), primary_key=True, default=uuid4
    )
    thread_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("threads.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    role: Mapped[MessageRole] = mapped_column(
        SQLEnum(MessageRole, name="message_role", create_type=True,
                values_callable=lambda e: [m.value for m in e]),
        default=MessageRole.USER,
        nullable=False,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    is_visible: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Generation metadata (assistant messages only)
    model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    processing_time_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    input_tokens: Mapped[int | None] = mapped_column(Integer, nullable=True)
    output_tokens: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_tokens: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=_utcnow, nullable=False
    )

    thread: Mapped["Thread"] = relationship("Thread", back_populates="messages")

    __table_args__ = (
        # Recent visible messages per thread
        Index(
            "idx_messages_thread_created_visible",
            "thread_id",
            "created_at",
            postgresql_where=text("is_visible = true"),
        ),
    )

    def __repr__(self) -> str:
        return f"<Message(id={self.id}, thread_id={self.thread_id}, role='{self.role.value}')>"
