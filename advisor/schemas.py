"""
Pydantic models for weather readings and the per-turn AI context.

The context object is built fresh for every chat turn and never cached;
only its inputs (user facet, conversation facet, weather readings) are.

Optional facets are `None` when unavailable. The reason for each absent
facet is recorded in `ContextMetadata.unavailable`, keyed by facet name.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

NOT_SPECIFIED = "Not specified"

SeasonName = Literal["kharif", "rabi", "zaid"]


# ============================================================================
# Weather
# ============================================================================


class Coordinates(BaseModel):
    lat: float
    lon: float


class StandardizedWeather(BaseModel):
    """Provider-agnostic weather reading (metric units)."""

    temperature: int
    humidity: int
    conditions: str
    wind_speed: float = 0
    wind_direction: float | None = None
    pressure: int
    visibility: int | None = None  # km
    cloudiness: int = 0
    location: str
    country: str | None = None
    coordinates: Coordinates
    sunrise: datetime
    sunset: datetime
    data_time: datetime
    fetched_at: datetime
    feels_like: int
    temp_min: int
    temp_max: int
    condition_id: int | None = None
    condition_main: str | None = None
    icon: str | None = None


class NudgesWeather(BaseModel):
    """Display-oriented weather summary used by the nudges endpoint."""

    temperature: str  # "29°C"
    humidity: str  # "80%"
    conditions: str
    temp: int


# ============================================================================
# Context facets
# ============================================================================


class UserContext(BaseModel):
    location: str = NOT_SPECIFIED
    farm_size: str = NOT_SPECIFIED
    crop_types: list[str] = Field(default_factory=list)
    experience: Literal["beginner", "intermediate", "advanced"] = "beginner"
    language: Literal["en", "ml", "hi"] = "en"
    first_name: str

    @property
    def has_location(self) -> bool:
        return bool(self.location) and self.location != NOT_SPECIFIED


class WeatherContext(BaseModel):
    temperature: int
    humidity: int
    conditions: str
    wind_speed: float
    pressure: int
    visibility: int | None = None
    location: str
    country: str | None = None


class RecentMessage(BaseModel):
    role: str
    content: str
    timestamp: datetime


class ConversationContext(BaseModel):
    thread_category: str
    thread_title: str
    thread_description: str | None = None
    crop_type: str | None = None
    season: str | None = None
    urgency_level: int = Field(default=3, ge=1, le=5)
    message_count: int
    recent_messages: list[RecentMessage] = Field(default_factory=list)


class SeasonalContext(BaseModel):
    current_season: SeasonName
    month: int = Field(ge=1, le=12)
    suggested_activities: list[str]
    is_planting_season: bool
    is_harvest_season: bool


class CurrentMessage(BaseModel):
    content: str
    timestamp: datetime


class ContextMetadata(BaseModel):
    context_built_at: datetime
    has_user_data: bool = False
    has_weather_data: bool = False
    has_conversation_data: bool = False
    unavailable: dict[str, str] = Field(default_factory=dict)
    error: str | None = None


class CompleteContext(BaseModel):
    """Everything the prompt builder knows about this chat turn."""

    user: UserContext | None = None
    weather: WeatherContext | None = None
    conversation: ConversationContext | None = None
    seasonal: SeasonalContext
    current_message: CurrentMessage
    metadata: ContextMetadata


# ============================================================================
# Service results
# ============================================================================


class ChatReply(BaseModel):
    thread_id: str
    reply: str
    model: str
    title: str | None = None  # Set when the thread was renamed this turn
    processing_time_ms: int
    token_usage: dict[str, int] = Field(default_factory=dict)
    context: ContextMetadata


class NudgesResult(BaseModel):
    crop: str
    location: str
    weather: NudgesWeather
    nudges: list[str]
