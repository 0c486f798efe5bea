"""Studio booking and room pricing data models."""

import re
import uuid
from datetime import date, datetime, time
from enum import Enum

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Time,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from inrecord.models.base import Base, today_utc, utcnow


class RoomType(str, Enum):
    """Bookable studio rooms."""

    RECORDING = "recording"
    MIXING = "mixing"
    MASTERING = "mastering"
    PODCAST = "podcast"
    REHEARSAL = "rehearsal"


class BookingStatus(str, Enum):
    """Studio session lifecycle status."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Statuses that occupy a room slot
BLOCKING_STATUSES = (BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value)

# Statuses that notify the customer when an admin moves a booking into them
NOTIFY_ON_STATUSES = (
    BookingStatus.CONFIRMED.value,
    BookingStatus.CANCELLED.value,
    BookingStatus.COMPLETED.value,
)

# USD per hour, used when room_pricing has no row for a room
DEFAULT_HOURLY_RATES: dict[str, float] = {
    RoomType.RECORDING.value: 75.0,
    RoomType.MIXING.value: 60.0,
    RoomType.MASTERING.value: 90.0,
    RoomType.PODCAST.value: 45.0,
    RoomType.REHEARSAL.value: 30.0,
}

OPENING_HOUR = 9
LAST_START_HOUR = 21
MIN_DURATION_HOURS = 1
MAX_DURATION_HOURS = 12

_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_PATTERN = re.compile(r"^\d{2}:\d{2}(:\d{2})?$")


def _values(enum_cls: type[Enum]) -> str:
    return ", ".join(f"'{member.value}'" for member in enum_cls)


# ========== SQLAlchemy ORM Models ==========


class StudioSessionDB(Base):
    """SQLAlchemy model for studio_sessions table."""

    __tablename__ = "studio_sessions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_email = Column(String(255), nullable=False, index=True)
    user_name = Column(String(255), nullable=False)
    user_phone = Column(String(50), nullable=False)
    user_wallet = Column(String(128), nullable=True)
    room_type = Column(String(20), nullable=False)
    session_date = Column(Date, nullable=False)
    session_time = Column(Time, nullable=False)
    duration_hours = Column(Integer, nullable=False)
    total_cost = Column(Numeric(10, 2, asdecimal=False), nullable=False, default=0)
    status = Column(
        String(20),
        nullable=False,
        default=BookingStatus.PENDING.value,
        server_default=BookingStatus.PENDING.value,
    )
    dao_funded = Column(Boolean, nullable=False, default=False, server_default="false")
    proposal_id = Column(UUID(as_uuid=True), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(f"room_type IN ({_values(RoomType)})", name="studio_sessions_room_type_check"),
        CheckConstraint(f"status IN ({_values(BookingStatus)})", name="studio_sessions_status_check"),
        CheckConstraint(
            f"duration_hours >= {MIN_DURATION_HOURS} AND duration_hours <= {MAX_DURATION_HOURS}",
            name="studio_sessions_duration_check",
        ),
        Index("idx_studio_sessions_room_date", "room_type", "session_date"),
        Index("idx_studio_sessions_status", "status"),
    )


class RoomPricingDB(Base):
    """SQLAlchemy model for room_pricing table."""

    __tablename__ = "room_pricing"

    room_type = Column(String(20), primary_key=True)
    hourly_rate = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    description = Column(Text, nullable=True)
    features = Column(JSON, nullable=True)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow, server_default=func.now()
    )


# ========== Pydantic Models ==========


def parse_session_date(value: object) -> date:
    """Parse a strict YYYY-MM-DD string into a date."""
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not _DATE_PATTERN.match(value):
        raise ValueError("Invalid date format, expected YYYY-MM-DD")
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise ValueError(f"Invalid date: {value}") from e


def normalize_session_time(value: object) -> time:
    """Parse HH:MM or HH:MM:SS into a time, seconds defaulting to zero."""
    if isinstance(value, time):
        return value
    if not isinstance(value, str) or not _TIME_PATTERN.match(value):
        raise ValueError("Invalid time format, expected HH:MM or HH:MM:SS")
    if len(value) == 5:
        value = f"{value}:00"
    try:
        return time.fromisoformat(value)
    except ValueError as e:
        raise ValueError(f"Invalid time: {value}") from e


class BookingCreate(BaseModel):
    """Public booking request."""

    model_config = ConfigDict(use_enum_values=True)

    user_email: EmailStr
    user_name: str = Field(..., min_length=2, max_length=255)
    user_phone: str = Field(..., min_length=10, max_length=50)
    user_wallet: str | None = Field(None, max_length=128)
    room_type: RoomType
    session_date: date
    session_time: time
    duration_hours: int = Field(..., ge=MIN_DURATION_HOURS, le=MAX_DURATION_HOURS)
    notes: str | None = Field(None, max_length=1000)

    @field_validator("session_date", mode="before")
    @classmethod
    def validate_session_date(cls, v: object) -> date:
        return parse_session_date(v)

    @field_validator("session_date")
    @classmethod
    def validate_not_past(cls, v: date) -> date:
        if v < today_utc():
            raise ValueError("Session date cannot be in the past")
        return v

    @field_validator("session_time", mode="before")
    @classmethod
    def validate_session_time(cls, v: object) -> time:
        return normalize_session_time(v)


class BookingUpdate(BaseModel):
    """Admin update for an existing booking."""

    model_config = ConfigDict(use_enum_values=True)

    status: BookingStatus | None = None
    dao_funded: bool | None = None
    notes: str | None = Field(None, max_length=1000)


class TimeSlot(BaseModel):
    """One bookable hour."""

    time: str
    available: bool
    session_id: uuid.UUID | None = None


class RoomPricing(BaseModel):
    """Room pricing entry."""

    room_type: str
    hourly_rate: float
    description: str | None = None
    features: list[str] = Field(default_factory=list)

    @field_validator("features", mode="before")
    @classmethod
    def default_features(cls, v: list[str] | None) -> list[str]:
        return v or []

    class Config:
        from_attributes = True


class StudioSession(BaseModel):
    """Full studio session representation."""

    id: uuid.UUID
    user_email: str
    user_name: str
    user_phone: str
    user_wallet: str | None = None
    room_type: str
    session_date: date
    session_time: time
    duration_hours: int
    total_cost: float
    status: str
    dao_funded: bool
    proposal_id: uuid.UUID | None = None
    notes: str | None = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
