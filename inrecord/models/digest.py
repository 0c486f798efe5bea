"""Weekly AI digest and distribution data models."""

import os
import uuid
from datetime import date, datetime, timedelta
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from inrecord.models.base import Base, utcnow
from inrecord.models.booking import parse_session_date

MIN_SUMMARY_LENGTH = 100
MAX_SUMMARY_LENGTH = 5000
MAX_HIGHLIGHTS = 5
DEFAULT_BASE_URL = "https://inrecord.io"


class Sentiment(str, Enum):
    """Overall tone of a week's activity."""

    OPTIMISTIC = "optimistic"
    STABLE = "stable"
    CRITICAL = "critical"
    MIXED = "mixed"


class Language(str, Enum):
    EN = "en"
    FR = "fr"
    PT = "pt"


class DistributionChannel(str, Enum):
    """Where a digest is published."""

    DISCORD = "discord"
    EMAIL = "email"
    RSS = "rss"
    TWITTER = "twitter"


class DistributionStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


def previous_week(today: date) -> tuple[date, date]:
    """Monday through Sunday of the week before the one containing ``today``."""
    this_monday = today - timedelta(days=today.weekday())
    week_start = this_monday - timedelta(days=7)
    return week_start, week_start + timedelta(days=6)


def digest_slug(week_start: date) -> str:
    return f"week-{week_start.isoformat()}"


def digest_url(week_start: date, base_url: str | None = None) -> str:
    """Public page for a week's digest, under ``base_url`` or ``BASE_URL``."""
    base_url = (base_url or os.getenv("BASE_URL", DEFAULT_BASE_URL)).rstrip("/")
    return f"{base_url}/digests/{digest_slug(week_start)}"


def format_duration(seconds: int) -> str:
    """Audio length as M:SS."""
    return f"{seconds // 60}:{seconds % 60:02d}"


def parse_digest_slug(slug: str) -> date:
    """Inverse of ``digest_slug``; raises ValueError on malformed slugs."""
    if not slug.startswith("week-"):
        raise ValueError(f"Invalid digest slug: {slug}")
    return parse_session_date(slug[len("week-"):])


# ========== SQLAlchemy ORM Models ==========


class DigestDB(Base):
    """SQLAlchemy model for ai_digests table (one digest per week)."""

    __tablename__ = "ai_digests"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    week_start = Column(Date, nullable=False)
    week_end = Column(Date, nullable=False)
    summary_en = Column(Text, nullable=False)
    summary_fr = Column(Text, nullable=True)
    summary_pt = Column(Text, nullable=True)
    sentiment = Column(String(20), nullable=True)
    key_metrics = Column(JSON, nullable=False, default=dict)
    highlights = Column(JSON, nullable=False, default=list)
    audio_url_en = Column(Text, nullable=True)
    audio_url_fr = Column(Text, nullable=True)
    audio_url_pt = Column(Text, nullable=True)
    audio_duration_seconds = Column(Integer, nullable=True)
    published = Column(Boolean, nullable=False, default=False, server_default="false")
    published_at = Column(DateTime(timezone=True), nullable=True)
    discord_sent = Column(Boolean, nullable=False, default=False, server_default="false")
    email_sent = Column(Boolean, nullable=False, default=False, server_default="false")
    generated_by = Column(String(50), nullable=False, default="gpt-4", server_default="gpt-4")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("week_start", name="unique_week_start"),
        CheckConstraint("week_end > week_start", name="ai_digests_week_range_check"),
        CheckConstraint(
            "sentiment IS NULL OR sentiment IN ('optimistic', 'stable', 'critical', 'mixed')",
            name="ai_digests_sentiment_check",
        ),
        Index("idx_ai_digests_published", "published", "published_at"),
    )


class DigestDistributionDB(Base):
    """SQLAlchemy model for digest_distributions table."""

    __tablename__ = "digest_distributions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    digest_id = Column(UUID(as_uuid=True), ForeignKey("ai_digests.id", ondelete="CASCADE"), nullable=False)
    channel = Column(String(20), nullable=False)
    status = Column(
        String(20),
        nullable=False,
        default=DistributionStatus.PENDING.value,
        server_default=DistributionStatus.PENDING.value,
    )
    recipient_count = Column(Integer, nullable=False, default=0, server_default="0")
    sent_at = Column(DateTime(timezone=True), nullable=True)
    error_message = Column(Text, nullable=True)
    retry_count = Column(Integer, nullable=False, default=0, server_default="0")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("digest_id", "channel", name="unique_digest_channel"),
        CheckConstraint(
            "channel IN ('discord', 'email', 'rss', 'twitter')", name="digest_distributions_channel_check"
        ),
        CheckConstraint("status IN ('pending', 'sent', 'failed')", name="digest_distributions_status_check"),
        Index("idx_digest_distributions_digest", "digest_id"),
    )


# ========== Pydantic Models ==========


class ProposalMetrics(BaseModel):
    new: int = 0
    approved: int = 0
    rejected: int = 0
    funded: int = 0
    total_funding: float = 0.0


class VotingMetrics(BaseModel):
    votes_cast: int = 0
    unique_voters: int = 0
    participation_rate: float = Field(0.0, ge=0, le=1)
    avg_votes_per_proposal: float = 0.0


class TreasuryMetrics(BaseModel):
    deposits: float = 0.0
    withdrawals: float = 0.0
    net_change: float = 0.0
    ending_balance: float = 0.0


class MemberMetrics(BaseModel):
    new_members: int = 0
    total_members: int = 0
    active_members: int = 0


class KeyMetrics(BaseModel):
    """Activity metrics for one week."""

    proposals: ProposalMetrics = Field(default_factory=ProposalMetrics)
    voting: VotingMetrics = Field(default_factory=VotingMetrics)
    treasury: TreasuryMetrics = Field(default_factory=TreasuryMetrics)
    members: MemberMetrics = Field(default_factory=MemberMetrics)


class WeeklyStats(KeyMetrics):
    week_start: date
    week_end: date


class GeneratedDigest(BaseModel):
    """LLM output for a week, before persistence."""

    summary_en: str = Field(..., min_length=MIN_SUMMARY_LENGTH, max_length=MAX_SUMMARY_LENGTH)
    summary_fr: str | None = None
    summary_pt: str | None = None
    sentiment: Sentiment
    highlights: list[str] = Field(default_factory=list, max_length=MAX_HIGHLIGHTS)
    key_metrics: KeyMetrics
    generated_by: str = "gpt-4"


class DigestCreateRequest(BaseModel):
    """Manual digest generation request."""

    week_start: date
    week_end: date
    force_regenerate: bool = False
    auto_distribute: bool = True

    @field_validator("week_start", "week_end", mode="before")
    @classmethod
    def validate_week_date(cls, v: object) -> date:
        return parse_session_date(v)

    @model_validator(mode="after")
    def validate_range(self) -> "DigestCreateRequest":
        if self.week_end <= self.week_start:
            raise ValueError("week_end must be after week_start")
        return self


class Digest(BaseModel):
    """Serialized digest."""

    id: uuid.UUID
    week_start: date
    week_end: date
    summary_en: str
    summary_fr: str | None = None
    summary_pt: str | None = None
    sentiment: str | None = None
    key_metrics: dict = Field(default_factory=dict)
    highlights: list[str] = Field(default_factory=list)
    audio_url_en: str | None = None
    audio_url_fr: str | None = None
    audio_url_pt: str | None = None
    audio_duration_seconds: int | None = None
    published: bool
    published_at: datetime | None = None
    discord_sent: bool
    email_sent: bool
    generated_by: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
