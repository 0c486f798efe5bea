"""DAO membership, proposal and vote data models."""

import uuid
from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, HttpUrl, field_validator
from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from inrecord.models.base import Base, ensure_utc, utcnow

MIN_WALLET_LENGTH = 32
MIN_SIGNATURE_LENGTH = 64


class MembershipTier(str, Enum):
    """DAO membership tier, which determines vote weight."""

    BRONZE = "Bronze"
    SILVER = "Silver"
    GOLD = "Gold"
    PLATINUM = "Platinum"


TIER_DISPLAY_NAMES: dict[str, str] = {
    MembershipTier.BRONZE.value: "Listener",
    MembershipTier.SILVER.value: "Supporter",
    MembershipTier.GOLD.value: "Curator",
    MembershipTier.PLATINUM.value: "Producer",
}

TIER_VOTE_WEIGHTS: dict[str, float] = {
    MembershipTier.BRONZE.value: 1.0,
    MembershipTier.SILVER.value: 2.0,
    MembershipTier.GOLD.value: 3.0,
    MembershipTier.PLATINUM.value: 5.0,
}


def get_vote_weight(tier: str) -> float:
    """Vote weight for a tier; unknown tiers vote with weight 1."""
    return TIER_VOTE_WEIGHTS.get(tier, 1.0)


def get_tier_display_name(tier: str) -> str | None:
    return TIER_DISPLAY_NAMES.get(tier)


class ProposalType(str, Enum):
    """Proposal categories."""

    STUDIO_FUNDING = "Studio Funding"
    EQUIPMENT_PURCHASE = "Equipment Purchase"
    ARTIST_GRANT = "Artist Grant"
    COMMUNITY_EVENT = "Community Event"
    PLATFORM_FEATURE = "Platform Feature"
    TREASURY_ALLOCATION = "Treasury Allocation"
    GOVERNANCE_CHANGE = "Governance Change"
    OTHER = "Other"


class ProposalStatus(str, Enum):
    """Proposal lifecycle status."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    ACTIVE_VOTING = "active_voting"
    APPROVED = "approved"
    REJECTED = "rejected"
    FUNDED = "funded"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class FundingCurrency(str, Enum):
    USD = "USD"
    SOL = "SOL"
    USDC = "USDC"


class VoteType(str, Enum):
    """Vote choice."""

    FOR = "for"
    AGAINST = "against"
    ABSTAIN = "abstain"


class VotingResult(str, Enum):
    """Outcome of a closed vote."""

    PENDING = "pending"
    PASSED = "passed"
    FAILED = "failed"
    QUORUM_NOT_MET = "quorum_not_met"


class ProposalSort(str, Enum):
    NEWEST = "newest"
    OLDEST = "oldest"
    MOST_FUNDED = "most_funded"
    ENDING_SOON = "ending_soon"
    MOST_VOTES = "most_votes"


class LeaderboardType(str, Enum):
    VOTES = "votes"
    PROPOSALS = "proposals"
    CONTRIBUTIONS = "contributions"


def _values(enum_cls: type[Enum]) -> str:
    return ", ".join(f"'{member.value}'" for member in enum_cls)


# ========== SQLAlchemy ORM Models ==========


class DAOMemberDB(Base):
    """SQLAlchemy model for dao_members table."""

    __tablename__ = "dao_members"

    wallet_address = Column(String(128), primary_key=True)
    membership_tier = Column(String(20), nullable=False)
    tier_display_name = Column(String(20), nullable=True)
    votes_cast = Column(Integer, nullable=False, default=0, server_default="0")
    proposals_created = Column(Integer, nullable=False, default=0, server_default="0")
    total_funding_received = Column(Numeric(12, 2, asdecimal=False), nullable=False, default=0, server_default="0")
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    joined_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    last_active_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    display_name = Column(String(100), nullable=True)
    bio = Column(Text, nullable=True)
    avatar_url = Column(Text, nullable=True)
    email = Column(String(255), nullable=True)
    discord_handle = Column(String(100), nullable=True)

    __table_args__ = (
        CheckConstraint(f"membership_tier IN ({_values(MembershipTier)})", name="dao_members_tier_check"),
        Index("idx_dao_members_active", "is_active"),
        Index("idx_dao_members_joined", "joined_at"),
    )


class ProposalDB(Base):
    """SQLAlchemy model for dao_proposals table.

    Vote counts are denormalized from dao_votes and kept current by the
    governance service whenever a vote is recorded.
    """

    __tablename__ = "dao_proposals"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    proposal_type = Column(String(40), nullable=False)
    funding_goal = Column(Numeric(12, 2, asdecimal=False), nullable=True)
    current_funding = Column(Numeric(12, 2, asdecimal=False), nullable=False, default=0, server_default="0")
    funding_currency = Column(String(10), nullable=False, default=FundingCurrency.USD.value, server_default="USD")
    created_by = Column(String(128), ForeignKey("dao_members.wallet_address"), nullable=False)
    status = Column(
        String(20),
        nullable=False,
        default=ProposalStatus.DRAFT.value,
        server_default=ProposalStatus.DRAFT.value,
    )
    voting_starts_at = Column(DateTime(timezone=True), nullable=True)
    voting_ends_at = Column(DateTime(timezone=True), nullable=False)
    quorum_required = Column(Integer, nullable=False, default=10, server_default="10")
    approval_threshold = Column(Integer, nullable=False, default=51, server_default="51")
    votes_for = Column(Integer, nullable=False, default=0, server_default="0")
    votes_against = Column(Integer, nullable=False, default=0, server_default="0")
    votes_abstain = Column(Integer, nullable=False, default=0, server_default="0")
    total_vote_weight = Column(Numeric(10, 2, asdecimal=False), nullable=False, default=0, server_default="0")
    unique_voters = Column(Integer, nullable=False, default=0, server_default="0")
    voting_result = Column(String(20), nullable=True)
    voting_closed_at = Column(DateTime(timezone=True), nullable=True)
    linked_session_id = Column(UUID(as_uuid=True), nullable=True)
    tags = Column(JSON, nullable=True)
    attachment_urls = Column(JSON, nullable=True)
    admin_notes = Column(Text, nullable=True)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(f"proposal_type IN ({_values(ProposalType)})", name="dao_proposals_type_check"),
        CheckConstraint(f"status IN ({_values(ProposalStatus)})", name="dao_proposals_status_check"),
        CheckConstraint(f"funding_currency IN ({_values(FundingCurrency)})", name="dao_proposals_currency_check"),
        CheckConstraint("funding_goal IS NULL OR funding_goal > 0", name="dao_proposals_funding_goal_check"),
        CheckConstraint(
            "votes_for >= 0 AND votes_against >= 0 AND votes_abstain >= 0",
            name="dao_proposals_vote_counts_check",
        ),
        Index("idx_dao_proposals_status", "status"),
        Index("idx_dao_proposals_creator", "created_by"),
        Index("idx_dao_proposals_voting_ends", "voting_ends_at"),
        Index("idx_dao_proposals_created", "created_at"),
    )


class VoteDB(Base):
    """SQLAlchemy model for dao_votes table (one vote per member per proposal)."""

    __tablename__ = "dao_votes"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    proposal_id = Column(UUID(as_uuid=True), ForeignKey("dao_proposals.id", ondelete="CASCADE"), nullable=False)
    voter_wallet = Column(String(128), ForeignKey("dao_members.wallet_address"), nullable=False)
    vote_type = Column(String(10), nullable=False)
    vote_weight = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    membership_tier_at_vote = Column(String(20), nullable=False)
    signature = Column(Text, nullable=True)
    signature_verified = Column(Boolean, nullable=False, default=False, server_default="false")
    comment = Column(Text, nullable=True)
    voted_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("proposal_id", "voter_wallet", name="unique_vote_per_proposal"),
        CheckConstraint(f"vote_type IN ({_values(VoteType)})", name="dao_votes_type_check"),
        CheckConstraint("vote_weight > 0", name="dao_votes_weight_check"),
        Index("idx_dao_votes_proposal", "proposal_id"),
        Index("idx_dao_votes_voter", "voter_wallet"),
        Index("idx_dao_votes_voted_at", "voted_at"),
    )


# ========== Pydantic Models ==========


class MemberRegistration(BaseModel):
    """New DAO member registration."""

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    wallet_address: str = Field(..., alias="walletAddress", min_length=MIN_WALLET_LENGTH, max_length=128)
    membership_tier: MembershipTier = Field(MembershipTier.BRONZE, alias="membershipTier")
    display_name: str | None = Field(None, alias="displayName", min_length=2, max_length=100)
    bio: str | None = Field(None, max_length=500)
    avatar_url: HttpUrl | None = Field(None, alias="avatarUrl")
    email: EmailStr | None = None
    discord_handle: str | None = Field(None, alias="discordHandle", min_length=2, max_length=100)


class ProposalCreate(BaseModel):
    """New proposal payload."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True, use_enum_values=True)

    title: str = Field(..., min_length=10, max_length=200)
    description: str = Field(..., min_length=50, max_length=10000)
    proposal_type: ProposalType = Field(..., alias="proposalType")
    funding_goal: float | None = Field(None, alias="fundingGoal", gt=0, le=1_000_000)
    funding_currency: FundingCurrency = Field(FundingCurrency.USD, alias="fundingCurrency")
    created_by: str = Field(..., alias="createdBy", min_length=MIN_WALLET_LENGTH, max_length=128)
    voting_ends_at: datetime = Field(..., alias="votingEndsAt")
    quorum_required: int = Field(10, alias="quorumRequired", ge=1, le=100)
    approval_threshold: int = Field(51, alias="approvalThreshold", ge=1, le=100)
    linked_session_id: uuid.UUID | None = Field(None, alias="linkedSessionId")
    tags: list[str] | None = Field(None, max_length=10)
    attachment_urls: list[HttpUrl] | None = Field(None, alias="attachmentUrls", max_length=5)

    @field_validator("voting_ends_at")
    @classmethod
    def validate_voting_ends_in_future(cls, v: datetime) -> datetime:
        v = ensure_utc(v)
        if v <= utcnow():
            raise ValueError("Voting end date must be in the future")
        return v

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: list[str] | None) -> list[str] | None:
        if v is None:
            return v
        for tag in v:
            if not 2 <= len(tag) <= 50:
                raise ValueError("Each tag must be between 2 and 50 characters")
        return v


class ProposalActionRequest(BaseModel):
    """Lifecycle action on a proposal."""

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    proposal_id: uuid.UUID = Field(..., alias="proposalId")
    action: str


class VoteCreate(BaseModel):
    """Vote cast by a member's wallet."""

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    proposal_id: uuid.UUID = Field(..., alias="proposalId")
    voter_wallet: str = Field(..., alias="voterWallet", min_length=MIN_WALLET_LENGTH, max_length=128)
    vote_type: VoteType = Field(..., alias="voteType")
    signature: str = Field(..., min_length=MIN_SIGNATURE_LENGTH)
    comment: str | None = Field(None, min_length=1, max_length=2000)


class ProposalResults(BaseModel):
    """Tally of a proposal's votes against its quorum and threshold."""

    votes_for: int
    votes_against: int
    votes_abstain: int
    weight_for: float
    weight_against: float
    weight_abstain: float
    unique_voters: int
    active_members: int
    approval_percentage: float
    participation_percentage: float
    quorum_met: bool
    result: Literal["passed", "failed", "quorum_not_met"]


class Member(BaseModel):
    """Serialized DAO member."""

    wallet_address: str
    membership_tier: str
    tier_display_name: str | None = None
    votes_cast: int
    proposals_created: int
    total_funding_received: float
    is_active: bool
    joined_at: datetime
    last_active_at: datetime
    display_name: str | None = None
    bio: str | None = None
    avatar_url: str | None = None
    email: str | None = None
    discord_handle: str | None = None

    class Config:
        from_attributes = True


class Proposal(BaseModel):
    """Serialized proposal."""

    id: uuid.UUID
    title: str
    description: str
    proposal_type: str
    funding_goal: float | None = None
    current_funding: float
    funding_currency: str
    created_by: str
    status: str
    voting_starts_at: datetime | None = None
    voting_ends_at: datetime
    quorum_required: int
    approval_threshold: int
    votes_for: int
    votes_against: int
    votes_abstain: int
    total_vote_weight: float
    unique_voters: int
    voting_result: str | None = None
    voting_closed_at: datetime | None = None
    linked_session_id: uuid.UUID | None = None
    tags: list[str] = Field(default_factory=list)
    attachment_urls: list[str] = Field(default_factory=list)
    submitted_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @field_validator("tags", "attachment_urls", mode="before")
    @classmethod
    def default_list(cls, v: list[str] | None) -> list[str]:
        return v or []

    class Config:
        from_attributes = True


class Vote(BaseModel):
    """Serialized vote."""

    id: uuid.UUID
    proposal_id: uuid.UUID
    voter_wallet: str
    vote_type: str
    vote_weight: float
    membership_tier_at_vote: str
    signature_verified: bool
    comment: str | None = None
    voted_at: datetime

    class Config:
        from_attributes = True
