"""Data models for the inRECORD label backend."""

# Import SQLAlchemy ORM models to register them with Base.metadata
# This ensures all tables are known when create_tables() is called
from inrecord.models.booking import (  # noqa: F401
    BookingCreate,
    BookingStatus,
    BookingUpdate,
    RoomPricingDB,
    RoomType,
    StudioSession,
    StudioSessionDB,
)
from inrecord.models.dao import (  # noqa: F401
    DAOMemberDB,
    MembershipTier,
    Proposal,
    ProposalCreate,
    ProposalDB,
    ProposalStatus,
    ProposalType,
    Vote,
    VoteCreate,
    VoteDB,
    VoteType,
)
from inrecord.models.digest import (  # noqa: F401
    Digest,
    DigestDB,
    DigestDistributionDB,
    KeyMetrics,
    Sentiment,
    WeeklyStats,
)
from inrecord.models.treasury import (  # noqa: F401
    TransactionCreate,
    TransactionType,
    TreasuryTransaction,
    TreasuryTransactionDB,
)

__all__ = [
    # Booking models
    "BookingCreate",
    "BookingStatus",
    "BookingUpdate",
    "RoomType",
    "StudioSession",
    # DAO models
    "MembershipTier",
    "Proposal",
    "ProposalCreate",
    "ProposalStatus",
    "ProposalType",
    "Vote",
    "VoteCreate",
    "VoteType",
    # Digest models
    "Digest",
    "KeyMetrics",
    "Sentiment",
    "WeeklyStats",
    # Treasury models
    "TransactionCreate",
    "TransactionType",
    "TreasuryTransaction",
]
