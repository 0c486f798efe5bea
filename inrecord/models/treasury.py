"""Treasury ledger data models."""

import uuid
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import JSON, CheckConstraint, Column, DateTime, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from inrecord.models.base import Base, utcnow

DEFAULT_CURRENCY = "ETH"


class TransactionType(str, Enum):
    """Treasury transaction kinds."""

    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    PROPOSAL_FUNDING = "proposal_funding"
    GRANT = "grant"
    REVENUE = "revenue"
    EXPENSE = "expense"


INFLOW_TYPES = (TransactionType.DEPOSIT.value, TransactionType.REVENUE.value)
OUTFLOW_TYPES = (
    TransactionType.WITHDRAWAL.value,
    TransactionType.PROPOSAL_FUNDING.value,
    TransactionType.GRANT.value,
    TransactionType.EXPENSE.value,
)

# Transactions linked to a proposal that count toward its funding goal
PROPOSAL_FUNDING_TYPES = (
    TransactionType.PROPOSAL_FUNDING.value,
    TransactionType.GRANT.value,
    TransactionType.REVENUE.value,
)


def is_inflow(transaction_type: str) -> bool:
    return transaction_type in INFLOW_TYPES


# ========== SQLAlchemy ORM Models ==========


class TreasuryTransactionDB(Base):
    """SQLAlchemy model for dao_treasury table (append-only ledger)."""

    __tablename__ = "dao_treasury"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    transaction_type = Column(String(20), nullable=False)
    amount = Column(Numeric(20, 8, asdecimal=False), nullable=False)
    currency = Column(String(10), nullable=False, default=DEFAULT_CURRENCY, server_default=DEFAULT_CURRENCY)
    proposal_id = Column(UUID(as_uuid=True), ForeignKey("dao_proposals.id", ondelete="SET NULL"), nullable=True)
    contributor_wallet = Column(String(128), nullable=True)
    recipient_wallet = Column(String(128), nullable=True)
    tx_hash = Column(String(128), nullable=True)
    description = Column(Text, nullable=True)
    transaction_metadata = Column("metadata", JSON, nullable=True)
    created_by = Column(String(128), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            "transaction_type IN ({})".format(", ".join(f"'{t.value}'" for t in TransactionType)),
            name="dao_treasury_type_check",
        ),
        CheckConstraint("amount > 0", name="dao_treasury_amount_check"),
        Index("idx_treasury_transaction_type", "transaction_type"),
        Index("idx_treasury_created_at", "created_at"),
        Index("idx_treasury_proposal_id", "proposal_id"),
        Index("idx_treasury_contributor", "contributor_wallet"),
    )


# ========== Pydantic Models ==========


class TransactionCreate(BaseModel):
    """Incoming ledger entry.

    Field-level typing only; cross-field rules (wallets per direction,
    proposal links) are checked by ``validate_transaction`` so that every
    violation is reported at once.
    """

    model_config = ConfigDict(use_enum_values=True)

    transaction_type: TransactionType | None = None
    amount: float | None = None
    currency: str = Field(DEFAULT_CURRENCY, min_length=2, max_length=10)
    proposal_id: uuid.UUID | None = None
    contributor_wallet: str | None = Field(None, max_length=128)
    recipient_wallet: str | None = Field(None, max_length=128)
    tx_hash: str | None = Field(None, max_length=128)
    description: str | None = Field(None, max_length=2000)
    metadata: dict | None = None
    created_by: str | None = Field(None, max_length=128)


class ProposalFunding(BaseModel):
    """Disbursement of treasury funds to an approved proposal."""

    amount: float | None = None
    currency: str = Field(DEFAULT_CURRENCY, min_length=2, max_length=10)
    recipient_wallet: str | None = Field(None, max_length=128)
    tx_hash: str | None = Field(None, max_length=128)
    description: str | None = Field(None, max_length=2000)
    created_by: str | None = Field(None, max_length=128)


class TreasuryTransaction(BaseModel):
    """Serialized ledger entry."""

    id: uuid.UUID
    transaction_type: str
    amount: float
    currency: str
    proposal_id: uuid.UUID | None = None
    contributor_wallet: str | None = None
    recipient_wallet: str | None = None
    tx_hash: str | None = None
    description: str | None = None
    metadata: dict | None = Field(None, validation_alias="transaction_metadata")
    created_by: str
    created_at: datetime

    class Config:
        from_attributes = True
