"""Treasury ledger and analytics endpoints."""

import uuid
from datetime import date

import structlog
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from inrecord.models.base import utcnow
from inrecord.models.treasury import (
    DEFAULT_CURRENCY,
    ProposalFunding,
    TransactionCreate,
    TransactionType,
    TreasuryTransaction,
)
from inrecord.services.database import get_db_session
from inrecord.services.treasury import TreasuryService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/treasury", tags=["treasury"])


def _timestamp() -> str:
    return utcnow().isoformat()


@router.post("/transactions", status_code=status.HTTP_201_CREATED)
async def record_transaction(request: TransactionCreate, db: AsyncSession = Depends(get_db_session)) -> dict:
    """Append a ledger entry.

    Raises:
        ValidationFailedError: With every violated ledger rule in ``details``
        NotFoundError: If the linked proposal does not exist
    """
    transaction = await TreasuryService(db).record_transaction(request)
    return {
        "message": "Transaction recorded successfully",
        "transaction": TreasuryTransaction.model_validate(transaction).model_dump(mode="json"),
    }


@router.get("/transactions")
async def list_transactions(
    transaction_type: TransactionType | None = Query(None, alias="type"),
    currency: str | None = Query(None, max_length=10),
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    transactions = await TreasuryService(db).list_transactions(
        transaction_type=transaction_type.value if transaction_type else None,
        currency=currency,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        offset=offset,
    )
    return {
        "transactions": [TreasuryTransaction.model_validate(t).model_dump(mode="json") for t in transactions],
        "pagination": {"limit": limit, "offset": offset, "count": len(transactions)},
        "timestamp": _timestamp(),
    }


@router.get("/balance")
async def get_balance(
    currency: str = Query(DEFAULT_CURRENCY, min_length=2, max_length=10),
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    balance = await TreasuryService(db).get_balance(currency)
    return {"balance": balance, "currency": currency, "timestamp": _timestamp()}


@router.get("/analytics")
async def get_analytics(db: AsyncSession = Depends(get_db_session)) -> dict:
    analytics = await TreasuryService(db).get_analytics()
    return {**analytics, "timestamp": _timestamp()}


@router.get("/history")
async def get_history(
    currency: str = Query(DEFAULT_CURRENCY, min_length=2, max_length=10),
    days: int = Query(30, ge=1, le=365),
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    """Daily running balance, daily volume and top contributors."""
    service = TreasuryService(db)
    return {
        "currency": currency,
        "days": days,
        "balance_history": await service.get_balance_history(days=days, currency=currency),
        "transaction_volume": await service.get_transaction_volume(days=days, currency=currency),
        "top_contributors": await service.get_top_contributors(),
        "timestamp": _timestamp(),
    }


@router.post("/refresh")
async def refresh_analytics(db: AsyncSession = Depends(get_db_session)) -> dict:
    """Recompute analytics on demand.

    Aggregates are derived from the ledger on every read, so refreshing
    amounts to a fresh computation.
    """
    analytics = await TreasuryService(db).get_analytics()
    logger.info("treasury_analytics_refreshed")
    return {
        "message": "Analytics refreshed successfully",
        "timestamp": _timestamp(),
        "analytics": analytics,
    }


@router.post("/proposals/{proposal_id}/fund", status_code=status.HTTP_201_CREATED)
async def fund_proposal(
    proposal_id: uuid.UUID, request: ProposalFunding, db: AsyncSession = Depends(get_db_session)
) -> dict:
    """Disburse funds to a proposal, marking it funded once its goal is met.

    Raises:
        ValidationFailedError: With every violated ledger rule in ``details``
        NotFoundError: If the proposal does not exist
    """
    transaction = await TreasuryService(db).fund_proposal(
        proposal_id,
        amount=request.amount,
        recipient_wallet=request.recipient_wallet,
        created_by=request.created_by,
        tx_hash=request.tx_hash,
        description=request.description,
        currency=request.currency,
    )
    return {
        "message": "Proposal funded successfully",
        "transaction": TreasuryTransaction.model_validate(transaction).model_dump(mode="json"),
    }
