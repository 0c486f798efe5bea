"""Treasury ledger service: transactions, balances and analytics."""

import uuid
from datetime import date, datetime, time, timedelta, timezone

import structlog
from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from inrecord.models.base import ensure_utc, utcnow
from inrecord.models.dao import DAOMemberDB, ProposalDB, ProposalStatus, VoteDB
from inrecord.models.treasury import (
    DEFAULT_CURRENCY,
    INFLOW_TYPES,
    PROPOSAL_FUNDING_TYPES,
    TransactionCreate,
    TransactionType,
    TreasuryTransactionDB,
    is_inflow,
)
from inrecord.services.errors import NotFoundError, ValidationFailedError

logger = structlog.get_logger(__name__)


def validate_transaction(data: TransactionCreate) -> list[dict]:
    """Check ledger rules and report every violation.

    Returns:
        List of ``{"field", "message"}`` dicts, empty when valid
    """
    errors = []

    if not data.transaction_type:
        errors.append({"field": "transaction_type", "message": "Transaction type is required"})

    if data.amount is None or data.amount <= 0:
        errors.append({"field": "amount", "message": "Amount must be greater than 0"})

    if not data.created_by:
        errors.append({"field": "created_by", "message": "Created by is required"})

    if data.transaction_type:
        if is_inflow(data.transaction_type):
            if not data.contributor_wallet:
                errors.append(
                    {
                        "field": "contributor_wallet",
                        "message": "Contributor wallet is required for inflow transactions",
                    }
                )
        elif not data.recipient_wallet:
            errors.append(
                {
                    "field": "recipient_wallet",
                    "message": "Recipient wallet is required for outflow transactions",
                }
            )

    if data.transaction_type == TransactionType.PROPOSAL_FUNDING.value and not data.proposal_id:
        errors.append(
            {
                "field": "proposal_id",
                "message": "Proposal ID is required for proposal funding transactions",
            }
        )

    return errors


def _signed_amount():
    """SQL expression: amount for inflows, negative amount for outflows."""
    return case(
        (TreasuryTransactionDB.transaction_type.in_(INFLOW_TYPES), TreasuryTransactionDB.amount),
        else_=-TreasuryTransactionDB.amount,
    )


class TreasuryService:
    """Append-only treasury ledger with derived balances and analytics."""

    def __init__(self, db_session: AsyncSession):
        self.db_session = db_session

    # ========== Transactions ==========

    async def record_transaction(self, data: TransactionCreate) -> TreasuryTransactionDB:
        """Validate and append a ledger entry.

        Entries linked to a proposal advance its funding; an approved
        proposal that reaches its goal becomes funded.

        Raises:
            ValidationFailedError: If any ledger rule is violated
            NotFoundError: If the linked proposal does not exist
        """
        errors = validate_transaction(data)
        if errors:
            raise ValidationFailedError("Invalid transaction data", details=errors)

        proposal = None
        if data.proposal_id:
            proposal = await self.db_session.get(ProposalDB, data.proposal_id)
            if proposal is None:
                raise NotFoundError("Proposal not found")

        transaction = TreasuryTransactionDB(
            id=uuid.uuid4(),
            transaction_type=data.transaction_type,
            amount=data.amount,
            currency=data.currency or DEFAULT_CURRENCY,
            proposal_id=data.proposal_id,
            contributor_wallet=data.contributor_wallet,
            recipient_wallet=data.recipient_wallet,
            tx_hash=data.tx_hash,
            description=data.description,
            transaction_metadata=data.metadata or {},
            created_by=data.created_by,
            created_at=utcnow(),
        )
        self.db_session.add(transaction)

        if proposal is not None and data.transaction_type in PROPOSAL_FUNDING_TYPES:
            await self._apply_proposal_funding(proposal, data.amount)

        await self.db_session.commit()

        logger.info(
            "treasury_transaction_recorded",
            transaction_id=str(transaction.id),
            transaction_type=transaction.transaction_type,
            amount=transaction.amount,
            currency=transaction.currency,
        )
        return transaction

    async def _apply_proposal_funding(self, proposal: ProposalDB, amount: float) -> None:
        proposal.current_funding = float(proposal.current_funding or 0) + amount

        creator = await self.db_session.get(DAOMemberDB, proposal.created_by)
        if creator is not None:
            creator.total_funding_received = float(creator.total_funding_received or 0) + amount

        if (
            proposal.status == ProposalStatus.APPROVED.value
            and proposal.funding_goal
            and proposal.current_funding >= proposal.funding_goal
        ):
            proposal.status = ProposalStatus.FUNDED.value
            logger.info("proposal_funded", proposal_id=str(proposal.id), total=proposal.current_funding)

    async def fund_proposal(
        self,
        proposal_id: uuid.UUID,
        amount: float | None,
        recipient_wallet: str | None,
        created_by: str | None,
        tx_hash: str | None = None,
        description: str | None = None,
        currency: str = DEFAULT_CURRENCY,
    ) -> TreasuryTransactionDB:
        """Disburse treasury funds to a proposal.

        Raises:
            ValidationFailedError: With every violated ledger rule in ``details``
            NotFoundError: If the proposal does not exist
        """
        return await self.record_transaction(
            TransactionCreate(
                transaction_type=TransactionType.PROPOSAL_FUNDING,
                amount=amount,
                currency=currency,
                proposal_id=proposal_id,
                recipient_wallet=recipient_wallet,
                tx_hash=tx_hash,
                description=description or f"Funding disbursed for proposal {proposal_id}",
                created_by=created_by,
            )
        )

    async def list_transactions(
        self,
        transaction_type: str | None = None,
        currency: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[TreasuryTransactionDB]:
        """Ledger entries, newest first; date bounds are inclusive days."""
        query = select(TreasuryTransactionDB)
        if transaction_type:
            query = query.where(TreasuryTransactionDB.transaction_type == transaction_type)
        if currency:
            query = query.where(TreasuryTransactionDB.currency == currency)
        if start_date:
            query = query.where(
                TreasuryTransactionDB.created_at >= datetime.combine(start_date, time.min, tzinfo=timezone.utc)
            )
        if end_date:
            query = query.where(
                TreasuryTransactionDB.created_at
                < datetime.combine(end_date + timedelta(days=1), time.min, tzinfo=timezone.utc)
            )

        query = query.order_by(TreasuryTransactionDB.created_at.desc()).limit(limit).offset(offset)
        result = await self.db_session.execute(query)
        return list(result.scalars().all())

    # ========== Balances ==========

    async def get_balance(self, currency: str = DEFAULT_CURRENCY) -> float:
        """Sum of inflows minus sum of outflows in ``currency``."""
        result = await self.db_session.execute(
            select(func.coalesce(func.sum(_signed_amount()), 0)).where(TreasuryTransactionDB.currency == currency)
        )
        return float(result.scalar() or 0)

    async def get_treasury_summary(self, currency: str | None = None) -> dict:
        inflow = func.coalesce(
            func.sum(
                case((TreasuryTransactionDB.transaction_type.in_(INFLOW_TYPES), TreasuryTransactionDB.amount), else_=0)
            ),
            0,
        )
        outflow = func.coalesce(
            func.sum(
                case((TreasuryTransactionDB.transaction_type.in_(INFLOW_TYPES), 0), else_=TreasuryTransactionDB.amount)
            ),
            0,
        )
        query = select(
            inflow,
            outflow,
            func.count(func.distinct(TreasuryTransactionDB.contributor_wallet)),
            func.count(func.distinct(TreasuryTransactionDB.recipient_wallet)),
            func.count(TreasuryTransactionDB.id),
            func.max(TreasuryTransactionDB.created_at),
        )
        if currency:
            query = query.where(TreasuryTransactionDB.currency == currency)

        total_inflow, total_outflow, contributors, recipients, count, last_at = (
            await self.db_session.execute(query)
        ).one()

        return {
            "total_inflow": float(total_inflow or 0),
            "total_outflow": float(total_outflow or 0),
            "current_balance": float(total_inflow or 0) - float(total_outflow or 0),
            "unique_contributors": contributors or 0,
            "unique_recipients": recipients or 0,
            "total_transactions": count or 0,
            "last_transaction_date": ensure_utc(last_at).isoformat() if last_at else None,
        }

    # ========== Analytics ==========

    async def get_dao_analytics(self) -> dict:
        """Proposal funding roll-up across the DAO."""
        row = (
            await self.db_session.execute(
                select(
                    func.count(ProposalDB.id),
                    func.sum(case((ProposalDB.status == ProposalStatus.FUNDED.value, 1), else_=0)),
                    func.sum(case((ProposalDB.status == ProposalStatus.ACTIVE_VOTING.value, 1), else_=0)),
                    func.sum(case((ProposalDB.status == ProposalStatus.REJECTED.value, 1), else_=0)),
                    func.coalesce(func.sum(ProposalDB.current_funding), 0),
                    func.coalesce(func.sum(ProposalDB.funding_goal), 0),
                )
            )
        ).one()
        total, funded, active, rejected, raised, goals = row

        members = (await self.db_session.execute(select(func.count(DAOMemberDB.wallet_address)))).scalar() or 0
        votes = (await self.db_session.execute(select(func.count(VoteDB.id)))).scalar() or 0

        raised = float(raised or 0)
        goals = float(goals or 0)
        return {
            "total_proposals": total or 0,
            "funded_count": int(funded or 0),
            "active_count": int(active or 0),
            "rejected_count": int(rejected or 0),
            "total_raised": raised,
            "total_goals": goals,
            "funding_rate": round(raised / goals * 100, 2) if goals > 0 else 0.0,
            "total_members": members,
            "total_votes": votes,
        }

    async def get_funding_distribution(self) -> list[dict]:
        """Funding raised per proposal type with its share of the total."""
        result = await self.db_session.execute(
            select(
                ProposalDB.proposal_type,
                func.count(ProposalDB.id),
                func.coalesce(func.sum(ProposalDB.current_funding), 0),
            )
            .group_by(ProposalDB.proposal_type)
            .order_by(func.coalesce(func.sum(ProposalDB.current_funding), 0).desc())
        )
        rows = result.all()
        grand_total = sum(float(total) for _, _, total in rows)

        return [
            {
                "proposal_type": proposal_type,
                "proposal_count": count,
                "total_funding": float(total),
                "percentage": round(float(total) / grand_total * 100, 2) if grand_total > 0 else 0.0,
            }
            for proposal_type, count, total in rows
        ]

    async def get_top_contributors(self, limit: int = 10) -> list[dict]:
        result = await self.db_session.execute(
            select(
                TreasuryTransactionDB.contributor_wallet,
                func.sum(TreasuryTransactionDB.amount),
                func.count(TreasuryTransactionDB.id),
                func.max(TreasuryTransactionDB.created_at),
            )
            .where(
                TreasuryTransactionDB.contributor_wallet.is_not(None),
                TreasuryTransactionDB.transaction_type.in_(INFLOW_TYPES),
            )
            .group_by(TreasuryTransactionDB.contributor_wallet)
            .order_by(func.sum(TreasuryTransactionDB.amount).desc())
            .limit(limit)
        )
        return [
            {
                "contributor_wallet": wallet,
                "total_contributed": float(total),
                "contribution_count": count,
                "last_contribution": ensure_utc(last_at).isoformat() if last_at else None,
            }
            for wallet, total, count, last_at in result.all()
        ]

    async def _window(self, days: int, currency: str) -> tuple[float, list[TreasuryTransactionDB]]:
        """Opening balance and ordered entries for the trailing ``days``."""
        since = utcnow() - timedelta(days=days)
        opening = await self.db_session.execute(
            select(func.coalesce(func.sum(_signed_amount()), 0)).where(
                TreasuryTransactionDB.currency == currency,
                TreasuryTransactionDB.created_at < since,
            )
        )
        entries = await self.db_session.execute(
            select(TreasuryTransactionDB)
            .where(TreasuryTransactionDB.currency == currency, TreasuryTransactionDB.created_at >= since)
            .order_by(TreasuryTransactionDB.created_at.asc())
        )
        return float(opening.scalar() or 0), list(entries.scalars().all())

    async def get_balance_history(self, days: int = 30, currency: str = DEFAULT_CURRENCY) -> list[dict]:
        """Running balance after each entry in the window."""
        balance, entries = await self._window(days, currency)
        history = []
        for tx in entries:
            balance += tx.amount if is_inflow(tx.transaction_type) else -tx.amount
            history.append(
                {
                    "date": ensure_utc(tx.created_at).isoformat(),
                    "balance": round(balance, 8),
                    "amount": tx.amount,
                    "type": tx.transaction_type,
                }
            )
        return history

    async def get_transaction_volume(self, days: int = 30, currency: str = DEFAULT_CURRENCY) -> list[dict]:
        """Inflow, outflow and net per calendar day."""
        _, entries = await self._window(days, currency)
        by_day: dict[str, dict] = {}
        for tx in entries:
            day = ensure_utc(tx.created_at).date().isoformat()
            bucket = by_day.setdefault(day, {"date": day, "inflow": 0.0, "outflow": 0.0, "net": 0.0, "count": 0})
            if is_inflow(tx.transaction_type):
                bucket["inflow"] += tx.amount
                bucket["net"] += tx.amount
            else:
                bucket["outflow"] += tx.amount
                bucket["net"] -= tx.amount
            bucket["count"] += 1
        return list(by_day.values())

    async def get_analytics(self) -> dict:
        """Combined DAO, treasury and funding-distribution analytics."""
        return {
            "dao": await self.get_dao_analytics(),
            "treasury": await self.get_treasury_summary(),
            "funding_distribution": await self.get_funding_distribution(),
        }
