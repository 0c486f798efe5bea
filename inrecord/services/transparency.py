"""Aggregates public DAO and treasury data for the embeddable transparency widget."""

from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from inrecord.models.base import ensure_utc, utcnow
from inrecord.models.dao import DAOMemberDB, ProposalDB, ProposalStatus, VoteDB, VoteType
from inrecord.models.transparency import (
    ChartData,
    ChartDataPoint,
    EmbedWidgetData,
    RecentActivity,
    TransparencyMetrics,
)
from inrecord.models.treasury import DEFAULT_CURRENCY, INFLOW_TYPES, TreasuryTransactionDB, is_inflow
from inrecord.services.treasury import TreasuryService

CHART_MONTHS = 6


def _short_wallet(wallet: str | None) -> str:
    if not wallet:
        return "unknown"
    if len(wallet) <= 10:
        return wallet
    return f"{wallet[:6]}...{wallet[-4:]}"


def _month_start(moment: datetime) -> datetime:
    return moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def _previous_month(moment: datetime) -> datetime:
    return _month_start(_month_start(moment) - timedelta(days=1))


class TransparencyService:
    """Builds the public widget payload from live tables."""

    def __init__(self, db_session: AsyncSession):
        self.db_session = db_session
        self.treasury = TreasuryService(db_session)

    async def _count(self, query) -> int:
        return (await self.db_session.execute(query)).scalar() or 0

    async def get_metrics(self) -> TransparencyMetrics:
        week_ago = utcnow() - timedelta(days=7)

        status_rows = await self.db_session.execute(
            select(ProposalDB.status, func.count(ProposalDB.id)).group_by(ProposalDB.status)
        )
        by_status = {row[0]: row[1] for row in status_rows.all()}

        total_members = await self._count(select(func.count(DAOMemberDB.wallet_address)))
        unique_voters = await self._count(select(func.count(func.distinct(VoteDB.voter_wallet))))
        summary = await self.treasury.get_treasury_summary(currency=DEFAULT_CURRENCY)

        weekly = await self.db_session.execute(
            select(
                TreasuryTransactionDB.transaction_type,
                TreasuryTransactionDB.amount,
                TreasuryTransactionDB.currency,
            ).where(TreasuryTransactionDB.created_at >= week_ago)
        )
        weekly_rows = weekly.all()
        # Only default-currency amounts enter the net change
        net_change = sum(
            amount if is_inflow(kind) else -amount
            for kind, amount, currency in weekly_rows
            if currency == DEFAULT_CURRENCY
        )

        return TransparencyMetrics(
            total_proposals=sum(by_status.values()),
            active_proposals=by_status.get(ProposalStatus.ACTIVE_VOTING.value, 0),
            funded_proposals=by_status.get(ProposalStatus.FUNDED.value, 0)
            + by_status.get(ProposalStatus.COMPLETED.value, 0),
            total_votes=await self._count(select(func.count(VoteDB.id))),
            unique_voters=unique_voters,
            participation_rate=round(unique_voters / total_members * 100, 2) if total_members else 0.0,
            treasury_balance=summary["current_balance"],
            total_deposits=summary["total_inflow"],
            total_withdrawals=summary["total_outflow"],
            net_change=round(net_change, 8),
            total_members=total_members,
            active_members=await self._count(
                select(func.count(DAOMemberDB.wallet_address)).where(DAOMemberDB.is_active.is_(True))
            ),
            new_members_this_week=await self._count(
                select(func.count(DAOMemberDB.wallet_address)).where(DAOMemberDB.joined_at >= week_ago)
            ),
            proposals_this_week=await self._count(
                select(func.count(ProposalDB.id)).where(ProposalDB.created_at >= week_ago)
            ),
            votes_this_week=await self._count(select(func.count(VoteDB.id)).where(VoteDB.voted_at >= week_ago)),
            treasury_activity_this_week=len(weekly_rows),
        )

    async def get_recent_activity(self, max_items: int) -> list[RecentActivity]:
        """Latest proposals, votes, transactions and members, newest first."""
        activity: list[tuple[datetime, RecentActivity]] = []

        proposals = await self.db_session.execute(
            select(ProposalDB).order_by(ProposalDB.created_at.desc()).limit(max_items)
        )
        for p in proposals.scalars().all():
            created = ensure_utc(p.created_at)
            activity.append(
                (
                    created,
                    RecentActivity(
                        id=str(p.id),
                        type="proposal",
                        title=f"New proposal: {p.title}",
                        description=f"{p.proposal_type} proposal by {_short_wallet(p.created_by)}",
                        timestamp=created.isoformat(),
                        metadata={"status": p.status, "funding_goal": p.funding_goal},
                    ),
                )
            )

        votes = await self.db_session.execute(
            select(VoteDB, ProposalDB.title)
            .join(ProposalDB, VoteDB.proposal_id == ProposalDB.id)
            .order_by(VoteDB.voted_at.desc())
            .limit(max_items)
        )
        for vote, title in votes.all():
            voted = ensure_utc(vote.voted_at)
            activity.append(
                (
                    voted,
                    RecentActivity(
                        id=str(vote.id),
                        type="vote",
                        title="Vote cast",
                        description=f"{_short_wallet(vote.voter_wallet)} voted {vote.vote_type} on {title}",
                        timestamp=voted.isoformat(),
                        metadata={"vote_type": vote.vote_type, "weight": vote.vote_weight},
                    ),
                )
            )

        transactions = await self.db_session.execute(
            select(TreasuryTransactionDB).order_by(TreasuryTransactionDB.created_at.desc()).limit(max_items)
        )
        for tx in transactions.scalars().all():
            created = ensure_utc(tx.created_at)
            label = tx.transaction_type.replace("_", " ").capitalize()
            activity.append(
                (
                    created,
                    RecentActivity(
                        id=str(tx.id),
                        type="transaction",
                        title=label,
                        description=tx.description or f"{label} of {tx.amount:g} {tx.currency}",
                        timestamp=created.isoformat(),
                        metadata={"amount": tx.amount, "currency": tx.currency},
                    ),
                )
            )

        members = await self.db_session.execute(
            select(DAOMemberDB).order_by(DAOMemberDB.joined_at.desc()).limit(max_items)
        )
        for m in members.scalars().all():
            joined = ensure_utc(m.joined_at)
            name = m.display_name or _short_wallet(m.wallet_address)
            activity.append(
                (
                    joined,
                    RecentActivity(
                        id=m.wallet_address,
                        type="member",
                        title="New member joined",
                        description=f"{name} joined as {m.tier_display_name or m.membership_tier}",
                        timestamp=joined.isoformat(),
                        metadata={"tier": m.membership_tier},
                    ),
                )
            )

        activity.sort(key=lambda item: item[0], reverse=True)
        return [item for _, item in activity[:max_items]]

    async def get_treasury_chart(self) -> list[ChartDataPoint]:
        """Default-currency balance at the end of each of the last months, oldest first."""
        month_ends = []
        boundary = _month_start(utcnow())
        # Boundaries are the first instant of the following month
        boundary = _month_start(boundary + timedelta(days=32))
        for _ in range(CHART_MONTHS):
            month_ends.append(boundary)
            boundary = _previous_month(boundary)
        month_ends.reverse()

        points = []
        for end in month_ends:
            inflow_case = func.sum(TreasuryTransactionDB.amount).filter(
                TreasuryTransactionDB.transaction_type.in_(INFLOW_TYPES)
            )
            outflow_case = func.sum(TreasuryTransactionDB.amount).filter(
                TreasuryTransactionDB.transaction_type.notin_(INFLOW_TYPES)
            )
            row = (
                await self.db_session.execute(
                    select(inflow_case, outflow_case).where(
                        TreasuryTransactionDB.created_at < end,
                        TreasuryTransactionDB.currency == DEFAULT_CURRENCY,
                    )
                )
            ).one()
            balance = float(row[0] or 0) - float(row[1] or 0)
            month = _previous_month(end)
            points.append(
                ChartDataPoint(
                    label=month.strftime("%b %Y"),
                    value=round(balance, 8),
                    date=month.date().isoformat(),
                )
            )
        return points

    async def get_proposal_chart(self) -> list[ChartDataPoint]:
        result = await self.db_session.execute(
            select(ProposalDB.status, func.count(ProposalDB.id)).group_by(ProposalDB.status)
        )
        counts = {row[0]: row[1] for row in result.all()}
        return [
            ChartDataPoint(label=status.value.replace("_", " ").title(), value=counts[status.value])
            for status in ProposalStatus
            if counts.get(status.value)
        ]

    async def get_voting_chart(self) -> list[ChartDataPoint]:
        result = await self.db_session.execute(
            select(VoteDB.vote_type, func.coalesce(func.sum(VoteDB.vote_weight), 0)).group_by(VoteDB.vote_type)
        )
        weights = {row[0]: float(row[1]) for row in result.all()}
        return [
            ChartDataPoint(label=vote_type.value.capitalize(), value=weights.get(vote_type.value, 0.0))
            for vote_type in VoteType
        ]

    async def get_widget_data(
        self, max_items: int = 5, include_charts: bool = True, include_activity: bool = True
    ) -> EmbedWidgetData:
        chart_data = ChartData()
        if include_charts:
            chart_data = ChartData(
                treasury=await self.get_treasury_chart(),
                proposals=await self.get_proposal_chart(),
                voting=await self.get_voting_chart(),
            )

        return EmbedWidgetData(
            metrics=await self.get_metrics(),
            recent_activity=await self.get_recent_activity(max_items) if include_activity else [],
            chart_data=chart_data,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )
