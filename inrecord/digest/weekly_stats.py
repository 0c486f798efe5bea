"""Weekly activity statistics and the highlights derived from them."""

from datetime import date, datetime, time, timedelta, timezone

import structlog
from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from inrecord.models.dao import DAOMemberDB, ProposalDB, ProposalStatus, VoteDB
from inrecord.models.digest import (
    MAX_HIGHLIGHTS,
    MemberMetrics,
    ProposalMetrics,
    TreasuryMetrics,
    VotingMetrics,
    WeeklyStats,
)
from inrecord.models.treasury import INFLOW_TYPES, TreasuryTransactionDB

logger = structlog.get_logger(__name__)


def week_bounds(week_start: date, week_end: date) -> tuple[datetime, datetime]:
    """UTC instants covering ``week_start`` through the whole of ``week_end``."""
    return (
        datetime.combine(week_start, time.min, tzinfo=timezone.utc),
        datetime.combine(week_end + timedelta(days=1), time.min, tzinfo=timezone.utc),
    )


def format_currency(amount: float) -> str:
    if amount >= 1_000_000:
        return f"${amount / 1_000_000:.2f}M"
    if amount >= 1_000:
        return f"${amount / 1_000:.1f}K"
    return f"${amount:.2f}"


def _count_where(condition):
    return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)


async def calculate_weekly_stats(db_session: AsyncSession, week_start: date, week_end: date) -> WeeklyStats:
    """Aggregate proposal, voting, treasury and membership activity for a week."""
    start, end = week_bounds(week_start, week_end)
    changed_this_week = (ProposalDB.updated_at >= start) & (ProposalDB.updated_at < end)
    funded_this_week = (ProposalDB.status == ProposalStatus.FUNDED.value) & changed_this_week

    new, approved, rejected, funded, total_funding = (
        await db_session.execute(
            select(
                _count_where((ProposalDB.created_at >= start) & (ProposalDB.created_at < end)),
                _count_where((ProposalDB.status == ProposalStatus.APPROVED.value) & changed_this_week),
                _count_where((ProposalDB.status == ProposalStatus.REJECTED.value) & changed_this_week),
                _count_where(funded_this_week),
                func.coalesce(func.sum(case((funded_this_week, ProposalDB.current_funding), else_=0)), 0),
            )
        )
    ).one()

    votes_cast, unique_voters, proposals_voted = (
        await db_session.execute(
            select(
                func.count(VoteDB.id),
                func.count(func.distinct(VoteDB.voter_wallet)),
                func.count(func.distinct(VoteDB.proposal_id)),
            ).where(VoteDB.voted_at >= start, VoteDB.voted_at < end)
        )
    ).one()

    total_members, active_members, new_members = (
        await db_session.execute(
            select(
                func.count(DAOMemberDB.wallet_address),
                _count_where(DAOMemberDB.is_active.is_(True)),
                _count_where((DAOMemberDB.joined_at >= start) & (DAOMemberDB.joined_at < end)),
            )
        )
    ).one()

    inflow = TreasuryTransactionDB.transaction_type.in_(INFLOW_TYPES)
    in_week = (TreasuryTransactionDB.created_at >= start) & (TreasuryTransactionDB.created_at < end)
    deposits, withdrawals, ending_balance = (
        await db_session.execute(
            select(
                func.coalesce(func.sum(case((inflow & in_week, TreasuryTransactionDB.amount), else_=0)), 0),
                func.coalesce(func.sum(case((~inflow & in_week, TreasuryTransactionDB.amount), else_=0)), 0),
                func.coalesce(
                    func.sum(case((inflow, TreasuryTransactionDB.amount), else_=-TreasuryTransactionDB.amount)), 0
                ),
            ).where(TreasuryTransactionDB.created_at < end)
        )
    ).one()

    deposits = float(deposits or 0)
    withdrawals = float(withdrawals or 0)

    stats = WeeklyStats(
        week_start=week_start,
        week_end=week_end,
        proposals=ProposalMetrics(
            new=int(new),
            approved=int(approved),
            rejected=int(rejected),
            funded=int(funded),
            total_funding=float(total_funding or 0),
        ),
        voting=VotingMetrics(
            votes_cast=votes_cast,
            unique_voters=unique_voters,
            participation_rate=min(round(unique_voters / total_members, 4), 1.0) if total_members else 0.0,
            avg_votes_per_proposal=round(votes_cast / proposals_voted, 2) if proposals_voted else 0.0,
        ),
        treasury=TreasuryMetrics(
            deposits=deposits,
            withdrawals=withdrawals,
            net_change=round(deposits - withdrawals, 8),
            ending_balance=round(float(ending_balance or 0), 8),
        ),
        members=MemberMetrics(
            new_members=int(new_members),
            total_members=total_members,
            active_members=int(active_members),
        ),
    )
    logger.info(
        "weekly_stats_calculated",
        week_start=week_start.isoformat(),
        proposals=stats.proposals.new,
        votes=stats.voting.votes_cast,
    )
    return stats


async def get_funded_proposal_titles(db_session: AsyncSession, week_start: date, week_end: date) -> list[str]:
    start, end = week_bounds(week_start, week_end)
    result = await db_session.execute(
        select(ProposalDB.title)
        .where(
            ProposalDB.status == ProposalStatus.FUNDED.value,
            ProposalDB.updated_at >= start,
            ProposalDB.updated_at < end,
        )
        .order_by(ProposalDB.updated_at.desc())
        .limit(2)
    )
    return list(result.scalars().all())


def generate_highlights(stats: WeeklyStats, funded_titles: list[str] | None = None) -> list[str]:
    """Notable events of the week, at most five."""
    highlights = []

    if stats.voting.participation_rate > 0.5:
        highlights.append(f"Record voter turnout at {round(stats.voting.participation_rate * 100)}%")
    elif stats.voting.participation_rate > 0.3:
        highlights.append(f"Strong community engagement with {stats.voting.unique_voters} unique voters")

    if stats.proposals.funded > 0:
        plural = "s" if stats.proposals.funded > 1 else ""
        highlights.append(
            f"{stats.proposals.funded} artist grant{plural} approved totaling "
            f"{format_currency(stats.proposals.total_funding)}"
        )

    if stats.treasury.net_change > 0:
        highlights.append(f"Treasury grew by {format_currency(stats.treasury.net_change)} this week")
    elif stats.treasury.net_change < 0:
        highlights.append(
            f"{format_currency(abs(stats.treasury.net_change))} deployed to fund community projects"
        )

    if stats.members.new_members > 10:
        highlights.append(f"Welcomed {stats.members.new_members} new members to the community")

    for title in (funded_titles or [])[:2]:
        highlights.append(f"{title} proposal funded")

    if len(highlights) < 3:
        if stats.proposals.new > 0:
            highlights.append(f"{stats.proposals.new} new proposals submitted for community review")
        if stats.voting.votes_cast > 50:
            highlights.append(f"Community cast {stats.voting.votes_cast} votes on active proposals")

    return highlights[:MAX_HIGHLIGHTS]
