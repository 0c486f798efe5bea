"""DAO governance service: membership, proposal lifecycle, voting and results."""

import uuid

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from inrecord.models.base import ensure_utc, utcnow
from inrecord.models.dao import (
    DAOMemberDB,
    LeaderboardType,
    MemberRegistration,
    MembershipTier,
    ProposalCreate,
    ProposalDB,
    ProposalResults,
    ProposalSort,
    ProposalStatus,
    VoteCreate,
    VoteDB,
    VoteType,
    VotingResult,
    get_tier_display_name,
    get_vote_weight,
)
from inrecord.models.treasury import DEFAULT_CURRENCY, INFLOW_TYPES, TreasuryTransactionDB
from inrecord.services.errors import (
    ConflictError,
    EligibilityError,
    NotFoundError,
    ValidationFailedError,
)

logger = structlog.get_logger(__name__)

# Legal status transitions; anything else is a conflict
ALLOWED_TRANSITIONS: dict[str, tuple[str, ...]] = {
    ProposalStatus.DRAFT.value: (ProposalStatus.SUBMITTED.value, ProposalStatus.CANCELLED.value),
    ProposalStatus.SUBMITTED.value: (ProposalStatus.ACTIVE_VOTING.value, ProposalStatus.CANCELLED.value),
    ProposalStatus.ACTIVE_VOTING.value: (
        ProposalStatus.APPROVED.value,
        ProposalStatus.REJECTED.value,
        ProposalStatus.CANCELLED.value,
    ),
    ProposalStatus.APPROVED.value: (ProposalStatus.FUNDED.value, ProposalStatus.COMPLETED.value),
    ProposalStatus.FUNDED.value: (ProposalStatus.COMPLETED.value,),
    ProposalStatus.REJECTED.value: (),
    ProposalStatus.COMPLETED.value: (),
    ProposalStatus.CANCELLED.value: (),
}

# Statuses of proposals whose vote passed
PASSED_STATUSES = (
    ProposalStatus.APPROVED.value,
    ProposalStatus.FUNDED.value,
    ProposalStatus.COMPLETED.value,
)


def _transition(proposal: ProposalDB, new_status: str) -> None:
    if new_status not in ALLOWED_TRANSITIONS.get(proposal.status, ()):
        raise ConflictError(
            f"Cannot move proposal from '{proposal.status}' to '{new_status}'",
            details={"proposal_id": str(proposal.id), "status": proposal.status},
        )
    proposal.status = new_status


class GovernanceService:
    """DAO membership, proposals and votes.

    Every method operates within the caller's session and commits its own
    writes so that a route can chain several calls in one request.
    """

    def __init__(self, db_session: AsyncSession):
        """Initialize governance service.

        Args:
            db_session: Async database session
        """
        self.db_session = db_session

    # ========== Members ==========

    async def register_member(self, data: MemberRegistration) -> DAOMemberDB:
        """Register a wallet as a DAO member.

        Raises:
            ConflictError: If the wallet is already registered
        """
        existing = await self.db_session.get(DAOMemberDB, data.wallet_address)
        if existing is not None:
            raise ConflictError("Wallet is already a DAO member")

        member = DAOMemberDB(
            wallet_address=data.wallet_address,
            membership_tier=data.membership_tier,
            tier_display_name=get_tier_display_name(data.membership_tier),
            display_name=data.display_name,
            bio=data.bio,
            avatar_url=str(data.avatar_url) if data.avatar_url else None,
            email=str(data.email) if data.email else None,
            discord_handle=data.discord_handle,
            votes_cast=0,
            proposals_created=0,
            total_funding_received=0,
            is_active=True,
        )
        self.db_session.add(member)
        await self.db_session.commit()

        logger.info("member_registered", wallet=member.wallet_address, tier=member.membership_tier)
        return member

    async def get_member(self, wallet_address: str) -> DAOMemberDB:
        member = await self.db_session.get(DAOMemberDB, wallet_address)
        if member is None:
            raise NotFoundError("Member not found")
        return member

    async def count_active_members(self) -> int:
        result = await self.db_session.execute(
            select(func.count(DAOMemberDB.wallet_address)).where(DAOMemberDB.is_active.is_(True))
        )
        return result.scalar() or 0

    # ========== Member dashboard ==========

    async def get_member_votes(self, wallet_address: str, limit: int = 20) -> list[dict]:
        """A member's votes, newest first, with the proposal title.

        Raises:
            NotFoundError: If the wallet is not a member
        """
        await self.get_member(wallet_address)
        result = await self.db_session.execute(
            select(VoteDB, ProposalDB.title)
            .outerjoin(ProposalDB, ProposalDB.id == VoteDB.proposal_id)
            .where(VoteDB.voter_wallet == wallet_address)
            .order_by(VoteDB.voted_at.desc())
            .limit(limit)
        )
        return [
            {
                "id": str(vote.id),
                "proposal_id": str(vote.proposal_id),
                "proposal_title": title or "Unknown Proposal",
                "vote_type": vote.vote_type,
                "vote_weight": float(vote.vote_weight),
                "voted_at": ensure_utc(vote.voted_at).isoformat(),
            }
            for vote, title in result.all()
        ]

    async def get_member_proposals(self, wallet_address: str, limit: int = 20) -> list[ProposalDB]:
        """Proposals created by a member, newest first.

        Raises:
            NotFoundError: If the wallet is not a member
        """
        await self.get_member(wallet_address)
        result = await self.db_session.execute(
            select(ProposalDB)
            .where(ProposalDB.created_by == wallet_address)
            .order_by(ProposalDB.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_leaderboard(self, by: str = LeaderboardType.VOTES.value, limit: int = 10) -> list[dict]:
        """Members ranked by votes cast, proposals created or treasury contributions.

        Contributions are the member's deposits and revenue in the treasury's
        default currency.
        """
        contributions = (
            select(
                TreasuryTransactionDB.contributor_wallet.label("wallet_address"),
                func.sum(TreasuryTransactionDB.amount).label("total"),
            )
            .where(
                TreasuryTransactionDB.transaction_type.in_(INFLOW_TYPES),
                TreasuryTransactionDB.currency == DEFAULT_CURRENCY,
            )
            .group_by(TreasuryTransactionDB.contributor_wallet)
            .subquery()
        )
        contributed = func.coalesce(contributions.c.total, 0)
        order_columns = {
            LeaderboardType.VOTES.value: DAOMemberDB.votes_cast,
            LeaderboardType.PROPOSALS.value: DAOMemberDB.proposals_created,
            LeaderboardType.CONTRIBUTIONS.value: contributed,
        }
        if by not in order_columns:
            raise ValidationFailedError(
                "Invalid leaderboard type",
                details=[{"field": "type", "message": f"Type must be one of: {', '.join(order_columns)}"}],
            )

        result = await self.db_session.execute(
            select(DAOMemberDB, contributed)
            .outerjoin(contributions, contributions.c.wallet_address == DAOMemberDB.wallet_address)
            .order_by(order_columns[by].desc(), DAOMemberDB.joined_at.asc())
            .limit(limit)
        )
        return [
            {
                "rank": rank,
                "wallet_address": member.wallet_address,
                "display_name": member.display_name,
                "membership_tier": member.membership_tier,
                "tier_display_name": member.tier_display_name,
                "votes_cast": member.votes_cast or 0,
                "proposals_created": member.proposals_created or 0,
                "contributions": float(total or 0),
            }
            for rank, (member, total) in enumerate(result.all(), start=1)
        ]

    async def get_member_count_by_tier(self) -> dict[str, int]:
        result = await self.db_session.execute(
            select(DAOMemberDB.membership_tier, func.count(DAOMemberDB.wallet_address)).group_by(
                DAOMemberDB.membership_tier
            )
        )
        counts = {tier.value: 0 for tier in MembershipTier}
        counts.update({tier: count for tier, count in result.all() if tier in counts})
        return counts

    # ========== Proposals ==========

    async def create_proposal(self, data: ProposalCreate) -> ProposalDB:
        """Create a proposal and submit it for review.

        Raises:
            EligibilityError: If the creator is not an active member
        """
        creator = await self.db_session.get(DAOMemberDB, data.created_by)
        if creator is None or not creator.is_active:
            raise EligibilityError("Only active DAO members can create proposals")

        proposal = ProposalDB(
            id=uuid.uuid4(),
            title=data.title,
            description=data.description,
            proposal_type=data.proposal_type,
            funding_goal=data.funding_goal,
            current_funding=0,
            funding_currency=data.funding_currency,
            created_by=data.created_by,
            status=ProposalStatus.DRAFT.value,
            voting_ends_at=data.voting_ends_at,
            quorum_required=data.quorum_required,
            approval_threshold=data.approval_threshold,
            votes_for=0,
            votes_against=0,
            votes_abstain=0,
            total_vote_weight=0,
            unique_voters=0,
            linked_session_id=data.linked_session_id,
            tags=data.tags or [],
            attachment_urls=[str(url) for url in data.attachment_urls or []],
        )
        self.db_session.add(proposal)
        await self.db_session.flush()

        logger.info("proposal_created", proposal_id=str(proposal.id), created_by=data.created_by)
        return await self.submit_proposal(proposal.id, data.created_by)

    async def submit_proposal(self, proposal_id: uuid.UUID, wallet_address: str) -> ProposalDB:
        """Move a draft to submitted and credit the creator."""
        proposal = await self.get_proposal(proposal_id)
        if proposal.created_by != wallet_address:
            raise EligibilityError("Only the proposal creator can submit it")

        _transition(proposal, ProposalStatus.SUBMITTED.value)
        proposal.submitted_at = utcnow()

        creator = await self.get_member(wallet_address)
        creator.proposals_created = (creator.proposals_created or 0) + 1
        creator.last_active_at = utcnow()

        await self.db_session.commit()
        logger.info("proposal_submitted", proposal_id=str(proposal_id))
        return proposal

    async def get_proposal(self, proposal_id: uuid.UUID) -> ProposalDB:
        proposal = await self.db_session.get(ProposalDB, proposal_id)
        if proposal is None:
            raise NotFoundError("Proposal not found")
        return proposal

    async def list_proposals(
        self,
        status: str | None = None,
        proposal_type: str | None = None,
        created_by: str | None = None,
        search: str | None = None,
        tags: list[str] | None = None,
        sort_by: str = ProposalSort.NEWEST.value,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[ProposalDB], int]:
        """Filter, sort and page proposals.

        Returns:
            Tuple of (page of proposals, total matching count)
        """
        query = select(ProposalDB)
        if status:
            query = query.where(ProposalDB.status == status)
        if proposal_type:
            query = query.where(ProposalDB.proposal_type == proposal_type)
        if created_by:
            query = query.where(ProposalDB.created_by == created_by)
        if search:
            pattern = f"%{search}%"
            query = query.where(or_(ProposalDB.title.ilike(pattern), ProposalDB.description.ilike(pattern)))

        if sort_by == ProposalSort.OLDEST.value:
            query = query.order_by(ProposalDB.created_at.asc())
        elif sort_by == ProposalSort.MOST_FUNDED.value:
            query = query.order_by(ProposalDB.current_funding.desc(), ProposalDB.created_at.desc())
        elif sort_by == ProposalSort.ENDING_SOON.value:
            query = query.order_by(ProposalDB.voting_ends_at.asc())
        elif sort_by == ProposalSort.MOST_VOTES.value:
            query = query.order_by(
                (ProposalDB.votes_for + ProposalDB.votes_against + ProposalDB.votes_abstain).desc(),
                ProposalDB.created_at.desc(),
            )
        else:
            query = query.order_by(ProposalDB.created_at.desc())

        if tags:
            # Tags live in a JSON column; match portably in Python
            result = await self.db_session.execute(query)
            wanted = set(tags)
            matching = [p for p in result.scalars().all() if wanted.intersection(p.tags or [])]
            return matching[offset:offset + limit], len(matching)

        count_query = select(func.count()).select_from(query.order_by(None).subquery())
        total = (await self.db_session.execute(count_query)).scalar() or 0

        result = await self.db_session.execute(query.limit(limit).offset(offset))
        return list(result.scalars().all()), total

    async def start_voting(self, proposal_id: uuid.UUID) -> ProposalDB:
        """Open a submitted proposal for voting."""
        proposal = await self.get_proposal(proposal_id)
        if ensure_utc(proposal.voting_ends_at) <= utcnow():
            raise ValidationFailedError("Voting period has already ended for this proposal")

        _transition(proposal, ProposalStatus.ACTIVE_VOTING.value)
        proposal.voting_starts_at = utcnow()
        proposal.voting_result = VotingResult.PENDING.value

        await self.db_session.commit()
        logger.info("voting_started", proposal_id=str(proposal_id))
        return proposal

    async def close_voting(self, proposal_id: uuid.UUID) -> tuple[ProposalDB, ProposalResults]:
        """Tally votes and move the proposal to approved or rejected."""
        proposal = await self.get_proposal(proposal_id)
        if proposal.status != ProposalStatus.ACTIVE_VOTING.value:
            raise ConflictError("Proposal is not in active voting")

        results = await self.calculate_results(proposal)
        new_status = (
            ProposalStatus.APPROVED.value
            if results.result == VotingResult.PASSED.value
            else ProposalStatus.REJECTED.value
        )
        _transition(proposal, new_status)
        proposal.voting_result = results.result
        proposal.voting_closed_at = utcnow()

        await self.db_session.commit()
        logger.info(
            "voting_closed",
            proposal_id=str(proposal_id),
            result=results.result,
            approval_percentage=results.approval_percentage,
        )
        return proposal, results

    async def cancel_proposal(self, proposal_id: uuid.UUID) -> ProposalDB:
        proposal = await self.get_proposal(proposal_id)
        _transition(proposal, ProposalStatus.CANCELLED.value)
        await self.db_session.commit()
        logger.info("proposal_cancelled", proposal_id=str(proposal_id))
        return proposal

    # ========== Voting ==========

    async def get_vote(self, proposal_id: uuid.UUID, voter_wallet: str) -> VoteDB | None:
        result = await self.db_session.execute(
            select(VoteDB).where(VoteDB.proposal_id == proposal_id, VoteDB.voter_wallet == voter_wallet)
        )
        return result.scalar_one_or_none()

    async def check_vote_eligibility(self, member: DAOMemberDB, proposal: ProposalDB) -> None:
        """Raise unless ``member`` may vote on ``proposal`` right now.

        Raises:
            ConflictError: If the member already voted on the proposal
            EligibilityError: If the member is inactive or voting is not open
        """
        if await self.get_vote(proposal.id, member.wallet_address) is not None:
            raise ConflictError("You have already voted on this proposal")
        if not member.is_active:
            raise EligibilityError("Membership is not active")
        if proposal.status != ProposalStatus.ACTIVE_VOTING.value:
            raise EligibilityError("Proposal is not open for voting")
        if ensure_utc(proposal.voting_ends_at) <= utcnow():
            raise EligibilityError("Voting period has ended")

    async def cast_vote(self, data: VoteCreate) -> VoteDB:
        """Record a weighted vote and refresh the proposal's tallies.

        The (proposal_id, voter_wallet) unique constraint backs the
        already-voted check against concurrent requests.
        """
        proposal = await self.get_proposal(data.proposal_id)
        member = await self.get_member(data.voter_wallet)
        await self.check_vote_eligibility(member, proposal)

        # TODO: verify `signature` against voter_wallet before recording the vote
        vote = VoteDB(
            id=uuid.uuid4(),
            proposal_id=proposal.id,
            voter_wallet=member.wallet_address,
            vote_type=data.vote_type,
            vote_weight=get_vote_weight(member.membership_tier),
            membership_tier_at_vote=member.membership_tier,
            signature=data.signature,
            signature_verified=False,
            comment=data.comment,
            voted_at=utcnow(),
        )
        self.db_session.add(vote)

        try:
            await self.db_session.flush()
        except IntegrityError as e:
            await self.db_session.rollback()
            raise ConflictError("You have already voted on this proposal") from e

        await self._refresh_vote_counts(proposal)
        member.votes_cast = (member.votes_cast or 0) + 1
        member.last_active_at = utcnow()

        await self.db_session.commit()
        logger.info(
            "vote_cast",
            proposal_id=str(proposal.id),
            voter=member.wallet_address,
            vote_type=vote.vote_type,
            weight=vote.vote_weight,
        )
        return vote

    async def _refresh_vote_counts(self, proposal: ProposalDB) -> None:
        tally = await self._tally(proposal.id)
        proposal.votes_for = tally[VoteType.FOR.value][0]
        proposal.votes_against = tally[VoteType.AGAINST.value][0]
        proposal.votes_abstain = tally[VoteType.ABSTAIN.value][0]
        proposal.total_vote_weight = sum(weight for _, weight in tally.values())
        proposal.unique_voters = await self._unique_voters(proposal.id)

    async def _tally(self, proposal_id: uuid.UUID) -> dict[str, tuple[int, float]]:
        """Count and total weight per vote type."""
        result = await self.db_session.execute(
            select(VoteDB.vote_type, func.count(VoteDB.id), func.coalesce(func.sum(VoteDB.vote_weight), 0))
            .where(VoteDB.proposal_id == proposal_id)
            .group_by(VoteDB.vote_type)
        )
        tally = {vote_type.value: (0, 0.0) for vote_type in VoteType}
        for vote_type, count, weight in result.all():
            tally[vote_type] = (count, float(weight))
        return tally

    async def _unique_voters(self, proposal_id: uuid.UUID) -> int:
        result = await self.db_session.execute(
            select(func.count(func.distinct(VoteDB.voter_wallet))).where(VoteDB.proposal_id == proposal_id)
        )
        return result.scalar() or 0

    async def calculate_results(self, proposal: ProposalDB) -> ProposalResults:
        """Weighted approval and participation against quorum and threshold.

        Approval counts only for/against weight; abstentions count toward
        quorum but not approval.
        """
        tally = await self._tally(proposal.id)
        unique_voters = await self._unique_voters(proposal.id)
        active_members = await self.count_active_members()

        weight_for = tally[VoteType.FOR.value][1]
        weight_against = tally[VoteType.AGAINST.value][1]

        decisive = weight_for + weight_against
        approval = round(weight_for / decisive * 100, 2) if decisive > 0 else 0.0
        participation = round(unique_voters / active_members * 100, 2) if active_members > 0 else 0.0
        quorum_met = active_members > 0 and participation >= proposal.quorum_required

        if not quorum_met:
            outcome = VotingResult.QUORUM_NOT_MET.value
        elif approval >= proposal.approval_threshold:
            outcome = VotingResult.PASSED.value
        else:
            outcome = VotingResult.FAILED.value

        return ProposalResults(
            votes_for=tally[VoteType.FOR.value][0],
            votes_against=tally[VoteType.AGAINST.value][0],
            votes_abstain=tally[VoteType.ABSTAIN.value][0],
            weight_for=weight_for,
            weight_against=weight_against,
            weight_abstain=tally[VoteType.ABSTAIN.value][1],
            unique_voters=unique_voters,
            active_members=active_members,
            approval_percentage=approval,
            participation_percentage=participation,
            quorum_met=quorum_met,
            result=outcome,
        )

    # ========== Statistics ==========

    async def get_dao_stats(self) -> dict:
        """DAO-wide membership, proposal, funding and voting statistics."""
        total_members = (await self.db_session.execute(select(func.count(DAOMemberDB.wallet_address)))).scalar() or 0
        active_members = await self.count_active_members()

        status_rows = await self.db_session.execute(
            select(ProposalDB.status, func.count(ProposalDB.id)).group_by(ProposalDB.status)
        )
        by_status = {row[0]: row[1] for row in status_rows.all()}

        requested = await self.db_session.execute(select(func.coalesce(func.sum(ProposalDB.funding_goal), 0)))
        approved = await self.db_session.execute(
            select(func.coalesce(func.sum(ProposalDB.funding_goal), 0)).where(ProposalDB.status.in_(PASSED_STATUSES))
        )
        total_votes = (await self.db_session.execute(select(func.count(VoteDB.id)))).scalar() or 0

        avg_voters = await self.db_session.execute(
            select(func.avg(ProposalDB.unique_voters)).where(
                ProposalDB.status.notin_([ProposalStatus.DRAFT.value, ProposalStatus.SUBMITTED.value])
            )
        )
        avg_voters_value = avg_voters.scalar()
        participation = 0.0
        if avg_voters_value is not None and active_members > 0:
            participation = min(round(float(avg_voters_value) / active_members * 100, 2), 100.0)

        return {
            "totalMembers": total_members,
            "activeMembers": active_members,
            "totalProposals": sum(by_status.values()),
            "activeProposals": by_status.get(ProposalStatus.ACTIVE_VOTING.value, 0),
            "approvedProposals": sum(by_status.get(s, 0) for s in PASSED_STATUSES),
            "rejectedProposals": by_status.get(ProposalStatus.REJECTED.value, 0),
            "totalFundingRequested": float(requested.scalar() or 0),
            "totalFundingApproved": float(approved.scalar() or 0),
            "totalVotesCast": total_votes,
            "averageVoterParticipation": participation,
            "membersByTier": await self.get_member_count_by_tier(),
        }

    async def get_member_stats(self, wallet_address: str) -> dict:
        member = await self.get_member(wallet_address)
        return {
            "walletAddress": member.wallet_address,
            "membershipTier": member.membership_tier,
            "tierDisplayName": member.tier_display_name,
            "votesCast": member.votes_cast,
            "proposalsCreated": member.proposals_created,
            "totalFundingReceived": float(member.total_funding_received or 0),
            "voteWeight": get_vote_weight(member.membership_tier),
            "memberSince": ensure_utc(member.joined_at).isoformat(),
            "lastActive": ensure_utc(member.last_active_at).isoformat(),
        }
