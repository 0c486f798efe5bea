"""DAO governance endpoints: members, proposals, votes, leaderboard and statistics."""

import uuid

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from inrecord.api.middleware.error_handler import run_side_effect
from inrecord.api.middleware.rate_limiter import check_rate_limit
from inrecord.models.dao import (
    LeaderboardType,
    Member,
    MemberRegistration,
    Proposal,
    ProposalActionRequest,
    ProposalCreate,
    ProposalSort,
    ProposalStatus,
    ProposalType,
    Vote,
    VoteCreate,
    VotingResult,
)
from inrecord.services.database import get_db_session
from inrecord.services.discord import DiscordNotifier
from inrecord.services.errors import ValidationFailedError
from inrecord.services.governance import GovernanceService

router = APIRouter(prefix="/api/dao", tags=["dao"])

PROPOSAL_ACTIONS = ("start_voting", "close_voting", "cancel")


def get_discord_notifier() -> DiscordNotifier:
    """Discord notifier dependency; overridden in tests."""
    return DiscordNotifier()


def serialize_proposal(proposal) -> dict:
    return Proposal.model_validate(proposal).model_dump(mode="json")


def parse_tags(tags: str | None) -> list[str] | None:
    if not tags:
        return None
    return [tag.strip() for tag in tags.split(",") if tag.strip()] or None


# ========== Members ==========


@router.post("/members", status_code=status.HTTP_201_CREATED)
async def register_member(request: MemberRegistration, db: AsyncSession = Depends(get_db_session)) -> dict:
    member = await GovernanceService(db).register_member(request)
    return {"success": True, "member": Member.model_validate(member).model_dump(mode="json")}


@router.get("/members/{wallet_address}")
async def get_member(wallet_address: str, db: AsyncSession = Depends(get_db_session)) -> dict:
    member = await GovernanceService(db).get_member(wallet_address)
    return {"success": True, "member": Member.model_validate(member).model_dump(mode="json")}


@router.get("/members/{wallet_address}/votes")
async def get_member_votes(
    wallet_address: str,
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    votes = await GovernanceService(db).get_member_votes(wallet_address, limit=limit)
    return {"success": True, "votes": votes, "count": len(votes)}


@router.get("/members/{wallet_address}/proposals")
async def get_member_proposals(
    wallet_address: str,
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    proposals = await GovernanceService(db).get_member_proposals(wallet_address, limit=limit)
    return {"success": True, "proposals": [serialize_proposal(p) for p in proposals], "count": len(proposals)}


@router.get("/leaderboard")
async def get_leaderboard(
    leaderboard_type: LeaderboardType = Query(LeaderboardType.VOTES, alias="type"),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    """Members ranked by votes, proposals or treasury contributions."""
    leaders = await GovernanceService(db).get_leaderboard(leaderboard_type.value, limit=limit)
    return {"success": True, "type": leaderboard_type.value, "leaderboard": leaders}


# ========== Proposals ==========


@router.post("/proposals", status_code=status.HTTP_201_CREATED)
async def create_proposal(
    request: ProposalCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db_session),
    discord: DiscordNotifier = Depends(get_discord_notifier),
) -> dict:
    """Create and submit a proposal, announcing it on Discord.

    Raises:
        EligibilityError: If the creator is not an active member
    """
    proposal = await GovernanceService(db).create_proposal(request)
    background_tasks.add_task(
        run_side_effect, "discord_proposal_created", discord.notify_proposal_created, proposal
    )
    return {"success": True, "proposal": serialize_proposal(proposal)}


@router.get("/proposals")
async def list_proposals(
    status: ProposalStatus | None = Query(None),
    proposal_type: ProposalType | None = Query(None, alias="proposalType"),
    created_by: str | None = Query(None, alias="createdBy"),
    search: str | None = Query(None, min_length=2, max_length=200),
    tags: str | None = Query(None, description="Comma-separated tags; any match"),
    sort_by: ProposalSort = Query(ProposalSort.NEWEST, alias="sortBy"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    proposals, total = await GovernanceService(db).list_proposals(
        status=status.value if status else None,
        proposal_type=proposal_type.value if proposal_type else None,
        created_by=created_by,
        search=search,
        tags=parse_tags(tags),
        sort_by=sort_by.value,
        limit=limit,
        offset=offset,
    )
    return {
        "success": True,
        "proposals": [serialize_proposal(p) for p in proposals],
        "count": total,
        "limit": limit,
        "offset": offset,
    }


@router.get("/proposals/{proposal_id}")
async def get_proposal(proposal_id: uuid.UUID, db: AsyncSession = Depends(get_db_session)) -> dict:
    service = GovernanceService(db)
    proposal = await service.get_proposal(proposal_id)
    results = await service.calculate_results(proposal)
    return {
        "success": True,
        "proposal": serialize_proposal(proposal),
        "results": results.model_dump(),
    }


@router.patch("/proposals")
async def update_proposal_status(
    request: ProposalActionRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db_session),
    discord: DiscordNotifier = Depends(get_discord_notifier),
) -> dict:
    """Apply a lifecycle action: start_voting, close_voting or cancel.

    Raises:
        ValidationFailedError: On an unknown action
        ConflictError: If the proposal cannot make that transition
    """
    service = GovernanceService(db)

    if request.action == "start_voting":
        proposal = await service.start_voting(request.proposal_id)
        return {"success": True, "proposal": serialize_proposal(proposal)}

    if request.action == "close_voting":
        proposal, results = await service.close_voting(request.proposal_id)
        if results.result == VotingResult.PASSED.value:
            background_tasks.add_task(
                run_side_effect, "discord_proposal_passed", discord.notify_proposal_passed, proposal, results
            )
        else:
            background_tasks.add_task(
                run_side_effect, "discord_proposal_rejected", discord.notify_proposal_rejected, proposal, results
            )
        return {"success": True, "proposal": serialize_proposal(proposal), "results": results.model_dump()}

    if request.action == "cancel":
        proposal = await service.cancel_proposal(request.proposal_id)
        return {"success": True, "proposal": serialize_proposal(proposal)}

    raise ValidationFailedError(
        "Invalid action",
        details=[{"field": "action", "message": f"Action must be one of: {', '.join(PROPOSAL_ACTIONS)}"}],
    )


# ========== Votes ==========


@router.post("/vote", status_code=status.HTTP_201_CREATED, dependencies=[Depends(check_rate_limit)])
async def cast_vote(request: VoteCreate, db: AsyncSession = Depends(get_db_session)) -> dict:
    """Cast a weighted vote.

    Raises:
        NotFoundError: If the proposal or member does not exist
        ConflictError: If the wallet already voted on the proposal
        EligibilityError: If the member or proposal cannot take votes
    """
    vote = await GovernanceService(db).cast_vote(request)
    return {
        "success": True,
        "vote": {
            "id": str(vote.id),
            "proposal_id": str(vote.proposal_id),
            "vote_type": vote.vote_type,
            "vote_weight": float(vote.vote_weight),
            "voted_at": vote.voted_at.isoformat(),
        },
    }


@router.get("/vote")
async def get_vote_status(
    proposal_id: uuid.UUID = Query(..., alias="proposalId"),
    voter_wallet: str = Query(..., alias="voterWallet"),
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    vote = await GovernanceService(db).get_vote(proposal_id, voter_wallet)
    return {
        "success": True,
        "hasVoted": vote is not None,
        "vote": Vote.model_validate(vote).model_dump(mode="json") if vote else None,
    }


# ========== Statistics ==========


@router.get("/stats")
async def get_stats(
    wallet_address: str | None = Query(None, alias="walletAddress"),
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    """Member statistics when ``walletAddress`` is given, DAO-wide otherwise."""
    service = GovernanceService(db)
    if wallet_address:
        return {"success": True, "stats": await service.get_member_stats(wallet_address)}
    return {"success": True, "stats": await service.get_dao_stats()}
