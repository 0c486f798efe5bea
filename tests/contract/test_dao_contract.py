"""Contract tests for DAO governance endpoints.

These tests exercise members, the proposal lifecycle, voting and
statistics through the HTTP API.
"""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from httpx import AsyncClient

from inrecord.models.base import utcnow

WALLET_A = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"
WALLET_B = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"
SIGNATURE = "5" * 88


def proposal_payload(**overrides) -> dict:
    payload = {
        "title": "Fund a new vocal booth",
        "description": "Build an isolated vocal booth so artists can track vocals without bleed.",
        "proposalType": "Studio Funding",
        "fundingGoal": 5000,
        "createdBy": WALLET_A,
        "votingEndsAt": (utcnow() + timedelta(days=7)).isoformat(),
        "tags": ["studio", "vocals"],
    }
    payload.update(overrides)
    return payload


async def register(client: AsyncClient, wallet: str, tier: str = "Bronze") -> dict:
    response = await client.post("/api/dao/members", json={"walletAddress": wallet, "membershipTier": tier})
    assert response.status_code == 201
    return response.json()["member"]


async def open_proposal(client: AsyncClient, **overrides) -> dict:
    created = await client.post("/api/dao/proposals", json=proposal_payload(**overrides))
    assert created.status_code == 201
    proposal_id = created.json()["proposal"]["id"]
    started = await act(client, proposal_id, "start_voting")
    assert started.status_code == 200
    return started.json()["proposal"]


async def act(client: AsyncClient, proposal_id: str, action: str):
    return await client.patch("/api/dao/proposals", json={"proposalId": proposal_id, "action": action})


def vote_payload(proposal_id: str, wallet: str = WALLET_A, vote_type: str = "for") -> dict:
    return {"proposalId": proposal_id, "voterWallet": wallet, "voteType": vote_type, "signature": SIGNATURE}


@pytest.mark.contract
class TestMembersContract:
    """Contract tests for /api/dao/members."""

    @pytest.mark.asyncio
    async def test_register_and_fetch(self, client: AsyncClient) -> None:
        """Test that a registered member can be fetched with their tier name."""
        member = await register(client, WALLET_A, tier="Gold")

        response = await client.get(f"/api/dao/members/{WALLET_A}")

        assert member["tier_display_name"] == "Curator"
        assert response.status_code == 200
        assert response.json()["member"]["membership_tier"] == "Gold"
        assert response.json()["member"]["votes_cast"] == 0

    @pytest.mark.asyncio
    async def test_duplicate_member(self, client: AsyncClient) -> None:
        """Test that registering a wallet twice conflicts."""
        await register(client, WALLET_A)

        response = await client.post("/api/dao/members", json={"walletAddress": WALLET_A})

        assert response.status_code == 409
        assert response.json()["type"] == "conflict"

    @pytest.mark.asyncio
    async def test_unknown_member(self, client: AsyncClient) -> None:
        """Test that unknown wallets return 404."""
        response = await client.get(f"/api/dao/members/{WALLET_B}")

        assert response.status_code == 404


@pytest.mark.contract
class TestMemberDashboardContract:
    """Contract tests for member history and the leaderboard."""

    @pytest.mark.asyncio
    async def test_member_votes(self, client: AsyncClient) -> None:
        """Test that a member's votes carry the proposal title."""
        await register(client, WALLET_A)
        proposal = await open_proposal(client)
        await client.post("/api/dao/vote", json=vote_payload(proposal["id"], vote_type="abstain"))

        response = await client.get(f"/api/dao/members/{WALLET_A}/votes")

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 1
        vote = data["votes"][0]
        assert vote["proposal_id"] == proposal["id"]
        assert vote["proposal_title"] == "Fund a new vocal booth"
        assert vote["vote_type"] == "abstain"

    @pytest.mark.asyncio
    async def test_member_proposals(self, client: AsyncClient) -> None:
        """Test that a member's proposals are listed newest first."""
        await register(client, WALLET_A)
        await client.post("/api/dao/proposals", json=proposal_payload(title="Older proposal for the label"))
        await client.post("/api/dao/proposals", json=proposal_payload(title="Newer proposal for the label"))

        response = await client.get(f"/api/dao/members/{WALLET_A}/proposals", params={"limit": 1})

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 1
        assert data["proposals"][0]["title"] == "Newer proposal for the label"
        assert data["proposals"][0]["status"] == "submitted"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("section", ["votes", "proposals"])
    async def test_history_of_unknown_member(self, client: AsyncClient, section: str) -> None:
        """Test that history for an unregistered wallet returns 404."""
        response = await client.get(f"/api/dao/members/{WALLET_B}/{section}")

        assert response.status_code == 404
        assert response.json()["type"] == "not_found"

    @pytest.mark.asyncio
    async def test_leaderboard_by_proposals(self, client: AsyncClient) -> None:
        """Test that the leaderboard ranks members by proposals created."""
        await register(client, WALLET_A)
        await register(client, WALLET_B, tier="Gold")
        await client.post("/api/dao/proposals", json=proposal_payload(createdBy=WALLET_B))

        response = await client.get("/api/dao/leaderboard", params={"type": "proposals"})

        assert response.status_code == 200
        data = response.json()
        assert data["type"] == "proposals"
        assert [entry["wallet_address"] for entry in data["leaderboard"]] == [WALLET_B, WALLET_A]
        assert data["leaderboard"][0]["rank"] == 1
        assert data["leaderboard"][0]["proposals_created"] == 1

    @pytest.mark.asyncio
    async def test_invalid_leaderboard_type(self, client: AsyncClient) -> None:
        """Test that an unknown leaderboard type is a validation error."""
        response = await client.get("/api/dao/leaderboard", params={"type": "followers"})

        assert response.status_code == 400
        assert response.json()["details"][0]["field"] == "type"


@pytest.mark.contract
class TestProposalsContract:
    """Contract tests for /api/dao/proposals."""

    @pytest.mark.asyncio
    async def test_create_proposal(self, client: AsyncClient, discord_notifier: MagicMock) -> None:
        """Test that a member's proposal is submitted and announced."""
        await register(client, WALLET_A)

        response = await client.post("/api/dao/proposals", json=proposal_payload())

        assert response.status_code == 201
        proposal = response.json()["proposal"]
        assert proposal["status"] == "submitted"
        assert proposal["funding_goal"] == 5000.0
        assert proposal["funding_currency"] == "USD"
        assert proposal["tags"] == ["studio", "vocals"]
        assert proposal["submitted_at"] is not None
        discord_notifier.notify_proposal_created.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_non_member_cannot_propose(self, client: AsyncClient, discord_notifier: MagicMock) -> None:
        """Test that proposals from non-members are forbidden."""
        response = await client.post("/api/dao/proposals", json=proposal_payload())

        assert response.status_code == 403
        assert response.json()["type"] == "not_eligible"
        discord_notifier.notify_proposal_created.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_proposal(self, client: AsyncClient) -> None:
        """Test that short titles and past deadlines are reported."""
        response = await client.post(
            "/api/dao/proposals",
            json=proposal_payload(title="Short", votingEndsAt=(utcnow() - timedelta(days=1)).isoformat()),
        )

        assert response.status_code == 400
        fields = {detail["field"] for detail in response.json()["details"]}
        assert {"title", "votingEndsAt"} <= fields

    @pytest.mark.asyncio
    async def test_list_and_get(self, client: AsyncClient) -> None:
        """Test listing filters and the proposal detail with results."""
        await register(client, WALLET_A)
        opened = await open_proposal(client)
        await client.post(
            "/api/dao/proposals",
            json=proposal_payload(title="Host a listening party", proposalType="Community Event", tags=["events"]),
        )

        everything = await client.get("/api/dao/proposals")
        voting = await client.get("/api/dao/proposals", params={"status": "active_voting"})
        tagged = await client.get("/api/dao/proposals", params={"tags": "events, nothing"})
        paged = await client.get("/api/dao/proposals", params={"limit": 1})
        detail = await client.get(f"/api/dao/proposals/{opened['id']}")

        assert everything.json()["count"] == 2
        assert [p["id"] for p in voting.json()["proposals"]] == [opened["id"]]
        assert tagged.json()["proposals"][0]["title"] == "Host a listening party"
        assert paged.json()["count"] == 2
        assert len(paged.json()["proposals"]) == 1
        assert detail.json()["results"]["result"] == "quorum_not_met"

    @pytest.mark.asyncio
    async def test_invalid_sort(self, client: AsyncClient) -> None:
        """Test that unknown sort keys are rejected."""
        response = await client.get("/api/dao/proposals", params={"sortBy": "random"})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_close_voting_passes(self, client: AsyncClient, discord_notifier: MagicMock) -> None:
        """Test that a proposal with full support closes as approved."""
        await register(client, WALLET_A, tier="Gold")
        proposal = await open_proposal(client)
        await client.post("/api/dao/vote", json=vote_payload(proposal["id"]))

        response = await act(client, proposal["id"], "close_voting")

        assert response.status_code == 200
        data = response.json()
        assert data["proposal"]["status"] == "approved"
        assert data["proposal"]["voting_result"] == "passed"
        assert data["results"]["approval_percentage"] == 100.0
        assert data["results"]["weight_for"] == 3.0
        discord_notifier.notify_proposal_passed.assert_awaited_once()
        discord_notifier.notify_proposal_rejected.assert_not_called()

    @pytest.mark.asyncio
    async def test_close_voting_without_votes_rejects(
        self, client: AsyncClient, discord_notifier: MagicMock
    ) -> None:
        """Test that a proposal without quorum closes as rejected."""
        await register(client, WALLET_A)
        proposal = await open_proposal(client)

        response = await act(client, proposal["id"], "close_voting")

        assert response.json()["proposal"]["status"] == "rejected"
        assert response.json()["results"]["result"] == "quorum_not_met"
        discord_notifier.notify_proposal_rejected.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_invalid_transitions(self, client: AsyncClient) -> None:
        """Test conflicting transitions and unknown actions."""
        await register(client, WALLET_A)
        created = await client.post("/api/dao/proposals", json=proposal_payload())
        proposal_id = created.json()["proposal"]["id"]

        close = await act(client, proposal_id, "close_voting")
        unknown = await act(client, proposal_id, "archive")
        cancel = await act(client, proposal_id, "cancel")

        assert close.status_code == 409
        assert unknown.status_code == 400
        assert unknown.json()["details"][0]["field"] == "action"
        assert cancel.status_code == 200
        assert cancel.json()["proposal"]["status"] == "cancelled"


@pytest.mark.contract
class TestVotingContract:
    """Contract tests for /api/dao/vote."""

    @pytest.mark.asyncio
    async def test_cast_and_check_vote(self, client: AsyncClient) -> None:
        """Test that a vote is recorded with its tier weight."""
        await register(client, WALLET_A, tier="Silver")
        proposal = await open_proposal(client)

        cast = await client.post("/api/dao/vote", json=vote_payload(proposal["id"], vote_type="against"))
        status_response = await client.get(
            "/api/dao/vote", params={"proposalId": proposal["id"], "voterWallet": WALLET_A}
        )

        assert cast.status_code == 201
        vote = cast.json()["vote"]
        assert vote["vote_type"] == "against"
        assert vote["vote_weight"] == 2.0
        assert status_response.json()["hasVoted"] is True
        assert status_response.json()["vote"]["membership_tier_at_vote"] == "Silver"

    @pytest.mark.asyncio
    async def test_duplicate_vote(self, client: AsyncClient) -> None:
        """Test that a second vote from the same wallet conflicts."""
        await register(client, WALLET_A)
        proposal = await open_proposal(client)
        await client.post("/api/dao/vote", json=vote_payload(proposal["id"]))

        response = await client.post("/api/dao/vote", json=vote_payload(proposal["id"], vote_type="against"))

        assert response.status_code == 409
        assert response.json()["error"] == "You have already voted on this proposal"

    @pytest.mark.asyncio
    async def test_vote_on_submitted_proposal(self, client: AsyncClient) -> None:
        """Test that proposals not yet in voting refuse votes."""
        await register(client, WALLET_A)
        created = await client.post("/api/dao/proposals", json=proposal_payload())

        response = await client.post("/api/dao/vote", json=vote_payload(created.json()["proposal"]["id"]))

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_not_voted(self, client: AsyncClient) -> None:
        """Test the vote status of a wallet that has not voted."""
        await register(client, WALLET_A)
        proposal = await open_proposal(client)

        response = await client.get("/api/dao/vote", params={"proposalId": proposal["id"], "voterWallet": WALLET_B})

        assert response.json() == {"success": True, "hasVoted": False, "vote": None}


@pytest.mark.contract
class TestStatsContract:
    """Contract tests for /api/dao/stats."""

    @pytest.mark.asyncio
    async def test_dao_stats(self, client: AsyncClient) -> None:
        """Test DAO-wide statistics."""
        await register(client, WALLET_A)
        await register(client, WALLET_B)
        proposal = await open_proposal(client)
        await client.post("/api/dao/vote", json=vote_payload(proposal["id"]))

        response = await client.get("/api/dao/stats")

        stats = response.json()["stats"]
        assert stats["totalMembers"] == 2
        assert stats["activeProposals"] == 1
        assert stats["totalVotesCast"] == 1
        assert stats["totalFundingRequested"] == 5000.0
        assert stats["averageVoterParticipation"] == 50.0
        assert stats["membersByTier"] == {"Bronze": 2, "Silver": 0, "Gold": 0, "Platinum": 0}

    @pytest.mark.asyncio
    async def test_member_stats(self, client: AsyncClient) -> None:
        """Test statistics for one member."""
        await register(client, WALLET_A, tier="Platinum")
        await client.post("/api/dao/proposals", json=proposal_payload())

        response = await client.get("/api/dao/stats", params={"walletAddress": WALLET_A})

        stats = response.json()["stats"]
        assert stats["tierDisplayName"] == "Producer"
        assert stats["voteWeight"] == 5.0
        assert stats["proposalsCreated"] == 1
