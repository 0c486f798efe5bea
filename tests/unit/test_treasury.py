"""Unit tests for treasury ledger service."""

import uuid
from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from inrecord.models.base import today_utc
from inrecord.models.treasury import TransactionCreate
from inrecord.services.errors import NotFoundError, ValidationFailedError
from inrecord.services.treasury import TreasuryService, validate_transaction

TREASURY_ADMIN = "treasury-multisig"


def deposit(amount: float, contributor: str, currency: str = "ETH") -> TransactionCreate:
    return TransactionCreate(
        transaction_type="deposit",
        amount=amount,
        currency=currency,
        contributor_wallet=contributor,
        created_by=TREASURY_ADMIN,
    )


def withdrawal(amount: float, recipient: str, currency: str = "ETH") -> TransactionCreate:
    return TransactionCreate(
        transaction_type="withdrawal",
        amount=amount,
        currency=currency,
        recipient_wallet=recipient,
        created_by=TREASURY_ADMIN,
    )


@pytest.mark.unit
class TestValidateTransaction:
    """Unit tests for ledger rule validation."""

    def test_valid_deposit(self, wallets) -> None:
        """Test that a complete deposit has no violations."""
        assert validate_transaction(deposit(1.5, wallets[0])) == []

    def test_reports_every_missing_field(self) -> None:
        """Test that all violations are reported together."""
        errors = validate_transaction(TransactionCreate())
        assert {e["field"] for e in errors} == {"transaction_type", "amount", "created_by"}

    @pytest.mark.parametrize("amount", [0, -5])
    def test_amount_must_be_positive(self, amount: float, wallets) -> None:
        """Test that zero and negative amounts are rejected."""
        errors = validate_transaction(deposit(amount, wallets[0]))
        assert errors == [{"field": "amount", "message": "Amount must be greater than 0"}]

    @pytest.mark.parametrize("transaction_type", ["deposit", "revenue"])
    def test_inflow_needs_contributor(self, transaction_type: str) -> None:
        """Test that inflows require a contributor wallet."""
        errors = validate_transaction(
            TransactionCreate(transaction_type=transaction_type, amount=1, created_by=TREASURY_ADMIN)
        )
        assert [e["field"] for e in errors] == ["contributor_wallet"]

    @pytest.mark.parametrize("transaction_type", ["withdrawal", "grant", "expense"])
    def test_outflow_needs_recipient(self, transaction_type: str) -> None:
        """Test that outflows require a recipient wallet."""
        errors = validate_transaction(
            TransactionCreate(transaction_type=transaction_type, amount=1, created_by=TREASURY_ADMIN)
        )
        assert [e["field"] for e in errors] == ["recipient_wallet"]

    def test_proposal_funding_needs_proposal(self, wallets) -> None:
        """Test that proposal funding must name its proposal."""
        errors = validate_transaction(
            TransactionCreate(
                transaction_type="proposal_funding",
                amount=1,
                recipient_wallet=wallets[0],
                created_by=TREASURY_ADMIN,
            )
        )
        assert [e["field"] for e in errors] == ["proposal_id"]


@pytest.mark.unit
class TestRecordTransaction:
    """Unit tests for appending ledger entries."""

    @pytest.mark.asyncio
    async def test_invalid_transaction_raises_with_details(self, async_db_session: AsyncSession) -> None:
        """Test that invalid entries raise ValidationFailedError listing violations."""
        with pytest.raises(ValidationFailedError) as exc_info:
            await TreasuryService(async_db_session).record_transaction(TransactionCreate(amount=-1))

        fields = {d["field"] for d in exc_info.value.details}
        assert fields == {"transaction_type", "amount", "created_by"}

    @pytest.mark.asyncio
    async def test_record_defaults(self, async_db_session: AsyncSession, wallets) -> None:
        """Test that recorded entries default to ETH and empty metadata."""
        transaction = await TreasuryService(async_db_session).record_transaction(
            TransactionCreate(
                transaction_type="deposit",
                amount=2.5,
                contributor_wallet=wallets[0],
                created_by=TREASURY_ADMIN,
            )
        )

        assert isinstance(transaction.id, uuid.UUID)
        assert transaction.currency == "ETH"
        assert transaction.transaction_metadata == {}

    @pytest.mark.asyncio
    async def test_unknown_proposal(self, async_db_session: AsyncSession, wallets) -> None:
        """Test that linking an unknown proposal raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await TreasuryService(async_db_session).fund_proposal(
                uuid.uuid4(), amount=10, recipient_wallet=wallets[0], created_by=TREASURY_ADMIN
            )

    @pytest.mark.asyncio
    async def test_funding_goal_reached_marks_funded(
        self, async_db_session: AsyncSession, member_factory, proposal_factory, wallets
    ) -> None:
        """Test that an approved proposal reaching its goal becomes funded."""
        creator = await member_factory(wallets[0])
        proposal = await proposal_factory(status="approved", funding_goal=5000.0)
        service = TreasuryService(async_db_session)

        await service.fund_proposal(proposal.id, 2000, recipient_wallet=wallets[0], created_by=TREASURY_ADMIN)
        assert proposal.status == "approved"
        assert proposal.current_funding == 2000

        await service.fund_proposal(proposal.id, 3000, recipient_wallet=wallets[0], created_by=TREASURY_ADMIN)
        assert proposal.status == "funded"
        assert proposal.current_funding == 5000
        assert creator.total_funding_received == 5000

    @pytest.mark.asyncio
    async def test_funding_does_not_skip_voting(
        self, async_db_session: AsyncSession, member_factory, proposal_factory, wallets
    ) -> None:
        """Test that funding a proposal still in voting leaves its status."""
        await member_factory(wallets[0])
        proposal = await proposal_factory(funding_goal=100.0)

        await TreasuryService(async_db_session).fund_proposal(
            proposal.id, 500, recipient_wallet=wallets[0], created_by=TREASURY_ADMIN
        )

        assert proposal.status == "active_voting"
        assert proposal.current_funding == 500


@pytest.mark.unit
class TestBalances:
    """Unit tests for balances and summaries."""

    @pytest.mark.asyncio
    async def test_balance_is_inflow_minus_outflow(self, async_db_session: AsyncSession, wallets) -> None:
        """Test that the balance nets outflows against inflows per currency."""
        service = TreasuryService(async_db_session)
        await service.record_transaction(deposit(10, wallets[0]))
        await service.record_transaction(withdrawal(3, wallets[1]))
        await service.record_transaction(deposit(100, wallets[0], currency="USDC"))

        assert await service.get_balance() == 7.0
        assert await service.get_balance("USDC") == 100.0
        assert await service.get_balance("SOL") == 0.0

    @pytest.mark.asyncio
    async def test_summary(self, async_db_session: AsyncSession, wallets) -> None:
        """Test the treasury summary totals and counts."""
        service = TreasuryService(async_db_session)
        await service.record_transaction(deposit(10, wallets[0]))
        await service.record_transaction(deposit(5, wallets[1]))
        await service.record_transaction(withdrawal(4, wallets[2]))

        summary = await service.get_treasury_summary()

        assert summary["total_inflow"] == 15.0
        assert summary["total_outflow"] == 4.0
        assert summary["current_balance"] == 11.0
        assert summary["unique_contributors"] == 2
        assert summary["unique_recipients"] == 1
        assert summary["total_transactions"] == 3
        assert summary["last_transaction_date"] is not None

    @pytest.mark.asyncio
    async def test_empty_summary(self, async_db_session: AsyncSession) -> None:
        """Test that an empty ledger summarizes to zeros."""
        summary = await TreasuryService(async_db_session).get_treasury_summary()

        assert summary["current_balance"] == 0.0
        assert summary["total_transactions"] == 0
        assert summary["last_transaction_date"] is None


@pytest.mark.unit
class TestListingAndAnalytics:
    """Unit tests for ledger listing and analytics."""

    @pytest.mark.asyncio
    async def test_list_filters(self, async_db_session: AsyncSession, wallets) -> None:
        """Test filtering by type, currency and date range."""
        service = TreasuryService(async_db_session)
        await service.record_transaction(deposit(10, wallets[0]))
        await service.record_transaction(withdrawal(3, wallets[1]))
        await service.record_transaction(deposit(50, wallets[0], currency="USDC"))

        assert len(await service.list_transactions()) == 3
        assert len(await service.list_transactions(transaction_type="deposit")) == 2
        assert len(await service.list_transactions(currency="USDC")) == 1
        assert len(await service.list_transactions(start_date=today_utc(), end_date=today_utc())) == 3
        assert await service.list_transactions(end_date=today_utc() - timedelta(days=1)) == []
        assert len(await service.list_transactions(limit=2)) == 2

    @pytest.mark.asyncio
    async def test_list_newest_first(self, async_db_session: AsyncSession, wallets) -> None:
        """Test that the ledger lists newest entries first."""
        service = TreasuryService(async_db_session)
        first = await service.record_transaction(deposit(1, wallets[0]))
        second = await service.record_transaction(deposit(2, wallets[0]))

        transactions = await service.list_transactions()
        assert [t.id for t in transactions] == [second.id, first.id]

    @pytest.mark.asyncio
    async def test_balance_history_and_volume(self, async_db_session: AsyncSession, wallets) -> None:
        """Test running balance and daily volume over the window."""
        service = TreasuryService(async_db_session)
        await service.record_transaction(deposit(10, wallets[0]))
        await service.record_transaction(withdrawal(4, wallets[1]))

        history = await service.get_balance_history(days=30)
        assert [point["balance"] for point in history] == [10.0, 6.0]
        assert [point["type"] for point in history] == ["deposit", "withdrawal"]

        volume = await service.get_transaction_volume(days=30)
        assert len(volume) == 1
        assert volume[0]["inflow"] == 10.0
        assert volume[0]["outflow"] == 4.0
        assert volume[0]["net"] == 6.0
        assert volume[0]["count"] == 2

    @pytest.mark.asyncio
    async def test_top_contributors(self, async_db_session: AsyncSession, wallets) -> None:
        """Test contributors ranked by total inflow."""
        service = TreasuryService(async_db_session)
        await service.record_transaction(deposit(1, wallets[0]))
        await service.record_transaction(deposit(2, wallets[0]))
        await service.record_transaction(deposit(5, wallets[1]))

        contributors = await service.get_top_contributors()

        assert [c["contributor_wallet"] for c in contributors] == [wallets[1], wallets[0]]
        assert contributors[1]["total_contributed"] == 3.0
        assert contributors[1]["contribution_count"] == 2

    @pytest.mark.asyncio
    async def test_analytics(
        self, async_db_session: AsyncSession, member_factory, proposal_factory, wallets
    ) -> None:
        """Test DAO funding roll-up and distribution by proposal type."""
        await member_factory(wallets[0])
        studio = await proposal_factory(status="approved", funding_goal=1000.0)
        await proposal_factory(proposal_type="Artist Grant", funding_goal=3000.0)
        service = TreasuryService(async_db_session)
        await service.fund_proposal(studio.id, 1000, recipient_wallet=wallets[0], created_by=TREASURY_ADMIN)

        analytics = await service.get_analytics()

        dao = analytics["dao"]
        assert dao["total_proposals"] == 2
        assert dao["funded_count"] == 1
        assert dao["active_count"] == 1
        assert dao["total_raised"] == 1000.0
        assert dao["funding_rate"] == 25.0
        assert dao["total_members"] == 1

        distribution = {d["proposal_type"]: d for d in analytics["funding_distribution"]}
        assert distribution["Studio Funding"]["percentage"] == 100.0
        assert distribution["Artist Grant"]["total_funding"] == 0.0
        assert analytics["treasury"]["total_outflow"] == 1000.0
