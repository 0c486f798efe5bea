"""Unit tests for digest distribution tracking."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from inrecord.digest.distributor import DigestDistributor
from inrecord.models.digest import DigestDistributionDB


async def distribution_rows(session: AsyncSession, digest_id) -> dict[str, DigestDistributionDB]:
    result = await session.execute(select(DigestDistributionDB).where(DigestDistributionDB.digest_id == digest_id))
    return {row.channel: row for row in result.scalars().all()}


@pytest.mark.unit
class TestDigestDistributor:
    """Unit tests for DigestDistributor."""

    @pytest.mark.asyncio
    async def test_all_channels_sent(
        self,
        async_db_session: AsyncSession,
        digest_factory,
        discord_notifier: MagicMock,
        email_service: MagicMock,
    ) -> None:
        """Test that successful sends are recorded and flag the digest."""
        digest = await digest_factory()
        distributor = DigestDistributor(async_db_session, discord_notifier, email_service)

        outcome = await distributor.distribute(digest)

        assert outcome == {"success": True, "results": {"discord": {"success": True}, "email": {"success": True}}}
        assert digest.discord_sent is True
        assert digest.email_sent is True

        rows = await distribution_rows(async_db_session, digest.id)
        assert rows["discord"].status == "sent"
        assert rows["discord"].sent_at is not None
        assert rows["email"].recipient_count == 2
        assert rows["email"].retry_count == 0

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_other_channels(
        self,
        async_db_session: AsyncSession,
        digest_factory,
        discord_notifier: MagicMock,
        email_service: MagicMock,
    ) -> None:
        """Test that one failing channel is recorded while the rest still send."""
        digest = await digest_factory()
        discord_notifier.send_digest = AsyncMock(return_value={"success": False, "error": "HTTP 500"})

        outcome = await DigestDistributor(async_db_session, discord_notifier, email_service).distribute(digest)

        assert outcome["success"] is False
        assert outcome["results"]["discord"] == {"success": False, "error": "HTTP 500"}
        assert outcome["results"]["email"] == {"success": True}
        assert digest.discord_sent is False

        rows = await distribution_rows(async_db_session, digest.id)
        assert rows["discord"].status == "failed"
        assert rows["discord"].error_message == "HTTP 500"
        assert rows["discord"].sent_at is None
        assert rows["email"].status == "sent"

    @pytest.mark.asyncio
    async def test_exception_is_recorded(
        self,
        async_db_session: AsyncSession,
        digest_factory,
        discord_notifier: MagicMock,
        email_service: MagicMock,
    ) -> None:
        """Test that a raising channel becomes a failed distribution."""
        digest = await digest_factory()
        email_service.send_digest_newsletter = AsyncMock(side_effect=RuntimeError("smtp down"))

        outcome = await DigestDistributor(async_db_session, discord_notifier, email_service).distribute(
            digest, channels=("email",)
        )

        assert outcome == {"success": False, "results": {"email": {"success": False, "error": "smtp down"}}}
        rows = await distribution_rows(async_db_session, digest.id)
        assert rows["email"].status == "failed"

    @pytest.mark.asyncio
    async def test_redistribution_increments_retry_count(
        self,
        async_db_session: AsyncSession,
        digest_factory,
        discord_notifier: MagicMock,
        email_service: MagicMock,
    ) -> None:
        """Test that sending again updates the existing row."""
        digest = await digest_factory()
        distributor = DigestDistributor(async_db_session, discord_notifier, email_service)
        discord_notifier.send_digest = AsyncMock(return_value={"success": False, "error": "timeout"})
        await distributor.distribute(digest, channels=("discord",))

        discord_notifier.send_digest = AsyncMock(return_value={"success": True})
        await distributor.distribute(digest, channels=("discord",))

        rows = await distribution_rows(async_db_session, digest.id)
        assert len(rows) == 1
        assert rows["discord"].status == "sent"
        assert rows["discord"].retry_count == 1
        assert rows["discord"].error_message is None

    @pytest.mark.asyncio
    async def test_skipped_email_does_not_flag_digest(
        self,
        async_db_session: AsyncSession,
        digest_factory,
        discord_notifier: MagicMock,
        email_service: MagicMock,
    ) -> None:
        """Test that an email send without subscribers is not marked as sent."""
        digest = await digest_factory()
        email_service.send_digest_newsletter = AsyncMock(
            return_value={"success": True, "skipped": True, "recipient_count": 0}
        )

        outcome = await DigestDistributor(async_db_session, discord_notifier, email_service).distribute(
            digest, channels=("email",)
        )

        assert outcome["success"] is True
        assert digest.email_sent is False

    @pytest.mark.asyncio
    async def test_rss_twitter_and_unknown_channels(
        self,
        async_db_session: AsyncSession,
        digest_factory,
        discord_notifier: MagicMock,
        email_service: MagicMock,
    ) -> None:
        """Test RSS success, Twitter not implemented and untracked unknown channels."""
        digest = await digest_factory()

        outcome = await DigestDistributor(async_db_session, discord_notifier, email_service).distribute(
            digest, channels=("rss", "twitter", "fax")
        )

        assert outcome["results"] == {
            "rss": {"success": True},
            "twitter": {"success": False, "error": "Not implemented"},
            "fax": {"success": False, "error": "Unknown channel"},
        }
        rows = await distribution_rows(async_db_session, digest.id)
        assert set(rows) == {"rss", "twitter"}
        assert rows["rss"].status == "sent"
        assert rows["twitter"].status == "failed"
        discord_notifier.send_digest.assert_not_called()
