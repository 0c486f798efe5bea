"""Unit tests for Discord and email notifications."""

import json
import uuid
from datetime import date, time, timedelta
from types import SimpleNamespace

import httpx
import pytest
import resend

from inrecord.models.base import utcnow
from inrecord.services.discord import (
    COLOR_INFO,
    SENTIMENT_COLORS,
    DiscordNotifier,
    format_amount,
    short_wallet,
    time_remaining,
)
from inrecord.services.email import EmailConfig, EmailService, long_date

WEBHOOK_URL = "https://discord.test/api/webhooks/1/abc"


@pytest.fixture
def webhook(monkeypatch: pytest.MonkeyPatch):
    """Capture webhook posts by routing httpx through a mock transport."""
    sent: list[dict] = []
    status_code = {"value": 204}
    real_client = httpx.AsyncClient

    def handler(request: httpx.Request) -> httpx.Response:
        sent.append({"url": str(request.url), "json": json.loads(request.content)})
        return httpx.Response(status_code["value"])

    def client_factory(*args, **kwargs) -> httpx.AsyncClient:
        return real_client(*args, transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(httpx, "AsyncClient", client_factory)
    return SimpleNamespace(sent=sent, status_code=status_code)


@pytest.fixture
def proposal() -> SimpleNamespace:
    return SimpleNamespace(
        id=uuid.uuid4(),
        title="Fund a new vocal booth",
        description="Build an isolated vocal booth for the studio. " * 10,
        proposal_type="Studio Funding",
        created_by="7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU",
        voting_ends_at=utcnow() + timedelta(days=3),
        funding_goal=5000.0,
        funding_currency="USD",
    )


@pytest.fixture
def digest() -> SimpleNamespace:
    return SimpleNamespace(
        id=uuid.uuid4(),
        week_start=date(2026, 10, 5),
        week_end=date(2026, 10, 11),
        summary_en="A strong week for the label. " * 20,
        sentiment="optimistic",
        highlights=["Two proposals approved"],
        audio_url_en=None,
        audio_duration_seconds=None,
        key_metrics={
            "proposals": {"new": 3, "funded": 1},
            "voting": {"votes_cast": 42, "participation_rate": 0.45},
            "treasury": {"net_change": 250.0},
            "members": {"new_members": 4},
        },
    )


@pytest.fixture
def booking() -> SimpleNamespace:
    return SimpleNamespace(
        id=uuid.uuid4(),
        user_email="artist@example.com",
        user_name="Ada Artist",
        user_phone="+15555550123",
        user_wallet=None,
        room_type="recording",
        session_date=date(2026, 11, 2),
        session_time=time(10, 0),
        duration_hours=3,
        total_cost=225.0,
        status="confirmed",
        dao_funded=False,
        notes=None,
    )


@pytest.mark.unit
class TestDiscordFormatting:
    """Unit tests for Discord message helpers."""

    def test_short_wallet(self) -> None:
        """Test that long wallets are abbreviated."""
        assert short_wallet("7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU") == "7xKXtg...gAsU"
        assert short_wallet("short") == "short"

    def test_time_remaining(self) -> None:
        """Test days-hours, hours-minutes and ended formats."""
        now = utcnow()
        assert time_remaining(now + timedelta(days=2, hours=3, minutes=1), now) == "2d 3h"
        assert time_remaining(now + timedelta(hours=5, minutes=30), now) == "5h 30m"
        assert time_remaining(now - timedelta(minutes=1), now) == "Voting ended"

    def test_format_amount(self) -> None:
        """Test USD and crypto amount formatting."""
        assert format_amount(1234.5) == "$1,234.50"
        assert format_amount(2.5, "SOL") == "2.50 SOL"
        assert format_amount(None) == "N/A"


@pytest.mark.unit
class TestDiscordNotifier:
    """Unit tests for Discord webhook delivery."""

    @pytest.mark.asyncio
    async def test_not_configured(self, monkeypatch: pytest.MonkeyPatch, proposal) -> None:
        """Test that a missing webhook reports failure without raising."""
        monkeypatch.delenv("DISCORD_WEBHOOK_URL", raising=False)
        monkeypatch.delenv("DISCORD_DIGEST_WEBHOOK_URL", raising=False)

        result = await DiscordNotifier().notify_proposal_created(proposal)

        assert result == {"success": False, "error": "Discord webhook URL not configured"}

    @pytest.mark.asyncio
    async def test_proposal_created_embed(self, webhook, proposal) -> None:
        """Test that new proposals are announced with type, creator and goal."""
        result = await DiscordNotifier(webhook_url=WEBHOOK_URL).notify_proposal_created(proposal)

        assert result == {"success": True}
        payload = webhook.sent[0]["json"]
        embed = payload["embeds"][0]
        assert webhook.sent[0]["url"] == WEBHOOK_URL
        assert payload["username"] == "inRECORD DAO"
        assert embed["title"].endswith("New Proposal: Fund a new vocal booth")
        assert embed["description"].endswith("...")
        assert embed["color"] == COLOR_INFO
        fields = {f["name"]: f["value"] for f in embed["fields"]}
        assert fields["Proposed By"] == "7xKXtg...gAsU"
        assert fields["Funding Goal"] == "$5,000.00"
        assert embed["url"] == f"https://inrecord.io/dao/proposals/{proposal.id}"

    @pytest.mark.asyncio
    async def test_rejected_reason(self, webhook, proposal) -> None:
        """Test that quorum failures are explained in the rejection."""
        results = SimpleNamespace(
            votes_for=1, votes_against=0, votes_abstain=0, approval_percentage=100.0, unique_voters=1,
            result="quorum_not_met",
        )

        await DiscordNotifier(webhook_url=WEBHOOK_URL).notify_proposal_rejected(proposal, results)

        assert webhook.sent[0]["json"]["embeds"][0]["description"] == "Quorum not met"

    @pytest.mark.asyncio
    async def test_webhook_error(self, webhook, proposal) -> None:
        """Test that webhook HTTP errors are reported, not raised."""
        webhook.status_code["value"] = 500

        result = await DiscordNotifier(webhook_url=WEBHOOK_URL).notify_proposal_created(proposal)

        assert result["success"] is False
        assert "500" in result["error"]

    @pytest.mark.asyncio
    async def test_digest_uses_digest_webhook(self, webhook, digest) -> None:
        """Test that digests go to the digest webhook with a sentiment color."""
        notifier = DiscordNotifier(
            webhook_url=WEBHOOK_URL,
            digest_webhook_url="https://discord.test/api/webhooks/2/digest",
            base_url="https://label.test/",
        )

        result = await notifier.send_digest(digest)

        assert result == {"success": True}
        sent = webhook.sent[0]
        embed = sent["json"]["embeds"][0]
        assert sent["url"] == "https://discord.test/api/webhooks/2/digest"
        assert sent["json"]["username"] == "inRECORD Digest Bot"
        assert embed["color"] == SENTIMENT_COLORS["optimistic"]
        assert embed["url"] == "https://label.test/digests/week-2026-10-05"
        fields = {f["name"]: f["value"] for f in embed["fields"]}
        assert fields["💰 Treasury"] == "+$250.00"
        assert fields["📋 Proposals"] == "3 new, 1 funded"
        assert fields["👥 Participation"] == "45.0%"
        assert "🎧 Listen" not in fields

    def test_digest_embed_links_audio(self, digest) -> None:
        """Test that narrated digests link the English audio with its length."""
        digest.audio_url_en = "https://storage.inrecord.test/audio/digests/2026-10-05-en.mp3"
        digest.audio_duration_seconds = 125

        embed = DiscordNotifier(webhook_url=WEBHOOK_URL).build_digest_embed(digest)

        listen = embed["fields"][-1]
        assert listen["name"] == "🎧 Listen"
        assert listen["value"] == f"[English audio]({digest.audio_url_en}) (2:05)"


@pytest.mark.unit
class TestEmailService:
    """Unit tests for Resend email delivery."""

    @pytest.fixture
    def configured(self, monkeypatch: pytest.MonkeyPatch):
        """Configure Resend and capture sent messages."""
        monkeypatch.setenv("RESEND_API_KEY", "re_test_key")
        monkeypatch.setenv("FROM_EMAIL", "bookings@inrecord.test")
        monkeypatch.setenv("ADMIN_EMAIL", "admin@inrecord.test")
        monkeypatch.setenv("DIGEST_SUBSCRIBERS", "fan1@example.com, fan2@example.com,")
        sent: list[dict] = []

        def fake_send(params: dict) -> dict:
            sent.append(params)
            return {"id": f"email_{len(sent)}"}

        monkeypatch.setattr(resend.Emails, "send", fake_send)
        return sent

    def test_long_date(self) -> None:
        """Test the long date format used in emails."""
        assert long_date(date(2026, 11, 2)) == "November 2, 2026"

    def test_subscribers_parsed(self, configured) -> None:
        """Test that subscriber lists ignore blanks and whitespace."""
        assert EmailConfig().subscribers == ["fan1@example.com", "fan2@example.com"]

    @pytest.mark.asyncio
    async def test_not_configured(self, monkeypatch: pytest.MonkeyPatch, booking) -> None:
        """Test that missing credentials report failure without sending."""
        monkeypatch.delenv("RESEND_API_KEY", raising=False)

        result = await EmailService().send_booking_confirmation(booking)

        assert result["success"] is False
        assert result["error"] == "Email service not configured"

    @pytest.mark.asyncio
    async def test_booking_confirmation(self, configured, booking) -> None:
        """Test that confirmations are rendered and sent to the customer."""
        result = await EmailService().send_booking_confirmation(booking)

        assert result == {"success": True, "provider": "resend", "message_id": "email_1"}
        message = configured[0]
        assert message["to"] == ["artist@example.com"]
        assert message["from"] == "inRECORD Studio <bookings@inrecord.test>"
        assert message["subject"] == "Studio Booking Confirmation - inRECORD"
        assert "November 2, 2026" in message["html"]
        assert "Recording" in message["html"]
        assert "225.00" in message["html"]

    @pytest.mark.asyncio
    async def test_admin_notification(self, configured, booking) -> None:
        """Test that admins are told about new bookings."""
        await EmailService().send_admin_notification(booking)

        message = configured[0]
        assert message["to"] == ["admin@inrecord.test"]
        assert message["subject"] == "New Studio Booking: recording - 2026-11-02"
        assert "Ada Artist" in message["html"]

    @pytest.mark.asyncio
    async def test_status_update(self, configured, booking) -> None:
        """Test that status changes use the matching subject."""
        booking.status = "cancelled"

        result = await EmailService().send_status_update(booking, "confirmed")

        assert result["success"] is True
        assert configured[0]["subject"] == "Booking Cancelled - inRECORD"

    @pytest.mark.asyncio
    async def test_status_update_skips_pending(self, configured, booking) -> None:
        """Test that statuses without a message are skipped."""
        booking.status = "pending"

        result = await EmailService().send_status_update(booking, "confirmed")

        assert result == {"success": True, "skipped": True}
        assert configured == []

    @pytest.mark.asyncio
    async def test_digest_newsletter(self, configured, digest) -> None:
        """Test that the newsletter goes to every subscriber with tags."""
        result = await EmailService().send_digest_newsletter(digest)

        assert result["success"] is True
        assert result["recipient_count"] == 2
        message = configured[0]
        assert message["to"] == ["fan1@example.com", "fan2@example.com"]
        assert {"name": "week", "value": "2026-10-05"} in message["tags"]
        assert "Two proposals approved" in message["html"]

    @pytest.mark.asyncio
    async def test_digest_without_subscribers(self, configured, monkeypatch: pytest.MonkeyPatch, digest) -> None:
        """Test that an empty subscriber list skips sending."""
        monkeypatch.setenv("DIGEST_SUBSCRIBERS", "")

        result = await EmailService().send_digest_newsletter(digest)

        assert result == {"success": True, "skipped": True, "recipient_count": 0}
        assert configured == []

    @pytest.mark.asyncio
    async def test_provider_error(self, configured, monkeypatch: pytest.MonkeyPatch, booking) -> None:
        """Test that Resend errors are reported, not raised."""

        def failing_send(params: dict) -> dict:
            raise RuntimeError("domain not verified")

        monkeypatch.setattr(resend.Emails, "send", failing_send)

        result = await EmailService().send_booking_confirmation(booking)

        assert result == {"success": False, "provider": "resend", "error": "domain not verified"}
