"""Discord webhook notifications for DAO governance events and weekly digests."""

import os
from datetime import datetime

import httpx
import structlog

from inrecord.models.base import ensure_utc, utcnow
from inrecord.models.digest import DEFAULT_BASE_URL, DigestDB, digest_url, format_duration

logger = structlog.get_logger(__name__)

COLOR_SUCCESS = 0x00FF00
COLOR_INFO = 0x00D4FF
COLOR_ERROR = 0xFF0000

SENTIMENT_COLORS = {
    "optimistic": 0x00FF00,
    "stable": 0x0099FF,
    "critical": 0xFF0000,
    "mixed": 0xFFAA00,
}

DAO_USERNAME = "inRECORD DAO"
DIGEST_USERNAME = "inRECORD Digest Bot"


def short_wallet(wallet: str) -> str:
    if len(wallet) <= 10:
        return wallet
    return f"{wallet[:6]}...{wallet[-4:]}"


def time_remaining(ends_at: datetime, now: datetime | None = None) -> str:
    """Human readable time left until ``ends_at``."""
    remaining = ensure_utc(ends_at) - (now or utcnow())
    seconds = int(remaining.total_seconds())
    if seconds <= 0:
        return "Voting ended"
    days, rest = divmod(seconds, 86400)
    hours = rest // 3600
    if days:
        return f"{days}d {hours}h"
    return f"{hours}h {(rest % 3600) // 60}m"


def format_amount(amount: float | None, currency: str | None = None) -> str:
    if amount is None:
        return "N/A"
    if currency and currency != "USD":
        return f"{amount:,.2f} {currency}"
    return f"${amount:,.2f}"


class DiscordNotifier:
    """Posts embeds to Discord webhooks.

    Every send returns ``{"success": bool, ...}`` instead of raising so
    that callers can fire notifications without affecting their own
    response.
    """

    def __init__(
        self,
        webhook_url: str | None = None,
        digest_webhook_url: str | None = None,
        base_url: str | None = None,
        timeout: float = 10.0,
    ):
        self.webhook_url = webhook_url or os.getenv("DISCORD_WEBHOOK_URL")
        self.digest_webhook_url = (
            digest_webhook_url or os.getenv("DISCORD_DIGEST_WEBHOOK_URL") or self.webhook_url
        )
        self.base_url = (base_url or os.getenv("BASE_URL", DEFAULT_BASE_URL)).rstrip("/")
        self.timeout = timeout

    async def send(self, payload: dict, webhook_url: str | None = None) -> dict:
        """Post a raw webhook payload."""
        url = webhook_url or self.webhook_url
        if not url:
            logger.warning("discord_webhook_not_configured")
            return {"success": False, "error": "Discord webhook URL not configured"}

        try:
            async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout)) as client:
                response = await client.post(url, json=payload)
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("discord_webhook_failed", error=str(e))
            return {"success": False, "error": str(e)}

        return {"success": True}

    def _proposal_url(self, proposal) -> str:
        return f"{self.base_url}/dao/proposals/{proposal.id}"

    async def notify_proposal_created(self, proposal) -> dict:
        embed = {
            "title": f"📝 New Proposal: {proposal.title}",
            "description": proposal.description[:300]
            + ("..." if len(proposal.description) > 300 else ""),
            "url": self._proposal_url(proposal),
            "color": COLOR_INFO,
            "fields": [
                {"name": "Type", "value": proposal.proposal_type, "inline": True},
                {"name": "Proposed By", "value": short_wallet(proposal.created_by), "inline": True},
                {"name": "Time Remaining", "value": time_remaining(proposal.voting_ends_at), "inline": True},
            ],
            "timestamp": utcnow().isoformat(),
            "footer": {"text": "inRECORD DAO Governance"},
        }
        if proposal.funding_goal:
            embed["fields"].append(
                {
                    "name": "Funding Goal",
                    "value": format_amount(proposal.funding_goal, proposal.funding_currency),
                    "inline": True,
                }
            )

        return await self.send(
            {
                "username": DAO_USERNAME,
                "content": "@here A new proposal has been submitted to the DAO!",
                "embeds": [embed],
            }
        )

    def _result_fields(self, results) -> list[dict]:
        return [
            {"name": "Votes For", "value": str(results.votes_for), "inline": True},
            {"name": "Votes Against", "value": str(results.votes_against), "inline": True},
            {
                "name": "Total Votes",
                "value": str(results.votes_for + results.votes_against + results.votes_abstain),
                "inline": True,
            },
            {"name": "Approval Rate", "value": f"{results.approval_percentage:.1f}%", "inline": True},
            {"name": "Unique Voters", "value": str(results.unique_voters), "inline": True},
        ]

    async def notify_proposal_passed(self, proposal, results) -> dict:
        return await self.send(
            {
                "username": DAO_USERNAME,
                "content": "@everyone A proposal has passed!",
                "embeds": [
                    {
                        "title": f"✅ Proposal Passed: {proposal.title}",
                        "url": self._proposal_url(proposal),
                        "color": COLOR_SUCCESS,
                        "fields": self._result_fields(results),
                        "timestamp": utcnow().isoformat(),
                        "footer": {"text": "inRECORD DAO Governance"},
                    }
                ],
            }
        )

    async def notify_proposal_rejected(self, proposal, results) -> dict:
        reason = "Quorum not met" if results.result == "quorum_not_met" else "Approval threshold not reached"
        return await self.send(
            {
                "username": DAO_USERNAME,
                "embeds": [
                    {
                        "title": f"❌ Proposal Rejected: {proposal.title}",
                        "description": reason,
                        "url": self._proposal_url(proposal),
                        "color": COLOR_ERROR,
                        "fields": self._result_fields(results),
                        "timestamp": utcnow().isoformat(),
                        "footer": {"text": "inRECORD DAO Governance"},
                    }
                ],
            }
        )

    def build_digest_embed(self, digest: DigestDB) -> dict:
        metrics = digest.key_metrics or {}
        proposals = metrics.get("proposals", {})
        voting = metrics.get("voting", {})
        treasury = metrics.get("treasury", {})
        members = metrics.get("members", {})

        summary = digest.summary_en or ""
        description = summary[:200] + ("..." if len(summary) > 200 else "")
        net_change = treasury.get("net_change", 0) or 0
        sentiment = digest.sentiment or "stable"

        fields = [
            {
                "name": "💰 Treasury",
                "value": f"{'+' if net_change >= 0 else ''}{format_amount(net_change)}",
                "inline": True,
            },
            {
                "name": "📋 Proposals",
                "value": f"{proposals.get('new', 0)} new, {proposals.get('funded', 0)} funded",
                "inline": True,
            },
            {"name": "🗳️ Votes Cast", "value": str(voting.get("votes_cast", 0)), "inline": True},
            {"name": "📈 Sentiment", "value": sentiment.capitalize(), "inline": True},
            {
                "name": "👥 Participation",
                "value": f"{(voting.get('participation_rate', 0) or 0) * 100:.1f}%",
                "inline": True,
            },
            {"name": "🆕 New Members", "value": str(members.get("new_members", 0)), "inline": True},
        ]
        if digest.audio_url_en:
            listen = f"[English audio]({digest.audio_url_en})"
            if digest.audio_duration_seconds:
                listen += f" ({format_duration(digest.audio_duration_seconds)})"
            fields.append({"name": "🎧 Listen", "value": listen, "inline": False})

        return {
            "title": f"📊 Weekly DAO Digest - Week of {digest.week_start} - {digest.week_end}",
            "description": description,
            "url": digest_url(digest.week_start, self.base_url),
            "color": SENTIMENT_COLORS.get(sentiment, SENTIMENT_COLORS["stable"]),
            "fields": fields,
            "timestamp": utcnow().isoformat(),
            "footer": {"text": "inRECORD DAO - AI Weekly Digest"},
        }

    async def send_digest(self, digest: DigestDB) -> dict:
        return await self.send(
            {"username": DIGEST_USERNAME, "embeds": [self.build_digest_embed(digest)]},
            webhook_url=self.digest_webhook_url,
        )
