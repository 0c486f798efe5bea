"""Publishes a digest to its channels and records each outcome."""

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from inrecord.models.base import utcnow
from inrecord.models.digest import DigestDB, DigestDistributionDB, DistributionChannel, DistributionStatus
from inrecord.services.discord import DiscordNotifier
from inrecord.services.email import EmailService

logger = structlog.get_logger(__name__)

DEFAULT_CHANNELS = (DistributionChannel.DISCORD.value, DistributionChannel.EMAIL.value)


class DigestDistributor:
    """Sends a digest to Discord, email and RSS.

    Every channel is attempted; failures are recorded in
    ``digest_distributions`` and never stop the remaining channels.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        discord: DiscordNotifier | None = None,
        email: EmailService | None = None,
    ):
        self.db_session = db_session
        self.discord = discord or DiscordNotifier()
        self.email = email or EmailService()

    async def _send(self, digest: DigestDB, channel: str) -> dict:
        if channel == DistributionChannel.DISCORD.value:
            result = await self.discord.send_digest(digest)
            if result["success"]:
                digest.discord_sent = True
            return result

        if channel == DistributionChannel.EMAIL.value:
            result = await self.email.send_digest_newsletter(digest)
            if result["success"] and not result.get("skipped"):
                digest.email_sent = True
            return result

        if channel == DistributionChannel.RSS.value:
            # Served from the published archive
            return {"success": True}

        if channel == DistributionChannel.TWITTER.value:
            return {"success": False, "error": "Not implemented"}

        return {"success": False, "error": "Unknown channel"}

    async def track(
        self,
        digest_id,
        channel: str,
        status: str,
        error_message: str | None = None,
        recipient_count: int = 0,
    ) -> DigestDistributionDB:
        """Upsert the distribution row for ``(digest_id, channel)``."""
        result = await self.db_session.execute(
            select(DigestDistributionDB).where(
                DigestDistributionDB.digest_id == digest_id,
                DigestDistributionDB.channel == channel,
            )
        )
        record = result.scalar_one_or_none()
        if record is None:
            record = DigestDistributionDB(digest_id=digest_id, channel=channel, retry_count=0)
            self.db_session.add(record)
        else:
            record.retry_count = (record.retry_count or 0) + 1

        record.status = status
        record.error_message = error_message
        record.recipient_count = recipient_count
        record.sent_at = utcnow() if status == DistributionStatus.SENT.value else None
        return record

    async def distribute(self, digest: DigestDB, channels=DEFAULT_CHANNELS) -> dict:
        """Send ``digest`` to ``channels``.

        Returns:
            ``{"success": bool, "results": {channel: {"success", "error"?}}}``
        """
        results = {}
        for channel in channels:
            try:
                outcome = await self._send(digest, channel)
            except Exception as e:
                logger.error("digest_channel_error", digest_id=str(digest.id), channel=channel, error=str(e))
                outcome = {"success": False, "error": str(e)}
            if outcome["success"]:
                await self.track(
                    digest.id,
                    channel,
                    DistributionStatus.SENT.value,
                    recipient_count=outcome.get("recipient_count", 0),
                )
                results[channel] = {"success": True}
            else:
                error = outcome.get("error", "Unknown error")
                logger.warning("digest_distribution_failed", digest_id=str(digest.id), channel=channel, error=error)
                if channel in {c.value for c in DistributionChannel}:
                    await self.track(digest.id, channel, DistributionStatus.FAILED.value, error_message=error)
                results[channel] = {"success": False, "error": error}

        await self.db_session.commit()

        success = all(r["success"] for r in results.values())
        logger.info("digest_distributed", digest_id=str(digest.id), success=success, channels=list(results))
        return {"success": success, "results": results}
