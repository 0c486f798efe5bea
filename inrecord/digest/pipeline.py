"""Weekly digest run: statistics, generation, audio, distribution and publishing."""

import time
from datetime import date

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from inrecord.digest.distributor import DigestDistributor
from inrecord.digest.generator import DigestGenerator
from inrecord.digest.text_to_speech import TextToSpeechService
from inrecord.digest.weekly_stats import calculate_weekly_stats, generate_highlights, get_funded_proposal_titles
from inrecord.models.base import utcnow
from inrecord.models.digest import DigestDB, GeneratedDigest, digest_url

logger = structlog.get_logger(__name__)

AUDIO_FIELDS = ("audio_url_en", "audio_url_fr", "audio_url_pt", "audio_duration_seconds")


async def get_digest_for_week(db_session: AsyncSession, week_start: date) -> DigestDB | None:
    result = await db_session.execute(select(DigestDB).where(DigestDB.week_start == week_start))
    return result.scalar_one_or_none()


async def list_published_digests(
    db_session: AsyncSession, limit: int = 10, offset: int = 0, sentiment: str | None = None
) -> tuple[list[DigestDB], int]:
    """Published digests, newest week first.

    Returns:
        Tuple of (page of digests, total published count)
    """
    query = select(DigestDB).where(DigestDB.published.is_(True))
    if sentiment:
        query = query.where(DigestDB.sentiment == sentiment)

    total = (await db_session.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0
    result = await db_session.execute(query.order_by(DigestDB.week_start.desc()).limit(limit).offset(offset))
    return list(result.scalars().all()), total


async def get_latest_digest(db_session: AsyncSession) -> DigestDB | None:
    digests, _ = await list_published_digests(db_session, limit=1)
    return digests[0] if digests else None


class DigestPipeline:
    """Produces and publishes the digest for one week.

    Audio and distribution failures are logged and leave the digest
    saved; only statistics or summary generation failures propagate.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        generator: DigestGenerator,
        tts: TextToSpeechService,
        distributor: DigestDistributor | None = None,
    ):
        self.db_session = db_session
        self.generator = generator
        self.tts = tts
        self.distributor = distributor or DigestDistributor(db_session)

    async def save(self, generated: GeneratedDigest, week_start: date, week_end: date) -> DigestDB:
        """Insert the week's digest, or overwrite the existing row in place."""
        digest = await get_digest_for_week(self.db_session, week_start)
        if digest is None:
            digest = DigestDB(week_start=week_start)
            self.db_session.add(digest)
        else:
            for field in AUDIO_FIELDS:
                setattr(digest, field, None)
            digest.published = False
            digest.published_at = None
            digest.discord_sent = False
            digest.email_sent = False

        content = generated.model_dump(mode="json")
        digest.week_end = week_end
        digest.summary_en = content["summary_en"]
        digest.summary_fr = content["summary_fr"]
        digest.summary_pt = content["summary_pt"]
        digest.sentiment = content["sentiment"]
        digest.highlights = content["highlights"]
        digest.key_metrics = content["key_metrics"]
        digest.generated_by = content["generated_by"]
        digest.updated_at = utcnow()

        await self.db_session.commit()
        logger.info("digest_saved", digest_id=str(digest.id), week_start=week_start.isoformat())
        return digest

    async def _generate_audio(self, digest: DigestDB, week_start: date) -> dict:
        summaries = {"en": digest.summary_en, "fr": digest.summary_fr, "pt": digest.summary_pt}
        try:
            return await self.tts.generate_all(summaries, week_start)
        except Exception as e:
            logger.error("digest_audio_failed", digest_id=str(digest.id), error=str(e))
            return {}

    async def _distribute(self, digest: DigestDB) -> dict:
        digest_id = str(digest.id)
        try:
            return await self.distributor.distribute(digest)
        except Exception as e:
            logger.error("digest_distribution_error", digest_id=digest_id, error=str(e))
            # The failed send may have left the transaction unusable
            await self.db_session.rollback()
            await self.db_session.refresh(digest)
            return {"success": False, "error": "Distribution failed"}

    async def run(self, week_start: date, week_end: date, auto_distribute: bool = True) -> dict:
        """Generate, save, narrate, distribute and publish.

        Returns:
            Summary of the run for the cron response
        """
        started = time.monotonic()
        logger.info("digest_run_started", week_start=week_start.isoformat(), week_end=week_end.isoformat())

        stats = await calculate_weekly_stats(self.db_session, week_start, week_end)
        funded_titles = await get_funded_proposal_titles(self.db_session, week_start, week_end)
        generated = await self.generator.generate(stats, generate_highlights(stats, funded_titles))
        digest = await self.save(generated, week_start, week_end)

        audio = await self._generate_audio(digest, week_start)
        for field, value in audio.items():
            setattr(digest, field, value)
        if audio:
            await self.db_session.commit()

        distribution = None
        if auto_distribute:
            distribution = await self._distribute(digest)

        digest.published = True
        digest.published_at = utcnow()
        await self.db_session.commit()

        elapsed_minutes = round((time.monotonic() - started) / 60, 2)
        logger.info(
            "digest_run_completed",
            digest_id=str(digest.id),
            audio_generated=bool(audio.get("audio_url_en")),
            execution_time_minutes=elapsed_minutes,
        )
        return {
            "digest_id": str(digest.id),
            "week_start": week_start.isoformat(),
            "week_end": week_end.isoformat(),
            "audio_generated": bool(audio.get("audio_url_en")),
            "distribution": distribution,
            "execution_time_minutes": elapsed_minutes,
            "digest_url": digest_url(week_start),
        }
