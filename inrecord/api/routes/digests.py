"""Weekly digest cron trigger and public archive endpoints."""

from collections.abc import AsyncGenerator
from datetime import date

import structlog
from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from inrecord.api.middleware.auth import verify_cron_secret
from inrecord.digest import (
    DigestDistributor,
    DigestGenerator,
    DigestPipeline,
    LLMClient,
    TextToSpeechService,
    get_digest_for_week,
)
from inrecord.digest.pipeline import get_latest_digest, list_published_digests
from inrecord.models.base import today_utc
from inrecord.models.booking import parse_session_date
from inrecord.models.digest import Digest, DigestCreateRequest, Sentiment, parse_digest_slug, previous_week
from inrecord.services.database import get_db_session
from inrecord.services.errors import NotFoundError, ValidationFailedError

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["digests"])


async def get_digest_pipeline(db: AsyncSession = Depends(get_db_session)) -> AsyncGenerator[DigestPipeline, None]:
    """Pipeline dependency wired to the configured LLM, TTS and notifiers.

    Overridden in tests.
    """
    llm_client = LLMClient()
    tts = TextToSpeechService()
    try:
        yield DigestPipeline(
            db_session=db,
            generator=DigestGenerator(llm_client),
            tts=tts,
            distributor=DigestDistributor(db),
        )
    finally:
        await llm_client.close()
        await tts.close()


def _error_response(error: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"status": "error", "error": str(error)},
    )


def _parse_week_param(name: str, value: str) -> date:
    try:
        return parse_session_date(value)
    except ValueError as e:
        raise ValidationFailedError("Invalid query parameters", details=[{"field": name, "message": str(e)}]) from e


# ========== Cron ==========


@router.get("/api/cron/digest", response_model=None, dependencies=[Depends(verify_cron_secret)])
async def run_weekly_digest(
    force: bool = Query(False),
    week_start: str | None = Query(None),
    week_end: str | None = Query(None),
    db: AsyncSession = Depends(get_db_session),
    pipeline: DigestPipeline = Depends(get_digest_pipeline),
) -> dict | JSONResponse:
    """Scheduled run for the previous Monday to Sunday.

    An existing digest for the week is kept unless ``force`` is true.
    """
    if week_start and week_end:
        start = _parse_week_param("week_start", week_start)
        end = _parse_week_param("week_end", week_end)
    else:
        start, end = previous_week(today_utc())

    existing = await get_digest_for_week(db, start)
    if existing is not None and not force:
        logger.info("digest_run_skipped", week_start=start.isoformat())
        return {
            "status": "skipped",
            "message": f"Digest for week {start.isoformat()} already exists. Use ?force=true to regenerate.",
            "week_start": start.isoformat(),
            "week_end": end.isoformat(),
        }

    try:
        result = await pipeline.run(start, end)
    except Exception as e:
        logger.error("digest_run_failed", week_start=start.isoformat(), error=str(e), exc_info=True)
        await db.rollback()
        return _error_response(e)

    return {"status": "success", **result}


@router.post("/api/cron/digest", response_model=None, dependencies=[Depends(verify_cron_secret)])
async def generate_digest(
    request: DigestCreateRequest,
    db: AsyncSession = Depends(get_db_session),
    pipeline: DigestPipeline = Depends(get_digest_pipeline),
) -> dict | JSONResponse:
    """Manual run for an explicit week."""
    existing = await get_digest_for_week(db, request.week_start)
    if existing is not None and not request.force_regenerate:
        return {
            "status": "exists",
            "digest_id": str(existing.id),
            "message": "Digest already exists for this week. Use force_regenerate=true to regenerate.",
            "week_start": request.week_start.isoformat(),
            "week_end": request.week_end.isoformat(),
        }

    try:
        result = await pipeline.run(request.week_start, request.week_end, auto_distribute=request.auto_distribute)
    except Exception as e:
        logger.error("digest_run_failed", week_start=request.week_start.isoformat(), error=str(e), exc_info=True)
        await db.rollback()
        return _error_response(e)

    return {"status": "success", **result}


# ========== Archive ==========


@router.get("/api/digests")
async def list_digests(
    limit: int = Query(10, ge=1, le=50),
    offset: int = Query(0, ge=0),
    sentiment: Sentiment | None = Query(None),
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    digests, total = await list_published_digests(
        db, limit=limit, offset=offset, sentiment=sentiment.value if sentiment else None
    )
    return {
        "success": True,
        "digests": [Digest.model_validate(d).model_dump(mode="json") for d in digests],
        "count": total,
        "limit": limit,
        "offset": offset,
    }


@router.get("/api/digests/latest")
async def latest_digest(db: AsyncSession = Depends(get_db_session)) -> dict:
    digest = await get_latest_digest(db)
    if digest is None:
        raise NotFoundError("No published digest yet")
    return {"success": True, "digest": Digest.model_validate(digest).model_dump(mode="json")}


@router.get("/api/digests/{slug}")
async def get_digest(slug: str, db: AsyncSession = Depends(get_db_session)) -> dict:
    """Digest by slug ``week-YYYY-MM-DD``."""
    try:
        week_start = parse_digest_slug(slug)
    except ValueError as e:
        raise NotFoundError("Digest not found") from e

    digest = await get_digest_for_week(db, week_start)
    if digest is None or not digest.published:
        raise NotFoundError("Digest not found")
    return {"success": True, "digest": Digest.model_validate(digest).model_dump(mode="json")}
