"""Embeddable transparency widget feed."""

from fastapi import APIRouter, Depends, Query, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from inrecord.services.database import get_db_session
from inrecord.services.transparency import TransparencyService

router = APIRouter(prefix="/api/embed", tags=["embed"])

# Widgets are embedded on third-party sites
CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}
CACHE_HEADERS = {"Cache-Control": "public, s-maxage=30, stale-while-revalidate=60"}


@router.get("/transparency")
async def transparency_widget(
    max_items: int = Query(5, alias="maxItems", ge=1, le=50),
    charts: bool = Query(True),
    activity: bool = Query(True),
    db: AsyncSession = Depends(get_db_session),
) -> JSONResponse:
    """Metrics, recent activity and chart series for the widget.

    Keys are camelCase; ``charts=false`` or ``activity=false`` leaves the
    corresponding section empty.
    """
    data = await TransparencyService(db).get_widget_data(
        max_items=max_items, include_charts=charts, include_activity=activity
    )
    return JSONResponse(
        content=data.model_dump(mode="json", by_alias=True),
        headers={**CORS_HEADERS, **CACHE_HEADERS},
    )


@router.options("/transparency")
async def transparency_preflight() -> Response:
    return Response(status_code=status.HTTP_204_NO_CONTENT, headers=CORS_HEADERS)
