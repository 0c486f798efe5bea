"""Health check endpoints for readiness and liveness probes."""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from inrecord.services.database import get_db_manager

router = APIRouter(tags=["health"])

SERVICE_NAME = "inrecord-label-api"
SERVICE_VERSION = "0.1.0"


async def _database_status() -> str:
    db_manager = get_db_manager()
    if db_manager is None:
        return "not_initialized"
    return "healthy" if await db_manager.health_check() else "unhealthy"


@router.get(
    "/v1/readiness",
    summary="Readiness probe",
    description="Check if the service is ready to accept requests",
    status_code=status.HTTP_200_OK,
)
async def readiness() -> JSONResponse:
    """Readiness probe endpoint.

    Returns 200 when the database answers, 503 otherwise.
    """
    checks = {"database": await _database_status()}
    ready = all(value == "healthy" for value in checks.values())

    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if ready else "not_ready",
            "checks": checks,
        },
    )


@router.get(
    "/v1/liveness",
    summary="Liveness probe",
    description="Check if the service is alive",
    status_code=status.HTTP_200_OK,
)
async def liveness() -> dict:
    return {"status": "alive"}


@router.get(
    "/v1/health",
    summary="General health check",
    description="Health check with per-dependency status",
    status_code=status.HTTP_200_OK,
)
async def health() -> dict:
    """Detailed health status.

    Returns:
        Overall status, service identity and per-dependency checks
    """
    checks = {
        "database": {
            "status": await _database_status(),
            "type": "postgresql",
        }
    }
    all_healthy = all(check["status"] == "healthy" for check in checks.values())

    return {
        "status": "healthy" if all_healthy else "degraded",
        "version": SERVICE_VERSION,
        "service": SERVICE_NAME,
        "checks": checks,
    }
