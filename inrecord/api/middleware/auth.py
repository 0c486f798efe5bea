"""Shared-secret authentication for cron and admin endpoints."""

import hmac
import os

import structlog
from fastapi import Header, HTTPException, status

logger = structlog.get_logger(__name__)


def extract_bearer_token(authorization: str | None) -> str | None:
    """Return the token of a ``Bearer <token>`` header, or None."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


def _matches(token: str | None, secret: str) -> bool:
    return token is not None and hmac.compare_digest(token.encode(), secret.encode())


async def verify_cron_secret(authorization: str | None = Header(None)) -> None:
    """FastAPI dependency guarding the digest cron.

    Enforced only when ``CRON_SECRET`` is set.

    Raises:
        HTTPException: 401 when the bearer token does not match
    """
    secret = os.getenv("CRON_SECRET")
    if not secret:
        return

    if not _matches(extract_bearer_token(authorization), secret):
        logger.warning("cron_unauthorized")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def require_admin(authorization: str | None = Header(None)) -> None:
    """FastAPI dependency guarding admin booking endpoints.

    Enforced only when ``ADMIN_API_KEY`` is set.

    Raises:
        HTTPException: 401 when the bearer token does not match
    """
    api_key = os.getenv("ADMIN_API_KEY")
    if not api_key:
        logger.warning("admin_auth_not_configured")
        return

    token = extract_bearer_token(authorization)
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not _matches(token, api_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
