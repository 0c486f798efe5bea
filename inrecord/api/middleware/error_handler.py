"""Error handling middleware and exception handlers."""

import logging
import os
from collections.abc import Awaitable, Callable

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from inrecord.services.errors import (
    ConflictError,
    EligibilityError,
    NotFoundError,
    ServiceError,
    ValidationFailedError,
)

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "An unexpected error occurred. Please try again later."

SERVICE_ERROR_STATUS = {
    ValidationFailedError: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    EligibilityError: status.HTTP_403_FORBIDDEN,
    ConflictError: status.HTTP_409_CONFLICT,
}


class ErrorResponse:
    """Standardized error response format."""

    @staticmethod
    def create(
        error_type: str,
        message: str,
        details: str | dict | list | None = None,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        headers: dict | None = None,
    ) -> JSONResponse:
        """Create error response.

        Args:
            error_type: Error type identifier
            message: Human-readable error message
            details: Additional error details
            status_code: HTTP status code
            headers: Extra response headers

        Returns:
            JSONResponse with ``{"error", "type", "details"?}``
        """
        content = {"error": message, "type": error_type}
        if details:
            content["details"] = details

        return JSONResponse(status_code=status_code, content=content, headers=headers)


def format_validation_errors(errors: list[dict]) -> list[dict]:
    """Flatten pydantic error dicts into ``{"field", "message"}`` entries."""
    formatted = []
    for error in errors:
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        formatted.append(
            {
                "field": ".".join(location) or "request",
                "message": error.get("msg", "Invalid value"),
            }
        )
    return formatted


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request body, query and path validation errors."""
    logger.warning(f"Request validation error on {request.url.path}: {exc.errors()}")

    return ErrorResponse.create(
        error_type="validation_error",
        message="Validation failed",
        details=format_validation_errors(exc.errors()),
        status_code=status.HTTP_400_BAD_REQUEST,
    )


async def validation_exception_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Handle Pydantic validation errors raised inside handlers."""
    logger.warning(f"Validation error: {exc}")

    return ErrorResponse.create(
        error_type="validation_error",
        message="Validation failed",
        details=format_validation_errors(exc.errors()),
        status_code=status.HTTP_400_BAD_REQUEST,
    )


async def service_exception_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Handle expected domain errors raised by services."""
    status_code = next(
        (code for cls, code in SERVICE_ERROR_STATUS.items() if isinstance(exc, cls)),
        status.HTTP_400_BAD_REQUEST,
    )
    logger.info(f"{type(exc).__name__} on {request.url.path}: {exc.message}")

    return ErrorResponse.create(
        error_type=exc.error_type,
        message=exc.message,
        details=exc.details,
        status_code=status_code,
    )


async def permission_exception_handler(request: Request, exc: PermissionError) -> JSONResponse:
    """Handle permission errors."""
    logger.warning(f"Permission denied: {exc}")

    return ErrorResponse.create(
        error_type="permission_denied",
        message=str(exc),
        status_code=status.HTTP_403_FORBIDDEN,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Render HTTPException in the common error shape."""
    if isinstance(exc.detail, dict):
        message = exc.detail.get("error") or exc.detail.get("message") or "Request failed"
        details = {key: value for key, value in exc.detail.items() if key != "error"} or None
    else:
        message = str(exc.detail)
        details = None

    return ErrorResponse.create(
        error_type="http_error",
        message=message,
        details=details,
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.error(f"Unexpected error: {exc}", exc_info=True)

    return ErrorResponse.create(
        error_type="internal_error",
        message=GENERIC_ERROR_MESSAGE,
        details=str(exc) if os.getenv("APP_ENV") == "development" else None,
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


async def run_side_effect(name: str, func: Callable[..., Awaitable], *args, **kwargs) -> None:
    """Await a best-effort side effect such as an email or webhook.

    Meant for ``BackgroundTasks.add_task``; failures are logged and never
    reach the client.
    """
    try:
        result = await func(*args, **kwargs)
    except Exception as e:
        logger.error(f"Side effect {name} failed: {e}", exc_info=True)
        return

    if isinstance(result, dict) and not result.get("success", True):
        logger.warning(f"Side effect {name} reported failure: {result.get('error')}")
