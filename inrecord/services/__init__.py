"""Business logic services for the inRECORD label backend."""

from inrecord.services.database import DatabaseManager, get_db_session
from inrecord.services.errors import (
    ConflictError,
    EligibilityError,
    NotFoundError,
    ServiceError,
    ValidationFailedError,
)

__all__ = [
    "DatabaseManager",
    "get_db_session",
    "ConflictError",
    "EligibilityError",
    "NotFoundError",
    "ServiceError",
    "ValidationFailedError",
]
