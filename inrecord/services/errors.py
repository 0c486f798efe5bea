"""Domain exceptions raised by services and mapped to HTTP responses by the API layer."""


class ServiceError(Exception):
    """Base class for expected, client-facing failures."""

    error_type = "service_error"

    def __init__(self, message: str, details: list | dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationFailedError(ServiceError):
    """Input passed schema validation but violates a business rule (400)."""

    error_type = "validation_error"


class NotFoundError(ServiceError):
    """Requested entity does not exist (404)."""

    error_type = "not_found"


class EligibilityError(ServiceError):
    """Caller is not allowed to perform the action in the current state (403)."""

    error_type = "not_eligible"


class ConflictError(ServiceError):
    """Action conflicts with existing state, e.g. a duplicate vote (409)."""

    error_type = "conflict"
