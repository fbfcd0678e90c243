"""Custom application exceptions."""

from typing import Any


class AppException(Exception):
    """Base application exception."""

    error_code = "error"

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: dict[str, Any] | None = None,
    ):
        """Initialize exception with message, status code and optional details."""
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)


class NotFoundException(AppException):
    """Referenced doctor, appointment or reschedule request does not exist."""

    error_code = "not_found"

    def __init__(self, message: str = "Resource not found"):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404)


class UnauthorizedException(AppException):
    """Unauthorized access exception."""

    error_code = "unauthorized"

    def __init__(self, message: str = "Unauthorized"):
        """Initialize with 401 status code."""
        super().__init__(message, status_code=401)


class ForbiddenException(AppException):
    """Actor is neither the patient nor the doctor on the resource."""

    error_code = "authorization_error"

    def __init__(self, message: str = "Forbidden"):
        """Initialize with 403 status code."""
        super().__init__(message, status_code=403)


class ConflictException(AppException):
    """Unavailable slot, double booking or a transition from a stale state."""

    error_code = "conflict"

    def __init__(self, message: str = "Conflict", details: dict[str, Any] | None = None):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409, details=details)


class ValidationException(AppException):
    """Missing or malformed input."""

    error_code = "validation_error"

    def __init__(self, message: str = "Validation error", fields: list[str] | None = None):
        """Initialize with 422 status code."""
        super().__init__(
            message,
            status_code=422,
            details={"fields": fields} if fields else None,
        )


class InternalException(AppException):
    """Persistence or collaborator failure."""

    error_code = "internal_error"

    def __init__(self, message: str = "Internal error"):
        """Initialize with 500 status code."""
        super().__init__(message, status_code=500)
