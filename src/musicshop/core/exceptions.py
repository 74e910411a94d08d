"""Domain errors raised by services and mapped to the JSON envelope at the edge."""

from fastapi import status


class AppError(Exception):
    """Base class for errors that map to a stable code and HTTP status."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: str | None = None):
        super().__init__(message)
        self.message = message
        self.details = details


class InvalidInputError(AppError):
    """Malformed or missing request data; the caller should fix the form."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "INVALID_INPUT"


class ForbiddenError(AppError):
    """Actor's role does not allow the operation."""

    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class ConflictError(AppError):
    """Precondition no longer holds at write time; refresh and retry."""

    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"


class UnavailableError(AppError):
    """Storage failed for infrastructure reasons."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "UNAVAILABLE"
