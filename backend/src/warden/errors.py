"""Domain error taxonomy.

Services raise these exceptions; the FastAPI application maps them to HTTP
responses in one place (see register_exception_handlers). Messages are meant
for API clients and must never carry internal identifiers, secrets or
metadata that sanitization would have removed.
"""

from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse


class WardenError(Exception):
    """Base class for errors surfaced to API clients."""

    code = "INTERNAL_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class UnauthenticatedError(WardenError):
    """No session, or the session is invalid, revoked or expired."""

    code = "UNAUTHENTICATED"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Authentication required"


class ForbiddenError(WardenError):
    """Authenticated, but missing the required permission or crossing tenants."""

    code = "FORBIDDEN"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "You do not have permission to perform this action"


class NotFoundError(WardenError):
    """Entity absent, or outside the caller's tenant (indistinguishable)."""

    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class InvalidTransitionError(WardenError):
    """Workflow guard rejected the requested action."""

    code = "INVALID_TRANSITION"
    status_code = status.HTTP_409_CONFLICT
    default_message = "This action is not allowed in the document's current status"


class ValidationFailedError(WardenError):
    code = "VALIDATION_ERROR"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = "Invalid input"


class ConflictError(WardenError):
    code = "CONFLICT"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Resource already exists"


class RateLimitedError(WardenError):
    """Credential endpoint throttled; retry_after is in seconds."""

    code = "RATE_LIMITED"
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Too many requests"

    def __init__(self, message: Optional[str] = None, retry_after: Optional[int] = None):
        super().__init__(message)
        self.retry_after = retry_after


async def warden_error_handler(request: Request, exc: WardenError) -> JSONResponse:
    """Render a domain error as a JSON response."""
    headers = None
    if isinstance(exc, UnauthenticatedError):
        headers = {"WWW-Authenticate": "Bearer"}
    elif isinstance(exc, RateLimitedError) and exc.retry_after:
        headers = {"Retry-After": str(exc.retry_after)}
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "message": exc.message},
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(WardenError, warden_error_handler)
