"""Application error taxonomy.

Services raise these; ``app.main`` renders them into the standard response
envelope with the status code each class carries.
"""

from typing import Any, Optional


class AppError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = 500
    default_message: str = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None, data: Any = None):
        self.message = message or self.default_message
        self.data = data
        super().__init__(self.message)


class ValidationError(AppError):
    """Missing or malformed input."""

    status_code = 400
    default_message = "Invalid request data"


class AuthenticationError(AppError):
    """Missing, invalid or expired credentials."""

    status_code = 401
    default_message = "Authentication required"


class AuthorizationError(AppError):
    """Valid identity without the privileges the operation needs."""

    status_code = 403
    default_message = "Access denied"


class NotFoundError(AppError):
    status_code = 404
    default_message = "Resource not found"


class RateLimitedError(AppError):
    status_code = 429
    default_message = "Too many attempts. Please try again later."


class StorageError(AppError):
    """Unexpected persistence failure.

    The message is what the client sees; pass the underlying exception as
    ``detail`` so it is logged server-side and never leaked.
    """

    status_code = 500
    default_message = "A storage error occurred"

    def __init__(self, message: Optional[str] = None, detail: Optional[BaseException] = None):
        super().__init__(message)
        self.detail = detail
