# apps/api/podcast_api/core/errors.py
"""
Domain exceptions for the Podcast Platform API.
Services raise these instead of HTTPException; main.py renders them
into {"detail", "error_code"} JSON with the matching status code.
"""

from typing import Any, Dict, Optional


class AppError(Exception):
    """
    Base application error.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code for API responses
        status_code: HTTP status code for this error type
        context: Additional context data about the error
    """

    status_code: int = 400
    error_code: str = "APP_ERROR"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        if error_code:
            self.error_code = error_code
        self.context = context or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, "error_code": self.error_code}


class ValidationError(AppError):
    """Missing/invalid fields or bad enum values."""
    status_code = 400
    error_code = "VALIDATION_ERROR"


class NotFound(AppError):
    status_code = 404
    error_code = "NOT_FOUND"


class Forbidden(AppError):
    status_code = 403
    error_code = "FORBIDDEN"


class Conflict(AppError):
    """Duplicate subscription, duplicate plan name, concurrent modification."""
    status_code = 409
    error_code = "CONFLICT"


class Internal(AppError):
    """Unexpected persistence/gateway failure. Never leaks detail to clients."""
    status_code = 500
    error_code = "INTERNAL_ERROR"

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": "Internal server error", "error_code": self.error_code}
