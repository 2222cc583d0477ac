# apps/api/podcast_api/middleware/rate_limit.py
"""
Rate Limiting - Podcast Platform
Per-route limits (login, register, webhooks) using slowapi.
Storage backend comes from RATE_LIMIT_STORAGE_URI (memory:// by default).
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from podcast_api.core.config import settings

logger = logging.getLogger(__name__)


def get_user_or_ip_key(request: Request) -> str:
    """
    Rate limit by authenticated user ID if present, otherwise by IP.
    """
    user = getattr(request.state, "current_user", None)
    if user is not None:
        return f"user:{user.id}"
    return f"ip:{get_remote_address(request)}"


# ────────────────────────────────────────────────
# Global Limiter Configuration
# ────────────────────────────────────────────────
limiter = Limiter(
    key_func=get_user_or_ip_key,
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    enabled=settings.RATE_LIMIT_ENABLED,
    headers_enabled=False,
)


# ────────────────────────────────────────────────
# Exception handler for rate limit exceeded
# ────────────────────────────────────────────────
def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning(f"Rate limit exceeded on {request.url.path} for {get_user_or_ip_key(request)}: {exc.detail}")
    return JSONResponse(
        status_code=429,
        content={"detail": "Rate limit exceeded. Please try again later.", "error_code": "RATE_LIMITED"},
        headers={"Retry-After": "60"},
    )
