# apps/api/podcast_api/middleware/security.py
"""
Security headers & request correlation middleware - Podcast Platform.
- Security headers on every response (HSTS, CSP, X-Frame-Options, ...)
- X-Request-ID correlation id (propagated from the client or generated)
- Prometheus request counters / latency histograms
"""

import logging
import time
import uuid
from typing import Awaitable, Callable

from fastapi import Request
from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from podcast_api.core.config import settings

logger = logging.getLogger(__name__)

REQUEST_COUNT = Counter(
    "podcast_api_requests_total",
    "Total HTTP requests",
    ["method", "route", "status"],
)
REQUEST_LATENCY = Histogram(
    "podcast_api_request_duration_seconds",
    "HTTP request latency",
    ["method", "route"],
)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        response = await call_next(request)

        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"

        # JSON API: nothing to render, lock everything down in production
        if settings.is_production:
            response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
        else:
            response.headers["Content-Security-Policy"] = "default-src 'self'; frame-ancestors 'self'"

        if response.status_code >= 400 and request.method != "GET":
            logger.warning(
                f"{request.method} {request.url.path} returned {response.status_code}",
                extra={"request_id": getattr(request.state, "request_id", None)},
            )
        return response


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start

        route = request.scope.get("route")
        route_path = getattr(route, "path", "unmatched")
        REQUEST_COUNT.labels(request.method, route_path, str(response.status_code)).inc()
        REQUEST_LATENCY.labels(request.method, route_path).observe(elapsed)

        response.headers["X-Request-ID"] = request_id
        return response
