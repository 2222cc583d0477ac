# apps/api/podcast_api/main.py
"""
Podcast Platform FastAPI Application Entry Point
Middleware stack, lifespan (DB, payment gateway, settlement scheduler), error rendering,
health and Prometheus /metrics.

INTEGRATION NOTES:
- Auth is NOT global: protected routes use the CurrentUser / AdminUser / HostUser dependencies
- Middleware order: CORS → Security Headers → Request context (X-Request-ID + metrics)
- Services raise AppError subclasses; they are rendered here as {"detail", "error_code"}
- Pending simulated payments are rehydrated on startup and cancelled on shutdown
"""

import logging
from contextlib import asynccontextmanager

import sentry_sdk
from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from podcast_api.core.config import settings
from podcast_api.core.errors import AppError, Conflict
from podcast_api.db.session import async_session_factory, dispose_db, init_db
from podcast_api.middleware.rate_limit import limiter, rate_limit_exceeded_handler
from podcast_api.middleware.security import RequestContextMiddleware, SecurityHeadersMiddleware
from podcast_api.routers import payments, plans, sessions, subscriptions, users, webhooks
from podcast_api.services.gateway import StripeGateway
from podcast_api.services.settlement import SettlementScheduler
from podcast_api.services.webhooks import WebhookReconciler

# ────────────────────────────────────────────────
# Structured Logging Setup
# ────────────────────────────────────────────────
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    handlers=[logging.StreamHandler()],
)
logger = logging.getLogger(__name__)


# ────────────────────────────────────────────────
# Sentry (errors + tracing), only when a DSN is configured
# ────────────────────────────────────────────────
def init_sentry() -> bool:
    if not settings.SENTRY_DSN:
        logger.info("Sentry disabled (no SENTRY_DSN)")
        return False

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        traces_sample_rate=1.0 if not settings.is_production else settings.SENTRY_TRACES_SAMPLE_RATE,
        environment=settings.ENVIRONMENT,
        release=f"podcast-platform-api@{settings.APP_VERSION}",
        attach_stacktrace=True,
        send_default_pii=False,
    )
    logger.info("Sentry initialized")
    return True


# ────────────────────────────────────────────────
# Lifespan: Sentry, DB check, gateway client, settlement scheduler
# ────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting Podcast Platform API v{settings.APP_VERSION} ({settings.ENVIRONMENT})")
    init_sentry()
    await init_db()

    gateway = StripeGateway.from_settings()
    app.state.gateway = gateway
    app.state.reconciler = WebhookReconciler(gateway)
    app.state.settlement = SettlementScheduler(async_session_factory)
    await app.state.settlement.rehydrate()

    yield

    await app.state.settlement.shutdown()
    await dispose_db()
    logger.info("Podcast Platform API shut down")


# ────────────────────────────────────────────────
# FastAPI Application
# ────────────────────────────────────────────────
app = FastAPI(
    title="Podcast Platform API",
    description="Subscriptions, payments, Stripe webhooks and live sessions for the podcast platform",
    version=settings.APP_VERSION,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url=None,
    lifespan=lifespan,
    debug=settings.ENVIRONMENT == "development",
    openapi_tags=[
        {"name": "Users", "description": "Registration, verification & cookie sessions"},
        {"name": "Plans", "description": "Subscription plan catalog"},
        {"name": "Subscriptions", "description": "Subscription lifecycle & checkout"},
        {"name": "Payments", "description": "Payment ledger & reporting"},
        {"name": "Webhooks", "description": "Stripe events"},
        {"name": "Live Sessions", "description": "Scheduled live podcast sessions"},
        {"name": "Health", "description": "Health & readiness checks"},
    ],
)

# ────────────────────────────────────────────────
# Global Middleware Stack (last added runs first)
# ────────────────────────────────────────────────
app.add_middleware(RequestContextMiddleware)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[str(origin) for origin in settings.CORS_ORIGINS],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Per-route limits are declared with @limiter.limit in the routers
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


# ────────────────────────────────────────────────
# Error rendering
# ────────────────────────────────────────────────
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message} {exc.context}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning(f"Integrity violation on {request.method} {request.url.path}: {exc.orig}")
    error = Conflict("Resource already exists", error_code="DUPLICATE")
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


@app.exception_handler(StaleDataError)
async def stale_data_handler(request: Request, exc: StaleDataError):
    logger.warning(f"Concurrent modification on {request.method} {request.url.path}: {exc}")
    error = Conflict("subscription was modified concurrently", error_code="CONCURRENT_MODIFICATION")
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    request_id = getattr(request.state, "request_id", "unknown")
    user = getattr(request.state, "current_user", None)
    logger.exception(
        f"Unhandled exception: {exc}",
        extra={
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
            "user_id": str(user.id) if user else None,
        },
    )
    sentry_sdk.set_tag("request_id", request_id)
    sentry_sdk.capture_exception(exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error", "error_code": "INTERNAL_ERROR"},
    )


# ────────────────────────────────────────────────
# Routers
# ────────────────────────────────────────────────
app.include_router(users.router)
app.include_router(plans.router)
app.include_router(subscriptions.router)
app.include_router(payments.router)
app.include_router(webhooks.router)
app.include_router(sessions.router)


# ────────────────────────────────────────────────
# Prometheus Metrics Endpoint
# ────────────────────────────────────────────────
@app.get("/metrics", include_in_schema=False)
async def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


# ────────────────────────────────────────────────
# Health / Readiness Endpoints
# ────────────────────────────────────────────────
@app.get("/health", tags=["Health"])
async def health_check():
    return {"status": "healthy", "version": settings.APP_VERSION}


@app.get("/ready", tags=["Health"])
async def readiness_check():
    """Readiness probe: DB ping."""
    try:
        async with async_session_factory() as db:
            await db.execute(text("SELECT 1"))
        return {"status": "ready"}
    except Exception:
        logger.error("Readiness check failed", exc_info=True)
        return JSONResponse(status_code=503, content={"status": "not ready"})
