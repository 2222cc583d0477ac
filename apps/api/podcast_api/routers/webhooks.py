# apps/api/podcast_api/routers/webhooks.py
"""
Stripe Webhook Router - Podcast Platform
Raw body is required: the signature is computed over the exact bytes Stripe sent.
Verified deliveries are always acknowledged with {"received": true};
signature failures return 400 and touch nothing.
"""

import logging

import sentry_sdk
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from podcast_api.core.deps import DBSession, Reconciler
from podcast_api.core.errors import ValidationError
from podcast_api.middleware.rate_limit import limiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("/stripe", response_class=JSONResponse)
@limiter.limit("100/minute")
async def stripe_webhook(request: Request, db: DBSession, reconciler: Reconciler):
    request_id = getattr(request.state, "request_id", "-")
    sentry_sdk.set_tag("request_id", request_id)
    sentry_sdk.set_tag("webhook_event", "pending")

    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")

    try:
        event = reconciler.verify(payload, sig_header)
    except ValidationError as e:
        logger.error(f"[{request_id}] Webhook verification failed ({e.error_code}): {e}")
        sentry_sdk.capture_message(f"Webhook verification failed: {e.error_code}", level="error")
        raise

    sentry_sdk.set_tag("webhook_event", event.get("type"))
    logger.info(f"[{request_id}] Webhook received: {event.get('type')} ({event.get('id')})")
    return await reconciler.process(db, event)
