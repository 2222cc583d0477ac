# apps/api/podcast_api/services/webhooks.py
"""
Webhook Reconciler - Podcast Platform
Applies verified Stripe events to Subscriptions and Payments.

- Signature is verified by the gateway client before anything is read
- Each event id is processed once (webhook_events.event_id unique);
  replays of processed events are acknowledged without side effects
- A failing handler is rolled back and logged; delivery is still acknowledged
- Unknown event types are logged and ignored
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

import sentry_sdk
from fastapi import Request
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from podcast_api.core.config import settings
from podcast_api.core.enums import (
    Currency,
    PaymentGateway,
    PaymentPurpose,
    PaymentStatus,
    SubscriptionStatus,
)
from podcast_api.db.models import Subscription, WebhookEvent
from podcast_api.db.models.utils import as_utc, generate_transaction_id, utcnow
from podcast_api.services import payments as ledger
from podcast_api.services import subscriptions as lifecycle
from podcast_api.services.gateway import PaymentGatewayClient

logger = logging.getLogger(__name__)

Handler = Callable[[AsyncSession, Dict[str, Any]], Awaitable[bool]]

STATUS_PROCESSED = "processed"
STATUS_IGNORED = "ignored"
STATUS_FAILED = "failed"


def _currency(code: Optional[str]) -> Currency:
    try:
        return Currency((code or settings.DEFAULT_CURRENCY).upper())
    except ValueError:
        return Currency(settings.DEFAULT_CURRENCY)


async def _subscription_by_customer(db: AsyncSession, customer_id: Optional[str]) -> Optional[Subscription]:
    if not customer_id:
        return None
    return await db.scalar(
        select(Subscription).where(Subscription.stripe_customer_id == customer_id).limit(1)
    )


# ────────────────────────────────────────────────
# Event handlers (return True when state changed)
# ────────────────────────────────────────────────
async def handle_checkout_session_completed(db: AsyncSession, session: Dict[str, Any]) -> bool:
    intent = session.get("payment_intent")
    payment = await ledger.find_by_transaction_id(db, intent) if intent else None
    if payment is None:
        logger.info(f"Checkout {session.get('id')} has no matching payment (intent={intent}); skipping")
        return False
    if payment.is_final:
        logger.info(f"Payment {payment.transaction_id} already {payment.status.value}; skipping checkout")
        return False

    ledger.mark_completed(payment)
    payment.stripe_session_id = session.get("id")

    if payment.subscription_id:
        subscription = await db.get(Subscription, payment.subscription_id)
        if subscription is not None:
            if session.get("customer"):
                subscription.stripe_customer_id = session["customer"]
            if session.get("subscription") and not subscription.stripe_subscription_id:
                subscription.stripe_subscription_id = session["subscription"]
            await lifecycle.activate(db, subscription)
            logger.info(f"Subscription activated for user {payment.user_id}")
    await db.flush()
    return True


async def handle_invoice_payment_succeeded(db: AsyncSession, invoice: Dict[str, Any]) -> bool:
    subscription = await _subscription_by_customer(db, invoice.get("customer"))
    if subscription is None:
        logger.info(f"Invoice {invoice.get('id')}: no subscription for customer {invoice.get('customer')}")
        return False

    intent = invoice.get("payment_intent")
    if intent and await ledger.find_by_transaction_id(db, intent):
        logger.info(f"Invoice {invoice.get('id')}: payment {intent} already recorded; skipping renewal")
        return False

    plan = subscription.plan
    subscription.end_date = as_utc(subscription.end_date) + timedelta(days=plan.duration)
    if invoice.get("subscription") and not subscription.stripe_subscription_id:
        subscription.stripe_subscription_id = invoice["subscription"]
    await lifecycle.activate(db, subscription)

    now = utcnow()
    await ledger.record(db, {
        "user_id": subscription.user_id,
        "plan_id": plan.id,
        "subscription_id": subscription.id,
        "amount": int(invoice.get("amount_paid") or 0),
        "currency": _currency(invoice.get("currency")),
        "gateway": PaymentGateway.STRIPE,
        "status": PaymentStatus.COMPLETED,
        "purpose": PaymentPurpose.RENEWAL,
        "transaction_id": intent or generate_transaction_id("inv"),
        "payment_date": now,
        "paid_at": now,
        "stripe_invoice_id": invoice.get("id"),
    })
    logger.info(
        f"Subscription {subscription.id} extended to {as_utc(subscription.end_date).isoformat()} "
        f"for user {subscription.user_id}"
    )
    return True


async def handle_invoice_payment_failed(db: AsyncSession, invoice: Dict[str, Any]) -> bool:
    reason = (invoice.get("last_payment_failure") or {}).get("message") or "Payment failed"
    changed = False

    intent = invoice.get("payment_intent")
    payment = await ledger.find_by_transaction_id(db, intent) if intent else None
    if payment is not None and not payment.is_final:
        await lifecycle.fail_payment(db, payment, reason)
        changed = True

    subscription = await _subscription_by_customer(db, invoice.get("customer"))
    if subscription is not None and subscription.status != SubscriptionStatus.PAYMENT_FAILED:
        subscription.apply_status(SubscriptionStatus.PAYMENT_FAILED)
        await lifecycle.sync_user_cache(db, subscription)
        await db.flush()
        logger.info(f"Subscription payment failed for user {subscription.user_id}")
        changed = True
    return changed


async def handle_subscription_deleted(db: AsyncSession, stripe_subscription: Dict[str, Any]) -> bool:
    subscription = await db.scalar(
        select(Subscription).where(Subscription.stripe_subscription_id == stripe_subscription.get("id"))
    )
    if subscription is None:
        logger.info(f"No local subscription for gateway subscription {stripe_subscription.get('id')}")
        return False

    ended_at = stripe_subscription.get("ended_at")
    subscription.apply_status(SubscriptionStatus.CANCELLED)
    subscription.auto_renew = False
    subscription.end_date = datetime.fromtimestamp(ended_at, tz=timezone.utc) if ended_at else utcnow()
    await lifecycle.sync_user_cache(db, subscription)
    await db.flush()
    logger.info(f"Subscription cancelled at gateway for user {subscription.user_id}")
    return True


async def handle_payment_intent_failed(db: AsyncSession, intent: Dict[str, Any]) -> bool:
    payment = await ledger.find_by_transaction_id(db, intent.get("id"))
    if payment is None or payment.is_final:
        return False
    reason = (intent.get("last_payment_error") or {}).get("message") or "Payment failed"
    await lifecycle.fail_payment(db, payment, reason)
    return True


EVENT_HANDLERS: Dict[str, Handler] = {
    "checkout.session.completed": handle_checkout_session_completed,
    "invoice.payment_succeeded": handle_invoice_payment_succeeded,
    "invoice.payment_failed": handle_invoice_payment_failed,
    "customer.subscription.deleted": handle_subscription_deleted,
    "payment_intent.payment_failed": handle_payment_intent_failed,
}


class WebhookReconciler:
    def __init__(self, gateway: PaymentGatewayClient, handlers: Optional[Dict[str, Handler]] = None):
        self.gateway = gateway
        self.handlers = handlers if handlers is not None else EVENT_HANDLERS

    def verify(self, payload: bytes, sig_header: Optional[str]) -> Dict[str, Any]:
        return self.gateway.verify_webhook(payload, sig_header)

    async def process(self, db: AsyncSession, event: Dict[str, Any]) -> Dict[str, Any]:
        """
        Dispatch one verified event and commit. Always returns an acknowledgement;
        handler failures are recorded on the webhook_events row, not raised.
        """
        event_id = event.get("id") or ""
        event_type = event.get("type", "")
        obj = (event.get("data") or {}).get("object") or {}

        if event_id:
            seen = await self._find(db, event_id)
            if seen is not None and seen.status != STATUS_FAILED:
                logger.info(f"Duplicate webhook {event_id} ({event_type}) acknowledged")
                return {"received": True, "duplicate": True}

        handler = self.handlers.get(event_type)
        status, error = STATUS_IGNORED, None
        if handler is None:
            logger.info(f"Unhandled event type: {event_type}")
        else:
            try:
                await handler(db, obj)
                status = STATUS_PROCESSED
            except Exception as e:
                logger.error(f"Webhook handler {event_type} failed for {event_id}: {e}", exc_info=True)
                sentry_sdk.capture_exception(e)
                await db.rollback()
                status, error = STATUS_FAILED, str(e)[:1000]

        if not event_id:
            await db.commit()
            return {"received": True}

        record = await self._find(db, event_id)
        if record is None:
            db.add(WebhookEvent(event_id=event_id, event_type=event_type, status=status, error=error))
        else:
            record.status, record.error = status, error

        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            logger.info(f"Webhook {event_id} was processed concurrently; acknowledged as duplicate")
            return {"received": True, "duplicate": True}

        logger.info(f"Webhook {event_id} ({event_type}) {status}")
        return {"received": True}

    @staticmethod
    async def _find(db: AsyncSession, event_id: str) -> Optional[WebhookEvent]:
        return await db.scalar(select(WebhookEvent).where(WebhookEvent.event_id == event_id))


def get_reconciler(request: Request) -> WebhookReconciler:
    return request.app.state.reconciler
