# apps/api/podcast_api/services/subscriptions.py
"""
Subscription Lifecycle Service - Podcast Platform
Owns every subscription state transition, proration, settlement of pending
payments, and the denormalized subscription view cached on the User row.

State machine:
  pending_payment --(settled ok)--> active
  pending_payment --(settled failed)--> payment_failed
  active --(cancel)--> cancelled
  active --(end of term, no auto-renew)--> expired
  active --(upgrade initiated)--> pending_payment (plan changed optimistically)
  payment_failed --(retry ok)--> active
  cancelled | expired --(renew)--> active

Concurrency: subscriptions.user_id is unique and Subscription.version is an
optimistic version counter, so lookup-then-write races surface as Conflict
(IntegrityError / StaleDataError) instead of silent double writes.
"""

import logging
import math
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from podcast_api.core.config import settings
from podcast_api.core.enums import (
    PaymentGateway,
    PaymentPurpose,
    PaymentStatus,
    SubscriptionStatus,
    SubscriptionTier,
)
from podcast_api.core.errors import Conflict, Forbidden, NotFound, ValidationError
from podcast_api.db.models import Payment, Plan, Subscription, User
from podcast_api.db.models.utils import as_utc, utcnow
from podcast_api.services import payments as ledger
from podcast_api.services import plans as catalog
from podcast_api.services.gateway import PaymentGatewayClient

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


# ────────────────────────────────────────────────
# Proration
# ────────────────────────────────────────────────
@dataclass(frozen=True)
class Proration:
    remaining_days: int
    refund_amount: int
    final_amount: int


def _round_minor(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_proration(
    current_plan_price: int,
    current_end_date: datetime,
    new_plan_price: int,
    now: Optional[datetime] = None,
    month_days: Optional[int] = None,
) -> Proration:
    """
    remaining_days = ceil((end - now) / 1 day), never below zero
    refund         = current_price / month_days * remaining_days
    final          = max(0, new_price - refund)

    Uses a fixed billing month (PRORATION_MONTH_DAYS, 30) whatever the plan's
    actual duration. Refund and final amount are computed exactly, then
    rounded half-up to whole minor units.
    """
    now = as_utc(now or utcnow())
    month_days = month_days or settings.PRORATION_MONTH_DAYS

    seconds_left = (as_utc(current_end_date) - now).total_seconds()
    remaining_days = max(0, math.ceil(seconds_left / SECONDS_PER_DAY))

    refund = Decimal(current_plan_price) / Decimal(month_days) * Decimal(remaining_days)
    final = max(Decimal(0), Decimal(new_plan_price) - refund)

    return Proration(
        remaining_days=remaining_days,
        refund_amount=_round_minor(refund),
        final_amount=_round_minor(final),
    )


# ────────────────────────────────────────────────
# Denormalized view on User (Subscription is the source of truth)
# ────────────────────────────────────────────────
async def sync_user_cache(db: AsyncSession, subscription: Subscription) -> None:
    user = await db.get(User, subscription.user_id)
    if not user:
        logger.warning(f"Subscription {subscription.id} references missing user {subscription.user_id}")
        return

    is_paid_tier = subscription.plan is not None and not subscription.plan.is_free
    user.subscription_type = SubscriptionTier.PREMIUM if is_paid_tier else SubscriptionTier.FREE
    user.subscription_status = subscription.status.value
    user.subscription_end_date = subscription.end_date
    if subscription.plan is not None:
        user.storage_quota_mb = subscription.plan.storage_quota_mb


def subscription_view(subscription: Optional[Subscription]) -> Dict[str, Any]:
    """Read-through accessor for the user-facing subscription summary."""
    if subscription is None:
        return {"type": SubscriptionTier.FREE.value, "status": None, "endDate": None, "plan": None}
    is_paid_tier = subscription.plan is not None and not subscription.plan.is_free
    return {
        "type": (SubscriptionTier.PREMIUM if is_paid_tier else SubscriptionTier.FREE).value,
        "status": subscription.status.value,
        "endDate": as_utc(subscription.end_date),
        "plan": subscription.plan.name if subscription.plan else None,
    }


async def _save(db: AsyncSession, subscription: Subscription) -> Subscription:
    await db.flush()
    await sync_user_cache(db, subscription)
    await db.flush()
    return subscription


# ────────────────────────────────────────────────
# Queries
# ────────────────────────────────────────────────
async def find_for_user(db: AsyncSession, user_id: uuid.UUID) -> Optional[Subscription]:
    return await db.scalar(select(Subscription).where(Subscription.user_id == user_id))


async def get_for_user(db: AsyncSession, user_id: uuid.UUID) -> Subscription:
    subscription = await find_for_user(db, user_id)
    if not subscription:
        raise NotFound("No subscription found")
    return subscription


async def get(db: AsyncSession, subscription_id: uuid.UUID) -> Subscription:
    subscription = await db.get(Subscription, subscription_id)
    if not subscription:
        raise NotFound("Subscription not found")
    return subscription


async def list_all(db: AsyncSession) -> List[Subscription]:
    result = await db.scalars(select(Subscription).order_by(Subscription.created_at.desc()))
    return list(result.all())


def authorize(subscription: Subscription, actor_id: uuid.UUID, is_admin: bool) -> None:
    """Owner-or-admin check for reads and owner-initiated transitions."""
    if not is_admin and subscription.user_id != actor_id:
        raise Forbidden("You do not have access to this subscription")


# ────────────────────────────────────────────────
# Creation
# ────────────────────────────────────────────────
async def create_free_subscription(
    db: AsyncSession,
    user_id: uuid.UUID,
    now: Optional[datetime] = None,
) -> Subscription:
    """
    Immediate active free-tier subscription for FREE_TRIAL_DAYS (7).
    A second call for the same user fails with Conflict; the unique index on
    subscriptions.user_id backs the lookup when two requests race.
    """
    now = now or utcnow()

    if not await db.get(User, user_id):
        raise NotFound("User not found")

    free_plan = await catalog.get_by_name(db, settings.FREE_PLAN_NAME)
    if not free_plan:
        raise NotFound("Free plan not found")

    if await find_for_user(db, user_id):
        raise Conflict("User already has a subscription", error_code="SUBSCRIPTION_EXISTS")

    subscription = Subscription(
        user_id=user_id,
        plan=free_plan,
        start_date=now,
        end_date=now + timedelta(days=settings.FREE_TRIAL_DAYS),
        amount=0,
    )
    subscription.apply_status(SubscriptionStatus.ACTIVE)
    db.add(subscription)
    try:
        await db.flush()
    except IntegrityError as e:
        raise Conflict("User already has a subscription", error_code="SUBSCRIPTION_EXISTS") from e

    await _save(db, subscription)
    logger.info(f"Free subscription created for user {user_id} (ends {subscription.end_date.isoformat()})")
    return subscription


# ────────────────────────────────────────────────
# Upgrade / paid purchase
# ────────────────────────────────────────────────
async def initiate_upgrade(
    db: AsyncSession,
    user_id: uuid.UUID,
    new_plan_id: uuid.UUID,
    gateway: PaymentGateway = PaymentGateway.STRIPE,
    now: Optional[datetime] = None,
) -> Tuple[Subscription, Payment, Proration]:
    """
    Records a pending upgrade Payment for the prorated amount and switches
    the subscription to the new plan right away (status pending_payment).
    The plan is not reverted if the payment later fails.
    """
    now = now or utcnow()
    new_plan = await catalog.get(db, new_plan_id)
    if not new_plan.is_active:
        raise ValidationError("Plan is not available")

    subscription = await find_for_user(db, user_id)
    if not subscription:
        raise NotFound("No existing subscription found")

    proration = compute_proration(subscription.plan.price, subscription.end_date, new_plan.price, now)

    payment = await ledger.record(db, {
        "user_id": user_id,
        "plan_id": new_plan.id,
        "subscription_id": subscription.id,
        "amount": proration.final_amount,
        "gateway": gateway,
        "status": PaymentStatus.PENDING,
        "purpose": PaymentPurpose.UPGRADE,
        "payment_date": now,
    })

    subscription.plan = new_plan
    subscription.amount = new_plan.price
    subscription.apply_status(SubscriptionStatus.PENDING_PAYMENT)
    await _save(db, subscription)

    logger.info(
        f"Upgrade initiated for user {user_id} to plan {new_plan.name}: "
        f"refund={proration.refund_amount} final={proration.final_amount} txn={payment.transaction_id}"
    )
    return subscription, payment, proration


async def process_subscription_payment(
    db: AsyncSession,
    user_id: uuid.UUID,
    plan_id: uuid.UUID,
    gateway: PaymentGateway = PaymentGateway.STRIPE,
    now: Optional[datetime] = None,
) -> Tuple[Payment, Plan, Proration]:
    """
    Records a pending, simulated payment for a plan purchase; settlement is
    scheduled by the caller once the transaction is committed.
    Existing subscribers get a prorated upgrade, new ones pay full price.
    """
    now = now or utcnow()
    plan = await catalog.get(db, plan_id)
    if not plan.is_active:
        raise ValidationError("Plan is not available")

    current = await find_for_user(db, user_id)
    if current is not None:
        proration = compute_proration(current.plan.price, current.end_date, plan.price, now)
    else:
        proration = Proration(remaining_days=0, refund_amount=0, final_amount=plan.price)

    payment = await ledger.record(db, {
        "user_id": user_id,
        "plan_id": plan.id,
        "subscription_id": current.id if current else None,
        "amount": proration.final_amount,
        "gateway": gateway,
        "status": PaymentStatus.PENDING,
        "purpose": PaymentPurpose.UPGRADE if current else PaymentPurpose.SUBSCRIPTION,
        "payment_date": now,
        "is_simulated": True,
    })
    logger.info(f"Payment initiated for user {user_id}: plan={plan.name} txn={payment.transaction_id}")
    return payment, plan, proration


# ────────────────────────────────────────────────
# Settlement (simulated completion or gateway confirmation)
# ────────────────────────────────────────────────
async def settle_payment(
    db: AsyncSession,
    payment_id: uuid.UUID,
    success: bool = True,
    reason: str = "Payment processing failed",
    now: Optional[datetime] = None,
) -> Optional[Payment]:
    """
    Success: payment completed, subscription upserted to active with
    end_date = now + plan.duration and amount = plan.price.
    Failure: payment failed with reason, linked subscription → payment_failed.
    Already-settled payments are left untouched.
    """
    now = now or utcnow()
    payment = await db.get(Payment, payment_id)
    if payment is None:
        logger.warning(f"Settlement skipped: payment {payment_id} no longer exists")
        return None
    if payment.is_final:
        logger.info(f"Settlement skipped: payment {payment.transaction_id} already {payment.status.value}")
        return payment

    if not success:
        await fail_payment(db, payment, reason)
        return payment

    ledger.mark_completed(payment, paid_at=now)
    plan = await catalog.get(db, payment.plan_id)

    subscription = await find_for_user(db, payment.user_id)
    if subscription is None:
        subscription = Subscription(
            user_id=payment.user_id,
            plan=plan,
            start_date=now,
            end_date=now + timedelta(days=plan.duration),
            amount=plan.price,
        )
        db.add(subscription)
    else:
        subscription.plan = plan
        subscription.end_date = now + timedelta(days=plan.duration)
        subscription.amount = plan.price
    subscription.apply_status(SubscriptionStatus.ACTIVE)
    await db.flush()

    payment.subscription_id = subscription.id
    await _save(db, subscription)
    logger.info(f"Payment {payment.transaction_id} settled; subscription {subscription.id} active")
    return payment


async def fail_payment(db: AsyncSession, payment: Payment, reason: str) -> None:
    """Mark a pending payment failed and the linked subscription payment_failed."""
    ledger.mark_failed(payment, reason)
    if payment.subscription_id:
        subscription = await db.get(Subscription, payment.subscription_id)
        if subscription is not None:
            subscription.apply_status(SubscriptionStatus.PAYMENT_FAILED)
            await _save(db, subscription)
            logger.info(f"Subscription {subscription.id} marked payment_failed")
            return
    await db.flush()


# ────────────────────────────────────────────────
# Status transitions
# ────────────────────────────────────────────────
async def cancel(
    db: AsyncSession,
    gateway: PaymentGatewayClient,
    subscription: Subscription,
) -> Subscription:
    """
    Gateway cancellation is best-effort: failures are logged and the local
    transition to cancelled always happens.
    """
    if subscription.stripe_subscription_id:
        try:
            await gateway.cancel_subscription(subscription.stripe_subscription_id)
        except Exception as e:
            logger.warning(
                f"Gateway cancellation failed for {subscription.stripe_subscription_id}: {e}",
                exc_info=True,
            )

    subscription.apply_status(SubscriptionStatus.CANCELLED)
    subscription.auto_renew = False
    await _save(db, subscription)
    logger.info(f"Subscription {subscription.id} cancelled")
    return subscription


async def renew(
    db: AsyncSession,
    subscription: Subscription,
    new_end_date: Optional[datetime] = None,
) -> Subscription:
    """end_date = new_end_date or now + DEFAULT_RENEWAL_DAYS (30), independent of plan.duration."""
    subscription.apply_status(SubscriptionStatus.ACTIVE)
    subscription.end_date = new_end_date or utcnow() + timedelta(days=settings.DEFAULT_RENEWAL_DAYS)
    await _save(db, subscription)
    logger.info(f"Subscription {subscription.id} renewed until {as_utc(subscription.end_date).isoformat()}")
    return subscription


async def activate(db: AsyncSession, subscription: Subscription) -> Subscription:
    subscription.apply_status(SubscriptionStatus.ACTIVE)
    await _save(db, subscription)
    logger.info(f"Subscription {subscription.id} activated")
    return subscription


async def deactivate(db: AsyncSession, subscription: Subscription) -> Subscription:
    subscription.apply_status(SubscriptionStatus.EXPIRED)
    await _save(db, subscription)
    logger.info(f"Subscription {subscription.id} deactivated")
    return subscription


async def update(db: AsyncSession, subscription: Subscription, attrs: Dict[str, Any]) -> Subscription:
    """Admin partial update of non-status fields."""
    for field in ("auto_renew", "end_date", "expiry_message"):
        if attrs.get(field) is not None:
            setattr(subscription, field, attrs[field])
    await _save(db, subscription)
    logger.info(f"Subscription {subscription.id} updated: {sorted(k for k, v in attrs.items() if v is not None)}")
    return subscription


async def expire_due(db: AsyncSession, now: Optional[datetime] = None) -> int:
    """Expire every active, non-auto-renewing subscription whose term has ended."""
    now = now or utcnow()
    result = await db.scalars(
        select(Subscription).where(
            Subscription.status == SubscriptionStatus.ACTIVE,
            Subscription.auto_renew.is_(False),
            Subscription.end_date < now,
        )
    )
    expired = 0
    for subscription in result.all():
        subscription.apply_status(SubscriptionStatus.EXPIRED)
        subscription.expiry_message = subscription.expiry_message or "Subscription term ended"
        await _save(db, subscription)
        expired += 1

    if expired:
        logger.info(f"Expired {expired} subscription(s) due before {now.isoformat()}")
    return expired


# ────────────────────────────────────────────────
# Hosted checkout
# ────────────────────────────────────────────────
async def create_checkout_session(
    db: AsyncSession,
    gateway: PaymentGatewayClient,
    user_id: uuid.UUID,
    plan_id: uuid.UUID,
) -> Dict[str, Any]:
    plan = await catalog.get(db, plan_id)
    user = await db.get(User, user_id)
    if not user:
        raise NotFound("User not found")

    if not user.stripe_customer_id:
        user.stripe_customer_id = await gateway.create_customer(
            email=user.email,
            name=user.name,
            metadata={"userId": str(user.id)},
        )
        await db.flush()

    subscription = await find_for_user(db, user_id)
    if subscription is not None and subscription.stripe_customer_id != user.stripe_customer_id:
        subscription.stripe_customer_id = user.stripe_customer_id
        await db.flush()

    session = await gateway.create_checkout_session(
        customer_id=user.stripe_customer_id,
        plan=plan,
        metadata={"userId": str(user.id), "planId": str(plan.id)},
        success_url=f"{settings.FRONTEND_URL}/payment/success?session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{settings.FRONTEND_URL}/payment/cancel",
    )
    logger.info(f"Checkout session {session['id']} created for user {user.id} plan {plan.name}")
    return session
