# apps/api/tests/test_subscriptions.py
"""Subscription lifecycle: service-level transitions plus the HTTP surface."""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.orm.exc import StaleDataError

from podcast_api.core.enums import (
    PaymentGateway,
    PaymentPurpose,
    PaymentStatus,
    SubscriptionStatus,
    SubscriptionTier,
)
from podcast_api.core.errors import Conflict, NotFound, ValidationError
from podcast_api.db.models import Payment, Subscription, User
from podcast_api.db.models.utils import as_utc, utcnow
from podcast_api.services import subscriptions as lifecycle

from conftest import FakeGateway, auth_headers


async def _subscribe(db, user, plan, days_left=15, status=SubscriptionStatus.ACTIVE, **extra):
    now = utcnow()
    subscription = Subscription(
        user_id=user.id,
        plan=plan,
        start_date=now - timedelta(days=30 - days_left),
        end_date=now + timedelta(days=days_left),
        amount=plan.price,
        **extra,
    )
    subscription.apply_status(status)
    db.add(subscription)
    await db.commit()
    return subscription


# ────────────────────────────────────────────────
# Free tier
# ────────────────────────────────────────────────
async def test_free_subscription_is_active_for_seven_days(db, user, plans):
    now = utcnow()
    subscription = await lifecycle.create_free_subscription(db, user.id, now=now)
    await db.commit()

    assert subscription.status == SubscriptionStatus.ACTIVE
    assert subscription.is_active is True
    assert subscription.amount == 0
    assert subscription.plan_id == plans["free"].id
    assert as_utc(subscription.end_date) - now == timedelta(days=7)

    refreshed = await db.get(User, user.id)
    assert refreshed.subscription_type == SubscriptionTier.FREE
    assert refreshed.subscription_status == SubscriptionStatus.ACTIVE.value


async def test_second_free_subscription_conflicts(db, user, plans):
    await lifecycle.create_free_subscription(db, user.id)
    await db.commit()

    with pytest.raises(Conflict):
        await lifecycle.create_free_subscription(db, user.id)


async def test_free_subscription_requires_free_plan(db, user):
    with pytest.raises(NotFound, match="Free plan not found"):
        await lifecycle.create_free_subscription(db, user.id)


async def test_free_subscription_for_unknown_user(db, plans):
    import uuid

    with pytest.raises(NotFound, match="User not found"):
        await lifecycle.create_free_subscription(db, uuid.uuid4())


# ────────────────────────────────────────────────
# Upgrade
# ────────────────────────────────────────────────
async def test_upgrade_prorates_and_switches_plan(db, user, plans):
    subscription = await _subscribe(db, user, plans["basic"], days_left=15)
    now = as_utc(subscription.end_date) - timedelta(days=15)

    subscription, payment, proration = await lifecycle.initiate_upgrade(
        db, user.id, plans["pro"].id, gateway=PaymentGateway.STRIPE, now=now
    )
    await db.commit()

    assert (proration.remaining_days, proration.refund_amount, proration.final_amount) == (15, 500, 1500)
    assert payment.amount == 1500
    assert payment.status == PaymentStatus.PENDING
    assert payment.purpose == PaymentPurpose.UPGRADE
    assert payment.subscription_id == subscription.id

    assert subscription.plan_id == plans["pro"].id
    assert subscription.amount == 2000
    assert subscription.status == SubscriptionStatus.PENDING_PAYMENT
    assert subscription.is_active is False


async def test_upgrade_without_subscription_is_not_found(db, user, plans):
    with pytest.raises(NotFound, match="No existing subscription found"):
        await lifecycle.initiate_upgrade(db, user.id, plans["pro"].id)


async def test_upgrade_to_inactive_plan_is_rejected(db, user, plans):
    await _subscribe(db, user, plans["basic"])
    plans["pro"].is_active = False
    await db.commit()

    with pytest.raises(ValidationError):
        await lifecycle.initiate_upgrade(db, user.id, plans["pro"].id)


# ────────────────────────────────────────────────
# Settlement outcome
# ────────────────────────────────────────────────
async def test_settle_success_activates_for_plan_duration(db, user, plans):
    payment, plan, _ = await lifecycle.process_subscription_payment(db, user.id, plans["pro"].id)
    await db.commit()
    assert payment.purpose == PaymentPurpose.SUBSCRIPTION
    assert payment.amount == 2000

    now = utcnow()
    await lifecycle.settle_payment(db, payment.id, success=True, now=now)
    await db.commit()

    subscription = await lifecycle.get_for_user(db, user.id)
    assert payment.status == PaymentStatus.COMPLETED
    assert payment.subscription_id == subscription.id
    assert subscription.status == SubscriptionStatus.ACTIVE
    assert subscription.amount == 2000
    assert as_utc(subscription.end_date) == now + timedelta(days=30)

    refreshed = await db.get(User, user.id)
    assert refreshed.subscription_type == SubscriptionTier.PREMIUM
    assert refreshed.storage_quota_mb == 5000


async def test_settle_failure_marks_payment_and_subscription(db, user, plans):
    await _subscribe(db, user, plans["basic"])
    _, payment, _ = await lifecycle.initiate_upgrade(db, user.id, plans["pro"].id)
    await db.commit()

    await lifecycle.settle_payment(db, payment.id, success=False, reason="Card declined")
    await db.commit()

    subscription = await lifecycle.get_for_user(db, user.id)
    assert payment.status == PaymentStatus.FAILED
    assert payment.failure_reason == "Card declined"
    assert subscription.status == SubscriptionStatus.PAYMENT_FAILED
    assert subscription.is_active is False
    # plan switch is optimistic and stays in place
    assert subscription.plan_id == plans["pro"].id


async def test_settling_twice_leaves_final_payment_alone(db, user, plans):
    payment, _, _ = await lifecycle.process_subscription_payment(db, user.id, plans["basic"].id)
    await lifecycle.settle_payment(db, payment.id, success=True)
    await lifecycle.settle_payment(db, payment.id, success=False)
    await db.commit()

    assert payment.status == PaymentStatus.COMPLETED


# ────────────────────────────────────────────────
# Cancel / renew / expire
# ────────────────────────────────────────────────
async def test_cancel_calls_gateway_and_clears_auto_renew(db, user, plans):
    gateway = FakeGateway()
    subscription = await _subscribe(db, user, plans["pro"], stripe_subscription_id="sub_123")

    await lifecycle.cancel(db, gateway, subscription)
    await db.commit()

    assert gateway.cancelled == ["sub_123"]
    assert subscription.status == SubscriptionStatus.CANCELLED
    assert subscription.is_active is False
    assert subscription.auto_renew is False


async def test_cancel_succeeds_locally_when_gateway_fails(db, user, plans):
    gateway = FakeGateway(fail_cancel=True)
    subscription = await _subscribe(db, user, plans["pro"], stripe_subscription_id="sub_456")

    await lifecycle.cancel(db, gateway, subscription)
    await db.commit()

    assert gateway.cancelled == []
    assert subscription.status == SubscriptionStatus.CANCELLED


async def test_renew_defaults_to_thirty_days(db, user, plans):
    subscription = await _subscribe(db, user, plans["basic"], status=SubscriptionStatus.EXPIRED)
    before = utcnow()

    await lifecycle.renew(db, subscription)
    await db.commit()

    assert subscription.status == SubscriptionStatus.ACTIVE
    assert subscription.is_active is True
    delta = as_utc(subscription.end_date) - before
    assert timedelta(days=30) <= delta < timedelta(days=30, seconds=5)


async def test_renew_with_explicit_end_date(db, user, plans):
    subscription = await _subscribe(db, user, plans["basic"], status=SubscriptionStatus.CANCELLED)
    target = utcnow() + timedelta(days=90)

    await lifecycle.renew(db, subscription, target)
    await db.commit()

    assert as_utc(subscription.end_date) == target


async def test_expire_due_only_touches_ended_non_renewing(db, user, other_user, host, plans):
    ended = await _subscribe(db, user, plans["basic"], days_left=-1, auto_renew=False)
    renewing = await _subscribe(db, other_user, plans["basic"], days_left=-1, auto_renew=True)
    running = await _subscribe(db, host, plans["basic"], days_left=10, auto_renew=False)

    assert await lifecycle.expire_due(db) == 1
    await db.commit()

    assert ended.status == SubscriptionStatus.EXPIRED
    assert ended.is_active is False
    assert renewing.status == SubscriptionStatus.ACTIVE
    assert running.status == SubscriptionStatus.ACTIVE


async def test_concurrent_modification_is_detected(session_factory, db, user, plans):
    subscription = await _subscribe(db, user, plans["basic"])

    async with session_factory() as first, session_factory() as second:
        a = await first.get(Subscription, subscription.id)
        b = await second.get(Subscription, subscription.id)

        a.auto_renew = False
        await first.commit()

        b.expiry_message = "stale write"
        with pytest.raises(StaleDataError):
            await second.flush()


# ────────────────────────────────────────────────
# HTTP surface
# ────────────────────────────────────────────────
async def test_http_create_free_subscription_twice(client, user, plans):
    first = await client.post(f"/subscriptions/createFreeSubscription/{user.id}")
    assert first.status_code == 201
    assert first.json()["subscription"]["status"] == "active"

    second = await client.post(f"/subscriptions/createFreeSubscription/{user.id}")
    assert second.status_code == 409
    assert second.json()["error_code"] == "SUBSCRIPTION_EXISTS"


async def test_http_get_user_subscription_not_found(client, user):
    response = await client.get("/subscriptions/getUserSubscription", headers=auth_headers(user))
    assert response.status_code == 404
    assert response.json()["detail"] == "No subscription found"


async def test_http_requires_authentication(client):
    response = await client.get("/subscriptions/getUserSubscription")
    assert response.status_code == 401


async def test_http_upgrade_response(client, db, user, plans):
    await _subscribe(db, user, plans["basic"], days_left=15)

    response = await client.put(
        "/subscriptions/upgradeSubscription",
        json={"newPlanId": str(plans["pro"].id), "paymentGateway": "stripe"},
        headers=auth_headers(user),
    )
    assert response.status_code == 200
    body = response.json()
    assert body["subscription"]["status"] == "pending_payment"
    assert body["subscription"]["plan"]["name"] == "Pro"
    assert body["payment"]["refundAmount"] in (467, 500)  # 14 or 15 days depending on the clock
    assert body["payment"]["amount"] == 2000 - body["payment"]["refundAmount"]
    assert body["payment"]["planName"] == "Pro"


async def test_http_upgrade_accepts_post(client, db, user, plans):
    await _subscribe(db, user, plans["basic"])
    response = await client.post(
        "/subscriptions/upgradeSubscription",
        json={"newPlanId": str(plans["pro"].id)},
        headers=auth_headers(user),
    )
    assert response.status_code == 200


async def test_http_cancel_by_other_user_is_forbidden(client, db, user, other_user, plans):
    subscription = await _subscribe(db, user, plans["basic"])
    response = await client.put(
        f"/subscriptions/cancelSubscription/{subscription.id}", headers=auth_headers(other_user)
    )
    assert response.status_code == 403


async def test_http_admin_can_cancel_any_subscription(client, db, user, admin, plans, gateway):
    subscription = await _subscribe(db, user, plans["basic"], stripe_subscription_id="sub_admin")
    response = await client.put(
        f"/subscriptions/cancelSubscription/{subscription.id}", headers=auth_headers(admin)
    )
    assert response.status_code == 200
    assert response.json()["subscription"]["status"] == "cancelled"
    assert gateway.cancelled == ["sub_admin"]


async def test_http_renew_with_body(client, db, user, plans):
    subscription = await _subscribe(db, user, plans["basic"], status=SubscriptionStatus.EXPIRED)
    response = await client.post(
        f"/subscriptions/renewSubscription/{subscription.id}",
        json={"newEndDate": "2030-01-01T00:00:00Z"},
        headers=auth_headers(user),
    )
    assert response.status_code == 200
    body = response.json()["subscription"]
    assert body["status"] == "active"
    assert body["end_date"].startswith("2030-01-01T00:00:00")


async def test_http_admin_endpoints_require_admin(client, db, user, admin, plans):
    subscription = await _subscribe(db, user, plans["basic"])

    denied = await client.put(
        f"/subscriptions/deactivateSubscription/{subscription.id}", headers=auth_headers(user)
    )
    assert denied.status_code == 403

    deactivated = await client.put(
        f"/subscriptions/deactivateSubscription/{subscription.id}", headers=auth_headers(admin)
    )
    assert deactivated.json()["subscription"]["status"] == "expired"

    activated = await client.put(
        f"/subscriptions/activateSubscription/{subscription.id}", headers=auth_headers(admin)
    )
    assert activated.json()["subscription"]["is_active"] is True

    updated = await client.put(
        f"/subscriptions/updateSubscription/{subscription.id}",
        json={"auto_renew": False, "expiry_message": "See you soon"},
        headers=auth_headers(admin),
    )
    assert updated.json()["subscription"]["auto_renew"] is False
    assert updated.json()["subscription"]["expiry_message"] == "See you soon"

    listing = await client.get("/subscriptions/getAllSubscriptions", headers=auth_headers(admin))
    assert len(listing.json()["subscriptions"]) == 1


async def test_http_checkout_session_caches_customer(client, session_factory, user, plans, gateway):
    for _ in range(2):
        response = await client.post(
            "/subscriptions/createCheckoutSession",
            json={"planId": str(plans["pro"].id)},
            headers=auth_headers(user),
        )
        assert response.status_code == 200
        assert response.json()["sessionId"].startswith("cs_test_")

    assert len(gateway.customers) == 1
    assert [c["customer_id"] for c in gateway.checkouts] == ["cus_test_1", "cus_test_1"]
    assert gateway.checkouts[0]["amount"] == 2000

    async with session_factory() as session:
        stored = await session.get(User, user.id)
        assert stored.stripe_customer_id == "cus_test_1"


async def test_http_process_subscription_settles_in_background(client, session_factory, user, plans, settlement):
    response = await client.post(
        "/payments/process-subscription",
        json={"planId": str(plans["basic"].id), "paymentMethod": "stripe"},
        headers=auth_headers(user),
    )
    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Payment initiated"
    assert body["payment"]["finalAmount"] == 1000
    assert body["payment"]["refundAmount"] == 0

    for _ in range(200):
        if not len(settlement):
            break
        await asyncio.sleep(0.01)

    async with session_factory() as session:
        payment = await session.scalar(
            select(Payment).where(Payment.transaction_id == body["payment"]["transactionId"])
        )
        subscription = await lifecycle.find_for_user(session, user.id)
    assert payment.status == PaymentStatus.COMPLETED
    assert subscription.status == SubscriptionStatus.ACTIVE
    assert subscription.plan_id == plans["basic"].id
