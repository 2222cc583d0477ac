# apps/api/tests/test_settlement.py
"""Deferred settlement of simulated payments."""

import asyncio
from datetime import timedelta

from podcast_api.core.enums import PaymentGateway, PaymentPurpose, PaymentStatus, SubscriptionStatus
from podcast_api.db.models import Payment
from podcast_api.db.models.utils import utcnow
from podcast_api.services import payments as ledger
from podcast_api.services import subscriptions as lifecycle
from podcast_api.services.settlement import FAILURE_REASON


async def _pending_payment(db, user, plan, simulated=True, age_seconds=0.0):
    payment = await ledger.record(db, {
        "user_id": user.id,
        "plan_id": plan.id,
        "amount": plan.price,
        "gateway": PaymentGateway.STRIPE,
        "purpose": PaymentPurpose.SUBSCRIPTION,
        "payment_date": utcnow() - timedelta(seconds=age_seconds),
        "is_simulated": simulated,
    })
    await db.commit()
    return payment


async def _status(session_factory, payment_id):
    async with session_factory() as session:
        payment = await session.get(Payment, payment_id)
        return payment.status, payment.failure_reason


async def _drain(scheduler, attempts=200):
    for _ in range(attempts):
        if not len(scheduler):
            return
        await asyncio.sleep(0.01)


async def test_scheduled_payment_settles_and_activates(db, session_factory, settlement, user, plans):
    payment = await _pending_payment(db, user, plans["pro"])

    await settlement.schedule(payment.id, delay=0)

    status, _ = await _status(session_factory, payment.id)
    assert status == PaymentStatus.COMPLETED
    async with session_factory() as session:
        subscription = await lifecycle.find_for_user(session, user.id)
    assert subscription.status == SubscriptionStatus.ACTIVE
    assert subscription.plan_id == plans["pro"].id


async def test_settlement_error_marks_payment_failed(db, session_factory, settlement, user, plans, monkeypatch):
    payment = await _pending_payment(db, user, plans["pro"])
    original = lifecycle.settle_payment

    async def flaky_settle(session, payment_id, success=True, **kwargs):
        if success:
            raise RuntimeError("processor exploded")
        return await original(session, payment_id, success=success, **kwargs)

    monkeypatch.setattr(lifecycle, "settle_payment", flaky_settle)

    await settlement.schedule(payment.id, delay=0)

    status, reason = await _status(session_factory, payment.id)
    assert status == PaymentStatus.FAILED
    assert reason == FAILURE_REASON


async def test_cancel_leaves_payment_pending(db, session_factory, settlement, user, plans):
    payment = await _pending_payment(db, user, plans["basic"])

    settlement.schedule(payment.id, delay=30)
    assert settlement.is_scheduled(payment.id)
    assert settlement.cancel(payment.id) is True
    assert settlement.cancel(payment.id) is False
    assert not settlement.is_scheduled(payment.id)

    status, _ = await _status(session_factory, payment.id)
    assert status == PaymentStatus.PENDING


async def test_rescheduling_replaces_previous_task(db, settlement, user, plans):
    payment = await _pending_payment(db, user, plans["basic"])

    first = settlement.schedule(payment.id, delay=30)
    second = settlement.schedule(payment.id, delay=30)
    await asyncio.sleep(0)

    assert first.cancelled()
    assert not second.done()
    assert len(settlement) == 1


async def test_rehydrate_picks_up_pending_simulated_payments(db, session_factory, settlement, user, other_user, plans):
    overdue = await _pending_payment(db, user, plans["basic"], age_seconds=60)
    manual = await _pending_payment(db, other_user, plans["basic"], simulated=False)

    assert await settlement.rehydrate() == 1
    assert settlement.is_scheduled(overdue.id)
    assert not settlement.is_scheduled(manual.id)

    await _drain(settlement)
    assert (await _status(session_factory, overdue.id))[0] == PaymentStatus.COMPLETED
    assert (await _status(session_factory, manual.id))[0] == PaymentStatus.PENDING


async def test_shutdown_cancels_outstanding_tasks(db, settlement, user, plans):
    payment = await _pending_payment(db, user, plans["basic"])
    task = settlement.schedule(payment.id, delay=30)

    await settlement.shutdown()

    assert task.cancelled()
    assert len(settlement) == 0
