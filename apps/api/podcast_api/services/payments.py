# apps/api/podcast_api/services/payments.py
"""
Payment Ledger Service - Podcast Platform
Append-mostly record of monetary transactions.
- Amounts are integer minor currency units
- transaction_id is globally unique (unique index; duplicates → Conflict)
- Status only moves forward: pending → completed | failed
"""

import logging
import math
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from podcast_api.core.config import settings
from podcast_api.core.enums import Currency, PaymentGateway, PaymentPurpose, PaymentStatus
from podcast_api.core.errors import Conflict, NotFound, ValidationError
from podcast_api.db.models import Payment, Plan
from podcast_api.db.models.utils import generate_transaction_id, utcnow

logger = logging.getLogger(__name__)


def _coerce_enum(enum_cls, value: Any, field: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"Invalid {field}: {value!r} (allowed: {allowed})")


# ────────────────────────────────────────────────
# Writes
# ────────────────────────────────────────────────
async def record(db: AsyncSession, attrs: Dict[str, Any]) -> Payment:
    """
    Persist a new ledger entry.
    Required: user_id, plan_id, amount, gateway, purpose.
    Optional: status (default pending), currency, transaction_id (generated),
    subscription_id, payment_date, paid_at, is_simulated, stripe_* ids.
    """
    for field in ("user_id", "plan_id", "amount", "gateway", "purpose"):
        if attrs.get(field) is None:
            raise ValidationError(f"Missing required field: {field}")

    amount = attrs["amount"]
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        raise ValidationError("amount must be a non-negative integer in minor units")

    payment = Payment(
        user_id=attrs["user_id"],
        plan_id=attrs["plan_id"],
        subscription_id=attrs.get("subscription_id"),
        amount=amount,
        currency=_coerce_enum(Currency, attrs.get("currency") or settings.DEFAULT_CURRENCY, "currency"),
        gateway=_coerce_enum(PaymentGateway, attrs["gateway"], "gateway"),
        status=_coerce_enum(PaymentStatus, attrs.get("status") or PaymentStatus.PENDING, "status"),
        purpose=_coerce_enum(PaymentPurpose, attrs["purpose"], "purpose"),
        transaction_id=attrs.get("transaction_id") or generate_transaction_id(),
        payment_date=attrs.get("payment_date") or utcnow(),
        paid_at=attrs.get("paid_at"),
        failure_reason=attrs.get("failure_reason") or "",
        is_simulated=bool(attrs.get("is_simulated", False)),
        stripe_session_id=attrs.get("stripe_session_id"),
        stripe_invoice_id=attrs.get("stripe_invoice_id"),
    )
    db.add(payment)
    try:
        await db.flush()
    except IntegrityError as e:
        raise Conflict(
            f"Duplicate transaction id: {payment.transaction_id}",
            error_code="DUPLICATE_TRANSACTION",
        ) from e

    logger.info(
        f"Payment recorded: {payment.transaction_id} user={payment.user_id} "
        f"amount={payment.amount} {payment.currency.value} purpose={payment.purpose.value} "
        f"status={payment.status.value}"
    )
    return payment


def _ensure_pending(payment: Payment, target: PaymentStatus) -> None:
    if payment.status != PaymentStatus.PENDING:
        raise Conflict(
            f"Payment {payment.transaction_id} is already {payment.status.value}; "
            f"cannot move to {target.value}",
            error_code="PAYMENT_ALREADY_FINAL",
        )


def mark_completed(payment: Payment, paid_at: Optional[datetime] = None) -> Payment:
    _ensure_pending(payment, PaymentStatus.COMPLETED)
    payment.status = PaymentStatus.COMPLETED
    payment.paid_at = paid_at or utcnow()
    payment.failure_reason = ""
    logger.info(f"Payment completed: {payment.transaction_id}")
    return payment


def mark_failed(payment: Payment, reason: str) -> Payment:
    _ensure_pending(payment, PaymentStatus.FAILED)
    payment.status = PaymentStatus.FAILED
    payment.failure_reason = reason
    logger.info(f"Payment failed: {payment.transaction_id} ({reason})")
    return payment


# ────────────────────────────────────────────────
# Reads
# ────────────────────────────────────────────────
async def find_by_transaction_id(db: AsyncSession, transaction_id: str) -> Optional[Payment]:
    return await db.scalar(select(Payment).where(Payment.transaction_id == transaction_id))


async def get_by_transaction_id(db: AsyncSession, transaction_id: str) -> Payment:
    payment = await find_by_transaction_id(db, transaction_id)
    if not payment:
        raise NotFound("Payment not found")
    return payment


async def history_for_user(db: AsyncSession, user_id: uuid.UUID) -> List[Payment]:
    result = await db.scalars(
        select(Payment)
        .where(Payment.user_id == user_id)
        .order_by(Payment.payment_date.desc())
    )
    return list(result.all())


async def list_pending_simulated(db: AsyncSession) -> List[Payment]:
    result = await db.scalars(
        select(Payment)
        .where(Payment.status == PaymentStatus.PENDING, Payment.is_simulated.is_(True))
        .order_by(Payment.payment_date.asc())
    )
    return list(result.all())


async def list_all(
    db: AsyncSession,
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
) -> Tuple[List[Payment], Dict[str, int]]:
    """Admin listing, newest first. Returns (payments, pagination)."""
    page = max(page, 1)
    limit = max(limit, 1)

    conditions = []
    if status:
        conditions.append(Payment.status == _coerce_enum(PaymentStatus, status, "status"))

    total = await db.scalar(select(func.count()).select_from(Payment).where(*conditions)) or 0
    result = await db.scalars(
        select(Payment)
        .where(*conditions)
        .order_by(Payment.payment_date.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    pagination = {
        "currentPage": page,
        "totalPages": math.ceil(total / limit),
        "totalPayments": total,
    }
    return list(result.all()), pagination


async def aggregate_analytics(
    db: AsyncSession,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Read-only reporting view:
    - totalRevenue: sum of completed payments
    - paymentStats: count/total per status
    - planStats: completed revenue and count per plan
    """
    conditions = []
    if start_date:
        conditions.append(Payment.payment_date >= start_date)
    if end_date:
        conditions.append(Payment.payment_date <= end_date)

    status_rows = await db.execute(
        select(Payment.status, func.count(Payment.id), func.coalesce(func.sum(Payment.amount), 0))
        .where(*conditions)
        .group_by(Payment.status)
    )
    payment_stats = [
        {"status": status.value, "count": count, "total": int(total)}
        for status, count, total in status_rows.all()
    ]
    total_revenue = sum(s["total"] for s in payment_stats if s["status"] == PaymentStatus.COMPLETED.value)

    plan_rows = await db.execute(
        select(Plan.id, Plan.name, func.count(Payment.id), func.coalesce(func.sum(Payment.amount), 0))
        .join(Plan, Plan.id == Payment.plan_id)
        .where(Payment.status == PaymentStatus.COMPLETED, *conditions)
        .group_by(Plan.id, Plan.name)
        .order_by(func.sum(Payment.amount).desc())
    )
    plan_stats = [
        {"planId": str(plan_id), "planName": name, "count": count, "revenue": int(revenue)}
        for plan_id, name, count, revenue in plan_rows.all()
    ]

    return {
        "totalRevenue": total_revenue,
        "paymentStats": payment_stats,
        "planStats": plan_stats,
    }
