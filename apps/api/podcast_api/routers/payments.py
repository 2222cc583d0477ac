# apps/api/podcast_api/routers/payments.py
"""
Payments Router - Podcast Platform
Ledger entries, simulated subscription purchase, history and admin reporting.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, Field

from podcast_api.core.deps import CurrentAdminUser, CurrentUser, DBSession, Settlement
from podcast_api.core.enums import Currency, PaymentGateway, PaymentPurpose, PaymentStatus
from podcast_api.core.errors import Forbidden
from podcast_api.routers.schemas import PaymentOut, PlanOut, UTCDateTime
from podcast_api.services import payments as ledger
from podcast_api.services import subscriptions as lifecycle

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])


# ────────────────────────────────────────────────
# Models
# ────────────────────────────────────────────────
class PaymentCreate(BaseModel):
    """Purpose / gateway / status / currency are validated by the ledger."""
    plan_id: uuid.UUID
    user_id: Optional[uuid.UUID] = Field(None, description="Admins may record on behalf of another user")
    amount: int = Field(..., ge=0, description="Minor currency units")
    payment_gateway: str
    purpose: str
    payment_status: Optional[str] = None
    currency: Optional[str] = None
    transactionId: Optional[str] = Field(None, max_length=255)
    subscription_id: Optional[uuid.UUID] = None
    failure_reason: Optional[str] = None


class PaymentResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    transactionId: str
    payment: PaymentOut


class ProcessSubscriptionRequest(BaseModel):
    planId: uuid.UUID
    paymentMethod: PaymentGateway = PaymentGateway.STRIPE


class InitiatedPayment(BaseModel):
    transactionId: str
    amount: int
    refundAmount: int
    finalAmount: int
    planName: str


class ProcessSubscriptionResponse(BaseModel):
    success: bool = True
    message: str
    payment: InitiatedPayment


class PaymentStatusOut(BaseModel):
    transactionId: str
    amount: int
    currency: Currency
    status: PaymentStatus
    purpose: PaymentPurpose
    plan: PlanOut
    paymentDate: UTCDateTime
    paidAt: Optional[UTCDateTime] = None
    failureReason: str


class PaymentHistoryResponse(BaseModel):
    success: bool = True
    payments: List[PaymentOut]
    totalPayments: int


class PaymentListResponse(BaseModel):
    success: bool = True
    payments: List[PaymentOut]
    pagination: Dict[str, int]


class AnalyticsResponse(BaseModel):
    success: bool = True
    analytics: Dict[str, Any]


# ────────────────────────────────────────────────
# Record / initiate
# ────────────────────────────────────────────────
@router.post("/create", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
async def create_payment(payload: PaymentCreate, current_user: CurrentUser, db: DBSession):
    user_id = payload.user_id or current_user.id
    if user_id != current_user.id and not current_user.is_admin:
        raise Forbidden("Cannot record payments for another user")

    payment = await ledger.record(db, {
        "user_id": user_id,
        "plan_id": payload.plan_id,
        "amount": payload.amount,
        "gateway": payload.payment_gateway,
        "purpose": payload.purpose,
        "status": payload.payment_status,
        "currency": payload.currency,
        "transaction_id": payload.transactionId,
        "subscription_id": payload.subscription_id,
        "failure_reason": payload.failure_reason,
    })
    await db.commit()
    return {
        "message": "Payment created successfully",
        "transactionId": payment.transaction_id,
        "payment": payment,
    }


@router.post("/process-subscription", response_model=ProcessSubscriptionResponse)
async def process_subscription_payment(
    payload: ProcessSubscriptionRequest,
    current_user: CurrentUser,
    db: DBSession,
    settlement: Settlement,
):
    """
    Records a pending payment and returns immediately; settlement runs
    out-of-band after PAYMENT_SIMULATION_DELAY_SECONDS.
    """
    payment, plan, proration = await lifecycle.process_subscription_payment(
        db, current_user.id, payload.planId, gateway=payload.paymentMethod
    )
    await db.commit()
    settlement.schedule(payment.id)

    return {
        "message": "Payment initiated",
        "payment": {
            "transactionId": payment.transaction_id,
            "amount": proration.final_amount,
            "refundAmount": proration.refund_amount,
            "finalAmount": proration.final_amount,
            "planName": plan.name,
        },
    }


# ────────────────────────────────────────────────
# Reads
# ────────────────────────────────────────────────
@router.get("/status/{transaction_id}")
async def get_payment_status(transaction_id: str, current_user: CurrentUser, db: DBSession):
    payment = await ledger.get_by_transaction_id(db, transaction_id)
    if payment.user_id != current_user.id and not current_user.is_admin:
        raise Forbidden("You do not have access to this payment")

    out = PaymentStatusOut(
        transactionId=payment.transaction_id,
        amount=payment.amount,
        currency=payment.currency,
        status=payment.status,
        purpose=payment.purpose,
        plan=PlanOut.model_validate(payment.plan),
        paymentDate=payment.payment_date,
        paidAt=payment.paid_at,
        failureReason=payment.failure_reason,
    )
    return {"success": True, "payment": out}


@router.get("/history", response_model=PaymentHistoryResponse)
async def get_payment_history(current_user: CurrentUser, db: DBSession):
    payments = await ledger.history_for_user(db, current_user.id)
    return {"payments": payments, "totalPayments": len(payments)}


@router.get("/all", response_model=PaymentListResponse)
async def get_all_payments(
    current_user: CurrentAdminUser,
    db: DBSession,
    payment_status: Optional[str] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
):
    payments, pagination = await ledger.list_all(db, status=payment_status, page=page, limit=limit)
    return {"payments": payments, "pagination": pagination}


@router.get("/analytics", response_model=AnalyticsResponse)
async def get_payment_analytics(
    current_user: CurrentAdminUser,
    db: DBSession,
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
):
    analytics = await ledger.aggregate_analytics(db, start_date, end_date)
    analytics["period"] = {
        "startDate": start_date.isoformat() if start_date else None,
        "endDate": end_date.isoformat() if end_date else None,
    }
    return {"analytics": analytics}
