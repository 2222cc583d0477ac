# apps/api/podcast_api/routers/subscriptions.py
"""
Subscriptions Router - Podcast Platform
Thin adapters over the subscription lifecycle service.
Transitions accept PUT (and POST for clients that only send POST).
"""

import logging
import uuid
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Request, status
from pydantic import BaseModel, Field

from podcast_api.core.deps import CurrentAdminUser, CurrentUser, DBSession, Gateway
from podcast_api.core.enums import PaymentGateway
from podcast_api.middleware.rate_limit import limiter
from podcast_api.routers.schemas import SubscriptionOut
from podcast_api.services import subscriptions as lifecycle

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/subscriptions", tags=["Subscriptions"])

TRANSITION_METHODS = ["PUT", "POST"]


# ────────────────────────────────────────────────
# Models
# ────────────────────────────────────────────────
class SubscriptionResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    subscription: SubscriptionOut


class SubscriptionListResponse(BaseModel):
    success: bool = True
    subscriptions: List[SubscriptionOut]


class UpgradeRequest(BaseModel):
    newPlanId: uuid.UUID
    paymentGateway: PaymentGateway = PaymentGateway.STRIPE


class UpgradePayment(BaseModel):
    transactionId: str
    amount: int
    refundAmount: int
    remainingDays: int
    planName: str


class UpgradeResponse(BaseModel):
    success: bool = True
    message: str
    subscription: SubscriptionOut
    payment: UpgradePayment


class RenewRequest(BaseModel):
    newEndDate: Optional[datetime] = None


class SubscriptionUpdate(BaseModel):
    auto_renew: Optional[bool] = None
    end_date: Optional[datetime] = None
    expiry_message: Optional[str] = Field(None, max_length=1000)


class CheckoutRequest(BaseModel):
    planId: uuid.UUID


class CheckoutResponse(BaseModel):
    success: bool = True
    sessionId: str
    url: Optional[str] = None


class ExpireDueResponse(BaseModel):
    success: bool = True
    expired: int


# ────────────────────────────────────────────────
# Creation
# ────────────────────────────────────────────────
@router.post(
    "/createFreeSubscription/{user_id}",
    response_model=SubscriptionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_free_subscription(user_id: uuid.UUID, db: DBSession):
    subscription = await lifecycle.create_free_subscription(db, user_id)
    await db.commit()
    return {"message": "Free subscription created successfully", "subscription": subscription}


# ────────────────────────────────────────────────
# Queries
# ────────────────────────────────────────────────
@router.get("/getUserSubscription", response_model=SubscriptionResponse)
async def get_user_subscription(current_user: CurrentUser, db: DBSession):
    subscription = await lifecycle.get_for_user(db, current_user.id)
    return {"subscription": subscription}


@router.get("/getAllSubscriptions", response_model=SubscriptionListResponse)
async def get_all_subscriptions(current_user: CurrentAdminUser, db: DBSession):
    return {"subscriptions": await lifecycle.list_all(db)}


@router.get("/getSubscriptionById/{subscription_id}", response_model=SubscriptionResponse)
async def get_subscription_by_id(subscription_id: uuid.UUID, current_user: CurrentUser, db: DBSession):
    subscription = await lifecycle.get(db, subscription_id)
    lifecycle.authorize(subscription, current_user.id, current_user.is_admin)
    return {"subscription": subscription}


# ────────────────────────────────────────────────
# Transitions
# ────────────────────────────────────────────────
@router.api_route("/upgradeSubscription", methods=TRANSITION_METHODS, response_model=UpgradeResponse)
async def upgrade_subscription(payload: UpgradeRequest, current_user: CurrentUser, db: DBSession):
    subscription, payment, proration = await lifecycle.initiate_upgrade(
        db, current_user.id, payload.newPlanId, gateway=payload.paymentGateway
    )
    await db.commit()
    return {
        "message": "Subscription upgrade initiated",
        "subscription": subscription,
        "payment": {
            "transactionId": payment.transaction_id,
            "amount": proration.final_amount,
            "refundAmount": proration.refund_amount,
            "remainingDays": proration.remaining_days,
            "planName": subscription.plan.name,
        },
    }


@router.api_route(
    "/cancelSubscription/{subscription_id}",
    methods=TRANSITION_METHODS,
    response_model=SubscriptionResponse,
)
async def cancel_subscription(
    subscription_id: uuid.UUID,
    current_user: CurrentUser,
    db: DBSession,
    gateway: Gateway,
):
    subscription = await lifecycle.get(db, subscription_id)
    lifecycle.authorize(subscription, current_user.id, current_user.is_admin)
    subscription = await lifecycle.cancel(db, gateway, subscription)
    await db.commit()
    return {"message": "Subscription cancelled successfully", "subscription": subscription}


@router.api_route(
    "/renewSubscription/{subscription_id}",
    methods=TRANSITION_METHODS,
    response_model=SubscriptionResponse,
)
async def renew_subscription(
    subscription_id: uuid.UUID,
    current_user: CurrentUser,
    db: DBSession,
    payload: Optional[RenewRequest] = None,
):
    subscription = await lifecycle.get(db, subscription_id)
    lifecycle.authorize(subscription, current_user.id, current_user.is_admin)
    subscription = await lifecycle.renew(db, subscription, payload.newEndDate if payload else None)
    await db.commit()
    return {"message": "Subscription renewed successfully", "subscription": subscription}


@router.put("/activateSubscription/{subscription_id}", response_model=SubscriptionResponse)
async def activate_subscription(subscription_id: uuid.UUID, current_user: CurrentAdminUser, db: DBSession):
    subscription = await lifecycle.activate(db, await lifecycle.get(db, subscription_id))
    await db.commit()
    return {"message": "Subscription activated successfully", "subscription": subscription}


@router.put("/deactivateSubscription/{subscription_id}", response_model=SubscriptionResponse)
async def deactivate_subscription(subscription_id: uuid.UUID, current_user: CurrentAdminUser, db: DBSession):
    subscription = await lifecycle.deactivate(db, await lifecycle.get(db, subscription_id))
    await db.commit()
    return {"message": "Subscription deactivated successfully", "subscription": subscription}


@router.put("/updateSubscription/{subscription_id}", response_model=SubscriptionResponse)
async def update_subscription(
    subscription_id: uuid.UUID,
    payload: SubscriptionUpdate,
    current_user: CurrentAdminUser,
    db: DBSession,
):
    subscription = await lifecycle.update(
        db, await lifecycle.get(db, subscription_id), payload.model_dump(exclude_unset=True)
    )
    await db.commit()
    return {"message": "Subscription updated successfully", "subscription": subscription}


@router.post("/expireDue", response_model=ExpireDueResponse)
async def expire_due_subscriptions(current_user: CurrentAdminUser, db: DBSession):
    expired = await lifecycle.expire_due(db)
    await db.commit()
    return {"expired": expired}


# ────────────────────────────────────────────────
# Hosted checkout
# ────────────────────────────────────────────────
@router.post("/createCheckoutSession", response_model=CheckoutResponse)
@limiter.limit("5/minute")
async def create_checkout_session(
    request: Request,
    payload: CheckoutRequest,
    current_user: CurrentUser,
    db: DBSession,
    gateway: Gateway,
):
    session = await lifecycle.create_checkout_session(db, gateway, current_user.id, payload.planId)
    await db.commit()
    return {"sessionId": session["id"], "url": session.get("url")}
