# apps/api/podcast_api/routers/schemas.py
"""
Response models shared across routers (plans, subscriptions, payments).
ORM objects are converted with from_attributes; datetimes are always UTC-aware.
"""

import uuid
from datetime import datetime
from typing import Annotated, List, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict

from podcast_api.core.enums import (
    Currency,
    PaymentGateway,
    PaymentPurpose,
    PaymentStatus,
    SubscriptionStatus,
)
from podcast_api.db.models.utils import as_utc

UTCDateTime = Annotated[datetime, AfterValidator(as_utc)]


class PlanOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    description: str
    price: int
    duration: int
    features: List[str]
    storage_quota_mb: int
    max_podcasts: Optional[int] = None
    stripe_price_id: Optional[str] = None
    is_active: bool
    created_at: UTCDateTime
    updated_at: UTCDateTime


class SubscriptionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    plan_id: uuid.UUID
    plan: Optional[PlanOut] = None
    status: SubscriptionStatus
    is_active: bool
    auto_renew: bool
    start_date: UTCDateTime
    end_date: UTCDateTime
    amount: int
    expiry_message: str
    stripe_subscription_id: Optional[str] = None
    stripe_customer_id: Optional[str] = None
    created_at: UTCDateTime
    updated_at: UTCDateTime


class PaymentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    transaction_id: str
    user_id: uuid.UUID
    plan_id: uuid.UUID
    subscription_id: Optional[uuid.UUID] = None
    amount: int
    currency: Currency
    gateway: PaymentGateway
    status: PaymentStatus
    purpose: PaymentPurpose
    payment_date: UTCDateTime
    paid_at: Optional[UTCDateTime] = None
    failure_reason: str
    is_simulated: bool
    stripe_session_id: Optional[str] = None
    stripe_invoice_id: Optional[str] = None


class MessageResponse(BaseModel):
    success: bool = True
    message: str
