# apps/api/podcast_api/services/gateway.py
"""
Payment Gateway Client - Podcast Platform
Explicitly constructed Stripe client, created once in the app lifespan and
injected into the subscription lifecycle and the webhook reconciler.
No module-level stripe.api_key: the key travels with every call.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional, Protocol

import stripe
from fastapi import Request

from podcast_api.core.config import settings
from podcast_api.core.errors import Internal, ValidationError
from podcast_api.db.models import Plan

logger = logging.getLogger(__name__)


class PaymentGatewayClient(Protocol):
    """Operations the platform needs from a payment processor."""

    async def create_customer(self, email: str, name: str, metadata: Dict[str, str]) -> str: ...

    async def create_checkout_session(
        self,
        customer_id: str,
        plan: Plan,
        metadata: Dict[str, str],
        success_url: str,
        cancel_url: str,
    ) -> Dict[str, Any]: ...

    async def cancel_subscription(self, subscription_id: str) -> None: ...

    def verify_webhook(self, payload: bytes, sig_header: Optional[str]) -> Dict[str, Any]: ...


class StripeGateway:
    """
    Stripe implementation of PaymentGatewayClient.
    Blocking SDK calls run in a worker thread so the event loop stays free.
    """

    def __init__(
        self,
        api_key: str,
        webhook_secret: str,
        tolerance: int = 300,
        currency: str = "usd",
    ):
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance
        self.currency = currency.lower()

    @classmethod
    def from_settings(cls) -> "StripeGateway":
        return cls(
            api_key=settings.STRIPE_SECRET_KEY.get_secret_value(),
            webhook_secret=settings.STRIPE_WEBHOOK_SECRET.get_secret_value(),
            tolerance=settings.STRIPE_WEBHOOK_TOLERANCE,
            currency=settings.DEFAULT_CURRENCY,
        )

    async def create_customer(self, email: str, name: str, metadata: Dict[str, str]) -> str:
        try:
            customer = await asyncio.to_thread(
                stripe.Customer.create,
                email=email,
                name=name,
                metadata=metadata,
                api_key=self.api_key,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe customer creation failed for {email}: {e}")
            raise Internal("Failed to create billing customer") from e
        logger.info(f"Created Stripe customer {customer.id} for {email}")
        return customer.id

    async def create_checkout_session(
        self,
        customer_id: str,
        plan: Plan,
        metadata: Dict[str, str],
        success_url: str,
        cancel_url: str,
    ) -> Dict[str, Any]:
        if plan.stripe_price_id:
            line_item: Dict[str, Any] = {"price": plan.stripe_price_id, "quantity": 1}
        else:
            line_item = {
                "price_data": {
                    "currency": self.currency,
                    "product_data": {"name": plan.name, "description": plan.description or plan.name},
                    "unit_amount": plan.price,  # already minor units
                    "recurring": {"interval": "day", "interval_count": plan.duration},
                },
                "quantity": 1,
            }

        try:
            session = await asyncio.to_thread(
                stripe.checkout.Session.create,
                customer=customer_id,
                mode="subscription",
                payment_method_types=["card"],
                line_items=[line_item],
                success_url=success_url,
                cancel_url=cancel_url,
                metadata=metadata,
                subscription_data={"metadata": metadata},
                api_key=self.api_key,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe checkout session failed for customer {customer_id}: {e}")
            raise Internal("Failed to create checkout session") from e
        return {"id": session.id, "url": session.url}

    async def cancel_subscription(self, subscription_id: str) -> None:
        await asyncio.to_thread(stripe.Subscription.cancel, subscription_id, api_key=self.api_key)
        logger.info(f"Cancelled Stripe subscription {subscription_id}")

    def verify_webhook(self, payload: bytes, sig_header: Optional[str]) -> Dict[str, Any]:
        """
        Verify the Stripe-Signature header against the raw body and return the
        event as a plain dict. Raises ValidationError on any verification failure.
        """
        if not sig_header:
            raise ValidationError("Missing signature", error_code="INVALID_SIGNATURE")

        try:
            body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        except UnicodeDecodeError as e:
            raise ValidationError("Invalid payload", error_code="INVALID_PAYLOAD") from e

        try:
            stripe.WebhookSignature.verify_header(body, sig_header, self.webhook_secret, self.tolerance)
        except stripe.SignatureVerificationError as e:
            raise ValidationError("Invalid signature", error_code="INVALID_SIGNATURE") from e

        try:
            event = json.loads(body)
        except ValueError as e:
            raise ValidationError("Invalid payload", error_code="INVALID_PAYLOAD") from e
        if not isinstance(event, dict) or "type" not in event:
            raise ValidationError("Invalid payload", error_code="INVALID_PAYLOAD")
        return event


# ────────────────────────────────────────────────
# FastAPI Dependency: process-wide gateway from app.state
# ────────────────────────────────────────────────
def get_gateway(request: Request) -> PaymentGatewayClient:
    return request.app.state.gateway
