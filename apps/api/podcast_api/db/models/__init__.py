# apps/api/podcast_api/db/models/__init__.py
"""
Central aggregator / namespace for all SQLAlchemy models in the Podcast Platform API.

Recommended usage:
    from podcast_api.db.models import User, Plan, Subscription, Payment

Import order inside this file is important (dependency order):
1. Base (always first)
2. Independent models (Plan, User)
3. Dependent models (Subscription -> User/Plan, Payment -> Subscription)
4. Bookkeeping models (WebhookEvent, LiveSession)
"""

# ────────────────────────────────────────────────
# Core / foundational (no dependencies)
# ────────────────────────────────────────────────
from podcast_api.db.base import Base

# ────────────────────────────────────────────────
# Catalog & accounts
# ────────────────────────────────────────────────
from .plan import Plan
from .user import User

# ────────────────────────────────────────────────
# Billing (depends on User & Plan)
# ────────────────────────────────────────────────
from .subscription import Subscription
from .payment import Payment

# ────────────────────────────────────────────────
# Webhook bookkeeping & live sessions
# ────────────────────────────────────────────────
from .webhook_event import WebhookEvent
from .live_session import LiveSession

__all__ = [
    "Base",
    "Plan",
    "User",
    "Subscription",
    "Payment",
    "WebhookEvent",
    "LiveSession",
]
