# apps/api/tests/conftest.py
"""
Shared fixtures: fresh in-memory SQLite per test, the FastAPI app wired to it,
a recording fake gateway, users with tokens, and a small plan catalog.
"""

import hashlib
import hmac
import json
import os
import time
from typing import Any, Dict, List, Optional

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("PAYMENT_SIMULATION_DELAY_SECONDS", "0")
os.environ.setdefault("DB_AUTO_CREATE", "false")
os.environ.setdefault("EMAIL_FROM", "no-reply@podcast.example.com")
os.environ.setdefault("SENTRY_DSN", "")

import pytest
import pytest_asyncio
import sentry_sdk
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from podcast_api.core.enums import UserRole
from podcast_api.core.security import create_access_token, hash_password
from podcast_api.db.models import Base, Plan, User
from podcast_api.db.session import get_db
from podcast_api.main import app
from podcast_api.services.gateway import StripeGateway
from podcast_api.services.settlement import SettlementScheduler
from podcast_api.services.webhooks import WebhookReconciler

WEBHOOK_SECRET = "whsec_test_secret"
PASSWORD = "correct-horse-battery"


class FakeGateway(StripeGateway):
    """Real webhook verification, recorded (no network) customer/checkout/cancel calls."""

    def __init__(self, fail_cancel: bool = False):
        super().__init__(api_key="sk_test_fake", webhook_secret=WEBHOOK_SECRET, tolerance=300)
        self.fail_cancel = fail_cancel
        self.customers: List[Dict[str, Any]] = []
        self.checkouts: List[Dict[str, Any]] = []
        self.cancelled: List[str] = []

    async def create_customer(self, email: str, name: str, metadata: Dict[str, str]) -> str:
        self.customers.append({"email": email, "name": name, "metadata": metadata})
        return f"cus_test_{len(self.customers)}"

    async def create_checkout_session(self, customer_id, plan, metadata, success_url, cancel_url):
        self.checkouts.append({
            "customer_id": customer_id,
            "plan": plan.name,
            "amount": plan.price,
            "metadata": metadata,
            "success_url": success_url,
        })
        session_id = f"cs_test_{len(self.checkouts)}"
        return {"id": session_id, "url": f"https://checkout.stripe.test/{session_id}"}

    async def cancel_subscription(self, subscription_id: str) -> None:
        if self.fail_cancel:
            raise RuntimeError("gateway unavailable")
        self.cancelled.append(subscription_id)


def sign(payload: str, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Stripe-Signature header value for a raw payload."""
    timestamp = timestamp or int(time.time())
    signature = hmac.new(
        secret.encode("utf-8"),
        f"{timestamp}.{payload}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return f"t={timestamp},v1={signature}"


def make_event(event_type: str, obj: Dict[str, Any], event_id: str = "evt_test_1") -> str:
    return json.dumps({
        "id": event_id,
        "object": "event",
        "type": event_type,
        "data": {"object": obj},
    })


def auth_headers(user: User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token({'sub': str(user.id)})}"}


# ────────────────────────────────────────────────
# Database
# ────────────────────────────────────────────────
@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


# ────────────────────────────────────────────────
# Application
# ────────────────────────────────────────────────
@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def sentry_events(monkeypatch):
    """Record what would be sent to Sentry."""
    events: Dict[str, List[Any]] = {"exceptions": [], "messages": [], "users": []}
    monkeypatch.setattr(sentry_sdk, "capture_exception", lambda exc=None, **kw: events["exceptions"].append(exc))
    monkeypatch.setattr(sentry_sdk, "capture_message", lambda msg, **kw: events["messages"].append(msg))
    monkeypatch.setattr(sentry_sdk, "set_user", lambda user: events["users"].append(user))
    return events


@pytest_asyncio.fixture
async def settlement(session_factory):
    scheduler = SettlementScheduler(session_factory, delay_seconds=0.05)
    yield scheduler
    await scheduler.shutdown()


@pytest_asyncio.fixture
async def client(session_factory, gateway, settlement):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.state.gateway = gateway
    app.state.reconciler = WebhookReconciler(gateway)
    app.state.settlement = settlement

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ────────────────────────────────────────────────
# Users
# ────────────────────────────────────────────────
async def _create_user(db: AsyncSession, user_name: str, role: UserRole = UserRole.USER) -> User:
    user = User(
        user_name=user_name,
        name=user_name.title(),
        email=f"{user_name}@example.com",
        hashed_password=hash_password(PASSWORD),
        role=role,
        is_verified=True,
    )
    db.add(user)
    await db.commit()
    return user


@pytest_asyncio.fixture
async def user(db):
    return await _create_user(db, "listener")


@pytest_asyncio.fixture
async def other_user(db):
    return await _create_user(db, "bystander")


@pytest_asyncio.fixture
async def host(db):
    return await _create_user(db, "host", UserRole.HOST)


@pytest_asyncio.fixture
async def admin(db):
    return await _create_user(db, "admin", UserRole.ADMIN)


# ────────────────────────────────────────────────
# Plan catalog
# ────────────────────────────────────────────────
@pytest_asyncio.fixture
async def plans(db) -> Dict[str, Plan]:
    catalog = {
        "free": Plan(name="Free", description="Try it out", price=0, duration=7, features=["1 podcast"]),
        "basic": Plan(
            name="Basic",
            description="For regular listeners",
            price=1000,
            duration=30,
            features=["10 podcasts"],
            storage_quota_mb=500,
        ),
        "pro": Plan(
            name="Pro",
            description="For hosts",
            price=2000,
            duration=30,
            features=["unlimited podcasts", "live sessions"],
            storage_quota_mb=5000,
        ),
    }
    db.add_all(catalog.values())
    await db.commit()
    return catalog
