# apps/api/tests/test_users.py
"""Registration, verification, cookie login/logout and the profile view."""

from datetime import timedelta

import pytest

from podcast_api.core.enums import SubscriptionStatus, UserRole
from podcast_api.core.errors import ValidationError
from podcast_api.db.models import Subscription, User
from podcast_api.db.models.utils import utcnow
from podcast_api.routers import users as users_router
from podcast_api.services import users as directory

from conftest import PASSWORD, auth_headers

REGISTRATION = {
    "email": "New.Listener@Example.com",
    "user_name": "new_listener",
    "name": "New Listener",
    "password": "s3cret-password",
}


@pytest.fixture
def sent_emails(monkeypatch):
    sent = []

    async def fake_send(email, name, token):
        sent.append((email, name, token))
        return True

    monkeypatch.setattr(users_router, "send_verification_email", fake_send)
    return sent


async def test_register_then_verify(client, session_factory, sent_emails):
    response = await client.post("/users/register", json=REGISTRATION)
    assert response.status_code == 201
    body = response.json()["user"]
    assert body["email"] == "new.listener@example.com"
    assert body["role"] == "user"
    assert body["is_verified"] is False

    assert len(sent_emails) == 1
    email, _, token = sent_emails[0]
    assert email == "new.listener@example.com"

    verified = await client.get(f"/users/verify/{token}")
    assert verified.status_code == 200

    async with session_factory() as session:
        user = await directory.find_by_email(session, "new.listener@example.com")
    assert user.is_verified is True
    assert user.verification_token is None


async def test_register_duplicate(client, sent_emails):
    await client.post("/users/register", json=REGISTRATION)
    response = await client.post("/users/register", json={**REGISTRATION, "user_name": "someone_else"})
    assert response.status_code == 409
    assert response.json()["error_code"] == "USER_EXISTS"


async def test_register_cannot_claim_admin(client, sent_emails):
    response = await client.post("/users/register", json={**REGISTRATION, "role": "admin"})
    assert response.status_code == 422


async def test_verify_with_unknown_token(client):
    response = await client.get("/users/verify/not-a-token")
    assert response.status_code == 404


async def test_verify_with_expired_token(db):
    user = await directory.register(db, {**REGISTRATION, "role": UserRole.HOST})
    user.verification_expires = utcnow() - timedelta(minutes=1)
    await db.flush()

    with pytest.raises(ValidationError) as exc:
        await directory.verify_email(db, user.verification_token)
    assert exc.value.error_code == "TOKEN_EXPIRED"


async def test_login_sets_cookies(client, user):
    response = await client.post("/users/login", json={"email": user.email, "password": PASSWORD})
    assert response.status_code == 200
    assert response.json()["user"]["user_name"] == user.user_name
    set_cookies = response.headers.get_list("set-cookie")
    assert any(c.startswith("access_token=") and "HttpOnly" in c for c in set_cookies)
    assert any(c.startswith("refresh_token=") for c in set_cookies)

    # cookie auth works on its own
    token = response.json()["access_token"]
    me = await client.get("/users/me", headers={"Cookie": f"access_token={token}"})
    assert me.status_code == 200


async def test_login_by_user_name(client, user):
    response = await client.post("/users/login", json={"user_name": user.user_name, "password": PASSWORD})
    assert response.status_code == 200


async def test_login_rejects_bad_password(client, user):
    response = await client.post("/users/login", json={"email": user.email, "password": "wrong-password"})
    assert response.status_code == 401


async def test_login_requires_identifier(client):
    response = await client.post("/users/login", json={"password": PASSWORD})
    assert response.status_code == 422


async def test_logout_records_timestamp(client, session_factory, user):
    response = await client.post("/users/logout", headers=auth_headers(user))
    assert response.status_code == 200

    async with session_factory() as session:
        stored = await session.get(User, user.id)
    assert stored.last_logout is not None


async def test_me_without_subscription(client, user):
    response = await client.get("/users/me", headers=auth_headers(user))
    assert response.status_code == 200
    assert response.json()["subscription"] == {"type": "free", "status": None, "endDate": None, "plan": None}


async def test_me_reads_subscription_entity(client, db, user, plans):
    subscription = Subscription(
        user_id=user.id,
        plan=plans["pro"],
        start_date=utcnow(),
        end_date=utcnow() + timedelta(days=30),
        amount=2000,
    )
    subscription.apply_status(SubscriptionStatus.ACTIVE)
    db.add(subscription)
    await db.commit()

    response = await client.get("/users/me", headers=auth_headers(user))
    summary = response.json()["subscription"]
    assert summary["type"] == "premium"
    assert summary["status"] == "active"
    assert summary["plan"] == "Pro"


async def test_token_for_deleted_account_is_rejected(client, db, user):
    headers = auth_headers(user)
    await db.delete(await db.get(User, user.id))
    await db.commit()

    response = await client.get("/users/me", headers=headers)
    assert response.status_code == 401


async def test_authenticated_requests_tag_the_error_reporter(client, user, sentry_events):
    response = await client.get("/users/me", headers=auth_headers(user))
    assert response.status_code == 200
    assert sentry_events["users"] == [{"id": str(user.id), "email": user.email}]
