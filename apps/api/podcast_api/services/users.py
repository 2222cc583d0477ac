# apps/api/podcast_api/services/users.py
"""
User Directory Service - Podcast Platform
Registration, email verification, credential checks and login/logout stamps.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from podcast_api.core.config import settings
from podcast_api.core.enums import UserRole
from podcast_api.core.errors import Conflict, NotFound, ValidationError
from podcast_api.core.security import generate_token, hash_password, verify_password
from podcast_api.db.models import User
from podcast_api.db.models.utils import as_utc, utcnow

logger = logging.getLogger(__name__)


async def get(db: AsyncSession, user_id) -> User:
    user = await db.get(User, user_id)
    if not user:
        raise NotFound("User not found")
    return user


async def find_by_email(db: AsyncSession, email: str) -> Optional[User]:
    return await db.scalar(select(User).where(User.email == email.lower()))


async def register(db: AsyncSession, attrs: Dict[str, Any]) -> User:
    """Create an unverified account with a fresh verification token."""
    email = attrs["email"].lower()
    existing = await db.scalar(
        select(User).where(or_(User.email == email, User.user_name == attrs["user_name"]))
    )
    if existing:
        raise Conflict("User already exists", error_code="USER_EXISTS")

    user = User(
        user_name=attrs["user_name"],
        name=attrs["name"],
        email=email,
        hashed_password=hash_password(attrs["password"]),
        role=attrs.get("role") or UserRole.USER,
        verification_token=generate_token(),
        verification_expires=utcnow() + timedelta(hours=settings.VERIFICATION_TOKEN_HOURS),
        is_verified=False,
    )
    db.add(user)
    try:
        await db.flush()
    except IntegrityError as e:
        raise Conflict("User already exists", error_code="USER_EXISTS") from e

    logger.info(f"User registered: {user.email} ({user.role.value})")
    return user


async def verify_email(db: AsyncSession, token: str) -> User:
    user = await db.scalar(select(User).where(User.verification_token == token))
    if not user:
        raise NotFound("Invalid token")
    if user.verification_expires and as_utc(user.verification_expires) < utcnow():
        raise ValidationError("Verification token expired", error_code="TOKEN_EXPIRED")

    user.is_verified = True
    user.verification_token = None
    user.verification_expires = None
    await db.flush()
    logger.info(f"User verified: {user.email}")
    return user


async def authenticate(
    db: AsyncSession,
    password: str,
    email: Optional[str] = None,
    user_name: Optional[str] = None,
) -> Optional[User]:
    """Returns the user on valid credentials, None otherwise."""
    if email:
        user = await find_by_email(db, email)
    elif user_name:
        user = await db.scalar(select(User).where(User.user_name == user_name))
    else:
        return None

    if not user or not user.hashed_password or not verify_password(user.hashed_password, password):
        return None

    user.last_login = utcnow()
    await db.flush()
    logger.info(f"User logged in: {user.email}")
    return user


async def record_logout(db: AsyncSession, user_id) -> None:
    user = await db.get(User, user_id)
    if user:
        user.last_logout = utcnow()
        await db.flush()
        logger.info(f"User logged out: {user.email}")
