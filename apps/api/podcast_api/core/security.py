# apps/api/podcast_api/core/security.py
"""
Token & password primitives for the Podcast Platform API.
JWT (HS256) access/refresh tokens and argon2 password hashing.
Request-level auth (cookies, Bearer, RBAC) lives in middleware/auth.py.
"""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

from podcast_api.core.config import settings

ALGORITHM = "HS256"

pwd_hasher = PasswordHasher(time_cost=2, memory_cost=65536, parallelism=4, hash_len=32, salt_len=16)


# ────────────────────────────────────────────────
# JWT Helpers
# ────────────────────────────────────────────────
def create_access_token(data: Dict[str, Any]) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY.get_secret_value(), algorithm=ALGORITHM)


def create_refresh_token(data: Dict[str, Any]) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    to_encode.update({"exp": expire, "type": "refresh"})
    return jwt.encode(to_encode, settings.JWT_REFRESH_SECRET.get_secret_value(), algorithm=ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    """
    Decode and validate an access token.
    Raises jwt.InvalidTokenError (or a subclass) on any failure.
    """
    payload = jwt.decode(
        token,
        settings.JWT_SECRET_KEY.get_secret_value(),
        algorithms=[ALGORITHM],
        options={"require": ["exp", "sub", "type"], "verify_exp": True},
    )
    if payload.get("type") != "access":
        raise jwt.InvalidTokenError("Not an access token")
    return payload


# ────────────────────────────────────────────────
# Passwords & one-time tokens
# ────────────────────────────────────────────────
def hash_password(password: str) -> str:
    return pwd_hasher.hash(password)


def verify_password(hashed_password: str | None, password: str) -> bool:
    if not hashed_password:
        return False
    try:
        return pwd_hasher.verify(hashed_password, password)
    except (VerificationError, InvalidHashError):
        return False


def generate_token(nbytes: int = 32) -> str:
    """URL-safe random token (email verification, password reset)."""
    return secrets.token_urlsafe(nbytes)
