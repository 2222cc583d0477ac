# apps/api/podcast_api/middleware/auth.py
"""
Authentication Middleware & Dependencies - Podcast Platform
JWT (cookie or Bearer) + role-based access control (user / host / admin).
"""

import logging
import uuid
from typing import Annotated, Awaitable, Callable, Optional

import jwt
import sentry_sdk
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from podcast_api.core.enums import UserRole
from podcast_api.core.security import decode_access_token
from podcast_api.db.models import User
from podcast_api.db.session import get_db

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)  # Optional Bearer, fallback to cookies


class AuthUser(BaseModel):
    """Current authenticated user context"""
    id: uuid.UUID
    email: str
    user_name: str
    role: UserRole
    is_verified: bool

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


async def get_current_user(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)] = None,
) -> AuthUser:
    """
    Dependency: Extracts and validates current user from JWT (cookie or Bearer).
    The role always comes from the database, never from the token.
    """
    # 1. Try cookie first (browser), then Bearer (API clients)
    token = request.cookies.get("access_token")
    if not token and credentials:
        token = credentials.credentials

    if not token:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Not authenticated")

    # 2. Decode & validate JWT
    try:
        payload = decode_access_token(token)
        user_id = uuid.UUID(payload["sub"])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Token expired")
    except (jwt.InvalidTokenError, ValueError) as e:
        logger.warning(f"Invalid JWT: {e}")
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")

    # 3. Fetch user from DB (for up-to-date role)
    user = await db.get(User, user_id)
    if not user:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Account not found")

    auth_user = AuthUser(
        id=user.id,
        email=user.email,
        user_name=user.user_name,
        role=user.role,
        is_verified=user.is_verified,
    )
    request.state.current_user = auth_user

    # 4. Sentry context
    sentry_sdk.set_user({"id": str(auth_user.id), "email": auth_user.email})
    sentry_sdk.set_tag("user_role", auth_user.role.value)
    return auth_user


CurrentUser = Annotated[AuthUser, Depends(get_current_user)]


def require_role(*roles: UserRole) -> Callable[[AuthUser], Awaitable[AuthUser]]:
    """
    RBAC dependency factory: enforce one of the given roles.
    Usage: Depends(require_role(UserRole.HOST, UserRole.ADMIN))
    """
    async def checker(user: CurrentUser) -> AuthUser:
        if user.role not in roles:
            raise HTTPException(
                status.HTTP_403_FORBIDDEN,
                f"Insufficient permissions. Required role: {', '.join(r.value for r in roles)}",
            )
        return user

    return checker


require_admin = require_role(UserRole.ADMIN)
require_host = require_role(UserRole.HOST, UserRole.ADMIN)

AdminUser = Annotated[AuthUser, Depends(require_admin)]
HostUser = Annotated[AuthUser, Depends(require_host)]
