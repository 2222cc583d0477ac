# apps/api/podcast_api/routers/users.py
"""
Users Router - Podcast Platform
Registration, email verification, cookie login/logout and the caller's profile.
Register and login are rate limited per IP.
"""

import logging
import uuid
from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request, Response, status
from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

from podcast_api.core.config import settings
from podcast_api.core.deps import CurrentUser, DBSession
from podcast_api.core.enums import SubscriptionTier, UserRole
from podcast_api.core.security import create_access_token, create_refresh_token
from podcast_api.middleware.rate_limit import limiter
from podcast_api.routers.schemas import MessageResponse, UTCDateTime
from podcast_api.services import subscriptions as lifecycle
from podcast_api.services import users as directory
from podcast_api.services.email import send_verification_email

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["Users"])


# ────────────────────────────────────────────────
# Models
# ────────────────────────────────────────────────
class RegisterRequest(BaseModel):
    email: EmailStr
    user_name: str = Field(..., min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_.-]+$")
    name: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=8)
    # Admins are promoted out-of-band, never self-registered
    role: Literal["user", "host"] = "user"


class LoginRequest(BaseModel):
    email: Optional[EmailStr] = None
    user_name: Optional[str] = None
    password: str

    @model_validator(mode="after")
    def require_identifier(self) -> "LoginRequest":
        if not self.email and not self.user_name:
            raise ValueError("email or user_name is required")
        return self


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str
    user_name: str
    name: str
    role: UserRole
    is_verified: bool
    avatar: Optional[str] = None
    bio: Optional[str] = None
    storage_quota_mb: int
    storage_used_mb: int
    subscription_type: SubscriptionTier
    created_at: UTCDateTime


class SubscriptionSummary(BaseModel):
    type: SubscriptionTier
    status: Optional[str] = None
    endDate: Optional[datetime] = None
    plan: Optional[str] = None


class ProfileResponse(BaseModel):
    success: bool = True
    user: UserOut
    subscription: SubscriptionSummary


class RegisterResponse(BaseModel):
    success: bool = True
    message: str
    user: UserOut


class LoginResponse(BaseModel):
    success: bool = True
    access_token: str
    token_type: str = "bearer"
    user: UserOut


# ────────────────────────────────────────────────
# Registration & verification
# ────────────────────────────────────────────────
@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("5/minute")
async def register(
    request: Request,
    payload: RegisterRequest,
    background_tasks: BackgroundTasks,
    db: DBSession,
):
    user = await directory.register(db, {
        "email": payload.email,
        "user_name": payload.user_name,
        "name": payload.name,
        "password": payload.password,
        "role": UserRole(payload.role),
    })
    token = user.verification_token
    await db.commit()

    # Email delivery never blocks or undoes the registration
    background_tasks.add_task(send_verification_email, user.email, user.name, token)

    return {
        "message": "User registered successfully. Please check your email to verify your account.",
        "user": user,
    }


@router.get("/verify/{token}", response_model=MessageResponse)
async def verify_email(token: str, db: DBSession):
    await directory.verify_email(db, token)
    await db.commit()
    return {"message": "Email verified successfully"}


# ────────────────────────────────────────────────
# Session cookies
# ────────────────────────────────────────────────
@router.post("/login", response_model=LoginResponse)
@limiter.limit("10/minute")
async def login(request: Request, payload: LoginRequest, response: Response, db: DBSession):
    user = await directory.authenticate(
        db, payload.password, email=payload.email, user_name=payload.user_name
    )
    if not user:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid credentials")
    await db.commit()

    access_token = create_access_token({"sub": str(user.id)})
    refresh_token = create_refresh_token({"sub": str(user.id)})

    response.set_cookie(
        "access_token",
        access_token,
        **settings.get_cookie_options(max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60),
    )
    response.set_cookie(
        "refresh_token",
        refresh_token,
        **settings.get_cookie_options(max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 86400),
    )
    return {"access_token": access_token, "user": user}


@router.post("/logout", response_model=MessageResponse)
async def logout(response: Response, current_user: CurrentUser, db: DBSession):
    await directory.record_logout(db, current_user.id)
    await db.commit()

    response.delete_cookie("access_token", path="/")
    response.delete_cookie("refresh_token", path="/")
    return {"message": "Logged out successfully"}


@router.get("/me", response_model=ProfileResponse)
async def get_me(current_user: CurrentUser, db: DBSession):
    user = await directory.get(db, current_user.id)
    subscription = await lifecycle.find_for_user(db, current_user.id)
    return {"user": user, "subscription": lifecycle.subscription_view(subscription)}
