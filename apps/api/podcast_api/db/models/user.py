# apps/api/podcast_api/db/models/user.py
"""
SQLAlchemy Models - Users
Account, RBAC role, Stripe customer linkage and the denormalized
subscription cache (subscription_type / subscription_status / subscription_end_date).
The Subscription entity is authoritative; the cache is rewritten on every transition.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from podcast_api.core.enums import SubscriptionTier, UserRole
from podcast_api.db.base import Base, TimestampMixin
from podcast_api.db.models.mixins import UUIDMixin, enum_column


class User(Base, UUIDMixin, TimestampMixin):
    """
    User Account
    - role drives RBAC (user / host / admin)
    - stripe_customer_id cached after first checkout
    """
    __tablename__ = "users"
    __table_args__ = {'extend_existing': True}

    user_name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    hashed_password: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    role: Mapped[UserRole] = mapped_column(
        enum_column(UserRole, "user_role_enum"),
        default=UserRole.USER,
        nullable=False,
    )

    # Verification
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    verification_token: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    verification_expires: Mapped[Optional[datetime]] = mapped_column(nullable=True)

    # Profile & storage
    avatar: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    bio: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    storage_quota_mb: Mapped[int] = mapped_column(Integer, default=100, nullable=False)
    storage_used_mb: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Stripe Billing
    stripe_customer_id: Mapped[Optional[str]] = mapped_column(
        String(255), unique=True, nullable=True, index=True
    )

    # Denormalized subscription view (cache of the Subscription row)
    subscription_type: Mapped[SubscriptionTier] = mapped_column(
        enum_column(SubscriptionTier, "subscription_tier_enum"),
        default=SubscriptionTier.FREE,
        nullable=False,
    )
    subscription_status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    subscription_end_date: Mapped[Optional[datetime]] = mapped_column(nullable=True)

    last_login: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    last_logout: Mapped[Optional[datetime]] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role}, tier={self.subscription_type})>"

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
