# apps/api/podcast_api/db/models/subscription.py
"""
SQLAlchemy Subscription Model - Podcast Platform
One row per user (unique user_id). Never deleted, only transitioned.
`version` is an optimistic-concurrency token: concurrent read-modify-write
sequences on the same row fail with StaleDataError instead of clobbering each other.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from podcast_api.core.enums import SubscriptionStatus
from podcast_api.db.base import Base, TimestampMixin
from podcast_api.db.models.mixins import UUIDMixin, enum_column
from podcast_api.db.models.plan import Plan


class Subscription(Base, UUIDMixin, TimestampMixin):
    """
    Subscription Entity
    - status and is_active are kept consistent by every mutator (see apply_status)
    - amount is the plan price charged for the current term, in minor units
    """
    __tablename__ = "subscriptions"
    __table_args__ = (
        Index("ix_subscriptions_status_end_date", "status", "end_date"),
        {'extend_existing': True},
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
        index=True,
    )
    plan_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("plans.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    plan: Mapped[Plan] = relationship("Plan", lazy="selectin")

    status: Mapped[SubscriptionStatus] = mapped_column(
        enum_column(SubscriptionStatus, "subscription_status_enum"),
        default=SubscriptionStatus.PENDING_PAYMENT,
        nullable=False,
        index=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    auto_renew: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    start_date: Mapped[datetime] = mapped_column(nullable=False)
    end_date: Mapped[datetime] = mapped_column(nullable=False)

    amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    expiry_message: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Stripe integration
    stripe_subscription_id: Mapped[Optional[str]] = mapped_column(
        String(255), unique=True, nullable=True, index=True
    )
    stripe_customer_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<Subscription(id={self.id}, user_id={self.user_id}, plan_id={self.plan_id}, "
            f"status={self.status}, end_date={self.end_date})>"
        )

    def apply_status(self, status: SubscriptionStatus) -> None:
        """Set status and the redundant is_active flag together."""
        self.status = status
        self.is_active = status == SubscriptionStatus.ACTIVE
