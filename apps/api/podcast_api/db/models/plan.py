# apps/api/podcast_api/db/models/plan.py
"""
SQLAlchemy Plan Model - Podcast Platform
Admin-managed pricing tiers (name, price, duration, quota, features).
Plans are soft-deleted only: payments and subscriptions keep referencing them.
"""

from typing import List, Optional

from sqlalchemy import Index, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from podcast_api.db.base import Base, TimestampMixin
from podcast_api.db.models.mixins import ActiveFlagMixin, UUIDMixin


class Plan(Base, UUIDMixin, TimestampMixin, ActiveFlagMixin):
    """
    Billing Plan Entity
    - Price is stored in minor currency units (cents)
    - Duration is the billing term in days (≥ 1)
    - Optional Stripe Price ID for hosted checkout
    """
    __tablename__ = "plans"
    __table_args__ = (
        Index("ix_plans_price", "price"),
        {'extend_existing': True},
    )

    name: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
        index=True,
        comment="Unique catalog name (e.g. 'Free', 'Pro')"
    )
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    price: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Price in minor units (e.g. 999 = $9.99)"
    )
    duration: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Billing term length in days"
    )
    features: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)

    storage_quota_mb: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    max_podcasts: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    stripe_price_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        status = "active" if self.is_active else "inactive"
        return f"<Plan(name={self.name}, price={self.price}, duration={self.duration}d, status={status})>"

    @property
    def is_free(self) -> bool:
        return self.price == 0
