# apps/api/podcast_api/db/models/payment.py
"""
SQLAlchemy Payment Model - Podcast Platform
Append-mostly ledger of monetary transactions. After creation only
status / failure_reason / paid_at (and gateway reference ids) change.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from podcast_api.core.enums import Currency, PaymentGateway, PaymentPurpose, PaymentStatus
from podcast_api.db.base import Base, TimestampMixin
from podcast_api.db.models.mixins import UUIDMixin, enum_column
from podcast_api.db.models.plan import Plan


class Payment(Base, UUIDMixin, TimestampMixin):
    """
    Payment Entity
    - amount is always an integer number of minor currency units
    - transaction_id is globally unique (unique index)
    - is_simulated marks payments settled by the in-process settlement scheduler
    """
    __tablename__ = "payments"
    __table_args__ = (
        Index("ix_payments_user_id_payment_date", "user_id", "payment_date"),
        Index("ix_payments_status_payment_date", "status", "payment_date"),
        {'extend_existing': True},
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
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

    subscription_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("subscriptions.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    amount: Mapped[int] = mapped_column(Integer, nullable=False, comment="Minor currency units")
    currency: Mapped[Currency] = mapped_column(
        enum_column(Currency, "currency_enum"),
        default=Currency.USD,
        nullable=False,
    )
    gateway: Mapped[PaymentGateway] = mapped_column(
        enum_column(PaymentGateway, "payment_gateway_enum"),
        nullable=False,
    )
    status: Mapped[PaymentStatus] = mapped_column(
        enum_column(PaymentStatus, "payment_status_enum"),
        default=PaymentStatus.PENDING,
        nullable=False,
        index=True,
    )
    purpose: Mapped[PaymentPurpose] = mapped_column(
        enum_column(PaymentPurpose, "payment_purpose_enum"),
        default=PaymentPurpose.SUBSCRIPTION,
        nullable=False,
    )

    transaction_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    payment_date: Mapped[datetime] = mapped_column(nullable=False)
    paid_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    failure_reason: Mapped[str] = mapped_column(Text, nullable=False, default="")

    is_simulated: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    stripe_session_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    stripe_invoice_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<Payment(transaction_id={self.transaction_id}, amount={self.amount} {self.currency}, "
            f"status={self.status}, purpose={self.purpose})>"
        )

    @property
    def is_final(self) -> bool:
        return self.status != PaymentStatus.PENDING
