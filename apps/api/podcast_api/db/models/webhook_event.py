# apps/api/podcast_api/db/models/webhook_event.py
"""
Processed gateway webhook events.
The unique event_id makes at-least-once delivery safe: a replayed event
is acknowledged without reapplying its effects.
"""

from typing import Optional

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from podcast_api.db.base import Base, TimestampMixin
from podcast_api.db.models.mixins import UUIDMixin


class WebhookEvent(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "webhook_events"
    __table_args__ = {'extend_existing': True}

    event_id: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
        comment="Gateway event id (e.g. evt_...)"
    )
    event_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="processed",
        comment="processed | failed | ignored"
    )
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<WebhookEvent(event_id={self.event_id}, type={self.event_type}, status={self.status})>"
