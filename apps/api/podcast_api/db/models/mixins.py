# apps/api/podcast_api/db/models/mixins.py
"""
Reusable SQLAlchemy mixins for the Podcast Platform models.
- UUID primary key
- Active flag (soft-delete by flipping is_active, never a hard delete)

Usage example:
    class Plan(Base, UUIDMixin, TimestampMixin, ActiveFlagMixin):
        ...
"""

from __future__ import annotations

import uuid
from uuid import uuid4

from sqlalchemy import Boolean, Enum as SQLEnum, Uuid
from sqlalchemy.orm import Mapped, mapped_column


class UUIDMixin:
    """
    Mixin that uses UUIDv4 as primary key instead of autoincrement int.
    Generic Uuid type: native UUID on PostgreSQL, CHAR(32) on SQLite.
    """
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
        comment="Unique identifier (UUIDv4)"
    )


class ActiveFlagMixin:
    """
    Mixin for soft-delete via an is_active flag.
    Rows referenced by payments/subscriptions are never removed.
    """
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        index=True,
        comment="False = soft-deleted / unavailable"
    )

    def soft_delete(self) -> None:
        self.is_active = False


def enum_column(enum_cls, name: str) -> SQLEnum:
    """Portable enum column that stores the enum *values* (not member names)."""
    return SQLEnum(
        enum_cls,
        name=name,
        native_enum=False,
        length=32,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )
