# apps/api/podcast_api/db/base.py
"""
SQLAlchemy declarative base and common mixins for the Podcast Platform API.
All models should inherit from Base (and optionally TimestampMixin).

This file defines:
- Abstract Base class (never mapped to a table)
- TimestampMixin for automatic created_at / updated_at
- No automatic table name generation (explicit __tablename__ is safer)
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """
    Abstract base class for all SQLAlchemy models.

    Features:
    - __abstract__ = True → prevents Base from being mapped as a table
    - Every datetime column is timezone-aware
    """

    __abstract__ = True

    type_annotation_map = {
        datetime: DateTime(timezone=True),
    }

    def __repr__(self) -> str:
        """Safe, readable representation (avoids loading large relationships)."""
        fields = ", ".join(
            f"{k}={v!r}"
            for k, v in self.__dict__.items()
            if not k.startswith("_") and v is not None
        )
        return f"{self.__class__.__name__}({fields})"


# ────────────────────────────────────────────────
# Timestamp Mixin (recommended for most models)
# ────────────────────────────────────────────────
class TimestampMixin:
    """
    Mixin that adds automatic created_at / updated_at timestamps.

    Usage:
        class Plan(Base, UUIDMixin, TimestampMixin):
            ...
    """

    created_at: Mapped[datetime] = mapped_column(
        default=_utcnow,
        nullable=False,
        comment="When the record was created (UTC)"
    )

    updated_at: Mapped[datetime] = mapped_column(
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False,
        index=True,
        comment="When the record was last updated (UTC)"
    )
