# apps/api/podcast_api/db/models/live_session.py
"""
SQLAlchemy LiveSession Model - scheduled live podcast sessions.
Participants and tags are small embedded lists (JSON), mutated by
reassigning the whole list so the ORM detects the change.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import Boolean, ForeignKey, Integer, JSON, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from podcast_api.core.enums import AccessLevel, SessionCategory, StreamPlatform
from podcast_api.db.base import Base, TimestampMixin
from podcast_api.db.models.mixins import UUIDMixin, enum_column


def default_session_settings() -> Dict[str, bool]:
    return {"allow_questions": True, "allow_screen_share": False, "auto_record": False}


class LiveSession(Base, UUIDMixin, TimestampMixin):
    """
    Live Session Entity
    - host_id owns the session (only the host may update/start/end/cancel it)
    - is_cancelled is the soft-delete flag
    - duration is recorded in minutes when the session ends
    """
    __tablename__ = "live_sessions"
    __table_args__ = {'extend_existing': True}

    title: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)

    scheduled_start: Mapped[datetime] = mapped_column(nullable=False, index=True)
    scheduled_end: Mapped[datetime] = mapped_column(nullable=False)

    is_live: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_recorded: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_cancelled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)

    stream_platform: Mapped[StreamPlatform] = mapped_column(
        enum_column(StreamPlatform, "stream_platform_enum"),
        default=StreamPlatform.YOUTUBE,
        nullable=False,
    )
    stream_url: Mapped[str] = mapped_column(String(1024), nullable=False)
    thumbnail_url: Mapped[str] = mapped_column(String(1024), nullable=False)
    recording_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    duration: Mapped[int] = mapped_column(Integer, default=0, nullable=False, comment="Minutes")

    host_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    participants: Mapped[List[Dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list,
        comment="[{user_id, joined_at, role}]"
    )
    max_participants: Mapped[int] = mapped_column(Integer, default=100, nullable=False)

    category: Mapped[SessionCategory] = mapped_column(
        enum_column(SessionCategory, "session_category_enum"),
        default=SessionCategory.PODCAST,
        nullable=False,
        index=True,
    )
    tags: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    access_level: Mapped[AccessLevel] = mapped_column(
        enum_column(AccessLevel, "access_level_enum"),
        default=AccessLevel.PUBLIC,
        nullable=False,
    )
    requires_registration: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    registration_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    actual_start_time: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    actual_end_time: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    viewer_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    chat_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    recording_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    monetization_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    session_settings: Mapped[Dict[str, bool]] = mapped_column(
        JSON, nullable=False, default=default_session_settings
    )

    def __repr__(self) -> str:
        return f"<LiveSession(id={self.id}, title={self.title!r}, live={self.is_live}, cancelled={self.is_cancelled})>"

    def has_participant(self, user_id: uuid.UUID) -> bool:
        return any(p.get("user_id") == str(user_id) for p in self.participants or [])
