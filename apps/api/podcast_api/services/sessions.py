# apps/api/podcast_api/services/sessions.py
"""
Live Sessions Service - Podcast Platform
Scheduling, host-only lifecycle (start / end / cancel) and participant joins.
"""

import logging
import math
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import String, cast, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from podcast_api.core.enums import AccessLevel, ParticipantRole, SessionCategory
from podcast_api.core.errors import Forbidden, NotFound, ValidationError
from podcast_api.db.models import LiveSession
from podcast_api.db.models.utils import as_utc, utcnow

logger = logging.getLogger(__name__)

# Frozen while the session is live
LIVE_LOCKED_FIELDS = ("scheduled_start", "scheduled_end", "stream_platform")

UPDATABLE_FIELDS = (
    "title",
    "description",
    "scheduled_start",
    "scheduled_end",
    "stream_platform",
    "stream_url",
    "thumbnail_url",
    "recording_url",
    "category",
    "tags",
    "access_level",
    "max_participants",
    "requires_registration",
    "chat_enabled",
    "recording_enabled",
    "monetization_enabled",
    "session_settings",
)


def _validate_schedule(start: datetime, end: datetime, require_future: bool = True) -> None:
    start, end = as_utc(start), as_utc(end)
    if start >= end:
        raise ValidationError("End time must be after start time")
    if require_future and start <= utcnow():
        raise ValidationError("Start time must be in the future")


async def create(db: AsyncSession, host_id: uuid.UUID, attrs: Dict[str, Any]) -> LiveSession:
    _validate_schedule(attrs["scheduled_start"], attrs["scheduled_end"])

    session = LiveSession(
        host_id=host_id,
        title=attrs["title"],
        description=attrs["description"],
        scheduled_start=as_utc(attrs["scheduled_start"]),
        scheduled_end=as_utc(attrs["scheduled_end"]),
        stream_platform=attrs["stream_platform"],
        stream_url=attrs["stream_url"],
        thumbnail_url=attrs["thumbnail_url"],
        category=attrs.get("category") or SessionCategory.PODCAST,
        tags=list(attrs.get("tags") or []),
        access_level=attrs.get("access_level") or AccessLevel.PUBLIC,
        max_participants=attrs.get("max_participants") or 100,
        requires_registration=bool(attrs.get("requires_registration", False)),
        participants=[],
    )
    db.add(session)
    await db.flush()
    logger.info(f"Live session created: {session.id} '{session.title}' by host {host_id}")
    return session


async def get(db: AsyncSession, session_id: uuid.UUID) -> LiveSession:
    session = await db.get(LiveSession, session_id)
    if not session:
        raise NotFound("Session not found")
    return session


async def list_sessions(
    db: AsyncSession,
    category: Optional[SessionCategory] = None,
    access_level: Optional[AccessLevel] = None,
    upcoming_only: bool = False,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
) -> Tuple[List[LiveSession], Dict[str, int]]:
    """Non-cancelled sessions ordered by scheduled start."""
    page, limit = max(page, 1), max(limit, 1)
    conditions = [LiveSession.is_cancelled.is_(False)]
    if category:
        conditions.append(LiveSession.category == category)
    if access_level:
        conditions.append(LiveSession.access_level == access_level)
    if upcoming_only:
        conditions.append(LiveSession.scheduled_start >= utcnow())
    if search:
        pattern = f"%{search.lower()}%"
        conditions.append(or_(
            func.lower(LiveSession.title).like(pattern),
            func.lower(LiveSession.description).like(pattern),
            func.lower(cast(LiveSession.tags, String)).like(pattern),
        ))

    total = await db.scalar(select(func.count()).select_from(LiveSession).where(*conditions)) or 0
    result = await db.scalars(
        select(LiveSession)
        .where(*conditions)
        .order_by(LiveSession.scheduled_start.asc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    pagination = {
        "currentPage": page,
        "totalPages": math.ceil(total / limit),
        "totalSessions": total,
    }
    return list(result.all()), pagination


def _ensure_host(session: LiveSession, user_id: uuid.UUID, action: str) -> None:
    if session.host_id != user_id:
        raise Forbidden(f"Only the host can {action} this session")


async def update(
    db: AsyncSession,
    session_id: uuid.UUID,
    user_id: uuid.UUID,
    attrs: Dict[str, Any],
) -> LiveSession:
    session = await get(db, session_id)
    _ensure_host(session, user_id, "update")

    updates = {k: v for k, v in attrs.items() if k in UPDATABLE_FIELDS and v is not None}
    if session.is_live:
        for field in LIVE_LOCKED_FIELDS:
            updates.pop(field, None)

    if "scheduled_start" in updates or "scheduled_end" in updates:
        _validate_schedule(
            updates.get("scheduled_start", session.scheduled_start),
            updates.get("scheduled_end", session.scheduled_end),
            require_future="scheduled_start" in updates,
        )

    for field, value in updates.items():
        if field in ("scheduled_start", "scheduled_end"):
            value = as_utc(value)
        elif field == "tags":
            value = list(value)
        elif field == "session_settings":
            value = {**(session.session_settings or {}), **value}
        setattr(session, field, value)

    await db.flush()
    logger.info(f"Live session {session.id} updated: {sorted(updates)}")
    return session


async def cancel(db: AsyncSession, session_id: uuid.UUID, user_id: uuid.UUID) -> LiveSession:
    session = await get(db, session_id)
    _ensure_host(session, user_id, "delete")
    if session.is_live:
        raise ValidationError("Cannot delete a live session")

    session.is_cancelled = True
    await db.flush()
    logger.info(f"Live session {session.id} cancelled")
    return session


async def join(
    db: AsyncSession,
    session_id: uuid.UUID,
    user_id: uuid.UUID,
    role: ParticipantRole = ParticipantRole.LISTENER,
) -> LiveSession:
    session = await get(db, session_id)
    if session.is_cancelled:
        raise ValidationError("Cannot join a cancelled session")
    if session.has_participant(user_id):
        raise ValidationError("You are already a participant in this session")
    participants = list(session.participants or [])
    if len(participants) >= session.max_participants:
        raise ValidationError("Session is full")

    participants.append({
        "user_id": str(user_id),
        "role": role.value,
        "joined_at": utcnow().isoformat(),
    })
    session.participants = participants
    await db.flush()
    logger.info(f"User {user_id} joined live session {session.id} as {role.value}")
    return session


async def start(db: AsyncSession, session_id: uuid.UUID, user_id: uuid.UUID) -> LiveSession:
    session = await get(db, session_id)
    _ensure_host(session, user_id, "start")
    if session.is_live:
        raise ValidationError("Session is already live")

    session.is_live = True
    session.actual_start_time = utcnow()
    await db.flush()
    logger.info(f"Live session {session.id} started")
    return session


async def end(db: AsyncSession, session_id: uuid.UUID, user_id: uuid.UUID) -> LiveSession:
    session = await get(db, session_id)
    _ensure_host(session, user_id, "end")
    if not session.is_live:
        raise ValidationError("Session is not live")

    ended = utcnow()
    started = as_utc(session.actual_start_time)
    session.is_live = False
    session.actual_end_time = ended
    session.duration = round((ended - started).total_seconds() / 60) if started else 0
    await db.flush()
    logger.info(f"Live session {session.id} ended after {session.duration} min")
    return session
