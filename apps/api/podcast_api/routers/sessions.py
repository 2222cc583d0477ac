# apps/api/podcast_api/routers/sessions.py
"""
Live Sessions Router - Podcast Platform
Hosts schedule and run sessions; any authenticated user can browse and join.
Ownership checks (only the host may update/start/end/cancel) live in the service.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, ConfigDict, Field

from podcast_api.core.deps import CurrentHostUser, CurrentUser, DBSession
from podcast_api.core.enums import AccessLevel, ParticipantRole, SessionCategory, StreamPlatform
from podcast_api.routers.schemas import UTCDateTime
from podcast_api.services import sessions as live

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["Live Sessions"])


# ────────────────────────────────────────────────
# Models
# ────────────────────────────────────────────────
class SessionCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    scheduled_start: datetime
    scheduled_end: datetime
    stream_platform: StreamPlatform
    stream_url: str = Field(..., min_length=1, max_length=1024)
    thumbnail_url: str = Field(..., min_length=1, max_length=1024)
    category: SessionCategory = SessionCategory.PODCAST
    tags: List[str] = Field(default_factory=list)
    access_level: AccessLevel = AccessLevel.PUBLIC
    max_participants: int = Field(100, ge=1)
    requires_registration: bool = False


class SessionUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    scheduled_start: Optional[datetime] = None
    scheduled_end: Optional[datetime] = None
    stream_platform: Optional[StreamPlatform] = None
    stream_url: Optional[str] = Field(None, max_length=1024)
    thumbnail_url: Optional[str] = Field(None, max_length=1024)
    recording_url: Optional[str] = Field(None, max_length=1024)
    category: Optional[SessionCategory] = None
    tags: Optional[List[str]] = None
    access_level: Optional[AccessLevel] = None
    max_participants: Optional[int] = Field(None, ge=1)
    requires_registration: Optional[bool] = None
    chat_enabled: Optional[bool] = None
    recording_enabled: Optional[bool] = None
    monetization_enabled: Optional[bool] = None
    session_settings: Optional[Dict[str, bool]] = None


class JoinRequest(BaseModel):
    role: ParticipantRole = ParticipantRole.LISTENER


class Participant(BaseModel):
    user_id: uuid.UUID
    role: ParticipantRole
    joined_at: datetime


class LiveSessionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    host_id: uuid.UUID
    title: str
    description: str
    scheduled_start: UTCDateTime
    scheduled_end: UTCDateTime
    is_live: bool
    is_recorded: bool
    is_cancelled: bool
    stream_platform: StreamPlatform
    stream_url: str
    thumbnail_url: str
    recording_url: Optional[str] = None
    duration: int
    participants: List[Participant]
    max_participants: int
    category: SessionCategory
    tags: List[str]
    access_level: AccessLevel
    requires_registration: bool
    actual_start_time: Optional[UTCDateTime] = None
    actual_end_time: Optional[UTCDateTime] = None
    viewer_count: int
    chat_enabled: bool
    recording_enabled: bool
    monetization_enabled: bool
    session_settings: Dict[str, Any]
    created_at: UTCDateTime


class SessionResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    session: LiveSessionOut


class SessionListResponse(BaseModel):
    success: bool = True
    sessions: List[LiveSessionOut]
    pagination: Dict[str, int]


# ────────────────────────────────────────────────
# Browse
# ────────────────────────────────────────────────
@router.get("", response_model=SessionListResponse)
async def list_sessions(
    db: DBSession,
    category: Optional[SessionCategory] = None,
    access_level: Optional[AccessLevel] = None,
    upcoming_only: bool = False,
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
):
    sessions, pagination = await live.list_sessions(
        db,
        category=category,
        access_level=access_level,
        upcoming_only=upcoming_only,
        search=search,
        page=page,
        limit=limit,
    )
    return {"sessions": sessions, "pagination": pagination}


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(session_id: uuid.UUID, db: DBSession):
    return {"session": await live.get(db, session_id)}


# ────────────────────────────────────────────────
# Host management
# ────────────────────────────────────────────────
@router.post("/create", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def create_session(payload: SessionCreate, current_user: CurrentHostUser, db: DBSession):
    session = await live.create(db, current_user.id, payload.model_dump())
    await db.commit()
    return {"message": "Live session created successfully", "session": session}


@router.put("/{session_id}", response_model=SessionResponse)
async def update_session(
    session_id: uuid.UUID,
    payload: SessionUpdate,
    current_user: CurrentUser,
    db: DBSession,
):
    session = await live.update(db, session_id, current_user.id, payload.model_dump(exclude_unset=True))
    await db.commit()
    return {"message": "Live session updated successfully", "session": session}


@router.delete("/{session_id}", response_model=SessionResponse)
async def delete_session(session_id: uuid.UUID, current_user: CurrentUser, db: DBSession):
    session = await live.cancel(db, session_id, current_user.id)
    await db.commit()
    return {"message": "Live session cancelled successfully", "session": session}


@router.post("/{session_id}/start", response_model=SessionResponse)
async def start_session(session_id: uuid.UUID, current_user: CurrentUser, db: DBSession):
    session = await live.start(db, session_id, current_user.id)
    await db.commit()
    return {"message": "Live session started", "session": session}


@router.post("/{session_id}/end", response_model=SessionResponse)
async def end_session(session_id: uuid.UUID, current_user: CurrentUser, db: DBSession):
    session = await live.end(db, session_id, current_user.id)
    await db.commit()
    return {"message": "Live session ended", "session": session}


# ────────────────────────────────────────────────
# Participation
# ────────────────────────────────────────────────
@router.post("/{session_id}/join", response_model=SessionResponse)
async def join_session(
    session_id: uuid.UUID,
    current_user: CurrentUser,
    db: DBSession,
    payload: Optional[JoinRequest] = None,
):
    role = payload.role if payload else ParticipantRole.LISTENER
    session = await live.join(db, session_id, current_user.id, role=role)
    await db.commit()
    return {"message": "Successfully joined the session", "session": session}
