# apps/api/podcast_api/routers/plans.py
"""
Plans Router - Podcast Platform
Public catalog reads; admin-only create / update / soft delete.
"""

import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from podcast_api.core.deps import CurrentAdminUser, DBSession
from podcast_api.routers.schemas import PlanOut
from podcast_api.services import plans as catalog

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/plans", tags=["Plans"])


# ────────────────────────────────────────────────
# Models
# ────────────────────────────────────────────────
class PlanCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1)
    price: int = Field(..., ge=0, description="Minor currency units (999 = $9.99)")
    duration: int = Field(..., ge=1, description="Billing term in days")
    features: List[str] = Field(default_factory=list)
    storage_quota_mb: int = Field(100, ge=0)
    max_podcasts: Optional[int] = Field(None, ge=0)
    stripe_price_id: Optional[str] = None


class PlanUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    price: Optional[int] = Field(None, ge=0)
    duration: Optional[int] = Field(None, ge=1)
    features: Optional[List[str]] = None
    storage_quota_mb: Optional[int] = Field(None, ge=0)
    max_podcasts: Optional[int] = Field(None, ge=0)
    stripe_price_id: Optional[str] = None
    is_active: Optional[bool] = None


# ────────────────────────────────────────────────
# Public
# ────────────────────────────────────────────────
@router.get("", response_model=List[PlanOut])
async def list_plans(db: DBSession):
    return await catalog.list_active(db)


@router.get("/{plan_id}", response_model=PlanOut)
async def get_plan(plan_id: uuid.UUID, db: DBSession):
    return await catalog.get(db, plan_id)


# ────────────────────────────────────────────────
# Admin
# ────────────────────────────────────────────────
@router.post("", response_model=PlanOut, status_code=status.HTTP_201_CREATED)
async def create_plan(payload: PlanCreate, current_user: CurrentAdminUser, db: DBSession):
    plan = await catalog.create(db, payload.model_dump())
    await db.commit()
    logger.info(f"Admin {current_user.email} created plan {plan.name}")
    return plan


@router.put("/{plan_id}", response_model=PlanOut)
async def update_plan(plan_id: uuid.UUID, payload: PlanUpdate, current_user: CurrentAdminUser, db: DBSession):
    plan = await catalog.update(db, plan_id, payload.model_dump(exclude_unset=True))
    await db.commit()
    return plan


@router.delete("/{plan_id}", response_model=PlanOut)
async def delete_plan(plan_id: uuid.UUID, current_user: CurrentAdminUser, db: DBSession):
    plan = await catalog.soft_delete(db, plan_id)
    await db.commit()
    logger.info(f"Admin {current_user.email} deactivated plan {plan.name}")
    return plan
