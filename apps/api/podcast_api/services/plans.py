# apps/api/podcast_api/services/plans.py
"""
Plan Catalog Service - Podcast Platform
Admin-managed pricing tiers. Leaf data consumed by subscriptions and payments.
Duplicate names are rejected by the plans.name unique index, not only by the lookup.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from podcast_api.core.errors import Conflict, NotFound
from podcast_api.db.models import Plan

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "name",
    "description",
    "price",
    "duration",
    "features",
    "storage_quota_mb",
    "max_podcasts",
    "stripe_price_id",
    "is_active",
)


async def list_active(db: AsyncSession) -> List[Plan]:
    result = await db.scalars(
        select(Plan).where(Plan.is_active.is_(True)).order_by(Plan.price.asc(), Plan.name.asc())
    )
    return list(result.all())


async def get(db: AsyncSession, plan_id: uuid.UUID) -> Plan:
    plan = await db.get(Plan, plan_id)
    if not plan:
        raise NotFound("Plan not found")
    return plan


async def get_by_name(db: AsyncSession, name: str) -> Optional[Plan]:
    return await db.scalar(select(Plan).where(Plan.name == name))


async def create(db: AsyncSession, attrs: Dict[str, Any]) -> Plan:
    if await get_by_name(db, attrs["name"]):
        raise Conflict("Plan with this name already exists", error_code="DUPLICATE_PLAN")

    plan = Plan(
        name=attrs["name"],
        description=attrs.get("description", ""),
        price=attrs["price"],
        duration=attrs["duration"],
        features=list(attrs.get("features") or []),
        storage_quota_mb=attrs.get("storage_quota_mb") or 100,
        max_podcasts=attrs.get("max_podcasts"),
        stripe_price_id=attrs.get("stripe_price_id"),
    )
    db.add(plan)
    try:
        await db.flush()
    except IntegrityError as e:
        raise Conflict("Plan with this name already exists", error_code="DUPLICATE_PLAN") from e

    logger.info(f"Plan created: {plan.name} ({plan.price} minor units / {plan.duration}d)")
    return plan


async def update(db: AsyncSession, plan_id: uuid.UUID, attrs: Dict[str, Any]) -> Plan:
    plan = await get(db, plan_id)

    new_name = attrs.get("name")
    if new_name and new_name != plan.name and await get_by_name(db, new_name):
        raise Conflict("Plan with this name already exists", error_code="DUPLICATE_PLAN")

    for field in UPDATABLE_FIELDS:
        if field in attrs and attrs[field] is not None:
            value = attrs[field]
            setattr(plan, field, list(value) if field == "features" else value)

    try:
        await db.flush()
    except IntegrityError as e:
        raise Conflict("Plan with this name already exists", error_code="DUPLICATE_PLAN") from e

    logger.info(f"Plan updated: {plan.id} ({plan.name})")
    return plan


async def soft_delete(db: AsyncSession, plan_id: uuid.UUID) -> Plan:
    plan = await get(db, plan_id)
    plan.soft_delete()
    await db.flush()
    logger.info(f"Plan deactivated: {plan.id} ({plan.name})")
    return plan
