# apps/api/podcast_api/core/deps.py
"""
Shared FastAPI dependency aliases.
Routers annotate parameters with these instead of repeating Depends(...).
"""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from podcast_api.db.session import get_db
from podcast_api.middleware.auth import AdminUser, AuthUser, CurrentUser, HostUser
from podcast_api.services.gateway import PaymentGatewayClient, get_gateway
from podcast_api.services.settlement import SettlementScheduler, get_settlement_scheduler
from podcast_api.services.webhooks import WebhookReconciler, get_reconciler

DBSession = Annotated[AsyncSession, Depends(get_db)]
Gateway = Annotated[PaymentGatewayClient, Depends(get_gateway)]
Settlement = Annotated[SettlementScheduler, Depends(get_settlement_scheduler)]
Reconciler = Annotated[WebhookReconciler, Depends(get_reconciler)]

CurrentAdminUser = AdminUser
CurrentHostUser = HostUser

__all__ = [
    "AuthUser",
    "CurrentUser",
    "CurrentAdminUser",
    "CurrentHostUser",
    "DBSession",
    "Gateway",
    "Settlement",
    "Reconciler",
]
