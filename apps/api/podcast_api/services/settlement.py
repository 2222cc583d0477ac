# apps/api/podcast_api/services/settlement.py
"""
Settlement Scheduler - Podcast Platform
Deferred completion of simulated payments.

- One asyncio task per payment id; scheduling the same id again replaces it
- The initiating request never waits: it commits the pending payment, schedules, returns
- Pending simulated payments are persisted, so a restart rehydrates them
  from the database (overdue ones settle immediately)
"""

import asyncio
import logging
import uuid
from typing import Dict, Optional

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from podcast_api.core.config import settings
from podcast_api.db.models.utils import as_utc, utcnow
from podcast_api.services import payments as ledger
from podcast_api.services import subscriptions as lifecycle

logger = logging.getLogger(__name__)

FAILURE_REASON = "Payment processing failed"


class SettlementScheduler:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        delay_seconds: Optional[float] = None,
    ):
        self.session_factory = session_factory
        self.delay_seconds = (
            settings.PAYMENT_SIMULATION_DELAY_SECONDS if delay_seconds is None else delay_seconds
        )
        self._tasks: Dict[uuid.UUID, asyncio.Task[None]] = {}

    def __len__(self) -> int:
        return len(self._tasks)

    def is_scheduled(self, payment_id: uuid.UUID) -> bool:
        return payment_id in self._tasks

    def schedule(self, payment_id: uuid.UUID, delay: Optional[float] = None) -> asyncio.Task[None]:
        self.cancel(payment_id)
        delay = self.delay_seconds if delay is None else max(0.0, delay)
        task = asyncio.create_task(self._run(payment_id, delay), name=f"settle-{payment_id}")
        self._tasks[payment_id] = task
        task.add_done_callback(lambda t, pid=payment_id: self._forget(pid, t))
        logger.debug(f"Settlement scheduled for payment {payment_id} in {delay:.2f}s")
        return task

    def cancel(self, payment_id: uuid.UUID) -> bool:
        task = self._tasks.pop(payment_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        logger.info(f"Settlement cancelled for payment {payment_id}")
        return True

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if tasks:
            logger.info(f"Settlement scheduler stopped ({len(tasks)} pending task(s) cancelled)")

    async def rehydrate(self) -> int:
        """Reschedule every pending simulated payment for the rest of its delay."""
        async with self.session_factory() as db:
            pending = await ledger.list_pending_simulated(db)

        now = utcnow()
        for payment in pending:
            elapsed = (now - as_utc(payment.payment_date)).total_seconds()
            self.schedule(payment.id, self.delay_seconds - elapsed)

        if pending:
            logger.info(f"Rehydrated {len(pending)} pending simulated payment(s)")
        return len(pending)

    def _forget(self, payment_id: uuid.UUID, task: asyncio.Task[None]) -> None:
        if self._tasks.get(payment_id) is task:
            del self._tasks[payment_id]

    async def _run(self, payment_id: uuid.UUID, delay: float) -> None:
        await asyncio.sleep(delay)

        try:
            async with self.session_factory() as db:
                await lifecycle.settle_payment(db, payment_id, success=True)
                await db.commit()
            return
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"Settlement of payment {payment_id} failed; marking as failed")

        try:
            async with self.session_factory() as db:
                await lifecycle.settle_payment(db, payment_id, success=False, reason=FAILURE_REASON)
                await db.commit()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"Could not record failure for payment {payment_id}")


# ────────────────────────────────────────────────
# FastAPI Dependency: process-wide scheduler from app.state
# ────────────────────────────────────────────────
def get_settlement_scheduler(request: Request) -> SettlementScheduler:
    return request.app.state.settlement
