"""Heads-up to buyers before their escrow hold auto-releases."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from sqlalchemy import select, update

from escrowline.common.clock import utcnow
from escrowline.common.enums import (
    HoldStatus,
    NotificationAudience,
    NotificationCategory,
    NotificationSeverity,
)
from escrowline.common.logging import get_logger
from escrowline.config import settings
from escrowline.core.batch import BatchResult
from escrowline.core.escrow.policy import days_remaining, reminder_horizon
from escrowline.core.notifications.service import NotificationService
from escrowline.db.models.escrow_hold import EscrowHold
from escrowline.db.session import DatabaseSessionManager

logger = get_logger("escrow.reminders")


class ReminderDispatcher:
    def __init__(
        self,
        db: DatabaseSessionManager,
        notifier: NotificationService,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.db = db
        self.notifier = notifier
        self.clock = clock

    async def find_candidates(self, now: datetime, reminder_window_days: int) -> list[EscrowHold]:
        """Active, unreminded holds that release within the window but are not yet due."""
        async with self.db.session() as session:
            result = await session.execute(
                select(EscrowHold)
                .where(
                    EscrowHold.status == HoldStatus.ACTIVE.value,
                    EscrowHold.reminder_sent_at.is_(None),
                    EscrowHold.releasable_at > now,
                    EscrowHold.releasable_at <= reminder_horizon(now, reminder_window_days),
                )
                .order_by(EscrowHold.releasable_at)
            )
            return list(result.scalars().all())

    async def mark_reminded(self, hold: EscrowHold, now: datetime) -> bool:
        """Stamp ``reminder_sent_at``; False if another run got there first."""
        async with self.db.session() as session:
            result = await session.execute(
                update(EscrowHold)
                .where(
                    EscrowHold.id == hold.id,
                    EscrowHold.status == HoldStatus.ACTIVE.value,
                    EscrowHold.reminder_sent_at.is_(None),
                )
                .values(status=HoldStatus.REMINDER_SENT.value, reminder_sent_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                await session.rollback()
                return False
            await session.commit()
        return True

    async def run(self, reminder_window_days: int | None = None) -> BatchResult:
        if reminder_window_days is None:
            reminder_window_days = settings.ESCROW_REMINDER_WINDOW_DAYS
        now = self.clock()
        holds = await self.find_candidates(now, reminder_window_days)
        batch = BatchResult()

        for hold in holds:
            try:
                marked = await self.mark_reminded(hold, now)
            except Exception as e:
                logger.error("Failed to mark reminder for hold %s: %s", hold.id, e, extra={"hold_id": hold.id})
                batch.record_failure(hold.id)
                continue

            if not marked:
                batch.skipped += 1
                continue

            batch.succeeded += 1
            await self._send_reminder(hold, now)

        logger.info(
            "Reminder run finished: sent=%d failed=%d skipped=%d",
            batch.succeeded,
            batch.failed,
            batch.skipped,
        )
        return batch

    async def _send_reminder(self, hold: EscrowHold, now: datetime) -> None:
        order = hold.order
        if order is None:
            logger.warning("Hold %s has no order loaded, reminder not sent", hold.id)
            return
        days_left = days_remaining(hold.releasable_at, now)
        await self.notifier.notify(
            order.buyer_id,
            NotificationCategory.REMINDER,
            NotificationSeverity.WARNING,
            (
                f"Payment for order {str(order.id)[:8]} will be released to the seller in "
                f"{days_left} day(s). Open a dispute before then if something is wrong with your order."
            ),
            related_entity_id=order.id,
            audience=NotificationAudience.BUYER,
            email=order.buyer_email,
        )
