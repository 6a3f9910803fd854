"""Scheduled auto-release of escrow holds whose hold period has elapsed."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from sqlalchemy import select

from escrowline.common.clock import ensure_utc, utcnow
from escrowline.common.enums import NotificationAudience, NotificationCategory, NotificationSeverity
from escrowline.common.logging import get_logger
from escrowline.core.batch import BatchResult
from escrowline.core.escrow.ledger import open_dispute_exists, release_hold
from escrowline.core.escrow.policy import (
    RELEASABLE_HOLD_STATUSES,
    release_cutoff,
)
from escrowline.core.notifications.service import NotificationService
from escrowline.db.models.escrow_hold import EscrowHold
from escrowline.db.session import DatabaseSessionManager

logger = get_logger("escrow.release")


class HoldReleaseEngine:
    def __init__(
        self,
        db: DatabaseSessionManager,
        notifier: NotificationService,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.db = db
        self.notifier = notifier
        self.clock = clock

    async def find_candidates(self, now: datetime, threshold_days: int | None = None) -> list[EscrowHold]:
        """Releasable holds past their hold period with no unresolved dispute.

        With ``threshold_days`` unset each hold is due at its own
        ``releasable_at``. Errors here are batch-fatal and propagate.
        """
        if threshold_days is None:
            due = EscrowHold.releasable_at <= now
        else:
            due = EscrowHold.created_at <= release_cutoff(now, threshold_days)

        async with self.db.session() as session:
            result = await session.execute(
                select(EscrowHold)
                .where(
                    EscrowHold.status.in_(RELEASABLE_HOLD_STATUSES),
                    due,
                    ~open_dispute_exists(),
                )
                .order_by(EscrowHold.releasable_at)
            )
            return list(result.scalars().all())

    async def release_one(self, hold: EscrowHold, now: datetime) -> int | None:
        """Release one hold in its own transaction; returns the amount credited, or None if it had moved on."""
        days = (now - ensure_utc(hold.created_at)).days
        async with self.db.session() as session:
            credited = await release_hold(
                session,
                hold,
                now,
                description=f"Auto-released payment hold after {days} days",
            )
            if credited is None:
                await session.rollback()
                return None
            await session.commit()
        return credited

    async def run(self, threshold_days: int | None = None) -> BatchResult:
        now = self.clock()
        holds = await self.find_candidates(now, threshold_days)
        batch = BatchResult()

        if not holds:
            logger.info("No expired payment holds to release")
            return batch

        for hold in holds:
            try:
                credited = await self.release_one(hold, now)
            except Exception as e:
                logger.error("Failed to release hold %s: %s", hold.id, e, extra={"hold_id": hold.id})
                batch.record_failure(hold.id)
                continue

            if credited is None:
                logger.info("Hold %s already moved on, skipping", hold.id)
                batch.skipped += 1
                continue

            batch.succeeded += 1
            logger.info("Payment hold %s released for order %s", hold.id, hold.order_id)
            await self._notify_release(hold, credited)

        logger.info(
            "Hold release run finished: released=%d failed=%d skipped=%d",
            batch.succeeded,
            batch.failed,
            batch.skipped,
        )
        return batch

    async def _notify_release(self, hold: EscrowHold, amount_cents: int) -> None:
        order = hold.order
        short_id = str(hold.order_id)[:8]
        amount = _format_amount(amount_cents, hold.currency)
        await self.notifier.notify(
            hold.seller_id,
            NotificationCategory.RELEASE,
            NotificationSeverity.INFO,
            f"Your payment hold of {amount} for order {short_id} has been released. Funds will be processed.",
            related_entity_id=hold.order_id,
            audience=NotificationAudience.SELLER,
            email=order.seller.email if order and order.seller else None,
        )
        if order is not None:
            await self.notifier.notify(
                order.buyer_id,
                NotificationCategory.RELEASE,
                NotificationSeverity.INFO,
                f"The escrow period for order {short_id} has ended and payment was released to the seller.",
                related_entity_id=hold.order_id,
                audience=NotificationAudience.BUYER,
                email=order.buyer_email,
            )


def _format_amount(amount_cents: int, currency: str) -> str:
    return f"{currency} {amount_cents / 100:,.2f}"
