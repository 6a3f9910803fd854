"""Scheduled escalation of disputes left unresolved past their threshold."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from escrowline.common.clock import utcnow
from escrowline.common.enums import (
    DisputeStatus,
    NotificationAudience,
    NotificationCategory,
    NotificationSeverity,
)
from escrowline.common.logging import get_logger
from escrowline.config import settings
from escrowline.core.batch import BatchResult
from escrowline.core.disputes.workflow import (
    ESCALATABLE_STATUSES,
    append_history,
    history_entry,
    hours_open,
    is_escalation_due,
)
from escrowline.core.notifications.service import NotificationService
from escrowline.db.models.dispute import Dispute
from escrowline.db.session import DatabaseSessionManager

logger = get_logger("disputes.escalation")


class DisputeEscalationEngine:
    def __init__(
        self,
        db: DatabaseSessionManager,
        notifier: NotificationService,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.db = db
        self.notifier = notifier
        self.clock = clock

    async def find_candidates(self, now: datetime, threshold_days: int | None = None) -> list[Dispute]:
        """Open or under-review disputes older than the threshold.

        ``threshold_days`` overrides each dispute's own
        ``escalation_threshold_days`` when given.
        """
        async with self.db.session() as session:
            result = await session.execute(
                select(Dispute)
                .where(
                    Dispute.status.in_(ESCALATABLE_STATUSES),
                )
                .order_by(Dispute.opened_at)
            )
            disputes = result.scalars().all()

        return [
            d for d in disputes
            if is_escalation_due(
                d.opened_at,
                threshold_days if threshold_days is not None else d.escalation_threshold_days,
                now,
            )
        ]

    async def _apply_escalation(self, session: AsyncSession, dispute: Dispute, now: datetime) -> bool:
        result = await session.execute(
            update(Dispute)
            .where(Dispute.id == dispute.id, Dispute.status == dispute.status)
            .values(
                status=DisputeStatus.ESCALATED.value,
                escalated_at=now,
                history=append_history(
                    dispute.history,
                    history_entry(
                        "auto_escalated",
                        now,
                        **{"from": dispute.status, "to": DisputeStatus.ESCALATED.value},
                        hours_open=round(hours_open(dispute.opened_at, now)),
                    ),
                ),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def escalate_one(self, dispute: Dispute, now: datetime) -> bool:
        async with self.db.session() as session:
            escalated = await self._apply_escalation(session, dispute, now)
            if not escalated:
                await session.rollback()
                return False
            await session.commit()
        return True

    async def run(self, threshold_days: int | None = None) -> BatchResult:
        now = self.clock()
        disputes = await self.find_candidates(now, threshold_days)
        batch = BatchResult()

        for dispute in disputes:
            try:
                escalated = await self.escalate_one(dispute, now)
            except Exception as e:
                logger.error(
                    "Failed to escalate dispute %s: %s", dispute.id, e, extra={"dispute_id": dispute.id}
                )
                batch.record_failure(dispute.id)
                continue

            if not escalated:
                batch.skipped += 1
                continue

            batch.succeeded += 1
            logger.info("Auto-escalated dispute %s: %s -> escalated", dispute.id, dispute.status)
            await self._notify_admins(dispute, now)

        logger.info(
            "Escalation run finished: escalated=%d failed=%d skipped=%d",
            batch.succeeded,
            batch.failed,
            batch.skipped,
        )
        return batch

    async def _notify_admins(self, dispute: Dispute, now: datetime) -> None:
        hours = round(hours_open(dispute.opened_at, now))
        await self.notifier.notify(
            None,
            NotificationCategory.ESCALATION,
            NotificationSeverity.CRITICAL,
            (
                f"Dispute {str(dispute.id)[:8]} on order {str(dispute.order_id)[:8]} has been unresolved "
                f"for {hours} hours and was escalated. Reason: {dispute.reason}"
            ),
            related_entity_id=dispute.id,
            audience=NotificationAudience.ADMIN,
            email=settings.ADMIN_ALERT_EMAIL or None,
        )
