from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime

from sqlalchemy import select, update

from escrowline.common.clock import ensure_utc, utcnow
from escrowline.common.enums import (
    DisputeResolution,
    DisputeStatus,
    HoldStatus,
    LedgerEntryStatus,
    LedgerTransactionType,
    NotificationAudience,
    NotificationCategory,
    NotificationSeverity,
    PayoutStatus,
)
from escrowline.common.exceptions import BadRequestError, ConflictError, NotFoundError, PermissionDeniedError
from escrowline.common.logging import get_logger
from escrowline.config import settings
from escrowline.core.disputes.schemas import SLAStatus
from escrowline.core.disputes.workflow import (
    AT_RISK_AFTER_HOURS,
    TERMINAL_STATUSES,
    append_history,
    can_transition,
    history_entry,
    hours_open,
    sla_level,
)
from escrowline.core.escrow.ledger import refund_hold, release_hold
from escrowline.core.escrow.policy import RELEASABLE_HOLD_STATUSES, UNRESOLVED_DISPUTE_STATUSES
from escrowline.core.notifications.service import NotificationService
from escrowline.db.models.dispute import Dispute
from escrowline.db.models.escrow_hold import EscrowHold
from escrowline.db.models.ledger import LedgerEntry
from escrowline.db.models.order import Order
from escrowline.db.session import DatabaseSessionManager

logger = get_logger("disputes.service")

DISPUTED_ONLY = (HoldStatus.DISPUTED.value,)


class DisputeService:
    def __init__(
        self,
        db: DatabaseSessionManager,
        notifier: NotificationService,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.db = db
        self.notifier = notifier
        self.clock = clock

    async def open_dispute(
        self,
        order_id: uuid.UUID,
        buyer_id: uuid.UUID,
        reason: str,
        evidence: list[str] | None = None,
    ) -> Dispute:
        now = self.clock()
        async with self.db.session() as session:
            order = await session.get(Order, order_id)
            if not order or order.buyer_id != buyer_id:
                raise PermissionDeniedError("Cannot initiate dispute for this order")
            if order.payout_status == PayoutStatus.PAID.value:
                raise BadRequestError("Cannot dispute completed orders")

            unresolved = await session.execute(
                select(Dispute.id).where(
                    Dispute.order_id == order_id,
                    Dispute.status.in_(UNRESOLVED_DISPUTE_STATUSES),
                )
            )
            if unresolved.first():
                raise ConflictError("This order already has an unresolved dispute")

            # The hold must still be in escrow; freezing it is a conditional write.
            frozen = await session.execute(
                update(EscrowHold)
                .where(EscrowHold.order_id == order_id, EscrowHold.status.in_(RELEASABLE_HOLD_STATUSES))
                .values(status=HoldStatus.DISPUTED.value)
                .execution_options(synchronize_session=False)
            )
            if frozen.rowcount != 1:
                raise ConflictError("Escrow funds for this order are no longer held")

            dispute = Dispute(
                order_id=order_id,
                buyer_id=buyer_id,
                seller_id=order.seller_id,
                status=DisputeStatus.OPEN.value,
                reason=reason,
                evidence=evidence or [],
                opened_at=now,
                escalation_threshold_days=settings.DISPUTE_ESCALATION_DAYS,
                history=[history_entry("opened", now, by=str(buyer_id), reason=reason)],
            )
            session.add(dispute)
            session.add(
                LedgerEntry(
                    seller_id=order.seller_id,
                    order_id=order_id,
                    transaction_type=LedgerTransactionType.REFUND_INITIATED.value,
                    amount_cents=0,
                    currency=order.currency,
                    status=LedgerEntryStatus.PENDING.value,
                    description=f"Dispute initiated - {reason}",
                )
            )
            await session.commit()
            await session.refresh(dispute)

        logger.info("Dispute %s opened for order %s", dispute.id, order_id)
        await self.notifier.notify(
            order.seller_id,
            NotificationCategory.DISPUTE,
            NotificationSeverity.WARNING,
            f"A customer has initiated a dispute for order {str(order_id)[:8]}: {reason}",
            related_entity_id=dispute.id,
            audience=NotificationAudience.SELLER,
            email=order.seller.email if order.seller else None,
        )
        return dispute

    async def get_dispute(self, dispute_id: uuid.UUID) -> Dispute:
        async with self.db.session() as session:
            dispute = await session.get(Dispute, dispute_id)
        if not dispute:
            raise NotFoundError("Dispute", str(dispute_id))
        return dispute

    async def start_review(self, dispute_id: uuid.UUID, reviewer_id: uuid.UUID | None = None) -> Dispute:
        return await self._move(dispute_id, DisputeStatus.UNDER_REVIEW, "review_started", by=reviewer_id)

    async def reject_dispute(self, dispute_id: uuid.UUID, note: str) -> Dispute:
        """Close the dispute without a refund and put the hold back into escrow."""
        now = self.clock()
        async with self.db.session() as session:
            dispute = await self._load_for_update(session, dispute_id, DisputeStatus.REJECTED)
            await self._write_status(
                session,
                dispute,
                DisputeStatus.REJECTED,
                now,
                history_entry("rejected", now, note=note),
                resolution_note=note,
                resolved_at=now,
            )
            hold = await self._hold_for(session, dispute.order_id)
            if hold is not None:
                back_to = HoldStatus.REMINDER_SENT.value if hold.reminder_sent_at else HoldStatus.ACTIVE.value
                await session.execute(
                    update(EscrowHold)
                    .where(EscrowHold.id == hold.id, EscrowHold.status == HoldStatus.DISPUTED.value)
                    .values(status=back_to)
                    .execution_options(synchronize_session=False)
                )
            await session.commit()

        logger.info("Dispute %s rejected", dispute_id)
        await self._notify_parties(
            dispute, f"The dispute on order {str(dispute.order_id)[:8]} was closed without a refund: {note}"
        )
        return await self.get_dispute(dispute_id)

    async def resolve_dispute(
        self,
        dispute_id: uuid.UUID,
        resolution: DisputeResolution,
        refund_amount_cents: int | None = None,
        note: str | None = None,
    ) -> Dispute:
        now = self.clock()
        if resolution == DisputeResolution.PARTIAL_REFUND and not refund_amount_cents:
            raise BadRequestError("A refund amount is required for a partial refund")
        if refund_amount_cents is not None and refund_amount_cents <= 0:
            raise BadRequestError("Refund amount must be positive")

        async with self.db.session() as session:
            dispute = await self._load_for_update(session, dispute_id, DisputeStatus.RESOLVED)
            await self._write_status(
                session,
                dispute,
                DisputeStatus.RESOLVED,
                now,
                history_entry(
                    "resolved", now, resolution=resolution.value, refund_amount_cents=refund_amount_cents
                ),
                resolution=resolution.value,
                resolution_note=note,
                resolved_at=now,
            )

            hold = await self._hold_for(session, dispute.order_id)
            if hold is None or hold.status != HoldStatus.DISPUTED.value:
                raise ConflictError("Escrow hold for this order is not frozen by the dispute")

            if resolution == DisputeResolution.BUYER_REFUND:
                outcome = await refund_hold(
                    session, hold, hold.amount_cents, now,
                    reason="Dispute resolution: full refund to buyer",
                    from_statuses=DISPUTED_ONLY,
                )
                if outcome is None:
                    raise ConflictError("Escrow hold changed while the dispute was being resolved")
                message = f"The dispute on order {str(dispute.order_id)[:8]} was resolved with a full refund to the buyer."

            elif resolution == DisputeResolution.SELLER_KEEP:
                if await release_hold(
                    session, hold, now,
                    description="Dispute resolution: seller keeps funds",
                    from_statuses=DISPUTED_ONLY,
                ) is None:
                    raise ConflictError("Escrow hold changed while the dispute was being resolved")
                message = f"The dispute on order {str(dispute.order_id)[:8]} was resolved in the seller's favour."

            else:
                if refund_amount_cents >= hold.amount_cents:
                    raise BadRequestError("Partial refund must be less than the amount held in escrow")
                outcome = await refund_hold(
                    session, hold, refund_amount_cents, now,
                    reason="Dispute resolution: partial refund",
                    from_statuses=DISPUTED_ONLY,
                )
                if outcome is None or await release_hold(
                    session, hold, now,
                    description="Dispute resolution: remainder released to seller",
                    from_statuses=DISPUTED_ONLY,
                ) is None:
                    raise ConflictError("Escrow hold changed while the dispute was being resolved")
                message = (
                    f"The dispute on order {str(dispute.order_id)[:8]} was resolved with a partial refund of "
                    f"{hold.currency} {refund_amount_cents / 100:,.2f}; the remainder goes to the seller."
                )

            await session.commit()

        logger.info("Dispute %s resolved with %s", dispute_id, resolution.value)
        await self._notify_parties(dispute, message)
        return await self.get_dispute(dispute_id)

    async def get_sla_status(self, dispute_id: uuid.UUID) -> SLAStatus:
        dispute = await self.get_dispute(dispute_id)
        end = ensure_utc(dispute.resolved_at) if dispute.resolved_at else self.clock()
        elapsed = hours_open(dispute.opened_at, end)
        level, remaining = sla_level(elapsed)
        return SLAStatus(
            dispute_id=dispute.id,
            status=dispute.status,
            escalation_level=level,
            hours_elapsed=round(elapsed),
            remaining_hours=round(remaining),
            opened_at=dispute.opened_at,
            escalated_at=dispute.escalated_at,
            resolved_at=dispute.resolved_at,
            is_at_risk=dispute.status not in TERMINAL_STATUSES and elapsed > AT_RISK_AFTER_HOURS,
        )

    # ---------- internals ----------

    async def _move(
        self, dispute_id: uuid.UUID, target: DisputeStatus, action: str, by: uuid.UUID | None = None
    ) -> Dispute:
        now = self.clock()
        async with self.db.session() as session:
            dispute = await self._load_for_update(session, dispute_id, target)
            await self._write_status(
                session, dispute, target, now, history_entry(action, now, by=str(by) if by else None)
            )
            await session.commit()
        logger.info("Dispute %s moved to %s", dispute_id, target.value)
        return await self.get_dispute(dispute_id)

    async def _load_for_update(self, session, dispute_id: uuid.UUID, target: DisputeStatus) -> Dispute:
        dispute = await session.get(Dispute, dispute_id)
        if not dispute:
            raise NotFoundError("Dispute", str(dispute_id))
        if not can_transition(dispute.status, target.value):
            raise BadRequestError(f"Cannot move dispute from '{dispute.status}' to '{target.value}'")
        return dispute

    async def _write_status(
        self, session, dispute: Dispute, target: DisputeStatus, now: datetime, entry: dict, **values
    ) -> None:
        # escalated_at is only set while escalated; the history keeps the escalation record
        if dispute.status == DisputeStatus.ESCALATED.value and target != DisputeStatus.ESCALATED:
            values["escalated_at"] = None
        result = await session.execute(
            update(Dispute)
            .where(Dispute.id == dispute.id, Dispute.status == dispute.status)
            .values(status=target.value, history=append_history(dispute.history, entry), **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConflictError("Dispute was updated concurrently, retry the request")

    async def _hold_for(self, session, order_id: uuid.UUID) -> EscrowHold | None:
        result = await session.execute(select(EscrowHold).where(EscrowHold.order_id == order_id))
        return result.scalar_one_or_none()

    async def _notify_parties(self, dispute: Dispute, message: str) -> None:
        order = dispute.order
        await self.notifier.notify(
            dispute.seller_id,
            NotificationCategory.DISPUTE,
            NotificationSeverity.INFO,
            message,
            related_entity_id=dispute.id,
            audience=NotificationAudience.SELLER,
            email=order.seller.email if order and order.seller else None,
        )
        await self.notifier.notify(
            dispute.buyer_id,
            NotificationCategory.DISPUTE,
            NotificationSeverity.INFO,
            message,
            related_entity_id=dispute.id,
            audience=NotificationAudience.BUYER,
            email=order.buyer_email if order else None,
        )
