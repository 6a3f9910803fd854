from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime

from sqlalchemy import func, select, update

from escrowline.common.clock import ensure_utc, utcnow
from escrowline.common.enums import (
    DeliveryStatus,
    HoldStatus,
    LedgerEntryStatus,
    LedgerTransactionType,
    NotificationAudience,
    NotificationCategory,
    NotificationSeverity,
)
from escrowline.common.exceptions import BadRequestError, ConflictError, NotFoundError, PermissionDeniedError
from escrowline.common.logging import get_logger
from escrowline.config import settings
from escrowline.core.escrow.ledger import refund_hold, release_hold
from escrowline.core.escrow.policy import RELEASABLE_HOLD_STATUSES, days_remaining, releasable_at
from escrowline.core.escrow.schemas import (
    HoldStatusView,
    LedgerEntryView,
    RefundOutcome,
    SellerEscrowSummary,
)
from escrowline.core.notifications.service import NotificationService
from escrowline.db.models.escrow_hold import EscrowHold
from escrowline.db.models.ledger import LedgerEntry
from escrowline.db.models.order import Order
from escrowline.db.models.seller import SellerBalance
from escrowline.db.session import DatabaseSessionManager

logger = get_logger("escrow.service")


class EscrowService:
    def __init__(
        self,
        db: DatabaseSessionManager,
        notifier: NotificationService,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.db = db
        self.notifier = notifier
        self.clock = clock

    async def create_hold(
        self,
        order_id: uuid.UUID,
        payment_ref: str | None = None,
        hold_duration_days: int | None = None,
    ) -> EscrowHold:
        now = self.clock()
        duration = hold_duration_days or settings.ESCROW_HOLD_DURATION_DAYS
        async with self.db.session() as session:
            order = await session.get(Order, order_id)
            if not order:
                raise NotFoundError("Order", str(order_id))

            existing = await session.execute(select(EscrowHold.id).where(EscrowHold.order_id == order_id))
            if existing.scalar_one_or_none():
                raise ConflictError(f"Order '{order_id}' already has an escrow hold")

            hold = EscrowHold(
                order_id=order.id,
                seller_id=order.seller_id,
                payment_ref=payment_ref,
                amount_cents=order.amount_cents,
                currency=order.currency,
                status=HoldStatus.ACTIVE.value,
                hold_duration_days=duration,
                created_at=now,
                releasable_at=releasable_at(now, duration),
            )
            session.add(hold)
            await session.flush()
            session.add(
                LedgerEntry(
                    seller_id=order.seller_id,
                    order_id=order.id,
                    hold_id=hold.id,
                    transaction_type=LedgerTransactionType.SALE.value,
                    amount_cents=order.amount_cents,
                    currency=order.currency,
                    status=LedgerEntryStatus.PENDING.value,
                    description=f"Payment hold for order {order.id}",
                )
            )
            await session.commit()
            await session.refresh(hold)

        logger.info("Created escrow hold %s for order %s", hold.id, order_id)
        return hold

    async def get_hold(self, order_id: uuid.UUID) -> EscrowHold:
        async with self.db.session() as session:
            result = await session.execute(select(EscrowHold).where(EscrowHold.order_id == order_id))
            hold = result.scalar_one_or_none()
        if not hold:
            raise NotFoundError("Escrow hold for order", str(order_id))
        return hold

    async def get_hold_status(self, order_id: uuid.UUID) -> HoldStatusView:
        hold = await self.get_hold(order_id)
        return _hold_view(hold, self.clock())

    async def confirm_delivery(self, order_id: uuid.UUID, buyer_id: uuid.UUID) -> HoldStatusView:
        """Buyer confirms receipt: the hold is released without waiting for the hold period."""
        now = self.clock()
        async with self.db.session() as session:
            order = await session.get(Order, order_id)
            if not order:
                raise NotFoundError("Order", str(order_id))
            if order.buyer_id != buyer_id:
                raise PermissionDeniedError("Only the buyer can confirm delivery")

            result = await session.execute(select(EscrowHold).where(EscrowHold.order_id == order_id))
            hold = result.scalar_one_or_none()
            if not hold:
                raise NotFoundError("Escrow hold for order", str(order_id))

            await session.execute(
                update(Order)
                .where(Order.id == order_id)
                .values(delivery_status=DeliveryStatus.DELIVERED.value, delivered_at=now)
                .execution_options(synchronize_session=False)
            )
            credited = await release_hold(
                session, hold, now, description=f"Released on delivery confirmation for order {order_id}"
            )
            if credited is None and hold.status != HoldStatus.RELEASED.value:
                raise ConflictError(f"Escrow hold cannot be released while it is '{hold.status}'")
            await session.commit()
            await session.refresh(hold)

        if credited is not None:
            logger.info("Hold %s released on delivery confirmation", hold.id)
            await self.notifier.notify(
                hold.seller_id,
                NotificationCategory.DELIVERY,
                NotificationSeverity.INFO,
                f"The buyer confirmed delivery of order {str(order_id)[:8]}. Escrow funds have been released.",
                related_entity_id=order_id,
                audience=NotificationAudience.SELLER,
                email=order.seller.email if order.seller else None,
            )
        return _hold_view(hold, now)

    async def refund(self, order_id: uuid.UUID, amount_cents: int, reason: str) -> RefundOutcome:
        if amount_cents <= 0:
            raise BadRequestError("Refund amount must be positive")

        now = self.clock()
        async with self.db.session() as session:
            result = await session.execute(select(EscrowHold).where(EscrowHold.order_id == order_id))
            hold = result.scalar_one_or_none()
            if not hold:
                raise NotFoundError("Escrow hold for order", str(order_id))
            if hold.status not in RELEASABLE_HOLD_STATUSES:
                raise ConflictError(f"Escrow hold cannot be refunded while it is '{hold.status}'")
            if amount_cents > hold.amount_cents:
                raise BadRequestError("Refund amount exceeds the amount held in escrow")

            outcome = await refund_hold(session, hold, amount_cents, now, reason=f"Refund: {reason}")
            if outcome is None:
                raise ConflictError("Escrow hold changed while the refund was being applied")
            remaining, status = outcome
            await session.commit()

        logger.info("Refunded %d of hold %s (remaining %d)", amount_cents, hold.id, remaining)
        order = hold.order
        if order is not None:
            await self.notifier.notify(
                order.buyer_id,
                NotificationCategory.REFUND,
                NotificationSeverity.INFO,
                f"A refund of {hold.currency} {amount_cents / 100:,.2f} for order {str(order_id)[:8]} has been issued.",
                related_entity_id=order_id,
                audience=NotificationAudience.BUYER,
                email=order.buyer_email,
            )
        return RefundOutcome(
            hold_id=hold.id, refunded_cents=amount_cents, remaining_cents=remaining, hold_status=status
        )

    async def seller_escrow_balance(self, seller_id: uuid.UUID, currency: str) -> int:
        async with self.db.session() as session:
            result = await session.execute(
                select(func.coalesce(func.sum(EscrowHold.amount_cents), 0)).where(
                    EscrowHold.seller_id == seller_id,
                    EscrowHold.currency == currency,
                    EscrowHold.status.in_(RELEASABLE_HOLD_STATUSES),
                )
            )
            return int(result.scalar_one())

    async def seller_escrow_summary(
        self, seller_id: uuid.UUID, currency: str, history_limit: int = 10
    ) -> SellerEscrowSummary:
        now = self.clock()
        async with self.db.session() as session:
            holds_result = await session.execute(
                select(EscrowHold)
                .where(
                    EscrowHold.seller_id == seller_id,
                    EscrowHold.currency == currency,
                    EscrowHold.status.in_(RELEASABLE_HOLD_STATUSES),
                )
                .order_by(EscrowHold.created_at)
            )
            holds = holds_result.scalars().all()

            balance_result = await session.execute(
                select(SellerBalance.available_cents).where(
                    SellerBalance.seller_id == seller_id, SellerBalance.currency == currency
                )
            )
            available = balance_result.scalar_one_or_none() or 0

            ledger_result = await session.execute(
                select(LedgerEntry)
                .where(LedgerEntry.seller_id == seller_id, LedgerEntry.currency == currency)
                .order_by(LedgerEntry.created_at.desc())
                .limit(history_limit)
            )
            entries = ledger_result.scalars().all()

        views = [_hold_view(h, now) for h in holds]
        return SellerEscrowSummary(
            seller_id=seller_id,
            currency=currency,
            escrow_balance_cents=sum(h.amount_cents for h in holds),
            available_balance_cents=available,
            active_holds=len(views),
            upcoming_releases=sum(
                1 for v in views if v.days_remaining <= settings.ESCROW_UPCOMING_RELEASE_DAYS
            ),
            holds=views,
            recent_entries=[
                LedgerEntryView(
                    id=e.id,
                    order_id=e.order_id,
                    transaction_type=e.transaction_type,
                    amount_cents=e.amount_cents,
                    currency=e.currency,
                    status=e.status,
                    description=e.description,
                    created_at=e.created_at,
                )
                for e in entries
            ],
        )


def _hold_view(hold: EscrowHold, now: datetime) -> HoldStatusView:
    return HoldStatusView(
        hold_id=hold.id,
        order_id=hold.order_id,
        status=hold.status,
        amount_cents=hold.amount_cents,
        currency=hold.currency,
        created_at=hold.created_at,
        releasable_at=ensure_utc(hold.releasable_at),
        days_remaining=(
            days_remaining(hold.releasable_at, now)
            if hold.status in RELEASABLE_HOLD_STATUSES
            else 0
        ),
        reminder_sent_at=hold.reminder_sent_at,
        released_at=hold.released_at,
        refunded_at=hold.refunded_at,
    )
