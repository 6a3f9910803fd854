"""Money-moving writes for escrow holds.

Every function here runs inside the caller's transaction and only touches a
hold through a conditional UPDATE keyed on its current status, so two
overlapping callers can never both move the same hold.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from escrowline.common.enums import (
    HoldStatus,
    LedgerEntryStatus,
    LedgerTransactionType,
    PayoutStatus,
)
from escrowline.core.escrow.policy import RELEASABLE_HOLD_STATUSES, UNRESOLVED_DISPUTE_STATUSES
from escrowline.db.models.dispute import Dispute
from escrowline.db.models.escrow_hold import EscrowHold
from escrowline.db.models.ledger import LedgerEntry
from escrowline.db.models.order import Order
from escrowline.db.models.seller import SellerBalance


def open_dispute_exists():
    return (
        select(Dispute.id)
        .where(
            Dispute.order_id == EscrowHold.order_id,
            Dispute.status.in_(UNRESOLVED_DISPUTE_STATUSES),
        )
        .correlate(EscrowHold)
        .exists()
    )


async def credit_seller_balance(
    db: AsyncSession, seller_id: uuid.UUID, currency: str, amount_cents: int
) -> None:
    result = await db.execute(
        update(SellerBalance)
        .where(SellerBalance.seller_id == seller_id, SellerBalance.currency == currency)
        .values(available_cents=SellerBalance.available_cents + amount_cents)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.add(SellerBalance(seller_id=seller_id, currency=currency, available_cents=amount_cents))
        await db.flush()


async def release_hold(
    db: AsyncSession,
    hold: EscrowHold,
    now: datetime,
    description: str,
    from_statuses: tuple[str, ...] = RELEASABLE_HOLD_STATUSES,
) -> int | None:
    """Release ``hold`` to its seller and return the amount credited.

    Returns None when the hold had already moved on.
    """
    result = await db.execute(
        update(EscrowHold)
        .where(
            EscrowHold.id == hold.id,
            EscrowHold.status.in_(from_statuses),
            ~open_dispute_exists(),
        )
        .values(status=HoldStatus.RELEASED.value, released_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return None

    # Re-read the amount under the same transaction; a partial refund may have reduced it.
    amount_cents = (
        await db.execute(select(EscrowHold.amount_cents).where(EscrowHold.id == hold.id))
    ).scalar_one()

    await credit_seller_balance(db, hold.seller_id, hold.currency, amount_cents)
    db.add(
        LedgerEntry(
            seller_id=hold.seller_id,
            order_id=hold.order_id,
            hold_id=hold.id,
            transaction_type=LedgerTransactionType.SALE.value,
            amount_cents=amount_cents,
            currency=hold.currency,
            status=LedgerEntryStatus.COMPLETED.value,
            description=description,
        )
    )
    await db.execute(
        update(Order)
        .where(Order.id == hold.order_id)
        .values(payout_status=PayoutStatus.PROCESSING.value)
        .execution_options(synchronize_session=False)
    )
    await db.flush()
    return amount_cents


async def refund_hold(
    db: AsyncSession,
    hold: EscrowHold,
    amount_cents: int,
    now: datetime,
    reason: str,
    from_statuses: tuple[str, ...] = RELEASABLE_HOLD_STATUSES,
) -> tuple[int, str] | None:
    """Return ``amount_cents`` of ``hold`` to the buyer.

    Returns ``(remaining_cents, new_status)`` or None if the hold was not in
    one of ``from_statuses`` (or held less than requested) at write time.
    """
    current = (
        await db.execute(select(EscrowHold.amount_cents).where(EscrowHold.id == hold.id))
    ).scalar_one()
    if amount_cents > current:
        return None

    remaining = current - amount_cents
    if remaining > 0:
        values = {"amount_cents": remaining}
        new_status = None
    else:
        values = {"amount_cents": 0, "status": HoldStatus.REFUNDED.value, "refunded_at": now}
        new_status = HoldStatus.REFUNDED.value

    result = await db.execute(
        update(EscrowHold)
        .where(
            EscrowHold.id == hold.id,
            EscrowHold.status.in_(from_statuses),
            EscrowHold.amount_cents == current,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return None

    db.add(
        LedgerEntry(
            seller_id=hold.seller_id,
            order_id=hold.order_id,
            hold_id=hold.id,
            transaction_type=LedgerTransactionType.REFUND_COMPLETED.value,
            amount_cents=-amount_cents,
            currency=hold.currency,
            status=LedgerEntryStatus.COMPLETED.value,
            description=reason,
        )
    )
    await db.flush()

    if new_status is None:
        new_status = (
            await db.execute(select(EscrowHold.status).where(EscrowHold.id == hold.id))
        ).scalar_one()
    return remaining, new_status
