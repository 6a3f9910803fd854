"""
Seed script for the escrowline service.

Populates the database with demo sellers, orders and escrow holds at various
ages (fresh, inside the reminder window, past the release period) plus a
couple of disputes, so the cron endpoints have something to act on.

Usage:
    python -m escrowline.scripts.seed
"""

import asyncio
import uuid
from datetime import timedelta

from sqlalchemy import select

from escrowline.common.clock import utcnow
from escrowline.common.enums import (
    DeliveryStatus,
    DisputeStatus,
    HoldStatus,
    LedgerEntryStatus,
    LedgerTransactionType,
)
from escrowline.config import settings
from escrowline.db.models import Dispute, EscrowHold, LedgerEntry, Order, Seller
from escrowline.db.session import open_session_manager


async def main() -> None:
    async with open_session_manager() as manager, manager.session() as session:
        # Guard: skip if already seeded
        result = await session.execute(select(Seller).where(Seller.email == "ada@crafts.example"))
        if result.scalar_one_or_none() is not None:
            print("Database already seeded -- skipping.")
            return

        now = utcnow()
        currency = settings.DEFAULT_CURRENCY
        hold_days = settings.ESCROW_HOLD_DURATION_DAYS

        # ==================================================================
        # SELLERS
        # ==================================================================
        ada = Seller(id=uuid.uuid4(), display_name="Ada Crafts", email="ada@crafts.example")
        kofi = Seller(id=uuid.uuid4(), display_name="Kofi Prints", email="kofi@prints.example")
        session.add_all([ada, kofi])
        await session.flush()
        print(f"  Created sellers: {ada.display_name}, {kofi.display_name}")

        # ==================================================================
        # ORDERS + HOLDS
        # (seller, title, amount, age in days, hold status)
        # ==================================================================
        fixtures = [
            (ada, "Woven basket", 1_250_000, 2, HoldStatus.ACTIVE),
            (ada, "Beaded necklace", 480_000, hold_days - 3, HoldStatus.ACTIVE),
            (ada, "Leather sandals", 2_200_000, hold_days + 2, HoldStatus.REMINDER_SENT),
            (kofi, "Adire wall print", 900_000, hold_days + 10, HoldStatus.ACTIVE),
            (kofi, "Framed poster", 650_000, 12, HoldStatus.DISPUTED),
            (kofi, "Canvas tote", 300_000, hold_days + 1, HoldStatus.DISPUTED),
        ]

        holds: list[EscrowHold] = []
        buyers: list[uuid.UUID] = []
        for seller, title, amount, age_days, status in fixtures:
            created = now - timedelta(days=age_days)
            order = Order(
                id=uuid.uuid4(),
                buyer_id=uuid.uuid4(),
                seller_id=seller.id,
                buyer_email=f"buyer+{title.lower().replace(' ', '-')}@example.com",
                product_title=title,
                amount_cents=amount,
                currency=currency,
                delivery_status=DeliveryStatus.IN_TRANSIT.value,
                created_at=created,
            )
            session.add(order)
            await session.flush()

            hold = EscrowHold(
                id=uuid.uuid4(),
                order_id=order.id,
                seller_id=seller.id,
                payment_ref=f"PAY-{order.id.hex[:10].upper()}",
                amount_cents=amount,
                currency=currency,
                status=status.value,
                hold_duration_days=hold_days,
                reminder_sent_at=created + timedelta(days=hold_days - 4)
                if status == HoldStatus.REMINDER_SENT
                else None,
                created_at=created,
                releasable_at=created + timedelta(days=hold_days),
            )
            session.add(hold)
            session.add(
                LedgerEntry(
                    seller_id=seller.id,
                    order_id=order.id,
                    hold_id=hold.id,
                    transaction_type=LedgerTransactionType.SALE.value,
                    amount_cents=amount,
                    currency=currency,
                    status=LedgerEntryStatus.PENDING.value,
                    description=f"Payment held in escrow for {title}",
                )
            )
            holds.append(hold)
            buyers.append(order.buyer_id)

        await session.flush()
        print(f"  Created {len(holds)} orders with escrow holds")

        # ==================================================================
        # DISPUTES
        # ==================================================================
        fresh, stale = holds[4], holds[5]
        disputes = [
            Dispute(
                order_id=fresh.order_id,
                buyer_id=buyers[4],
                seller_id=fresh.seller_id,
                status=DisputeStatus.OPEN.value,
                reason="Poster arrived with a cracked frame",
                evidence=["photo-frame-crack.jpg"],
                opened_at=now - timedelta(days=2),
                escalation_threshold_days=settings.DISPUTE_ESCALATION_DAYS,
                history=[],
            ),
            Dispute(
                order_id=stale.order_id,
                buyer_id=buyers[5],
                seller_id=stale.seller_id,
                status=DisputeStatus.UNDER_REVIEW.value,
                reason="Item never arrived",
                evidence=[],
                opened_at=now - timedelta(days=settings.DISPUTE_ESCALATION_DAYS + 3),
                escalation_threshold_days=settings.DISPUTE_ESCALATION_DAYS,
                history=[],
            ),
        ]
        session.add_all(disputes)
        await session.commit()
        print(f"  Created {len(disputes)} disputes")

    print("Seed complete.")


if __name__ == "__main__":
    asyncio.run(main())
