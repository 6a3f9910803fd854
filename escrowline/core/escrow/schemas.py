import uuid
from datetime import datetime

from pydantic import BaseModel


class HoldStatusView(BaseModel):
    hold_id: uuid.UUID
    order_id: uuid.UUID
    status: str
    amount_cents: int
    currency: str
    created_at: datetime
    releasable_at: datetime
    days_remaining: int
    reminder_sent_at: datetime | None = None
    released_at: datetime | None = None
    refunded_at: datetime | None = None


class LedgerEntryView(BaseModel):
    id: uuid.UUID
    order_id: uuid.UUID | None
    transaction_type: str
    amount_cents: int
    currency: str
    status: str
    description: str | None
    created_at: datetime


class SellerEscrowSummary(BaseModel):
    seller_id: uuid.UUID
    currency: str
    escrow_balance_cents: int
    available_balance_cents: int
    active_holds: int
    upcoming_releases: int
    holds: list[HoldStatusView]
    recent_entries: list[LedgerEntryView]


class RefundOutcome(BaseModel):
    hold_id: uuid.UUID
    refunded_cents: int
    remaining_cents: int
    hold_status: str
