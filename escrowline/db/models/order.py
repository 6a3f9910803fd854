import uuid
from datetime import datetime

from sqlalchemy import BigInteger, DateTime, ForeignKey, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from escrowline.common.enums import DeliveryStatus, PayoutStatus
from escrowline.db.base import BaseModel


class Order(BaseModel):
    __tablename__ = "orders"

    buyer_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    seller_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("sellers.id"), nullable=False, index=True
    )
    buyer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    product_title: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    payout_status: Mapped[PayoutStatus] = mapped_column(
        String(20), nullable=False, default=PayoutStatus.IN_ESCROW.value
    )
    delivery_status: Mapped[DeliveryStatus] = mapped_column(
        String(20), nullable=False, default=DeliveryStatus.NOT_SHIPPED.value
    )
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    seller = relationship("Seller", lazy="selectin")
    hold = relationship("EscrowHold", back_populates="order", uselist=False)
    disputes = relationship("Dispute", back_populates="order")
