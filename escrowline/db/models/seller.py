import uuid

from sqlalchemy import BigInteger, ForeignKey, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from escrowline.db.base import BaseModel


class Seller(BaseModel):
    __tablename__ = "sellers"

    user_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True, index=True)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    balances = relationship("SellerBalance", back_populates="seller", lazy="selectin")


class SellerBalance(BaseModel):
    """Funds released from escrow and available for payout, per currency."""

    __tablename__ = "seller_balances"
    __table_args__ = (UniqueConstraint("seller_id", "currency", name="uq_seller_balance_currency"),)

    seller_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("sellers.id"), nullable=False, index=True
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    available_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    seller = relationship("Seller", back_populates="balances")
