"""Initial schema - sellers, orders, escrow holds, disputes, ledger, notifications

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _base_columns() -> list[sa.Column]:
    return [
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now(), index=True
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Sellers
    op.create_table(
        "sellers",
        *_base_columns(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=True, index=True),
        sa.Column("display_name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
    )

    op.create_table(
        "seller_balances",
        *_base_columns(),
        sa.Column("seller_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("sellers.id"), nullable=False, index=True),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("available_cents", sa.BigInteger, nullable=False, server_default=sa.text("0")),
        sa.UniqueConstraint("seller_id", "currency", name="uq_seller_balance_currency"),
    )

    # Orders
    op.create_table(
        "orders",
        *_base_columns(),
        sa.Column("buyer_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("seller_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("sellers.id"), nullable=False, index=True),
        sa.Column("buyer_email", sa.String(255), nullable=True),
        sa.Column("product_title", sa.String(500), nullable=False, server_default=""),
        sa.Column("amount_cents", sa.BigInteger, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("payout_status", sa.String(20), nullable=False, server_default="in_escrow"),
        sa.Column("delivery_status", sa.String(20), nullable=False, server_default="not_shipped"),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
    )

    # Escrow holds
    op.create_table(
        "escrow_holds",
        *_base_columns(),
        sa.Column(
            "order_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("orders.id"),
            nullable=False, unique=True, index=True,
        ),
        sa.Column("seller_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("sellers.id"), nullable=False, index=True),
        sa.Column("payment_ref", sa.String(255), nullable=True),
        sa.Column("amount_cents", sa.BigInteger, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="active", index=True),
        sa.Column("hold_duration_days", sa.Integer, nullable=False, server_default=sa.text("30")),
        sa.Column("releasable_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reason", sa.Text, nullable=True),
        sa.Column("reminder_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("released_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refunded_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_escrow_holds_status_releasable", "escrow_holds", ["status", "releasable_at"])

    # Disputes
    op.create_table(
        "disputes",
        *_base_columns(),
        sa.Column("order_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("orders.id"), nullable=False, index=True),
        sa.Column("buyer_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("seller_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("sellers.id"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="open", index=True),
        sa.Column("reason", sa.Text, nullable=False),
        sa.Column("evidence", postgresql.JSONB, nullable=True),
        sa.Column("opened_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("escalation_threshold_days", sa.Integer, nullable=False, server_default=sa.text("7")),
        sa.Column("escalated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolution", sa.String(30), nullable=True),
        sa.Column("resolution_note", sa.Text, nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("history", postgresql.JSONB, nullable=True),
    )

    # Financial ledger
    op.create_table(
        "financial_ledger",
        *_base_columns(),
        sa.Column("seller_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("sellers.id"), nullable=False, index=True),
        sa.Column("order_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("orders.id"), nullable=True, index=True),
        sa.Column("hold_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("escrow_holds.id"), nullable=True),
        sa.Column("transaction_type", sa.String(30), nullable=False),
        sa.Column("amount_cents", sa.BigInteger, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("description", sa.Text, nullable=True),
    )

    # Notifications (outbox)
    op.create_table(
        "notifications",
        *_base_columns(),
        sa.Column("recipient_id", postgresql.UUID(as_uuid=True), nullable=True, index=True),
        sa.Column("audience", sa.String(20), nullable=False),
        sa.Column("category", sa.String(30), nullable=False),
        sa.Column("severity", sa.String(20), nullable=False, server_default="info"),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("related_entity_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("is_read", sa.Boolean, server_default=sa.text("false")),
        sa.Column("delivery_state", sa.String(20), nullable=False, server_default="queued", index=True),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
    )


def downgrade() -> None:
    op.drop_table("notifications")
    op.drop_table("financial_ledger")
    op.drop_table("disputes")
    op.drop_index("ix_escrow_holds_status_releasable", table_name="escrow_holds")
    op.drop_table("escrow_holds")
    op.drop_table("orders")
    op.drop_table("seller_balances")
    op.drop_table("sellers")
