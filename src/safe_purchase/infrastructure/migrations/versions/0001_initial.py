"""Create escrows, escrow_events and ledger_accounts.

Revision ID: 0001
Revises:
Create Date: 2026-10-18
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_STATUSES = (
    "'LISTED', 'PURCHASED', 'DELIVERY_CONFIRMED', 'DELIVERY_OVERDUE_SETTLED', "
    "'RETURN_ISSUED', 'RETURN_CONFIRMED', 'RETURN_RECLAIMED'"
)


def upgrade() -> None:
    op.create_table(
        "escrows",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("seller", sa.String(128), nullable=False),
        sa.Column("buyer", sa.String(128), nullable=True),
        sa.Column("product_name", sa.String(200), nullable=False),
        sa.Column("price", sa.BigInteger(), nullable=False),
        sa.Column("security_deposit", sa.BigInteger(), nullable=False),
        sa.Column("custody_balance", sa.BigInteger(), nullable=False),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("return_in_progress", sa.Boolean(), nullable=False),
        sa.Column("purchase_timestamp", sa.BigInteger(), nullable=True),
        sa.Column("delivery_confirmation_timestamp", sa.BigInteger(), nullable=True),
        sa.Column("return_timestamp", sa.BigInteger(), nullable=True),
        sa.Column("confirmation_window", sa.Integer(), nullable=False),
        sa.Column("reclaim_window", sa.Integer(), nullable=False),
        sa.Column("return_window", sa.Integer(), nullable=False),
        sa.Column("return_confirm_window", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(f"status IN ({_STATUSES})", name="ck_escrow_valid_status"),
        sa.CheckConstraint("price >= 0", name="ck_escrow_price_non_negative"),
        sa.CheckConstraint("security_deposit >= 0", name="ck_escrow_deposit_non_negative"),
        sa.CheckConstraint("custody_balance >= 0", name="ck_escrow_custody_non_negative"),
    )
    op.create_index("idx_escrow_status", "escrows", ["status"])
    op.create_index("idx_escrow_seller", "escrows", ["seller"])
    op.create_index("idx_escrow_buyer", "escrows", ["buyer"])
    op.create_index("idx_escrow_created_at", "escrows", ["created_at"])

    op.create_table(
        "escrow_events",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "escrow_id",
            sa.Uuid(),
            sa.ForeignKey("escrows.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("event_type", sa.String(40), nullable=False),
        sa.Column("old_status", sa.String(32), nullable=True),
        sa.Column("new_status", sa.String(32), nullable=False),
        sa.Column("actor", sa.String(128), nullable=False),
        sa.Column("timestamp", sa.BigInteger(), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("escrow_id", "sequence", name="uq_event_escrow_sequence"),
    )
    op.create_index("idx_event_escrow", "escrow_events", ["escrow_id"])
    op.create_index("idx_event_type", "escrow_events", ["event_type"])

    op.create_table(
        "ledger_accounts",
        sa.Column("account", sa.String(128), primary_key=True),
        sa.Column("balance", sa.BigInteger(), nullable=False),
        sa.Column("rejects_incoming", sa.Boolean(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("balance >= 0", name="ck_ledger_balance_non_negative"),
    )


def downgrade() -> None:
    op.drop_table("ledger_accounts")
    op.drop_index("idx_event_type", table_name="escrow_events")
    op.drop_index("idx_event_escrow", table_name="escrow_events")
    op.drop_table("escrow_events")
    op.drop_index("idx_escrow_created_at", table_name="escrows")
    op.drop_index("idx_escrow_buyer", table_name="escrows")
    op.drop_index("idx_escrow_seller", table_name="escrows")
    op.drop_index("idx_escrow_status", table_name="escrows")
    op.drop_table("escrows")
