"""SQLAlchemy 2.0 ORM models for the Safe Purchase escrow.

Three tables:
    1. escrows          — One row per sale: parties, price, deadlines, custody.
    2. escrow_events    — Append-only audit log of every state transition.
    3. ledger_accounts  — One balance per ledger account.

Design decisions:
    - UUIDs as escrow primary keys (no sequential leakage).
    - Integer base units for every amount (no floating point rounding errors).
    - Epoch seconds (BigInteger) for the deadline timestamps, since deadline
      arithmetic is plain integer subtraction.
    - The terms in force at listing time are stored on the escrow row, so a
      settings change never moves the deadlines of an existing sale.
    - CHECK constraints on status and on non-negative balances.
    - escrow_events is append-only: no UPDATE or DELETE at the application level.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
    event,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from safe_purchase.domain.enums import EscrowStatus

_STATUS_VALUES = ", ".join(f"'{status.value}'" for status in EscrowStatus)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# ---------------------------------------------------------------------------
# Helper: auto-set updated_at on flush
# ---------------------------------------------------------------------------
def _set_updated_at(mapper, connection, target):  # noqa: ANN001
    """SQLAlchemy event listener that updates `updated_at` before flush."""
    if hasattr(target, "updated_at"):
        target.updated_at = datetime.now(UTC)


# ---------------------------------------------------------------------------
# 1. escrows
# ---------------------------------------------------------------------------
class EscrowRecord(Base):
    """One sale between a seller and (once purchased) a buyer."""

    __tablename__ = "escrows"

    # --- Primary Key ---
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    # --- Participants ---
    seller: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        comment="Ledger account of the seller",
    )
    buyer: Mapped[str | None] = mapped_column(
        String(128),
        nullable=True,
        default=None,
        comment="Ledger account of the buyer (set on purchase)",
    )
    product_name: Mapped[str] = mapped_column(String(200), nullable=False)

    # --- Financials ---
    price: Mapped[int] = mapped_column(BigInteger, nullable=False)
    security_deposit: Mapped[int] = mapped_column(BigInteger, nullable=False)
    custody_balance: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
        comment="Funds held by the escrow, owned by neither party",
    )

    # --- Status (Enum-guarded) ---
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=EscrowStatus.LISTED.value,
        comment="Current lifecycle phase (guarded by EscrowStateMachine)",
    )
    return_in_progress: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # --- Deadline anchors (epoch seconds) ---
    purchase_timestamp: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    delivery_confirmation_timestamp: Mapped[int | None] = mapped_column(
        BigInteger, nullable=True
    )
    return_timestamp: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    # --- Terms fixed at listing ---
    confirmation_window: Mapped[int] = mapped_column(Integer, nullable=False)
    reclaim_window: Mapped[int] = mapped_column(Integer, nullable=False)
    return_window: Mapped[int] = mapped_column(Integer, nullable=False)
    return_confirm_window: Mapped[int] = mapped_column(Integer, nullable=False)

    # --- Timestamps ---
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    # --- Relationships ---
    events: Mapped[list[EscrowEventRecord]] = relationship(
        "EscrowEventRecord",
        back_populates="escrow",
        cascade="all, delete-orphan",
        order_by="EscrowEventRecord.sequence.asc()",
        lazy="selectin",
    )

    # --- Table Constraints & Indexes ---
    __table_args__ = (
        CheckConstraint(f"status IN ({_STATUS_VALUES})", name="ck_escrow_valid_status"),
        CheckConstraint("price >= 0", name="ck_escrow_price_non_negative"),
        CheckConstraint("security_deposit >= 0", name="ck_escrow_deposit_non_negative"),
        CheckConstraint("custody_balance >= 0", name="ck_escrow_custody_non_negative"),
        Index("idx_escrow_status", "status"),
        Index("idx_escrow_seller", "seller"),
        Index("idx_escrow_buyer", "buyer"),
        Index("idx_escrow_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<EscrowRecord id={self.id} status={self.status} "
            f"price={self.price} custody={self.custody_balance}>"
        )


# ---------------------------------------------------------------------------
# 2. escrow_events (Append-Only Audit Log)
# ---------------------------------------------------------------------------
class EscrowEventRecord(Base):
    """Immutable audit record of one successful escrow operation.

    This table is APPEND-ONLY. No UPDATE or DELETE operations are permitted
    at the application level. Every row represents a single atomic event.
    """

    __tablename__ = "escrow_events"

    # --- Primary Key ---
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    # --- Foreign Key ---
    escrow_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("escrows.id", ondelete="CASCADE"),
        nullable=False,
        comment="The escrow this event belongs to",
    )

    # --- Event Details ---
    sequence: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="1-based position in the escrow's audit trail",
    )
    event_type: Mapped[str] = mapped_column(
        String(40),
        nullable=False,
        comment="EventType enum value (e.g., PURCHASED, RETURN_ISSUED)",
    )
    old_status: Mapped[str | None] = mapped_column(
        String(32),
        nullable=True,
        comment="Escrow status before this event (null for the listing)",
    )
    new_status: Mapped[str] = mapped_column(String(32), nullable=False)
    actor: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        comment="Ledger account of the caller that triggered this event",
    )
    timestamp: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        comment="Escrow clock reading (epoch seconds) when the event happened",
    )
    metadata_json: Mapped[dict | None] = mapped_column(
        "metadata",
        JSON,
        nullable=True,
        default=None,
        comment="Operation context: amounts, payouts, elapsed time",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )

    # --- Relationships ---
    escrow: Mapped[EscrowRecord] = relationship(
        "EscrowRecord",
        back_populates="events",
    )

    # --- Constraints & Indexes ---
    __table_args__ = (
        UniqueConstraint("escrow_id", "sequence", name="uq_event_escrow_sequence"),
        Index("idx_event_escrow", "escrow_id"),
        Index("idx_event_type", "event_type"),
    )

    def __repr__(self) -> str:
        return (
            f"<EscrowEventRecord escrow={self.escrow_id} #{self.sequence} "
            f"type={self.event_type} {self.old_status}->{self.new_status}>"
        )


# ---------------------------------------------------------------------------
# 3. ledger_accounts
# ---------------------------------------------------------------------------
class LedgerAccount(Base):
    """Balance of one ledger account. Accounts without a row hold nothing."""

    __tablename__ = "ledger_accounts"

    account: Mapped[str] = mapped_column(String(128), primary_key=True)
    balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    rejects_incoming: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="When set, payouts to this account fail and roll back",
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_ledger_balance_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<LedgerAccount {self.account} balance={self.balance}>"


# ---------------------------------------------------------------------------
# Register the auto-update listener for updated_at
# ---------------------------------------------------------------------------
event.listen(EscrowRecord, "before_update", _set_updated_at)
event.listen(LedgerAccount, "before_update", _set_updated_at)
