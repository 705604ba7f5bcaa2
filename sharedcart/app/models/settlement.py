"""
models/settlement.py — Settlement, SettlementBill and SettlementTransaction.

No business logic. No imports from services or routes.

Key design points:
  - `amount` uses Numeric(10, 2). Never Float.
  - CHECK(from_user_id <> to_user_id): the minimiser never emits a self
    transfer. The DB constraint is the last line of defense.
  - A settlement owns its bill links and its transactions
    (cascade="all, delete-orphan"). Bills themselves are only referenced.
  - status moves pending -> confirmed once. settlement_service performs the
    flip with a conditional UPDATE so two confirms cannot both succeed.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sharedcart.app.extensions import db
from sharedcart.app.models.enums import SettlementStatus, TransactionStatus, enum_values


class Settlement(db.Model):
    __tablename__ = "settlements"

    id: Mapped[int] = mapped_column(primary_key=True)

    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    title: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    created_by_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    status: Mapped[SettlementStatus] = mapped_column(
        Enum(
            SettlementStatus,
            name="settlement_status_enum",
            native_enum=False,
            length=16,
            values_callable=enum_values,
        ),
        nullable=False,
        default=SettlementStatus.PENDING,
        server_default=SettlementStatus.PENDING.value,
    )

    # Stamped when the settlement is confirmed.
    settled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    group: Mapped["Group"] = relationship(  # noqa: F821
        "Group",
        back_populates="settlements",
    )

    creator: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[created_by_id],
    )

    bill_links: Mapped[list["SettlementBill"]] = relationship(
        "SettlementBill",
        back_populates="settlement",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="SettlementBill.bill_id",
    )

    transactions: Mapped[list["SettlementTransaction"]] = relationship(
        "SettlementTransaction",
        back_populates="settlement",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="SettlementTransaction.id",
    )

    @property
    def bill_ids(self) -> list[int]:
        return [link.bill_id for link in self.bill_links]

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Settlement id={self.id} "
            f"group_id={self.group_id} "
            f"status={self.status}>"
        )


class SettlementBill(db.Model):
    __tablename__ = "settlement_bills"

    __table_args__ = (
        UniqueConstraint("settlement_id", "bill_id", name="uq_settlement_bills_pair"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    settlement_id: Mapped[int] = mapped_column(
        ForeignKey("settlements.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    bill_id: Mapped[int] = mapped_column(
        ForeignKey("bills.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    settlement: Mapped["Settlement"] = relationship(
        "Settlement",
        back_populates="bill_links",
    )

    bill: Mapped["Bill"] = relationship("Bill")  # noqa: F821

    def __repr__(self) -> str:  # pragma: no cover
        return f"<SettlementBill settlement_id={self.settlement_id} bill_id={self.bill_id}>"


class SettlementTransaction(db.Model):
    __tablename__ = "settlement_transactions"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_settlement_tx_amount_positive"),
        CheckConstraint(
            "from_user_id <> to_user_id",
            name="ck_settlement_tx_no_self_transfer",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    settlement_id: Mapped[int] = mapped_column(
        ForeignKey("settlements.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    from_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    to_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
    )

    status: Mapped[TransactionStatus] = mapped_column(
        Enum(
            TransactionStatus,
            name="settlement_tx_status_enum",
            native_enum=False,
            length=16,
            values_callable=enum_values,
        ),
        nullable=False,
        default=TransactionStatus.PENDING,
        server_default=TransactionStatus.PENDING.value,
    )

    paid_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    notes: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    settlement: Mapped["Settlement"] = relationship(
        "Settlement",
        back_populates="transactions",
    )

    from_user: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[from_user_id],
    )

    to_user: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[to_user_id],
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<SettlementTransaction id={self.id} "
            f"from={self.from_user_id} "
            f"to={self.to_user_id} "
            f"amount={self.amount} "
            f"status={self.status}>"
        )
