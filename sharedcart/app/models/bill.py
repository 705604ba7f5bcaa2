"""
models/bill.py — Bill, BillItem and ItemOwner table definitions.

No business logic. No imports from services or routes.

Key design points:
  - Money columns use Numeric(10, 2). Never Float.
  - `deleted_at` is NULL for active bills, non-null for soft-deleted ones.
  - `total_amount` is kept equal to the sum of item line totals by
    bill_service; the DB only guards against negative values.
  - Items are owned by their bill, owners are owned by their item
    (ON DELETE CASCADE). Owner user ids are weak references to members.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    false,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sharedcart.app.extensions import db
from sharedcart.app.models.enums import BillStatus, enum_values


class Bill(db.Model):
    __tablename__ = "bills"

    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="ck_bills_total_nonnegative"),
        CheckConstraint(
            "LENGTH(TRIM(title)) > 0",
            name="ck_bills_title_nonempty",
        ),
        # Active-only bill queries (list_bills, calculate_settlement).
        Index(
            "idx_bills_active",
            "group_id",
            postgresql_where=text("deleted_at IS NULL"),
        ),
    )

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

    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
    )

    paid_by_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    bill_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    status: Mapped[BillStatus] = mapped_column(
        Enum(
            BillStatus,
            name="bill_status_enum",
            native_enum=False,
            length=16,
            values_callable=enum_values,
        ),
        nullable=False,
        default=BillStatus.PENDING,
        server_default=BillStatus.PENDING.value,
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

    # NULL = active. Never hard-delete bill rows via the API.
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    group: Mapped["Group"] = relationship(  # noqa: F821
        "Group",
        back_populates="bills",
    )

    payer: Mapped["User"] = relationship(  # noqa: F821
        "User",
        back_populates="bills_paid",
        foreign_keys=[paid_by_id],
    )

    items: Mapped[list["BillItem"]] = relationship(
        "BillItem",
        back_populates="bill",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="BillItem.id",
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Bill id={self.id} "
            f"group_id={self.group_id} "
            f"total={self.total_amount} "
            f"status={self.status}>"
        )


class BillItem(db.Model):
    __tablename__ = "bill_items"

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_bill_items_amount_nonnegative"),
        CheckConstraint("quantity >= 1", name="ck_bill_items_quantity_positive"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    bill_id: Mapped[int] = mapped_column(
        ForeignKey("bills.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    # Unit price. The line total is amount * quantity.
    amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
    )

    quantity: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        server_default="1",
    )

    # Shared items are split across the whole group roster; owners are ignored.
    is_shared: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=false(),
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

    bill: Mapped["Bill"] = relationship(
        "Bill",
        back_populates="items",
    )

    owners: Mapped[list["ItemOwner"]] = relationship(
        "ItemOwner",
        back_populates="item",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def owner_ids(self) -> list[int]:
        return sorted(owner.user_id for owner in self.owners)

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<BillItem id={self.id} "
            f"bill_id={self.bill_id} "
            f"amount={self.amount} "
            f"qty={self.quantity} "
            f"shared={self.is_shared}>"
        )


class ItemOwner(db.Model):
    __tablename__ = "item_owners"

    __table_args__ = (
        UniqueConstraint("item_id", "user_id", name="uq_item_owners_item_user"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    item_id: Mapped[int] = mapped_column(
        ForeignKey("bill_items.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    # Stored for future weighted splits. The resolver splits owners evenly.
    share_ratio: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False,
        default=Decimal("1.00"),
        server_default="1.00",
    )

    item: Mapped["BillItem"] = relationship(
        "BillItem",
        back_populates="owners",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<ItemOwner item_id={self.item_id} user_id={self.user_id}>"
