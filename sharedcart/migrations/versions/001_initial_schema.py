"""Initial schema — all tables, constraints, and indexes.

Revision: 001_initial_schema
Created:  2026-10-19

Creates the complete SharedCart v1 schema.

Append-only:
  This file must NEVER be edited after it has been applied to any database.
  If a schema change is required, create a NEW migration file.

Status and role columns are VARCHAR(16) holding the enum value ('pending',
'admin', ...). The models declare them with Enum(native_enum=False), so no
database enum types are created and the same schema runs on PostgreSQL and
SQLite.

Creation order follows FK dependencies:
  users → refresh_tokens → groups → memberships → bills → bill_items
  → item_owners → settlements → settlement_bills → settlement_transactions

ON DELETE policies:
  refresh_tokens.user_id                → CASCADE   (token owned by user)
  memberships.user_id / group_id        → RESTRICT
  memberships.invited_by_id             → SET NULL
  bills.*                               → RESTRICT
  bill_items.bill_id                    → CASCADE   (items owned by bill)
  item_owners.item_id                   → CASCADE   (owners owned by item)
  settlement_bills.settlement_id        → CASCADE
  settlement_bills.bill_id              → RESTRICT
  settlement_transactions.settlement_id → CASCADE
  settlement_transactions.*_user_id     → RESTRICT
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# ── Alembic revision identifiers ──────────────────────────────────────────
revision: str = "001_initial_schema"
down_revision: str | None = None      # first migration, no parent
branch_labels: tuple | None = None
depends_on: tuple | None = None


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def upgrade() -> None:

    # ── users ──────────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.CheckConstraint("LENGTH(TRIM(name)) > 0", name="ck_users_name_nonempty"),
        sa.CheckConstraint("email LIKE '%@%'", name="ck_users_email_format"),
    )

    # ── refresh_tokens ─────────────────────────────────────────────────────
    op.create_table(
        "refresh_tokens",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE", name="fk_refresh_tokens_user"),
            nullable=False,
        ),
        sa.Column("token_hash", sa.String(255), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("revoked", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_refresh_tokens"),
        sa.UniqueConstraint("token_hash", name="uq_refresh_tokens_hash"),
    )

    # ── groups ─────────────────────────────────────────────────────────────
    op.create_table(
        "groups",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "created_by_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_groups_creator"),
            nullable=False,
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_groups"),
        sa.CheckConstraint("LENGTH(TRIM(name)) > 0", name="ck_groups_name_nonempty"),
    )

    # ── memberships ────────────────────────────────────────────────────────
    op.create_table(
        "memberships",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_memberships_user"),
            nullable=False,
        ),
        sa.Column(
            "group_id",
            sa.Integer(),
            sa.ForeignKey("groups.id", ondelete="RESTRICT", name="fk_memberships_group"),
            nullable=False,
        ),
        sa.Column("role", sa.String(16), nullable=False, server_default="member"),
        sa.Column(
            "invited_by_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="SET NULL", name="fk_memberships_inviter"),
            nullable=True,
        ),
        sa.Column(
            "joined_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_memberships"),
        sa.UniqueConstraint("user_id", "group_id", name="uq_memberships_user_group"),
    )

    # ── bills ──────────────────────────────────────────────────────────────
    # deleted_at IS NULL = active; non-null = soft-deleted.
    op.create_table(
        "bills",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "group_id",
            sa.Integer(),
            sa.ForeignKey("groups.id", ondelete="RESTRICT", name="fk_bills_group"),
            nullable=False,
        ),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("total_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column(
            "paid_by_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_bills_payer"),
            nullable=False,
        ),
        sa.Column(
            "bill_date",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_bills"),
        sa.CheckConstraint("total_amount >= 0", name="ck_bills_total_nonnegative"),
        sa.CheckConstraint("LENGTH(TRIM(title)) > 0", name="ck_bills_title_nonempty"),
    )

    # ── bill_items ─────────────────────────────────────────────────────────
    op.create_table(
        "bill_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "bill_id",
            sa.Integer(),
            sa.ForeignKey("bills.id", ondelete="CASCADE", name="fk_bill_items_bill"),
            nullable=False,
        ),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("is_shared", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_bill_items"),
        sa.CheckConstraint("amount >= 0", name="ck_bill_items_amount_nonnegative"),
        sa.CheckConstraint("quantity >= 1", name="ck_bill_items_quantity_positive"),
    )

    # ── item_owners ────────────────────────────────────────────────────────
    op.create_table(
        "item_owners",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "item_id",
            sa.Integer(),
            sa.ForeignKey("bill_items.id", ondelete="CASCADE", name="fk_item_owners_item"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_item_owners_user"),
            nullable=False,
        ),
        sa.Column("share_ratio", sa.Numeric(5, 2), nullable=False, server_default="1.00"),
        sa.PrimaryKeyConstraint("id", name="pk_item_owners"),
        sa.UniqueConstraint("item_id", "user_id", name="uq_item_owners_item_user"),
    )

    # ── settlements ────────────────────────────────────────────────────────
    op.create_table(
        "settlements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "group_id",
            sa.Integer(),
            sa.ForeignKey("groups.id", ondelete="RESTRICT", name="fk_settlements_group"),
            nullable=False,
        ),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "created_by_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_settlements_creator"),
            nullable=False,
        ),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("settled_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_settlements"),
    )

    # ── settlement_bills ───────────────────────────────────────────────────
    op.create_table(
        "settlement_bills",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "settlement_id",
            sa.Integer(),
            sa.ForeignKey("settlements.id", ondelete="CASCADE", name="fk_settlement_bills_settlement"),
            nullable=False,
        ),
        sa.Column(
            "bill_id",
            sa.Integer(),
            sa.ForeignKey("bills.id", ondelete="RESTRICT", name="fk_settlement_bills_bill"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id", name="pk_settlement_bills"),
        sa.UniqueConstraint("settlement_id", "bill_id", name="uq_settlement_bills_pair"),
    )

    # ── settlement_transactions ────────────────────────────────────────────
    op.create_table(
        "settlement_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "settlement_id",
            sa.Integer(),
            sa.ForeignKey("settlements.id", ondelete="CASCADE", name="fk_settlement_tx_settlement"),
            nullable=False,
        ),
        sa.Column(
            "from_user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_settlement_tx_from_user"),
            nullable=False,
        ),
        sa.Column(
            "to_user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_settlement_tx_to_user"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_settlement_transactions"),
        sa.CheckConstraint("amount > 0", name="ck_settlement_tx_amount_positive"),
        sa.CheckConstraint(
            "from_user_id <> to_user_id",
            name="ck_settlement_tx_no_self_transfer",
        ),
    )

    # ── Indexes ────────────────────────────────────────────────────────────
    op.create_index("idx_refresh_tokens_user", "refresh_tokens", ["user_id"])
    op.create_index("idx_memberships_group", "memberships", ["group_id"])
    op.create_index("idx_memberships_user", "memberships", ["user_id"])
    op.create_index("idx_bills_group", "bills", ["group_id"])
    # Partial index over active bills only; bill listing and settlement
    # calculation always filter on deleted_at IS NULL.
    op.create_index(
        "idx_bills_active",
        "bills",
        ["group_id"],
        postgresql_where=sa.text("deleted_at IS NULL"),
    )
    op.create_index("idx_bill_items_bill", "bill_items", ["bill_id"])
    op.create_index("idx_item_owners_item", "item_owners", ["item_id"])
    op.create_index("idx_settlements_group", "settlements", ["group_id"])
    op.create_index("idx_settlement_bills_settlement", "settlement_bills", ["settlement_id"])
    op.create_index("idx_settlement_bills_bill", "settlement_bills", ["bill_id"])
    op.create_index(
        "idx_settlement_tx_settlement",
        "settlement_transactions",
        ["settlement_id"],
    )


def downgrade() -> None:
    """Drops everything created in upgrade(), in reverse dependency order."""
    op.drop_index("idx_settlement_tx_settlement",    table_name="settlement_transactions")
    op.drop_index("idx_settlement_bills_bill",       table_name="settlement_bills")
    op.drop_index("idx_settlement_bills_settlement", table_name="settlement_bills")
    op.drop_index("idx_settlements_group",           table_name="settlements")
    op.drop_index("idx_item_owners_item",            table_name="item_owners")
    op.drop_index("idx_bill_items_bill",             table_name="bill_items")
    op.drop_index("idx_bills_active",                table_name="bills")
    op.drop_index("idx_bills_group",                 table_name="bills")
    op.drop_index("idx_memberships_user",            table_name="memberships")
    op.drop_index("idx_memberships_group",           table_name="memberships")
    op.drop_index("idx_refresh_tokens_user",         table_name="refresh_tokens")

    op.drop_table("settlement_transactions")
    op.drop_table("settlement_bills")
    op.drop_table("settlements")
    op.drop_table("item_owners")
    op.drop_table("bill_items")
    op.drop_table("bills")
    op.drop_table("memberships")
    op.drop_table("groups")
    op.drop_table("refresh_tokens")
    op.drop_table("users")
