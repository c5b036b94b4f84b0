"""initial stock ledger schema

Revision ID: 5b1e0c9a7d21
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "5b1e0c9a7d21"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ID = sa.BigInteger().with_variant(sa.Integer(), "sqlite")

ROLE = sa.Enum("ADMIN", "MANAGER", "CASHIER", name="role")
LEDGER_KIND = sa.Enum("SALE", "RESTOCK", name="ledger_kind")
LEDGER_STATUS = sa.Enum("COMPLETED", "CANCELLED", name="ledger_status")
PAYMENT_METHOD = sa.Enum("CASH", "CARD", "TRANSFER", "EWALLET", name="payment_method")
MOVEMENT_TYPE = sa.Enum("SALE", "RESTOCK", "SALE_REVERSAL", "RESTOCK_REVERSAL", name="movement_type")


def upgrade() -> None:
    # ---------- MASTER DATA ----------
    op.create_table(
        "categories",
        sa.Column("id", ID, primary_key=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("description", sa.Text()),
    )
    op.create_table(
        "customers",
        sa.Column("id", ID, primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("phone", sa.String(32)),
        sa.Column("email", sa.String(255), unique=True),
        sa.Column("address", sa.Text()),
    )
    op.create_table(
        "suppliers",
        sa.Column("id", ID, primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
        sa.Column("contact", sa.String(200)),
        sa.Column("phone", sa.String(32)),
        sa.Column("email", sa.String(255)),
        sa.Column("address", sa.Text()),
    )
    op.create_table(
        "products",
        sa.Column("id", ID, primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("price", sa.Numeric(14, 2), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("category_id", ID, sa.ForeignKey("categories.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("stock_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("min_stock_level", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.CheckConstraint("stock_quantity >= 0", name="ck_product_stock_nonneg"),
        sa.CheckConstraint("min_stock_level >= 0", name="ck_product_min_stock_nonneg"),
        sa.CheckConstraint("price >= 0", name="ck_product_price_nonneg"),
    )

    # ---------- AUTH ----------
    op.create_table(
        "users",
        sa.Column("id", ID, primary_key=True),
        sa.Column("username", sa.String(100), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("role", ROLE, nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    # ---------- LEDGER ----------
    op.create_table(
        "ledger_entries",
        sa.Column("id", ID, primary_key=True),
        sa.Column("kind", LEDGER_KIND, nullable=False),
        sa.Column("customer_id", ID, sa.ForeignKey("customers.id", ondelete="RESTRICT")),
        sa.Column("supplier_id", ID, sa.ForeignKey("suppliers.id", ondelete="RESTRICT")),
        sa.Column("user_id", ID, sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("payment_method", PAYMENT_METHOD),
        sa.Column("happened_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("total", sa.Numeric(14, 2), nullable=False),
        sa.Column("status", LEDGER_STATUS, nullable=False),
        sa.Column("notes", sa.Text()),
        sa.Column("cancelled_at", sa.DateTime(timezone=True)),
        sa.Column("idempotency_key", sa.String(64), unique=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.CheckConstraint(
            "(kind = 'SALE' AND supplier_id IS NULL) "
            "OR (kind = 'RESTOCK' AND supplier_id IS NOT NULL AND customer_id IS NULL)",
            name="ck_ledger_entry_party",
        ),
        sa.CheckConstraint("total >= 0", name="ck_ledger_entry_total_nonneg"),
    )
    op.create_index("ix_ledger_entries_kind_time", "ledger_entries", ["kind", "happened_at"])

    op.create_table(
        "ledger_lines",
        sa.Column("id", ID, primary_key=True),
        sa.Column("entry_id", ID, sa.ForeignKey("ledger_entries.id", ondelete="CASCADE"), nullable=False),
        sa.Column("product_id", ID, sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("subtotal", sa.Numeric(14, 2), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_ledger_line_qty_pos"),
        sa.CheckConstraint("unit_amount >= 0", name="ck_ledger_line_unit_amount_nonneg"),
    )
    op.create_index("ix_ledger_lines_entry_id", "ledger_lines", ["entry_id"])

    # ---------- INVENTORY ----------
    op.create_table(
        "stock_movements",
        sa.Column("id", ID, primary_key=True),
        sa.Column("product_id", ID, sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("entry_id", ID, sa.ForeignKey("ledger_entries.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("movement_type", MOVEMENT_TYPE, nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("qty_after", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_stock_movement_qty_pos"),
        sa.CheckConstraint("qty_after >= 0", name="ck_stock_movement_qty_after_nonneg"),
    )
    op.create_index("ix_stock_movements_product_id", "stock_movements", ["product_id"])
    op.create_index("ix_stock_movements_product_time", "stock_movements", ["product_id", "created_at"])


def downgrade() -> None:
    op.drop_table("stock_movements")
    op.drop_table("ledger_lines")
    op.drop_table("ledger_entries")
    op.drop_table("users")
    op.drop_table("products")
    op.drop_table("suppliers")
    op.drop_table("customers")
    op.drop_table("categories")

    # types ENUM Postgres (no-op ailleurs)
    bind = op.get_bind()
    for enum_type in (MOVEMENT_TYPE, PAYMENT_METHOD, LEDGER_STATUS, LEDGER_KIND, ROLE):
        enum_type.drop(bind, checkfirst=True)
