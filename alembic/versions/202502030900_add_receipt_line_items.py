"""add receipt line items

Revision ID: 202502030900
Revises: 202501200900
Create Date: 2025-02-03 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202502030900"
down_revision = "202501200900"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "receipt_line_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column(
            "expense_id", sa.Integer(), sa.ForeignKey("expenses.id"), nullable=False
        ),
        sa.Column("item_name", sa.String(length=200), nullable=False),
        sa.Column("item_name_normalized", sa.String(length=200), nullable=False),
        sa.Column("quantity", sa.Numeric(10, 3), nullable=False),
        sa.Column("unit_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("line_total", sa.Numeric(12, 2), nullable=False),
        sa.Column("unit_of_measure", sa.String(length=20), nullable=False),
        sa.Column("is_taxable", sa.Boolean(), nullable=False, server_default="1"),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_line_items_expense_order",
        "receipt_line_items",
        ["expense_id", "sort_order"],
    )
    op.create_index("ix_line_items_user", "receipt_line_items", ["user_id"])


def downgrade():
    op.drop_index("ix_line_items_user", table_name="receipt_line_items")
    op.drop_index("ix_line_items_expense_order", table_name="receipt_line_items")
    op.drop_table("receipt_line_items")
