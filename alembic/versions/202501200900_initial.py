"""initial schema

Revision ID: 202501200900
Revises:
Create Date: 2025-01-20 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202501200900"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("icon", sa.String(length=16)),
        sa.Column("color", sa.String(length=9)),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "name", name="uq_category_user_name"),
    )

    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("vendor", sa.String(length=200)),
        sa.Column("description", sa.Text()),
        sa.Column("is_business", sa.Boolean(), nullable=False, server_default="1"),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id")),
        *_timestamps(),
    )
    op.create_index("ix_expenses_user_date", "expenses", ["user_id", "date"])
    op.create_index(
        "ix_expenses_user_category_date",
        "expenses",
        ["user_id", "category_id", "date"],
    )

    op.create_table(
        "recurring_expenses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("description", sa.String(length=200), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column(
            "frequency",
            sa.Enum(
                "weekly",
                "biweekly",
                "monthly",
                "quarterly",
                "annually",
                name="recurringfrequency",
            ),
            nullable=False,
        ),
        sa.Column("next_due_date", sa.Date(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="1"),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id")),
        *_timestamps(),
        sa.CheckConstraint("amount >= 0", name="ck_recurring_amount_positive"),
    )
    op.create_index(
        "ix_recurring_user_active", "recurring_expenses", ["user_id", "is_active"]
    )

    op.create_table(
        "budgets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("category", sa.String(length=100)),
        sa.Column("amount", sa.Numeric(12, 2)),
        sa.Column(
            "period",
            sa.Enum("monthly", "quarterly", "yearly", name="budgetperiod"),
            nullable=False,
            server_default="monthly",
        ),
        sa.Column(
            "profile",
            sa.Enum("business", "personal", name="budgetprofile"),
            nullable=False,
            server_default="business",
        ),
        sa.Column("alert_threshold", sa.Numeric(4, 3)),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="1"),
        *_timestamps(),
    )
    op.create_index("ix_budgets_user_active", "budgets", ["user_id", "is_active"])

    op.create_table(
        "merchant_rules",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("merchant_pattern", sa.String(length=200), nullable=False),
        sa.Column(
            "match_type",
            sa.Enum("exact", "contains", "starts_with", name="matchtype"),
            nullable=False,
            server_default="contains",
        ),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id")),
        sa.Column("is_business", sa.Boolean(), nullable=False, server_default="1"),
        sa.Column("vendor_display_name", sa.String(length=200)),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="1"),
        sa.Column("auto_created", sa.Boolean(), nullable=False, server_default="0"),
        sa.Column("match_count", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint(
            "user_id", "merchant_pattern", name="uq_merchant_rule_user_pattern"
        ),
    )
    op.create_index(
        "ix_merchant_rules_user_active_priority",
        "merchant_rules",
        ["user_id", "is_active", "priority", "match_count"],
    )

    op.create_table(
        "item_price_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("item_name_normalized", sa.String(length=200), nullable=False),
        sa.Column("vendor", sa.String(length=200)),
        sa.Column("vendor_normalized", sa.String(length=200)),
        sa.Column("unit_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("quantity", sa.Numeric(10, 3), nullable=False),
        sa.Column("unit_of_measure", sa.String(length=20), nullable=False),
        sa.Column("purchase_date", sa.Date(), nullable=False),
        sa.Column("expense_id", sa.Integer(), sa.ForeignKey("expenses.id")),
        *_timestamps(),
        sa.CheckConstraint("unit_price >= 0", name="ck_price_history_price_positive"),
    )
    op.create_index(
        "ix_price_history_user_item",
        "item_price_history",
        ["user_id", "item_name_normalized"],
    )
    op.create_index(
        "ix_price_history_user_date",
        "item_price_history",
        ["user_id", "purchase_date"],
    )


def downgrade():
    op.drop_index("ix_price_history_user_date", table_name="item_price_history")
    op.drop_index("ix_price_history_user_item", table_name="item_price_history")
    op.drop_table("item_price_history")
    op.drop_index("ix_merchant_rules_user_active_priority", table_name="merchant_rules")
    op.drop_table("merchant_rules")
    op.drop_index("ix_budgets_user_active", table_name="budgets")
    op.drop_table("budgets")
    op.drop_index("ix_recurring_user_active", table_name="recurring_expenses")
    op.drop_table("recurring_expenses")
    op.drop_index("ix_expenses_user_category_date", table_name="expenses")
    op.drop_index("ix_expenses_user_date", table_name="expenses")
    op.drop_table("expenses")
    op.drop_table("categories")
