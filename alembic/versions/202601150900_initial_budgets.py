"""budgets, expenses and budget notifications

Revision ID: 202601150900
Revises:
Create Date: 2026-01-15 09:00:00.000000

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "202601150900"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "budgets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column("period_end", sa.Date(), nullable=False),
        sa.Column(
            "is_active", sa.Boolean(), nullable=False, server_default=sa.true()
        ),
        sa.Column(
            "previous_budget_id",
            sa.Integer(),
            sa.ForeignKey("budgets.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("amount_cents >= 0", name="ck_budgets_amount_positive"),
        sa.CheckConstraint(
            "period_start < period_end", name="ck_budgets_period_order"
        ),
    )
    op.create_index(
        "ix_budgets_user_period", "budgets", ["user_id", "period_start", "period_end"]
    )
    # At most one active budget may start on a given day for a user.
    op.create_index(
        "uq_budgets_user_active_start",
        "budgets",
        ["user_id", "period_start"],
        unique=True,
        sqlite_where=sa.text("is_active = 1"),
        postgresql_where=sa.text("is_active"),
    )

    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column(
            "budget_id",
            sa.Integer(),
            sa.ForeignKey("budgets.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("source", sa.String(length=100), nullable=True),
        sa.Column("category", sa.String(length=50), nullable=True),
        sa.Column("notes", sa.String(length=500), nullable=True),
        sa.Column("receipt_id", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("amount_cents >= 0", name="ck_expenses_amount_positive"),
    )
    op.create_index("ix_expenses_budget_date", "expenses", ["budget_id", "date"])
    op.create_index("ix_expenses_user_date", "expenses", ["user_id", "date"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column(
            "type",
            sa.Enum("BUDGET", name="notificationtype"),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("reference_id", sa.Integer(), nullable=True),
        sa.Column("reference_type", sa.String(length=30), nullable=True),
        sa.Column(
            "alert_kind",
            sa.Enum(
                "THRESHOLD_75",
                "THRESHOLD_90",
                "OVER_BUDGET",
                "DAILY_LIMIT",
                name="alertkind",
            ),
            nullable=True,
        ),
        sa.Column("threshold_reached", sa.Integer(), nullable=True),
        sa.Column("alert_date", sa.Date(), nullable=True),
        sa.Column(
            "severity",
            sa.Enum("INFO", "WARNING", "CRITICAL", name="alertseverity"),
            nullable=False,
        ),
        sa.Column("suggestions_json", sa.Text(), nullable=True),
        sa.Column(
            "is_read", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_notifications_user_reference",
        "notifications",
        ["user_id", "type", "reference_id", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_notifications_user_reference", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_expenses_user_date", table_name="expenses")
    op.drop_index("ix_expenses_budget_date", table_name="expenses")
    op.drop_table("expenses")
    op.drop_index("uq_budgets_user_active_start", table_name="budgets")
    op.drop_index("ix_budgets_user_period", table_name="budgets")
    op.drop_table("budgets")
