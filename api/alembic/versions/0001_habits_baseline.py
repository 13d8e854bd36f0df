"""habits and completion ledger

Revision ID: 0001_habits_baseline
Revises:
Create Date: 2026-10-18
"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_habits_baseline"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "habits",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(50), nullable=True),
        sa.Column(
            "frequency",
            sa.Enum(
                "daily",
                "weekly",
                "monthly",
                name="habit_frequency",
                native_enum=False,
            ),
            nullable=False,
        ),
        sa.Column(
            "habit_status",
            sa.Enum(
                "active",
                "paused",
                "stopped",
                name="habit_status",
                native_enum=False,
            ),
            nullable=False,
        ),
        sa.Column("current_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("longest_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_completed_date", sa.Date(), nullable=True),
        sa.Column("streak_start_date", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("current_streak >= 0", name="ck_habits_current_streak"),
        sa.CheckConstraint("longest_streak >= 0", name="ck_habits_longest_streak"),
    )
    op.create_index("ix_habits_user_created", "habits", ["user_id", "created_at"])

    op.create_table(
        "habit_completions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("habit_id", sa.String(36), nullable=False),
        sa.Column("completed_date", sa.Date(), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["habit_id"], ["habits.id"], ondelete="CASCADE"),
        sa.UniqueConstraint(
            "habit_id", "completed_date", name="uq_habit_completion_date"
        ),
    )


def downgrade() -> None:
    op.drop_table("habit_completions")
    op.drop_index("ix_habits_user_created", table_name="habits")
    op.drop_table("habits")
