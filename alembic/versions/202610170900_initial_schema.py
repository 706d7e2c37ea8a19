"""Initial study scheduler schema."""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "202610170900"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(with_updated: bool = True) -> list[sa.Column]:
    columns = [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    ]
    if with_updated:
        columns.append(
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))
        )
    return columns


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        *_timestamps(with_updated=False),
    )

    op.create_table(
        "courses",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("color", sa.String(length=7), nullable=True),
        *_timestamps(with_updated=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_courses_user_id", "courses", ["user_id"], unique=False)

    op.create_table(
        "assignments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("course_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("due_date", sa.DateTime(timezone=False), nullable=True),
        sa.Column("priority", sa.String(length=10), nullable=False, server_default=sa.text("'medium'")),
        sa.Column("status", sa.String(length=20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("estimated_duration", sa.Integer(), nullable=True, server_default=sa.text("60")),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["course_id"], ["courses.id"], ondelete="SET NULL"),
        sa.CheckConstraint("priority IN ('low', 'medium', 'high')", name="ck_assignments_priority"),
        sa.CheckConstraint("status IN ('pending', 'in_progress', 'completed')", name="ck_assignments_status"),
    )
    op.create_index("ix_assignments_user_id", "assignments", ["user_id"], unique=False)
    op.create_index("ix_assignments_status", "assignments", ["status"], unique=False)

    op.create_table(
        "availability_blocks",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("available_start", sa.Time(), nullable=False),
        sa.Column("available_end", sa.Time(), nullable=False),
        sa.Column("block_type", sa.String(length=20), nullable=False, server_default=sa.text("'study'")),
        sa.Column("label", sa.Text(), nullable=True),
        sa.Column("location", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="ck_availability_blocks_day"),
        sa.CheckConstraint("available_start < available_end", name="ck_availability_blocks_range"),
    )
    op.create_index("ix_availability_blocks_user_id", "availability_blocks", ["user_id"], unique=False)

    op.create_table(
        "planned_tasks",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("assignment_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("title", sa.Text(), nullable=True),
        sa.Column("scheduled_date", sa.Date(), nullable=False),
        sa.Column("scheduled_start", sa.Time(), nullable=False),
        sa.Column("scheduled_end", sa.Time(), nullable=False),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ai_generated", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["assignment_id"], ["assignments.id"], ondelete="CASCADE"),
        sa.CheckConstraint("scheduled_start < scheduled_end", name="ck_planned_tasks_range"),
    )
    op.create_index("ix_planned_tasks_user_date", "planned_tasks", ["user_id", "scheduled_date"], unique=False)

    op.create_table(
        "schedule_suggestions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("assignment_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("suggested_date", sa.Date(), nullable=False),
        sa.Column("suggested_start", sa.Time(), nullable=False),
        sa.Column("suggested_end", sa.Time(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(with_updated=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["assignment_id"], ["assignments.id"], ondelete="CASCADE"),
        sa.CheckConstraint(
            "status IN ('pending', 'accepted', 'dismissed')",
            name="ck_schedule_suggestions_status",
        ),
        sa.CheckConstraint("suggested_start < suggested_end", name="ck_schedule_suggestions_range"),
    )
    op.create_index(
        "ix_schedule_suggestions_user_status",
        "schedule_suggestions",
        ["user_id", "status"],
        unique=False,
    )

    op.create_table(
        "schedule_actions_log",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("action_type", sa.Text(), nullable=False),
        sa.Column(
            "action_payload",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("reason", sa.Text(), nullable=True),
        *_timestamps(with_updated=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_schedule_actions_log_user_id", "schedule_actions_log", ["user_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_schedule_actions_log_user_id", table_name="schedule_actions_log")
    op.drop_table("schedule_actions_log")
    op.drop_index("ix_schedule_suggestions_user_status", table_name="schedule_suggestions")
    op.drop_table("schedule_suggestions")
    op.drop_index("ix_planned_tasks_user_date", table_name="planned_tasks")
    op.drop_table("planned_tasks")
    op.drop_index("ix_availability_blocks_user_id", table_name="availability_blocks")
    op.drop_table("availability_blocks")
    op.drop_index("ix_assignments_status", table_name="assignments")
    op.drop_index("ix_assignments_user_id", table_name="assignments")
    op.drop_table("assignments")
    op.drop_index("ix_courses_user_id", table_name="courses")
    op.drop_table("courses")
    op.drop_table("users")
