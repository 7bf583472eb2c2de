"""initial tables

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:30:00

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "students",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("grade", sa.String(50)),
        sa.Column("main_center", sa.String(100)),
        sa.Column("school", sa.String(255)),
        sa.Column("score", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_students_id", "students", ["id"])

    op.create_table(
        "student_weeks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("student_id", sa.Integer(), sa.ForeignKey("students.id", ondelete="CASCADE"), nullable=False),
        sa.Column("week", sa.Integer(), nullable=False),
        sa.Column("attended", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("hw_done", sa.JSON(), nullable=True),
        sa.Column("hw_degree", sa.String(50)),
        sa.Column("view_homework_video", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("quiz_degree", sa.String(50)),
        sa.Column("comment", sa.Text()),
        sa.Column("message_state", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.UniqueConstraint("student_id", "week", name="uix_student_week"),
    )
    op.create_index("ix_student_weeks_id", "student_weeks", ["id"])

    op.create_table(
        "vhc_codes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("vhc", sa.String(9), nullable=False),
        sa.Column("code_settings", sa.String(20), nullable=False),
        sa.Column("number_of_views", sa.Integer()),
        sa.Column("deadline_date", sa.String(10)),
        sa.Column("code_state", sa.String(20), nullable=False),
        sa.Column("payment_state", sa.String(20), nullable=False),
        sa.Column("viewed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("viewed_by_who", sa.Integer()),
        sa.Column("made_by_who", sa.String(100)),
        sa.Column("date", sa.String(50)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("code_settings IN ('number_of_views', 'deadline_date')", name="check_vhc_code_settings"),
        sa.CheckConstraint("code_state IN ('Activated', 'Deactivated')", name="check_vhc_code_state"),
        sa.CheckConstraint("payment_state IN ('Paid', 'Not Paid')", name="check_vhc_payment_state"),
        sa.CheckConstraint("number_of_views IS NULL OR number_of_views >= 0", name="check_vhc_views_not_negative"),
    )
    op.create_index("ix_vhc_codes_id", "vhc_codes", ["id"])
    op.create_index("ix_vhc_codes_vhc", "vhc_codes", ["vhc"], unique=True)

    op.create_table(
        "homeworks_videos",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("week", sa.Integer(), nullable=True),
        sa.Column("grade", sa.String(50), nullable=False),
        sa.Column("payment_state", sa.String(20), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("videos", sa.JSON(), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("date", sa.String(50)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint(
            "payment_state IN ('paid', 'free', 'free_if_attended')",
            name="check_session_payment_state",
        ),
    )
    op.create_index("ix_homeworks_videos_id", "homeworks_videos", ["id"])

    op.create_table(
        "scoring_system_conditions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("with_degree", sa.Boolean(), nullable=True),
        sa.Column("rules", sa.JSON(), nullable=False),
        sa.Column("bonus_rules", sa.JSON(), nullable=False),
        sa.CheckConstraint("type IN ('attendance', 'homework', 'quiz')", name="check_scoring_condition_type"),
    )
    op.create_index("ix_scoring_system_conditions_id", "scoring_system_conditions", ["id"])

    op.create_table(
        "scoring_system_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("student_id", sa.Integer(), sa.ForeignKey("students.id", ondelete="CASCADE"), nullable=False),
        sa.Column("process_id", sa.String(100), nullable=False),
        sa.Column("process_name", sa.String(255)),
        sa.Column("process_week", sa.Integer(), nullable=True),
        sa.Column("score_before_process", sa.Integer(), nullable=False),
        sa.Column("score_added", sa.Integer(), nullable=False),
        sa.Column("score_after_process", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("data", sa.JSON()),
        sa.Column("bonus_points", sa.Integer(), nullable=False),
        sa.Column("bonus_weeks", sa.JSON(), nullable=False),
        sa.Column("base_points", sa.Integer(), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_scoring_system_history_id", "scoring_system_history", ["id"])
    op.create_index("ix_scoring_system_history_student_id", "scoring_system_history", ["student_id"])


def downgrade():
    op.drop_table("scoring_system_history")
    op.drop_table("scoring_system_conditions")
    op.drop_table("homeworks_videos")
    op.drop_table("vhc_codes")
    op.drop_table("student_weeks")
    op.drop_table("students")
