"""create weekly tiers schema

Revision ID: 20261019_01
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_01"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "grade_levels",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=40), nullable=False),
        sa.UniqueConstraint("name"),
    )
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=True),
        sa.Column("role", sa.String(length=10), nullable=False, server_default="TEACHER"),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.UniqueConstraint("email"),
    )
    op.create_table(
        "classrooms",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("code", sa.String(length=20), nullable=False),
        sa.Column("grade_level_id", sa.Integer(), sa.ForeignKey("grade_levels.id"), nullable=False),
        sa.Column("teacher_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.UniqueConstraint("code"),
    )
    op.create_index("ix_classrooms_grade_level_id", "classrooms", ["grade_level_id"])
    op.create_table(
        "students",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("external_id", sa.String(length=40), nullable=True),
        sa.Column("full_name", sa.String(length=120), nullable=False),
        sa.Column("grade_level_id", sa.Integer(), sa.ForeignKey("grade_levels.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.UniqueConstraint("external_id"),
    )
    op.create_index("ix_students_full_name", "students", ["full_name"])
    op.create_index("ix_students_grade_level_id", "students", ["grade_level_id"])
    op.create_table(
        "assessments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("subject", sa.String(length=10), nullable=False),
        sa.Column("classroom_id", sa.Integer(), sa.ForeignKey("classrooms.id"), nullable=False),
        sa.Column("week_start", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.UniqueConstraint("subject", "classroom_id", "week_start", name="uq_assessment_subject_classroom_week"),
    )
    op.create_index("ix_assessments_subject", "assessments", ["subject"])
    op.create_index("ix_assessments_week_start", "assessments", ["week_start"])
    op.create_table(
        "scores",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("student_id", sa.Integer(), sa.ForeignKey("students.id"), nullable=False),
        sa.Column("assessment_id", sa.Integer(), sa.ForeignKey("assessments.id"), nullable=False),
        sa.Column("raw_score", sa.Float(), nullable=False),
        sa.Column("tier", sa.String(length=10), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.UniqueConstraint("student_id", "assessment_id", name="uq_score_student_assessment"),
    )
    op.create_index("ix_scores_assessment_id", "scores", ["assessment_id"])
    op.create_table(
        "weekly_aggregates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("grade_level_id", sa.Integer(), sa.ForeignKey("grade_levels.id"), nullable=False),
        sa.Column("classroom_id", sa.Integer(), sa.ForeignKey("classrooms.id"), nullable=False),
        sa.Column("subject", sa.String(length=10), nullable=False),
        sa.Column("week_start", sa.Date(), nullable=False),
        sa.Column("green_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("orange_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("red_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("gray_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.UniqueConstraint(
            "grade_level_id", "classroom_id", "subject", "week_start", name="uq_weekly_aggregate_key"
        ),
    )
    op.create_index("ix_weekly_aggregates_week_start", "weekly_aggregates", ["week_start"])
    op.create_table(
        "upload_audits",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("file_name", sa.String(length=255), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("record_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("processed_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=10), nullable=False),
        sa.Column("error_log", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_upload_audits_user_id", "upload_audits", ["user_id"])


def downgrade():
    op.drop_index("ix_upload_audits_user_id", table_name="upload_audits")
    op.drop_table("upload_audits")
    op.drop_index("ix_weekly_aggregates_week_start", table_name="weekly_aggregates")
    op.drop_table("weekly_aggregates")
    op.drop_index("ix_scores_assessment_id", table_name="scores")
    op.drop_table("scores")
    op.drop_index("ix_assessments_week_start", table_name="assessments")
    op.drop_index("ix_assessments_subject", table_name="assessments")
    op.drop_table("assessments")
    op.drop_index("ix_students_grade_level_id", table_name="students")
    op.drop_index("ix_students_full_name", table_name="students")
    op.drop_table("students")
    op.drop_index("ix_classrooms_grade_level_id", table_name="classrooms")
    op.drop_table("classrooms")
    op.drop_table("users")
    op.drop_table("grade_levels")
