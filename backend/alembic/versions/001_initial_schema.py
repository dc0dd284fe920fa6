"""Initial schema.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

Creates the EduBot schema:
- Records (read by the assistant): users, subjects, assessments, enrollments, grades
- Chat: chat_threads, chat_messages
- Triggers: updated_at auto-update on grades and chat_threads
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id() -> sa.Column:
    return sa.Column(
        "id", postgresql.UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), nullable=False
    )


def _timestamp(name: str) -> sa.Column:
    return sa.Column(name, postgresql.TIMESTAMP(timezone=True), server_default=sa.text("NOW()"), nullable=False)


def upgrade() -> None:
    # ==========================================================================
    # USERS TABLE
    # ==========================================================================
    op.create_table(
        "users",
        _id(),
        sa.Column("username", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("student_number", sa.String(50), nullable=True),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("username"),
        sa.UniqueConstraint("student_number"),
        sa.CheckConstraint("role IN ('student', 'lecturer')", name="valid_role"),
    )
    op.create_index("ix_users_role", "users", ["role"])

    # ==========================================================================
    # SUBJECTS TABLE
    # ==========================================================================
    op.create_table(
        "subjects",
        _id(),
        sa.Column("lecturer_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("code", sa.String(50), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["lecturer_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_subjects_lecturer_id", "subjects", ["lecturer_id"])

    # ==========================================================================
    # ASSESSMENTS TABLE
    # ==========================================================================
    op.create_table(
        "assessments",
        _id(),
        sa.Column("subject_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("max_score", sa.Float(), nullable=False),
        sa.Column("weight", sa.Float(), server_default="0", nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["subject_id"], ["subjects.id"], ondelete="CASCADE"),
        sa.CheckConstraint("weight >= 0 AND weight <= 100", name="valid_weight"),
    )
    op.create_index("idx_assessments_subject_id", "assessments", ["subject_id"])

    # ==========================================================================
    # ENROLLMENTS TABLE
    # ==========================================================================
    op.create_table(
        "enrollments",
        _id(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("subject_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("lecturer_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["subject_id"], ["subjects.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["lecturer_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "subject_id", name="unique_enrollment"),
    )
    op.create_index("idx_enrollments_lecturer_id", "enrollments", ["lecturer_id"])

    # ==========================================================================
    # GRADES TABLE
    # ==========================================================================
    op.create_table(
        "grades",
        _id(),
        sa.Column("student_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("assessment_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("student_number", sa.String(50), nullable=False),
        sa.Column("score", sa.Float(), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["student_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["assessment_id"], ["assessments.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("assessment_id", "student_id", name="unique_student_assessment_grade"),
        sa.CheckConstraint("score >= 0", name="valid_score"),
    )
    op.create_index("idx_grades_student_number", "grades", ["student_number"])

    # ==========================================================================
    # CHAT TABLES
    # ==========================================================================
    op.create_table(
        "chat_threads",
        _id(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.String(), server_default="New Chat", nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_chat_threads_user_id", "chat_threads", ["user_id"])

    op.create_table(
        "chat_messages",
        _id(),
        sa.Column("thread_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["thread_id"], ["chat_threads.id"], ondelete="CASCADE"),
        sa.CheckConstraint("role IN ('user', 'assistant')", name="valid_chat_role"),
    )
    op.create_index("idx_chat_messages_thread_id", "chat_messages", ["thread_id", "created_at"])

    # ==========================================================================
    # TRIGGERS
    # ==========================================================================
    op.execute("""
        CREATE OR REPLACE FUNCTION update_updated_at_column()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = NOW();
            RETURN NEW;
        END;
        $$ language 'plpgsql'
    """)
    for table in ["grades", "chat_threads"]:
        op.execute(f"""
            CREATE TRIGGER update_{table}_updated_at
            BEFORE UPDATE ON {table}
            FOR EACH ROW EXECUTE FUNCTION update_updated_at_column()
        """)


def downgrade() -> None:
    for table in ["grades", "chat_threads"]:
        op.execute(f"DROP TRIGGER IF EXISTS update_{table}_updated_at ON {table}")

    op.execute("DROP FUNCTION IF EXISTS update_updated_at_column()")

    # Drop tables in reverse dependency order
    op.drop_table("chat_messages")
    op.drop_table("chat_threads")
    op.drop_table("grades")
    op.drop_table("enrollments")
    op.drop_table("assessments")
    op.drop_table("subjects")
    op.drop_table("users")
