"""
SQLAlchemy 2.0 Models for EduBot.

Uses modern declarative syntax with Mapped[] type annotations.
Column types are the generic ones (Uuid, DateTime) so the same models run on
PostgreSQL in production and SQLite in tests.

Users, subjects, assessments, enrollments and grades belong to the
records-management side and are only read here (grades are also upserted by
the grades service). Chat threads and messages are owned by the chat service.
"""

from datetime import datetime, timezone
from enum import Enum as PyEnum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    DateTime,
    Float,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from edubot.db.base import Base


def utcnow() -> datetime:
    """Timezone-aware now; set in Python so message order keeps microseconds."""
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS
# =============================================================================


class UserRole(str, PyEnum):
    """Role of an account."""

    STUDENT = "student"
    LECTURER = "lecturer"


class ChatRole(str, PyEnum):
    """Role in chat conversation."""

    USER = "user"
    ASSISTANT = "assistant"


# =============================================================================
# RECORDS (read contracts)
# =============================================================================


class User(Base):
    """Account of a student or lecturer."""

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(Uuid(), primary_key=True, default=uuid4)
    username: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    student_number: Mapped[Optional[str]] = mapped_column(
        String(50), unique=True, nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    chat_threads: Mapped[list["ChatThread"]] = relationship(
        "ChatThread", back_populates="user", cascade="all, delete-orphan"
    )


class Subject(Base):
    """Subject taught by one lecturer."""

    __tablename__ = "subjects"
    __table_args__ = (Index("idx_subjects_lecturer_id", "lecturer_id"),)

    id: Mapped[UUID] = mapped_column(Uuid(), primary_key=True, default=uuid4)
    lecturer_id: Mapped[UUID] = mapped_column(
        Uuid(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )


class Assessment(Base):
    """Graded piece of work within a subject. Weight is a percentage (0-100)."""

    __tablename__ = "assessments"
    __table_args__ = (Index("idx_assessments_subject_id", "subject_id"),)

    id: Mapped[UUID] = mapped_column(Uuid(), primary_key=True, default=uuid4)
    subject_id: Mapped[UUID] = mapped_column(
        Uuid(), ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    max_score: Mapped[float] = mapped_column(Float, nullable=False)
    weight: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )


class Enrollment(Base):
    """A student's enrollment in a subject."""

    __tablename__ = "enrollments"
    __table_args__ = (
        UniqueConstraint("user_id", "subject_id", name="unique_enrollment"),
        Index("idx_enrollments_lecturer_id", "lecturer_id"),
    )

    id: Mapped[UUID] = mapped_column(Uuid(), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        Uuid(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    subject_id: Mapped[UUID] = mapped_column(
        Uuid(), ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False
    )
    lecturer_id: Mapped[UUID] = mapped_column(
        Uuid(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )


class Grade(Base):
    """A student's score on one assessment."""

    __tablename__ = "grades"
    __table_args__ = (
        UniqueConstraint("assessment_id", "student_id", name="unique_student_assessment_grade"),
        Index("idx_grades_student_number", "student_number"),
    )

    id: Mapped[UUID] = mapped_column(Uuid(), primary_key=True, default=uuid4)
    student_id: Mapped[UUID] = mapped_column(
        Uuid(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    assessment_id: Mapped[UUID] = mapped_column(
        Uuid(), ForeignKey("assessments.id", ondelete="CASCADE"), nullable=False
    )
    student_number: Mapped[str] = mapped_column(String(50), nullable=False)
    score: Mapped[float] = mapped_column(Float, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )


# =============================================================================
# CHAT
# =============================================================================


class ChatThread(Base):
    """
    Chat conversation with the assistant.

    Owned by exactly one user. The title is generated once from the first
    message.
    """

    __tablename__ = "chat_threads"
    __table_args__ = (Index("idx_chat_threads_user_id", "user_id"),)

    id: Mapped[UUID] = mapped_column(Uuid(), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        Uuid(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(
        String(), nullable=False, default="New Chat"
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="chat_threads")
    messages: Mapped[list["ChatMessage"]] = relationship(
        "ChatMessage", back_populates="thread", cascade="all, delete-orphan"
    )


class ChatMessage(Base):
    """
    Individual message in a chat thread.

    Append-only: rows are never updated once written.
    """

    __tablename__ = "chat_messages"
    __table_args__ = (Index("idx_chat_messages_thread_id", "thread_id", "created_at"),)

    id: Mapped[UUID] = mapped_column(Uuid(), primary_key=True, default=uuid4)
    thread_id: Mapped[UUID] = mapped_column(
        Uuid(),
        ForeignKey("chat_threads.id", ondelete="CASCADE"),
        nullable=False,
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False)  # 'user' or 'assistant'
    content: Mapped[str] = mapped_column(Text, nullable=False)

    # Timestamp
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    # Relationships
    thread: Mapped["ChatThread"] = relationship(
        "ChatThread", back_populates="messages"
    )
