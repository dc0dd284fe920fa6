"""Per-turn academic context for the assistant, shaped by the caller's role."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from edubot.config import get_settings
from edubot.db.models import Assessment, Enrollment, Grade, Subject, User, UserRole
from edubot.services.grades_service import GradesService, grades_service

logger = logging.getLogger(__name__)
settings = get_settings()


# =============================================================================
# SNAPSHOTS
# =============================================================================


@dataclass(frozen=True)
class StudentSnapshot:
    """What the assistant knows about a student for one turn."""

    profile: str
    gpa_summary: str
    subjects: list[str] = field(default_factory=list)
    assessments: list[str] = field(default_factory=list)
    grades: list[str] = field(default_factory=list)

    role = UserRole.STUDENT.value


@dataclass(frozen=True)
class LecturerSnapshot:
    """What the assistant knows about a lecturer's classes for one turn."""

    profile: str
    stats: str
    subjects: list[str] = field(default_factory=list)
    assessments: list[str] = field(default_factory=list)
    students: list[str] = field(default_factory=list)
    recent_grades: list[str] = field(default_factory=list)

    role = UserRole.LECTURER.value


AcademicSnapshot = StudentSnapshot | LecturerSnapshot


# =============================================================================
# FORMATTING HELPERS
# =============================================================================


def truncate(items: Sequence[str], limit: int, total: int | None = None) -> list[str]:
    """
    Cap a list at ``limit`` entries, appending one ``…and N more`` entry when cut.

    ``total`` is the size of the full collection when ``items`` was already
    fetched with a limit.
    """
    total = len(items) if total is None else total
    kept = list(items[:limit])
    if total > limit:
        kept.append(f"…and {total - limit} more")
    return kept


def _num(value: float | None) -> str:
    return "?" if value is None else f"{value:g}"


def _subject_label(subject: Subject | None, fallback: str = "Subject") -> str:
    if subject is None:
        return fallback
    return subject.code or subject.name or fallback


def profile_line(user: User) -> str:
    parts = [f"User: {user.username}", f"Role: {user.role}"]
    if user.student_number:
        parts.append(f"Student number: {user.student_number}")
    return " | ".join(parts)


# =============================================================================
# BUILDER
# =============================================================================


class ContextBuilder:
    """Aggregates subjects, assessments and grades into a bounded snapshot."""

    def __init__(self, grades: GradesService | None = None):
        self.grades = grades or grades_service

    async def build(self, db: AsyncSession, user: User) -> AcademicSnapshot:
        """Build a fresh snapshot for the caller. Nothing is cached between turns."""
        if user.role == UserRole.LECTURER.value:
            return await self._build_lecturer(db, user)
        return await self._build_student(db, user)

    async def _grade_counts(self, db: AsyncSession, assessment_ids: list[UUID]) -> dict[UUID, int]:
        if not assessment_ids:
            return {}
        stmt = (
            select(Grade.assessment_id, func.count())
            .where(Grade.assessment_id.in_(assessment_ids))
            .group_by(Grade.assessment_id)
        )
        result = await db.execute(stmt)
        return {assessment_id: count for assessment_id, count in result.all()}

    async def _subjects_and_assessments(
        self, db: AsyncSession, subject_filter
    ) -> tuple[list[Subject], list[Assessment]]:
        result = await db.execute(select(Subject).where(subject_filter).order_by(Subject.name))
        subjects = list(result.scalars())
        if not subjects:
            return subjects, []
        stmt = (
            select(Assessment)
            .where(Assessment.subject_id.in_([s.id for s in subjects]))
            .order_by(Assessment.created_at.desc())
        )
        result = await db.execute(stmt)
        return subjects, list(result.scalars())

    def _subject_lines(self, subjects: list[Subject]) -> list[str]:
        return [f"{s.code or s.name}: {s.name}" for s in subjects]

    def _assessment_lines(
        self,
        assessments: list[Assessment],
        subjects_by_id: dict[UUID, Subject],
        grade_counts: dict[UUID, int],
    ) -> list[str]:
        return [
            f"{_subject_label(subjects_by_id.get(a.subject_id), 'Unknown subject')} - {a.name} "
            f"(weight {_num(a.weight)}%, max {_num(a.max_score)}, "
            f"{grade_counts.get(a.id, 0)} grades recorded)"
            for a in assessments
        ]

    async def _build_student(self, db: AsyncSession, user: User) -> StudentSnapshot:
        stmt = select(Enrollment.subject_id).where(Enrollment.user_id == user.id)
        subject_ids = list((await db.execute(stmt)).scalars())
        subjects, assessments = await self._subjects_and_assessments(
            db, Subject.id.in_(subject_ids)
        )
        subjects_by_id = {s.id: s for s in subjects}
        grade_counts = await self._grade_counts(db, [a.id for a in assessments])

        student_number = user.student_number or user.username
        stmt = (
            select(Grade, Assessment, Subject)
            .outerjoin(Assessment, Assessment.id == Grade.assessment_id)
            .outerjoin(Subject, Subject.id == Assessment.subject_id)
            .where(Grade.student_number == student_number)
            .order_by(Grade.created_at.desc())
        )
        rows = (await db.execute(stmt)).all()
        grade_lines = [
            f"{_subject_label(subject)} - {assessment.name if assessment else 'Assessment'}: "
            f"{_num(grade.score)}/{_num(assessment.max_score if assessment else None)} "
            f"(weight {_num(assessment.weight if assessment else 0)}%)"
            for grade, assessment, subject in rows
        ]

        gpa = await self.grades.compute_gpa(db, student_number)
        gpa_summary = (
            f"GPA {gpa.gpa:.2f} | {gpa.percentage:.1f}% across {gpa.graded_assessments} "
            f"assessments (recorded weight {_num(gpa.recorded_weight)}%)"
        )

        return StudentSnapshot(
            profile=profile_line(user),
            gpa_summary=gpa_summary,
            subjects=truncate(self._subject_lines(subjects), settings.context_max_subjects),
            assessments=truncate(
                self._assessment_lines(assessments, subjects_by_id, grade_counts),
                settings.context_max_assessments,
            ),
            grades=truncate(grade_lines, settings.context_max_grades),
        )

    async def _build_lecturer(self, db: AsyncSession, user: User) -> LecturerSnapshot:
        subjects, assessments = await self._subjects_and_assessments(
            db, Subject.lecturer_id == user.id
        )
        subjects_by_id = {s.id: s for s in subjects}
        assessments_by_id = {a.id: a for a in assessments}
        grade_counts = await self._grade_counts(db, list(assessments_by_id))
        total_grades = sum(grade_counts.values())

        students: list[User] = []
        if subjects:
            enrolled = (
                select(Enrollment.user_id)
                .where(Enrollment.subject_id.in_(list(subjects_by_id)))
                .distinct()
            )
            stmt = (
                select(User)
                .where(User.id.in_(enrolled), User.role == UserRole.STUDENT.value)
                .order_by(User.full_name)
            )
            students = list((await db.execute(stmt)).scalars())
        student_lines = [f"{s.full_name} ({s.student_number or s.username})" for s in students]

        # Recent grades on this lecturer's own assessments, capped by count only
        recent: list[Grade] = []
        if assessments_by_id:
            stmt = (
                select(Grade)
                .where(Grade.assessment_id.in_(list(assessments_by_id)))
                .order_by(Grade.created_at.desc())
                .limit(settings.context_max_recent_grades)
            )
            recent = list((await db.execute(stmt)).scalars())
        recent_lines = []
        for grade in recent:
            assessment = assessments_by_id.get(grade.assessment_id)
            subject = subjects_by_id.get(assessment.subject_id) if assessment else None
            recent_lines.append(
                f"{grade.student_number or 'Student'} - {_subject_label(subject)} / "
                f"{assessment.name if assessment else 'Assessment'}: {_num(grade.score)}/"
                f"{_num(assessment.max_score if assessment else None)} "
                f"(weight {_num(assessment.weight if assessment else 0)}%)"
            )

        stats = (
            f"Role: {user.role}. Total subjects: {len(subjects)}. "
            f"Total assessments: {len(assessments)}. "
            f"Recorded grades (your subjects): {total_grades}."
        )

        return LecturerSnapshot(
            profile=profile_line(user),
            stats=stats,
            subjects=truncate(self._subject_lines(subjects), settings.context_max_subjects),
            assessments=truncate(
                self._assessment_lines(assessments, subjects_by_id, grade_counts),
                settings.context_max_assessments,
            ),
            students=truncate(student_lines, settings.context_max_students),
            recent_grades=truncate(
                recent_lines, settings.context_max_recent_grades, total=total_grades
            ),
        )


# Singleton instance
context_builder = ContextBuilder()
