"""Grade writes and GPA computation."""

import logging
from collections.abc import Iterable
from dataclasses import asdict, dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from edubot.db.models import Assessment, Grade, Subject, User, UserRole
from edubot.errors import NotFoundError, ValidationError
from edubot.notifications.broker import NotificationBroker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GradedItem:
    """One recorded grade joined with its assessment's scoring metadata."""

    score: float
    max_score: float
    weight: float


@dataclass(frozen=True)
class GpaSummary:
    """GPA on a 0-5 scale plus the inputs that produced it."""

    gpa: float
    percentage: float
    recorded_weight: float
    graded_assessments: int

    def to_dict(self) -> dict:
        return asdict(self)


def calculate_gpa(items: Iterable[GradedItem]) -> GpaSummary:
    """
    Compute a GPA summary from graded items.

    Each grade contributes ratio = score / max_score (0 when max_score <= 0).
    When any positive weights are recorded the percentage is the weighted
    mean of the ratios over those weights; otherwise it is the plain mean.
    GPA is percentage / 20.
    """
    items = list(items)
    if not items:
        return GpaSummary(gpa=0.0, percentage=0.0, recorded_weight=0.0, graded_assessments=0)

    total_weight = 0.0
    weighted_score = 0.0
    ratios: list[float] = []
    for item in items:
        ratio = item.score / item.max_score if item.max_score > 0 else 0.0
        ratios.append(ratio)
        if item.weight > 0:
            total_weight += item.weight
            weighted_score += ratio * item.weight

    if total_weight > 0:
        percentage = weighted_score / total_weight * 100
    else:
        percentage = sum(ratios) / len(ratios) * 100

    return GpaSummary(
        gpa=percentage / 20,
        percentage=percentage,
        recorded_weight=total_weight,
        graded_assessments=len(items),
    )


class GradesService:
    """Grade upserts (with notification fan-out) and GPA lookups."""

    async def compute_gpa(self, db: AsyncSession, student_number: str) -> GpaSummary:
        """GPA for a student number, read fresh from the grade table on every call."""
        stmt = (
            select(Grade.score, Assessment.max_score, Assessment.weight)
            .outerjoin(Assessment, Assessment.id == Grade.assessment_id)
            .where(Grade.student_number == student_number)
        )
        result = await db.execute(stmt)
        return calculate_gpa(
            GradedItem(score=score, max_score=max_score or 0.0, weight=weight or 0.0)
            for score, max_score, weight in result.all()
        )

    async def record_grade(
        self,
        db: AsyncSession,
        broker: NotificationBroker,
        lecturer: User,
        assessment_id: UUID,
        student_number: str,
        score: float,
    ) -> tuple[Grade, bool]:
        """
        Create or update a student's grade on an assessment the lecturer owns.

        Publishes ``grade_created`` after the write commits.

        Returns:
            The grade and whether it was newly created.
        """
        stmt = (
            select(Assessment)
            .join(Subject, Subject.id == Assessment.subject_id)
            .where(Assessment.id == assessment_id, Subject.lecturer_id == lecturer.id)
        )
        assessment = (await db.execute(stmt)).scalar_one_or_none()
        if assessment is None:
            raise NotFoundError("Assessment not found")
        if score > assessment.max_score:
            raise ValidationError(f"Score cannot exceed the maximum of {assessment.max_score:g}.")

        stmt = select(User).where(
            User.student_number == student_number, User.role == UserRole.STUDENT.value
        )
        student = (await db.execute(stmt)).scalar_one_or_none()
        if student is None:
            raise NotFoundError("Student not found")

        stmt = select(Grade).where(
            Grade.assessment_id == assessment.id, Grade.student_id == student.id
        )
        grade = (await db.execute(stmt)).scalar_one_or_none()
        created = grade is None
        if created:
            grade = Grade(
                student_id=student.id,
                assessment_id=assessment.id,
                student_number=student_number,
                score=score,
            )
            db.add(grade)
        else:
            grade.score = score

        await db.commit()
        await db.refresh(grade)

        delivered = await broker.publish_grade_created(student_number)
        logger.info(
            "Grade %s for %s on assessment %s (notified %d subscribers)",
            "created" if created else "updated", student_number, assessment.id, delivered,
        )
        return grade, created


# Singleton instance
grades_service = GradesService()
