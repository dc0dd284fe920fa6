"""Grade writes (which notify subscribers) and the caller's GPA."""

from fastapi import APIRouter, Response, status

from edubot.api.deps import Broker, CurrentLecturer, CurrentStudent, DbSession
from edubot.db.models import utcnow
from edubot.schemas.grades import GpaResponse, GradeCreate, GradeRead
from edubot.services.grades_service import grades_service

router = APIRouter(prefix="/grades", tags=["grades"])


@router.post("", response_model=GradeRead, status_code=status.HTTP_201_CREATED)
async def record_grade(
    data: GradeCreate,
    response: Response,
    lecturer: CurrentLecturer,
    db: DbSession,
    broker: Broker,
) -> GradeRead:
    """Create or update a grade on one of the lecturer's assessments."""
    grade, created = await grades_service.record_grade(
        db,
        broker,
        lecturer,
        assessment_id=data.assessment_id,
        student_number=data.student_number,
        score=data.score,
    )
    if not created:
        response.status_code = status.HTTP_200_OK
    return GradeRead.model_validate(grade)


@router.get("/gpa", response_model=GpaResponse)
async def get_my_gpa(student: CurrentStudent, db: DbSession) -> GpaResponse:
    """GPA summary for the calling student, computed on request."""
    student_number = student.student_number or student.username
    summary = await grades_service.compute_gpa(db, student_number)
    return GpaResponse(student_number=student_number, computed_at=utcnow(), **summary.to_dict())
