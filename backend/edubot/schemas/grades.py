"""Grade and GPA schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from edubot.schemas.base import ORMSchema, RowID, RowTimestamps


class GradeCreate(BaseModel):
    """Create or update a student's grade on an assessment."""

    model_config = ConfigDict(str_strip_whitespace=True)

    assessment_id: UUID
    student_number: str = Field(..., min_length=1, max_length=50)
    score: float = Field(..., ge=0)


class GradeRead(ORMSchema, RowID, RowTimestamps):
    """Schema for reading grade data."""

    student_id: UUID
    assessment_id: UUID
    student_number: str
    score: float


class GpaResponse(BaseModel):
    """GPA on a 0-5 scale with the inputs behind it."""

    student_number: str
    gpa: float
    percentage: float
    recorded_weight: float
    graded_assessments: int
    computed_at: datetime
