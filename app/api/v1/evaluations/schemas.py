from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.core.enums import EvaluationKind, GradeConcept


# ----- Evaluation -----
class EvaluationCreate(BaseModel):
    class_id: UUID
    discipline_id: UUID
    teacher_id: Optional[UUID] = Field(None, description="Defaults to the calling teacher")
    name: str = Field(..., min_length=1, max_length=255)
    date: date
    kind: EvaluationKind


class EvaluationResponse(BaseModel):
    id: UUID
    class_id: UUID
    teacher_id: UUID
    discipline_id: UUID
    name: str
    date: date
    kind: EvaluationKind
    created_at: datetime

    class Config:
        from_attributes = True


# ----- Grade -----
class GradeCreate(BaseModel):
    """Exactly one of numeric_value / concept, matching the evaluation kind."""

    student_id: UUID
    numeric_value: Optional[Decimal] = None
    concept: Optional[GradeConcept] = None


class GradeUpdate(BaseModel):
    numeric_value: Optional[Decimal] = None
    concept: Optional[GradeConcept] = None


class GradeResponse(BaseModel):
    id: UUID
    evaluation_id: UUID
    student_id: UUID
    numeric_value: Optional[Decimal] = None
    concept: Optional[GradeConcept] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
