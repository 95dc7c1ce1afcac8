from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.core.enums import EnrollmentStatus


class EnrollmentCreate(BaseModel):
    student_id: UUID
    course_id: UUID


class EnrollmentCancel(BaseModel):
    reason: str = Field(..., min_length=1, description="Why the enrollment is being cancelled or rejected")


class EnrollmentResponse(BaseModel):
    id: UUID
    student_id: UUID
    course_id: UUID
    status: EnrollmentStatus
    enrollment_date: datetime
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class EnrollmentActivationResponse(BaseModel):
    """Activation result; contract_id is set when a semester contract was issued alongside."""

    enrollment: EnrollmentResponse
    contract_id: Optional[UUID] = None
    outstanding_document_types: List[str] = []
