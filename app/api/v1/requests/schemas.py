from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.core.enums import ReviewDecision, ReviewStatus


# ----- Request type -----
class RequestTypeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    response_deadline_days: int = Field(5, ge=1)
    active: bool = True


class RequestTypeResponse(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    response_deadline_days: int
    active: bool

    class Config:
        from_attributes = True


# ----- Request -----
class RequestCreate(BaseModel):
    request_type_id: UUID
    description: str = Field(..., min_length=1)
    student_id: Optional[UUID] = Field(None, description="Admins may open a request for a student")


class RequestReview(BaseModel):
    decision: ReviewDecision
    notes: Optional[str] = None


class RequestResponse(BaseModel):
    id: UUID
    student_id: UUID
    request_type_id: UUID
    description: str
    status: ReviewStatus
    reviewed_by: Optional[UUID] = None
    reviewed_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True
