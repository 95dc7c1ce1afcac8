from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class ClassCreate(BaseModel):
    course_id: UUID
    name: str = Field(..., min_length=1, max_length=100)
    semester: int = Field(..., ge=1, le=2)
    year: int = Field(..., ge=2000, le=2100)


class ClassResponse(BaseModel):
    id: UUID
    course_id: UUID
    name: str
    semester: int
    year: int
    created_at: datetime

    class Config:
        from_attributes = True


class ClassTeacherCreate(BaseModel):
    teacher_id: UUID
    discipline_id: UUID


class ClassTeacherResponse(BaseModel):
    id: UUID
    class_id: UUID
    teacher_id: UUID
    discipline_id: UUID

    class Config:
        from_attributes = True


class ClassStudentCreate(BaseModel):
    student_id: UUID


class RosterEntry(BaseModel):
    student_id: UUID
    name: str
    email: Optional[str] = None
