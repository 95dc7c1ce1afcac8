from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


# ----- Course -----
class CourseCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    duration_semesters: Optional[int] = Field(None, ge=1)


class CourseUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    duration_semesters: Optional[int] = Field(None, ge=1)


class CourseResponse(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    duration_semesters: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# ----- Discipline -----
class DisciplineCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    code: Optional[str] = Field(None, max_length=20)
    workload_hours: Optional[int] = Field(None, ge=0)


class DisciplineResponse(BaseModel):
    id: UUID
    name: str
    code: Optional[str] = None
    workload_hours: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True


# ----- Course <-> Discipline -----
class CourseDisciplineCreate(BaseModel):
    discipline_id: UUID
    semester: int = Field(..., ge=1, description="Curriculum semester the discipline belongs to")


class CourseDisciplineResponse(BaseModel):
    id: UUID
    course_id: UUID
    discipline_id: UUID
    semester: int

    class Config:
        from_attributes = True
