from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


# ----- Template -----
class ContractTemplateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    body: str = Field(..., min_length=1, description="Text with {{placeholder}} tokens")
    active: bool = True


class ContractTemplateUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    body: Optional[str] = Field(None, min_length=1)
    active: Optional[bool] = None


class ContractTemplateResponse(BaseModel):
    id: UUID
    name: str
    body: str
    active: bool
    placeholders: List[str] = []
    created_at: datetime
    updated_at: datetime


# ----- Contract -----
class ContractIssue(BaseModel):
    """
    Issue a contract for user_id.

    semester/year default to the current academic period and template_id to the
    active template. Without placeholder_values the values are derived from the
    user's record, enrollment and course.
    """

    user_id: UUID
    template_id: Optional[UUID] = None
    semester: Optional[int] = Field(None, ge=1, le=2)
    year: Optional[int] = Field(None, ge=2000, le=2100)
    enrollment_id: Optional[UUID] = None
    placeholder_values: Optional[Dict[str, str]] = None


class ContractRenewalRun(BaseModel):
    """Run contract renewal for an explicit academic period."""

    semester: int = Field(..., ge=1, le=2)
    year: int = Field(..., ge=2000, le=2100)


class ContractRenewalSummary(BaseModel):
    semester: int
    year: int
    issued: int
    skipped: int
    failed: int


class ContractResponse(BaseModel):
    id: UUID
    user_id: UUID
    template_id: UUID
    enrollment_id: Optional[UUID] = None
    storage_ref: str
    file_name: str
    semester: int
    year: int
    accepted_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
