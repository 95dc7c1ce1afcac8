from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.core.enums import DocumentAppliesTo, ReviewDecision, ReviewStatus


# ----- Document type -----
class DocumentTypeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    applies_to: DocumentAppliesTo
    required: bool = True


class DocumentTypeUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    applies_to: Optional[DocumentAppliesTo] = None
    required: Optional[bool] = None


class DocumentTypeResponse(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    applies_to: DocumentAppliesTo
    required: bool

    class Config:
        from_attributes = True


# ----- Document -----
class DocumentReview(BaseModel):
    decision: ReviewDecision
    notes: Optional[str] = Field(None, description="Required when rejecting")


class DocumentResponse(BaseModel):
    id: UUID
    user_id: UUID
    document_type_id: UUID
    storage_ref: str
    file_name: Optional[str] = None
    size: int
    mime_type: str
    status: ReviewStatus
    reviewed_by: Optional[UUID] = None
    reviewed_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True
