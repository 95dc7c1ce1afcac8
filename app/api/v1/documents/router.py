from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, HTTPException, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser
from app.core.config import settings
from app.core.enums import DocumentAppliesTo, ReviewStatus
from app.core.exceptions import ServiceError
from app.core.storage import ArtifactStorage, get_storage
from app.db.session import get_db, run_with_timeout

from . import service
from .schemas import (
    DocumentResponse,
    DocumentReview,
    DocumentTypeCreate,
    DocumentTypeResponse,
    DocumentTypeUpdate,
)

router = APIRouter(prefix="/api/v1", tags=["documents"])


# ----- Documents -----
@router.post("/documents", response_model=DocumentResponse, status_code=status.HTTP_201_CREATED)
async def upload_document(
    document_type_id: UUID = Form(...),
    owner_id: Optional[UUID] = Form(None, description="Admins may upload on behalf of a user"),
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    storage: ArtifactStorage = Depends(get_storage),
    current_user: CurrentUser = Depends(get_current_user),
) -> DocumentResponse:
    # Read one byte past the limit so an oversized file is rejected without buffering all of it.
    data = await file.read(settings.max_upload_bytes + 1)
    try:
        return await run_with_timeout(
            db,
            service.upload_document(
                db,
                storage,
                current_user,
                owner_id or current_user.id,
                document_type_id,
                data=data,
                mime_type=file.content_type or "",
                file_name=file.filename,
            ),
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/documents", response_model=List[DocumentResponse])
async def list_documents(
    user_id: Optional[UUID] = None,
    document_status: Optional[ReviewStatus] = None,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[DocumentResponse]:
    try:
        return await service.list_documents(db, current_user, user_id=user_id, status=document_status)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/documents/outstanding", response_model=List[DocumentTypeResponse])
async def my_outstanding_documents(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[DocumentTypeResponse]:
    """Required document types the current user still has to get approved."""
    try:
        return await service.find_required_outstanding(db, current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/documents/{document_id}/file")
async def download_document(
    document_id: UUID,
    db: AsyncSession = Depends(get_db),
    storage: ArtifactStorage = Depends(get_storage),
    current_user: CurrentUser = Depends(get_current_user),
) -> Response:
    try:
        data, mime_type, file_name = await service.get_document_file(db, storage, current_user, document_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    headers = {"Content-Disposition": f'attachment; filename="{file_name or document_id}"'}
    return Response(content=data, media_type=mime_type, headers=headers)


@router.post("/documents/{document_id}/review", response_model=DocumentResponse)
async def review_document(
    document_id: UUID,
    payload: DocumentReview,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> DocumentResponse:
    try:
        return await run_with_timeout(
            db, service.review_document(db, current_user, document_id, payload.decision, payload.notes)
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/documents/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document(
    document_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> Response:
    try:
        await run_with_timeout(db, service.delete_document(db, current_user, document_id))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ----- Document types -----
@router.post("/document-types", response_model=DocumentTypeResponse, status_code=status.HTTP_201_CREATED)
async def create_document_type(
    payload: DocumentTypeCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> DocumentTypeResponse:
    try:
        return await run_with_timeout(db, service.create_document_type(db, current_user, payload))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/document-types", response_model=List[DocumentTypeResponse])
async def list_document_types(
    applies_to: Optional[DocumentAppliesTo] = None,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[DocumentTypeResponse]:
    return await service.list_document_types(db, applies_to)


@router.patch("/document-types/{document_type_id}", response_model=DocumentTypeResponse)
async def update_document_type(
    document_type_id: UUID,
    payload: DocumentTypeUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> DocumentTypeResponse:
    try:
        return await run_with_timeout(
            db, service.update_document_type(db, current_user, document_type_id, payload)
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/document-types/{document_type_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document_type(
    document_type_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> Response:
    try:
        await run_with_timeout(db, service.delete_document_type(db, current_user, document_type_id))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
