from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser
from app.core.enums import EnrollmentStatus
from app.core.exceptions import ServiceError
from app.core.storage import ArtifactStorage, get_storage
from app.db.session import get_db, run_with_timeout

from . import service
from .schemas import EnrollmentActivationResponse, EnrollmentCancel, EnrollmentCreate, EnrollmentResponse

router = APIRouter(prefix="/api/v1/enrollments", tags=["enrollments"])


@router.post("", response_model=EnrollmentResponse, status_code=status.HTTP_201_CREATED)
async def create_enrollment(
    payload: EnrollmentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> EnrollmentResponse:
    try:
        return await run_with_timeout(db, service.create_enrollment(db, current_user, payload))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("", response_model=List[EnrollmentResponse])
async def list_enrollments(
    student_id: Optional[UUID] = None,
    enrollment_status: Optional[EnrollmentStatus] = None,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[EnrollmentResponse]:
    try:
        return await service.list_enrollments(db, current_user, student_id=student_id, status=enrollment_status)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/{enrollment_id}", response_model=EnrollmentResponse)
async def get_enrollment(
    enrollment_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> EnrollmentResponse:
    try:
        return await service.get_enrollment(db, current_user, enrollment_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{enrollment_id}/activate", response_model=EnrollmentActivationResponse)
async def activate_enrollment(
    enrollment_id: UUID,
    force: bool = False,
    issue_contract: bool = False,
    db: AsyncSession = Depends(get_db),
    storage: ArtifactStorage = Depends(get_storage),
    current_user: CurrentUser = Depends(get_current_user),
) -> EnrollmentActivationResponse:
    """Activate a pending enrollment. Blocked by outstanding required documents unless force=true."""
    try:
        return await run_with_timeout(
            db,
            service.activate_and_follow_up(
                db, storage, current_user, enrollment_id, force=force, issue_contract=issue_contract
            ),
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{enrollment_id}/cancel", response_model=EnrollmentResponse)
async def cancel_enrollment(
    enrollment_id: UUID,
    payload: EnrollmentCancel,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> EnrollmentResponse:
    try:
        return await run_with_timeout(db, service.cancel_enrollment(db, current_user, enrollment_id, payload.reason))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
