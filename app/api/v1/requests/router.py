from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser
from app.core.enums import ReviewStatus
from app.core.exceptions import ServiceError
from app.db.session import get_db, run_with_timeout

from . import service
from .schemas import RequestCreate, RequestResponse, RequestReview, RequestTypeCreate, RequestTypeResponse

router = APIRouter(prefix="/api/v1", tags=["requests"])


@router.post("/requests", response_model=RequestResponse, status_code=status.HTTP_201_CREATED)
async def create_request(
    payload: RequestCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> RequestResponse:
    try:
        return await run_with_timeout(db, service.create_request(db, current_user, payload))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/requests", response_model=List[RequestResponse])
async def list_requests(
    request_status: Optional[ReviewStatus] = None,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[RequestResponse]:
    try:
        return await service.list_requests(db, current_user, request_status)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/requests/{request_id}/review", response_model=RequestResponse)
async def review_request(
    request_id: UUID,
    payload: RequestReview,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> RequestResponse:
    try:
        return await run_with_timeout(
            db, service.review_request(db, current_user, request_id, payload.decision, payload.notes)
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/request-types", response_model=RequestTypeResponse, status_code=status.HTTP_201_CREATED)
async def create_request_type(
    payload: RequestTypeCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> RequestTypeResponse:
    try:
        return await run_with_timeout(db, service.create_request_type(db, current_user, payload))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/request-types", response_model=List[RequestTypeResponse])
async def list_request_types(
    active_only: bool = True,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[RequestTypeResponse]:
    return await service.list_request_types(db, active_only)
