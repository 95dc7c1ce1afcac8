from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.auth import rbac
from app.auth.dependencies import get_current_user
from app.auth.rbac import Action
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.core.storage import ArtifactStorage, get_storage
from app.db.session import get_db, run_with_timeout
from app.jobs import renew_contracts

from . import service
from .schemas import (
    ContractIssue,
    ContractRenewalRun,
    ContractRenewalSummary,
    ContractResponse,
    ContractTemplateCreate,
    ContractTemplateResponse,
    ContractTemplateUpdate,
)

router = APIRouter(prefix="/api/v1", tags=["contracts"])


# ----- Contracts -----
@router.post("/contracts", response_model=ContractResponse, status_code=status.HTTP_201_CREATED)
async def issue_contract(
    payload: ContractIssue,
    db: AsyncSession = Depends(get_db),
    storage: ArtifactStorage = Depends(get_storage),
    current_user: CurrentUser = Depends(get_current_user),
) -> ContractResponse:
    try:
        if payload.placeholder_values is None:
            operation = service.issue_semester_contract(
                db,
                storage,
                current_user,
                payload.user_id,
                semester=payload.semester,
                year=payload.year,
                template_id=payload.template_id,
                enrollment_id=payload.enrollment_id,
            )
        else:
            semester, year = payload.semester, payload.year
            if semester is None or year is None:
                semester, year = service.current_period()
            template = await service.get_template(db, payload.template_id)
            operation = service.issue_contract(
                db,
                storage,
                current_user,
                payload.user_id,
                template.id,
                semester,
                year,
                payload.placeholder_values,
                enrollment_id=payload.enrollment_id,
            )
        return await run_with_timeout(db, operation)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/contracts/renewals", response_model=ContractRenewalSummary)
async def run_contract_renewal(
    payload: ContractRenewalRun,
    db: AsyncSession = Depends(get_db),
    storage: ArtifactStorage = Depends(get_storage),
    current_user: CurrentUser = Depends(get_current_user),
) -> ContractRenewalSummary:
    """Issue missing contracts for a chosen period (re-enrollment). Admin only."""
    try:
        rbac.authorize(current_user, Action.CONTRACT_RENEW)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    # Each contract is issued in its own session on the request's engine.
    session_factory = async_sessionmaker(bind=db.bind, class_=AsyncSession, expire_on_commit=False)
    summary = await renew_contracts(
        datetime.now(timezone.utc),
        session_factory=session_factory,
        storage=storage,
        semester=payload.semester,
        year=payload.year,
    )
    return ContractRenewalSummary(semester=payload.semester, year=payload.year, **summary)


@router.get("/contracts", response_model=List[ContractResponse])
async def list_contracts(
    user_id: Optional[UUID] = None,
    pending_only: bool = False,
    semester: Optional[int] = None,
    year: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[ContractResponse]:
    try:
        return await service.list_contracts(
            db, current_user, user_id=user_id, pending_only=pending_only, semester=semester, year=year
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/contracts/{contract_id}", response_model=ContractResponse)
async def get_contract(
    contract_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> ContractResponse:
    try:
        return await service.get_contract(db, current_user, contract_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/contracts/{contract_id}/file")
async def download_contract(
    contract_id: UUID,
    db: AsyncSession = Depends(get_db),
    storage: ArtifactStorage = Depends(get_storage),
    current_user: CurrentUser = Depends(get_current_user),
) -> Response:
    try:
        data, file_name = await service.get_contract_file(db, storage, current_user, contract_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return Response(
        content=data,
        media_type="text/html",
        headers={"Content-Disposition": f'inline; filename="{file_name}"'},
    )


@router.post("/contracts/{contract_id}/accept", response_model=ContractResponse)
async def accept_contract(
    contract_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> ContractResponse:
    try:
        return await run_with_timeout(db, service.accept_contract(db, current_user, contract_id))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/contracts/{contract_id}/regenerate", response_model=ContractResponse)
async def regenerate_contract_artifact(
    contract_id: UUID,
    db: AsyncSession = Depends(get_db),
    storage: ArtifactStorage = Depends(get_storage),
    current_user: CurrentUser = Depends(get_current_user),
) -> ContractResponse:
    try:
        return await run_with_timeout(db, service.regenerate_artifact(db, storage, current_user, contract_id))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# ----- Templates -----
@router.post(
    "/contract-templates",
    response_model=ContractTemplateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_template(
    payload: ContractTemplateCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> ContractTemplateResponse:
    try:
        return await run_with_timeout(db, service.create_template(db, current_user, payload))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/contract-templates", response_model=List[ContractTemplateResponse])
async def list_templates(
    active_only: bool = False,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[ContractTemplateResponse]:
    try:
        return await service.list_templates(db, current_user, active_only=active_only)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.patch("/contract-templates/{template_id}", response_model=ContractTemplateResponse)
async def update_template(
    template_id: UUID,
    payload: ContractTemplateUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> ContractTemplateResponse:
    try:
        return await run_with_timeout(db, service.update_template(db, current_user, template_id, payload))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/contract-templates/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_template(
    template_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> Response:
    try:
        await run_with_timeout(db, service.delete_template(db, current_user, template_id))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
