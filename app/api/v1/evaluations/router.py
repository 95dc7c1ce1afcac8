from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.db.session import get_db, run_with_timeout

from . import service
from .schemas import EvaluationCreate, EvaluationResponse, GradeCreate, GradeResponse, GradeUpdate

router = APIRouter(prefix="/api/v1", tags=["evaluations"])


@router.post("/evaluations", response_model=EvaluationResponse, status_code=status.HTTP_201_CREATED)
async def create_evaluation(
    payload: EvaluationCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> EvaluationResponse:
    try:
        return await run_with_timeout(db, service.create_evaluation(db, current_user, payload))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/classes/{class_id}/evaluations", response_model=List[EvaluationResponse])
async def list_class_evaluations(
    class_id: UUID,
    discipline_id: Optional[UUID] = None,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[EvaluationResponse]:
    try:
        return await service.list_class_evaluations(db, current_user, class_id, discipline_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/evaluations/{evaluation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_evaluation(
    evaluation_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> Response:
    try:
        await run_with_timeout(db, service.delete_evaluation(db, current_user, evaluation_id))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/evaluations/{evaluation_id}/grades",
    response_model=GradeResponse,
    status_code=status.HTTP_201_CREATED,
)
async def record_grade(
    evaluation_id: UUID,
    payload: GradeCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> GradeResponse:
    try:
        return await run_with_timeout(
            db,
            service.record_grade(
                db,
                current_user,
                evaluation_id,
                payload.student_id,
                numeric_value=payload.numeric_value,
                concept=payload.concept,
            ),
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/evaluations/{evaluation_id}/grades", response_model=List[GradeResponse])
async def list_evaluation_grades(
    evaluation_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[GradeResponse]:
    try:
        return await service.list_evaluation_grades(db, current_user, evaluation_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.patch("/grades/{grade_id}", response_model=GradeResponse)
async def amend_grade(
    grade_id: UUID,
    payload: GradeUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> GradeResponse:
    try:
        return await run_with_timeout(
            db,
            service.amend_grade(
                db, current_user, grade_id, numeric_value=payload.numeric_value, concept=payload.concept
            ),
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/students/{student_id}/grades", response_model=List[GradeResponse])
async def list_student_grades(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[GradeResponse]:
    try:
        return await service.list_student_grades(db, current_user, student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
