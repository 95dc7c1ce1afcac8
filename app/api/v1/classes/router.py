from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.db.session import get_db, run_with_timeout

from . import service
from .schemas import (
    ClassCreate,
    ClassResponse,
    ClassStudentCreate,
    ClassTeacherCreate,
    ClassTeacherResponse,
    RosterEntry,
)

router = APIRouter(prefix="/api/v1/classes", tags=["classes"])


@router.post("", response_model=ClassResponse, status_code=status.HTTP_201_CREATED)
async def create_class(
    payload: ClassCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> ClassResponse:
    try:
        return await run_with_timeout(db, service.create_class(db, current_user, payload))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("", response_model=List[ClassResponse])
async def list_classes(
    semester: Optional[int] = None,
    year: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[ClassResponse]:
    return await service.list_classes(db, semester=semester, year=year)


@router.delete("/{class_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_class(
    class_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> Response:
    try:
        await run_with_timeout(db, service.delete_class(db, current_user, class_id))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{class_id}/teachers", response_model=List[ClassTeacherResponse])
async def list_class_teachers(
    class_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[ClassTeacherResponse]:
    try:
        return await service.list_class_teachers(db, class_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{class_id}/teachers", response_model=ClassTeacherResponse, status_code=status.HTTP_201_CREATED)
async def assign_teacher(
    class_id: UUID,
    payload: ClassTeacherCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> ClassTeacherResponse:
    try:
        return await run_with_timeout(db, service.assign_teacher(db, current_user, class_id, payload))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/{class_id}/teachers/{assignment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def unassign_teacher(
    class_id: UUID,
    assignment_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> Response:
    try:
        await run_with_timeout(db, service.unassign_teacher(db, current_user, class_id, assignment_id))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{class_id}/students", response_model=List[RosterEntry])
async def get_roster(
    class_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[RosterEntry]:
    try:
        return await service.get_roster(db, current_user, class_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{class_id}/students", response_model=RosterEntry, status_code=status.HTTP_201_CREATED)
async def add_student(
    class_id: UUID,
    payload: ClassStudentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> RosterEntry:
    try:
        return await run_with_timeout(db, service.add_student(db, current_user, class_id, payload))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/{class_id}/students/{student_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_student(
    class_id: UUID,
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> Response:
    try:
        await run_with_timeout(db, service.remove_student(db, current_user, class_id, student_id))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
