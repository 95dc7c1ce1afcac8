from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.db.session import get_db, run_with_timeout

from . import service
from .schemas import (
    CourseCreate,
    CourseDisciplineCreate,
    CourseDisciplineResponse,
    CourseResponse,
    CourseUpdate,
    DisciplineCreate,
    DisciplineResponse,
)

router = APIRouter(prefix="/api/v1", tags=["courses"])


@router.post("/courses", response_model=CourseResponse, status_code=status.HTTP_201_CREATED)
async def create_course(
    payload: CourseCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> CourseResponse:
    try:
        return await run_with_timeout(db, service.create_course(db, current_user, payload))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/courses", response_model=List[CourseResponse])
async def list_courses(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[CourseResponse]:
    return await service.list_courses(db)


@router.patch("/courses/{course_id}", response_model=CourseResponse)
async def update_course(
    course_id: UUID,
    payload: CourseUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> CourseResponse:
    try:
        return await run_with_timeout(db, service.update_course(db, current_user, course_id, payload))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/courses/{course_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_course(
    course_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> Response:
    try:
        await run_with_timeout(db, service.delete_course(db, current_user, course_id))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/courses/{course_id}/disciplines", response_model=List[CourseDisciplineResponse])
async def list_course_disciplines(
    course_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[CourseDisciplineResponse]:
    try:
        return await service.list_course_disciplines(db, course_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/courses/{course_id}/disciplines",
    response_model=CourseDisciplineResponse,
    status_code=status.HTTP_201_CREATED,
)
async def link_discipline(
    course_id: UUID,
    payload: CourseDisciplineCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> CourseDisciplineResponse:
    try:
        return await run_with_timeout(db, service.link_discipline(db, current_user, course_id, payload))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/courses/{course_id}/disciplines/{link_id}", status_code=status.HTTP_204_NO_CONTENT)
async def unlink_discipline(
    course_id: UUID,
    link_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> Response:
    try:
        await run_with_timeout(db, service.unlink_discipline(db, current_user, course_id, link_id))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/disciplines", response_model=DisciplineResponse, status_code=status.HTTP_201_CREATED)
async def create_discipline(
    payload: DisciplineCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> DisciplineResponse:
    try:
        return await run_with_timeout(db, service.create_discipline(db, current_user, payload))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/disciplines", response_model=List[DisciplineResponse])
async def list_disciplines(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[DisciplineResponse]:
    return await service.list_disciplines(db)


@router.delete("/disciplines/{discipline_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_discipline(
    discipline_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> Response:
    try:
        await run_with_timeout(db, service.delete_discipline(db, current_user, discipline_id))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
