import logging
from datetime import datetime, timezone
from typing import List
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import rbac
from app.auth.rbac import Action
from app.auth.schemas import CurrentUser
from app.core.exceptions import ConflictError, NotFoundError, RestrictedDeleteError
from app.core.models import Course, CourseDiscipline, Discipline, Enrollment, SchoolClass

from .schemas import (
    CourseCreate,
    CourseDisciplineCreate,
    CourseDisciplineResponse,
    CourseResponse,
    CourseUpdate,
    DisciplineCreate,
    DisciplineResponse,
)

logger = logging.getLogger(__name__)


async def get_live_course(db: AsyncSession, course_id: UUID) -> Course:
    result = await db.execute(select(Course).where(Course.id == course_id, Course.deleted_at.is_(None)))
    course = result.scalar_one_or_none()
    if not course:
        raise NotFoundError("Course not found")
    return course


async def get_live_discipline(db: AsyncSession, discipline_id: UUID) -> Discipline:
    result = await db.execute(
        select(Discipline).where(Discipline.id == discipline_id, Discipline.deleted_at.is_(None))
    )
    discipline = result.scalar_one_or_none()
    if not discipline:
        raise NotFoundError("Discipline not found")
    return discipline


# ----- Course -----
async def create_course(db: AsyncSession, actor: CurrentUser, payload: CourseCreate) -> CourseResponse:
    rbac.authorize(actor, Action.CATALOG_MANAGE)
    course = Course(
        name=payload.name.strip(),
        description=payload.description,
        duration_semesters=payload.duration_semesters,
    )
    db.add(course)
    await db.commit()
    await db.refresh(course)
    return CourseResponse.model_validate(course)


async def list_courses(db: AsyncSession) -> List[CourseResponse]:
    result = await db.execute(select(Course).where(Course.deleted_at.is_(None)).order_by(Course.name))
    return [CourseResponse.model_validate(c) for c in result.scalars().all()]


async def update_course(
    db: AsyncSession,
    actor: CurrentUser,
    course_id: UUID,
    payload: CourseUpdate,
) -> CourseResponse:
    rbac.authorize(actor, Action.CATALOG_MANAGE)
    course = await get_live_course(db, course_id)
    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(course, key, value)
    await db.commit()
    await db.refresh(course)
    return CourseResponse.model_validate(course)


async def delete_course(db: AsyncSession, actor: CurrentUser, course_id: UUID) -> None:
    """Soft delete. Rejected while any live enrollment or class still points at the course."""
    rbac.authorize(actor, Action.CATALOG_MANAGE)
    course = await get_live_course(db, course_id)

    enrollment = await db.execute(
        select(Enrollment.id).where(Enrollment.course_id == course.id, Enrollment.deleted_at.is_(None)).limit(1)
    )
    if enrollment.scalar_one_or_none() is not None:
        raise RestrictedDeleteError("Course has enrollments and cannot be deleted")
    school_class = await db.execute(
        select(SchoolClass.id).where(SchoolClass.course_id == course.id, SchoolClass.deleted_at.is_(None)).limit(1)
    )
    if school_class.scalar_one_or_none() is not None:
        raise RestrictedDeleteError("Course has classes and cannot be deleted")

    course.deleted_at = datetime.now(timezone.utc)
    await db.commit()
    logger.info("Soft-deleted course %s", course.id)


# ----- Discipline -----
async def create_discipline(
    db: AsyncSession,
    actor: CurrentUser,
    payload: DisciplineCreate,
) -> DisciplineResponse:
    rbac.authorize(actor, Action.CATALOG_MANAGE)
    discipline = Discipline(
        name=payload.name.strip(),
        code=payload.code,
        workload_hours=payload.workload_hours,
    )
    db.add(discipline)
    await db.commit()
    await db.refresh(discipline)
    return DisciplineResponse.model_validate(discipline)


async def list_disciplines(db: AsyncSession) -> List[DisciplineResponse]:
    result = await db.execute(
        select(Discipline).where(Discipline.deleted_at.is_(None)).order_by(Discipline.name)
    )
    return [DisciplineResponse.model_validate(d) for d in result.scalars().all()]


async def delete_discipline(db: AsyncSession, actor: CurrentUser, discipline_id: UUID) -> None:
    rbac.authorize(actor, Action.CATALOG_MANAGE)
    discipline = await get_live_discipline(db, discipline_id)
    discipline.deleted_at = datetime.now(timezone.utc)
    await db.commit()


# ----- Course <-> Discipline -----
async def link_discipline(
    db: AsyncSession,
    actor: CurrentUser,
    course_id: UUID,
    payload: CourseDisciplineCreate,
) -> CourseDisciplineResponse:
    rbac.authorize(actor, Action.CATALOG_MANAGE)
    await get_live_course(db, course_id)
    await get_live_discipline(db, payload.discipline_id)
    link = CourseDiscipline(course_id=course_id, discipline_id=payload.discipline_id, semester=payload.semester)
    db.add(link)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Discipline is already linked to this course for that semester")
    await db.refresh(link)
    return CourseDisciplineResponse.model_validate(link)


async def list_course_disciplines(db: AsyncSession, course_id: UUID) -> List[CourseDisciplineResponse]:
    await get_live_course(db, course_id)
    result = await db.execute(
        select(CourseDiscipline)
        .where(CourseDiscipline.course_id == course_id)
        .order_by(CourseDiscipline.semester)
    )
    return [CourseDisciplineResponse.model_validate(link) for link in result.scalars().all()]


async def unlink_discipline(db: AsyncSession, actor: CurrentUser, course_id: UUID, link_id: UUID) -> None:
    """Join rows are removed outright."""
    rbac.authorize(actor, Action.CATALOG_MANAGE)
    result = await db.execute(
        select(CourseDiscipline).where(CourseDiscipline.id == link_id, CourseDiscipline.course_id == course_id)
    )
    link = result.scalar_one_or_none()
    if not link:
        raise NotFoundError("Course discipline link not found")
    await db.delete(link)
    await db.commit()
