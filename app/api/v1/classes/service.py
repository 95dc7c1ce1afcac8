import logging
from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import rbac
from app.auth.models import User
from app.auth.rbac import Action
from app.auth.schemas import CurrentUser
from app.core.enums import UserRole
from app.core.exceptions import ConflictError, NotFoundError, RestrictedDeleteError
from app.core.models import ClassStudent, ClassTeacher, Evaluation, SchoolClass

from app.api.v1.courses import service as course_service
from app.api.v1.users import service as user_service

from .schemas import (
    ClassCreate,
    ClassResponse,
    ClassStudentCreate,
    ClassTeacherCreate,
    ClassTeacherResponse,
    RosterEntry,
)

logger = logging.getLogger(__name__)


async def get_live_class(db: AsyncSession, class_id: UUID) -> SchoolClass:
    result = await db.execute(
        select(SchoolClass).where(SchoolClass.id == class_id, SchoolClass.deleted_at.is_(None))
    )
    obj = result.scalar_one_or_none()
    if not obj:
        raise NotFoundError("Class not found")
    return obj


async def is_on_roster(db: AsyncSession, class_id: UUID, student_id: UUID) -> bool:
    result = await db.execute(
        select(ClassStudent.id).where(ClassStudent.class_id == class_id, ClassStudent.student_id == student_id)
    )
    return result.scalar_one_or_none() is not None


async def create_class(db: AsyncSession, actor: CurrentUser, payload: ClassCreate) -> ClassResponse:
    rbac.authorize(actor, Action.CATALOG_MANAGE)
    await course_service.get_live_course(db, payload.course_id)
    obj = SchoolClass(
        course_id=payload.course_id,
        name=payload.name.strip(),
        semester=payload.semester,
        year=payload.year,
    )
    db.add(obj)
    await db.commit()
    await db.refresh(obj)
    return ClassResponse.model_validate(obj)


async def list_classes(
    db: AsyncSession,
    semester: Optional[int] = None,
    year: Optional[int] = None,
) -> List[ClassResponse]:
    stmt = select(SchoolClass).where(SchoolClass.deleted_at.is_(None))
    if semester is not None:
        stmt = stmt.where(SchoolClass.semester == semester)
    if year is not None:
        stmt = stmt.where(SchoolClass.year == year)
    result = await db.execute(stmt.order_by(SchoolClass.year.desc(), SchoolClass.semester.desc(), SchoolClass.name))
    return [ClassResponse.model_validate(c) for c in result.scalars().all()]


async def delete_class(db: AsyncSession, actor: CurrentUser, class_id: UUID) -> None:
    """Soft delete; blocked while live evaluations exist for the class."""
    rbac.authorize(actor, Action.CATALOG_MANAGE)
    obj = await get_live_class(db, class_id)
    result = await db.execute(
        select(Evaluation.id).where(Evaluation.class_id == obj.id, Evaluation.deleted_at.is_(None)).limit(1)
    )
    if result.scalar_one_or_none() is not None:
        raise RestrictedDeleteError("Class has evaluations and cannot be deleted")
    obj.deleted_at = datetime.now(timezone.utc)
    await db.commit()


# ----- Teacher assignments -----
async def assign_teacher(
    db: AsyncSession,
    actor: CurrentUser,
    class_id: UUID,
    payload: ClassTeacherCreate,
) -> ClassTeacherResponse:
    rbac.authorize(actor, Action.CATALOG_MANAGE)
    await get_live_class(db, class_id)
    await user_service.get_user_with_role(db, payload.teacher_id, UserRole.TEACHER)
    await course_service.get_live_discipline(db, payload.discipline_id)

    assignment = ClassTeacher(class_id=class_id, teacher_id=payload.teacher_id, discipline_id=payload.discipline_id)
    db.add(assignment)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Teacher is already assigned to this discipline in this class")
    await db.refresh(assignment)
    logger.info("Assigned teacher %s to class %s", payload.teacher_id, class_id)
    return ClassTeacherResponse.model_validate(assignment)


async def list_class_teachers(db: AsyncSession, class_id: UUID) -> List[ClassTeacherResponse]:
    await get_live_class(db, class_id)
    result = await db.execute(select(ClassTeacher).where(ClassTeacher.class_id == class_id))
    return [ClassTeacherResponse.model_validate(a) for a in result.scalars().all()]


async def unassign_teacher(db: AsyncSession, actor: CurrentUser, class_id: UUID, assignment_id: UUID) -> None:
    rbac.authorize(actor, Action.CATALOG_MANAGE)
    result = await db.execute(
        select(ClassTeacher).where(ClassTeacher.id == assignment_id, ClassTeacher.class_id == class_id)
    )
    assignment = result.scalar_one_or_none()
    if not assignment:
        raise NotFoundError("Teacher assignment not found")
    await db.delete(assignment)
    await db.commit()


# ----- Roster -----
async def add_student(
    db: AsyncSession,
    actor: CurrentUser,
    class_id: UUID,
    payload: ClassStudentCreate,
) -> RosterEntry:
    rbac.authorize(actor, Action.CATALOG_MANAGE)
    await get_live_class(db, class_id)
    student = await user_service.get_user_with_role(db, payload.student_id, UserRole.STUDENT)

    entry = RosterEntry(student_id=student.id, name=student.name, email=student.email)
    db.add(ClassStudent(class_id=class_id, student_id=student.id))
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Student is already on this class roster")
    return entry


async def remove_student(db: AsyncSession, actor: CurrentUser, class_id: UUID, student_id: UUID) -> None:
    rbac.authorize(actor, Action.CATALOG_MANAGE)
    result = await db.execute(
        select(ClassStudent).where(ClassStudent.class_id == class_id, ClassStudent.student_id == student_id)
    )
    entry = result.scalar_one_or_none()
    if not entry:
        raise NotFoundError("Student is not on this class roster")
    await db.delete(entry)
    await db.commit()


async def get_roster(db: AsyncSession, actor: CurrentUser, class_id: UUID) -> List[RosterEntry]:
    """Admins, or teachers assigned to the class."""
    await get_live_class(db, class_id)
    await rbac.authorize_class_discipline(db, actor, Action.ROSTER_READ, class_id)
    result = await db.execute(
        select(User)
        .join(ClassStudent, ClassStudent.student_id == User.id)
        .where(ClassStudent.class_id == class_id, User.deleted_at.is_(None))
        .order_by(User.name)
    )
    return [RosterEntry(student_id=u.id, name=u.name, email=u.email) for u in result.scalars().all()]
