"""Enrollment lifecycle: pending -> active -> cancelled, or pending -> cancelled.

Transitions are conditional UPDATEs on the current status, so two racing
requests cannot both move the same enrollment. The one-open-enrollment rule
is backed by the uq_enrollments_student_open partial unique index.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import rbac
from app.auth.rbac import Action
from app.auth.schemas import CurrentUser
from app.core.enums import OPEN_ENROLLMENT_STATUSES, EnrollmentStatus, UserRole
from app.core.exceptions import ConflictError, InvalidTransitionError, NotFoundError
from app.core.models import Enrollment
from app.core.storage import ArtifactStorage

from app.api.v1.contracts import service as contract_service
from app.api.v1.courses import service as course_service
from app.api.v1.documents import service as document_service
from app.api.v1.users import service as user_service

from .schemas import EnrollmentActivationResponse, EnrollmentCreate, EnrollmentResponse

logger = logging.getLogger(__name__)


def _to_response(enrollment: Enrollment) -> EnrollmentResponse:
    return EnrollmentResponse.model_validate(enrollment)


async def _get_enrollment(db: AsyncSession, enrollment_id: UUID) -> Enrollment:
    result = await db.execute(
        select(Enrollment).where(Enrollment.id == enrollment_id, Enrollment.deleted_at.is_(None))
    )
    enrollment = result.scalar_one_or_none()
    if not enrollment:
        raise NotFoundError("Enrollment not found")
    return enrollment


async def get_open_enrollment(db: AsyncSession, student_id: UUID) -> Optional[Enrollment]:
    result = await db.execute(
        select(Enrollment).where(
            Enrollment.student_id == student_id,
            Enrollment.status.in_(OPEN_ENROLLMENT_STATUSES),
            Enrollment.deleted_at.is_(None),
        )
    )
    return result.scalar_one_or_none()


async def create_enrollment(
    db: AsyncSession,
    actor: CurrentUser,
    payload: EnrollmentCreate,
) -> EnrollmentResponse:
    """Create a pending enrollment. ConflictError if the student already has an open one."""
    rbac.authorize(actor, Action.ENROLLMENT_CREATE)
    student = await user_service.get_user_with_role(db, payload.student_id, UserRole.STUDENT)
    course = await course_service.get_live_course(db, payload.course_id)

    if await get_open_enrollment(db, student.id):
        raise ConflictError("Student already has a pending or active enrollment")

    enrollment = Enrollment(
        student_id=student.id,
        course_id=course.id,
        status=EnrollmentStatus.PENDING.value,
        enrollment_date=datetime.now(timezone.utc),
    )
    db.add(enrollment)
    try:
        await db.commit()
    except IntegrityError:
        # Lost the race against a concurrent create for the same student.
        await db.rollback()
        raise ConflictError("Student already has a pending or active enrollment")
    await db.refresh(enrollment)
    logger.info("Enrollment %s created for student %s (course %s)", enrollment.id, student.id, course.id)
    return _to_response(enrollment)


async def activate_enrollment(db: AsyncSession, actor: CurrentUser, enrollment_id: UUID) -> EnrollmentResponse:
    rbac.authorize(actor, Action.ENROLLMENT_ACTIVATE)
    enrollment = await _get_enrollment(db, enrollment_id)
    current_status = enrollment.status

    result = await db.execute(
        update(Enrollment)
        .where(
            Enrollment.id == enrollment.id,
            Enrollment.status == EnrollmentStatus.PENDING.value,
            Enrollment.deleted_at.is_(None),
        )
        .values(status=EnrollmentStatus.ACTIVE.value, updated_at=datetime.now(timezone.utc))
    )
    if result.rowcount == 0:
        await db.rollback()
        raise InvalidTransitionError(f"Cannot activate an enrollment that is {current_status}")
    await db.commit()
    await db.refresh(enrollment)
    logger.info("Enrollment %s activated", enrollment.id)
    return _to_response(enrollment)


async def cancel_enrollment(
    db: AsyncSession,
    actor: CurrentUser,
    enrollment_id: UUID,
    reason: str,
) -> EnrollmentResponse:
    rbac.authorize(actor, Action.ENROLLMENT_CANCEL)
    enrollment = await _get_enrollment(db, enrollment_id)
    current_status = enrollment.status

    now = datetime.now(timezone.utc)
    result = await db.execute(
        update(Enrollment)
        .where(
            Enrollment.id == enrollment.id,
            Enrollment.status.in_(OPEN_ENROLLMENT_STATUSES),
            Enrollment.deleted_at.is_(None),
        )
        .values(
            status=EnrollmentStatus.CANCELLED.value,
            cancellation_reason=reason.strip(),
            cancelled_at=now,
            updated_at=now,
        )
    )
    if result.rowcount == 0:
        await db.rollback()
        raise InvalidTransitionError(f"Cannot cancel an enrollment that is {current_status}")
    await db.commit()
    await db.refresh(enrollment)
    logger.info("Enrollment %s cancelled", enrollment.id)
    return _to_response(enrollment)


async def activate_and_follow_up(
    db: AsyncSession,
    storage: ArtifactStorage,
    actor: CurrentUser,
    enrollment_id: UUID,
    force: bool = False,
    issue_contract: bool = False,
) -> EnrollmentActivationResponse:
    """
    Activation as offered over HTTP.

    Refuses while required documents are outstanding unless force is set, then
    optionally issues the current semester's contract from the active template.
    """
    rbac.authorize(actor, Action.ENROLLMENT_ACTIVATE)
    enrollment = await _get_enrollment(db, enrollment_id)

    outstanding = await document_service.find_required_outstanding(db, enrollment.student_id)
    names = [t.name for t in outstanding]
    if names and not force:
        raise ConflictError(f"Required documents outstanding: {', '.join(names)}")

    activated = await activate_enrollment(db, actor, enrollment_id)

    contract_id = None
    if issue_contract:
        contract = await contract_service.issue_semester_contract(
            db, storage, actor, enrollment.student_id, enrollment_id=enrollment.id
        )
        contract_id = contract.id
    return EnrollmentActivationResponse(
        enrollment=activated,
        contract_id=contract_id,
        outstanding_document_types=names,
    )


async def list_enrollments(
    db: AsyncSession,
    actor: CurrentUser,
    student_id: Optional[UUID] = None,
    status: Optional[EnrollmentStatus] = None,
) -> List[EnrollmentResponse]:
    """Students only ever see their own enrollments."""
    rbac.authorize(actor, Action.ENROLLMENT_READ)
    scope = rbac.owner_scope(actor)
    stmt = select(Enrollment).where(Enrollment.deleted_at.is_(None))
    if scope is not None:
        stmt = stmt.where(Enrollment.student_id == scope)
    elif student_id is not None:
        stmt = stmt.where(Enrollment.student_id == student_id)
    if status is not None:
        stmt = stmt.where(Enrollment.status == status.value)
    result = await db.execute(stmt.order_by(Enrollment.enrollment_date.desc()))
    return [_to_response(e) for e in result.scalars().all()]


async def get_enrollment(db: AsyncSession, actor: CurrentUser, enrollment_id: UUID) -> EnrollmentResponse:
    enrollment = await _get_enrollment(db, enrollment_id)
    rbac.authorize(actor, Action.ENROLLMENT_READ, owner_id=enrollment.student_id)
    return _to_response(enrollment)
