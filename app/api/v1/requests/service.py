"""Student requests follow the same pending -> approved | rejected review as documents."""

import logging
from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import rbac
from app.auth.models import User
from app.auth.rbac import Action
from app.auth.schemas import CurrentUser
from app.core.email import dispatch_notification, notify_request_reviewed
from app.core.enums import ReviewDecision, ReviewStatus, UserRole
from app.core.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from app.core.models import Request, RequestType

from app.api.v1.users import service as user_service

from .schemas import RequestCreate, RequestResponse, RequestTypeCreate, RequestTypeResponse

logger = logging.getLogger(__name__)


async def _get_request(db: AsyncSession, request_id: UUID) -> Request:
    result = await db.execute(select(Request).where(Request.id == request_id, Request.deleted_at.is_(None)))
    obj = result.scalar_one_or_none()
    if not obj:
        raise NotFoundError("Request not found")
    return obj


async def create_request(db: AsyncSession, actor: CurrentUser, payload: RequestCreate) -> RequestResponse:
    student_id = payload.student_id or actor.id
    rbac.authorize(actor, Action.REQUEST_CREATE, owner_id=student_id)
    await user_service.get_user_with_role(db, student_id, UserRole.STUDENT)
    if not payload.description.strip():
        raise ValidationError("description cannot be blank")

    result = await db.execute(
        select(RequestType).where(
            RequestType.id == payload.request_type_id,
            RequestType.active.is_(True),
            RequestType.deleted_at.is_(None),
        )
    )
    request_type = result.scalar_one_or_none()
    if not request_type:
        raise NotFoundError("Request type not found or inactive")

    obj = Request(
        student_id=student_id,
        request_type_id=request_type.id,
        description=payload.description.strip(),
        status=ReviewStatus.PENDING.value,
    )
    db.add(obj)
    await db.commit()
    await db.refresh(obj)
    logger.info("Request %s opened by %s", obj.id, student_id)
    return RequestResponse.model_validate(obj)


async def review_request(
    db: AsyncSession,
    actor: CurrentUser,
    request_id: UUID,
    decision: ReviewDecision,
    notes: Optional[str] = None,
) -> RequestResponse:
    rbac.authorize(actor, Action.REQUEST_REVIEW)
    obj = await _get_request(db, request_id)
    if obj.status != ReviewStatus.PENDING.value:
        raise InvalidTransitionError("Request was already reviewed")
    if decision is ReviewDecision.REJECTED and not (notes and notes.strip()):
        raise ValidationError("A rejection reason is required")
    student = await db.get(User, obj.student_id)
    request_type = await db.get(RequestType, obj.request_type_id)

    now = datetime.now(timezone.utc)
    result = await db.execute(
        update(Request)
        .where(
            Request.id == obj.id,
            Request.status == ReviewStatus.PENDING.value,
            Request.deleted_at.is_(None),
        )
        .values(status=decision.value, reviewed_by=actor.id, reviewed_at=now, notes=notes, updated_at=now)
    )
    if result.rowcount == 0:
        await db.rollback()
        raise InvalidTransitionError("Request was already reviewed")
    await db.commit()
    await db.refresh(obj)
    logger.info("Request %s %s by %s", obj.id, decision.value, actor.id)

    if student:
        dispatch_notification(
            notify_request_reviewed(
                to_email=student.email,
                user_name=student.name,
                request_type_name=request_type.name if request_type else "request",
                decision=decision.value,
            ),
            name=f"request-reviewed-{obj.id}",
        )
    return RequestResponse.model_validate(obj)


async def list_requests(
    db: AsyncSession,
    actor: CurrentUser,
    status: Optional[ReviewStatus] = None,
) -> List[RequestResponse]:
    rbac.authorize(actor, Action.REQUEST_READ)
    scope = rbac.owner_scope(actor)
    stmt = select(Request).where(Request.deleted_at.is_(None))
    if scope is not None:
        stmt = stmt.where(Request.student_id == scope)
    if status is not None:
        stmt = stmt.where(Request.status == status.value)
    result = await db.execute(stmt.order_by(Request.created_at.desc()))
    return [RequestResponse.model_validate(r) for r in result.scalars().all()]


# ----- Request types -----
async def create_request_type(
    db: AsyncSession,
    actor: CurrentUser,
    payload: RequestTypeCreate,
) -> RequestTypeResponse:
    rbac.authorize(actor, Action.CATALOG_MANAGE)
    obj = RequestType(
        name=payload.name.strip(),
        description=payload.description,
        response_deadline_days=payload.response_deadline_days,
        active=payload.active,
    )
    db.add(obj)
    await db.commit()
    await db.refresh(obj)
    return RequestTypeResponse.model_validate(obj)


async def list_request_types(db: AsyncSession, active_only: bool = True) -> List[RequestTypeResponse]:
    stmt = select(RequestType).where(RequestType.deleted_at.is_(None))
    if active_only:
        stmt = stmt.where(RequestType.active.is_(True))
    result = await db.execute(stmt.order_by(RequestType.name))
    return [RequestTypeResponse.model_validate(t) for t in result.scalars().all()]
