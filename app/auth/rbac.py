"""Authorization matrix. This module is the only place that branches on UserRole.

Three flat roles: admin may do everything; teacher works on the classes and
disciplines assigned to them; student only touches rows they own.
"""

from enum import Enum
from typing import Dict, FrozenSet, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.schemas import CurrentUser
from app.core.enums import UserRole
from app.core.exceptions import AuthorizationError
from app.core.models import ClassTeacher


class Action(str, Enum):
    ENROLLMENT_CREATE = "enrollment.create"
    ENROLLMENT_ACTIVATE = "enrollment.activate"
    ENROLLMENT_CANCEL = "enrollment.cancel"
    ENROLLMENT_READ = "enrollment.read"
    DOCUMENT_SUBMIT = "document.submit"
    DOCUMENT_REVIEW = "document.review"
    DOCUMENT_READ = "document.read"
    DOCUMENT_DELETE = "document.delete"
    CONTRACT_ISSUE = "contract.issue"
    CONTRACT_ACCEPT = "contract.accept"
    CONTRACT_REGENERATE = "contract.regenerate"
    CONTRACT_READ = "contract.read"
    CONTRACT_RENEW = "contract.renew"
    EVALUATION_CREATE = "evaluation.create"
    EVALUATION_DELETE = "evaluation.delete"
    GRADE_RECORD = "grade.record"
    GRADE_AMEND = "grade.amend"
    GRADE_READ = "grade.read"
    ROSTER_READ = "roster.read"
    REQUEST_CREATE = "request.create"
    REQUEST_REVIEW = "request.review"
    REQUEST_READ = "request.read"
    CATALOG_MANAGE = "catalog.manage"
    USER_MANAGE = "user.manage"


# Admin is allowed every action and is not listed.
_ALLOWED: Dict[UserRole, FrozenSet[Action]] = {
    UserRole.TEACHER: frozenset(
        {
            Action.DOCUMENT_SUBMIT,
            Action.DOCUMENT_READ,
            Action.DOCUMENT_DELETE,
            Action.CONTRACT_ACCEPT,
            Action.CONTRACT_READ,
            Action.EVALUATION_CREATE,
            Action.EVALUATION_DELETE,
            Action.GRADE_RECORD,
            Action.GRADE_AMEND,
            Action.GRADE_READ,
            Action.ROSTER_READ,
        }
    ),
    UserRole.STUDENT: frozenset(
        {
            Action.ENROLLMENT_READ,
            Action.DOCUMENT_SUBMIT,
            Action.DOCUMENT_READ,
            Action.DOCUMENT_DELETE,
            Action.CONTRACT_ACCEPT,
            Action.CONTRACT_READ,
            Action.GRADE_READ,
            Action.REQUEST_CREATE,
            Action.REQUEST_READ,
        }
    ),
}


def is_admin(actor: CurrentUser) -> bool:
    return actor.role is UserRole.ADMIN


def authorize(actor: CurrentUser, action: Action, owner_id: Optional[UUID] = None) -> None:
    """Raise AuthorizationError unless actor may perform action.

    When owner_id is given, non-admins must be that owner.
    """
    if is_admin(actor):
        return
    if action not in _ALLOWED.get(actor.role, frozenset()):
        raise AuthorizationError(f"Role '{actor.role.value}' may not perform {action.value}")
    if owner_id is not None and owner_id != actor.id:
        raise AuthorizationError("You can only act on your own records")


def owner_scope(actor: CurrentUser) -> Optional[UUID]:
    """User id that list queries must be restricted to, or None for unrestricted."""
    if is_admin(actor):
        return None
    return actor.id


async def is_assigned(
    db: AsyncSession,
    teacher_id: UUID,
    class_id: UUID,
    discipline_id: Optional[UUID] = None,
) -> bool:
    stmt = select(ClassTeacher.id).where(
        ClassTeacher.teacher_id == teacher_id,
        ClassTeacher.class_id == class_id,
    )
    if discipline_id is not None:
        stmt = stmt.where(ClassTeacher.discipline_id == discipline_id)
    result = await db.execute(stmt.limit(1))
    return result.scalar_one_or_none() is not None


async def authorize_class_discipline(
    db: AsyncSession,
    actor: CurrentUser,
    action: Action,
    class_id: UUID,
    discipline_id: Optional[UUID] = None,
) -> None:
    """Class-scoped check: admins pass, teachers must be assigned, students never pass."""
    authorize(actor, action)
    if is_admin(actor):
        return
    if actor.role is not UserRole.TEACHER:
        raise AuthorizationError(f"Role '{actor.role.value}' may not perform {action.value}")
    if not await is_assigned(db, actor.id, class_id, discipline_id):
        raise AuthorizationError("Teacher is not assigned to this class/discipline")

