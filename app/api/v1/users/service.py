import logging
from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import rbac
from app.auth.models import User
from app.auth.rbac import Action
from app.auth.schemas import CurrentUser
from app.auth.security import hash_password
from app.core.enums import UserRole
from app.core.exceptions import ConflictError, NotFoundError, RestrictedDeleteError, ValidationError
from app.core.models import Enrollment

from .schemas import UserCreate, UserResponse, UserUpdate

logger = logging.getLogger(__name__)


def _to_response(user: User) -> UserResponse:
    return UserResponse.model_validate(user)


def _normalize_cpf(cpf: str) -> str:
    digits = "".join(ch for ch in cpf if ch.isdigit())
    if len(digits) != 11:
        raise ValidationError("CPF must contain 11 digits")
    return digits


async def get_live_user(db: AsyncSession, user_id: UUID) -> User:
    """Non-deleted user or NotFoundError. Shared by every module that references a user."""
    result = await db.execute(select(User).where(User.id == user_id, User.deleted_at.is_(None)))
    user = result.scalar_one_or_none()
    if not user:
        raise NotFoundError("User not found")
    return user


async def get_user_with_role(db: AsyncSession, user_id: UUID, role: UserRole) -> User:
    user = await get_live_user(db, user_id)
    if user.role != role.value:
        raise ValidationError(f"User is not a {role.value}")
    return user


async def _find_duplicate(
    db: AsyncSession,
    email: Optional[str] = None,
    login: Optional[str] = None,
    cpf: Optional[str] = None,
    exclude_user_id: Optional[UUID] = None,
) -> Optional[str]:
    clauses = []
    if email:
        clauses.append(func.lower(User.email) == email.lower())
    if login:
        clauses.append(User.login == login)
    if cpf:
        clauses.append(User.cpf == cpf)
    if not clauses:
        return None
    stmt = select(User).where(User.deleted_at.is_(None), or_(*clauses))
    if exclude_user_id:
        stmt = stmt.where(User.id != exclude_user_id)
    result = await db.execute(stmt.limit(1))
    other = result.scalar_one_or_none()
    if not other:
        return None
    if email and other.email.lower() == email.lower():
        return "email"
    if login and other.login == login:
        return "login"
    return "cpf"


async def create_user(db: AsyncSession, actor: CurrentUser, payload: UserCreate) -> UserResponse:
    """Create an admin, teacher or student. Raises ConflictError on duplicate email, login or CPF."""
    rbac.authorize(actor, Action.USER_MANAGE)
    cpf = _normalize_cpf(payload.cpf)
    email = payload.email.lower()
    login = payload.login.strip()

    duplicate = await _find_duplicate(db, email=email, login=login, cpf=cpf)
    if duplicate:
        raise ConflictError(f"A user with this {duplicate} already exists")

    user = User(
        role=payload.role.value,
        name=payload.name.strip(),
        email=email,
        login=login,
        cpf=cpf,
        rg=payload.rg,
        phone=payload.phone,
        address=payload.address,
        password_hash=hash_password(payload.password),
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("A user with this email, login or CPF already exists")
    await db.refresh(user)
    logger.info("Created %s user %s", user.role, user.id)
    return _to_response(user)


async def list_users(
    db: AsyncSession,
    actor: CurrentUser,
    role: Optional[UserRole] = None,
) -> List[UserResponse]:
    rbac.authorize(actor, Action.USER_MANAGE)
    stmt = select(User).where(User.deleted_at.is_(None))
    if role:
        stmt = stmt.where(User.role == role.value)
    result = await db.execute(stmt.order_by(User.name))
    return [_to_response(u) for u in result.scalars().all()]


async def get_user(db: AsyncSession, actor: CurrentUser, user_id: UUID) -> UserResponse:
    rbac.authorize(actor, Action.USER_MANAGE)
    return _to_response(await get_live_user(db, user_id))


async def update_user(
    db: AsyncSession,
    actor: CurrentUser,
    user_id: UUID,
    payload: UserUpdate,
) -> UserResponse:
    rbac.authorize(actor, Action.USER_MANAGE)
    user = await get_live_user(db, user_id)
    data = payload.model_dump(exclude_unset=True)

    if data.get("email"):
        data["email"] = data["email"].lower()
        if await _find_duplicate(db, email=data["email"], exclude_user_id=user.id):
            raise ConflictError("A user with this email already exists")
    password = data.pop("password", None)
    if password:
        user.password_hash = hash_password(password)
    for key, value in data.items():
        setattr(user, key, value)

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("A user with this email already exists")
    await db.refresh(user)
    return _to_response(user)


async def delete_user(db: AsyncSession, actor: CurrentUser, user_id: UUID) -> None:
    """Soft delete. A student still referenced by a live enrollment cannot be deleted."""
    rbac.authorize(actor, Action.USER_MANAGE)
    user = await get_live_user(db, user_id)

    result = await db.execute(
        select(Enrollment.id)
        .where(Enrollment.student_id == user.id, Enrollment.deleted_at.is_(None))
        .limit(1)
    )
    if result.scalar_one_or_none() is not None:
        raise RestrictedDeleteError("User has enrollments; cancel and remove them first")

    user.deleted_at = datetime.now(timezone.utc)
    await db.commit()
    logger.info("Soft-deleted user %s", user.id)
