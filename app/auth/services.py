from datetime import datetime, timezone
from typing import Optional

from fastapi import status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User
from app.auth.schemas import LoginRequest, LoginResponse, UserInfo
from app.auth.security import create_access_token, verify_password
from app.core.exceptions import ServiceError


async def login_user(db: AsyncSession, payload: LoginRequest) -> LoginResponse:
    # 1. Find non-deleted user by login or email (case-insensitive)
    stmt = select(User).where(User.deleted_at.is_(None))
    if payload.login:
        stmt = stmt.where(User.login == payload.login.strip())
    else:
        stmt = stmt.where(func.lower(User.email) == func.lower(payload.email.strip()))
    user_result = await db.execute(stmt)
    user: Optional[User] = user_result.scalar_one_or_none()
    if not user:
        raise ServiceError("Invalid credentials", status.HTTP_401_UNAUTHORIZED)

    # 2. Verify password hash
    if not verify_password(payload.password, user.password_hash):
        raise ServiceError("Invalid credentials", status.HTTP_401_UNAUTHORIZED)

    # 3. Issue access token; role claim is informational, dependencies re-read it
    access_token = create_access_token(user.id, user.role)
    return LoginResponse(
        access_token=access_token,
        user=UserInfo(id=user.id, name=user.name, email=user.email, login=user.login, role=user.role),
        issued_at=datetime.now(timezone.utc),
    )
