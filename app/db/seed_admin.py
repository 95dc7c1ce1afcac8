"""
Seed script to create the first admin user.

Run once after the tables exist, with env set:
  ADMIN_EMAIL=secretaria@example.com
  ADMIN_PASSWORD=YourSecurePassword

Creates users row with role admin (login "admin") if no live admin exists.
Further users are created through POST /api/v1/users.
"""
import asyncio
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User
from app.auth.security import hash_password
from app.core.config import settings
from app.core.enums import UserRole
from app.db.session import AsyncSessionLocal

logger = logging.getLogger(__name__)

DEFAULT_ADMIN_LOGIN = "admin"
DEFAULT_ADMIN_NAME = "Administrador"
# Placeholder CPF for the bootstrap account; edit it through the users API.
DEFAULT_ADMIN_CPF = "00000000000"


async def seed_admin(
    db: AsyncSession,
    email: Optional[str] = None,
    password: Optional[str] = None,
) -> Optional[User]:
    """Create the bootstrap admin. Returns None when one already exists or no credentials are set."""
    email = email or settings.admin_email
    password = password or settings.admin_password
    if not email or not password:
        logger.warning("ADMIN_EMAIL / ADMIN_PASSWORD not set; skipping admin seed")
        return None

    result = await db.execute(
        select(User).where(User.role == UserRole.ADMIN.value, User.deleted_at.is_(None)).limit(1)
    )
    if result.scalar_one_or_none() is not None:
        logger.info("An admin user already exists; nothing to seed")
        return None

    admin = User(
        role=UserRole.ADMIN.value,
        name=DEFAULT_ADMIN_NAME,
        email=email.lower(),
        login=DEFAULT_ADMIN_LOGIN,
        cpf=DEFAULT_ADMIN_CPF,
        password_hash=hash_password(password),
    )
    db.add(admin)
    await db.commit()
    await db.refresh(admin)
    logger.info("Created admin user %s", admin.email)
    return admin


async def main() -> None:
    async with AsyncSessionLocal() as db:
        try:
            await seed_admin(db)
        except Exception:
            await db.rollback()
            raise


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
