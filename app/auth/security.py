from datetime import datetime, timedelta, timezone
from typing import Dict, Optional
from uuid import UUID

import bcrypt
from jose import jwt

from app.core.config import settings


def hash_password(plain_password: str) -> str:
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(plain_password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Stored hash is not a bcrypt hash
        return False


def create_access_token(user_id: UUID, role: str, expires_minutes: Optional[int] = None) -> str:
    """
    Signed JWT for a user. The role claim is informational only:
    get_current_user re-reads the role from the users table on every request.
    """
    if expires_minutes is None:
        expires_minutes = settings.access_token_expire_minutes
    claims = {
        "sub": str(user_id),
        "user_id": str(user_id),
        "role": role,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=expires_minutes),
    }
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Dict:
    """Raises jose.JWTError on a bad signature or an expired token."""
    return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
