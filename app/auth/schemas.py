from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from app.core.enums import UserRole


class LoginRequest(BaseModel):
    """Authenticate with either login or email."""

    login: Optional[str] = None
    email: Optional[str] = None
    password: str

    @model_validator(mode="after")
    def validate_identifier(self) -> "LoginRequest":
        if not (self.login or self.email):
            raise ValueError("login or email is required")
        return self


class UserInfo(BaseModel):
    id: UUID
    name: str
    email: str
    login: str
    role: UserRole


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserInfo
    issued_at: datetime


class CurrentUser(BaseModel):
    """Verified (id, role) pair for the request. Every service re-authorizes against it."""

    id: UUID
    role: UserRole
    name: Optional[str] = Field(None, description="Display name, for notifications and logs")
