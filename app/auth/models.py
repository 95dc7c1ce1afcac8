import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, Index, String, Text, text
from sqlalchemy.dialects.postgresql import UUID

from app.db.session import Base


_NOT_DELETED = text("deleted_at IS NULL")


class User(Base):
    """Admin, teacher or student. Identity fields are unique among non-deleted users."""

    __tablename__ = "users"
    __table_args__ = (
        Index("uq_users_email_live", "email", unique=True, postgresql_where=_NOT_DELETED, sqlite_where=_NOT_DELETED),
        Index("uq_users_login_live", "login", unique=True, postgresql_where=_NOT_DELETED, sqlite_where=_NOT_DELETED),
        Index("uq_users_cpf_live", "cpf", unique=True, postgresql_where=_NOT_DELETED, sqlite_where=_NOT_DELETED),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    # admin | teacher | student (see app.core.enums.UserRole)
    role = Column(String(20), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    login = Column(String(100), nullable=False)
    cpf = Column(String(14), nullable=False)
    rg = Column(String(20), nullable=True)
    phone = Column(String(20), nullable=True)
    address = Column(Text, nullable=True)
    password_hash = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
