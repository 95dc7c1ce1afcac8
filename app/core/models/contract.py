"""Contract templates and issued contracts. A contract is issued once per (user, semester, year)."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.db.session import Base


_NOT_DELETED = text("deleted_at IS NULL")


class ContractTemplate(Base):
    __tablename__ = "contract_templates"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    # Placeholders use the {{token}} form.
    body = Column(Text, nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)


class Contract(Base):
    """accepted_at NULL means awaiting signature; it is set once and never cleared."""

    __tablename__ = "contracts"
    __table_args__ = (
        Index(
            "uq_contracts_user_period_live",
            "user_id",
            "semester",
            "year",
            unique=True,
            postgresql_where=_NOT_DELETED,
            sqlite_where=_NOT_DELETED,
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    template_id = Column(
        UUID(as_uuid=True), ForeignKey("contract_templates.id", ondelete="RESTRICT"), nullable=False
    )
    enrollment_id = Column(UUID(as_uuid=True), ForeignKey("enrollments.id", ondelete="SET NULL"), nullable=True)
    storage_ref = Column(String(512), nullable=False)
    file_name = Column(String(255), nullable=False)
    semester = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    owner = relationship("User", foreign_keys=[user_id])
    template = relationship("ContractTemplate", foreign_keys=[template_id])
    enrollment = relationship("Enrollment", foreign_keys=[enrollment_id])
