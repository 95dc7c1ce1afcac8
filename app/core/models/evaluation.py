"""Evaluations of a class/discipline and the grades recorded against them."""

import uuid
from datetime import date, datetime

from sqlalchemy import Column, Date, DateTime, ForeignKey, Index, Numeric, String, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.db.session import Base


_NOT_DELETED = text("deleted_at IS NULL")


class Evaluation(Base):
    __tablename__ = "evaluations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    class_id = Column(UUID(as_uuid=True), ForeignKey("classes.id", ondelete="RESTRICT"), nullable=False, index=True)
    teacher_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    discipline_id = Column(UUID(as_uuid=True), ForeignKey("disciplines.id", ondelete="RESTRICT"), nullable=False)
    name = Column(String(255), nullable=False)
    date = Column(Date, nullable=False, default=date.today)
    # numeric | conceptual
    kind = Column(String(20), nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    school_class = relationship("SchoolClass", foreign_keys=[class_id])
    teacher = relationship("User", foreign_keys=[teacher_id])
    discipline = relationship("Discipline", foreign_keys=[discipline_id])


class Grade(Base):
    """Exactly one of numeric_value / concept is set."""

    __tablename__ = "grades"
    __table_args__ = (
        Index(
            "uq_grades_evaluation_student_live",
            "evaluation_id",
            "student_id",
            unique=True,
            postgresql_where=_NOT_DELETED,
            sqlite_where=_NOT_DELETED,
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    evaluation_id = Column(
        UUID(as_uuid=True), ForeignKey("evaluations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    student_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    numeric_value = Column(Numeric(4, 2), nullable=True)
    # satisfactory | unsatisfactory
    concept = Column(String(20), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    evaluation = relationship("Evaluation", foreign_keys=[evaluation_id])
    student = relationship("User", foreign_keys=[student_id])
