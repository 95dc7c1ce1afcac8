import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import rbac
from app.auth.rbac import Action
from app.auth.schemas import CurrentUser
from app.core.enums import EvaluationKind, GradeConcept, UserRole
from app.core.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from app.core.models import Evaluation, Grade

from app.api.v1.classes import service as class_service
from app.api.v1.courses import service as course_service
from app.api.v1.users import service as user_service

from .schemas import EvaluationCreate, EvaluationResponse, GradeResponse

logger = logging.getLogger(__name__)

MIN_GRADE = Decimal("0.00")
MAX_GRADE = Decimal("10.00")


def _grade_to_response(grade: Grade) -> GradeResponse:
    return GradeResponse.model_validate(grade)


def validate_grade_value(
    kind: EvaluationKind,
    numeric_value: Optional[Decimal],
    concept: Optional[GradeConcept],
) -> Tuple[Optional[Decimal], Optional[str]]:
    """Check the XOR/kind/range rules; returns the (numeric_value, concept) to store."""
    if (numeric_value is None) == (concept is None):
        raise ValidationError("Provide exactly one of numeric_value or concept")

    if kind is EvaluationKind.NUMERIC:
        if numeric_value is None:
            raise ValidationError("Numeric evaluations take a numeric_value, not a concept")
        try:
            value = Decimal(str(numeric_value))
        except InvalidOperation:
            raise ValidationError("numeric_value is not a number")
        if not value.is_finite():
            raise ValidationError("numeric_value is not a number")
        if value < MIN_GRADE or value > MAX_GRADE:
            raise ValidationError("numeric_value must be between 0.00 and 10.00")
        if value.as_tuple().exponent < -2:
            raise ValidationError("numeric_value allows at most two decimal places")
        return value.quantize(Decimal("0.01")), None

    if concept is None:
        raise ValidationError("Conceptual evaluations take a concept, not a numeric_value")
    try:
        return None, GradeConcept(concept).value
    except ValueError:
        raise ValidationError("concept must be 'satisfactory' or 'unsatisfactory'")


async def _get_evaluation(db: AsyncSession, evaluation_id: UUID) -> Evaluation:
    result = await db.execute(
        select(Evaluation).where(Evaluation.id == evaluation_id, Evaluation.deleted_at.is_(None))
    )
    evaluation = result.scalar_one_or_none()
    if not evaluation:
        raise NotFoundError("Evaluation not found")
    return evaluation


async def _get_grade(db: AsyncSession, grade_id: UUID) -> Grade:
    result = await db.execute(select(Grade).where(Grade.id == grade_id, Grade.deleted_at.is_(None)))
    grade = result.scalar_one_or_none()
    if not grade:
        raise NotFoundError("Grade not found")
    return grade


# ----- Evaluations -----
async def create_evaluation(
    db: AsyncSession,
    actor: CurrentUser,
    payload: EvaluationCreate,
) -> EvaluationResponse:
    """The evaluation's teacher must be assigned to (class, discipline)."""
    teacher_id = payload.teacher_id or actor.id
    rbac.authorize(actor, Action.EVALUATION_CREATE, owner_id=teacher_id)
    await class_service.get_live_class(db, payload.class_id)
    await course_service.get_live_discipline(db, payload.discipline_id)
    await user_service.get_user_with_role(db, teacher_id, UserRole.TEACHER)
    if not await rbac.is_assigned(db, teacher_id, payload.class_id, payload.discipline_id):
        raise AuthorizationError("Teacher is not assigned to this class and discipline")

    evaluation = Evaluation(
        class_id=payload.class_id,
        teacher_id=teacher_id,
        discipline_id=payload.discipline_id,
        name=payload.name.strip(),
        date=payload.date,
        kind=payload.kind.value,
    )
    db.add(evaluation)
    await db.commit()
    await db.refresh(evaluation)
    logger.info("Evaluation %s created for class %s", evaluation.id, evaluation.class_id)
    return EvaluationResponse.model_validate(evaluation)


async def delete_evaluation(db: AsyncSession, actor: CurrentUser, evaluation_id: UUID) -> None:
    """Soft-deletes the evaluation and its grades in one transaction."""
    evaluation = await _get_evaluation(db, evaluation_id)
    await rbac.authorize_class_discipline(
        db, actor, Action.EVALUATION_DELETE, evaluation.class_id, evaluation.discipline_id
    )
    now = datetime.now(timezone.utc)
    await db.execute(
        update(Grade)
        .where(Grade.evaluation_id == evaluation.id, Grade.deleted_at.is_(None))
        .values(deleted_at=now)
    )
    evaluation.deleted_at = now
    await db.commit()
    logger.info("Evaluation %s deleted with its grades", evaluation.id)


async def list_class_evaluations(
    db: AsyncSession,
    actor: CurrentUser,
    class_id: UUID,
    discipline_id: Optional[UUID] = None,
) -> List[EvaluationResponse]:
    await class_service.get_live_class(db, class_id)
    await rbac.authorize_class_discipline(db, actor, Action.ROSTER_READ, class_id, discipline_id)
    stmt = select(Evaluation).where(Evaluation.class_id == class_id, Evaluation.deleted_at.is_(None))
    if discipline_id is not None:
        stmt = stmt.where(Evaluation.discipline_id == discipline_id)
    result = await db.execute(stmt.order_by(Evaluation.date, Evaluation.name))
    return [EvaluationResponse.model_validate(e) for e in result.scalars().all()]


# ----- Grades -----
async def record_grade(
    db: AsyncSession,
    actor: CurrentUser,
    evaluation_id: UUID,
    student_id: UUID,
    numeric_value: Optional[Decimal] = None,
    concept: Optional[GradeConcept] = None,
) -> GradeResponse:
    """First grade for (evaluation, student). A second one is a ConflictError; use amend_grade."""
    evaluation = await _get_evaluation(db, evaluation_id)
    await rbac.authorize_class_discipline(
        db, actor, Action.GRADE_RECORD, evaluation.class_id, evaluation.discipline_id
    )
    value, concept_value = validate_grade_value(EvaluationKind(evaluation.kind), numeric_value, concept)
    if not await class_service.is_on_roster(db, evaluation.class_id, student_id):
        raise ValidationError("Student is not on this class roster")

    existing = await db.execute(
        select(Grade.id).where(
            Grade.evaluation_id == evaluation.id,
            Grade.student_id == student_id,
            Grade.deleted_at.is_(None),
        )
    )
    if existing.scalar_one_or_none() is not None:
        raise ConflictError("A grade already exists for this student; amend it instead")

    grade = Grade(
        evaluation_id=evaluation.id,
        student_id=student_id,
        numeric_value=value,
        concept=concept_value,
    )
    db.add(grade)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("A grade already exists for this student; amend it instead")
    await db.refresh(grade)
    return _grade_to_response(grade)


async def amend_grade(
    db: AsyncSession,
    actor: CurrentUser,
    grade_id: UUID,
    numeric_value: Optional[Decimal] = None,
    concept: Optional[GradeConcept] = None,
) -> GradeResponse:
    grade = await _get_grade(db, grade_id)
    evaluation = await _get_evaluation(db, grade.evaluation_id)
    await rbac.authorize_class_discipline(
        db, actor, Action.GRADE_AMEND, evaluation.class_id, evaluation.discipline_id
    )
    value, concept_value = validate_grade_value(EvaluationKind(evaluation.kind), numeric_value, concept)
    grade.numeric_value = value
    grade.concept = concept_value
    await db.commit()
    await db.refresh(grade)
    logger.info("Grade %s amended by %s", grade.id, actor.id)
    return _grade_to_response(grade)


async def list_evaluation_grades(
    db: AsyncSession,
    actor: CurrentUser,
    evaluation_id: UUID,
) -> List[GradeResponse]:
    evaluation = await _get_evaluation(db, evaluation_id)
    await rbac.authorize_class_discipline(
        db, actor, Action.GRADE_READ, evaluation.class_id, evaluation.discipline_id
    )
    result = await db.execute(
        select(Grade).where(Grade.evaluation_id == evaluation.id, Grade.deleted_at.is_(None))
    )
    return [_grade_to_response(g) for g in result.scalars().all()]


async def list_student_grades(
    db: AsyncSession,
    actor: CurrentUser,
    student_id: UUID,
) -> List[GradeResponse]:
    """A student's grades across live evaluations; students may only read their own."""
    rbac.authorize(actor, Action.GRADE_READ, owner_id=student_id)
    stmt = (
        select(Grade)
        .join(Evaluation, Evaluation.id == Grade.evaluation_id)
        .where(
            Grade.student_id == student_id,
            Grade.deleted_at.is_(None),
            Evaluation.deleted_at.is_(None),
        )
    )
    result = await db.execute(stmt.order_by(Evaluation.date))
    return [_grade_to_response(g) for g in result.scalars().all()]
