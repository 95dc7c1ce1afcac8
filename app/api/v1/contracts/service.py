"""
Contract lifecycle per (user, semester, year): absent -> awaiting signature -> accepted.

The rendered artifact is immutable once stored; regenerate_artifact only
swaps storage_ref/file_name and never touches accepted_at.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Mapping, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import rbac
from app.auth.models import User
from app.auth.rbac import Action
from app.auth.schemas import CurrentUser
from app.core.config import settings
from app.core.email import dispatch_notification, notify_contract_issued
from app.core.enums import OPEN_ENROLLMENT_STATUSES
from app.core.exceptions import (
    ConflictError,
    IncompleteDataError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from app.core.models import Contract, ContractTemplate, Course, Enrollment
from app.core.storage import ArtifactStorage
from app.core.templating import extract_placeholders, render_template

from app.api.v1.users import service as user_service

from .schemas import (
    ContractResponse,
    ContractTemplateCreate,
    ContractTemplateResponse,
    ContractTemplateUpdate,
)

logger = logging.getLogger(__name__)

ARTIFACT_SUFFIX = ".html"
DATE_FORMAT = "%d/%m/%Y"
DATETIME_FORMAT = "%d/%m/%Y %H:%M:%S"


def _to_response(contract: Contract) -> ContractResponse:
    return ContractResponse.model_validate(contract)


def _template_to_response(template: ContractTemplate) -> ContractTemplateResponse:
    return ContractTemplateResponse(
        id=template.id,
        name=template.name,
        body=template.body,
        active=template.active,
        placeholders=extract_placeholders(template.body),
        created_at=template.created_at,
        updated_at=template.updated_at,
    )


def current_period(now: Optional[datetime] = None) -> Tuple[int, int]:
    """(semester, year): semester 1 is January to June, 2 is July to December."""
    now = now or datetime.now(timezone.utc)
    return (1 if now.month <= 6 else 2), now.year


def _validate_period(semester: int, year: int) -> None:
    if semester not in (1, 2):
        raise ValidationError("semester must be 1 or 2")
    if year < 2000 or year > 2100:
        raise ValidationError("year is out of range")


def _format_cpf(cpf: Optional[str]) -> Optional[str]:
    if not cpf:
        return None
    digits = "".join(ch for ch in cpf if ch.isdigit())
    if len(digits) != 11:
        return cpf
    return f"{digits[:3]}.{digits[3:6]}.{digits[6:9]}-{digits[9:]}"


def _format_date(value: Optional[datetime]) -> Optional[str]:
    return value.strftime(DATE_FORMAT) if value else None


async def _find_enrollment_for(
    db: AsyncSession,
    owner_id: UUID,
    enrollment_id: Optional[UUID] = None,
) -> Optional[Enrollment]:
    stmt = select(Enrollment).where(Enrollment.student_id == owner_id, Enrollment.deleted_at.is_(None))
    if enrollment_id is not None:
        stmt = stmt.where(Enrollment.id == enrollment_id)
    else:
        stmt = stmt.where(Enrollment.status.in_(OPEN_ENROLLMENT_STATUSES))
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def build_contract_values(
    db: AsyncSession,
    owner: User,
    semester: int,
    year: int,
    enrollment_id: Optional[UUID] = None,
    contract_id: Optional[UUID] = None,
    contract_date: Optional[datetime] = None,
) -> Dict[str, Optional[str]]:
    """
    Placeholder values read from the entity graph at call time.

    Every known placeholder is present as a key; a value is None when the
    upstream field is absent (no enrollment, no course, blank user field).
    """
    enrollment = await _find_enrollment_for(db, owner.id, enrollment_id)
    course = None
    if enrollment is not None:
        result = await db.execute(
            select(Course).where(Course.id == enrollment.course_id, Course.deleted_at.is_(None))
        )
        course = result.scalar_one_or_none()

    now = datetime.now(timezone.utc)
    return {
        "studentId": str(owner.id),
        "studentName": owner.name,
        "studentEmail": owner.email,
        "studentCPF": _format_cpf(owner.cpf),
        "studentRG": owner.rg,
        "studentPhone": owner.phone,
        "studentAddress": owner.address,
        "courseName": course.name if course else None,
        "courseDuration": (
            str(course.duration_semesters) if course and course.duration_semesters else None
        ),
        "enrollmentNumber": str(enrollment.id) if enrollment else None,
        "enrollmentDate": _format_date(enrollment.enrollment_date) if enrollment else None,
        "currentSemester": f"{semester}/{year}",
        "semester": str(semester),
        "year": str(year),
        "institutionName": settings.institution_name,
        "contractId": str(contract_id) if contract_id else None,
        "contractDate": _format_date(contract_date or now),
        "generatedAt": now.strftime(DATETIME_FORMAT),
    }


def resolve_placeholder_values(body: str, values: Mapping[str, Optional[str]]) -> Dict[str, str]:
    """
    Keep only the values body uses.

    A placeholder that maps to a known but absent upstream field raises
    IncompleteDataError; unknown placeholders are left out so rendering
    reports them as TemplateRenderError.
    """
    used = extract_placeholders(body)
    absent = [name for name in used if name in values and not (values[name] or "").strip()]
    if absent:
        raise IncompleteDataError(f"Missing data for contract field(s): {', '.join(absent)}")
    return {name: values[name] for name in used if name in values}


async def get_template(
    db: AsyncSession,
    template_id: Optional[UUID] = None,
    active_only: bool = True,
) -> ContractTemplate:
    """Template by id, or the most recent active template when no id is given."""
    stmt = select(ContractTemplate).where(ContractTemplate.deleted_at.is_(None))
    if active_only:
        stmt = stmt.where(ContractTemplate.active.is_(True))
    if template_id is not None:
        stmt = stmt.where(ContractTemplate.id == template_id)
    else:
        stmt = stmt.order_by(ContractTemplate.created_at.desc()).limit(1)
    result = await db.execute(stmt)
    template = result.scalar_one_or_none()
    if not template:
        raise NotFoundError("No active contract template found")
    return template


async def _contract_exists(db: AsyncSession, owner_id: UUID, semester: int, year: int) -> bool:
    result = await db.execute(
        select(Contract.id).where(
            Contract.user_id == owner_id,
            Contract.semester == semester,
            Contract.year == year,
            Contract.deleted_at.is_(None),
        )
    )
    return result.scalar_one_or_none() is not None


async def issue_contract(
    db: AsyncSession,
    storage: ArtifactStorage,
    actor: CurrentUser,
    owner_id: UUID,
    template_id: UUID,
    semester: int,
    year: int,
    placeholder_values: Mapping[str, object],
    enrollment_id: Optional[UUID] = None,
    contract_id: Optional[UUID] = None,
) -> ContractResponse:
    """Render the template, store the artifact and record the contract awaiting acceptance."""
    rbac.authorize(actor, Action.CONTRACT_ISSUE)
    _validate_period(semester, year)
    owner = await user_service.get_live_user(db, owner_id)
    template = await get_template(db, template_id)

    if await _contract_exists(db, owner.id, semester, year):
        raise ConflictError(f"A contract for {semester}/{year} already exists for this user")

    rendered = render_template(template.body, placeholder_values)
    contract_id = contract_id or uuid.uuid4()
    staged_ref = await storage.put_temp(rendered.encode("utf-8"), ARTIFACT_SUFFIX)

    contract = Contract(
        id=contract_id,
        user_id=owner.id,
        template_id=template.id,
        enrollment_id=enrollment_id,
        storage_ref=storage.promoted_ref(staged_ref),
        file_name=f"contract-{year}-{semester}-{contract_id}{ARTIFACT_SUFFIX}",
        semester=semester,
        year=year,
    )
    db.add(contract)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.warning(
            "Contract %s/%s for %s lost an issue race; staged %s left for cleanup", semester, year, owner_id, staged_ref
        )
        raise ConflictError(f"A contract for {semester}/{year} already exists for this user")
    await db.refresh(contract)
    await storage.promote(staged_ref)
    logger.info("Contract %s issued to %s for %s/%s", contract.id, owner.id, semester, year)

    dispatch_notification(
        notify_contract_issued(to_email=owner.email, user_name=owner.name, semester=semester, year=year),
        name=f"contract-issued-{contract.id}",
    )
    return _to_response(contract)


async def issue_semester_contract(
    db: AsyncSession,
    storage: ArtifactStorage,
    actor: CurrentUser,
    owner_id: UUID,
    semester: Optional[int] = None,
    year: Optional[int] = None,
    template_id: Optional[UUID] = None,
    enrollment_id: Optional[UUID] = None,
) -> ContractResponse:
    """Issue with values derived from the entity graph. Used by activation, renewal and the HTTP endpoint."""
    rbac.authorize(actor, Action.CONTRACT_ISSUE)
    if semester is None or year is None:
        semester, year = current_period()
    owner = await user_service.get_live_user(db, owner_id)
    template = await get_template(db, template_id)

    enrollment = await _find_enrollment_for(db, owner.id, enrollment_id)
    enrollment_id = enrollment.id if enrollment else None

    contract_id = uuid.uuid4()
    values = await build_contract_values(
        db, owner, semester, year, enrollment_id=enrollment_id, contract_id=contract_id
    )
    return await issue_contract(
        db,
        storage,
        actor,
        owner.id,
        template.id,
        semester,
        year,
        resolve_placeholder_values(template.body, values),
        enrollment_id=enrollment_id,
        contract_id=contract_id,
    )


async def _get_contract(db: AsyncSession, contract_id: UUID) -> Contract:
    result = await db.execute(select(Contract).where(Contract.id == contract_id, Contract.deleted_at.is_(None)))
    contract = result.scalar_one_or_none()
    if not contract:
        raise NotFoundError("Contract not found")
    return contract


async def accept_contract(db: AsyncSession, actor: CurrentUser, contract_id: UUID) -> ContractResponse:
    """One-way: a second acceptance fails, it is not ignored."""
    rbac.authorize(actor, Action.CONTRACT_ACCEPT)
    contract = await _get_contract(db, contract_id)
    if contract.user_id != actor.id:
        raise InvalidTransitionError("Only the contract owner can accept it")
    if contract.accepted_at is not None:
        raise InvalidTransitionError("Contract was already accepted")

    result = await db.execute(
        update(Contract)
        .where(
            Contract.id == contract.id,
            Contract.user_id == actor.id,
            Contract.accepted_at.is_(None),
            Contract.deleted_at.is_(None),
        )
        .values(accepted_at=datetime.now(timezone.utc))
    )
    if result.rowcount == 0:
        await db.rollback()
        raise InvalidTransitionError("Contract was already accepted")
    await db.commit()
    await db.refresh(contract)
    logger.info("Contract %s accepted by %s", contract.id, actor.id)
    return _to_response(contract)


async def regenerate_artifact(
    db: AsyncSession,
    storage: ArtifactStorage,
    actor: CurrentUser,
    contract_id: UUID,
) -> ContractResponse:
    """
    Re-render a contract's artifact from current data (repair for a lost or
    corrupt file). Uses the stored template even if it has since been
    deactivated. Only storage_ref and file_name change.
    """
    rbac.authorize(actor, Action.CONTRACT_REGENERATE)
    contract = await _get_contract(db, contract_id)
    template = await db.get(ContractTemplate, contract.template_id)
    owner = await db.get(User, contract.user_id)
    if template is None or owner is None:
        raise IncompleteDataError("Contract template or owner no longer exists")

    values = await build_contract_values(
        db,
        owner,
        contract.semester,
        contract.year,
        enrollment_id=contract.enrollment_id,
        contract_id=contract.id,
        contract_date=contract.created_at,
    )
    rendered = render_template(template.body, resolve_placeholder_values(template.body, values))
    staged_ref = await storage.put_temp(rendered.encode("utf-8"), ARTIFACT_SUFFIX)
    ref = storage.promoted_ref(staged_ref)

    contract.storage_ref = ref
    contract.file_name = f"contract-{contract.year}-{contract.semester}-{contract.id}{ARTIFACT_SUFFIX}"
    await db.commit()
    await db.refresh(contract)
    await storage.promote(staged_ref)
    logger.info("Contract %s artifact regenerated as %s", contract.id, ref)
    return _to_response(contract)


async def list_contracts(
    db: AsyncSession,
    actor: CurrentUser,
    user_id: Optional[UUID] = None,
    pending_only: bool = False,
    semester: Optional[int] = None,
    year: Optional[int] = None,
) -> List[ContractResponse]:
    rbac.authorize(actor, Action.CONTRACT_READ)
    scope = rbac.owner_scope(actor)
    stmt = select(Contract).where(Contract.deleted_at.is_(None))
    if scope is not None:
        stmt = stmt.where(Contract.user_id == scope)
    elif user_id is not None:
        stmt = stmt.where(Contract.user_id == user_id)
    if pending_only:
        stmt = stmt.where(Contract.accepted_at.is_(None))
    if semester is not None:
        stmt = stmt.where(Contract.semester == semester)
    if year is not None:
        stmt = stmt.where(Contract.year == year)
    result = await db.execute(stmt.order_by(Contract.year.desc(), Contract.semester.desc()))
    return [_to_response(c) for c in result.scalars().all()]


async def get_contract(db: AsyncSession, actor: CurrentUser, contract_id: UUID) -> ContractResponse:
    contract = await _get_contract(db, contract_id)
    rbac.authorize(actor, Action.CONTRACT_READ, owner_id=contract.user_id)
    return _to_response(contract)


async def get_contract_file(
    db: AsyncSession,
    storage: ArtifactStorage,
    actor: CurrentUser,
    contract_id: UUID,
) -> Tuple[bytes, str]:
    contract = await _get_contract(db, contract_id)
    rbac.authorize(actor, Action.CONTRACT_READ, owner_id=contract.user_id)
    return await storage.get(contract.storage_ref), contract.file_name


# ----- Templates -----
async def create_template(
    db: AsyncSession,
    actor: CurrentUser,
    payload: ContractTemplateCreate,
) -> ContractTemplateResponse:
    rbac.authorize(actor, Action.CATALOG_MANAGE)
    template = ContractTemplate(name=payload.name.strip(), body=payload.body, active=payload.active)
    db.add(template)
    await db.commit()
    await db.refresh(template)
    return _template_to_response(template)


async def list_templates(
    db: AsyncSession,
    actor: CurrentUser,
    active_only: bool = False,
) -> List[ContractTemplateResponse]:
    rbac.authorize(actor, Action.CATALOG_MANAGE)
    stmt = select(ContractTemplate).where(ContractTemplate.deleted_at.is_(None))
    if active_only:
        stmt = stmt.where(ContractTemplate.active.is_(True))
    result = await db.execute(stmt.order_by(ContractTemplate.created_at.desc()))
    return [_template_to_response(t) for t in result.scalars().all()]


async def update_template(
    db: AsyncSession,
    actor: CurrentUser,
    template_id: UUID,
    payload: ContractTemplateUpdate,
) -> ContractTemplateResponse:
    """Issued contracts keep their stored artifact; only future issues see the change."""
    rbac.authorize(actor, Action.CATALOG_MANAGE)
    template = await get_template(db, template_id, active_only=False)
    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(template, key, value)
    await db.commit()
    await db.refresh(template)
    return _template_to_response(template)


async def delete_template(db: AsyncSession, actor: CurrentUser, template_id: UUID) -> None:
    rbac.authorize(actor, Action.CATALOG_MANAGE)
    template = await get_template(db, template_id, active_only=False)
    template.deleted_at = datetime.now(timezone.utc)
    template.active = False
    await db.commit()

