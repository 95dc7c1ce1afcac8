import asyncio

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.courses import service as course_service
from app.api.v1.enrollments import service
from app.api.v1.enrollments.schemas import EnrollmentCreate, EnrollmentResponse
from app.api.v1.users import service as user_service
from app.core.enums import DocumentAppliesTo, EnrollmentStatus, UserRole
from app.core.exceptions import (
    AuthorizationError,
    ConflictError,
    InvalidTransitionError,
    RestrictedDeleteError,
    ValidationError,
)
from app.core.models import ContractTemplate, DocumentType


@pytest.mark.asyncio
async def test_enrollment_lifecycle_scenario(db_session: AsyncSession, admin, student, course, actor_of) -> None:
    actor = actor_of(admin)
    payload = EnrollmentCreate(student_id=student.id, course_id=course.id)

    created = await service.create_enrollment(db_session, actor, payload)
    assert created.status == EnrollmentStatus.PENDING

    activated = await service.activate_enrollment(db_session, actor, created.id)
    assert activated.status == EnrollmentStatus.ACTIVE

    with pytest.raises(ConflictError):
        await service.create_enrollment(db_session, actor, payload)

    cancelled = await service.cancel_enrollment(db_session, actor, created.id, "Desistência")
    assert cancelled.status == EnrollmentStatus.CANCELLED
    assert cancelled.cancellation_reason == "Desistência"
    assert cancelled.cancelled_at is not None

    again = await service.create_enrollment(db_session, actor, payload)
    assert again.status == EnrollmentStatus.PENDING
    assert again.id != created.id


@pytest.mark.asyncio
async def test_concurrent_creates_yield_exactly_one_enrollment(
    session_factory, admin, student, course, actor_of
) -> None:
    actor = actor_of(admin)
    payload = EnrollmentCreate(student_id=student.id, course_id=course.id)

    async def attempt():
        async with session_factory() as db:
            return await service.create_enrollment(db, actor, payload)

    results = await asyncio.gather(*(attempt() for _ in range(5)), return_exceptions=True)

    successes = [r for r in results if isinstance(r, EnrollmentResponse)]
    conflicts = [r for r in results if isinstance(r, ConflictError)]
    assert len(successes) == 1
    assert len(conflicts) == 4

    async with session_factory() as db:
        listed = await service.list_enrollments(db, actor, student_id=student.id)
    assert [e.id for e in listed] == [successes[0].id]


@pytest.mark.asyncio
async def test_cancelled_enrollment_cannot_move(db_session: AsyncSession, admin, student, course, actor_of) -> None:
    actor = actor_of(admin)
    created = await service.create_enrollment(
        db_session, actor, EnrollmentCreate(student_id=student.id, course_id=course.id)
    )
    await service.cancel_enrollment(db_session, actor, created.id, "Documentação incompleta")

    with pytest.raises(InvalidTransitionError):
        await service.activate_enrollment(db_session, actor, created.id)
    with pytest.raises(InvalidTransitionError):
        await service.cancel_enrollment(db_session, actor, created.id, "again")


@pytest.mark.asyncio
async def test_active_enrollment_cannot_be_activated_again(
    db_session: AsyncSession, admin, student, course, actor_of
) -> None:
    actor = actor_of(admin)
    created = await service.create_enrollment(
        db_session, actor, EnrollmentCreate(student_id=student.id, course_id=course.id)
    )
    await service.activate_enrollment(db_session, actor, created.id)
    with pytest.raises(InvalidTransitionError):
        await service.activate_enrollment(db_session, actor, created.id)


@pytest.mark.asyncio
async def test_only_admin_creates_enrollments(
    db_session: AsyncSession, student, teacher, course, actor_of
) -> None:
    payload = EnrollmentCreate(student_id=student.id, course_id=course.id)
    with pytest.raises(AuthorizationError):
        await service.create_enrollment(db_session, actor_of(student), payload)
    with pytest.raises(AuthorizationError):
        await service.create_enrollment(db_session, actor_of(teacher), payload)


@pytest.mark.asyncio
async def test_enrollment_requires_a_student(db_session: AsyncSession, admin, teacher, course, actor_of) -> None:
    with pytest.raises(ValidationError):
        await service.create_enrollment(
            db_session, actor_of(admin), EnrollmentCreate(student_id=teacher.id, course_id=course.id)
        )


@pytest.mark.asyncio
async def test_students_only_list_their_own(
    db_session: AsyncSession, make_user, admin, student, course, actor_of
) -> None:
    other = await make_user(UserRole.STUDENT)
    admin_actor = actor_of(admin)
    mine = await service.create_enrollment(
        db_session, admin_actor, EnrollmentCreate(student_id=student.id, course_id=course.id)
    )
    theirs = await service.create_enrollment(
        db_session, admin_actor, EnrollmentCreate(student_id=other.id, course_id=course.id)
    )

    listed = await service.list_enrollments(db_session, actor_of(student), student_id=other.id)
    assert [e.id for e in listed] == [mine.id]
    with pytest.raises(AuthorizationError):
        await service.get_enrollment(db_session, actor_of(student), theirs.id)


@pytest.mark.asyncio
async def test_delete_blocked_while_enrollments_exist(
    db_session: AsyncSession, admin, student, course, actor_of
) -> None:
    actor = actor_of(admin)
    student_id, course_id = student.id, course.id
    await service.create_enrollment(db_session, actor, EnrollmentCreate(student_id=student_id, course_id=course_id))

    with pytest.raises(RestrictedDeleteError):
        await user_service.delete_user(db_session, actor, student_id)
    with pytest.raises(RestrictedDeleteError):
        await course_service.delete_course(db_session, actor, course_id)


@pytest.mark.asyncio
async def test_activate_endpoint_waits_for_required_documents(
    client: AsyncClient, db_session: AsyncSession, admin, student, course, actor_of, auth_headers
) -> None:
    db_session.add(DocumentType(name="RG", applies_to=DocumentAppliesTo.STUDENT.value, required=True))
    await db_session.commit()
    created = await service.create_enrollment(
        db_session, actor_of(admin), EnrollmentCreate(student_id=student.id, course_id=course.id)
    )

    response = await client.post(f"/api/v1/enrollments/{created.id}/activate", headers=auth_headers(admin))
    assert response.status_code == 409
    assert "RG" in response.json()["detail"]

    response = await client.post(
        f"/api/v1/enrollments/{created.id}/activate",
        params={"force": "true"},
        headers=auth_headers(admin),
    )
    assert response.status_code == 200
    data = response.json()
    assert data["enrollment"]["status"] == "active"
    assert data["outstanding_document_types"] == ["RG"]
    assert data["contract_id"] is None


@pytest.mark.asyncio
async def test_activate_endpoint_can_issue_the_semester_contract(
    client: AsyncClient, db_session: AsyncSession, admin, student, course, actor_of, auth_headers
) -> None:
    db_session.add(
        ContractTemplate(name="Contrato", body="Aluno {{studentName}} em {{courseName}} ({{currentSemester}})")
    )
    await db_session.commit()
    created = await service.create_enrollment(
        db_session, actor_of(admin), EnrollmentCreate(student_id=student.id, course_id=course.id)
    )

    response = await client.post(
        f"/api/v1/enrollments/{created.id}/activate",
        params={"issue_contract": "true"},
        headers=auth_headers(admin),
    )
    assert response.status_code == 200
    contract_id = response.json()["contract_id"]
    assert contract_id is not None

    response = await client.get(f"/api/v1/contracts/{contract_id}/file", headers=auth_headers(student))
    assert response.status_code == 200
    assert student.name in response.text
    assert course.name in response.text


@pytest.mark.asyncio
async def test_student_cannot_activate_over_http(
    client: AsyncClient, db_session: AsyncSession, admin, student, course, actor_of, auth_headers
) -> None:
    created = await service.create_enrollment(
        db_session, actor_of(admin), EnrollmentCreate(student_id=student.id, course_id=course.id)
    )
    response = await client.post(f"/api/v1/enrollments/{created.id}/activate", headers=auth_headers(student))
    assert response.status_code == 403
