from datetime import datetime, timezone

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.contracts import service
from app.core.enums import EnrollmentStatus, UserRole
from app.core.exceptions import (
    AuthorizationError,
    ConflictError,
    IncompleteDataError,
    InvalidTransitionError,
    NotFoundError,
    TemplateRenderError,
    ValidationError,
)
from app.core.models import Contract, ContractTemplate, Course, Enrollment


async def _template(db: AsyncSession, body: str, active: bool = True) -> ContractTemplate:
    template = ContractTemplate(name="Contrato de prestação de serviços", body=body, active=active)
    db.add(template)
    await db.commit()
    await db.refresh(template)
    return template


async def _active_enrollment(db: AsyncSession, student, course) -> Enrollment:
    enrollment = Enrollment(student_id=student.id, course_id=course.id, status=EnrollmentStatus.ACTIVE.value)
    db.add(enrollment)
    await db.commit()
    await db.refresh(enrollment)
    return enrollment


def test_current_period_splits_the_year() -> None:
    assert service.current_period(datetime(2025, 1, 1, tzinfo=timezone.utc)) == (1, 2025)
    assert service.current_period(datetime(2025, 6, 30, tzinfo=timezone.utc)) == (1, 2025)
    assert service.current_period(datetime(2025, 7, 1, tzinfo=timezone.utc)) == (2, 2025)
    assert service.current_period(datetime(2025, 12, 31, tzinfo=timezone.utc)) == (2, 2025)


@pytest.mark.asyncio
async def test_issue_twice_for_same_period_conflicts(
    db_session: AsyncSession, storage, admin, student, actor_of
) -> None:
    actor = actor_of(admin)
    template = await _template(db_session, "Dear {{name}}")

    contract = await service.issue_contract(
        db_session, storage, actor, student.id, template.id, 1, 2025, {"name": "Maria"}
    )
    assert contract.accepted_at is None
    assert await storage.get(contract.storage_ref) == b"Dear Maria"

    with pytest.raises(ConflictError):
        await service.issue_contract(db_session, storage, actor, student.id, template.id, 1, 2025, {"name": "Maria"})

    # A different period is a different contract.
    other = await service.issue_contract(
        db_session, storage, actor, student.id, template.id, 2, 2025, {"name": "Maria"}
    )
    assert other.id != contract.id


@pytest.mark.asyncio
async def test_failed_issue_commit_leaves_only_a_staged_artifact(
    db_session: AsyncSession, session_factory, storage, admin, student, actor_of
) -> None:
    actor = actor_of(admin)
    student_id = student.id
    template = await _template(db_session, "Dear {{name}}")
    contract = await service.issue_contract(
        db_session, storage, actor, student_id, template.id, 1, 2025, {"name": "Maria"}
    )

    # Reusing the id collides on insert, after the artifact has been rendered.
    async with session_factory() as other_session:
        with pytest.raises(ConflictError):
            await service.issue_contract(
                other_session,
                storage,
                actor,
                student_id,
                template.id,
                2,
                2025,
                {"name": "Maria"},
                contract_id=contract.id,
            )

    assert [p.name for p in (storage.base_dir / "artifacts").iterdir()] == [contract.storage_ref.split("/")[1]]
    assert len(list((storage.base_dir / "temp").iterdir())) == 1


@pytest.mark.asyncio
async def test_issue_with_missing_placeholder_stores_nothing(
    db_session: AsyncSession, storage, admin, student, actor_of
) -> None:
    template = await _template(db_session, "Dear {{name}}")

    with pytest.raises(TemplateRenderError):
        await service.issue_contract(db_session, storage, actor_of(admin), student.id, template.id, 1, 2025, {})

    result = await db_session.execute(select(Contract))
    assert result.scalars().all() == []
    assert not (storage.base_dir / "artifacts").exists()


@pytest.mark.asyncio
async def test_issue_validates_period_and_template(
    db_session: AsyncSession, storage, admin, student, actor_of
) -> None:
    actor = actor_of(admin)
    inactive = await _template(db_session, "Dear {{name}}", active=False)
    with pytest.raises(NotFoundError):
        await service.issue_contract(db_session, storage, actor, student.id, inactive.id, 1, 2025, {"name": "x"})

    active = await _template(db_session, "Dear {{name}}")
    with pytest.raises(ValidationError):
        await service.issue_contract(db_session, storage, actor, student.id, active.id, 3, 2025, {"name": "x"})


@pytest.mark.asyncio
async def test_only_admin_issues(db_session: AsyncSession, storage, student, actor_of) -> None:
    template = await _template(db_session, "Dear {{name}}")
    with pytest.raises(AuthorizationError):
        await service.issue_contract(
            db_session, storage, actor_of(student), student.id, template.id, 1, 2025, {"name": "x"}
        )


@pytest.mark.asyncio
async def test_accept_is_one_way(db_session: AsyncSession, storage, admin, student, actor_of) -> None:
    template = await _template(db_session, "Dear {{name}}")
    contract = await service.issue_contract(
        db_session, storage, actor_of(admin), student.id, template.id, 1, 2025, {"name": "Maria"}
    )

    accepted = await service.accept_contract(db_session, actor_of(student), contract.id)
    assert accepted.accepted_at is not None

    with pytest.raises(InvalidTransitionError):
        await service.accept_contract(db_session, actor_of(student), contract.id)

    again = await service.get_contract(db_session, actor_of(student), contract.id)
    assert again.accepted_at == accepted.accepted_at


@pytest.mark.asyncio
async def test_only_owner_accepts(db_session: AsyncSession, storage, make_user, admin, student, actor_of) -> None:
    other = await make_user(UserRole.STUDENT)
    template = await _template(db_session, "Dear {{name}}")
    contract = await service.issue_contract(
        db_session, storage, actor_of(admin), student.id, template.id, 1, 2025, {"name": "Maria"}
    )

    with pytest.raises(InvalidTransitionError):
        await service.accept_contract(db_session, actor_of(other), contract.id)
    with pytest.raises(InvalidTransitionError):
        await service.accept_contract(db_session, actor_of(admin), contract.id)


@pytest.mark.asyncio
async def test_build_contract_values_reads_the_entity_graph(db_session: AsyncSession, student, course) -> None:
    enrollment = await _active_enrollment(db_session, student, course)
    values = await service.build_contract_values(db_session, student, 2, 2025)

    assert values["studentName"] == student.name
    assert values["studentCPF"] == f"{student.cpf[:3]}.{student.cpf[3:6]}.{student.cpf[6:9]}-{student.cpf[9:]}"
    assert values["courseName"] == course.name
    assert values["courseDuration"] == "6"
    assert values["enrollmentNumber"] == str(enrollment.id)
    assert values["currentSemester"] == "2/2025"
    assert values["contractId"] is None


@pytest.mark.asyncio
async def test_teacher_values_have_no_course(db_session: AsyncSession, teacher) -> None:
    values = await service.build_contract_values(db_session, teacher, 1, 2025)
    assert values["studentName"] == teacher.name
    assert values["courseName"] is None
    assert values["enrollmentNumber"] is None


def test_resolve_placeholder_values_distinguishes_absent_from_unknown() -> None:
    values = {"studentName": "Ana", "courseName": None}
    assert service.resolve_placeholder_values("Olá {{studentName}}", values) == {"studentName": "Ana"}
    with pytest.raises(IncompleteDataError):
        service.resolve_placeholder_values("{{studentName}} em {{courseName}}", values)
    # Unknown tokens are left for the renderer to reject.
    assert service.resolve_placeholder_values("{{shoeSize}}", values) == {}


@pytest.mark.asyncio
async def test_regenerate_replaces_artifact_and_keeps_acceptance(
    db_session: AsyncSession, storage, admin, student, course, actor_of
) -> None:
    await _active_enrollment(db_session, student, course)
    await _template(db_session, "Contrato {{contractId}}: {{studentName}} cursa {{courseName}}")
    contract = await service.issue_semester_contract(db_session, storage, actor_of(admin), student.id, 1, 2025)
    accepted = await service.accept_contract(db_session, actor_of(student), contract.id)

    regenerated = await service.regenerate_artifact(db_session, storage, actor_of(admin), contract.id)

    assert regenerated.storage_ref != contract.storage_ref
    assert regenerated.accepted_at == accepted.accepted_at
    text = (await storage.get(regenerated.storage_ref)).decode("utf-8")
    assert str(contract.id) in text
    assert course.name in text


@pytest.mark.asyncio
async def test_regenerate_fails_on_missing_upstream_data(
    db_session: AsyncSession, storage, admin, student, course, actor_of
) -> None:
    await _active_enrollment(db_session, student, course)
    await _template(db_session, "{{studentName}} cursa {{courseName}}")
    contract = await service.issue_semester_contract(db_session, storage, actor_of(admin), student.id, 1, 2025)

    stored = await db_session.get(Course, course.id)
    stored.deleted_at = datetime.now(timezone.utc)
    await db_session.commit()

    with pytest.raises(IncompleteDataError):
        await service.regenerate_artifact(db_session, storage, actor_of(admin), contract.id)

    unchanged = await service.get_contract(db_session, actor_of(admin), contract.id)
    assert unchanged.storage_ref == contract.storage_ref


@pytest.mark.asyncio
async def test_regenerate_is_admin_only(db_session: AsyncSession, storage, admin, student, actor_of) -> None:
    template = await _template(db_session, "Dear {{name}}")
    contract = await service.issue_contract(
        db_session, storage, actor_of(admin), student.id, template.id, 1, 2025, {"name": "Maria"}
    )
    with pytest.raises(AuthorizationError):
        await service.regenerate_artifact(db_session, storage, actor_of(student), contract.id)


@pytest.mark.asyncio
async def test_contract_http_flow(
    client: AsyncClient, db_session: AsyncSession, admin, student, course, auth_headers
) -> None:
    await _active_enrollment(db_session, student, course)
    await _template(db_session, "{{studentName}} / {{courseName}} / {{semester}}-{{year}}")

    response = await client.post(
        "/api/v1/contracts",
        json={"user_id": str(student.id), "semester": 1, "year": 2025},
        headers=auth_headers(admin),
    )
    assert response.status_code == 201
    contract_id = response.json()["id"]

    response = await client.post(
        "/api/v1/contracts",
        json={"user_id": str(student.id), "semester": 1, "year": 2025},
        headers=auth_headers(admin),
    )
    assert response.status_code == 409

    response = await client.get("/api/v1/contracts", params={"pending_only": "true"}, headers=auth_headers(student))
    assert [c["id"] for c in response.json()] == [contract_id]

    response = await client.post(f"/api/v1/contracts/{contract_id}/accept", headers=auth_headers(student))
    assert response.status_code == 200
    assert response.json()["accepted_at"] is not None

    response = await client.post(f"/api/v1/contracts/{contract_id}/accept", headers=auth_headers(student))
    assert response.status_code == 409

    response = await client.get("/api/v1/contracts", params={"pending_only": "true"}, headers=auth_headers(student))
    assert response.json() == []


@pytest.mark.asyncio
async def test_template_placeholders_are_reported(client: AsyncClient, admin, auth_headers) -> None:
    response = await client.post(
        "/api/v1/contract-templates",
        json={"name": "Padrão", "body": "{{studentName}} {{ courseName }} {{studentName}}"},
        headers=auth_headers(admin),
    )
    assert response.status_code == 201
    assert response.json()["placeholders"] == ["studentName", "courseName"]
