import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.classes import service as class_service
from app.api.v1.classes.schemas import ClassStudentCreate, ClassTeacherCreate
from app.api.v1.courses import service as course_service
from app.core.enums import EvaluationKind, UserRole
from app.core.exceptions import AuthorizationError, ConflictError, RestrictedDeleteError, ValidationError


@pytest.mark.asyncio
async def test_course_and_discipline_catalog(client: AsyncClient, admin, student, auth_headers) -> None:
    headers = auth_headers(admin)
    course = await client.post(
        "/api/v1/courses", json={"name": "Gestão Financeira", "duration_semesters": 4}, headers=headers
    )
    assert course.status_code == 201
    discipline = await client.post(
        "/api/v1/disciplines", json={"name": "Contabilidade", "code": "CTB1", "workload_hours": 80}, headers=headers
    )
    assert discipline.status_code == 201

    course_id = course.json()["id"]
    link = {"discipline_id": discipline.json()["id"], "semester": 1}
    response = await client.post(f"/api/v1/courses/{course_id}/disciplines", json=link, headers=headers)
    assert response.status_code == 201
    response = await client.post(f"/api/v1/courses/{course_id}/disciplines", json=link, headers=headers)
    assert response.status_code == 409

    response = await client.get(f"/api/v1/courses/{course_id}/disciplines", headers=headers)
    assert [d["semester"] for d in response.json()] == [1]

    response = await client.post("/api/v1/courses", json={"name": "Outro"}, headers=auth_headers(student))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_roster_and_assignment_rules(
    db_session: AsyncSession, classroom, admin, teacher, student, make_user, actor_of
) -> None:
    # Duplicate inserts roll the session back and expire loaded rows; read everything first.
    class_id = classroom["class"].id
    discipline_id = classroom["discipline"].id
    student_id, teacher_id = student.id, teacher.id
    actor = actor_of(admin)
    teacher_actor, student_actor = actor_of(teacher), actor_of(student)

    with pytest.raises(ConflictError):
        await class_service.add_student(db_session, actor, class_id, ClassStudentCreate(student_id=student_id))
    with pytest.raises(ConflictError):
        await class_service.assign_teacher(
            db_session, actor, class_id, ClassTeacherCreate(teacher_id=teacher_id, discipline_id=discipline_id)
        )
    with pytest.raises(ValidationError):
        await class_service.add_student(db_session, actor, class_id, ClassStudentCreate(student_id=teacher_id))

    newcomer = await make_user(UserRole.STUDENT)
    entry = await class_service.add_student(db_session, actor, class_id, ClassStudentCreate(student_id=newcomer.id))
    assert entry.student_id == newcomer.id

    roster = await class_service.get_roster(db_session, teacher_actor, class_id)
    assert {e.student_id for e in roster} == {student_id, newcomer.id}

    outsider = await make_user(UserRole.TEACHER)
    with pytest.raises(AuthorizationError):
        await class_service.get_roster(db_session, actor_of(outsider), class_id)
    with pytest.raises(AuthorizationError):
        await class_service.get_roster(db_session, student_actor, class_id)


@pytest.mark.asyncio
async def test_class_with_evaluations_cannot_be_deleted(
    db_session: AsyncSession, make_evaluation, classroom, admin, actor_of
) -> None:
    await make_evaluation(EvaluationKind.NUMERIC)
    with pytest.raises(RestrictedDeleteError):
        await class_service.delete_class(db_session, actor_of(admin), classroom["class"].id)


@pytest.mark.asyncio
async def test_course_with_classes_cannot_be_deleted(db_session: AsyncSession, classroom, course, admin, actor_of) -> None:
    with pytest.raises(RestrictedDeleteError):
        await course_service.delete_course(db_session, actor_of(admin), course.id)
