import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.users import service
from app.api.v1.users.schemas import UserCreate
from app.core.enums import UserRole
from app.core.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError


def _payload(**overrides) -> dict:
    data = {
        "role": "student",
        "name": "Joana Silva",
        "email": "joana@example.com",
        "login": "joana",
        "cpf": "123.456.789-01",
        "rg": "1234567",
        "phone": "(75) 98888-7777",
        "address": "Av. Getúlio Vargas, 100",
        "password": "password123",
    }
    data.update(overrides)
    return data


@pytest.mark.asyncio
async def test_admin_creates_user_with_normalized_cpf(client: AsyncClient, admin, auth_headers) -> None:
    response = await client.post("/api/v1/users", json=_payload(), headers=auth_headers(admin))
    assert response.status_code == 201
    data = response.json()
    assert data["cpf"] == "12345678901"
    assert data["role"] == "student"
    assert "password" not in data
    assert "password_hash" not in data

    login = await client.post("/api/v1/auth/login", json={"login": "joana", "password": "password123"})
    assert login.status_code == 200


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides",
    [
        {"login": "other"},
        {"email": "other@example.com"},
        {"email": "other@example.com", "login": "other"},
    ],
)
async def test_duplicate_identity_fields_conflict(client: AsyncClient, admin, auth_headers, overrides) -> None:
    first = await client.post("/api/v1/users", json=_payload(), headers=auth_headers(admin))
    assert first.status_code == 201

    # Every variant still shares at least the CPF with the first user.
    response = await client.post(
        "/api/v1/users", json=_payload(cpf="12345678901", **overrides), headers=auth_headers(admin)
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_non_admin_cannot_manage_users(client: AsyncClient, teacher, student, auth_headers) -> None:
    for user in (teacher, student):
        response = await client.post("/api/v1/users", json=_payload(), headers=auth_headers(user))
        assert response.status_code == 403
        response = await client.get("/api/v1/users", headers=auth_headers(user))
        assert response.status_code == 403


@pytest.mark.asyncio
async def test_invalid_cpf_is_rejected(db_session: AsyncSession, admin, actor_of) -> None:
    payload = UserCreate(**_payload(cpf="123.456.789-0X"))
    with pytest.raises(ValidationError):
        await service.create_user(db_session, actor_of(admin), payload)


@pytest.mark.asyncio
async def test_soft_deleted_identity_can_be_reused(db_session: AsyncSession, admin, actor_of) -> None:
    actor = actor_of(admin)
    created = await service.create_user(db_session, actor, UserCreate(**_payload()))
    await service.delete_user(db_session, actor, created.id)

    with pytest.raises(NotFoundError):
        await service.get_user(db_session, actor, created.id)
    again = await service.create_user(db_session, actor, UserCreate(**_payload()))
    assert again.id != created.id

    with pytest.raises(ConflictError):
        await service.create_user(db_session, actor, UserCreate(**_payload(login="someone-else")))


@pytest.mark.asyncio
async def test_list_users_by_role(db_session: AsyncSession, admin, teacher, student, actor_of) -> None:
    teachers = await service.list_users(db_session, actor_of(admin), role=UserRole.TEACHER)
    assert [u.id for u in teachers] == [teacher.id]

    with pytest.raises(AuthorizationError):
        await service.list_users(db_session, actor_of(student))


@pytest.mark.asyncio
async def test_update_user_email_conflict(client: AsyncClient, admin, teacher, student, auth_headers) -> None:
    response = await client.patch(
        f"/api/v1/users/{student.id}", json={"email": teacher.email}, headers=auth_headers(admin)
    )
    assert response.status_code == 409

    response = await client.patch(
        f"/api/v1/users/{student.id}", json={"phone": "(75) 91234-5678"}, headers=auth_headers(admin)
    )
    assert response.status_code == 200
    assert response.json()["phone"] == "(75) 91234-5678"
