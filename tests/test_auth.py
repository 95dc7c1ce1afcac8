from datetime import datetime, timezone
from uuid import UUID

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User
from app.auth.security import create_access_token
from app.db.seed_admin import seed_admin


@pytest.mark.asyncio
async def test_login_with_login(client: AsyncClient, student: User) -> None:
    response = await client.post("/api/v1/auth/login", json={"login": student.login, "password": "password123"})
    assert response.status_code == 200
    data = response.json()

    assert data["token_type"] == "bearer"
    assert data["access_token"]
    assert UUID(data["user"]["id"]) == student.id
    assert data["user"]["role"] == "student"


@pytest.mark.asyncio
async def test_login_with_email_is_case_insensitive(client: AsyncClient, teacher: User) -> None:
    response = await client.post(
        "/api/v1/auth/login", json={"email": teacher.email.upper(), "password": "password123"}
    )
    assert response.status_code == 200
    assert response.json()["user"]["login"] == teacher.login


@pytest.mark.asyncio
async def test_login_wrong_password(client: AsyncClient, student: User) -> None:
    response = await client.post("/api/v1/auth/login", json={"login": student.login, "password": "wrong-pass"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid credentials"


@pytest.mark.asyncio
async def test_login_unknown_user(client: AsyncClient) -> None:
    response = await client.post("/api/v1/auth/login", json={"login": "nobody", "password": "password123"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_login_requires_an_identifier(client: AsyncClient) -> None:
    response = await client.post("/api/v1/auth/login", json={"password": "password123"})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_me_returns_role_from_the_database(client: AsyncClient, admin: User) -> None:
    login = await client.post("/api/v1/auth/login", json={"login": admin.login, "password": "password123"})
    token = login.json()["access_token"]

    response = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200
    assert response.json() == {"id": str(admin.id), "role": "admin", "name": admin.name}


@pytest.mark.asyncio
async def test_deleted_user_token_is_rejected(
    client: AsyncClient, db_session: AsyncSession, student: User, auth_headers
) -> None:
    headers = auth_headers(student)
    student.deleted_at = datetime.now(timezone.utc)
    await db_session.commit()

    response = await client.get("/api/v1/auth/me", headers=headers)
    assert response.status_code == 401

    response = await client.post("/api/v1/auth/login", json={"login": student.login, "password": "password123"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_garbage_token_is_rejected(client: AsyncClient) -> None:
    response = await client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_oauth_form_login(client: AsyncClient, student: User) -> None:
    response = await client.post(
        "/api/v1/auth/login-oauth", data={"username": student.login, "password": "password123"}
    )
    assert response.status_code == 200
    assert response.json()["token_type"] == "bearer"


@pytest.mark.asyncio
async def test_seed_admin_creates_one_admin(client: AsyncClient, db_session: AsyncSession) -> None:
    created = await seed_admin(db_session, email="Secretaria@Example.com", password="bootstrap-pass")
    assert created is not None
    assert created.role == "admin"

    assert await seed_admin(db_session, email="other@example.com", password="bootstrap-pass") is None

    response = await client.post(
        "/api/v1/auth/login", json={"email": "secretaria@example.com", "password": "bootstrap-pass"}
    )
    assert response.status_code == 200
    assert response.json()["user"]["role"] == "admin"


@pytest.mark.asyncio
async def test_seed_admin_without_credentials(db_session: AsyncSession) -> None:
    assert await seed_admin(db_session, email=None, password=None) is None


@pytest.mark.asyncio
async def test_expired_token_is_rejected(client: AsyncClient, student: User) -> None:
    token = create_access_token(student.id, student.role, expires_minutes=-1)
    response = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
