import itertools
import os
import tempfile
from typing import AsyncGenerator, Callable, Dict

# Settings are read at import time; configure before importing the app.
_TEST_DIR = tempfile.mkdtemp(prefix="secretaria-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TEST_DIR}/default.db")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("STORAGE_DIR", os.path.join(_TEST_DIR, "storage"))
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ.pop("RESEND_API_KEY", None)
os.environ.pop("ADMIN_EMAIL", None)
os.environ.pop("ADMIN_PASSWORD", None)

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.auth.models import User
from app.auth.schemas import CurrentUser
from app.auth.security import create_access_token, hash_password
from app.core.email import drain_notifications
from app.core.enums import EvaluationKind, UserRole
from app.core.models import ClassStudent, ClassTeacher, Course, Discipline, Evaluation, SchoolClass
from app.core.storage import ArtifactStorage, get_storage
from app.db.session import Base, get_db
from app.main import app

TEST_PASSWORD = "password123"

# bcrypt is slow on purpose; hash once for all fixture users.
_PASSWORD_HASH = hash_password(TEST_PASSWORD)
_counter = itertools.count(1)


@pytest.fixture(autouse=True)
async def settle_notifications() -> AsyncGenerator[None, None]:
    """Let notifications dispatched by a test finish on its own event loop."""
    yield
    await drain_notifications(timeout=5)


@pytest.fixture()
async def engine(tmp_path):
    """One SQLite file per test so concurrent sessions really hit the same store."""
    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False, future=True)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture()
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture()
def storage(tmp_path) -> ArtifactStorage:
    return ArtifactStorage(str(tmp_path / "storage"))


@pytest.fixture()
async def client(session_factory, storage) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app; each request gets its own session."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture()
def actor_of() -> Callable[[User], CurrentUser]:
    """Build the verified principal a router would pass for user."""

    def _actor(user: User) -> CurrentUser:
        return CurrentUser(id=user.id, role=UserRole(user.role), name=user.name)

    return _actor


@pytest.fixture()
def make_user(db_session: AsyncSession) -> Callable:
    async def _make(role: UserRole = UserRole.STUDENT, **overrides) -> User:
        n = next(_counter)
        fields = dict(
            role=role.value,
            name=f"{role.value.title()} {n}",
            email=f"{role.value}{n}@example.com",
            login=f"{role.value}{n}",
            cpf=f"{n:011d}",
            rg=f"RG{n}",
            phone="(75) 99999-0000",
            address="Rua das Flores, 10",
            password_hash=_PASSWORD_HASH,
        )
        fields.update(overrides)
        user = User(**fields)
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _make


@pytest.fixture()
async def admin(make_user) -> User:
    return await make_user(UserRole.ADMIN)


@pytest.fixture()
async def teacher(make_user) -> User:
    return await make_user(UserRole.TEACHER)


@pytest.fixture()
async def student(make_user) -> User:
    return await make_user(UserRole.STUDENT)


@pytest.fixture()
async def course(db_session: AsyncSession) -> Course:
    obj = Course(name="Análise e Desenvolvimento de Sistemas", duration_semesters=6)
    db_session.add(obj)
    await db_session.commit()
    await db_session.refresh(obj)
    return obj


@pytest.fixture()
async def classroom(db_session: AsyncSession, course: Course, teacher: User, student: User) -> Dict:
    """A class with teacher assigned to one discipline and student on the roster."""
    discipline = Discipline(name="Algoritmos", code="ALG1", workload_hours=60)
    db_session.add(discipline)
    await db_session.flush()
    school_class = SchoolClass(course_id=course.id, name="ADS 2025.1", semester=1, year=2025)
    db_session.add(school_class)
    await db_session.flush()
    db_session.add(ClassTeacher(class_id=school_class.id, teacher_id=teacher.id, discipline_id=discipline.id))
    db_session.add(ClassStudent(class_id=school_class.id, student_id=student.id))
    await db_session.commit()
    return {"class": school_class, "discipline": discipline}


@pytest.fixture()
def make_evaluation(db_session: AsyncSession, classroom: Dict, teacher: User) -> Callable:
    async def _make(kind: EvaluationKind = EvaluationKind.NUMERIC) -> Evaluation:
        evaluation = Evaluation(
            class_id=classroom["class"].id,
            teacher_id=teacher.id,
            discipline_id=classroom["discipline"].id,
            name=f"Prova {kind.value}",
            kind=kind.value,
        )
        db_session.add(evaluation)
        await db_session.commit()
        await db_session.refresh(evaluation)
        return evaluation

    return _make


@pytest.fixture()
def auth_headers() -> Callable[[User], Dict[str, str]]:
    def _headers(user: User) -> Dict[str, str]:
        token = create_access_token(user.id, user.role)
        return {"Authorization": f"Bearer {token}"}

    return _headers
