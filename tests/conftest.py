import os

# Must be set before the application modules read their settings
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from demo_attendance.database import Base, get_db
from demo_attendance.main import app
from demo_attendance.services.auth import create_access_token
import demo_attendance.models  # noqa: F401


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def add_rows(session_factory):
    """Insert rows in their own session and hand them back with ids set."""
    async def _add(*rows):
        async with session_factory() as session:
            session.add_all(rows)
            await session.commit()
        return rows if len(rows) > 1 else rows[0]
    return _add


@pytest.fixture
def fetch(session_factory):
    async def _fetch(model, pk):
        async with session_factory() as session:
            return await session.get(model, pk)
    return _fetch


@pytest.fixture
def make_headers():
    def _make(role="admin", user_id="admin-1", assistant_id=None):
        claims = {"sub": user_id, "role": role}
        if assistant_id is not None:
            claims["assistant_id"] = str(assistant_id)
        return {"Authorization": f"Bearer {create_access_token(claims)}"}
    return _make


@pytest.fixture
def staff_headers(make_headers):
    return make_headers()


@pytest.fixture
def student_headers(make_headers):
    def _make(student_id):
        return make_headers(role="student", user_id=f"student-user-{student_id}", assistant_id=student_id)
    return _make
