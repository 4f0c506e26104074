import uuid

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import app.audit.middleware as audit_middleware
from app.auth.dependencies import get_current_user
from app.database import Base, get_db
from app.main import app as fastapi_app
from app.users.models import User, UserRole


class Acting:
    """The user the API sees as authenticated; tests swap it freely."""

    def __init__(self, user: User):
        self.user = user


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_user(session_factory):
    async def _make(username: str, role: UserRole = UserRole.MEMBER, is_active: bool = True) -> User:
        async with session_factory() as session:
            user = User(
                id=uuid.uuid4(),
                username=username,
                email=f"{username}@example.com",
                first_name=username.capitalize(),
                last_name="Test",
                role=role,
                is_active=is_active,
            )
            session.add(user)
            await session.commit()
            return user

    return _make


@pytest.fixture
async def admin(make_user):
    return await make_user("admin", UserRole.ADMIN)


@pytest.fixture
def acting(admin):
    return Acting(admin)


@pytest.fixture
async def client(session_factory, acting, monkeypatch):
    async def _get_db():
        async with session_factory() as session:
            yield session

    async def _current_user():
        return acting.user

    fastapi_app.dependency_overrides[get_db] = _get_db
    fastapi_app.dependency_overrides[get_current_user] = _current_user
    monkeypatch.setattr(audit_middleware, "async_session", session_factory)

    async with AsyncClient(transport=ASGITransport(app=fastapi_app), base_url="http://test") as c:
        yield c

    fastapi_app.dependency_overrides.clear()
