"""
Test fixtures for the CRM access API.

API tests run in-process: the FastAPI app is driven through
``httpx.ASGITransport`` and ``get_db`` is pointed at a fresh in-memory SQLite
database for every test.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

import httpx
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import crm_access.models  # noqa: F401
from crm_access.catalog import FieldAccess, ModuleAccess
from crm_access.database import Base, get_db
from crm_access.main import app
from crm_access.middleware.auth import create_access_token, hash_password
from crm_access.models.role import Role
from crm_access.models.user import User
from crm_access.services import role_store

BASE_URL = "http://testserver"
PASSWORD = "admin123"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def auth_headers(username: str) -> dict:
    """Bearer header for *username*, without going through /login."""
    return {"Authorization": f"Bearer {create_access_token({'sub': username})}"}


async def add_user(session_factory, username, role="user", role_id=None, **extra):
    async with session_factory() as session:
        user = User(
            username=username,
            email=extra.pop("email", f"{username}@crm.test"),
            full_name=extra.pop("full_name", username.title()),
            password_hash=hash_password(extra.pop("password", PASSWORD)),
            role=role,
            role_id=role_id,
            **extra,
        )
        session.add(user)
        await session.commit()
        return user


async def add_role(session_factory, name, modules=(), fields=(), legacy_role=None):
    async with session_factory() as session:
        role = Role(name=name, legacy_role=legacy_role)
        for key, access in modules:
            role_store.set_module_permission(role, key, ModuleAccess(access))
        for key, access in fields:
            role_store.set_field_permission(role, key, FieldAccess(access))
        session.add(role)
        await session.commit()
        return role


# ---------------------------------------------------------------------------
# Database / client
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def client(session_factory):
    """Async HTTP client bound to the app, using the test database."""

    async def _get_test_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_test_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url=BASE_URL, timeout=30.0) as c:
        yield c
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def sales_role(session_factory):
    """'sales-rep': customers visible, a few field overrides."""
    return await add_role(
        session_factory,
        "sales-rep",
        modules=[("customers", "visible"), ("dashboard", "visible")],
        fields=[
            ("first_name", "editable"),
            ("last_name", "editable"),
            ("country", "editable"),
            ("phone", "editable"),
            ("email", "readonly"),
            ("national_id", "hidden"),
        ],
    )


@pytest_asyncio.fixture
async def admin_user(session_factory):
    """Legacy admin, no role assigned."""
    return await add_user(session_factory, "dmitry", role="admin")


@pytest_asyncio.fixture
async def sales_user(session_factory, sales_role):
    return await add_user(session_factory, "jana", role="user", role_id=sales_role.id)


@pytest_asyncio.fixture
async def plain_user(session_factory):
    """Non-admin without a role: readonly everywhere, no modules."""
    return await add_user(session_factory, "sarah", role="user")


@pytest_asyncio.fixture
async def admin_headers(admin_user):
    return auth_headers(admin_user.username)


@pytest_asyncio.fixture
async def sales_headers(sales_user):
    return auth_headers(sales_user.username)


@pytest_asyncio.fixture
async def plain_headers(plain_user):
    return auth_headers(plain_user.username)
