"""
Shared test fixtures for the Cash-Flow Ledger test suite.

Every test gets a fresh in-memory SQLite database (aiosqlite + AsyncSession)
and an httpx AsyncClient wired to the app with ``get_db`` overridden.
"""

import os
import sys
import uuid
from typing import AsyncGenerator, Awaitable, Callable

import pytest

# Ensure project root is importable
ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

# Override environment BEFORE importing application modules
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["CORS_ORIGINS"] = '["*"]'
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SECRET_KEY"] = "test-secret-key-for-the-ledger-suite"

from httpx import ASGITransport, AsyncClient
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import (AsyncEngine, AsyncSession,
                                    async_sessionmaker, create_async_engine)
from sqlalchemy.pool import StaticPool

from cashflow.api.v1.deps import get_db
from cashflow.core.enums import AppRole
from cashflow.core.permissions import Actor
from cashflow.core.security import create_access_token
from cashflow.db.base import Base
from cashflow.db.session import enable_sqlite_foreign_keys
from cashflow.main import app
from cashflow.models.user import UserRole
from cashflow.services import directory

DEFAULT_PASSWORD = "secret123"


@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create all tables on a private in-memory database, dispose afterwards."""
    test_engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(test_engine)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Return a raw database session for direct service calls in tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def async_client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Return a httpx AsyncClient wired to the app."""

    async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


# ── Users ───────────────────────────────────────────────────────────
@pytest.fixture
def make_user(session_factory) -> Callable[..., Awaitable[Actor]]:
    """Factory: register an account and force its single role.

    The bootstrap rule would make the first account admin; passing *role*
    replaces whatever the rule assigned.
    """

    async def _make(
        role: AppRole | None = None,
        email: str | None = None,
        password: str = DEFAULT_PASSWORD,
        full_name: str | None = None,
    ) -> Actor:
        email = email or f"user-{uuid.uuid4().hex[:8]}@ledger.test"
        async with session_factory() as db:
            user, assigned = await directory.register_user(db, email, password, full_name)
            if role is not None and role is not assigned:
                await db.execute(delete(UserRole).where(UserRole.user_id == user.id))
                db.add(UserRole(user_id=user.id, role=role))
                await db.commit()
            return Actor(user_id=user.id, email=user.email, roles=frozenset({role or assigned}))

    return _make


@pytest.fixture
def auth_headers() -> Callable[[Actor], dict[str, str]]:
    def _headers(actor: Actor) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(actor.user_id)}"}

    return _headers
