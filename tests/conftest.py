"""
Pytest configuration for the invoicing backend tests.

Each test gets its own SQLite file so concurrent analytics sessions see
committed data. Email and notification dispatchers are MagicMocks.
"""

import os

# Must be set before the app is imported
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-with-at-least-32-characters"
os.environ["REDIS_URL"] = "redis://localhost:6379/0"

from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Any
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
import pytest_asyncio
from fastapi import Depends
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.database import get_db
from app.core.dependencies import get_redis
from app.core.security import create_access_token
from app.main import app
from app.models import (
    AccountType,
    Base,
    MemberStatus,
    Organization,
    OrganizationStatus,
    OrganizationUser,
    OrgRole,
    User,
)
from app.routers.analytics import get_analytics_service
from app.routers.organizations import get_invitation_service, get_org_service
from app.services.analytics_service import AnalyticsService
from app.services.invitation_service import InvitationService
from app.services.organization_service import OrganizationService


def pytest_configure(config):
    """Configure pytest-asyncio mode."""
    config.addinivalue_line(
        "markers", "asyncio: mark test as async"
    )


class FakeRedis:
    """Token blacklist stand-in for get_redis."""

    def __init__(self) -> None:
        self.keys: set[str] = set()

    async def exists(self, key: str) -> int:
        return int(key in self.keys)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def engine(tmp_path):
    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Side-effect dispatchers and services
# ---------------------------------------------------------------------------

@pytest.fixture
def email_dispatcher() -> MagicMock:
    return MagicMock(name="send_email")


@pytest.fixture
def notification_dispatcher() -> MagicMock:
    return MagicMock(name="notify")


@pytest.fixture
def invitation_service(db, email_dispatcher, notification_dispatcher) -> InvitationService:
    return InvitationService(db=db, send_email=email_dispatcher, notify=notification_dispatcher)


@pytest.fixture
def org_service(db, notification_dispatcher) -> OrganizationService:
    return OrganizationService(db=db, notify=notification_dispatcher)


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

@pytest.fixture
def make_user(db) -> Callable[..., Awaitable[User]]:
    async def _make_user(
        name: str = "Test User",
        email: str | None = None,
        account_type: AccountType = AccountType.INDIVIDUAL,
    ) -> User:
        user = User(
            name=name,
            email=email or f"user_{uuid4().hex[:8]}@example.com",
            account_type=account_type,
        )
        db.add(user)
        await db.commit()
        return user

    return _make_user


@pytest.fixture
def make_org(db) -> Callable[..., Awaitable[Organization]]:
    async def _make_org(
        owner: User,
        name: str = "Acme Inc",
        status: OrganizationStatus = OrganizationStatus.ACTIVE,
        settings: dict[str, Any] | None = None,
    ) -> Organization:
        org = Organization(
            name=name,
            status=status,
            is_subscribed=True,
            settings=settings if settings is not None else {},
            created_by=owner.id,
        )
        db.add(org)
        await db.flush()
        db.add(
            OrganizationUser(
                organization_id=org.id,
                user_id=owner.id,
                email=owner.email,
                role=OrgRole.OWNER,
                status=MemberStatus.ACTIVE,
            )
        )
        await db.commit()
        return org

    return _make_org


@pytest.fixture
def add_member(db) -> Callable[..., Awaitable[OrganizationUser]]:
    async def _add_member(org: Organization, user: User, role: OrgRole = OrgRole.MEMBER) -> OrganizationUser:
        member = OrganizationUser(
            organization_id=org.id,
            user_id=user.id,
            email=user.email,
            role=role,
            status=MemberStatus.ACTIVE,
        )
        db.add(member)
        await db.commit()
        return member

    return _add_member


def auth_headers(user: User, org: Organization | None = None) -> dict[str, str]:
    headers = {"Authorization": f"Bearer {create_access_token(str(user.id))}"}
    if org is not None:
        headers["X-Organization-Id"] = str(org.id)
    return headers


@pytest.fixture
def headers() -> Callable[..., dict[str, str]]:
    return auth_headers


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------

@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest_asyncio.fixture
async def client(
    session_factory, fake_redis, email_dispatcher, notification_dispatcher
) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    def override_invitation_service(session: AsyncSession = Depends(get_db)) -> InvitationService:
        return InvitationService(db=session, send_email=email_dispatcher, notify=notification_dispatcher)

    def override_org_service(session: AsyncSession = Depends(get_db)) -> OrganizationService:
        return OrganizationService(db=session, notify=notification_dispatcher)

    async def override_get_redis() -> FakeRedis:
        return fake_redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    app.dependency_overrides[get_invitation_service] = override_invitation_service
    app.dependency_overrides[get_org_service] = override_org_service
    app.dependency_overrides[get_analytics_service] = lambda: AnalyticsService(session_factory)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
