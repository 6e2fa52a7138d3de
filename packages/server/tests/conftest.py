"""
Shared fixtures: in-memory SQLite store, seeded tenants, HTTP client.
"""

import os

os.environ.setdefault("DOCIFY_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("DOCIFY_SECRET_KEY", "test-secret-key-with-enough-bytes-for-hs256")
os.environ.setdefault("DOCIFY_IDENTITY_WEBHOOK_SECRET", "test-webhook-secret")
os.environ.setdefault("DOCIFY_LOG_FORMAT", "text")

import uuid
from typing import Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from app.core.auth import create_identity_token
from app.core.database import get_session
from app.main import app
from app.models import Organization, Project, ProjectMembership, User


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


class Seeder:
    """Creates committed rows for a test."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _save(self, row):
        self.session.add(row)
        await self.session.commit()
        return row

    async def org(self, slug: str = "acme") -> Organization:
        return await self._save(Organization(name=slug.title(), slug=slug))

    async def user(
        self,
        org: Optional[Organization],
        role: str = "user",
        external_id: Optional[str] = None,
    ) -> User:
        external_id = external_id or f"ext_{uuid.uuid4().hex[:12]}"
        return await self._save(
            User(
                external_id=external_id,
                email=f"{external_id}@example.com",
                display_name=external_id,
                role=role,
                org_id=org.id if org else None,
            )
        )

    async def project(self, org: Organization, slug: str = "handbook", status: str = "active") -> Project:
        return await self._save(Project(org_id=org.id, name=slug.title(), slug=slug, status=status))

    async def member(self, user: User, project: Project, role: str = "member") -> ProjectMembership:
        return await self._save(ProjectMembership(user_id=user.id, project_id=project.id, role=role))


@pytest.fixture
def seed(session) -> Seeder:
    return Seeder(session)


def _bearer(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_identity_token(user.external_id)}"}


@pytest.fixture
def auth_headers():
    """Build an Authorization header carrying a user's identity token."""
    return _bearer


@pytest.fixture
async def client(session_factory):
    async def _get_session():
        async with session_factory() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    app.dependency_overrides[get_session] = _get_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
