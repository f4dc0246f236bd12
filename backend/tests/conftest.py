"""Pytest configuration and fixtures for the SGG actions tests.

Every test gets its own file-backed SQLite database (aiosqlite) and a fresh
application built by `create_app()`. Fixtures seed data through short-lived
sessions that commit and close, so the app's own sessions never wait on a
lock held by the test.
"""

from collections.abc import AsyncGenerator
from datetime import date, timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.auth.jwt import create_access_token
from app.auth.password import hash_password
from app.config import Settings
from app.main import create_app
from app.models.action import Action
from app.models.ministry import Ministry
from app.models.permission import PermissionGroup, UserMinistryPermission
from app.models.team_member import TeamMember
from app.models.user import User, UserRole

TEST_PASSWORD = "motdepasse-2026"


# ── Application / database ───────────────────────────────────────

@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        environment="test",
        log_level="WARNING",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'sgg_test.db'}",
    )


@pytest_asyncio.fixture
async def app(test_settings):
    application = create_app(test_settings)
    await application.state.database.create_all()
    yield application
    await application.state.database.dispose()


@pytest.fixture
def sessions(app) -> async_sessionmaker:
    """Session factory bound to the test database."""
    return app.state.database.sessionmaker


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


# ── Factories ────────────────────────────────────────────────────

@pytest.fixture
def make_user(sessions):
    async def _make(
        email: str,
        name: str | None = None,
        role: UserRole = UserRole.USER,
        is_super_admin: bool = False,
        is_active: bool = True,
    ) -> User:
        async with sessions() as s:
            user = User(
                name=name or email.split("@")[0].replace(".", " ").title(),
                email=email,
                hashed_password=hash_password(TEST_PASSWORD),
                role=role.value,
                is_super_admin=is_super_admin,
                is_active=is_active,
            )
            s.add(user)
            await s.commit()
            return user

    return _make


@pytest.fixture
def grant(sessions):
    """Insert a permission row; unspecified capabilities stay False."""

    async def _grant(user: User, ministry: Ministry, **caps) -> UserMinistryPermission:
        async with sessions() as s:
            row = UserMinistryPermission(user_id=user.id, ministry_id=ministry.id, **caps)
            s.add(row)
            await s.commit()
            return row

    return _grant


@pytest.fixture
def make_action(sessions):
    counter = {"n": 0}

    async def _make(ministry: Ministry, **fields) -> Action:
        counter["n"] += 1
        values = {
            "action_code": f"ACT-{date.today().year}-{counter['n']:04d}",
            "action_title": f"Action {counter['n']}",
            "responsible": "Awa Ndiaye",
            "priority": "medium",
            "status": "new",
            "start_date": date.today(),
            "end_date": date.today() + timedelta(days=30),
            "stakeholders": [],
        }
        values.update(fields)
        async with sessions() as s:
            action = Action(ministry_id=ministry.id, **values)
            s.add(action)
            await s.commit()
            return action

    return _make


@pytest.fixture
def make_member(sessions):
    async def _make(name: str, ministry: Ministry | None = None, **fields) -> TeamMember:
        async with sessions() as s:
            member = TeamMember(
                name=name, ministry_id=ministry.id if ministry else None, **fields
            )
            s.add(member)
            await s.commit()
            return member

    return _make


# ── Test data ────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def ministries(sessions) -> dict[str, Ministry]:
    async with sessions() as s:
        rows = {
            "Finance": Ministry(name="Finance", abbrev="FIN"),
            "Santé": Ministry(name="Santé", abbrev="SAN"),
            "Justice": Ministry(name="Justice", abbrev="JUS"),
        }
        s.add_all(rows.values())
        await s.commit()
        return rows


@pytest_asyncio.fixture
async def finance(ministries) -> Ministry:
    return ministries["Finance"]


@pytest_asyncio.fixture
async def permission_groups(sessions) -> None:
    async with sessions() as s:
        s.add_all([
            PermissionGroup(
                name="viewer",
                description="Read only",
                permissions={"can_view_actions": True, "can_view_team": True},
            ),
            PermissionGroup(
                name="editor",
                description="Create and edit",
                permissions={
                    "can_view_actions": True,
                    "can_create_actions": True,
                    "can_edit_actions": True,
                },
            ),
        ])
        await s.commit()


@pytest_asyncio.fixture
async def admin_user(make_user) -> User:
    return await make_user("admin@sgg.gov.sn", name="Admin SGG", role=UserRole.ADMIN)


@pytest_asyncio.fixture
async def regular_user(make_user) -> User:
    return await make_user("fatou.diop@sgg.gov.sn", name="Fatou Diop")


# ── Tokens ───────────────────────────────────────────────────────

def headers_for(user: User) -> dict:
    token = create_access_token(
        user_id=user.id, role=user.role, is_super_admin=user.is_super_admin
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_for():
    """Build bearer headers for any user."""
    return headers_for


@pytest.fixture
def admin_headers(admin_user: User) -> dict:
    return headers_for(admin_user)


@pytest.fixture
def user_headers(regular_user: User) -> dict:
    return headers_for(regular_user)


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "api: HTTP-level tests through the ASGI app")
