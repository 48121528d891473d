"""Pytest configuration and fixtures for CRM tests.

Every test gets a fresh in-memory SQLite database (aiosqlite) with all
tables created and the default role grants synced, so nothing here needs
PostgreSQL or Redis.
"""

from collections.abc import AsyncGenerator
from datetime import timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import crm.models  # noqa: F401  registers all models
from crm.auth import permission_cache, store
from crm.auth.jwt import create_access_token
from crm.auth.password import hash_password
from crm.auth.permissions import Role
from crm.database import Base, get_db
from crm.main import app
from crm.models.account import Account
from crm.models.business_unit import BusinessUnit
from crm.models.tenant import Tenant, TenantType
from crm.models.user import User

TEST_PASSWORD = "testpassword123"
# Hashed once for the whole run
TEST_PASSWORD_HASH = hash_password(TEST_PASSWORD)


# ── Test Database Setup ──────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine():
    """In-memory database shared by every session of one test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session for seeding and asserting; seeded with the default role grants."""
    async with session_factory() as session:
        await store.sync_role_defaults(session)
        await session.commit()
        yield session


@pytest_asyncio.fixture
async def client(session_factory, db_session) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client whose requests each get their own session, as in production."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                permission_cache.discard_pending(session)
                raise
            await permission_cache.invalidate_pending(session)

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ── Test Data Factories ──────────────────────────────────────────

@pytest.fixture
def make_tenant(db_session: AsyncSession):
    async def _make(name: str = "Acme HQ", type: TenantType = TenantType.HQ) -> Tenant:
        tenant = Tenant(name=name, type=type.value)
        db_session.add(tenant)
        await db_session.commit()
        return tenant

    return _make


@pytest.fixture
def make_business_unit(db_session: AsyncSession):
    async def _make(tenant: Tenant, name: str = "Nairobi Office", manager: User | None = None) -> BusinessUnit:
        business_unit = BusinessUnit(
            name=name, tenant_id=tenant.id, manager_id=manager.id if manager else None
        )
        db_session.add(business_unit)
        await db_session.commit()
        return business_unit

    return _make


@pytest.fixture
def make_user(db_session: AsyncSession):
    counter = {"n": 0}

    async def _make(
        role: Role | str = Role.SALES_REP,
        tenant: Tenant | None = None,
        business_unit: BusinessUnit | None = None,
        status: str = "active",
        email: str | None = None,
    ) -> User:
        counter["n"] += 1
        role_value = role.value if isinstance(role, Role) else role
        user = User(
            email=email or f"{role_value.lower()}{counter['n']}@acme.io",
            hashed_password=TEST_PASSWORD_HASH,
            first_name="Test",
            last_name=f"User{counter['n']}",
            role=role_value,
            status=status,
            tenant_id=tenant.id if tenant else None,
            business_unit_id=business_unit.id if business_unit else None,
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return _make


@pytest.fixture
def make_account(db_session: AsyncSession):
    async def _make(
        tenant: Tenant,
        business_unit: BusinessUnit | None = None,
        manager: User | None = None,
        name: str = "Globex",
    ) -> Account:
        account = Account(
            name=name,
            tenant_id=tenant.id,
            business_unit_id=business_unit.id if business_unit else None,
            account_manager_id=manager.id if manager else None,
        )
        db_session.add(account)
        await db_session.commit()
        return account

    return _make


# ── Auth Helpers ─────────────────────────────────────────────────

def token_for(user: User, expires_delta: timedelta | None = None) -> str:
    return create_access_token(user_id=user.id, email=user.email, expires_delta=expires_delta)


@pytest.fixture
def auth_headers():
    """Build bearer headers for a user: auth_headers(user)."""
    def _headers(user: User, expires_delta: timedelta | None = None) -> dict:
        return {"Authorization": f"Bearer {token_for(user, expires_delta)}"}

    return _headers


# ── Two-tenant world used by the gate tests ──────────────────────

@pytest_asyncio.fixture
async def world(make_tenant, make_business_unit, make_user, make_account):
    """Two tenants; T1 has two business units, reps, a manager and accounts.

    Returned as a plain dict so tests read like the scenario they check.
    """
    t1 = await make_tenant("Acme HQ", TenantType.HQ)
    t2 = await make_tenant("Initech Sales", TenantType.SALES_OFFICE)
    bu_a = await make_business_unit(t1, "Nairobi Office")
    bu_b = await make_business_unit(t1, "Kampala Office")
    bu_t2 = await make_business_unit(t2, "Lagos Office")

    rep = await make_user(Role.SALES_REP, t1, bu_a)
    other_rep = await make_user(Role.SALES_REP, t1, bu_a)
    manager = await make_user(Role.SALES_MANAGER, t1, bu_a)
    tenant_admin = await make_user(Role.TENANT_ADMIN, t1)
    admin = await make_user(Role.SYSTEM_ADMIN)
    t2_rep = await make_user(Role.SALES_REP, t2, bu_t2)

    return {
        "t1": t1,
        "t2": t2,
        "bu_a": bu_a,
        "bu_b": bu_b,
        "bu_t2": bu_t2,
        "rep": rep,
        "other_rep": other_rep,
        "manager": manager,
        "tenant_admin": tenant_admin,
        "admin": admin,
        "t2_rep": t2_rep,
        # Account X: another rep's. Account Y: the rep's own.
        "account_x": await make_account(t1, bu_a, other_rep, "Account X"),
        "account_y": await make_account(t1, bu_a, rep, "Account Y"),
        "account_sibling": await make_account(t1, bu_b, None, "Sibling BU Account"),
        "account_t2": await make_account(t2, bu_t2, t2_rep, "Tenant Two Account"),
    }
