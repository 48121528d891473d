"""Tests for effective permission resolution."""

import pytest
from sqlalchemy.exc import OperationalError

from crm.auth import store
from crm.auth.errors import InfrastructureFailure
from crm.auth.permissions import ROLE_DEFAULTS, Permission, Role
from crm.auth.resolver import resolve_effective_permissions


@pytest.mark.integration
class TestResolveEffectivePermissions:
    async def test_role_defaults_only(self, db_session, make_user):
        user = await make_user(Role.SALES_REP)

        perms = await resolve_effective_permissions(db_session, user.id)

        assert perms == {p.value for p in ROLE_DEFAULTS[Role.SALES_REP]}

    async def test_union_of_role_and_user_grants(self, db_session, make_user):
        user = await make_user(Role.SALES_REP)
        await store.set_user_permission(db_session, user.id, Permission.REPORTS_READ)
        await db_session.commit()

        perms = await resolve_effective_permissions(db_session, user.id)

        assert "reports:read" in perms
        assert "accounts:read" in perms

    async def test_revoked_user_grant_does_not_count(self, db_session, make_user):
        user = await make_user(Role.SUPPORT)
        await store.set_user_permission(db_session, user.id, Permission.REPORTS_READ, granted=False)
        await db_session.commit()

        assert "reports:read" not in await resolve_effective_permissions(db_session, user.id)

    async def test_user_row_cannot_remove_a_role_grant(self, db_session, make_user):
        user = await make_user(Role.SALES_REP)
        await store.set_user_permission(db_session, user.id, Permission.ACCOUNTS_READ, granted=False)
        await db_session.commit()

        assert "accounts:read" in await resolve_effective_permissions(db_session, user.id)

    async def test_role_revoke_applies_to_every_user_of_the_role(self, db_session, make_user):
        first = await make_user(Role.SALES_REP)
        second = await make_user(Role.SALES_REP)
        assert "deals:write" in await resolve_effective_permissions(db_session, first.id)

        await store.upsert_role_permission(
            db_session, Role.SALES_REP, Permission.DEALS_WRITE, granted=False
        )
        await db_session.commit()

        assert "deals:write" not in await resolve_effective_permissions(db_session, first.id)
        assert "deals:write" not in await resolve_effective_permissions(db_session, second.id)

    async def test_unrecognized_role_resolves_to_user_grants_only(self, db_session, make_user):
        user = await make_user("WIZARD")
        await store.set_user_permission(db_session, user.id, Permission.TASKS_READ)
        await db_session.commit()

        assert await resolve_effective_permissions(db_session, user.id) == {"tasks:read"}

    async def test_missing_user_resolves_to_empty_set(self, db_session):
        assert await resolve_effective_permissions(db_session, "no-such-user") == set()

    async def test_store_failure_raises_instead_of_empty_set(self, db_session, make_user, monkeypatch):
        user = await make_user(Role.SALES_REP)

        async def broken(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("connection refused"))

        monkeypatch.setattr(store, "role_permission_names", broken)

        with pytest.raises(InfrastructureFailure):
            await resolve_effective_permissions(db_session, user.id)
