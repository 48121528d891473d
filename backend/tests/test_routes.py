"""Route-level tests: list scoping, tenant pinning and business rules."""

import pytest
from sqlalchemy import func, select

from crm.auth import store
from crm.auth.permissions import Permission
from crm.models.account import Account
from crm.models.deal import Deal
from crm.models.permission import UserPermission
from crm.routers import health


def _code(response) -> str:
    return response.json()["error"]["code"]


def _names(response) -> set[str]:
    return {item["name"] for item in response.json()["items"]}


# ── Accounts ─────────────────────────────────────────────────────

@pytest.mark.integration
class TestAccountRoutes:
    async def test_list_is_scoped_like_single_reads(self, client, world, auth_headers):
        rep = await client.get("/api/accounts/", headers=auth_headers(world["rep"]))
        manager = await client.get("/api/accounts/", headers=auth_headers(world["manager"]))
        admin = await client.get("/api/accounts/", headers=auth_headers(world["admin"]))

        assert _names(rep) == {"Account Y"}
        assert _names(manager) == {"Account X", "Account Y"}
        assert admin.json()["total"] == 4

    async def test_search_filter(self, client, world, auth_headers):
        resp = await client.get(
            "/api/accounts/", params={"search": "sibling"}, headers=auth_headers(world["tenant_admin"])
        )
        assert _names(resp) == {"Sibling BU Account"}

    async def test_manager_create_is_pinned_to_tenant_and_unit(self, client, world, auth_headers):
        resp = await client.post(
            "/api/accounts/", json={"name": "Umbrella"}, headers=auth_headers(world["manager"])
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["tenant_id"] == world["t1"].id
        assert body["business_unit_id"] == world["bu_a"].id

        # The creator can read what they created
        get = await client.get(f"/api/accounts/{body['id']}", headers=auth_headers(world["manager"]))
        assert get.status_code == 200

    async def test_create_in_another_tenant_is_denied(self, client, world, auth_headers):
        resp = await client.post(
            "/api/accounts/",
            json={"name": "Elsewhere", "tenant_id": world["t2"].id},
            headers=auth_headers(world["manager"]),
        )
        assert resp.status_code == 403
        assert _code(resp) == "RESOURCE_ACCESS_DENIED"

    async def test_reference_to_other_tenant_is_rejected(self, client, world, auth_headers):
        resp = await client.post(
            "/api/accounts/",
            json={"name": "Mixed", "account_manager_id": world["t2_rep"].id},
            headers=auth_headers(world["tenant_admin"]),
        )
        assert resp.status_code == 400
        assert _code(resp) == "BUSINESS_RULE_VIOLATION"

    async def test_system_admin_must_name_tenant(self, client, world, auth_headers):
        resp = await client.post(
            "/api/accounts/", json={"name": "Nowhere"}, headers=auth_headers(world["admin"])
        )
        assert resp.status_code == 400

        resp = await client.post(
            "/api/accounts/",
            json={"name": "Somewhere", "tenant_id": world["t2"].id},
            headers=auth_headers(world["admin"]),
        )
        assert resp.status_code == 201
        assert resp.json()["tenant_id"] == world["t2"].id

    async def test_update_and_delete(self, client, world, auth_headers):
        headers = auth_headers(world["manager"])
        account_id = world["account_x"].id

        resp = await client.put(f"/api/accounts/{account_id}", json={"status": "inactive"}, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["status"] == "inactive"

        assert (await client.delete(f"/api/accounts/{account_id}", headers=headers)).status_code == 204
        assert (await client.get(f"/api/accounts/{account_id}", headers=headers)).status_code == 404


# ── Tenants ──────────────────────────────────────────────────────

@pytest.mark.integration
class TestTenantRoutes:
    async def test_create_requires_unique_name(self, client, world, auth_headers):
        headers = auth_headers(world["admin"])
        resp = await client.post(
            "/api/tenants/", json={"name": "Hooli", "type": "SALES_OFFICE"}, headers=headers
        )
        assert resp.status_code == 201
        assert resp.json()["business_units"] == 0

        dup = await client.post(
            "/api/tenants/", json={"name": "Hooli", "type": "HQ"}, headers=headers
        )
        assert dup.status_code == 400
        assert _code(dup) == "BUSINESS_RULE_VIOLATION"

    async def test_type_must_be_known(self, client, world, auth_headers):
        resp = await client.post(
            "/api/tenants/", json={"name": "Odd", "type": "BRANCH"}, headers=auth_headers(world["admin"])
        )
        assert resp.status_code == 422

    async def test_tenant_with_business_units_cannot_be_deleted(self, client, world, auth_headers):
        headers = auth_headers(world["admin"])
        resp = await client.delete(f"/api/tenants/{world['t1'].id}", headers=headers)
        assert resp.status_code == 400

        empty = await client.post(
            "/api/tenants/", json={"name": "Empty Co", "type": "SALES_OFFICE"}, headers=headers
        )
        resp = await client.delete(f"/api/tenants/{empty.json()['id']}", headers=headers)
        assert resp.status_code == 204

    async def test_tenant_admin_sees_only_own_tenant(self, client, world, auth_headers):
        resp = await client.get("/api/tenants/", headers=auth_headers(world["tenant_admin"]))
        assert resp.status_code == 200
        assert _names(resp) == {"Acme HQ"}
        assert resp.json()["items"][0]["business_units"] == 2

    async def test_non_admin_cannot_create_tenant(self, client, world, auth_headers):
        resp = await client.post(
            "/api/tenants/", json={"name": "Rogue", "type": "HQ"}, headers=auth_headers(world["tenant_admin"])
        )
        assert resp.status_code == 403


# ── Business units ───────────────────────────────────────────────

@pytest.mark.integration
class TestBusinessUnitRoutes:
    async def test_list_and_get_need_tenant_membership(self, client, world, auth_headers):
        headers = auth_headers(world["tenant_admin"])
        resp = await client.get("/api/business-units/", headers=headers)
        assert _names(resp) == {"Nairobi Office", "Kampala Office"}

        other = await client.get(f"/api/business-units/{world['bu_t2'].id}", headers=headers)
        assert other.status_code == 404

    async def test_unit_with_users_cannot_be_deleted(self, client, world, auth_headers):
        headers = auth_headers(world["admin"])
        resp = await client.delete(f"/api/business-units/{world['bu_a'].id}", headers=headers)
        assert resp.status_code == 400


# ── Users ────────────────────────────────────────────────────────

@pytest.mark.integration
class TestUserRoutes:
    async def test_only_system_admin_creates_users(self, client, world, auth_headers):
        payload = {
            "email": "New.Rep@Acme.io",
            "password": "longenough",
            "first_name": "New",
            "last_name": "Rep",
            "role": "SALES_REP",
            "tenant_id": world["t1"].id,
            "business_unit_id": world["bu_a"].id,
        }
        denied = await client.post("/api/users/", json=payload, headers=auth_headers(world["tenant_admin"]))
        assert denied.status_code == 403
        assert _code(denied) == "INSUFFICIENT_PERMISSIONS"

        created = await client.post("/api/users/", json=payload, headers=auth_headers(world["admin"]))
        assert created.status_code == 201
        assert created.json()["email"] == "new.rep@acme.io"

        login = await client.post(
            "/api/auth/login", json={"email": "new.rep@acme.io", "password": "longenough"}
        )
        assert login.status_code == 200

    async def test_user_needs_tenant_unless_system_admin(self, client, world, auth_headers):
        resp = await client.post(
            "/api/users/",
            json={
                "email": "floater@acme.io",
                "password": "longenough",
                "first_name": "Flo",
                "last_name": "Ater",
                "role": "SALES_REP",
            },
            headers=auth_headers(world["admin"]),
        )
        assert resp.status_code == 400

    async def test_user_with_business_unit_cannot_be_deleted(self, client, world, auth_headers):
        headers = auth_headers(world["admin"])
        resp = await client.delete(f"/api/users/{world['other_rep'].id}", headers=headers)
        assert resp.status_code == 400

        await client.put(
            f"/api/users/{world['tenant_admin'].id}", json={"status": "inactive"}, headers=headers
        )
        resp = await client.delete(f"/api/users/{world['tenant_admin'].id}", headers=headers)
        assert resp.status_code == 204

    async def test_contributor_lists_only_self(self, client, world, auth_headers, db_session):
        await store.set_user_permission(db_session, world["rep"].id, Permission.USERS_READ)
        await db_session.commit()

        resp = await client.get("/api/users/", headers=auth_headers(world["rep"]))
        assert [u["id"] for u in resp.json()["items"]] == [world["rep"].id]

    async def test_permission_is_checked_before_role(self, client, world, auth_headers, db_session):
        payload = {"status": "inactive"}
        url = f"/api/users/{world['rep'].id}"

        # Lacks users:write: refused at the permission stage
        resp = await client.put(url, json=payload, headers=auth_headers(world["tenant_admin"]))
        assert resp.status_code == 403
        assert resp.json()["error"]["message"] == "Insufficient permissions: requires users:write"

        await store.set_user_permission(db_session, world["tenant_admin"].id, Permission.USERS_WRITE)
        await db_session.commit()

        # Holds users:write but is not SYSTEM_ADMIN: refused at the role stage
        resp = await client.put(url, json=payload, headers=auth_headers(world["tenant_admin"]))
        assert resp.status_code == 403
        assert _code(resp) == "INSUFFICIENT_PERMISSIONS"
        assert "system administrators" in resp.json()["error"]["message"]

    async def test_missing_user_is_not_found_for_system_admin(self, client, world, auth_headers):
        resp = await client.put(
            "/api/users/no-such-user", json={"status": "inactive"}, headers=auth_headers(world["admin"])
        )
        assert resp.status_code == 404


# ── Customers, deals, tasks ──────────────────────────────────────

@pytest.mark.integration
class TestRecordRoutes:
    async def test_customer_created_in_own_business_unit(self, client, world, auth_headers):
        headers = auth_headers(world["rep"])
        resp = await client.post(
            "/api/customers/",
            json={
                "first_name": "Ada",
                "last_name": "Obi",
                "email": "ada@globex.io",
                "business_unit_id": world["bu_a"].id,
            },
            headers=headers,
        )
        assert resp.status_code == 201
        customer = resp.json()
        assert customer["assigned_to_id"] == world["rep"].id

        assert (await client.get(f"/api/customers/{customer['id']}", headers=headers)).status_code == 200
        other = await client.get(
            f"/api/customers/{customer['id']}", headers=auth_headers(world["t2_rep"])
        )
        assert other.status_code == 404

    async def test_customer_in_other_tenants_unit_is_rejected(self, client, world, auth_headers):
        resp = await client.post(
            "/api/customers/",
            json={
                "first_name": "Bo",
                "last_name": "Li",
                "email": "bo@globex.io",
                "business_unit_id": world["bu_t2"].id,
            },
            headers=auth_headers(world["rep"]),
        )
        assert resp.status_code == 400

    async def test_deal_lifecycle_for_rep(self, client, world, auth_headers):
        headers = auth_headers(world["rep"])
        resp = await client.post(
            "/api/deals/",
            json={"title": "Renewal", "amount": 1200, "account_id": world["account_y"].id},
            headers=headers,
        )
        assert resp.status_code == 201
        deal = resp.json()
        assert deal["assigned_to_id"] == world["rep"].id

        listed = await client.get("/api/deals/", headers=headers)
        assert [d["id"] for d in listed.json()["items"]] == [deal["id"]]

        other = await client.get(f"/api/deals/{deal['id']}", headers=auth_headers(world["other_rep"]))
        assert other.status_code == 403

    async def test_task_lifecycle_for_manager(self, client, world, auth_headers):
        headers = auth_headers(world["manager"])
        resp = await client.post("/api/tasks/", json={"title": "Call back"}, headers=headers)
        assert resp.status_code == 201
        task = resp.json()
        assert task["business_unit_id"] == world["bu_a"].id

        updated = await client.put(f"/api/tasks/{task['id']}", json={"status": "completed"}, headers=headers)
        assert updated.json()["status"] == "completed"
        assert (await client.delete(f"/api/tasks/{task['id']}", headers=headers)).status_code == 204


# ── Writes stay inside the caller's reach ────────────────────────

@pytest.mark.integration
class TestWriteScope:
    async def test_manager_cannot_create_account_in_sibling_unit(
        self, client, world, auth_headers, db_session
    ):
        resp = await client.post(
            "/api/accounts/",
            json={"name": "Sideways", "business_unit_id": world["bu_b"].id},
            headers=auth_headers(world["manager"]),
        )
        assert resp.status_code == 403
        assert _code(resp) == "RESOURCE_ACCESS_DENIED"

        count = await db_session.scalar(
            select(func.count()).select_from(Account).where(Account.name == "Sideways")
        )
        assert count == 0

    async def test_manager_cannot_move_account_to_sibling_unit(
        self, client, world, auth_headers, db_session
    ):
        account_id = world["account_x"].id
        resp = await client.put(
            f"/api/accounts/{account_id}",
            json={"business_unit_id": world["bu_b"].id},
            headers=auth_headers(world["manager"]),
        )
        assert resp.status_code == 403
        assert _code(resp) == "RESOURCE_ACCESS_DENIED"

        unit = await db_session.scalar(select(Account.business_unit_id).where(Account.id == account_id))
        assert unit == world["bu_a"].id

    async def test_manager_cannot_clear_business_unit(self, client, world, auth_headers):
        resp = await client.put(
            f"/api/accounts/{world['account_x'].id}",
            json={"business_unit_id": None},
            headers=auth_headers(world["manager"]),
        )
        assert resp.status_code == 403

    async def test_tenant_admin_may_move_account_between_units(self, client, world, auth_headers):
        resp = await client.put(
            f"/api/accounts/{world['account_x'].id}",
            json={"business_unit_id": world["bu_b"].id},
            headers=auth_headers(world["tenant_admin"]),
        )
        assert resp.status_code == 200
        assert resp.json()["business_unit_id"] == world["bu_b"].id

    async def test_rep_cannot_attach_deal_to_unreachable_account(
        self, client, world, auth_headers, db_session
    ):
        resp = await client.post(
            "/api/deals/",
            json={"title": "Poached", "account_id": world["account_x"].id},
            headers=auth_headers(world["rep"]),
        )
        assert resp.status_code == 403
        assert _code(resp) == "RESOURCE_ACCESS_DENIED"
        assert await db_session.scalar(select(func.count()).select_from(Deal)) == 0

    async def test_rep_cannot_repoint_or_hand_off_own_deal(self, client, world, auth_headers):
        headers = auth_headers(world["rep"])
        created = await client.post(
            "/api/deals/",
            json={"title": "Upsell", "account_id": world["account_y"].id},
            headers=headers,
        )
        assert created.status_code == 201
        deal_url = f"/api/deals/{created.json()['id']}"

        repoint = await client.put(deal_url, json={"account_id": world["account_x"].id}, headers=headers)
        assert repoint.status_code == 403

        hand_off = await client.put(deal_url, json={"assigned_to_id": world["other_rep"].id}, headers=headers)
        assert hand_off.status_code == 403

        deal = await client.get(deal_url, headers=headers)
        assert deal.json()["account_id"] == world["account_y"].id
        assert deal.json()["assigned_to_id"] == world["rep"].id

    async def test_manager_cannot_create_customer_in_sibling_unit(self, client, world, auth_headers):
        resp = await client.post(
            "/api/customers/",
            json={
                "first_name": "Cy",
                "last_name": "Ng",
                "email": "cy@globex.io",
                "business_unit_id": world["bu_b"].id,
            },
            headers=auth_headers(world["manager"]),
        )
        assert resp.status_code == 403
        assert _code(resp) == "RESOURCE_ACCESS_DENIED"

    async def test_manager_cannot_create_task_in_sibling_unit(self, client, world, auth_headers):
        resp = await client.post(
            "/api/tasks/",
            json={"title": "Elsewhere", "business_unit_id": world["bu_b"].id},
            headers=auth_headers(world["manager"]),
        )
        assert resp.status_code == 403


# ── Permission administration ────────────────────────────────────

@pytest.mark.integration
class TestPermissionRoutes:
    async def test_catalog_listing(self, client, world, auth_headers):
        resp = await client.get("/api/permissions/", headers=auth_headers(world["admin"]))
        assert resp.status_code == 200
        assert "business-units:read" in {p["name"] for p in resp.json()}

    async def test_role_grant_round_trip(self, client, world, auth_headers):
        headers = auth_headers(world["admin"])
        resp = await client.put(
            "/api/permissions/roles/SUPPORT",
            json={"permission": "reports:read", "granted": True},
            headers=headers,
        )
        assert resp.status_code == 200

        grants = await client.get("/api/permissions/roles/SUPPORT", headers=headers)
        assert {"role": "SUPPORT", "permission": "reports:read", "granted": True} in grants.json()

    async def test_unknown_role_and_permission_are_rejected(self, client, world, auth_headers):
        headers = auth_headers(world["admin"])
        resp = await client.put(
            "/api/permissions/roles/WIZARD", json={"permission": "reports:read"}, headers=headers
        )
        assert resp.status_code == 400

        resp = await client.put(
            "/api/permissions/roles/SUPPORT", json={"permission": "business_units:read"}, headers=headers
        )
        assert resp.status_code == 422

    async def test_user_grant_shows_in_effective_set(self, client, world, auth_headers, db_session):
        headers = auth_headers(world["admin"])
        resp = await client.put(
            f"/api/permissions/users/{world['rep'].id}",
            json={"permission": "reports:read"},
            headers=headers,
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["grants"] == {"reports:read": True}
        assert "reports:read" in body["effective"]

        rows = (await db_session.scalars(
            select(UserPermission).where(UserPermission.user_id == world["rep"].id)
        )).all()
        assert len(rows) == 1

    async def test_non_admin_cannot_administer_grants(self, client, world, auth_headers):
        resp = await client.put(
            f"/api/permissions/users/{world['rep'].id}",
            json={"permission": "accounts:write"},
            headers=auth_headers(world["rep"]),
        )
        assert resp.status_code == 403


# ── Health ───────────────────────────────────────────────────────

@pytest.mark.integration
class TestHealth:
    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    async def test_ready_checks_database(self, client, test_engine, monkeypatch):
        monkeypatch.setattr(health, "engine", test_engine)
        resp = await client.get("/health/ready")
        assert resp.status_code == 200
        assert resp.json()["checks"] == {"service": "ok", "database": "ok", "redis": "disabled"}
