"""Tenant scoping for collection queries and record writes.

List routes never build their base query themselves: they start from
`scoped_select`, which applies the same tenant and role narrowing the
resource evaluator applies to single rows. A list can therefore never
return a row that GET /{id} would refuse.
"""

from sqlalchemy import Select, false, select
from sqlalchemy.ext.asyncio import AsyncSession

from crm.auth.access import (
    RESOURCE_SCOPES,
    AccessDecision,
    ResourceRef,
    ResourceType,
    decide,
    load_resource_ref,
)
from crm.auth.context import AuthContext
from crm.auth.errors import ResourceAccessDenied
from crm.auth.permissions import RoleTier, role_tier
from crm.errors import BusinessRuleError


def scoped_select(resource_type: ResourceType, ctx: AuthContext) -> Select:
    """`SELECT <model>` restricted to what the caller may see."""
    scope = RESOURCE_SCOPES[resource_type]
    stmt = select(scope.model)

    tier = role_tier(ctx.user.role)
    if tier is RoleTier.SUPER:
        return stmt
    if tier is None or ctx.tenant_id is None:
        return stmt.where(false())

    stmt = scope.join_business_unit(stmt).where(scope.tenant_expr() == ctx.tenant_id)
    if not scope.narrow_by_role or tier is RoleTier.ADMIN:
        return stmt

    if tier is RoleTier.MANAGER:
        if ctx.user.business_unit_id is None:
            return stmt.where(false())
        return stmt.where(scope.business_unit_expr() == ctx.user.business_unit_id)

    # Contributor
    return stmt.where(scope.owner_expr() == ctx.user_id)


# ── Writes ───────────────────────────────────────────────────

def tenant_for_create(ctx: AuthContext, requested_tenant_id: str | None) -> str:
    """Tenant a new record is created in.

    SYSTEM_ADMIN must name one; everyone else creates in their own tenant
    and may not name another.
    """
    if ctx.is_super_admin:
        if not requested_tenant_id:
            raise BusinessRuleError("tenant_id is required")
        return requested_tenant_id
    if ctx.tenant_id is None:
        raise BusinessRuleError("User is not assigned to a tenant")
    if requested_tenant_id and requested_tenant_id != ctx.tenant_id:
        raise ResourceAccessDenied(ResourceType.TENANT.value, requested_tenant_id)
    return ctx.tenant_id


async def ensure_in_tenant(
    db: AsyncSession,
    tenant_id: str,
    resource_type: ResourceType,
    resource_id: str | None,
) -> None:
    """Reject a reference (business unit, manager, account ...) to a row of another tenant."""
    if resource_id is None:
        return
    ref = await load_resource_ref(db, RESOURCE_SCOPES[resource_type], resource_id)
    if ref is None or ref.tenant_id != tenant_id:
        raise BusinessRuleError(
            f"{resource_type.value} {resource_id} does not exist in this tenant"
        )


async def ensure_reference(
    db: AsyncSession,
    ctx: AuthContext,
    tenant_id: str,
    resource_type: ResourceType,
    resource_id: str | None,
) -> None:
    """Reject a reference the caller could not read through GET /{id}.

    A row of another tenant (or a missing one) is a BusinessRuleError as in
    `ensure_in_tenant`; a row of the same tenant outside the caller's role
    scope is ResourceAccessDenied.
    """
    if resource_id is None:
        return
    scope = RESOURCE_SCOPES[resource_type]
    ref = await load_resource_ref(db, scope, resource_id)
    if ref is None or ref.tenant_id != tenant_id:
        raise BusinessRuleError(
            f"{resource_type.value} {resource_id} does not exist in this tenant"
        )
    if decide(ctx.user, ref, scope) is not AccessDecision.ALLOWED:
        raise ResourceAccessDenied(resource_type.value, resource_id)


def ensure_row_in_reach(
    ctx: AuthContext, resource_type: ResourceType, row, tenant_id: str
) -> None:
    """Reject a create or update whose resulting row the caller could not reach.

    Run on the row after the new values are applied and before flush.
    """
    scope = RESOURCE_SCOPES[resource_type]
    ref = ResourceRef(
        tenant_id=tenant_id,
        business_unit_id=getattr(row, scope.business_unit_column) if scope.business_unit_column else None,
        owner_id=getattr(row, scope.owner_column) if scope.owner_column else None,
    )
    if decide(ctx.user, ref, scope) is not AccessDecision.ALLOWED:
        raise ResourceAccessDenied(resource_type.value, row.id or "new")


def apply_creator_defaults(
    ctx: AuthContext,
    data: dict,
    business_unit_key: str | None = "business_unit_id",
    owner_key: str | None = None,
) -> dict:
    """Fill the business unit / owner of a new record so its creator can still reach it."""
    tier = role_tier(ctx.user.role)
    if tier is RoleTier.MANAGER and business_unit_key and not data.get(business_unit_key):
        data[business_unit_key] = ctx.user.business_unit_id
    if tier is RoleTier.CONTRIBUTOR and owner_key and not data.get(owner_key):
        data[owner_key] = ctx.user_id
    return data
