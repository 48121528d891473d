"""Tenant routes.

Tenant names are unique and a tenant's type is HQ or SALES_OFFICE. A tenant
that still has business units cannot be deleted.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from crm.auth.access import ResourceType
from crm.auth.context import AuthContext
from crm.auth.deps import authorize
from crm.auth.errors import ResourceNotFound
from crm.auth.permissions import Permission
from crm.auth.scoping import scoped_select
from crm.database import get_db
from crm.errors import BusinessRuleError
from crm.models.business_unit import BusinessUnit
from crm.models.tenant import Tenant
from crm.schemas.common import PaginatedResponse
from crm.schemas.tenant import TenantCreate, TenantOut, TenantUpdate
from crm.utils.pagination import paginate

router = APIRouter()

_ID = "tenant_id"


# ── Helpers ──────────────────────────────────────────────────

async def _get_tenant(db: AsyncSession, tenant_id: str) -> Tenant:
    tenant = await db.get(Tenant, tenant_id)
    if tenant is None:
        raise ResourceNotFound(ResourceType.TENANT.value, tenant_id)
    return tenant


async def _business_unit_count(db: AsyncSession, tenant_id: str) -> int:
    return await db.scalar(
        select(func.count()).select_from(BusinessUnit).where(BusinessUnit.tenant_id == tenant_id)
    ) or 0


async def _ensure_name_free(db: AsyncSession, name: str, exclude_id: str | None = None) -> None:
    stmt = select(Tenant.id).where(Tenant.name == name)
    if exclude_id:
        stmt = stmt.where(Tenant.id != exclude_id)
    if await db.scalar(stmt):
        raise BusinessRuleError(f"Tenant name '{name}' is already in use")


async def _tenant_out(db: AsyncSession, tenant: Tenant) -> TenantOut:
    out = TenantOut.model_validate(tenant)
    out.business_units = await _business_unit_count(db, tenant.id)
    return out


# ── Routes ───────────────────────────────────────────────────

@router.get("/", response_model=PaginatedResponse[TenantOut])
async def list_tenants(
    type_filter: str | None = Query(None, alias="type"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(authorize(Permission.TENANTS_READ)),
):
    stmt = scoped_select(ResourceType.TENANT, ctx)
    if type_filter and type_filter != "all":
        stmt = stmt.where(Tenant.type == type_filter)

    items, total = await paginate(db, stmt.order_by(Tenant.name), limit, offset)
    return PaginatedResponse(
        items=[await _tenant_out(db, t) for t in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{tenant_id}", response_model=TenantOut)
async def get_tenant(
    tenant_id: str,
    db: AsyncSession = Depends(get_db),
    _ctx: AuthContext = Depends(authorize(Permission.TENANTS_READ, ResourceType.TENANT, _ID)),
):
    return await _tenant_out(db, await _get_tenant(db, tenant_id))


@router.post("/", response_model=TenantOut, status_code=status.HTTP_201_CREATED)
async def create_tenant(
    body: TenantCreate,
    db: AsyncSession = Depends(get_db),
    _ctx: AuthContext = Depends(authorize(Permission.TENANTS_WRITE)),
):
    await _ensure_name_free(db, body.name)

    tenant = Tenant(**body.model_dump())
    db.add(tenant)
    await db.flush()
    await db.refresh(tenant)
    return await _tenant_out(db, tenant)


@router.put("/{tenant_id}", response_model=TenantOut)
async def update_tenant(
    tenant_id: str,
    body: TenantUpdate,
    db: AsyncSession = Depends(get_db),
    _ctx: AuthContext = Depends(authorize(Permission.TENANTS_WRITE, ResourceType.TENANT, _ID)),
):
    tenant = await _get_tenant(db, tenant_id)
    updates = body.model_dump(exclude_unset=True)
    if updates.get("name") and updates["name"] != tenant.name:
        await _ensure_name_free(db, updates["name"], exclude_id=tenant_id)

    for key, value in updates.items():
        setattr(tenant, key, value)
    await db.flush()
    await db.refresh(tenant)
    return await _tenant_out(db, tenant)


@router.delete("/{tenant_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_tenant(
    tenant_id: str,
    db: AsyncSession = Depends(get_db),
    _ctx: AuthContext = Depends(authorize(Permission.TENANTS_DELETE, ResourceType.TENANT, _ID)),
):
    tenant = await _get_tenant(db, tenant_id)
    if await _business_unit_count(db, tenant_id):
        raise BusinessRuleError("Cannot delete a tenant that has business units")

    await db.delete(tenant)
    await db.flush()
