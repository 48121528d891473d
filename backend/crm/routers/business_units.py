"""Business unit routes.

Business units only need tenant membership: any caller holding the
permission can reach every business unit of their own tenant.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from crm.auth.access import ResourceType
from crm.auth.context import AuthContext
from crm.auth.deps import authorize
from crm.auth.errors import ResourceNotFound
from crm.auth.permissions import Permission
from crm.auth.scoping import ensure_in_tenant, ensure_reference, scoped_select, tenant_for_create
from crm.database import get_db
from crm.errors import BusinessRuleError
from crm.models.business_unit import BusinessUnit
from crm.models.user import User
from crm.schemas.business_unit import BusinessUnitCreate, BusinessUnitOut, BusinessUnitUpdate
from crm.schemas.common import PaginatedResponse
from crm.utils.pagination import paginate

router = APIRouter()

_ID = "business_unit_id"


async def _get_business_unit(db: AsyncSession, business_unit_id: str) -> BusinessUnit:
    business_unit = await db.get(BusinessUnit, business_unit_id)
    if business_unit is None:
        raise ResourceNotFound(ResourceType.BUSINESS_UNIT.value, business_unit_id)
    return business_unit


@router.get("/", response_model=PaginatedResponse[BusinessUnitOut])
async def list_business_units(
    status_filter: str | None = Query(None, alias="status"),
    search: str | None = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(authorize(Permission.BUSINESS_UNITS_READ)),
):
    stmt = scoped_select(ResourceType.BUSINESS_UNIT, ctx)
    if status_filter and status_filter != "all":
        stmt = stmt.where(BusinessUnit.status == status_filter)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(
            BusinessUnit.name.ilike(pattern),
            BusinessUnit.city.ilike(pattern),
            BusinessUnit.country.ilike(pattern),
        ))

    items, total = await paginate(db, stmt.order_by(BusinessUnit.name), limit, offset)
    return PaginatedResponse(
        items=[BusinessUnitOut.model_validate(b) for b in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{business_unit_id}", response_model=BusinessUnitOut)
async def get_business_unit(
    business_unit_id: str,
    db: AsyncSession = Depends(get_db),
    _ctx: AuthContext = Depends(
        authorize(Permission.BUSINESS_UNITS_READ, ResourceType.BUSINESS_UNIT, _ID)
    ),
):
    return BusinessUnitOut.model_validate(await _get_business_unit(db, business_unit_id))


@router.post("/", response_model=BusinessUnitOut, status_code=status.HTTP_201_CREATED)
async def create_business_unit(
    body: BusinessUnitCreate,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(authorize(Permission.BUSINESS_UNITS_WRITE)),
):
    tenant_id = tenant_for_create(ctx, body.tenant_id)
    await ensure_in_tenant(db, tenant_id, ResourceType.TENANT, tenant_id)
    await ensure_reference(db, ctx, tenant_id, ResourceType.USER, body.manager_id)

    business_unit = BusinessUnit(tenant_id=tenant_id, **body.model_dump(exclude={"tenant_id"}))
    db.add(business_unit)
    await db.flush()
    await db.refresh(business_unit)
    return BusinessUnitOut.model_validate(business_unit)


@router.put("/{business_unit_id}", response_model=BusinessUnitOut)
async def update_business_unit(
    business_unit_id: str,
    body: BusinessUnitUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(
        authorize(Permission.BUSINESS_UNITS_WRITE, ResourceType.BUSINESS_UNIT, _ID)
    ),
):
    business_unit = await _get_business_unit(db, business_unit_id)
    updates = body.model_dump(exclude_unset=True)
    await ensure_reference(db, ctx, business_unit.tenant_id, ResourceType.USER, updates.get("manager_id"))

    for key, value in updates.items():
        setattr(business_unit, key, value)
    await db.flush()
    await db.refresh(business_unit)
    return BusinessUnitOut.model_validate(business_unit)


@router.delete("/{business_unit_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_business_unit(
    business_unit_id: str,
    db: AsyncSession = Depends(get_db),
    _ctx: AuthContext = Depends(
        authorize(Permission.BUSINESS_UNITS_DELETE, ResourceType.BUSINESS_UNIT, _ID)
    ),
):
    business_unit = await _get_business_unit(db, business_unit_id)
    members = await db.scalar(
        select(func.count()).select_from(User).where(User.business_unit_id == business_unit_id)
    )
    if members:
        raise BusinessRuleError("Cannot delete a business unit that still has users")

    await db.delete(business_unit)
    await db.flush()
