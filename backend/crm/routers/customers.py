"""Customer routes.

Customers carry no tenant column; a customer belongs to the tenant of its
business unit, so creating one requires a business unit of the caller's
tenant.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession

from crm.auth.access import ResourceType
from crm.auth.context import AuthContext
from crm.auth.deps import authorize
from crm.auth.errors import ResourceNotFound
from crm.auth.permissions import Permission
from crm.auth.scoping import (
    apply_creator_defaults,
    ensure_reference,
    ensure_row_in_reach,
    scoped_select,
)
from crm.database import get_db
from crm.errors import BusinessRuleError
from crm.models.business_unit import BusinessUnit
from crm.models.customer import Customer
from crm.schemas.common import PaginatedResponse
from crm.schemas.customer import CustomerCreate, CustomerOut, CustomerUpdate
from crm.utils.pagination import paginate

router = APIRouter()

_ID = "customer_id"


async def _get_customer(db: AsyncSession, customer_id: str) -> Customer:
    customer = await db.get(Customer, customer_id)
    if customer is None:
        raise ResourceNotFound(ResourceType.CUSTOMER.value, customer_id)
    return customer


async def _customer_tenant(db: AsyncSession, business_unit_id: str) -> str:
    business_unit = await db.get(BusinessUnit, business_unit_id)
    if business_unit is None:
        raise BusinessRuleError(f"businessUnit {business_unit_id} does not exist")
    return business_unit.tenant_id


@router.get("/", response_model=PaginatedResponse[CustomerOut])
async def list_customers(
    status_filter: str | None = Query(None, alias="status"),
    business_unit_id: str | None = None,
    search: str | None = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(authorize(Permission.CUSTOMERS_READ)),
):
    stmt = scoped_select(ResourceType.CUSTOMER, ctx)
    if status_filter and status_filter != "all":
        stmt = stmt.where(Customer.status == status_filter)
    if business_unit_id:
        stmt = stmt.where(Customer.business_unit_id == business_unit_id)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(
            Customer.first_name.ilike(pattern),
            Customer.last_name.ilike(pattern),
            Customer.email.ilike(pattern),
            Customer.company.ilike(pattern),
        ))

    stmt = stmt.order_by(Customer.last_name, Customer.first_name)
    items, total = await paginate(db, stmt, limit, offset)
    return PaginatedResponse(
        items=[CustomerOut.model_validate(c) for c in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{customer_id}", response_model=CustomerOut)
async def get_customer(
    customer_id: str,
    db: AsyncSession = Depends(get_db),
    _ctx: AuthContext = Depends(authorize(Permission.CUSTOMERS_READ, ResourceType.CUSTOMER, _ID)),
):
    return CustomerOut.model_validate(await _get_customer(db, customer_id))


@router.post("/", response_model=CustomerOut, status_code=status.HTTP_201_CREATED)
async def create_customer(
    body: CustomerCreate,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(authorize(Permission.CUSTOMERS_WRITE)),
):
    if ctx.is_super_admin:
        tenant_id = await _customer_tenant(db, body.business_unit_id)
    elif ctx.tenant_id is None:
        raise BusinessRuleError("User is not assigned to a tenant")
    else:
        tenant_id = ctx.tenant_id
        await ensure_reference(db, ctx, tenant_id, ResourceType.BUSINESS_UNIT, body.business_unit_id)

    data = apply_creator_defaults(
        ctx, body.model_dump(), business_unit_key=None, owner_key="assigned_to_id"
    )
    await ensure_reference(db, ctx, tenant_id, ResourceType.USER, data["assigned_to_id"])

    customer = Customer(**data)
    ensure_row_in_reach(ctx, ResourceType.CUSTOMER, customer, tenant_id)
    db.add(customer)
    await db.flush()
    await db.refresh(customer)
    return CustomerOut.model_validate(customer)


@router.put("/{customer_id}", response_model=CustomerOut)
async def update_customer(
    customer_id: str,
    body: CustomerUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(authorize(Permission.CUSTOMERS_WRITE, ResourceType.CUSTOMER, _ID)),
):
    customer = await _get_customer(db, customer_id)
    updates = body.model_dump(exclude_unset=True)
    tenant_id = await _customer_tenant(db, customer.business_unit_id)
    await ensure_reference(db, ctx, tenant_id, ResourceType.USER, updates.get("assigned_to_id"))

    for key, value in updates.items():
        setattr(customer, key, value)
    ensure_row_in_reach(ctx, ResourceType.CUSTOMER, customer, tenant_id)
    await db.flush()
    await db.refresh(customer)
    return CustomerOut.model_validate(customer)


@router.delete("/{customer_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_customer(
    customer_id: str,
    db: AsyncSession = Depends(get_db),
    _ctx: AuthContext = Depends(authorize(Permission.CUSTOMERS_DELETE, ResourceType.CUSTOMER, _ID)),
):
    customer = await _get_customer(db, customer_id)
    await db.delete(customer)
    await db.flush()
